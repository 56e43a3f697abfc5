"""
plan7 model construction commands
"""

import os
import logging
import time
import typer
from pathlib import Path
from typing import Optional, Dict, Any, List
from rich import box
from rich.panel import Panel
from rich.table import Table
from plan7.utils.logging_utils import setup_rich_logging, console, status

# Determine log level dynamically
log_level = os.getenv("PLAN7_LOG_LEVEL", "INFO").upper()
setup_rich_logging(log_level)

logger = logging.getLogger(__name__)
logger.setLevel(getattr(logging, log_level, logging.INFO))

from plan7.config import Plan7Config, load_config
from plan7.core import Alphabet, Background, Builder, BuildError, build_many, summarize
from plan7.utils.io import (
    read_alignments,
    read_sequences,
    write_alignment,
    model_summary,
    save_summary_json,
    save_summary_tsv,
    ensure_dir,
)

build_app = typer.Typer(
    help="Build profile HMMs from alignments or single sequences",
    rich_markup_mode="rich",
)


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
def resolve_config(config_path: Optional[Path] = None,
                   overrides: Optional[Dict[str, Dict[str, Any]]] = None) -> Plan7Config:
    """
    Load a configuration (defaults when no file is given) and apply
    command-line overrides section by section. Values of None are ignored.
    """
    config = load_config(str(config_path)) if config_path else Plan7Config()
    if not overrides:
        return config

    data = config._to_dict()
    for section, values in overrides.items():
        changed = {k: v for k, v in values.items() if v is not None}
        if not changed:
            continue
        if section == "alphabet":
            data[section] = changed["value"]
            continue
        data[section] = {**(data.get(section) or {}), **changed}
    return Plan7Config.from_dict(data)


def resolve_alphabet(name: Optional[str]) -> Optional[Alphabet]:
    """Map an alphabet name to an Alphabet; None or 'auto' means guess from input."""
    if name is None or name.lower() == "auto":
        return None
    return Alphabet.from_name(name)


def resolve_output_dir(config: Plan7Config, output_dir: Optional[Path] = None) -> Path:
    """Command-line directory first, then the config's output.dir, then the working directory."""
    if output_dir:
        return Path(output_dir)
    return Path((config.output or {}).get("dir") or ".")


def _summary_path(output_dir: Path, stem: str, summary_format: str) -> Path:
    suffix = "tsv" if summary_format == "tsv" else "json"
    return output_dir / f"{stem}.summary.{suffix}"


def _save_summaries(summaries: List[Dict], path: Path, summary_format: str):
    if summary_format == "tsv":
        save_summary_tsv(summaries, str(path))
    else:
        save_summary_json(summaries, str(path))


# ---------------------------------------------------------------------
# Pipeline functions
# ---------------------------------------------------------------------
def run_msa_build(
    config: Plan7Config,
    input_file: Path,
    output_dir: Optional[Path] = None,
    fmt: str = "stockholm",
    name: Optional[str] = None,
    postmsa: bool = False,
    summary_format: str = "json",
) -> Dict[str, Any]:
    """
    Build one model per alignment in <input_file>.

    Models are built sequentially with a single Builder. A failure on one
    alignment stops the run.
    """
    output_dir = resolve_output_dir(config, output_dir)
    ensure_dir(str(output_dir))

    abc = resolve_alphabet(config.alphabet)
    alignments = read_alignments(str(input_file), fmt, abc)
    abc = alignments[0].abc
    if name is not None:
        if len(alignments) > 1:
            raise typer.BadParameter("--name only applies to files holding a single alignment")
        alignments[0].name = name

    bg = Background(abc)
    summaries = []
    postmsa_files = []
    start_time = time.time()
    with Builder(abc, config) as bld:
        for msa in alignments:
            with status(f"Building {msa.name or 'model'} ({msa.nseq} seqs x {msa.alen} cols)..."):
                result = bld.build(msa, bg, want_postmsa=postmsa)
            summaries.append(model_summary(result.hmm))
            if postmsa:
                post_file = output_dir / f"{result.hmm.name}.post.fasta"
                with status(f"Writing {post_file.name}", stage="postmsa"):
                    write_alignment(result.postmsa, str(post_file))
                postmsa_files.append(post_file)

    summary_file = _summary_path(output_dir, Path(input_file).stem, summary_format)
    _save_summaries(summaries, summary_file, summary_format)
    logger.info(f"Saved {len(summaries)} model summaries to {summary_file}")

    return {
        "summaries": summaries,
        "summary_file": summary_file,
        "postmsa_files": postmsa_files,
        "elapsed": time.time() - start_time,
    }


def run_seq_build(
    config: Plan7Config,
    input_file: Path,
    output_dir: Optional[Path] = None,
    fmt: str = "fasta",
    summary_format: str = "json",
) -> Dict[str, Any]:
    """Build one model per sequence in <input_file> from the configured score system."""
    output_dir = resolve_output_dir(config, output_dir)
    ensure_dir(str(output_dir))

    abc = resolve_alphabet(config.alphabet)
    sequences = read_sequences(str(input_file), abc, fmt)
    abc = sequences[0].abc
    bg = Background(abc)
    ss = config.score_system

    summaries = []
    start_time = time.time()
    with Builder(abc, config) as bld:
        if ss is not None:
            bld.set_score_system(ss.mxfile, ss.env, ss.popen, ss.pextend)
        else:
            bld.set_score_system()
        for sq in sequences:
            with status(f"Building {sq.name} ({sq.n} residues)..."):
                result = bld.single_build(sq, bg)
            summaries.append(model_summary(result.hmm))

    summary_file = _summary_path(output_dir, Path(input_file).stem, summary_format)
    _save_summaries(summaries, summary_file, summary_format)
    logger.info(f"Saved {len(summaries)} model summaries to {summary_file}")

    return {
        "summaries": summaries,
        "summary_file": summary_file,
        "postmsa_files": [],
        "elapsed": time.time() - start_time,
    }


def run_batch_build(
    config: Plan7Config,
    input_file: Path,
    output_dir: Optional[Path] = None,
    fmt: str = "stockholm",
    n_workers: Optional[int] = None,
    summary_format: str = "json",
) -> Dict[str, Any]:
    """
    Build every alignment in <input_file> across worker processes.

    Failures are recorded per alignment rather than stopping the batch.
    """
    output_dir = resolve_output_dir(config, output_dir)
    ensure_dir(str(output_dir))

    abc = resolve_alphabet(config.alphabet)
    alignments = read_alignments(str(input_file), fmt, abc)
    abc = alignments[0].abc

    start_time = time.time()
    results = build_many(alignments, abc, config, n_workers=n_workers)
    table = summarize(results, alignments)

    summaries = [model_summary(hmm) for hmm, _ in results if hmm is not None]
    summary_file = _summary_path(output_dir, Path(input_file).stem, summary_format)
    _save_summaries(summaries, summary_file, summary_format)

    status_file = output_dir / f"{Path(input_file).stem}.status.tsv"
    table.to_csv(status_file, sep="\t", index=False)
    logger.info(f"Saved batch status to {status_file}")

    return {
        "summaries": summaries,
        "summary_file": summary_file,
        "status_file": status_file,
        "n_failed": int((table["status"] == "failed").sum()),
        "elapsed": time.time() - start_time,
    }


def _print_results(title: str, result: Dict[str, Any]):
    results_table = Table(title=title, show_header=True, box=box.SIMPLE)
    results_table.add_column("Model", style="cyan")
    results_table.add_column("M", style="green", justify="right")
    results_table.add_column("nseq", justify="right")
    results_table.add_column("eff_nseq", justify="right")
    results_table.add_column("Description")
    for summary in result["summaries"]:
        results_table.add_row(
            str(summary["name"]),
            str(summary["M"]),
            str(summary["nseq"]),
            f"{summary['eff_nseq']:.2f}",
            summary["desc"] or "-",
        )
    console.print(results_table)
    console.print(f"[cyan]Summary:[/cyan] {result['summary_file']}")
    for post_file in result.get("postmsa_files", []):
        console.print(f"[cyan]Post-build alignment:[/cyan] {post_file}")
    console.print(f"[dim]Elapsed: {result['elapsed']:.2f}s[/dim]")


# ---------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------
@build_app.command("msa")
def msa_command(
    input_file: Path = typer.Argument(
        ...,
        exists=True,
        help="Alignment file (Stockholm or aligned FASTA)"),
    config: Optional[Path] = typer.Option(
        None,
        "--config", "-c",
        help="Configuration YAML or JSON file"),
    output_dir: Optional[Path] = typer.Option(
        None,
        "--output-dir", "-o",
        help="Output directory"),
    fmt: str = typer.Option(
        "stockholm",
        "--format", "-f",
        help="Alignment format: stockholm|fasta"),
    alphabet: Optional[str] = typer.Option(
        None,
        "--alphabet",
        help="Residue alphabet: amino|dna|rna (guessed if not given)"),
    name: Optional[str] = typer.Option(
        None,
        "--name", "-n",
        help="Name the model (single-alignment files only)"),
    hand: bool = typer.Option(
        False,
        "--hand",
        help="Use the alignment's RF line to pick consensus columns"),
    symfrac: Optional[float] = typer.Option(
        None,
        "--symfrac",
        help="Residue fraction threshold for consensus columns"),
    wgt: Optional[str] = typer.Option(
        None,
        "--wgt",
        help="Relative weighting: none|given|pb|gsc|blosum"),
    eff: Optional[str] = typer.Option(
        None,
        "--eff",
        help="Effective sequence number: none|set|clust|entropy"),
    eset: Optional[float] = typer.Option(
        None,
        "--eset",
        help="Effective sequence number for --eff set"),
    ere: Optional[float] = typer.Option(
        None,
        "--ere",
        help="Target relative entropy per position (bits)"),
    seed: Optional[int] = typer.Option(
        None,
        "--seed", "-s",
        help="Random seed for calibration (0 = arbitrary)"),
    postmsa: bool = typer.Option(
        False,
        "--postmsa",
        help="Write the alignment implied by the model's traces"),
    summary_format: str = typer.Option(
        "json",
        "--summary-format",
        help="Summary format: json|tsv"),
):
    """
    Build profile HMMs from multiple sequence alignments.

    Examples:
        plan7 build msa globins4.sto -o models/

        plan7 build msa family.sto --hand --wgt blosum --eff clust --postmsa
    """
    try:
        config_obj = resolve_config(config, {
            "construction": {"arch": "hand" if hand else None, "symfrac": symfrac},
            "weighting": {"strategy": wgt},
            "effective": {"strategy": eff, "eset": eset, "ere": ere},
            "calibration": {"seed": seed},
            "alphabet": {"value": alphabet},
        })

        panel_content = f"""[cyan]Input:[/cyan] {input_file} ({fmt})
[cyan]Architecture:[/cyan] {config_obj.construction.arch.value} (symfrac {config_obj.construction.symfrac})
[cyan]Weighting:[/cyan] {config_obj.weighting.strategy.value}
[cyan]Effective number:[/cyan] {config_obj.effective.strategy.value}
[cyan]Seed:[/cyan] {config_obj.calibration.seed}
[cyan]Output:[/cyan] {output_dir or 'current directory'}"""
        console.print(Panel(panel_content, title="[bold]Model Construction[/bold]", box=box.ROUNDED))

        result = run_msa_build(config_obj, input_file, output_dir, fmt=fmt, name=name,
                               postmsa=postmsa, summary_format=summary_format)
        _print_results("Built Models", result)
        console.print("\n[bold green]✓ Build completed successfully![/bold green]")

    except (BuildError, ValueError, OSError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@build_app.command("seq")
def seq_command(
    input_file: Path = typer.Argument(
        ...,
        exists=True,
        help="Sequence file (FASTA)"),
    config: Optional[Path] = typer.Option(
        None,
        "--config", "-c",
        help="Configuration YAML or JSON file"),
    output_dir: Optional[Path] = typer.Option(
        None,
        "--output-dir", "-o",
        help="Output directory"),
    alphabet: Optional[str] = typer.Option(
        None,
        "--alphabet",
        help="Residue alphabet: amino|dna|rna (guessed if not given)"),
    mx: Optional[str] = typer.Option(
        None,
        "--mx",
        help="Substitution matrix file (default BLOSUM62 for protein)"),
    mx_env: Optional[str] = typer.Option(
        None,
        "--mx-env",
        help="Environment variable listing directories to search for --mx"),
    popen: Optional[float] = typer.Option(
        None,
        "--popen",
        help="Gap open probability"),
    pextend: Optional[float] = typer.Option(
        None,
        "--pextend",
        help="Gap extend probability"),
    seed: Optional[int] = typer.Option(
        None,
        "--seed", "-s",
        help="Random seed for calibration (0 = arbitrary)"),
    summary_format: str = typer.Option(
        "json",
        "--summary-format",
        help="Summary format: json|tsv"),
):
    """
    Build profile HMMs from single sequences using a substitution matrix.

    Examples:
        plan7 build seq query.fa --mx BLOSUM62 -o models/
    """
    try:
        config_obj = resolve_config(config, {
            "score_system": {"mxfile": mx, "env": mx_env, "popen": popen, "pextend": pextend},
            "calibration": {"seed": seed},
            "alphabet": {"value": alphabet},
        })
        result = run_seq_build(config_obj, input_file, output_dir, summary_format=summary_format)
        _print_results("Built Models", result)
        console.print("\n[bold green]✓ Build completed successfully![/bold green]")

    except (BuildError, ValueError, OSError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@build_app.command("batch")
def batch_command(
    input_file: Path = typer.Argument(
        ...,
        exists=True,
        help="Multi-alignment Stockholm file"),
    config: Optional[Path] = typer.Option(
        None,
        "--config", "-c",
        help="Configuration YAML or JSON file"),
    output_dir: Optional[Path] = typer.Option(
        None,
        "--output-dir", "-o",
        help="Output directory"),
    alphabet: Optional[str] = typer.Option(
        None,
        "--alphabet",
        help="Residue alphabet: amino|dna|rna (guessed if not given)"),
    n_workers: Optional[int] = typer.Option(
        None,
        "--workers", "-w",
        help="Number of parallel workers (auto-detect if not specified)"),
    seed: Optional[int] = typer.Option(
        None,
        "--seed", "-s",
        help="Random seed for calibration (0 = arbitrary)"),
    summary_format: str = typer.Option(
        "json",
        "--summary-format",
        help="Summary format: json|tsv"),
):
    """
    Build a model for every alignment in a file using worker processes.

    Examples:
        plan7 build batch Pfam-A.seed -o models/ --workers 8
    """
    try:
        config_obj = resolve_config(config, {
            "calibration": {"seed": seed},
            "alphabet": {"value": alphabet},
        })
        result = run_batch_build(config_obj, input_file, output_dir,
                                 n_workers=n_workers, summary_format=summary_format)
        _print_results("Built Models", result)
        console.print(f"[cyan]Status:[/cyan] {result['status_file']}")
        if result["n_failed"]:
            console.print(f"[bold yellow]{result['n_failed']} alignment(s) failed to build[/bold yellow]")
            raise typer.Exit(1)
        console.print("\n[bold green]✓ Batch completed successfully![/bold green]")

    except (BuildError, ValueError, OSError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)
