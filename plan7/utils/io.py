"""
I/O utilities for plan7.

Reads alignments and sequences through Biopython, and writes alignments
and build summaries.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd
from Bio import AlignIO, SeqIO
from Bio.Align import MultipleSeqAlignment
from Bio.Seq import Seq
from Bio.SeqRecord import SeqRecord

from plan7.core.alphabet import Alphabet, guess_alphabet
from plan7.core.errors import FormatError
from plan7.core.hmm import Cutoff, EvParam, ModelFlags, Plan7Model
from plan7.core.msa import Alignment, Sequence

logger = logging.getLogger(__name__)

# Stockholm #=GF tags carried onto an Alignment
_GF_FIELDS = {"ID": "name", "AC": "acc", "DE": "desc"}
_GF_CUTOFFS = ("GA", "TC", "NC")


def _scan_stockholm_annotation(path: str) -> List[Dict[str, Any]]:
    """
    Collect per-alignment #=GF ID/AC/DE/GA/TC/NC and #=GC RF annotation.

    Returns one dictionary per '//'-terminated alignment block.
    """
    blocks = []
    current: Dict[str, Any] = {"cutoffs": {}, "rf": None}
    with open(path, "r") as f:
        for line in f:
            line = line.rstrip("\n")
            if line.startswith("//"):
                blocks.append(current)
                current = {"cutoffs": {}, "rf": None}
            elif line.startswith("#=GF"):
                parts = line.split(None, 2)
                if len(parts) < 3:
                    continue
                tag, value = parts[1], parts[2].strip()
                if tag in _GF_FIELDS:
                    key = _GF_FIELDS[tag]
                    current[key] = f"{current[key]} {value}" if key == "desc" and current.get(key) else value
                elif tag in _GF_CUTOFFS:
                    values = value.rstrip(";").replace(";", " ").split()
                    try:
                        for n, v in enumerate(values[:2], start=1):
                            current["cutoffs"][f"{tag}{n}"] = float(v)
                    except ValueError as e:
                        raise FormatError(f"bad {tag} cutoff line in {path}: {value}") from e
            elif line.startswith("#=GC"):
                parts = line.split()
                if len(parts) >= 3 and parts[1] == "RF":
                    current["rf"] = (current["rf"] or "") + parts[2]
    return blocks


def read_alignments(path: str, fmt: str = "stockholm",
                    abc: Optional[Alphabet] = None) -> List[Alignment]:
    """
    Read every alignment in a file.

    Stockholm annotation (name, accession, description, cutoffs, RF line)
    is carried over. An alignment with no name of its own takes the file
    stem when it is the only one in the file.

    Args:
        path: alignment file
        fmt: Biopython AlignIO format name ('stockholm', 'fasta', ...)
        abc: alphabet to use; guessed from the residues when None

    Raises:
        FormatError: unreadable file or unguessable alphabet
    """
    try:
        records = list(AlignIO.parse(path, fmt))
    except ValueError as e:
        raise FormatError(f"failed to parse {fmt} alignment {path}: {e}") from e
    if not records:
        raise FormatError(f"no alignments found in {path}")

    if fmt == "stockholm":
        annotation = _scan_stockholm_annotation(path)
    else:
        annotation = [{"cutoffs": {}, "rf": None} for _ in records]

    alignments = []
    for idx, aln in enumerate(records):
        names = [rec.id for rec in aln]
        aseqs = [str(rec.seq) for rec in aln]
        ann = annotation[idx] if idx < len(annotation) else {"cutoffs": {}, "rf": None}

        msa_abc = abc or guess_alphabet(aseqs)
        if msa_abc is None:
            raise FormatError(f"could not guess alphabet of alignment {idx + 1} in {path}")

        name = ann.get("name")
        if name is None and len(records) == 1:
            name = Path(path).stem
        try:
            msa = Alignment(
                names=names, aseqs=aseqs, abc=msa_abc,
                name=name, acc=ann.get("acc"), desc=ann.get("desc"),
                rf=ann.get("rf"), cutoffs=ann.get("cutoffs", {}),
            )
        except ValueError as e:
            raise FormatError(f"alignment {idx + 1} in {path}: {e}") from e
        alignments.append(msa)

    logger.debug(f"Read {len(alignments)} alignment(s) from {path}")
    return alignments


def read_alignment(path: str, fmt: str = "stockholm", abc: Optional[Alphabet] = None) -> Alignment:
    """Read the first alignment in a file."""
    return read_alignments(path, fmt, abc)[0]


def read_sequences(path: str, abc: Optional[Alphabet] = None, fmt: str = "fasta") -> List[Sequence]:
    """
    Load unaligned sequences.

    Args:
        path: sequence file
        abc: alphabet to use; guessed from all residues when None
        fmt: Biopython SeqIO format name

    Returns:
        List of Sequence objects
    """
    records = list(SeqIO.parse(path, fmt))
    if not records:
        raise FormatError(f"no sequences found in {path}")
    if abc is None:
        abc = guess_alphabet(str(rec.seq) for rec in records)
        if abc is None:
            raise FormatError(f"could not guess alphabet of sequences in {path}")
    return [Sequence(name=rec.id, seq=str(rec.seq), abc=abc, desc=rec.description or None)
            for rec in records]


def write_alignment(msa: Alignment, output_file: str, fmt: str = "fasta"):
    """
    Save an alignment.

    Args:
        msa: alignment to write
        output_file: Output file path
        fmt: Biopython AlignIO format name
    """
    records = [SeqRecord(Seq(s), id=n, description="") for n, s in zip(msa.names, msa.aseqs)]
    aln = MultipleSeqAlignment(records)
    with open(output_file, "w") as f:
        AlignIO.write(aln, f, fmt)


def _finite_or_none(x: float) -> Optional[float]:
    return float(x) if np.isfinite(x) else None


def model_summary(hmm: Plan7Model) -> Dict[str, Any]:
    """Flatten the annotation and calibration of a model into plain values."""
    flags = [flag.name for flag in ModelFlags if flag and flag in hmm.flags]
    return {
        "name": hmm.name,
        "acc": hmm.acc,
        "desc": hmm.desc,
        "M": hmm.M,
        "nseq": hmm.nseq,
        "eff_nseq": float(hmm.eff_nseq),
        "checksum": hmm.checksum,
        "ctime": hmm.ctime,
        "flags": flags,
        "cutoffs": {c.name: _finite_or_none(hmm.cutoff[c]) for c in Cutoff},
        "evparam": {p.name: _finite_or_none(hmm.evparam[p]) for p in EvParam},
        "compo": None if hmm.compo is None else [float(x) for x in hmm.compo],
    }


def save_summary_json(summaries: List[Dict], output_file: str):
    """
    Save model summaries to JSON file.

    Args:
        summaries: List of summary dictionaries
        output_file: Output file path
    """
    with open(output_file, 'w') as f:
        json.dump(summaries, f, indent=2)


def save_summary_tsv(summaries: List[Dict], output_file: str):
    """
    Save model summaries to TSV file, one row per model.

    Nested cutoff and E-value parameter entries become their own columns.
    """
    rows = []
    for summary in summaries:
        row = {k: v for k, v in summary.items() if k not in ("cutoffs", "evparam", "compo", "flags")}
        row["flags"] = ",".join(summary.get("flags") or [])
        for group in ("cutoffs", "evparam"):
            for key, value in (summary.get(group) or {}).items():
                row[key] = value
        rows.append(row)

    df = pd.DataFrame(rows)
    df.to_csv(output_file, sep='\t', index=False)


def ensure_dir(directory: str):
    """
    Ensure a directory exists, creating it if necessary.

    Args:
        directory: Directory path
    """
    Path(directory).mkdir(parents=True, exist_ok=True)
