"""
plan7 main entry point

Pipeline dispatch for Python callers and the Typer commands:
    plan7 build msa
    plan7 build seq
    plan7 build batch
"""
import os
from plan7.utils.logging_utils import setup_rich_logging, console
log_level = os.getenv("PLAN7_LOG_LEVEL", "INFO")
setup_rich_logging(log_level)

from pathlib import Path
from typing import Optional, Union, Dict, Any

from plan7.config import Plan7Config, load_config as config_load_config

import logging
logger = logging.getLogger(__name__)
logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def load_config(config_path: Optional[Union[str, Path]] = None) -> Plan7Config:
    """Load configuration file into Plan7Config; defaults when no path is given."""
    if config_path is None:
        return Plan7Config()
    return config_load_config(str(config_path))


# ---------------------------------------------------------------------
# Pipeline dispatch
# ---------------------------------------------------------------------
def run_pipeline(
    command: str,
    input_file: Union[str, Path],
    config_path: Optional[Union[str, Path]] = None,
    output_dir: Optional[Union[str, Path]] = None,
    extra_args: Optional[Dict[str, Any]] = None,
):
    """
    Execute a plan7 build command ('msa', 'seq' or 'batch') on <input_file>.
    """
    extra_args = extra_args or {}
    config = load_config(config_path)
    if config.logging and config.logging.get("level"):
        setup_rich_logging(config.logging["level"])

    logger.info(f"Executing plan7 build {command} on {input_file}")

    # Lazy import keeps the Typer app out of plain library use
    from plan7 import build
    dispatch_map = {
        "msa": build.run_msa_build,
        "seq": build.run_seq_build,
        "batch": build.run_batch_build,
    }
    if command not in dispatch_map:
        raise ValueError(f"Unknown plan7 build command: {command}")
    func = dispatch_map[command]

    result = func(config, Path(input_file), output_dir=output_dir, **extra_args)

    logger.info(f"Completed build {command} successfully")
    return result


# ---------------------------------------------------------------------
# Entrypoint wrapper
# ---------------------------------------------------------------------
def main(
    command: str,
    input_file: Union[str, Path],
    config: Optional[Union[str, Path]] = None,
    output: Optional[str] = None,
    **kwargs,
):
    """Unified Python entrypoint for Typer or direct execution."""
    try:
        result = run_pipeline(command, input_file, config, output_dir=output, extra_args=kwargs)
        return result
    except Exception as e:
        logger.exception(f"plan7 build {command} failed: {e}")
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise


if __name__ == "__main__":
    import sys

    if len(sys.argv) < 3:
        console.print("[bold red]Usage:[/bold red] python -m plan7.main <msa|seq|batch> <input_file> [config_path] [output_dir]")
        sys.exit(1)

    cmd = sys.argv[1]
    inp = sys.argv[2]
    cfg = sys.argv[3] if len(sys.argv) > 3 else None
    out = sys.argv[4] if len(sys.argv) > 4 else None

    main(cmd, inp, config=cfg, output=out)
