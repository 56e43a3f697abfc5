#!/usr/bin/env python3
"""
plan7 CLI

Provides subcommands for building profile HMMs from alignments and
single sequences using the Typer framework.
"""
import os
import sys

# Set default environment variables BEFORE any imports
# This ensures subcommands see these values when they import
if "PLAN7_LOG_LEVEL" not in os.environ:
    os.environ["PLAN7_LOG_LEVEL"] = "INFO"

from plan7.utils.logging_utils import setup_rich_logging, console, status
setup_rich_logging(os.getenv("PLAN7_LOG_LEVEL", "INFO"))

import typer
from pathlib import Path
from typing import Optional
import logging

from plan7 import __version__

# Main application
app = typer.Typer(
    name="plan7",
    help="plan7: profile HMM construction from alignments and single sequences",
    add_completion=False,
    rich_markup_mode="rich",
    no_args_is_help=True
)

# Import sub-applications AFTER setting default environment
from plan7.build import build_app

# Register subcommands
app.add_typer(build_app, name="build", help="Build profile HMMs")


def setup_logging(level: str = "INFO", log_file: Optional[str] = None):
    """
    Configure logging for the plan7 CLI with Rich integration.

    This function reconfigures logging to use the specified level,
    ensuring that global options like --debug propagate to all modules.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    # Reconfigure Rich logging (handles both initial setup and updates)
    setup_rich_logging(level)

    # Modules that set their level at import time need updating too
    for logger_name in list(logging.Logger.manager.loggerDict.keys()):
        if logger_name.startswith('plan7'):
            logger_obj = logging.getLogger(logger_name)
            logger_obj.setLevel(numeric_level)

    # Add a file handler if requested (only once)
    root_logger = logging.getLogger()
    if log_file and not any(
        isinstance(h, logging.FileHandler) and h.baseFilename == str(Path(log_file).resolve())
        for h in root_logger.handlers
    ):
        fh = logging.FileHandler(log_file)
        fh.setLevel(numeric_level)
        formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s",
                                      datefmt="%Y-%m-%d %H:%M:%S")
        fh.setFormatter(formatter)
        root_logger.addHandler(fh)


def version_callback(value: bool):
    if value:
        console.print(f"[bold blue]plan7[/bold blue] version {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug mode with verbose output"
    ),
    log_level: str = typer.Option(
        "INFO",
        "--log-level",
        help="Set logging level (DEBUG, INFO, WARNING, ERROR)"
    ),
    log_file: Optional[Path] = typer.Option(
        None,
        "--log-file",
        help="Save logs to a file"
    ),
    version: bool = typer.Option(
        False,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit"
    ),
):
    """
    plan7: profile hidden Markov model construction

    Builds Plan7 profile HMMs from multiple sequence alignments, or from
    single sequences scored with a substitution matrix. Each model is
    weighted, parameterized with Dirichlet priors, annotated and
    calibrated for E-values.
    """
    resolved_level = "DEBUG" if debug else log_level.upper()

    # Update environment variable so any late imports see the correct level
    os.environ["PLAN7_LOG_LEVEL"] = resolved_level

    setup_logging(
        level=resolved_level,
        log_file=str(log_file) if log_file else None,
    )

    if debug:
        console.print(f"[bold yellow]Debug mode active[/bold yellow] (PLAN7_LOG_LEVEL={resolved_level})")


@app.command()
def info():
    """Display system and environment information."""
    import platform
    console.print("\n[bold blue]System Information[/bold blue]")
    console.print("=" * 60)
    console.print(f"[cyan]Python:[/cyan] {sys.version.split()[0]}")
    console.print(f"[cyan]Platform:[/cyan] {platform.platform()}")
    console.print(f"[cyan]plan7 Version:[/cyan] {__version__}")

    with status("Checking numerical libraries..."):
        import numpy as np
        import scipy
        import Bio
        import pandas as pd
        import multiprocessing as mp

    console.print(f"[cyan]NumPy:[/cyan] {np.__version__}")
    console.print(f"[cyan]SciPy:[/cyan] {scipy.__version__}")
    console.print(f"[cyan]Biopython:[/cyan] {Bio.__version__}")
    console.print(f"[cyan]pandas:[/cyan] {pd.__version__}")
    console.print(f"[cyan]CPUs:[/cyan] {mp.cpu_count()}")
    console.print("")


def main():
    app()


if __name__ == "__main__":
    main()
