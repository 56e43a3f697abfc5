# plan7/utils/logging_utils.py
"""
Rich-based logging utilities for plan7.

Ensures all modules share a consistent RichHandler setup, and highlights
the words that mark build progress (model built, score system loaded,
weighting switched) in console output.
"""

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

# Create one global console shared across modules
console = Console(log_path=False)

# Pipeline stage labels, in build order
BUILD_STAGES = (
    "weighting",
    "architecture",
    "effective",
    "parameterize",
    "annotate",
    "calibrate",
    "postmsa",
)

# Highlighted in log lines: level names plus build milestones
LOG_KEYWORDS = ["INFO", "WARNING", "ERROR", "Built", "Loaded score system",
                "position-based", "failed"]


def status(msg: str, stage: Optional[str] = None):
    """
    Shared spinner for long-running build steps.

    Args:
        msg: what is being worked on
        stage: optional pipeline stage label from BUILD_STAGES, shown as a prefix
    """
    if stage is not None and stage not in BUILD_STAGES:
        raise ValueError(f"Unknown build stage: {stage}")
    prefix = f"[bold]{stage}[/bold] " if stage else ""
    return console.status(f"[cyan]{prefix}{msg}[/cyan]", spinner="dots")


def setup_rich_logging(level: str = "INFO") -> None:
    """
    Initialize or reconfigure RichHandler-based logging.

    An existing RichHandler only has its level updated, so repeated calls
    from the CLI callback and from modules imported later are harmless.
    """
    root_logger = logging.getLogger()
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    existing_rich_handlers = [h for h in root_logger.handlers if isinstance(h, RichHandler)]

    if existing_rich_handlers:
        root_logger.setLevel(numeric_level)
        for handler in existing_rich_handlers:
            handler.setLevel(numeric_level)
        root_logger.debug("Rich logging reconfigured to level %s", level)
        return

    logging.basicConfig(
        level=numeric_level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(
            rich_tracebacks=True,
            console=console,
            show_time=True,
            show_path=False,
            markup=True,
            keywords=LOG_KEYWORDS,
        )],
    )
    root_logger.debug("Rich logging initialized with level %s", level)
