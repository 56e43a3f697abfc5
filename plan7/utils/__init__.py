"""
Utilities module for plan7.
"""

from plan7.config import (
    Plan7Config,
    ConstructionConfig,
    WeightingConfig,
    EffectiveNumberConfig,
    CalibrationConfig,
    ScoreSystemConfig,
    load_config
)

from .io import (
    read_alignment,
    read_alignments,
    read_sequences,
    write_alignment,
    model_summary,
    save_summary_json,
    save_summary_tsv,
    ensure_dir
)

from .logging_utils import console, status, setup_rich_logging

__all__ = [
    # Config
    'Plan7Config',
    'ConstructionConfig',
    'WeightingConfig',
    'EffectiveNumberConfig',
    'CalibrationConfig',
    'ScoreSystemConfig',
    'load_config',
    # I/O
    'read_alignment',
    'read_alignments',
    'read_sequences',
    'write_alignment',
    'model_summary',
    'save_summary_json',
    'save_summary_tsv',
    'ensure_dir',
    # Logging
    'console',
    'status',
    'setup_rich_logging'
]
