"""
plan7: profile hidden Markov model construction

Builds calibrated Plan7 profile HMMs from multiple sequence alignments
or from single sequences scored with a substitution matrix.
"""

__version__ = "0.1.0"

from . import core
from . import utils

from .config import Plan7Config, load_config

from .core import (
    Alphabet,
    Alignment,
    Sequence,
    Background,
    Builder,
    BuildResult,
    BuildError,
    build_many
)

__all__ = [
    'core',
    'utils',
    'Plan7Config',
    'load_config',
    'Alphabet',
    'Alignment',
    'Sequence',
    'Background',
    'Builder',
    'BuildResult',
    'BuildError',
    'build_many'
]
