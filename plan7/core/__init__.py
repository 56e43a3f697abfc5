"""
Core module for plan7.

Contains the model construction pipeline and its collaborators.
"""

from .errors import (
    ErrorKind,
    BuildError,
    AllocationError,
    NoConsensusError,
    FormatError,
    ConfigurationError,
    MatrixNotFoundError,
    ConvergenceError,
    EstimationError
    )

from .alphabet import Alphabet, AlphabetType, guess_alphabet
from .msa import Alignment, Sequence
from .hmm import Plan7Model, ModelFlags, Cutoff, EvParam
from .trace import Trace, TraceState
from .background import Background
from .prior import Prior, create_prior
from .scorematrix import ScoreSystem, load_score_system
from .profile import Profile, OptimizedProfile

from .builder import (
    Builder,
    BuildResult
    )

from .parallel_builder import (
    build_many,
    summarize,
    configure_worker_logging
    )

__all__ = [
    'ErrorKind',
    'BuildError',
    'AllocationError',
    'NoConsensusError',
    'FormatError',
    'ConfigurationError',
    'MatrixNotFoundError',
    'ConvergenceError',
    'EstimationError',
    'Alphabet',
    'AlphabetType',
    'guess_alphabet',
    'Alignment',
    'Sequence',
    'Plan7Model',
    'ModelFlags',
    'Cutoff',
    'EvParam',
    'Trace',
    'TraceState',
    'Background',
    'Prior',
    'create_prior',
    'ScoreSystem',
    'load_score_system',
    'Profile',
    'OptimizedProfile',
    'Builder',
    'BuildResult',
    'build_many',
    'summarize',
    'configure_worker_logging'
]
