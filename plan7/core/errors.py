"""
Error types for Plan7 model construction.

Two orthogonal classes of failure run through the build pipeline:
allocation failures (always fatal) and configuration/data errors that
a user can correct. Each exception carries an ErrorKind plus a bounded,
human-readable message.
"""

from enum import Enum


MAX_MESSAGE_LENGTH = 1024


class ErrorKind(Enum):
    """Status classes surfaced by the build pipeline."""
    ALLOCATION = "allocation"
    NO_RESULT = "no_result"
    FORMAT = "format"
    INVALID = "invalid"
    NOT_FOUND = "not_found"
    CONVERGENCE = "convergence"
    FAILURE = "failure"


class BuildError(Exception):
    """Base class for every error raised while building a model."""

    kind = ErrorKind.FAILURE

    def __init__(self, message: str = ""):
        message = (message or "").strip()
        if len(message) > MAX_MESSAGE_LENGTH:
            message = message[:MAX_MESSAGE_LENGTH - 3] + "..."
        super().__init__(message)
        self.message = message

    def relabel(self, message: str) -> "BuildError":
        """Return an error of the same class and kind with a new message."""
        return type(self)(message)

    def __str__(self) -> str:
        return self.message or self.kind.value


class AllocationError(BuildError):
    """Resource exhaustion. Never retried."""
    kind = ErrorKind.ALLOCATION

    def __init__(self, message: str = "memory allocation failed"):
        super().__init__(message)


class NoConsensusError(BuildError):
    """No alignment column qualified as a consensus (match) column."""
    kind = ErrorKind.NO_RESULT


class FormatError(BuildError):
    """Input is malformed or lacks annotation the chosen strategy requires."""
    kind = ErrorKind.FORMAT


class ConfigurationError(BuildError):
    """Builder or input is misconfigured (missing name, bad matrix, ...)."""
    kind = ErrorKind.INVALID


class MatrixNotFoundError(BuildError):
    """A substitution matrix file could not be found or opened."""
    kind = ErrorKind.NOT_FOUND


class ConvergenceError(BuildError):
    """A numerical method failed to converge."""
    kind = ErrorKind.CONVERGENCE


class EstimationError(BuildError):
    """Parameter estimation or another internal algorithm failed."""
    kind = ErrorKind.FAILURE
