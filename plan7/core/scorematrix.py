"""
Substitution score system for single-sequence model construction.

Loads a score matrix through Biopython, checks it is symmetric, and
back-calculates its implicit joint probabilities (Yu & Altschul) so
that each row can serve as conditional emission probabilities P(b | a).
"""

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

import numpy as np
from Bio.Align import substitution_matrices
from scipy.optimize import brentq

from .alphabet import Alphabet, AlphabetType
from .errors import ConfigurationError, ConvergenceError, FormatError, MatrixNotFoundError

logger = logging.getLogger(__name__)

STDIN_SOURCE = "-"
DEFAULT_AMINO_MATRIX = "BLOSUM62"


@dataclass
class ScoreSystem:
    """
    Attributes:
        S: (K, K) substitution scores
        Q: (K, K) conditional probabilities, Q[a, b] = P(b | a)
        f: implied residue marginals
        slambda: scale factor of the scores
        popen: gap-open probability
        pextend: gap-extend probability
        source: matrix name or path it was read from
    """
    S: np.ndarray
    Q: np.ndarray
    f: np.ndarray
    slambda: float
    popen: float
    pextend: float
    source: str


def locate_matrix(mxfile: str, env: Optional[str] = None) -> Path:
    """
    Find <mxfile> in the working directory, else in the colon-delimited
    directory list held by environment variable <env>.
    """
    path = Path(mxfile)
    if path.is_file():
        return path
    if env and os.environ.get(env):
        for directory in os.environ[env].split(":"):
            if not directory:
                continue
            candidate = Path(directory) / mxfile
            if candidate.is_file():
                return candidate
    raise MatrixNotFoundError(f"Failed to find or open matrix file {mxfile}")


def read_matrix(abc: Alphabet, mxfile: Optional[str] = None, env: Optional[str] = None) -> Tuple[np.ndarray, str]:
    """Return the (K, K) score array for <abc> and a label for its source."""
    if mxfile is None:
        if abc.type != AlphabetType.AMINO:
            raise ConfigurationError(
                f"No default score matrix for {abc.type.value} alphabet; supply a matrix file")
        return _matrix_to_array(substitution_matrices.load(DEFAULT_AMINO_MATRIX), abc, DEFAULT_AMINO_MATRIX), DEFAULT_AMINO_MATRIX

    if mxfile == STDIN_SOURCE:
        handle, label = sys.stdin, "<stdin>"
    else:
        handle = locate_matrix(mxfile, env)
        label = str(handle)
    try:
        matrix = substitution_matrices.read(handle if mxfile == STDIN_SOURCE else str(handle))
    except OSError as e:
        raise MatrixNotFoundError(f"Failed to find or open matrix file {mxfile}") from e
    except (ValueError, KeyError, IndexError) as e:
        raise FormatError(f"Failed to read matrix from {label}:\n{e}") from e
    return _matrix_to_array(matrix, abc, label), label


def _matrix_to_array(matrix, abc: Alphabet, label: str) -> np.ndarray:
    if len(matrix.shape) != 2:
        raise FormatError(f"Failed to read matrix from {label}: not a two-dimensional matrix")
    letters = set(matrix.alphabet)
    symbols = []
    for c in abc.symbols:
        if c in letters:
            symbols.append(c)
        elif c == "U" and "T" in letters:
            symbols.append("T")
        else:
            raise FormatError(f"Matrix {label} has no score for residue {c}")
    return np.array([[matrix[a, b] for b in symbols] for a in symbols], dtype=float)


def is_symmetric(S: np.ndarray) -> bool:
    return S.shape[0] == S.shape[1] and np.array_equal(S, S.T)


def _marginals(S: np.ndarray, lam: float) -> Optional[np.ndarray]:
    try:
        return np.linalg.solve(np.exp(lam * S), np.ones(S.shape[0]))
    except np.linalg.LinAlgError:
        return None


def probify(S: np.ndarray) -> Tuple[np.ndarray, np.ndarray, float]:
    """
    Recover the probabilistic basis of a symmetric score matrix.

    Finds lambda and marginals f with P[a, b] = f[a] f[b] exp(lambda S[a, b])
    summing to one, every f[a] positive.

    Returns:
        (joint probabilities P, marginals f, lambda)

    Raises:
        ConvergenceError: no consistent lambda exists or the solver fails
    """
    maxabs = np.abs(S).max()
    if maxabs == 0:
        raise ConvergenceError("score matrix is all zeros")

    def excess(lam: float) -> float:
        f = _marginals(S, lam)
        return np.nan if f is None else f.sum() - 1.0

    grid = np.geomspace(1e-3, 50.0, 400) / maxabs
    values = np.array([excess(lam) for lam in grid])

    # scan from large lambda down; the outermost + to - sign change is the root
    for j in range(len(grid) - 1, 0, -1):
        lo, hi = grid[j - 1], grid[j]
        if not (np.isfinite(values[j - 1]) and np.isfinite(values[j])):
            continue
        if values[j - 1] > 0 > values[j]:
            try:
                lam = brentq(excess, lo, hi, xtol=1e-12, maxiter=200)
            except (RuntimeError, ValueError) as e:
                raise ConvergenceError(f"root finding failed: {e}") from e
            f = _marginals(S, lam)
            if f is not None and np.all(f > 0):
                P = f[:, None] * np.exp(lam * S) * f[None, :]
                return P / P.sum(), f / f.sum(), float(lam)
    raise ConvergenceError("no lambda gives positive marginals")


def load_score_system(abc: Alphabet, mxfile: Optional[str] = None, env: Optional[str] = None,
                      popen: float = 0.02, pextend: float = 0.4) -> ScoreSystem:
    """
    Load a score matrix and convert it to conditional probabilities.

    Raises:
        MatrixNotFoundError: <mxfile> not found, even on the <env> path
        FormatError: the matrix could not be parsed for this alphabet
        ConfigurationError: the matrix is not symmetric or not probifiable
    """
    S, source = read_matrix(abc, mxfile, env)
    if not is_symmetric(S):
        raise ConfigurationError("Matrix is not symmetric")
    try:
        P, f, slambda = probify(S)
    except ConvergenceError as e:
        raise ConfigurationError(
            "Yu/Altschul method failed to backcalculate probabilistic basis of score matrix") from e

    Q = P / P.sum(axis=1, keepdims=True)
    logger.info(f"Loaded score system {source}: lambda={slambda:.4f}, popen={popen}, pextend={pextend}")
    return ScoreSystem(S=S, Q=Q, f=f, slambda=slambda, popen=popen, pextend=pextend, source=source)
