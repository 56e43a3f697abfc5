"""
Background (null) model: per-symbol residue frequencies plus a
geometric length distribution for null sequence scores.
"""

import math
from typing import Optional, Sequence

import numpy as np

from .alphabet import Alphabet, AlphabetType


# Amino acid background frequencies, in AMINO_SYMBOLS order (ACDEFGHIKLMNPQRSTVWY)
AMINO_FREQUENCIES = np.array([
    0.0787945, 0.0151600, 0.0535222, 0.0668298, 0.0397062,
    0.0695071, 0.0229198, 0.0590092, 0.0594422, 0.0963728,
    0.0237718, 0.0414386, 0.0482904, 0.0395639, 0.0540978,
    0.0683364, 0.0540687, 0.0673417, 0.0114135, 0.0304133,
])


class Background:
    """
    Null model.

    Attributes:
        abc: alphabet
        f: background residue frequencies, sums to one
        p1: null self-loop probability; set from a target length
    """

    def __init__(self, abc: Alphabet, f: Optional[Sequence[float]] = None, L: int = 400):
        self.abc = abc
        if f is None:
            if abc.type == AlphabetType.AMINO:
                f = AMINO_FREQUENCIES
            else:
                f = np.full(abc.K, 1.0 / abc.K)
        f = np.asarray(f, dtype=float)
        if f.shape != (abc.K,) or np.any(f <= 0):
            raise ValueError(f"Background needs {abc.K} positive frequencies")
        self.f = f / f.sum()
        self.set_length(L)

    def set_length(self, L: int) -> None:
        self.p1 = L / (L + 1.0)

    def null_score(self, L: int) -> float:
        """Log-probability (nats) of a length-L sequence under the null length model."""
        p1 = L / (L + 1.0)
        return L * math.log(p1) + math.log(1.0 - p1)

    def sample(self, rng: np.random.Generator, n: int, L: int) -> np.ndarray:
        """Draw <n> i.i.d. random sequences of length <L> as digital codes."""
        return rng.choice(self.abc.K, size=(n, L), p=self.f)
