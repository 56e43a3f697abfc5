"""
Multiple sequence alignment container used by the build pipeline.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np

from .alphabet import Alphabet, GAP_CHARS


# Score cutoff keys, as carried in Stockholm #=GF GA/TC/NC lines
CUTOFF_KEYS = ("GA1", "GA2", "TC1", "TC2", "NC1", "NC2")


@dataclass
class Alignment:
    """
    Aligned sequences plus the annotation that travels onto a model.

    Attributes:
        names: sequence names, one per row
        aseqs: aligned sequence strings, all of equal length
        abc: alphabet the sequences are written in
        weights: relative sequence weights, mutated in place by weighting
        name: alignment name (required for annotation)
        acc: optional accession
        desc: optional description
        rf: optional reference (consensus column) annotation line
        cutoffs: Pfam-style score cutoffs, keys from CUTOFF_KEYS
    """
    names: List[str]
    aseqs: List[str]
    abc: Alphabet
    weights: Optional[np.ndarray] = None
    name: Optional[str] = None
    acc: Optional[str] = None
    desc: Optional[str] = None
    rf: Optional[str] = None
    cutoffs: Dict[str, float] = field(default_factory=dict)

    def __post_init__(self):
        if len(self.names) != len(self.aseqs):
            raise ValueError("Alignment needs exactly one name per sequence")
        if self.aseqs and len({len(s) for s in self.aseqs}) != 1:
            raise ValueError("Aligned sequences must all have the same length")
        if self.rf is not None and self.aseqs and len(self.rf) != self.alen:
            raise ValueError(f"RF line length {len(self.rf)} != alignment length {self.alen}")
        unknown = set(self.cutoffs) - set(CUTOFF_KEYS)
        if unknown:
            raise ValueError(f"Unknown cutoff keys: {sorted(unknown)}")
        if self.weights is None:
            self.weights = np.ones(self.nseq, dtype=float)
        else:
            self.weights = np.asarray(self.weights, dtype=float)
            if self.weights.shape != (self.nseq,):
                raise ValueError("Weight vector must have one entry per sequence")

    @property
    def nseq(self) -> int:
        return len(self.aseqs)

    @property
    def alen(self) -> int:
        return len(self.aseqs[0]) if self.aseqs else 0

    def digitize(self) -> np.ndarray:
        """Return an (nseq, alen) array of digital codes."""
        if not self.aseqs:
            return np.zeros((0, 0), dtype=np.int64)
        return np.vstack([self.abc.digitize(s) for s in self.aseqs])

    def unaligned(self, idx: int) -> str:
        """Return sequence <idx> with gap characters removed."""
        return "".join(c for c in self.aseqs[idx] if c not in GAP_CHARS)

    def has_cutoff(self, key: str) -> bool:
        return key in self.cutoffs and self.cutoffs[key] is not None

    def checksum(self) -> int:
        """
        Jenkins one-at-a-time hash over every aligned sequence.

        Used to tie a model back to the exact alignment it came from.
        """
        val = 0
        for seq in self.aseqs:
            for c in seq.encode("ascii", errors="replace"):
                val = (val + c) & 0xFFFFFFFF
                val = (val + (val << 10)) & 0xFFFFFFFF
                val ^= val >> 6
        val = (val + (val << 3)) & 0xFFFFFFFF
        val ^= val >> 11
        val = (val + (val << 15)) & 0xFFFFFFFF
        return val


@dataclass
class Sequence:
    """A single unaligned query sequence."""
    name: str
    seq: str
    abc: Alphabet
    desc: Optional[str] = None

    @property
    def n(self) -> int:
        return sum(1 for c in self.seq if c not in GAP_CHARS)

    def digitize(self) -> np.ndarray:
        return self.abc.digitize("".join(c for c in self.seq if c not in GAP_CHARS))
