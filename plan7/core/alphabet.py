"""
Biosequence alphabets.

Maps residue characters to canonical symbol indices and knows which
characters are gaps or degenerate residues.
"""

from enum import Enum
from typing import Dict, Iterable, Optional

import numpy as np


GAP_CHARS = "-._~"

# Digitized codes below zero are not canonical residues
GAP_CODE = -1
DEGENERATE_CODE = -2


class AlphabetType(Enum):
    AMINO = "amino"
    DNA = "dna"
    RNA = "rna"
    OTHER = "other"


AMINO_SYMBOLS = "ACDEFGHIKLMNPQRSTVWY"
DNA_SYMBOLS = "ACGT"
RNA_SYMBOLS = "ACGU"

AMINO_DEGENERATE = "BJZOUX*"
NUCLEIC_DEGENERATE = "RYMKSWHBVDN"


class Alphabet:
    """
    A residue alphabet with K canonical symbols.

    Attributes:
        type: AlphabetType of this alphabet
        symbols: canonical symbols, in index order
        K: number of canonical symbols
    """

    def __init__(self, alphabet_type: AlphabetType, symbols: str, degenerate: str = ""):
        if len(set(symbols)) != len(symbols):
            raise ValueError(f"Alphabet symbols must be unique: {symbols}")
        self.type = alphabet_type
        self.symbols = symbols.upper()
        self.K = len(self.symbols)
        self.degenerate = degenerate.upper()
        self._index: Dict[str, int] = {c: i for i, c in enumerate(self.symbols)}

    @classmethod
    def amino(cls) -> "Alphabet":
        return cls(AlphabetType.AMINO, AMINO_SYMBOLS, AMINO_DEGENERATE)

    @classmethod
    def dna(cls) -> "Alphabet":
        return cls(AlphabetType.DNA, DNA_SYMBOLS, NUCLEIC_DEGENERATE)

    @classmethod
    def rna(cls) -> "Alphabet":
        return cls(AlphabetType.RNA, RNA_SYMBOLS, NUCLEIC_DEGENERATE)

    @classmethod
    def custom(cls, symbols: str, degenerate: str = "") -> "Alphabet":
        return cls(AlphabetType.OTHER, symbols, degenerate)

    @classmethod
    def from_name(cls, name: str) -> "Alphabet":
        """Create a standard alphabet from 'amino', 'dna' or 'rna'."""
        name = name.lower()
        if name in ("amino", "protein"):
            return cls.amino()
        if name == "dna":
            return cls.dna()
        if name == "rna":
            return cls.rna()
        raise ValueError(f"Unknown alphabet: {name}")

    @property
    def is_nucleic(self) -> bool:
        return self.type in (AlphabetType.DNA, AlphabetType.RNA)

    def index(self, char: str) -> int:
        """Return the digital code of a single character."""
        char = char.upper()
        if char in GAP_CHARS:
            return GAP_CODE
        code = self._index.get(char)
        if code is not None:
            return code
        if char in self.degenerate or char.isalpha() or char == "*":
            return DEGENERATE_CODE
        raise ValueError(f"Illegal character '{char}' for {self.type.value} alphabet")

    def digitize(self, text: str) -> np.ndarray:
        """Digitize an aligned or unaligned sequence string."""
        return np.fromiter((self.index(c) for c in text), dtype=np.int64, count=len(text))

    def __eq__(self, other) -> bool:
        return isinstance(other, Alphabet) and self.type == other.type and self.symbols == other.symbols

    def __hash__(self) -> int:
        return hash((self.type, self.symbols))

    def __repr__(self) -> str:
        return f"Alphabet({self.type.value}, K={self.K})"


def guess_alphabet(sequences: Iterable[str]) -> Optional[Alphabet]:
    """
    Guess a standard alphabet from raw sequence text.

    Returns None when the residues are consistent with no standard
    alphabet (or no residues are present).
    """
    seen = set()
    for seq in sequences:
        seen.update(c for c in seq.upper() if c not in GAP_CHARS)
    if not seen:
        return None

    nucleic = set("ACGTUN")
    if seen <= nucleic:
        if "U" in seen and "T" not in seen:
            return Alphabet.rna()
        if "U" not in seen:
            return Alphabet.dna()
    if seen <= set(AMINO_SYMBOLS + AMINO_DEGENERATE):
        return Alphabet.amino()
    return None
