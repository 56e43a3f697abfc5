"""
State paths of sequences through a model's core states.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import List


class TraceState(IntEnum):
    S = 0
    N = 1
    B = 2
    M = 3
    D = 4
    I = 5
    E = 6
    C = 7
    T = 8


EMITTING = (TraceState.N, TraceState.M, TraceState.I, TraceState.C)


@dataclass
class Trace:
    """
    One sequence's path.

    st[z], k[z], i[z] give the state, node index (0 when not a core
    state) and 1-based residue position (0 when nothing is emitted)
    of step z.
    """
    st: List[TraceState] = field(default_factory=list)
    k: List[int] = field(default_factory=list)
    i: List[int] = field(default_factory=list)
    M: int = 0
    L: int = 0

    def append(self, st: TraceState, k: int = 0, i: int = 0) -> None:
        self.st.append(TraceState(st))
        self.k.append(k)
        self.i.append(i)

    def __len__(self) -> int:
        return len(self.st)

    def steps(self):
        return zip(self.st, self.k, self.i)

    def match_count(self) -> int:
        return sum(1 for s in self.st if s == TraceState.M)

    @classmethod
    def single_sequence(cls, L: int) -> "Trace":
        """Faux trace through a single-sequence model: B, M1..ML, E."""
        tr = cls()
        tr.append(TraceState.B)
        for k in range(1, L + 1):
            tr.append(TraceState.M, k, k)
        tr.append(TraceState.E)
        tr.M = L
        tr.L = L
        return tr
