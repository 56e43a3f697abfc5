"""
Plan7 profile HMM under construction.

A model carries weighted observed counts until it is parameterized,
then normalized probabilities. Node 0 holds the begin-state
transitions; nodes 1..M are the consensus positions.
"""

import copy
import logging
from datetime import datetime
from enum import IntEnum, IntFlag
from typing import Optional

import numpy as np

from .alphabet import Alphabet

logger = logging.getLogger(__name__)


# Transition indices within t[k]
TMM, TMI, TMD, TIM, TII, TDM, TDD = range(7)
NTRANSITIONS = 7


class Cutoff(IntEnum):
    GA1 = 0
    GA2 = 1
    TC1 = 2
    TC2 = 3
    NC1 = 4
    NC2 = 5


class EvParam(IntEnum):
    MMU = 0
    MLAMBDA = 1
    VMU = 2
    VLAMBDA = 3
    FTAU = 4
    FLAMBDA = 5


class ModelFlags(IntFlag):
    NONE = 0
    ACC = 1
    DESC = 2
    CHKSUM = 4
    COMPO = 8
    GA = 16
    TC = 32
    NC = 64
    STATS = 128


class Plan7Model:
    """
    Profile HMM with M match nodes over alphabet <abc>.

    Attributes:
        t: (M+1, 7) transition counts or probabilities
        mat: (M+1, K) match emissions; row 0 is unused
        ins: (M+1, K) insert emissions
        nseq: number of sequences the model was built from
        eff_nseq: effective sequence number
        cutoff: six score thresholds, NaN when unset
        evparam: six E-value parameters, NaN until calibrated
    """

    def __init__(self, abc: Alphabet, M: int):
        if M < 1:
            raise ValueError(f"Model needs at least one node, got M={M}")
        self.abc = abc
        self.M = M
        self.t = np.zeros((M + 1, NTRANSITIONS))
        self.mat = np.zeros((M + 1, abc.K))
        self.ins = np.zeros((M + 1, abc.K))

        self.name: Optional[str] = None
        self.acc: Optional[str] = None
        self.desc: Optional[str] = None
        self.ctime: Optional[str] = None
        self.nseq = 0
        self.eff_nseq = 0.0
        self.checksum = 0
        self.compo: Optional[np.ndarray] = None
        self.cutoff = np.full(len(Cutoff), np.nan)
        self.evparam = np.full(len(EvParam), np.nan)
        self.flags = ModelFlags.NONE
        self.parameterized = False
        # sequence number that the current counts sum to
        self.count_nseq = 0.0

    def copy(self) -> "Plan7Model":
        return copy.deepcopy(self)

    # ------------------------------------------------------------------
    # Counts
    # ------------------------------------------------------------------
    def scale(self, factor: float) -> None:
        """Multiply every count by <factor>."""
        self.t *= factor
        self.mat *= factor
        self.ins *= factor

    def scale_counts(self, eff_nseq: float) -> float:
        """
        Rescale counts so they represent <eff_nseq> sequences.

        The factor is taken relative to what the counts currently
        represent, so scaling twice to the same target is a no-op.
        Returns the factor applied.
        """
        if self.parameterized:
            raise ValueError("Cannot rescale counts of a parameterized model")
        basis = self.count_nseq if self.count_nseq > 0 else float(self.nseq)
        factor = eff_nseq / basis if basis > 0 else 1.0
        self.scale(factor)
        self.count_nseq = eff_nseq
        self.eff_nseq = eff_nseq
        return factor

    # ------------------------------------------------------------------
    # Annotation
    # ------------------------------------------------------------------
    def set_name(self, name: str) -> None:
        self.name = name

    def set_accession(self, acc: Optional[str]) -> None:
        self.acc = acc
        if acc:
            self.flags |= ModelFlags.ACC
        else:
            self.flags &= ~ModelFlags.ACC

    def set_description(self, desc: Optional[str]) -> None:
        self.desc = desc
        if desc:
            self.flags |= ModelFlags.DESC
        else:
            self.flags &= ~ModelFlags.DESC

    def set_ctime(self) -> None:
        self.ctime = datetime.now().strftime("%a %b %d %H:%M:%S %Y")

    def set_cutoff_pair(self, first: Cutoff, second: Cutoff, values, flag: ModelFlags) -> None:
        self.cutoff[first] = values[0]
        self.cutoff[second] = values[1]
        self.flags |= flag

    # ------------------------------------------------------------------
    # Derived quantities of a parameterized model
    # ------------------------------------------------------------------
    def occupancy(self):
        """Expected match and insert occupancy for each node."""
        t = self.t
        mocc = np.zeros(self.M + 1)
        iocc = np.zeros(self.M + 1)
        mocc[1] = t[0, TMI] + t[0, TMM]
        for k in range(2, self.M + 1):
            mocc[k] = (mocc[k - 1] * (t[k - 1, TMM] + t[k - 1, TMI])
                       + (1.0 - mocc[k - 1]) * t[k - 1, TDM])
        with np.errstate(divide="ignore", invalid="ignore"):
            iocc[0] = t[0, TMI] / t[0, TIM] if t[0, TIM] > 0 else 0.0
            for k in range(1, self.M):
                iocc[k] = mocc[k] * t[k, TMI] / t[k, TIM] if t[k, TIM] > 0 else 0.0
        return mocc, iocc

    def set_composition(self) -> None:
        """Record the model's expected residue composition."""
        if not self.parameterized:
            raise ValueError("Composition requires a parameterized model")
        mocc, iocc = self.occupancy()
        compo = mocc[1:] @ self.mat[1:] + iocc @ self.ins
        total = compo.sum()
        if total <= 0 or not np.isfinite(total):
            raise ValueError("Model occupancy is degenerate; cannot compute composition")
        self.compo = compo / total
        self.flags |= ModelFlags.COMPO

    def validate(self, tol: float = 1e-4) -> None:
        """Raise ValueError if probabilities do not sum to one."""
        if not self.parameterized:
            raise ValueError("Model has counts, not probabilities")
        sums = self.mat[1:].sum(axis=1)
        if not np.allclose(sums, 1.0, atol=tol):
            raise ValueError("Match emissions do not sum to one")
        sums = self.ins[:self.M].sum(axis=1)
        if not np.allclose(sums, 1.0, atol=tol):
            raise ValueError("Insert emissions do not sum to one")
        for lo, hi in ((TMM, TIM), (TIM, TDM), (TDM, NTRANSITIONS)):
            if not np.allclose(self.t[:, lo:hi].sum(axis=1), 1.0, atol=tol):
                raise ValueError("Transition distributions do not sum to one")

    def __repr__(self) -> str:
        return f"Plan7Model(name={self.name!r}, M={self.M}, nseq={self.nseq}, eff_nseq={self.eff_nseq:.2f})"
