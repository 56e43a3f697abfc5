"""
Search profiles derived from a parameterized model.

Profile holds local, multihit log-odds scores (nats) with a target
length model. OptimizedProfile re-packs those scores in the striped,
reduced-precision layout that vectorized filters consume.
"""

import logging
import math

import numpy as np

from .background import Background
from .errors import ConfigurationError
from .hmm import Plan7Model, TMM, TMI, TMD, TIM, TII, TDM, TDD, EvParam

logger = logging.getLogger(__name__)

DEFAULT_TARGET_LENGTH = 400


def _log(x) -> np.ndarray:
    with np.errstate(divide="ignore"):
        return np.log(x)


class Profile:
    """
    Attributes:
        msc: (M+1, K) match log-odds scores, row 0 is -inf
        isc: (M+1, K) insert log-odds scores
        tsc: (M+1, 7) log transition probabilities
        tbm: (M+1,) local entry scores B->Mk
        L: target sequence length the special states are set for
    """

    def __init__(self, hmm: Plan7Model, bg: Background, L: int = DEFAULT_TARGET_LENGTH,
                 multihit: bool = True):
        if not hmm.parameterized:
            raise ConfigurationError("profile needs a parameterized model")
        self.name = hmm.name
        self.abc = hmm.abc
        self.M = hmm.M
        self.multihit = multihit
        self.evparam = hmm.evparam.copy()

        logf = np.log(bg.f)
        self.msc = np.full((self.M + 1, self.abc.K), -np.inf)
        self.msc[1:] = _log(hmm.mat[1:]) - logf
        self.isc = _log(hmm.ins) - logf
        self.tsc = _log(hmm.t)

        # occupancy-weighted local entry
        mocc, _ = hmm.occupancy()
        k = np.arange(self.M + 1)
        Z = float(np.sum(mocc[1:] * (self.M - k[1:] + 1)))
        self.tbm = np.full(self.M + 1, -np.inf)
        self.tbm[1:] = _log(mocc[1:] / Z) if Z > 0 else math.log(2.0 / (self.M * (self.M + 1)))

        self.reconfig_length(L)

    def reconfig_length(self, L: int) -> None:
        """Set N/J/C loop and move scores for target length <L>."""
        nj = 1.0 if self.multihit else 0.0
        pmove = (2.0 + nj) / (L + 2.0 + nj)
        self.L = L
        self.xloop = math.log(1.0 - pmove)
        self.xmove = math.log(pmove)
        self.xej = math.log(0.5) if self.multihit else -math.inf
        self.xec = math.log(0.5) if self.multihit else 0.0

    @property
    def tmm(self):
        return self.tsc[:, TMM]

    @property
    def tmi(self):
        return self.tsc[:, TMI]

    @property
    def tmd(self):
        return self.tsc[:, TMD]

    @property
    def tim(self):
        return self.tsc[:, TIM]

    @property
    def tii(self):
        return self.tsc[:, TII]

    @property
    def tdm(self):
        return self.tsc[:, TDM]

    @property
    def tdd(self):
        return self.tsc[:, TDD]

    def __repr__(self) -> str:
        return f"Profile(name={self.name!r}, M={self.M}, L={self.L})"


class OptimizedProfile:
    """
    Striped, reduced-precision copy of a Profile.

    Node k (1..M) lives in segment q = (k-1) % Q, lane z = (k-1) // Q,
    with Q = max(2, ceil(M / LANES)). Padding cells hold neutral values.

    Attributes:
        rbv: (K, Q, LANES) uint8 MSV scores, offset by bias_b
        rwv: (K, Q, LANES) int16 Viterbi scores
        rfv: (K, Q, LANES) float32 match odds ratios
    """

    LANES = 16

    def __init__(self, M: int, K: int, name=None):
        self.M = M
        self.K = K
        self.name = name
        self.Q = max(2, -(-M // self.LANES))
        self.scale_b = 3.0 / math.log(2.0)
        self.scale_w = 500.0 / math.log(2.0)
        self.bias_b = 0
        self.rbv = np.zeros((K, self.Q, self.LANES), dtype=np.uint8)
        self.rwv = np.zeros((K, self.Q, self.LANES), dtype=np.int16)
        self.rfv = np.zeros((K, self.Q, self.LANES), dtype=np.float32)
        self.evparam = np.full(len(EvParam), np.nan)
        self.L = DEFAULT_TARGET_LENGTH

    @classmethod
    def from_profile(cls, gm: Profile) -> "OptimizedProfile":
        om = cls(gm.M, gm.abc.K, gm.name)
        msc = gm.msc[1:].T                      # (K, M)
        finite = np.isfinite(msc)
        byte_sc = np.where(finite, np.round(om.scale_b * msc), -255.0)
        om.bias_b = int(min(255, max(0, -byte_sc.min())))
        om.rbv = om.stripe(np.clip(byte_sc + om.bias_b, 0, 255), om.bias_b, np.uint8)
        word_sc = np.where(finite, np.round(om.scale_w * msc), -32768.0)
        om.rwv = om.stripe(np.clip(word_sc, -32768, 32767), 0, np.int16)
        om.rfv = om.stripe(np.exp(msc), 0.0, np.float32)
        om.evparam = gm.evparam.copy()
        om.L = gm.L
        return om

    def stripe(self, values: np.ndarray, fill, dtype) -> np.ndarray:
        """Lay out (K, M) per-node values in (K, Q, LANES) striped order."""
        out = np.full((self.K, self.Q * self.LANES), fill, dtype=dtype)
        k = np.arange(self.M)
        out[:, (k % self.Q) * self.LANES + k // self.Q] = values
        return out.reshape(self.K, self.Q, self.LANES)

    def unstripe(self, striped: np.ndarray) -> np.ndarray:
        """Inverse of stripe(): return (K, M) values in node order."""
        flat = striped.reshape(self.K, self.Q * self.LANES)
        k = np.arange(self.M)
        return flat[:, (k % self.Q) * self.LANES + k // self.Q]

    def __repr__(self) -> str:
        return f"OptimizedProfile(name={self.name!r}, M={self.M}, Q={self.Q})"
