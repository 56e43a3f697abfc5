"""
E-value calibration.

Scores simulated random sequences against the model's search profile
and fits the score distributions: MSV and Viterbi scores to Gumbel
location parameters, Forward scores to an exponential tail, all with
lambda fixed at ln 2 for bit scores.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional

import numpy as np
from scipy.special import logsumexp

from .background import Background
from .errors import ConfigurationError, EstimationError
from .hmm import EvParam, ModelFlags, Plan7Model
from .profile import OptimizedProfile, Profile

logger = logging.getLogger(__name__)

BIT_LAMBDA = math.log(2.0)


@dataclass
class CalibrationResult:
    evparam: np.ndarray
    gm: Optional[Profile] = None
    om: Optional[OptimizedProfile] = None


# ----------------------------------------------------------------------
# Batched dynamic programming over N sequences of equal length
# ----------------------------------------------------------------------
class _Max:
    reduce = staticmethod(np.maximum.reduce)
    accumulate = staticmethod(np.maximum.accumulate)
    pair = staticmethod(np.maximum)


class _LogSum:
    reduce = staticmethod(np.logaddexp.reduce)
    accumulate = staticmethod(np.logaddexp.accumulate)
    pair = staticmethod(np.logaddexp)


def _special_states(gm: Profile, xE, xJ, xC, xN, op):
    xJ = op.pair(xJ + gm.xloop, xE + gm.xej)
    xC = op.pair(xC + gm.xloop, xE + gm.xec)
    xN = xN + gm.xloop
    xB = op.pair(xN, xJ) + gm.xmove
    return xJ, xC, xN, xB


def msv_scores(gm: Profile, X: np.ndarray) -> np.ndarray:
    """Multihit ungapped (MSV) raw scores in nats for each row of <X>."""
    N, L = X.shape
    M = gm.M
    tbm = math.log(2.0 / (M * (M + 1)))
    mmx = np.full((N, M + 1), -np.inf)
    xN = np.zeros(N)
    xJ = np.full(N, -np.inf)
    xC = np.full(N, -np.inf)
    xB = xN + gm.xmove
    for i in range(L):
        mnew = np.full((N, M + 1), -np.inf)
        mnew[:, 1:] = np.maximum(mmx[:, :-1], xB[:, None] + tbm) + gm.msc[1:, X[:, i]].T
        xE = mnew[:, 1:].max(axis=1)
        xJ, xC, xN, xB = _special_states(gm, xE, xJ, xC, xN, _Max)
        mmx = mnew
    return xC + gm.xmove


def _generic_scores(gm: Profile, X: np.ndarray, op) -> np.ndarray:
    N, L = X.shape
    M = gm.M
    neg = np.full((N, M + 1), -np.inf)
    mmx, imx, dmx = neg.copy(), neg.copy(), neg.copy()
    xN = np.zeros(N)
    xJ = np.full(N, -np.inf)
    xC = np.full(N, -np.inf)
    xB = xN + gm.xmove

    # C[k]: cumulative D->D score along nodes 1..k
    C = np.zeros(M)
    C[1:] = np.cumsum(gm.tdd[1:M])

    with np.errstate(invalid="ignore"):
        for i in range(L):
            emit = gm.msc[:, X[:, i]].T
            cand = np.stack([
                mmx[:, :-1] + gm.tmm[:-1],
                imx[:, :-1] + gm.tim[:-1],
                dmx[:, :-1] + gm.tdm[:-1],
                np.broadcast_to(xB[:, None] + gm.tbm[1:], (N, M)),
            ])
            mnew = neg.copy()
            mnew[:, 1:] = op.reduce(cand, axis=0) + emit[:, 1:]

            inew = neg.copy()
            if M > 1:
                inew[:, 1:M] = op.pair(mmx[:, 1:M] + gm.tmi[1:M],
                                       imx[:, 1:M] + gm.tii[1:M]) + gm.isc[1:M, X[:, i]].T

            dnew = neg.copy()
            if M > 1:
                a = mnew[:, 1:M] + gm.tmd[1:M] - C[1:M]
                dnew[:, 2:] = C[1:M] + op.accumulate(a, axis=1)
                dnew[np.isnan(dnew)] = -np.inf

            xE = op.reduce(np.concatenate([mnew[:, 1:], dnew[:, 1:]], axis=1), axis=1)
            xJ, xC, xN, xB = _special_states(gm, xE, xJ, xC, xN, op)
            mmx, imx, dmx = mnew, inew, dnew
    return xC + gm.xmove


def viterbi_scores(gm: Profile, X: np.ndarray) -> np.ndarray:
    """Optimal local alignment raw scores in nats."""
    return _generic_scores(gm, X, _Max)


def forward_scores(gm: Profile, X: np.ndarray) -> np.ndarray:
    """Forward (summed over alignments) raw scores in nats."""
    return _generic_scores(gm, X, _LogSum)


# ----------------------------------------------------------------------
# Distribution fits
# ----------------------------------------------------------------------
def gumbel_mu(scores: np.ndarray, lam: float = BIT_LAMBDA) -> float:
    """Maximum likelihood Gumbel location for a known <lam>."""
    n = len(scores)
    return float(-(logsumexp(-lam * scores) - math.log(n)) / lam)


def exponential_tau(scores: np.ndarray, tailp: float, lam: float = BIT_LAMBDA) -> float:
    """Location of an exponential tail fit to the top <tailp> fraction of <scores>."""
    n = max(1, int(round(tailp * len(scores))))
    tail = np.sort(scores)[-n:]
    return float(tail.min() + math.log(tailp) / lam)


def calibrate(hmm: Plan7Model, bg: Background, rng: np.random.Generator,
              EvL: int = 100, EvN: int = 200, EfL: int = 100, EfN: int = 200,
              Eft: float = 0.04, bp_extrapolation: float = 0.0,
              want_profile: bool = False, want_oprofile: bool = False) -> CalibrationResult:
    """
    Determine E-value parameters for <hmm> and attach them to it.

    When <bp_extrapolation> is positive the location parameters are
    shifted from the simulated lengths to that target length.

    Returns:
        CalibrationResult holding the parameters and, only if asked
        for, the configured profile and its optimized form.
    """
    if not hmm.parameterized:
        raise ConfigurationError("cannot calibrate a model that holds counts")
    if min(EvL, EvN, EfL, EfN) < 1 or not (0.0 < Eft < 1.0):
        raise ConfigurationError(f"bad calibration settings EvL={EvL} EvN={EvN} EfL={EfL} EfN={EfN} Eft={Eft}")

    gm = Profile(hmm, bg, L=EvL)
    lam = BIT_LAMBDA

    X = bg.sample(rng, EvN, EvL)
    nullsc = bg.null_score(EvL)
    msv = (msv_scores(gm, X) - nullsc) / lam
    vit = (viterbi_scores(gm, X) - nullsc) / lam

    gm.reconfig_length(EfL)
    X = bg.sample(rng, EfN, EfL)
    fwd = (forward_scores(gm, X) - bg.null_score(EfL)) / lam

    if not (np.all(np.isfinite(msv)) and np.all(np.isfinite(vit)) and np.all(np.isfinite(fwd))):
        raise EstimationError("non-finite scores during calibration")

    evparam = np.empty(len(EvParam))
    evparam[EvParam.MMU] = gumbel_mu(msv, lam)
    evparam[EvParam.MLAMBDA] = lam
    evparam[EvParam.VMU] = gumbel_mu(vit, lam)
    evparam[EvParam.VLAMBDA] = lam
    evparam[EvParam.FTAU] = exponential_tau(fwd, Eft, lam)
    evparam[EvParam.FLAMBDA] = lam

    if bp_extrapolation > 0:
        evparam[EvParam.MMU] += math.log(bp_extrapolation / EvL) / lam
        evparam[EvParam.VMU] += math.log(bp_extrapolation / EvL) / lam
        evparam[EvParam.FTAU] += math.log(bp_extrapolation / EfL) / lam

    hmm.evparam = evparam.copy()
    hmm.flags |= ModelFlags.STATS
    logger.debug(
        f"calibrated {hmm.name}: mmu={evparam[EvParam.MMU]:.3f} "
        f"vmu={evparam[EvParam.VMU]:.3f} ftau={evparam[EvParam.FTAU]:.3f}"
    )

    result = CalibrationResult(evparam=evparam)
    if want_profile or want_oprofile:
        gm.evparam = evparam.copy()
        if want_oprofile:
            result.om = OptimizedProfile.from_profile(gm)
        if want_profile:
            result.gm = gm
    return result
