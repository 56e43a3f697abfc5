"""
Entropy weighting: find the effective sequence number whose
parameterized model reaches a target mean relative entropy per match
state.
"""

import logging

import numpy as np
from scipy.optimize import brentq

from .background import Background
from .errors import ConvergenceError
from .hmm import Plan7Model
from .prior import Prior

logger = logging.getLogger(__name__)


def relative_entropy(p: np.ndarray, f: np.ndarray) -> np.ndarray:
    """Row-wise relative entropy (bits) of distributions <p> to <f>."""
    with np.errstate(divide="ignore", invalid="ignore"):
        terms = np.where(p > 0, p * np.log2(p / f), 0.0)
    return terms.sum(axis=-1)


def mean_match_relative_entropy(hmm: Plan7Model, bg: Background) -> float:
    """Mean relative entropy (bits) of a parameterized model's match emissions."""
    return float(relative_entropy(hmm.mat[1:], bg.f).mean())


def _match_relent(counts: np.ndarray, factor: float, prior: Prior, f: np.ndarray) -> float:
    probs = np.vstack([prior.em.posterior_mean(c * factor) for c in counts])
    return float(relative_entropy(probs, f).mean())


def entropy_weight(hmm: Plan7Model, bg: Background, prior: Prior, etarget: float,
                   xtol: float = 1e-4) -> float:
    """
    Effective sequence number for a model still holding counts.

    If the model at full weight is already at or below <etarget>, the
    full sequence number is returned unchanged.

    Raises:
        ConvergenceError: the root is not bracketed or the solver fails
    """
    basis = hmm.count_nseq if hmm.count_nseq > 0 else float(hmm.nseq)
    counts = hmm.mat[1:]

    def excess(x: float) -> float:
        return _match_relent(counts, x / basis, prior, bg.f) - etarget

    if excess(basis) <= 0:
        logger.debug(f"relative entropy at full weight is already <= {etarget:.3f} bits")
        return basis

    lo = basis * 1e-6
    if excess(lo) > 0:
        raise ConvergenceError(f"prior alone exceeds target relative entropy {etarget:.3f}")
    try:
        eff_nseq = brentq(excess, lo, basis, xtol=xtol, maxiter=200)
    except (RuntimeError, ValueError) as e:
        raise ConvergenceError(f"root finding failed: {e}") from e
    logger.debug(f"entropy weighting: eff_nseq={eff_nseq:.3f} for target {etarget:.3f} bits")
    return float(eff_nseq)
