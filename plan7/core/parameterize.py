"""
Bayesian parameter estimation: counts + prior -> probabilities.
"""

import logging

import numpy as np

from .errors import EstimationError
from .hmm import Plan7Model, TMM, TIM, TDM, TDD
from .prior import Prior

logger = logging.getLogger(__name__)


def parameter_estimation(hmm: Plan7Model, prior: Prior) -> None:
    """
    Replace <hmm>'s counts with mean posterior probabilities.

    Node 0 has no delete state and node M transitions only to the end
    state; both get their fixed boundary values.
    """
    if hmm.parameterized:
        raise EstimationError("model is already parameterized")
    if prior.em.K != hmm.abc.K:
        raise EstimationError(f"prior is for K={prior.em.K}, model alphabet has K={hmm.abc.K}")

    M = hmm.M
    t = hmm.t
    for k in range(M):
        t[k, TMM:TIM] = prior.tm.posterior_mean(t[k, TMM:TIM])
        t[k, TIM:TDM] = prior.ti.posterior_mean(t[k, TIM:TDM])
        if k > 0:
            t[k, TDM:] = prior.td.posterior_mean(t[k, TDM:])
    t[0, TDM], t[0, TDD] = 1.0, 0.0
    t[M] = 0.0
    t[M, TMM] = t[M, TIM] = t[M, TDM] = 1.0

    for k in range(1, M + 1):
        hmm.mat[k] = prior.em.posterior_mean(hmm.mat[k])
    hmm.mat[0] = 0.0
    hmm.mat[0, 0] = 1.0
    for k in range(M + 1):
        hmm.ins[k] = prior.ei.posterior_mean(hmm.ins[k])

    if not (np.all(np.isfinite(t)) and np.all(np.isfinite(hmm.mat)) and np.all(np.isfinite(hmm.ins))):
        raise EstimationError("non-finite probability after estimation")
    hmm.parameterized = True
    logger.debug(f"Parameterized {M}-node model with {prior.name} prior")
