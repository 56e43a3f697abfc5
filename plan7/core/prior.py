"""
Dirichlet mixture priors for Plan7 parameter estimation.
"""

import logging
from typing import Sequence

import numpy as np
from scipy.special import gammaln

from .alphabet import Alphabet, AlphabetType
from .background import AMINO_FREQUENCIES

logger = logging.getLogger(__name__)


class DirichletMixture:
    """
    Mixture of Dirichlet densities.

    Attributes:
        q: mixture coefficients, shape (N,)
        alpha: Dirichlet parameters, shape (N, K)
    """

    def __init__(self, q: Sequence[float], alpha):
        self.q = np.asarray(q, dtype=float)
        self.alpha = np.atleast_2d(np.asarray(alpha, dtype=float))
        if self.alpha.shape[0] != self.q.shape[0]:
            raise ValueError("Need one mixture coefficient per component")
        if np.any(self.alpha <= 0):
            raise ValueError("Dirichlet parameters must be positive")
        self.q = self.q / self.q.sum()

    @property
    def K(self) -> int:
        return self.alpha.shape[1]

    def _log_component_posteriors(self, c: np.ndarray) -> np.ndarray:
        # log P(j | c) up to a constant: log q_j + log B(c + a_j) - log B(a_j)
        a = self.alpha
        ca = c[None, :] + a
        logp = (np.log(self.q)
                + gammaln(a.sum(axis=1)) - gammaln(a).sum(axis=1)
                + gammaln(ca).sum(axis=1) - gammaln(ca.sum(axis=1)))
        return logp - np.logaddexp.reduce(logp)

    def posterior_mean(self, counts) -> np.ndarray:
        """Mean posterior probability vector given observed <counts>."""
        c = np.asarray(counts, dtype=float)
        if c.shape != (self.K,):
            raise ValueError(f"Expected {self.K} counts, got shape {c.shape}")
        post = np.exp(self._log_component_posteriors(c))
        means = (c[None, :] + self.alpha) / (c.sum() + self.alpha.sum(axis=1))[:, None]
        p = post @ means
        return p / p.sum()


class Prior:
    """
    Priors for each parameter family of a Plan7 node.

    Attributes:
        tm: match transitions (MM, MI, MD)
        ti: insert transitions (IM, II)
        td: delete transitions (DM, DD)
        em: match emissions
        ei: insert emissions
    """

    def __init__(self, tm: DirichletMixture, ti: DirichletMixture, td: DirichletMixture,
                 em: DirichletMixture, ei: DirichletMixture, name: str = "custom"):
        self.tm = tm
        self.ti = ti
        self.td = td
        self.em = em
        self.ei = ei
        self.name = name

    def __repr__(self) -> str:
        return f"Prior({self.name}, K={self.em.K}, {len(self.em.q)} emission components)"


def create_amino_prior() -> Prior:
    """
    Protein prior.

    Match emissions use a three-component mixture centred on the
    background composition at different concentrations, covering
    conserved through variable columns.
    """
    f = AMINO_FREQUENCIES / AMINO_FREQUENCIES.sum()
    em = DirichletMixture([0.35, 0.45, 0.20], [f * 0.8, f * 5.0, f * 40.0])
    ei = DirichletMixture([1.0], [f * 20.0])
    tm = DirichletMixture([1.0], [[0.7939, 0.0278, 0.0135]])
    ti = DirichletMixture([1.0], [[0.1551, 0.1331]])
    td = DirichletMixture([1.0], [[0.9002, 0.5630]])
    return Prior(tm, ti, td, em, ei, name="amino")


def create_nucleic_prior() -> Prior:
    """Nucleotide prior; uniform-centred emission mixture."""
    f = np.full(4, 0.25)
    em = DirichletMixture([0.5, 0.5], [f * 0.6, f * 6.0])
    ei = DirichletMixture([1.0], [f * 8.0])
    tm = DirichletMixture([1.0], [[2.0, 0.1, 0.1]])
    ti = DirichletMixture([1.0], [[0.2, 0.2]])
    td = DirichletMixture([1.0], [[0.9, 0.6]])
    return Prior(tm, ti, td, em, ei, name="nucleic")


def create_laplace_prior(abc: Alphabet) -> Prior:
    """+1 pseudocounts everywhere, for any alphabet size."""
    ones = np.ones(abc.K)
    return Prior(
        tm=DirichletMixture([1.0], [np.ones(3)]),
        ti=DirichletMixture([1.0], [np.ones(2)]),
        td=DirichletMixture([1.0], [np.ones(2)]),
        em=DirichletMixture([1.0], [ones]),
        ei=DirichletMixture([1.0], [ones]),
        name="laplace",
    )


def create_prior(abc: Alphabet) -> Prior:
    """Pick the prior that suits <abc>'s alphabet class."""
    if abc.type == AlphabetType.AMINO:
        prior = create_amino_prior()
    elif abc.is_nucleic:
        prior = create_nucleic_prior()
    else:
        prior = create_laplace_prior(abc)
    logger.debug(f"Selected {prior.name} prior for {abc.type.value} alphabet")
    return prior
