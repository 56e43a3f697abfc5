"""
Single-sequence model construction from a substitution score system.
"""

import numpy as np

from .alphabet import Alphabet
from .errors import ConfigurationError
from .hmm import Plan7Model, TMM, TMI, TMD, TIM, TII, TDM, TDD


def sequence_model(abc: Alphabet, dsq: np.ndarray, name: str, Q: np.ndarray,
                   f: np.ndarray, popen: float, pextend: float) -> Plan7Model:
    """
    Build a probability model with one node per residue of <dsq>.

    Match emissions of node k are row Q[x_k] (P(b | a) from the score
    system); degenerate residues get the background <f>. Inserts emit
    the background.
    """
    L = len(dsq)
    if L == 0:
        raise ConfigurationError(f"sequence {name} is empty")
    if not (0.0 <= popen < 0.5) or not (0.0 <= pextend < 1.0):
        raise ConfigurationError(f"gap probabilities out of range: popen={popen} pextend={pextend}")

    hmm = Plan7Model(abc, L)
    for k, x in enumerate(dsq, start=1):
        hmm.mat[k] = Q[x] if x >= 0 else f
        hmm.ins[k] = f
    hmm.mat[0, 0] = 1.0
    hmm.ins[0] = f

    t = hmm.t
    t[:, TMM] = 1.0 - 2.0 * popen
    t[:, TMI] = popen
    t[:, TMD] = popen
    t[:, TIM] = 1.0 - pextend
    t[:, TII] = pextend
    t[:, TDM] = 1.0 - pextend
    t[:, TDD] = pextend
    t[0, TDM], t[0, TDD] = 1.0, 0.0
    t[L] = 0.0
    t[L, TMM] = t[L, TIM] = t[L, TDM] = 1.0

    hmm.name = name
    hmm.nseq = 1
    hmm.eff_nseq = 1.0
    hmm.count_nseq = 1.0
    hmm.parameterized = True
    hmm.set_ctime()
    hmm.set_composition()
    return hmm
