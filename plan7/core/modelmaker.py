"""
Model architecture construction.

Decides which alignment columns are consensus (match) columns, turns
each aligned sequence into a trace through the resulting architecture,
and collects weighted observed counts into a new model.
"""

import logging
from typing import List, Optional, Tuple

import numpy as np

from .alphabet import GAP_CHARS, GAP_CODE
from .errors import FormatError, NoConsensusError
from .hmm import Plan7Model, TMM, TMI, TMD, TIM, TII, TDM, TDD
from .msa import Alignment
from .trace import Trace, TraceState

logger = logging.getLogger(__name__)


def fast_model(msa: Alignment, symfrac: float,
               want_traces: bool = False) -> Tuple[Plan7Model, Optional[List[Trace]]]:
    """
    Build a model whose match columns are those with a weighted residue
    fraction of at least <symfrac>.

    Raises:
        NoConsensusError: no column qualifies
    """
    X = msa.digitize()
    residues = X != GAP_CODE
    w = msa.weights if msa.weights.sum() > 0 else np.ones(msa.nseq)
    r = (w[:, None] * residues).sum(axis=0)
    matchcol = (r > 0) & (r / w.sum() >= symfrac)
    logger.debug(f"fast architecture: {int(matchcol.sum())}/{msa.alen} columns at symfrac={symfrac}")
    return matchcols_to_model(msa, matchcol, want_traces)


def hand_model(msa: Alignment, want_traces: bool = False) -> Tuple[Plan7Model, Optional[List[Trace]]]:
    """
    Build a model from the alignment's reference annotation: every
    non-gap RF character marks a match column.

    Raises:
        FormatError: the alignment has no RF line
        NoConsensusError: the RF line marks no column
    """
    if msa.rf is None:
        raise FormatError("alignment has no reference annotation line")
    matchcol = np.array([c not in GAP_CHARS and not c.isspace() for c in msa.rf], dtype=bool)
    return matchcols_to_model(msa, matchcol, want_traces)


def matchcols_to_model(msa: Alignment, matchcol: np.ndarray,
                       want_traces: bool = False) -> Tuple[Plan7Model, Optional[List[Trace]]]:
    M = int(np.count_nonzero(matchcol))
    if M == 0:
        raise NoConsensusError("no consensus columns")

    X = msa.digitize()
    hmm = Plan7Model(msa.abc, M)
    traces = []
    for idx in range(msa.nseq):
        tr = _trace_from_row(X[idx], matchcol, M)
        dsq = X[idx][X[idx] != GAP_CODE]
        count_trace(hmm, tr, dsq, float(msa.weights[idx]))
        traces.append(tr)

    hmm.nseq = msa.nseq
    hmm.eff_nseq = float(msa.nseq)
    hmm.count_nseq = float(msa.nseq)
    return hmm, (traces if want_traces else None)


def _trace_from_row(row: np.ndarray, matchcol: np.ndarray, M: int) -> Trace:
    cols = np.flatnonzero(matchcol)
    first, last = cols[0], cols[-1]
    tr = Trace(M=M)
    i = 0

    tr.append(TraceState.S)
    tr.append(TraceState.N)
    for c in range(first):
        if row[c] != GAP_CODE:
            i += 1
            tr.append(TraceState.N, 0, i)

    tr.append(TraceState.B)
    k = 0
    for c in range(first, last + 1):
        is_residue = row[c] != GAP_CODE
        if matchcol[c]:
            k += 1
            if is_residue:
                i += 1
                tr.append(TraceState.M, k, i)
            else:
                tr.append(TraceState.D, k, 0)
        elif is_residue:
            i += 1
            tr.append(TraceState.I, k, i)
    tr.append(TraceState.E)

    tr.append(TraceState.C)
    for c in range(last + 1, len(row)):
        if row[c] != GAP_CODE:
            i += 1
            tr.append(TraceState.C, 0, i)
    tr.append(TraceState.T)
    tr.L = i
    return tr


def _transition(prev: TraceState, prev_k: int, st: TraceState, k: int) -> Optional[int]:
    if prev in (TraceState.M, TraceState.B):
        if st == TraceState.M and k == prev_k + 1:
            return TMM
        if st == TraceState.I and k == prev_k:
            return TMI
        if st == TraceState.D and k == prev_k + 1:
            return TMD
    elif prev == TraceState.I:
        if st == TraceState.I and k == prev_k:
            return TII
        if st == TraceState.M and k == prev_k + 1:
            return TIM
    elif prev == TraceState.D:
        if st == TraceState.D and k == prev_k + 1:
            return TDD
        if st == TraceState.M and k == prev_k + 1:
            return TDM
    return None


def count_trace(hmm: Plan7Model, tr: Trace, dsq: np.ndarray, weight: float) -> None:
    """Add one trace's weighted emissions and transitions to <hmm>'s counts."""
    K = hmm.abc.K
    prev, prev_k = None, 0
    for st, k, i in tr.steps():
        if st == TraceState.B:
            prev, prev_k = TraceState.B, 0
            continue
        if prev is None or st not in (TraceState.M, TraceState.I, TraceState.D):
            if st == TraceState.E:
                prev = None
            continue

        if st in (TraceState.M, TraceState.I):
            x = dsq[i - 1]
            emit = hmm.mat[k] if st == TraceState.M else hmm.ins[k]
            if x >= 0:
                emit[x] += weight
            else:
                emit += weight / K

        tidx = _transition(prev, prev_k, st, k)
        if tidx is not None:
            hmm.t[prev_k, tidx] += weight
        else:
            # D->I and I->D have no Plan7 transition
            logger.debug(f"skipping {prev.name}{prev_k}->{st.name}{k} transition")
        prev, prev_k = st, k
