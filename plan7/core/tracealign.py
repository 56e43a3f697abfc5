"""
Reconstruct an alignment from traces through a model.
"""

import logging
from typing import List

import numpy as np

from .errors import ConfigurationError
from .msa import Alignment
from .trace import Trace, TraceState

logger = logging.getLogger(__name__)


def trace_alignment(premsa: Alignment, traces: List[Trace], M: int) -> Alignment:
    """
    Build the alignment implied by <traces>.

    Match and delete states fill one column per node (uppercase residue
    or '-'). Inserted residues, including N/C flanks, are lowercase and
    left-justified in insert columns padded with '.'. The RF line marks
    match columns with 'x'.
    """
    if traces is None or len(traces) != premsa.nseq:
        raise ConfigurationError("need one trace per aligned sequence")

    seqs = [premsa.unaligned(idx) for idx in range(premsa.nseq)]

    # insert runs per node; N flank goes before node 1, C flank after node M
    inserts = np.zeros((premsa.nseq, M + 1), dtype=int)
    for idx, tr in enumerate(traces):
        for st, k, i in tr.steps():
            if i == 0:
                continue
            if st == TraceState.N:
                inserts[idx, 0] += 1
            elif st == TraceState.I:
                inserts[idx, k] += 1
            elif st == TraceState.C:
                inserts[idx, M] += 1
    maxins = inserts.max(axis=0) if premsa.nseq else np.zeros(M + 1, dtype=int)

    rows = []
    for idx, tr in enumerate(traces):
        segments = [[] for _ in range(M + 1)]
        matches = ["-"] * (M + 1)
        for st, k, i in tr.steps():
            if st == TraceState.M:
                matches[k] = seqs[idx][i - 1].upper()
            elif st == TraceState.D:
                matches[k] = "-"
            elif i > 0 and st == TraceState.N:
                segments[0].append(seqs[idx][i - 1].lower())
            elif i > 0 and st == TraceState.I:
                segments[k].append(seqs[idx][i - 1].lower())
            elif i > 0 and st == TraceState.C:
                segments[M].append(seqs[idx][i - 1].lower())

        row = []
        for k in range(M + 1):
            if k > 0:
                row.append(matches[k])
            row.append("".join(segments[k]).ljust(int(maxins[k]), "."))
        rows.append("".join(row))

    rf = []
    for k in range(M + 1):
        if k > 0:
            rf.append("x")
        rf.append("." * int(maxins[k]))

    postmsa = Alignment(
        names=list(premsa.names),
        aseqs=rows,
        abc=premsa.abc,
        weights=premsa.weights.copy(),
        name=premsa.name,
        acc=premsa.acc,
        desc=premsa.desc,
        rf="".join(rf),
        cutoffs=dict(premsa.cutoffs),
    )
    logger.debug(f"reconstructed alignment: {postmsa.nseq} seqs x {postmsa.alen} columns")
    return postmsa
