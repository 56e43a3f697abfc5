"""
Relative sequence weighting.

Each algorithm down-weights redundant sequences and writes the result
into the alignment's weight vector in one assignment. Weight vectors
are normalized to sum to the number of sequences.
"""

import logging

import numpy as np
from scipy.cluster.hierarchy import fcluster, linkage, to_tree
from scipy.spatial.distance import squareform

from .alphabet import GAP_CODE
from .errors import EstimationError
from .msa import Alignment

logger = logging.getLogger(__name__)


def pairwise_identity(msa: Alignment) -> np.ndarray:
    """
    Fractional pairwise identity matrix.

    Identity is the number of identical aligned canonical residues
    divided by the length of the shorter of the two sequences.
    """
    X = msa.digitize()
    n = msa.nseq
    lens = (X >= 0).sum(axis=1)
    pid = np.zeros((n, n))
    for i in range(n):
        idents = ((X[i] == X) & (X[i] >= 0)).sum(axis=1)
        denom = np.minimum(lens[i], lens)
        with np.errstate(divide="ignore", invalid="ignore"):
            pid[i] = np.where(denom > 0, idents / np.maximum(denom, 1), 0.0)
    return pid


def _normalize(w: np.ndarray, n: int) -> np.ndarray:
    total = w.sum()
    if total <= 0 or not np.isfinite(total):
        return np.ones(n)
    return w * (n / total)


def _distance_linkage(msa: Alignment, method: str) -> np.ndarray:
    dist = 1.0 - pairwise_identity(msa)
    np.fill_diagonal(dist, 0.0)
    dist = np.clip((dist + dist.T) / 2.0, 0.0, 1.0)
    return linkage(squareform(dist, checks=False), method=method)


def _check(msa: Alignment) -> None:
    if msa.nseq == 0 or msa.alen == 0:
        raise EstimationError("alignment is empty")


def weight_position_based(msa: Alignment) -> None:
    """Henikoff & Henikoff position-based weights."""
    _check(msa)
    X = msa.digitize()
    n, K = msa.nseq, msa.abc.K
    w = np.zeros(n)
    for col in X.T:
        canon = col >= 0
        if not canon.any():
            continue
        counts = np.bincount(col[canon], minlength=K)
        ntypes = np.count_nonzero(counts)
        w[canon] += 1.0 / (ntypes * counts[col[canon]])

    rlen = (X != GAP_CODE).sum(axis=1)
    w = np.where(rlen > 0, w / np.maximum(rlen, 1), 0.0)
    msa.weights = _normalize(w, n)
    logger.debug(f"PB weights: min={msa.weights.min():.3f} max={msa.weights.max():.3f}")


def weight_gsc(msa: Alignment) -> None:
    """
    Gerstein/Sonnhammer/Chothia tree weights.

    Builds a UPGMA tree from pairwise distances and distributes each
    branch length over the leaves below it, in proportion to the
    weight those leaves have accumulated so far.
    """
    _check(msa)
    n = msa.nseq
    if n < 2:
        msa.weights = np.ones(n)
        return

    root = to_tree(_distance_linkage(msa, "average"))
    w = np.zeros(n)

    order = []
    stack = [(root, root.dist)]
    while stack:
        node, parent_height = stack.pop()
        order.append((node, parent_height))
        if not node.is_leaf():
            stack.append((node.get_left(), node.dist))
            stack.append((node.get_right(), node.dist))

    # reversed pre-order visits children before parents
    for node, parent_height in reversed(order):
        branch = parent_height - node.dist
        if node.is_leaf():
            w[node.id] += branch
            continue
        if branch <= 0:
            continue
        leaves = node.pre_order()
        total = w[leaves].sum()
        if total > 0:
            w[leaves] += branch * w[leaves] / total
        else:
            w[leaves] += branch / len(leaves)

    msa.weights = _normalize(w, n)
    logger.debug(f"GSC weights: min={msa.weights.min():.3f} max={msa.weights.max():.3f}")


def weight_blosum(msa: Alignment, maxid: float = 0.62) -> None:
    """BLOSUM-style weights: 1/cluster size, single linkage at <maxid> identity."""
    _check(msa)
    n = msa.nseq
    if n < 2:
        msa.weights = np.ones(n)
        return
    labels = fcluster(_distance_linkage(msa, "single"), t=1.0 - maxid, criterion="distance")
    sizes = np.bincount(labels)
    msa.weights = _normalize(1.0 / sizes[labels], n)
    logger.debug(f"BLOSUM weights: {len(np.unique(labels))} clusters at {maxid:.2f} identity")


def single_linkage_clusters(msa: Alignment, maxid: float) -> int:
    """Number of single-linkage clusters at fractional identity <maxid>."""
    _check(msa)
    if msa.nseq < 2:
        return msa.nseq
    labels = fcluster(_distance_linkage(msa, "single"), t=1.0 - maxid, criterion="distance")
    return int(len(np.unique(labels)))
