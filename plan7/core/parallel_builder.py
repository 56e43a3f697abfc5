"""
Parallel batch model construction.

Each worker process owns its own Builder; builders are never shared.
With a nonzero seed the generator is reseeded before every calibration,
so results do not depend on which worker built which model.
"""

import logging
import multiprocessing as mp
import time
from multiprocessing import Pool
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from plan7.config import Plan7Config

from .alphabet import Alphabet
from .background import Background
from .builder import Builder
from .errors import BuildError
from .hmm import Plan7Model
from .msa import Alignment

logger = logging.getLogger(__name__)


def configure_worker_logging():
    """Configure minimal logging for worker processes to prevent console spam."""
    logging.getLogger().setLevel(logging.WARNING)
    logging.getLogger("plan7.core").setLevel(logging.WARNING)
    logging.getLogger("plan7.utils").setLevel(logging.WARNING)


def _build_worker(task: Dict[str, Any]) -> Tuple[int, Optional[Plan7Model], Optional[str]]:
    """Build one model; failures come back as messages rather than exceptions."""
    config = Plan7Config.from_dict(task["config"])
    abc = task["abc"]
    msa = task["msa"]
    bg = Background(abc)
    with Builder(abc, config) as bld:
        try:
            result = bld.build(msa, bg)
        except BuildError as e:
            return task["index"], None, bld.errbuf or str(e)
    return task["index"], result.hmm, None


def default_worker_count() -> int:
    """Use 80% of available CPUs, minimum 1, maximum 32."""
    return min(32, max(1, int(mp.cpu_count() * 0.8)))


def build_many(alignments: List[Alignment], abc: Alphabet,
               config: Optional[Plan7Config] = None,
               n_workers: Optional[int] = None) -> List[Tuple[Optional[Plan7Model], Optional[str]]]:
    """
    Build one model per alignment.

    Args:
        alignments: input alignments, all in <abc>
        abc: alphabet shared by every alignment
        config: build configuration (defaults if None)
        n_workers: worker processes; None = auto-detect, 1 = build in-process

    Returns:
        (model, error message) per input, in input order; exactly one of
        the pair is None
    """
    config = config or Plan7Config()
    n_workers = default_worker_count() if n_workers is None else max(1, n_workers)
    n_workers = min(n_workers, max(1, len(alignments)))

    # Convert config to dict for serialization to worker processes
    serialized_config = config._to_dict()
    tasks = [
        {"index": i, "msa": msa, "abc": abc, "config": serialized_config}
        for i, msa in enumerate(alignments)
    ]

    start_time = time.time()
    logger.info(f"Building {len(tasks)} models using {n_workers} worker(s)")
    if n_workers == 1:
        outcomes = [_build_worker(task) for task in tasks]
    else:
        with Pool(processes=n_workers, initializer=configure_worker_logging) as pool:
            outcomes = pool.map(_build_worker, tasks)

    outcomes.sort(key=lambda o: o[0])
    results = [(hmm, err) for _, hmm, err in outcomes]

    n_failed = sum(1 for _, err in results if err is not None)
    elapsed = time.time() - start_time
    logger.info(f"Built {len(results) - n_failed}/{len(results)} models in {elapsed:.2f}s")
    for (hmm, err), msa in zip(results, alignments):
        if err is not None:
            logger.warning(f"{msa.name or '(unnamed)'}: {err}")
    return results


def summarize(results: List[Tuple[Optional[Plan7Model], Optional[str]]],
              alignments: List[Alignment]) -> pd.DataFrame:
    """One row per input alignment: model size and weighting, or the failure."""
    rows = []
    for (hmm, err), msa in zip(results, alignments):
        rows.append({
            "alignment": msa.name,
            "nseq": msa.nseq,
            "alen": msa.alen,
            "M": hmm.M if hmm is not None else None,
            "eff_nseq": round(hmm.eff_nseq, 3) if hmm is not None else None,
            "status": "ok" if err is None else "failed",
            "error": err,
        })
    return pd.DataFrame(rows)
