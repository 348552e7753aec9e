from __future__ import annotations
import time
from typing import List, Optional

from .candidate_store import CandidateStore
from .logging_setup import get_logger
from .metrics import candidate_evictions_total
from .schemas import CandidatePool
from .scoring import performance_score
from .settings import Settings, settings

log = get_logger("eviction")


def select_poor_performers(pool: CandidatePool, now: float, cfg: Settings = settings) -> List[str]:
    # one historical success protects a candidate from this sweep
    return [
        rec.id for rec in pool.candidates
        if rec.success_count == 0 and performance_score(rec, now, cfg) <= cfg.low_score_threshold
    ]


def cleanup_poor_performers(store: CandidateStore, *, now: Optional[float] = None, cfg: Settings = settings) -> List[str]:
    ts = time.time() if now is None else now
    with store.locked():
        pool = store.load()
        doomed = select_poor_performers(pool, ts, cfg)
        if not doomed:
            return []
        for cid in doomed:
            pool.remove(cid)
            log.info("eviction.removed", {"candidate_id": cid})
        store.save(pool)
    candidate_evictions_total.labels(kind="poor_performance").inc(len(doomed))
    log.info("eviction.cleanup", {"removed": len(doomed), "remaining": len(pool.candidates)})
    return doomed
