from __future__ import annotations
import time
from typing import Optional, Tuple

from .candidate_store import CandidateStore
from .logging_setup import get_logger
from .metrics import candidate_evictions_total
from .schemas import CandidatePool, CandidateRecord
from .settings import DAY_SEC, Settings, settings

log = get_logger("scoring")


def _clamp(v: float) -> float:
    return min(1.0, max(0.0, v))


def performance_score(record: CandidateRecord, now: float, cfg: Settings = settings) -> float:
    """Raw score, decayed once when the last success is older than the cache window."""
    score = record.score
    if record.last_success is not None and now - record.last_success > cfg.cache_duration_sec:
        score *= cfg.score_decay
    return _clamp(score)


def last_attempt(record: CandidateRecord) -> Optional[float]:
    stamps = [t for t in (record.last_success, record.last_failure) if t is not None]
    return max(stamps) if stamps else None


def recency_bonus(last_attempt_ts: Optional[float], now: float, cfg: Settings = settings) -> float:
    if not last_attempt_ts:
        return cfg.max_recency_bonus
    days = max(0.0, (now - last_attempt_ts) / DAY_SEC)
    return min(cfg.max_recency_bonus, days * cfg.recency_slope)


def priority_score(record: CandidateRecord, now: float, cfg: Settings = settings) -> float:
    total = performance_score(record, now, cfg) + recency_bonus(last_attempt(record), now, cfg)
    return max(cfg.priority_floor, total)


# ---- outcome mutators ----

def apply_success(pool: CandidatePool, candidate_id: str, now: float, cfg: Settings = settings) -> Optional[CandidateRecord]:
    rec = pool.get(candidate_id)
    if rec is None:
        return None
    rec.success_count += 1
    rec.last_success = now
    rec.consecutive_failures = 0
    rec.score = _clamp(rec.score + cfg.success_delta)
    return rec


def apply_failure(pool: CandidatePool, candidate_id: str, now: float, cfg: Settings = settings) -> Tuple[Optional[CandidateRecord], bool]:
    """Returns (record, evicted). The record is already out of the pool when evicted."""
    rec = pool.get(candidate_id)
    if rec is None:
        return None, False
    rec.failure_count += 1
    rec.last_failure = now
    rec.consecutive_failures += 1
    rec.score = _clamp(rec.score - cfg.failure_delta)
    if rec.consecutive_failures >= cfg.max_failures:
        pool.remove(candidate_id)
        return rec, True
    return rec, False


def record_success(store: CandidateStore, candidate_id: str, *, now: Optional[float] = None, cfg: Settings = settings) -> Optional[CandidateRecord]:
    ts = time.time() if now is None else now
    rec = store.mutate(lambda pool: apply_success(pool, candidate_id, ts, cfg))
    if rec is None:
        log.info("scoring.success_untracked", {"candidate_id": candidate_id})
    else:
        log.info("scoring.success", {"candidate_id": candidate_id, "score": round(rec.score, 4)})
    return rec


def record_failure(store: CandidateStore, candidate_id: str, *, now: Optional[float] = None, cfg: Settings = settings) -> Optional[CandidateRecord]:
    ts = time.time() if now is None else now
    rec, evicted = store.mutate(lambda pool: apply_failure(pool, candidate_id, ts, cfg))
    if rec is None:
        log.info("scoring.failure_untracked", {"candidate_id": candidate_id})
        return None
    log.info("scoring.failure", {
        "candidate_id": candidate_id,
        "score": round(rec.score, 4),
        "consecutive_failures": rec.consecutive_failures,
    })
    if evicted:
        candidate_evictions_total.labels(kind="consecutive_failures").inc()
        log.warning("scoring.evicted", {"candidate_id": candidate_id, "consecutive_failures": rec.consecutive_failures})
    return rec
