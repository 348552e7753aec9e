from __future__ import annotations
import datetime
from typing import Any, Dict, List

from .discovery import is_stale
from .schemas import CandidatePool
from .scoring import last_attempt, performance_score, priority_score, recency_bonus
from .settings import DAY_SEC, Settings, settings


def _iso(ts: float) -> str | None:
    if not ts:
        return None
    return datetime.datetime.fromtimestamp(ts, tz=datetime.timezone.utc).isoformat().replace("+00:00", "Z")


def candidate_stats(pool: CandidatePool, now: float, cfg: Settings = settings) -> List[Dict[str, Any]]:
    rows: List[Dict[str, Any]] = []
    for rec in pool.candidates:
        la = last_attempt(rec)
        rows.append({
            "id": rec.id,
            "base_score": round(rec.score, 4),
            "performance_score": round(performance_score(rec, now, cfg), 4),
            "recency_bonus": round(recency_bonus(la, now, cfg), 4),
            "priority_score": round(priority_score(rec, now, cfg), 4),
            "success_count": rec.success_count,
            "failure_count": rec.failure_count,
            "consecutive_failures": rec.consecutive_failures,
            "days_since_last_attempt": int((now - la) // DAY_SEC) if la else None,
        })
    rows.sort(key=lambda r: r["priority_score"], reverse=True)
    return rows


def pool_stats(pool: CandidatePool, now: float, *, top: int = 5, cfg: Settings = settings) -> Dict[str, Any]:
    """Snapshot for dashboards: pool size, freshness and the highest-priority candidates."""
    rows = candidate_stats(pool, now, cfg)
    return {
        "total_candidates": len(pool.candidates),
        "last_fetch": _iso(pool.last_fetch),
        "cache_age_sec": round(now - pool.last_fetch, 3) if pool.last_fetch else None,
        "is_stale": is_stale(pool, now, cfg),
        "top_candidates": rows[:top] if top > 0 else rows,
    }
