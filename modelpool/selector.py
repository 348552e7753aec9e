from __future__ import annotations
import logging, random, time
from typing import Callable, Dict, List, Mapping, Optional

from .candidate_config import fallback_candidates
from .candidate_store import CandidateStore
from .discovery import HubDiscovery, is_stale, refresh_if_stale
from .logging_setup import get_logger
from .schemas import CandidatePool
from .scoring import performance_score, priority_score, recency_bonus, last_attempt
from .settings import Settings, settings

log = get_logger("selector")


def weighted_shuffle(weights: Mapping[str, float], rng: random.Random) -> List[str]:
    """
    Weighted sampling without replacement (roulette wheel).

    Each round draws u in [0, sum of remaining weights) and picks the first
    candidate whose cumulative weight exceeds u. Heavier candidates tend to
    come first, but every candidate with a positive weight can lead.
    """
    remaining = [(k, float(w)) for k, w in weights.items()]
    out: List[str] = []
    while remaining:
        total = sum(w for _, w in remaining)
        u = rng.random() * total
        pick = len(remaining) - 1  # float round-off lands on the last one
        acc = 0.0
        for i, (_, w) in enumerate(remaining):
            acc += w
            if acc > u:
                pick = i
                break
        out.append(remaining.pop(pick)[0])
    return out


class CandidateSelector:
    def __init__(
        self,
        store: CandidateStore,
        discovery: Optional[HubDiscovery] = None,
        *,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
        cfg: Settings = settings,
        fallback: Optional[List[str]] = None,
    ):
        self.store = store
        self.discovery = discovery
        self.rng = rng or random.Random()
        self.clock = clock
        self.cfg = cfg
        self._fallback = fallback

    def fallback(self) -> List[str]:
        if self._fallback is not None:
            return list(self._fallback)
        return fallback_candidates(self.cfg.candidate_config_path)

    def priorities(self, pool: CandidatePool, now: float) -> Dict[str, float]:
        return {rec.id: priority_score(rec, now, self.cfg) for rec in pool.candidates}

    def rank(self, pool: CandidatePool, now: float) -> List[str]:
        if not pool.candidates:
            fb = self.fallback()
            log.warning("selector.fallback", {"candidates": len(fb)})
            return fb
        ordered = weighted_shuffle(self.priorities(pool, now), self.rng)
        if log.isEnabledFor(logging.DEBUG):
            by_id = {rec.id: rec for rec in pool.candidates}
            for pos, cid in enumerate(ordered[:3], start=1):
                rec = by_id[cid]
                log.debug("selector.rank", {
                    "pos": pos, "candidate_id": cid,
                    "base": round(rec.score, 4),
                    "performance": round(performance_score(rec, now, self.cfg), 4),
                    "recency": round(recency_bonus(last_attempt(rec), now, self.cfg), 4),
                })
        return ordered

    async def ordered_candidates(self) -> List[str]:
        now = self.clock()
        pool = self.store.load()
        if self.discovery is not None and is_stale(pool, now, self.cfg):
            pool = await refresh_if_stale(self.store, self.discovery, now=now, cfg=self.cfg)
        ordered = self.rank(pool, now)
        log.info("selector.ordered", {"candidates": len(ordered), "top": ordered[0] if ordered else None})
        return ordered
