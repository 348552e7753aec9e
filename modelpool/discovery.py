"""
Candidate discovery against a public model catalog.

The catalog is queried with a short timeout and filtered down to
instruction-tuned models from an allow-list of providers. Any failure
degrades to an empty list: the caller keeps its current pool, or falls
back to the static candidate list when the pool is empty.
"""
from __future__ import annotations
import asyncio, time
from typing import Any, Dict, Iterable, List, Optional

import httpx

from .candidate_config import get_candidate_config
from .candidate_store import CandidateStore
from .eviction import cleanup_poor_performers
from .logging_setup import get_logger
from .metrics import discovery_refresh_total
from .schemas import CandidatePool, CandidateRecord
from .settings import Settings, settings

log = get_logger("discovery")


def _provider(model_id: str) -> str:
    return model_id.split("/", 1)[0] if "/" in model_id else ""


def filter_candidate_ids(raw_ids: Iterable[str], catalog: Dict[str, Any]) -> List[str]:
    keyword = str(catalog.get("required_keyword") or "")
    allowed = {str(p) for p in (catalog.get("allowed_providers") or [])}
    limit = int(catalog.get("max_candidates") or 0)
    out: List[str] = []
    for mid in raw_ids:
        if keyword and keyword not in mid:
            continue
        if allowed and _provider(mid) not in allowed:
            continue
        if mid in out:
            continue
        out.append(mid)
    return out[:limit] if limit > 0 else out


class HubDiscovery:
    """Fetches candidate ids from the catalog; never raises."""

    def __init__(
        self,
        cfg: Settings = settings,
        *,
        catalog: Optional[Dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.cfg = cfg
        self._catalog = catalog
        self._transport = transport

    @property
    def catalog(self) -> Dict[str, Any]:
        return self._catalog if self._catalog is not None else get_candidate_config(self.cfg.candidate_config_path)

    async def fetch_candidates(self) -> List[str]:
        try:
            catalog = self.catalog
            params = dict(catalog.get("query") or {})
        except Exception:
            log.exception("discovery.catalog_error")
            return []
        try:
            async with httpx.AsyncClient(timeout=self.cfg.discovery_timeout_sec, transport=self._transport) as cx:
                r = await cx.get(self.cfg.discovery_url, params=params)
                r.raise_for_status()
                data = r.json()
        except httpx.TimeoutException:
            log.warning("discovery.timeout", {"url": self.cfg.discovery_url, "timeout": self.cfg.discovery_timeout_sec})
            return []
        except httpx.HTTPStatusError as exc:
            log.warning("discovery.http_error", {"status": exc.response.status_code})
            return []
        except httpx.HTTPError as exc:
            log.warning("discovery.request_error", {"err": str(exc)})
            return []
        except ValueError as exc:
            log.warning("discovery.bad_payload", {"err": str(exc)})
            return []
        except Exception:
            log.exception("discovery.unexpected_error")
            return []

        if not isinstance(data, list):
            log.warning("discovery.bad_payload", {"err": f"expected a list, got {type(data).__name__}"})
            return []
        raw: List[str] = []
        for m in data:
            if not isinstance(m, dict):
                continue
            mid = m.get("id") or m.get("modelId")
            if mid:
                raw.append(str(mid))
        try:
            ids = filter_candidate_ids(raw, catalog)
        except (TypeError, ValueError) as exc:
            log.warning("discovery.catalog_error", {"err": str(exc)})
            return []
        log.info("discovery.fetched", {"fetched": len(raw), "kept": len(ids), "filtered_out": len(raw) - len(ids)})
        return ids


def is_stale(pool: CandidatePool, now: float, cfg: Settings = settings) -> bool:
    return not pool.candidates or (now - pool.last_fetch) > cfg.cache_duration_sec


def merge_fresh_candidates(pool: CandidatePool, candidate_ids: Iterable[str], now: float, cfg: Settings = settings) -> CandidatePool:
    """
    Replace the pool's membership with the fresh id list.

    Existing records are kept verbatim, new ids get a neutral record, and
    ids missing from the fresh list are dropped. Mutates and returns `pool`.
    """
    existing = {rec.id: rec for rec in pool.candidates}
    merged: List[CandidateRecord] = []
    seen = set()
    for cid in candidate_ids:
        if cid in seen:
            continue
        seen.add(cid)
        rec = existing.get(cid)
        if rec is None:
            rec = CandidateRecord(id=cid, score=cfg.neutral_score)
        merged.append(rec)
    pool.candidates = merged
    pool.last_fetch = now
    return pool


async def refresh_if_stale(
    store: CandidateStore,
    discovery: HubDiscovery,
    *,
    now: Optional[float] = None,
    force: bool = False,
    cfg: Settings = settings,
) -> CandidatePool:
    ts = time.time() if now is None else now
    pool = store.load()
    if not force and not is_stale(pool, ts, cfg):
        return pool

    log.info("discovery.refresh_start", {"cached": len(pool.candidates), "last_fetch": pool.last_fetch})
    fresh = await discovery.fetch_candidates()
    if not fresh:
        discovery_refresh_total.labels(result="empty").inc()
        log.warning("discovery.refresh_empty", {"cached": len(pool.candidates)})
        return pool

    # backend writes block (fsync, SQL round trip)
    pool = await asyncio.to_thread(store.mutate, lambda p: merge_fresh_candidates(p, fresh, ts, cfg))
    discovery_refresh_total.labels(result="ok").inc()
    log.info("discovery.refreshed", {"candidates": len(pool.candidates)})
    await asyncio.to_thread(cleanup_poor_performers, store, now=ts, cfg=cfg)
    return store.load()
