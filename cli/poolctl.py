from __future__ import annotations

import argparse
import asyncio
import json
import random
import sys
import time
from typing import Any, Dict, List, Optional

from modelpool.candidate_store import CandidateStore, build_store
from modelpool.discovery import HubDiscovery, refresh_if_stale
from modelpool.eviction import cleanup_poor_performers
from modelpool.logging_setup import setup_json_logging
from modelpool.selector import CandidateSelector
from modelpool.settings import Settings, settings
from modelpool.stats import pool_stats

STORE_BACKENDS = ("file", "sql", "memory")


class CLIError(RuntimeError):
    pass


def _pretty_json(data: Any) -> str:
    try:
        return json.dumps(data, indent=2, sort_keys=True)
    except (TypeError, ValueError):
        return str(data)


def _resolve_settings(args: argparse.Namespace) -> Settings:
    overrides: Dict[str, Any] = {}
    if getattr(args, "backend", None):
        backend = str(args.backend).lower()
        if backend not in STORE_BACKENDS:
            raise CLIError(f"Unsupported backend '{args.backend}'. Choose from {', '.join(STORE_BACKENDS)}.")
        overrides["store_backend"] = backend
    if getattr(args, "store_path", None):
        overrides["store_path"] = str(args.store_path)
    if getattr(args, "database_url", None):
        overrides["database_url"] = str(args.database_url)
    if getattr(args, "config", None):
        overrides["candidate_config_path"] = str(args.config)
    return settings.model_copy(update=overrides) if overrides else settings


def _open(args: argparse.Namespace) -> tuple[Settings, CandidateStore]:
    cfg = _resolve_settings(args)
    return cfg, build_store(cfg)


def cmd_stats(args: argparse.Namespace) -> Dict[str, Any]:
    if args.top < 0:
        raise CLIError("--top must be zero or positive.")
    cfg, store = _open(args)
    return pool_stats(store.load(), time.time(), top=args.top, cfg=cfg)


def cmd_order(args: argparse.Namespace) -> Dict[str, Any]:
    cfg, store = _open(args)
    discovery = HubDiscovery(cfg) if args.refresh else None
    rng = random.Random(args.seed) if args.seed is not None else None
    selector = CandidateSelector(store, discovery, rng=rng, cfg=cfg)
    ordered: List[str] = asyncio.run(selector.ordered_candidates())
    return {"candidates": ordered}


def cmd_refresh(args: argparse.Namespace) -> Dict[str, Any]:
    cfg, store = _open(args)
    before = store.load()
    pool = asyncio.run(refresh_if_stale(store, HubDiscovery(cfg), force=args.force, cfg=cfg))
    refreshed = pool.last_fetch != before.last_fetch
    if args.force and not refreshed:
        raise CLIError("Discovery returned no candidates; pool left unchanged.")
    return {"refreshed": refreshed, "total_candidates": len(pool.candidates), "candidates": pool.ids()}


def cmd_cleanup(args: argparse.Namespace) -> Dict[str, Any]:
    cfg, store = _open(args)
    removed = cleanup_poor_performers(store, cfg=cfg)
    return {"removed": removed, "remaining": len(store.load().candidates)}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="poolctl", description="Inspect and maintain the candidate pool.")
    parser.add_argument("--backend", help=f"Store backend ({', '.join(STORE_BACKENDS)}; env POOL_STORE_BACKEND).")
    parser.add_argument("--store-path", help="JSON store path (env POOL_STORE_PATH).")
    parser.add_argument("--database-url", help="SQLAlchemy URL for the sql backend (env POOL_DATABASE_URL).")
    parser.add_argument("--config", help="Candidate catalog YAML (env CANDIDATE_CONFIG_PATH).")
    parser.add_argument("--log-level", default="WARNING", help="Log level for JSON logs on stderr.")

    sub = parser.add_subparsers(dest="command", required=True)

    stats = sub.add_parser("stats", help="Show pool freshness and top candidates.")
    stats.add_argument("--top", type=int, default=5, help="How many candidates to list (0 = all).")
    stats.set_defaults(func=cmd_stats)

    order = sub.add_parser("order", help="Print one weighted-random fallback ordering.")
    order.add_argument("--refresh", action="store_true", help="Run discovery first if the pool is stale.")
    order.add_argument("--seed", type=int, help="Seed the random source for a reproducible ordering.")
    order.set_defaults(func=cmd_order)

    refresh = sub.add_parser("refresh", help="Refresh the pool from the catalog when stale.")
    refresh.add_argument("--force", action="store_true", help="Refresh even if the pool is fresh.")
    refresh.set_defaults(func=cmd_refresh)

    cleanup = sub.add_parser("cleanup", help="Remove candidates that never succeeded and scored low.")
    cleanup.set_defaults(func=cmd_cleanup)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_json_logging(args.log_level, stream=sys.stderr)
    try:
        print(_pretty_json(args.func(args)))
        return 0
    except CLIError as err:
        print(f"Error: {err}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nAborted by user.", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
