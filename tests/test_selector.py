from __future__ import annotations

import asyncio
import random
from collections import Counter
from typing import List

import pytest

from modelpool.schemas import CandidatePool, CandidateRecord
from modelpool.selector import CandidateSelector, weighted_shuffle

from conftest import NOW, FirstPickRandom, make_pool


class StubDiscovery:
    def __init__(self, ids: List[str]):
        self.ids = ids
        self.calls = 0

    async def fetch_candidates(self) -> List[str]:
        self.calls += 1
        return list(self.ids)


def test_weighted_shuffle_returns_a_full_permutation():
    weights = {"a": 0.5, "b": 0.2, "c": 0.9, "d": 1e-6}
    ordered = weighted_shuffle(weights, random.Random(3))
    assert sorted(ordered) == sorted(weights)


def test_first_pick_frequency_tracks_priority_share(store, cfg):
    # last attempt == now, so no recency bonus: priorities equal the raw scores
    pool = make_pool([
        CandidateRecord(id="a", score=0.6, last_failure=NOW),
        CandidateRecord(id="b", score=0.3, last_failure=NOW),
        CandidateRecord(id="c", score=0.1, last_failure=NOW),
    ])
    selector = CandidateSelector(store, rng=random.Random(1234), cfg=cfg)

    draws = 20000
    firsts = Counter(selector.rank(pool, NOW)[0] for _ in range(draws))

    assert firsts["a"] / draws == pytest.approx(0.6, abs=0.015)
    assert firsts["b"] / draws == pytest.approx(0.3, abs=0.015)
    assert firsts["c"] / draws == pytest.approx(0.1, abs=0.015)


def test_seeded_selectors_agree(store, cfg):
    pool = make_pool([CandidateRecord(id=f"m{i}", score=i / 10) for i in range(8)])
    one = CandidateSelector(store, rng=random.Random(42), cfg=cfg)
    two = CandidateSelector(store, rng=random.Random(42), cfg=cfg)
    assert one.rank(pool, NOW) == two.rank(pool, NOW)


def test_roulette_wheel_picks_in_cumulative_order(store, cfg):
    pool = make_pool([CandidateRecord(id="x", score=0.9), CandidateRecord(id="y", score=0.2)])
    selector = CandidateSelector(store, rng=FirstPickRandom(), cfg=cfg)
    assert selector.rank(pool, NOW) == ["x", "y"]


def test_empty_pool_uses_static_fallback(store, cfg):
    selector = CandidateSelector(store, cfg=cfg, fallback=["f1", "f2"])
    assert selector.rank(CandidatePool(), NOW) == ["f1", "f2"]


def test_default_fallback_comes_from_catalog_defaults(store, cfg):
    selector = CandidateSelector(store, cfg=cfg)
    fallback = selector.rank(CandidatePool(), NOW)
    assert fallback[0] == "Qwen/Qwen2.5-7B-Instruct"
    assert len(fallback) == 5


def test_ordered_candidates_refreshes_stale_pool_first(store, cfg):
    discovery = StubDiscovery(["Qwen/A-Instruct", "Qwen/B-Instruct"])
    selector = CandidateSelector(store, discovery, rng=random.Random(5), clock=lambda: NOW, cfg=cfg)

    ordered = asyncio.run(selector.ordered_candidates())

    assert discovery.calls == 1
    assert sorted(ordered) == ["Qwen/A-Instruct", "Qwen/B-Instruct"]
    assert store.load().last_fetch == NOW


def test_ordered_candidates_skips_discovery_for_fresh_pool(store, cfg):
    store.save(make_pool([CandidateRecord(id="only")], last_fetch=NOW - 60))
    discovery = StubDiscovery(["other"])
    selector = CandidateSelector(store, discovery, clock=lambda: NOW, cfg=cfg)

    assert asyncio.run(selector.ordered_candidates()) == ["only"]
    assert discovery.calls == 0
