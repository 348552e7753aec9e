from __future__ import annotations

import random

import pytest

from modelpool.schemas import CandidateRecord
from modelpool.scoring import (
    apply_failure,
    apply_success,
    performance_score,
    priority_score,
    recency_bonus,
    record_failure,
    record_success,
)

from conftest import DAY, NOW, make_pool


def test_success_clamps_score_and_resets_consecutive_failures(store, cfg):
    store.save(make_pool([CandidateRecord(id="a", score=0.95, consecutive_failures=2)]))

    rec = record_success(store, "a", now=NOW, cfg=cfg)

    assert rec.score == 1.0
    assert rec.consecutive_failures == 0
    persisted = store.load().get("a")
    assert persisted.success_count == 1
    assert persisted.last_success == NOW
    assert persisted.consecutive_failures == 0


def test_failure_clamps_score_at_zero(store, cfg):
    store.save(make_pool([CandidateRecord(id="a", score=0.1)]))

    rec = record_failure(store, "a", now=NOW, cfg=cfg)

    assert rec.score == 0.0
    persisted = store.load().get("a")
    assert persisted.failure_count == 1
    assert persisted.consecutive_failures == 1
    assert persisted.last_failure == NOW


def test_max_consecutive_failures_removes_even_a_top_scorer(store, cfg):
    store.save(make_pool([CandidateRecord(id="star", score=1.0, success_count=40), CandidateRecord(id="other")]))

    for i in range(cfg.max_failures - 1):
        record_failure(store, "star", now=NOW + i, cfg=cfg)
    assert store.load().get("star") is not None
    assert store.load().get("star").score == pytest.approx(1.0 - (cfg.max_failures - 1) * cfg.failure_delta)

    record_failure(store, "star", now=NOW + 10, cfg=cfg)

    assert store.load().get("star") is None
    assert store.load().ids() == ["other"]


def test_success_between_failures_prevents_hard_eviction(cfg):
    pool = make_pool([CandidateRecord(id="a", score=0.9)])
    apply_failure(pool, "a", NOW, cfg)
    apply_failure(pool, "a", NOW, cfg)
    apply_success(pool, "a", NOW, cfg)
    _, evicted = apply_failure(pool, "a", NOW, cfg)

    assert not evicted
    assert pool.get("a").consecutive_failures == 1
    assert pool.get("a").failure_count == 3


def test_outcomes_for_unknown_ids_create_nothing(store, cfg):
    store.save(make_pool([CandidateRecord(id="a")]))

    assert record_success(store, "ghost", now=NOW, cfg=cfg) is None
    assert record_failure(store, "ghost", now=NOW, cfg=cfg) is None
    assert store.load().ids() == ["a"]


def test_score_stays_in_unit_interval_under_random_outcomes(cfg):
    rng = random.Random(11)
    pool = make_pool([CandidateRecord(id="a", score=0.5)])
    for step in range(500):
        if pool.get("a") is None:
            pool = make_pool([CandidateRecord(id="a", score=rng.random())])
        if rng.random() < 0.45:
            apply_success(pool, "a", NOW + step, cfg)
        else:
            apply_failure(pool, "a", NOW + step, cfg)
        rec = pool.get("a")
        if rec is not None:
            assert 0.0 <= rec.score <= 1.0
            assert rec.consecutive_failures < cfg.max_failures


def test_never_attempted_gets_maximum_recency_bonus(cfg):
    rec = CandidateRecord(id="fresh")
    assert recency_bonus(None, NOW, cfg) == cfg.max_recency_bonus
    assert priority_score(rec, NOW, cfg) == pytest.approx(rec.score + cfg.max_recency_bonus)


def test_recency_bonus_grows_linearly_and_caps(cfg):
    assert recency_bonus(NOW, NOW, cfg) == 0.0
    assert recency_bonus(NOW - 10 * DAY, NOW, cfg) == pytest.approx(10 * cfg.recency_slope)
    assert recency_bonus(NOW - 365 * DAY, NOW, cfg) == cfg.max_recency_bonus


def test_performance_score_decays_only_stale_successes(cfg):
    recent = CandidateRecord(id="r", score=0.8, last_success=NOW - DAY)
    stale = CandidateRecord(id="s", score=0.8, last_success=NOW - cfg.cache_duration_sec - DAY)
    failed_long_ago = CandidateRecord(id="f", score=0.8, last_failure=NOW - 400 * DAY)

    assert performance_score(recent, NOW, cfg) == pytest.approx(0.8)
    assert performance_score(stale, NOW, cfg) == pytest.approx(0.8 * cfg.score_decay)
    assert performance_score(failed_long_ago, NOW, cfg) == pytest.approx(0.8)


def test_priority_is_floored_above_zero(cfg):
    rec = CandidateRecord(id="dead", score=0.0, last_failure=NOW)
    assert priority_score(rec, NOW, cfg) == cfg.priority_floor


def test_recency_uses_latest_of_success_and_failure(cfg):
    rec = CandidateRecord(id="a", score=0.5, last_success=NOW - 20 * DAY, last_failure=NOW - 5 * DAY)
    assert priority_score(rec, NOW, cfg) == pytest.approx(0.5 + 5 * cfg.recency_slope)
