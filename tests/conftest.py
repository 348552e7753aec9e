from __future__ import annotations

import sys
from pathlib import Path
from typing import Iterable

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from modelpool.candidate_store import CandidateStore, MemoryBackend
from modelpool.schemas import CandidatePool, CandidateRecord
from modelpool.settings import Settings

NOW = 1_700_000_000.0
DAY = 24 * 60 * 60


def make_pool(records: Iterable[CandidateRecord], last_fetch: float = NOW) -> CandidatePool:
    return CandidatePool(candidates=list(records), last_fetch=last_fetch)


class FirstPickRandom:
    """random() == 0.0 makes the roulette wheel pick the first remaining candidate."""

    def random(self) -> float:
        return 0.0


@pytest.fixture
def cfg(tmp_path: Path) -> Settings:
    return Settings(
        candidate_config_path=str(tmp_path / "no-such-candidates.yaml"),
        store_path=str(tmp_path / "pool.json"),
        database_url=f"sqlite:///{tmp_path / 'pool.db'}",
    )


@pytest.fixture
def store() -> CandidateStore:
    return CandidateStore(MemoryBackend())
