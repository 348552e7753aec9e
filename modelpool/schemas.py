from __future__ import annotations
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class CandidateRecord(BaseModel):
    """Historical performance of a single generation backend."""

    id: str
    success_count: int = Field(0, ge=0)
    failure_count: int = Field(0, ge=0)
    last_success: Optional[float] = None
    last_failure: Optional[float] = None
    score: float = 0.5
    consecutive_failures: int = Field(0, ge=0)

    @field_validator("score", mode="before")
    @classmethod
    def _clamp_score(cls, v):
        try:
            s = float(v)
        except (TypeError, ValueError):
            raise ValueError(f"score must be a number, got {v!r}")
        return min(1.0, max(0.0, s))


class CandidatePool(BaseModel):
    """The persisted cache: discoverable candidates plus the last refresh time."""

    candidates: List[CandidateRecord] = Field(default_factory=list)
    last_fetch: float = 0.0

    def get(self, candidate_id: str) -> Optional[CandidateRecord]:
        for rec in self.candidates:
            if rec.id == candidate_id:
                return rec
        return None

    def ids(self) -> List[str]:
        return [rec.id for rec in self.candidates]

    def remove(self, candidate_id: str) -> bool:
        before = len(self.candidates)
        self.candidates = [rec for rec in self.candidates if rec.id != candidate_id]
        return len(self.candidates) != before
