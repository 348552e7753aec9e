from __future__ import annotations
import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, List, Optional

import httpx


class FailureReason(str, Enum):
    """Why a single candidate attempt failed."""

    AUTHENTICATION = "authentication"  # account-wide, will fail for every candidate
    QUOTA = "quota"
    TRANSIENT = "transient"
    MALFORMED_OUTPUT = "malformed_output"
    UNKNOWN = "unknown"


class FailureAction(str, Enum):
    SKIP = "skip"    # move on to the next candidate
    ABORT = "abort"  # stop the whole request


class CandidateAttemptError(RuntimeError):
    """Raised by generation collaborators that already know why they failed."""

    def __init__(self, message: str, reason: FailureReason = FailureReason.UNKNOWN):
        super().__init__(message)
        self.reason = reason


def classify_failure(exc: BaseException) -> FailureReason:
    if isinstance(exc, CandidateAttemptError):
        return exc.reason
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, httpx.TimeoutException)):
        return FailureReason.TRANSIENT
    if isinstance(exc, httpx.HTTPStatusError):
        code = exc.response.status_code
        if code in (401, 403):
            return FailureReason.AUTHENTICATION
        if code == 429:
            return FailureReason.QUOTA
        if code >= 500:
            return FailureReason.TRANSIENT
        return FailureReason.UNKNOWN
    if isinstance(exc, httpx.TransportError):
        return FailureReason.TRANSIENT
    if isinstance(exc, ValueError):
        return FailureReason.MALFORMED_OUTPUT
    return FailureReason.UNKNOWN


@dataclass(frozen=True)
class FailurePolicy:
    """Decision table: which failure reasons end the request instead of falling through."""

    abort_on: FrozenSet[FailureReason] = frozenset()

    def decide(self, reason: FailureReason) -> FailureAction:
        return FailureAction.ABORT if reason in self.abort_on else FailureAction.SKIP

    @classmethod
    def always_skip(cls) -> "FailurePolicy":
        return cls()

    @classmethod
    def abort_on_authentication(cls) -> "FailurePolicy":
        return cls(abort_on=frozenset({FailureReason.AUTHENTICATION}))


@dataclass(slots=True)
class AttemptRecord:
    candidate_id: str
    index: int
    status: str  # success/failed
    latency_ms: int
    reason: Optional[FailureReason] = None
    error_type: Optional[str] = None
    error_message: Optional[str] = None


class GenerationError(RuntimeError):
    def __init__(self, message: str, *, attempts: Optional[List[AttemptRecord]] = None):
        super().__init__(message)
        self.attempts: List[AttemptRecord] = list(attempts or [])


class AllCandidatesFailedError(GenerationError):
    """Every candidate in the ordering failed for one request."""

    def __init__(self, *, attempts: Optional[List[AttemptRecord]] = None):
        tried = len(attempts or [])
        super().__init__(f"All candidates failed ({tried} attempted)", attempts=attempts)


class GenerationAbortedError(GenerationError):
    """The failure policy stopped the request before the ordering ran out."""

    def __init__(self, *, reason: FailureReason, attempts: Optional[List[AttemptRecord]] = None):
        super().__init__(f"Generation aborted: {reason.value}", attempts=attempts)
        self.reason = reason
