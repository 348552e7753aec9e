from __future__ import annotations
import asyncio, re, time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Protocol

from .candidate_store import CandidateStore
from .failures import (
    AllCandidatesFailedError,
    AttemptRecord,
    FailureAction,
    FailurePolicy,
    GenerationAbortedError,
    classify_failure,
)
from .logctx import set_candidate, set_request_id
from .logging_setup import get_logger
from .metrics import (
    candidate_attempt_latency,
    candidate_attempts_total,
    generation_aborted_total,
    generation_exhausted_total,
)
from .scoring import record_failure, record_success
from .selector import CandidateSelector
from .settings import Settings, settings

log = get_logger("orchestrator")


class AttemptFunc(Protocol):
    def __call__(self, candidate_id: str, request: Any) -> Awaitable[Any]: ...


class GenerationState(str, Enum):
    IDLE = "idle"
    SELECTING = "selecting"
    ATTEMPTING = "attempting"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"
    ABORTED = "aborted"


@dataclass(slots=True)
class GenerationOutcome:
    candidate_id: str
    result: Any
    attempts: List[AttemptRecord] = field(default_factory=list)
    state: GenerationState = GenerationState.SUCCEEDED


_SENSITIVE_PATTERN = re.compile(
    r"(api[_-]?key|token|bearer|authorization)[=:\s]+\S+",
    re.IGNORECASE,
)


def _sanitize(message: str, max_length: int = 200) -> str:
    if not message:
        return "request_failed"
    return _SENSITIVE_PATTERN.sub("[REDACTED]", message)[:max_length]


class Orchestrator:
    """
    First-success fallback chain over the selector's ordering.

    Candidates are tried one at a time; every outcome is written to the
    store before the next candidate starts. Cancelling the awaiting task
    stops the chain and leaves the interrupted attempt unrecorded.
    """

    def __init__(
        self,
        store: CandidateStore,
        selector: CandidateSelector,
        attempt: AttemptFunc,
        *,
        policy: Optional[FailurePolicy] = None,
        attempt_timeout: Optional[float] = None,
        clock: Callable[[], float] = time.time,
        cfg: Settings = settings,
    ):
        self.store = store
        self.selector = selector
        self.attempt = attempt
        self.policy = policy or FailurePolicy.always_skip()
        self.attempt_timeout = cfg.attempt_timeout_sec if attempt_timeout is None else attempt_timeout
        self.clock = clock
        self.cfg = cfg

    def _transition(self, state: GenerationState, **kw: Any) -> None:
        log.debug("orchestrator.state", {"state": state.value, **kw})

    async def generate(self, request: Any, *, request_id: Optional[str] = None) -> GenerationOutcome:
        if request_id is not None:
            set_request_id(request_id)
        self._transition(GenerationState.SELECTING)
        ordering = await self.selector.ordered_candidates()
        attempts: List[AttemptRecord] = []
        last_exc: Optional[BaseException] = None

        try:
            for index, candidate_id in enumerate(ordering):
                self._transition(GenerationState.ATTEMPTING, index=index)
                set_candidate(candidate_id)
                started = time.monotonic()
                try:
                    result = await asyncio.wait_for(self.attempt(candidate_id, request), timeout=self.attempt_timeout)
                except Exception as exc:
                    elapsed = time.monotonic() - started
                    reason = classify_failure(exc)
                    attempts.append(AttemptRecord(
                        candidate_id=candidate_id,
                        index=index,
                        status="failed",
                        latency_ms=int(elapsed * 1000),
                        reason=reason,
                        error_type=type(exc).__name__,
                        error_message=_sanitize(str(exc)),
                    ))
                    candidate_attempts_total.labels(outcome="failed", reason=reason.value).inc()
                    candidate_attempt_latency.labels(outcome="failed").observe(elapsed)
                    log.warning("orchestrator.attempt_failed", {
                        "candidate_id": candidate_id, "index": index,
                        "reason": reason.value, "error_type": type(exc).__name__,
                    })
                    await asyncio.to_thread(record_failure, self.store, candidate_id, now=self.clock(), cfg=self.cfg)
                    last_exc = exc
                    if self.policy.decide(reason) is FailureAction.ABORT:
                        self._transition(GenerationState.ABORTED, reason=reason.value)
                        generation_aborted_total.labels(reason=reason.value).inc()
                        log.error("orchestrator.aborted", {"reason": reason.value, "attempted": len(attempts)})
                        raise GenerationAbortedError(reason=reason, attempts=attempts) from exc
                    continue

                elapsed = time.monotonic() - started
                attempts.append(AttemptRecord(
                    candidate_id=candidate_id, index=index, status="success", latency_ms=int(elapsed * 1000),
                ))
                candidate_attempts_total.labels(outcome="success", reason="").inc()
                candidate_attempt_latency.labels(outcome="success").observe(elapsed)
                await asyncio.to_thread(record_success, self.store, candidate_id, now=self.clock(), cfg=self.cfg)
                self._transition(GenerationState.SUCCEEDED, index=index)
                log.info("orchestrator.succeeded", {"candidate_id": candidate_id, "attempted": len(attempts)})
                return GenerationOutcome(candidate_id=candidate_id, result=result, attempts=attempts)
        finally:
            set_candidate(None)

        self._transition(GenerationState.EXHAUSTED)
        generation_exhausted_total.inc()
        log.error("orchestrator.exhausted", {"attempted": len(attempts)})
        raise AllCandidatesFailedError(attempts=attempts) from last_exc
