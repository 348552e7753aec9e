from __future__ import annotations
import asyncio
from typing import Any, Awaitable, Callable, Optional

from .failures import AllCandidatesFailedError
from .logging_setup import get_logger
from .orchestrator import GenerationOutcome, Orchestrator

log = get_logger("retry")


async def generate_with_retry(
    orchestrator: Orchestrator,
    request: Any,
    *,
    delay_sec: Optional[float] = None,
    max_rounds: Optional[int] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    request_id: Optional[str] = None,
) -> GenerationOutcome:
    """
    Scheduler-side helper: rerun a request after a delay when every candidate failed.

    Only exhaustion is retried, at most `max_rounds` extra times; any other
    error propagates immediately.
    """
    delay = orchestrator.cfg.exhaustion_retry_delay_sec if delay_sec is None else delay_sec
    rounds = orchestrator.cfg.exhaustion_max_rounds if max_rounds is None else max_rounds
    attempt_no = 0
    while True:
        try:
            return await orchestrator.generate(request, request_id=request_id)
        except AllCandidatesFailedError as exc:
            if attempt_no >= rounds:
                log.error("retry.gave_up", {"rounds": attempt_no, "attempted": len(exc.attempts)})
                raise
            attempt_no += 1
            log.warning("retry.scheduled", {"round": attempt_no, "max_rounds": rounds, "delay_sec": delay})
            await sleep(delay)
