"""
Resilient request executor: one outbound call, bounded retry.

Per attempt:
  - 2xx                         → return the response
  - 401 / 403 / 404             → raise immediately (not transient)
  - other 4xx (not 408/429)     → raise immediately with the full payload
  - 5xx, 408, 429, network, timeout → wait attempt × base_delay, try again

After `max_retries` extra attempts the last error is raised. Every attempt
is kept in `attempts` (bounded) and sent to the diagnostic reporter as a trace.
"""
import asyncio
import json
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable, Deque, Optional

import httpx

from careersync.diagnostics import DiagnosticReporter, get_reporter
from careersync.errors import (
    RequestValidationError,
    SyncError,
    TransientError,
    classify_response,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 2
DEFAULT_BASE_DELAY = 1.0
MAX_ATTEMPT_RECORDS = 200

CallFactory = Callable[[], Awaitable[httpx.Response]]


@dataclass(frozen=True)
class AttemptRecord:
    context: str
    attempt: int
    outcome: str  # "success", "retry" or "failed"
    status_code: Optional[int] = None
    error: Optional[str] = None
    duration_ms: float = 0.0


class RequestExecutor:
    def __init__(
        self,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay: float = DEFAULT_BASE_DELAY,
        reporter: Optional[DiagnosticReporter] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        max_records: int = MAX_ATTEMPT_RECORDS,
    ):
        self.max_retries = max(0, max_retries)
        self.base_delay = max(0.0, base_delay)
        self.reporter = reporter or get_reporter()
        # Most recent attempts across all calls, oldest dropped first
        self.attempts: Deque[AttemptRecord] = deque(maxlen=max_records)
        self._sleep = sleep

    async def execute(
        self,
        call_factory: CallFactory,
        context: str,
        max_retries: Optional[int] = None,
    ) -> httpx.Response:
        """Run `call_factory()` until it succeeds or a non-retryable error occurs.

        Args:
            call_factory: Zero-arg callable producing a fresh request coroutine.
            context: Human-readable label used in logs and traces.
            max_retries: Overrides the executor default for this call.

        Returns:
            The first successful httpx.Response.

        Raises:
            SyncError: the classified failure (last one, if retries ran out).
        """
        retries = self.max_retries if max_retries is None else max(0, max_retries)
        total = retries + 1

        for attempt in range(1, total + 1):
            logger.debug("%s: attempt %d/%d", context, attempt, total)
            started = time.monotonic()
            try:
                response = await call_factory()
            except httpx.RequestError as exc:
                error: SyncError = TransientError(f"{context} failed: {exc!r}")
                status_code = None
            else:
                if response.is_success:
                    self._record(context, attempt, "success", started, response.status_code)
                    if attempt > 1:
                        logger.info("%s: succeeded on attempt %d", context, attempt)
                    return response
                error = classify_response(response, context)
                status_code = response.status_code

            will_retry = error.retryable and attempt <= retries
            self._record(
                context,
                attempt,
                "retry" if will_retry else "failed",
                started,
                status_code,
                str(error),
            )
            if not will_retry:
                if error.retryable:
                    logger.error("%s: giving up after %d attempts: %s", context, attempt, error)
                else:
                    logger.error("%s: %s (%s, not retried)", context, error, error.kind)
                if isinstance(error, RequestValidationError):
                    self.reporter.capture(
                        f"Request:{context}",
                        str(error),
                        details=json.dumps(error.payload, default=str),
                        context={"status": error.status_code},
                    )
                raise error

            delay = attempt * self.base_delay
            logger.warning(
                "%s: attempt %d failed (%s), retrying in %.1fs", context, attempt, error, delay
            )
            await self._sleep(delay)

        raise RuntimeError(f"{context}: retry loop exited without a result")

    def _record(
        self,
        context: str,
        attempt: int,
        outcome: str,
        started: float,
        status_code: Optional[int],
        error: Optional[str] = None,
    ) -> None:
        duration_ms = (time.monotonic() - started) * 1000
        self.attempts.append(
            AttemptRecord(
                context=context,
                attempt=attempt,
                outcome=outcome,
                status_code=status_code,
                error=error,
                duration_ms=duration_ms,
            )
        )
        self.reporter.record_trace(
            context,
            attempt,
            status="success" if outcome == "success" else "error",
            status_code=status_code,
            duration_ms=duration_ms,
            error=error,
        )
