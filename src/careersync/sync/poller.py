"""
Background narrative poller.

Started by the caller after a run completes with
`narratives_generating_in_background=True`. Queries the narrative status
endpoint every `interval` seconds until every entry reports ready, or
until `timeout` seconds of wall-clock time have passed.

A timeout is not a failure: the poller stops and reports `timed-out`,
which renderers show as "still generating". A failed tick is reported as
a warning and polling carries on. `cancel()` must be called when the
owning view goes away so no task is left behind.
"""
import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Sequence

from careersync.diagnostics import DiagnosticReporter, Severity, get_reporter
from careersync.errors import SyncError
from careersync.events import NARRATIVES_STATUS, EventBus

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 10.0
DEFAULT_TIMEOUT = 60.0


class PollStatus(str, Enum):
    IDLE = "idle"
    POLLING = "polling"
    READY = "ready"
    TIMED_OUT = "timed-out"
    CANCELLED = "cancelled"


class NarrativePoller:
    def __init__(
        self,
        client,
        token: str,
        entry_ids: Sequence[str],
        *,
        interval: float = DEFAULT_INTERVAL,
        timeout: float = DEFAULT_TIMEOUT,
        reporter: Optional[DiagnosticReporter] = None,
        bus: Optional[EventBus] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.client = client
        self.interval = interval
        self.timeout = timeout
        self.reporter = reporter or get_reporter()
        self.bus = bus or EventBus()
        self.status = PollStatus.IDLE
        self.pending_ids: List[str] = list(entry_ids)
        self.ticks = 0
        # No ids given: follow whatever the backend reports as pending
        self._track_all = not self.pending_ids
        self._token = token
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None

    @property
    def done(self) -> bool:
        return self.status in (PollStatus.READY, PollStatus.TIMED_OUT, PollStatus.CANCELLED)

    def start(self) -> asyncio.Task:
        """Schedule polling on the running loop. Idempotent."""
        if self._task is None:
            self.status = PollStatus.POLLING
            self._task = asyncio.get_running_loop().create_task(self._run())
        return self._task

    def cancel(self) -> None:
        """Stop polling (teardown). No-op once finished."""
        if self.done:
            return
        self.status = PollStatus.CANCELLED
        if self._task is not None:
            self._task.cancel()
        self._publish()

    async def wait(self) -> PollStatus:
        """Wait until polling stops and return the final status."""
        if self._task is None:
            return self.status
        try:
            await self._task
        except asyncio.CancelledError:
            if self.status is not PollStatus.CANCELLED:
                raise
        return self.status

    # ─── Internal ─────────────────────────────────────────────────────────────

    async def _run(self) -> None:
        try:
            await asyncio.wait_for(self._poll_until_ready(), timeout=self.timeout)
        except asyncio.TimeoutError:
            self.status = PollStatus.TIMED_OUT
            logger.info(
                "Narrative polling timed out after %.0fs; %d still generating",
                self.timeout,
                len(self.pending_ids),
            )
            self._publish()

    async def _poll_until_ready(self) -> None:
        while True:
            await self._sleep(self.interval)
            self.ticks += 1
            try:
                status = await self.client.narrative_status(self._token, self.pending_ids)
            except SyncError as exc:
                self.reporter.capture(
                    "NarrativePoller",
                    f"Narrative status check failed: {exc}",
                    severity=Severity.WARN,
                    context={"tick": self.ticks, "kind": exc.kind},
                )
                continue

            if self._track_all:
                self.pending_ids = status.pending_ids
            else:
                reported = {e.id for e in status.entries}
                # Entries the backend no longer reports are treated as still pending
                self.pending_ids = [
                    i for i in self.pending_ids if i in status.pending_ids or i not in reported
                ]
            if not self.pending_ids:
                self.status = PollStatus.READY
                logger.info("All narratives ready after %d checks", self.ticks)
                self._publish()
                return
            self._publish()

    def _publish(self) -> None:
        self.bus.publish(
            NARRATIVES_STATUS,
            {"status": self.status.value, "pendingIds": list(self.pending_ids)},
        )
