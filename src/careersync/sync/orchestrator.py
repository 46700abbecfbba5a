"""
SyncOrchestrator: drives one import + generation run and narrates it.

Flow (single forward pass, no phase is re-entered):
  0. Resolve the session credential and run the variant's pre-flight
  1. fetching            empty snapshot → import request → dwell
  2. activities-synced   integrations → publish data.changed(activities) → dwell
  3. generating-stories  entry previews marked generating → dwell
  4. complete            previews marked done → publish data.changed(entries)
                         → persist outcome → Complete(state, result)

Any failure yields Failed(error) and ends the run. Nothing is written to
the Status Store before step 4, so a failed run leaves the previous outcome
intact and can simply be retried. The activities notification from step 2
is kept even when a later step fails: the imported rows already exist on
the backend.

Progress is exposed two ways: `updates()` is an async iterator of tagged
values, and `run(callbacks)` dispatches the same values to an observer.
Cancelling the task that drives either one stops the run at its next
suspension point without touching the store.
"""
import abc
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Union

from careersync.diagnostics import DiagnosticReporter, Severity, get_reporter
from careersync.errors import (
    AuthError,
    ConfigurationError,
    SyncError,
    SyncInProgressError,
)
from careersync.events import DATA_CHANGED, EventBus
from careersync.models.sync import (
    PersistedSyncStatus,
    SyncMode,
    SyncPhase,
    SyncResponse,
    SyncResult,
    SyncState,
)
from careersync.sync.integrations import build_integrations

logger = logging.getLogger(__name__)

NO_TOOLS_CONNECTED_MESSAGE = (
    "No tools connected. Connect GitHub, Jira, or other tools in Settings "
    "to sync your activity."
)


# ─── Tagged progress values ───────────────────────────────────────────────────

@dataclass(frozen=True)
class Fetching:
    state: SyncState


@dataclass(frozen=True)
class ActivitiesSynced:
    state: SyncState


@dataclass(frozen=True)
class GeneratingStories:
    state: SyncState


@dataclass(frozen=True)
class Complete:
    state: SyncState
    result: SyncResult


@dataclass(frozen=True)
class Failed:
    error: SyncError


SyncUpdate = Union[Fetching, ActivitiesSynced, GeneratingStories, Complete, Failed]


@dataclass
class SyncCallbacks:
    on_state_update: Callable[[SyncState], None]
    on_complete: Callable[[SyncResult], None]
    on_error: Callable[[SyncError], None]


@dataclass(frozen=True)
class PhaseDelays:
    """Seconds to hold each phase on screen. Pacing only, never correctness."""

    fetching: float = 0.0
    activities: float = 0.0
    stories: float = 0.0

    @classmethod
    def seeded(cls, settings) -> "PhaseDelays":
        return cls(
            fetching=settings.fetching_dwell_seconds,
            activities=settings.activities_dwell_seconds,
            stories=settings.stories_dwell_seconds,
        )

    @classmethod
    def live(cls, settings) -> "PhaseDelays":
        return cls(stories=settings.stories_live_dwell_seconds)


class RunGuard:
    """In-flight flag; share one between orchestrators that touch the same scope."""

    def __init__(self) -> None:
        self.active = False


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ─── Orchestrator ─────────────────────────────────────────────────────────────

class SyncOrchestrator(abc.ABC):
    """Phase state machine shared by the seeded and live variants.

    Abstract: subclasses set `variant` to a SyncMode value and implement
    `_request_sync`.
    """

    variant = "sync"

    def __init__(
        self,
        client,
        store,
        token_provider: Callable[[], Optional[str]],
        *,
        reporter: Optional[DiagnosticReporter] = None,
        bus: Optional[EventBus] = None,
        delays: Optional[PhaseDelays] = None,
        guard: Optional[RunGuard] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Args:
            client: CareerApiClient (or AsyncMock in tests).
            store: StatusStore the terminal outcome is written to.
            token_provider: Returns the session credential, or None/"" if absent.
            reporter: Diagnostic sink for per-tool failures and warnings.
            bus: EventBus receiving data.changed notifications.
            delays: Per-phase dwell; defaults to no delay at all.
            guard: Shared in-flight flag; a private one is used if omitted.
        """
        self.client = client
        self.store = store
        self.reporter = reporter or get_reporter()
        self.bus = bus or EventBus()
        self.delays = delays or PhaseDelays()
        self._token_provider = token_provider
        self._guard = guard or RunGuard()
        self._sleep = sleep
        self._clock = clock

    @property
    def is_running(self) -> bool:
        return self._guard.active

    async def run(self, callbacks: SyncCallbacks) -> Optional[SyncResult]:
        """Drive one run, reporting through `callbacks`. Never raises.

        Exactly one of `on_complete` / `on_error` is called. An exception
        raised by a callback after that point is logged only.

        Returns:
            The SyncResult on success, None if the run failed.
        """
        updates = self.updates()
        result: Optional[SyncResult] = None
        terminal_delivered = False
        try:
            async for update in updates:
                if isinstance(update, Failed):
                    terminal_delivered = True
                    callbacks.on_error(update.error)
                elif isinstance(update, Complete):
                    callbacks.on_state_update(update.state)
                    result = update.result
                    terminal_delivered = True
                    callbacks.on_complete(update.result)
                else:
                    callbacks.on_state_update(update.state)
        except Exception as exc:
            logger.exception("%s sync callback failed", self.variant)
            await updates.aclose()
            if terminal_delivered:
                return result
            callbacks.on_error(
                exc if isinstance(exc, SyncError) else SyncError(f"Sync failed: {exc}")
            )
            return None
        return result

    async def updates(self) -> AsyncIterator[SyncUpdate]:
        """Yield the progress of one run, ending with Complete or Failed."""
        if self._guard.active:
            yield Failed(SyncInProgressError())
            return
        self._guard.active = True
        try:
            async for update in self._drive():
                yield update
        finally:
            self._guard.active = False

    # ─── Variant hooks ────────────────────────────────────────────────────────

    async def _preflight(self, token: str) -> Any:
        """Checks that must pass before phase 1. Returns data for _request_sync."""
        return None

    @abc.abstractmethod
    async def _request_sync(self, token: str, plan: Any) -> SyncResponse:
        """Issue the import request for this variant."""

    # ─── Phases ───────────────────────────────────────────────────────────────

    async def _drive(self) -> AsyncIterator[SyncUpdate]:
        token = self._token_provider()
        if not token:
            yield self._fail(AuthError("No access token found"))
            return

        try:
            plan = await self._preflight(token)

            yield Fetching(SyncState(phase=SyncPhase.FETCHING))
            response = await self._request_sync(token, plan)
            await self._dwell(self.delays.fetching)

            self._report_tool_failures(response)
            integrations = tuple(build_integrations(response.activities_by_source))
            yield ActivitiesSynced(
                SyncState(
                    phase=SyncPhase.ACTIVITIES_SYNCED,
                    integrations=integrations,
                    total_activities=response.activity_count,
                )
            )
            self._publish_data_changed("activities")
            await self._dwell(self.delays.activities)

            generating = tuple(
                e.model_copy(update={"status": "generating"}) for e in response.entry_previews
            )
            yield GeneratingStories(
                SyncState(
                    phase=SyncPhase.GENERATING_STORIES,
                    integrations=integrations,
                    entries=generating,
                    total_activities=response.activity_count,
                    total_entries=response.entry_count,
                )
            )
            await self._dwell(self.delays.stories)

            done = tuple(e.model_copy(update={"status": "done"}) for e in generating)
            complete = SyncState(
                phase=SyncPhase.COMPLETE,
                integrations=integrations,
                entries=done,
                total_activities=response.activity_count,
                total_entries=response.entry_count,
            )
            self._publish_data_changed("entries")
            result = response.to_result()
            self._persist(result)
            logger.info(
                "%s sync complete: %d activities, %d entries",
                self.variant,
                result.activity_count,
                result.entry_count,
            )
            yield Complete(complete, result)

        except SyncError as exc:
            yield self._fail(exc)
        except Exception as exc:
            logger.exception("Unexpected %s sync failure", self.variant)
            yield self._fail(SyncError(f"{self.variant.capitalize()} sync failed: {exc}"))

    # ─── Internal helpers ─────────────────────────────────────────────────────

    async def _dwell(self, seconds: float) -> None:
        if seconds > 0:
            await self._sleep(seconds)

    def _fail(self, error: SyncError) -> Failed:
        logger.warning("%s sync failed (%s): %s", self.variant, error.kind, error)
        return Failed(error)

    def _publish_data_changed(self, what: str) -> None:
        self.bus.publish(DATA_CHANGED, {"what": what, "variant": self.variant})

    def _report_tool_failures(self, response: SyncResponse) -> None:
        """Per-tool failures don't fail the run; each one goes to the sink."""
        phase = f"{self.variant}-sync"
        for tool, message in response.errors.items():
            self.reporter.capture(
                f"Sync:{tool}",
                f"{tool} sync failed: {message}",
                severity=Severity.ERROR,
                context={"tool": tool, "phase": phase},
            )
        if response.activity_count == 0:
            self.reporter.capture(
                "Sync",
                "Sync completed with 0 activities; check tool connections and date range",
                severity=Severity.WARN,
                context={"activitiesBySource": dict(response.activities_by_source), "phase": phase},
            )

    def _persist(self, result: SyncResult) -> None:
        now = self._clock()
        self.store.set_sync_status(
            PersistedSyncStatus(
                has_synced=True,
                last_sync_at=now,
                activity_count=result.activity_count,
                entry_count=result.entry_count,
                temporal_entry_count=result.temporal_entry_count,
                cluster_entry_count=result.cluster_entry_count,
                mode=SyncMode(self.variant),
            )
        )
        self.store.set_last_sync_at(now)


class SeededSyncOrchestrator(SyncOrchestrator):
    """Backend seeds canned fixture data; the store picks the dataset."""

    variant = "seeded"

    async def _request_sync(self, token: str, plan: Any) -> SyncResponse:
        return await self.client.sync_seeded(token, dataset=self.store.dataset)


class LiveSyncOrchestrator(SyncOrchestrator):
    """Imports from whichever tools the user has actually connected."""

    variant = "live"

    async def _preflight(self, token: str) -> Any:
        tool_types = await self.client.connected_tool_types(token)
        if not tool_types:
            raise ConfigurationError(NO_TOOLS_CONNECTED_MESSAGE)
        return tool_types

    async def _request_sync(self, token: str, plan: Any) -> SyncResponse:
        return await self.client.sync_live(token, plan)
