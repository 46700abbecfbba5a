"""
SyncService: the caller-facing entry point for syncing.

Owns one orchestrator per variant (sharing a single in-flight guard), picks
the variant from the store's feature mode, remembers the latest snapshot
for renderers that poll rather than subscribe, and starts the background
narrative poller when a completed run asks for it.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional

from careersync.client.api import CareerApiClient
from careersync.client.executor import RequestExecutor
from careersync.config import Settings, get_settings
from careersync.diagnostics import DiagnosticReporter, get_reporter
from careersync.errors import AuthError, SyncError, SyncInProgressError
from careersync.events import DATA_CHANGED, EventBus, get_event_bus
from careersync.models.sync import SyncMode, SyncResult, SyncState
from careersync.store import DATASETS, StatusStore
from careersync.sync.orchestrator import (
    LiveSyncOrchestrator,
    PhaseDelays,
    RunGuard,
    SeededSyncOrchestrator,
    SyncCallbacks,
    SyncOrchestrator,
)
from careersync.sync.poller import NarrativePoller

logger = logging.getLogger(__name__)


def _ignore(_value) -> None:
    return None


class SyncService:
    def __init__(
        self,
        client,
        store: StatusStore,
        *,
        settings: Optional[Settings] = None,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
        reporter: Optional[DiagnosticReporter] = None,
        bus: Optional[EventBus] = None,
        delays: Optional[PhaseDelays] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            client: CareerApiClient (or AsyncMock in tests).
            store: StatusStore holding mode, dataset and last outcome.
            settings: Defaults to get_settings().
            token_provider: Returns the session credential; defaults to
                settings.access_token.
            delays: Overrides the per-variant dwell delays from settings
                (PhaseDelays() for no pacing at all).
        """
        self.settings = settings or get_settings()
        self.client = client
        self.store = store
        self.reporter = reporter or get_reporter()
        self.bus = bus or get_event_bus()
        self._token_provider = token_provider or (lambda: self.settings.access_token or None)

        self.latest_state: Optional[SyncState] = None
        self.latest_result: Optional[SyncResult] = None
        self.latest_error: Optional[SyncError] = None
        self.poller: Optional[NarrativePoller] = None

        guard = RunGuard()
        common = dict(
            reporter=self.reporter,
            bus=self.bus,
            guard=guard,
            sleep=sleep,
        )
        self._orchestrators = {
            SyncMode.SEEDED: SeededSyncOrchestrator(
                client,
                store,
                self._token_provider,
                delays=delays or PhaseDelays.seeded(self.settings),
                **common,
            ),
            SyncMode.LIVE: LiveSyncOrchestrator(
                client,
                store,
                self._token_provider,
                delays=delays or PhaseDelays.live(self.settings),
                **common,
            ),
        }
        self._guard = guard

    @property
    def is_running(self) -> bool:
        return self._guard.active

    def orchestrator_for(self, mode: Optional[SyncMode] = None) -> SyncOrchestrator:
        return self._orchestrators[SyncMode(mode) if mode else self.store.mode]

    async def run(
        self,
        callbacks: Optional[SyncCallbacks] = None,
        *,
        mode: Optional[SyncMode] = None,
    ) -> Optional[SyncResult]:
        """Run one sync in the given (or current) mode. Never raises.

        Returns:
            The SyncResult, or None if the run failed.
        """
        callbacks = callbacks or SyncCallbacks(_ignore, _ignore, _ignore)
        orchestrator = self.orchestrator_for(mode)

        if not self.is_running:
            self.stop_narrative_polling()
            self.latest_state = None
            self.latest_error = None

        def on_state_update(state: SyncState) -> None:
            self.latest_state = state
            callbacks.on_state_update(state)

        def on_complete(result: SyncResult) -> None:
            self.latest_result = result
            callbacks.on_complete(result)

        def on_error(error: SyncError) -> None:
            # A rejected concurrent call must not clobber the active run's state
            if not isinstance(error, SyncInProgressError):
                self.latest_error = error
            callbacks.on_error(error)

        result = await orchestrator.run(SyncCallbacks(on_state_update, on_complete, on_error))
        if result is not None and result.narratives_generating_in_background:
            self.start_narrative_polling()
        return result

    async def reset(self, callbacks: Optional[SyncCallbacks] = None) -> Optional[SyncResult]:
        """Clear everything, then sync again from scratch."""
        await self.clear()
        return await self.run(callbacks)

    async def clear(self) -> None:
        """Wipe synced data on the backend, then zero the persisted outcome.

        Raises:
            SyncInProgressError: a run is active.
            AuthError: no session credential.
            SyncError: the backend refused; the local record is left as is.
        """
        if self.is_running:
            raise SyncInProgressError("Cannot clear while a sync is in progress")
        token = self._token_provider()
        if not token:
            raise AuthError("No access token found")

        self.stop_narrative_polling()
        await self.client.clear(token)
        self.store.clear_sync_status()
        self.latest_state = None
        self.latest_result = None
        self.latest_error = None
        self.bus.publish(DATA_CHANGED, {"what": "cleared", "variant": self.store.mode.value})
        logger.info("Sync data cleared")

    def set_mode(self, mode: SyncMode) -> None:
        self.store.set_mode(mode)

    async def switch_dataset(
        self,
        dataset: str,
        confirm: Optional[Callable[[], bool]] = None,
    ) -> bool:
        """Select another seeded dataset.

        If seeded data from the current dataset exists, switching requires
        `confirm()` to return True, and the old data is cleared first so the
        next run's counts are not mixed. Without a confirm callable the
        switch is refused.

        Returns:
            True if the dataset is now selected, False if the switch was refused.
        """
        if dataset not in DATASETS:
            raise ValueError(f"Unknown dataset {dataset!r}; expected one of {DATASETS}")
        if dataset == self.store.dataset:
            return True

        if self.store.has_seeded_data():
            if confirm is None or not confirm():
                logger.info("Dataset switch to %s refused: existing seeded data", dataset)
                return False
            await self.clear()

        self.store.set_dataset(dataset)
        return True

    # ─── Background narratives ────────────────────────────────────────────────

    def start_narrative_polling(self) -> Optional[NarrativePoller]:
        self.stop_narrative_polling()
        token = self._token_provider()
        if not token:
            return None
        entry_ids = [e.id for e in self.latest_state.entries] if self.latest_state else []
        self.poller = NarrativePoller(
            self.client,
            token,
            entry_ids,
            interval=self.settings.narrative_poll_interval_seconds,
            timeout=self.settings.narrative_poll_timeout_seconds,
            reporter=self.reporter,
            bus=self.bus,
        )
        self.poller.start()
        return self.poller

    def stop_narrative_polling(self) -> None:
        if self.poller is not None:
            self.poller.cancel()

    async def close(self) -> None:
        self.stop_narrative_polling()
        await self.client.close()


def build_sync_service(settings: Optional[Settings] = None) -> SyncService:
    """Wire a SyncService from settings: SQLite store, httpx client, shared sinks."""
    from careersync.db.engine import get_engine
    from careersync.store import SqlStatusStore

    settings = settings or get_settings()
    reporter = get_reporter()
    bus = get_event_bus()
    store = SqlStatusStore(get_engine(settings.store_database_url), bus=bus)
    executor = RequestExecutor(
        max_retries=settings.max_retries,
        base_delay=settings.retry_base_delay_seconds,
        reporter=reporter,
    )
    client = CareerApiClient(
        settings.api_base_url,
        executor=executor,
        timeout=settings.request_timeout_seconds,
    )
    return SyncService(client, store, settings=settings, reporter=reporter, bus=bus)
