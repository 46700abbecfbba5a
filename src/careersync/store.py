"""
Status Store: client-local key/value persistence.

Holds the last sync outcome, the last-sync timestamp, the feature mode
(seeded vs live) and the selected seeded dataset. Every write publishes a
`store.changed` event so independently rendered views stay consistent
without sharing an in-memory singleton.

Two implementations share the typed accessors:
  - MemoryStatusStore: a dict, for tests and throwaway sessions
  - SqlStatusStore:    one StoreEntry row per key in SQLite
"""
import abc
import json
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from sqlmodel import Session

from careersync.events import STORE_CHANGED, EventBus
from careersync.models.store import StoreEntry
from careersync.models.sync import PersistedSyncStatus, SyncMode

LAST_SYNC_STATUS_KEY = "last-sync-status"
LAST_SYNC_AT_KEY = "last-sync-at"
FEATURE_MODE_KEY = "feature-mode"
DATASET_KEY = "demo-dataset"

DATASETS = ("v1", "v2")
DEFAULT_DATASET = "v1"


class StatusStore(abc.ABC):
    """Base class: typed accessors over a raw JSON-text key/value backend."""

    def __init__(self, bus: Optional[EventBus] = None):
        self._bus = bus or EventBus()
        self._lock = threading.Lock()

    # ─── Raw backend (implemented by subclasses) ──────────────────────────────

    @abc.abstractmethod
    def _read(self, key: str) -> Optional[str]:
        """Raw JSON text for `key`, or None."""

    @abc.abstractmethod
    def _write(self, key: str, value: Optional[str]) -> None:
        """Store raw JSON text; None deletes the key."""

    # ─── Generic key/value API ────────────────────────────────────────────────

    def get(self, key: str, default: Any = None) -> Any:
        raw = self._read(key)
        if raw is None:
            return default
        return json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._write(key, json.dumps(value, default=str))
        self._bus.publish(STORE_CHANGED, {"key": key, "value": value})

    def delete(self, key: str) -> None:
        with self._lock:
            self._write(key, None)
        self._bus.publish(STORE_CHANGED, {"key": key, "value": None})

    def subscribe(self, listener: Callable[[Dict[str, Any]], None]) -> Callable[[], None]:
        """Call `listener` on every change; returns an unsubscribe function."""
        return self._bus.subscribe(STORE_CHANGED, listener)

    # ─── Sync outcome ─────────────────────────────────────────────────────────

    def get_sync_status(self) -> Optional[PersistedSyncStatus]:
        data = self.get(LAST_SYNC_STATUS_KEY)
        if data is None:
            return None
        return PersistedSyncStatus.model_validate(data)

    def set_sync_status(self, status: PersistedSyncStatus) -> None:
        """Overwrite (never merge) the persisted outcome."""
        self.set(LAST_SYNC_STATUS_KEY, status.model_dump(mode="json", by_alias=True))

    def clear_sync_status(self) -> None:
        self.set_sync_status(PersistedSyncStatus.empty())

    def get_last_sync_at(self) -> Optional[datetime]:
        value = self.get(LAST_SYNC_AT_KEY)
        return datetime.fromisoformat(value) if value else None

    def set_last_sync_at(self, when: datetime) -> None:
        self.set(LAST_SYNC_AT_KEY, when.isoformat())

    def has_seeded_data(self) -> bool:
        """True only if the last persisted outcome came from a seeded run."""
        status = self.get_sync_status()
        return bool(status and status.has_synced and status.mode is SyncMode.SEEDED)

    # ─── Feature mode ─────────────────────────────────────────────────────────

    @property
    def mode(self) -> SyncMode:
        return SyncMode(self.get(FEATURE_MODE_KEY, SyncMode.SEEDED.value))

    def set_mode(self, mode: SyncMode) -> None:
        self.set(FEATURE_MODE_KEY, SyncMode(mode).value)

    def toggle_mode(self) -> SyncMode:
        new_mode = SyncMode.LIVE if self.mode is SyncMode.SEEDED else SyncMode.SEEDED
        self.set_mode(new_mode)
        return new_mode

    # ─── Dataset selection (seeded mode only) ─────────────────────────────────

    @property
    def dataset(self) -> str:
        return self.get(DATASET_KEY, DEFAULT_DATASET)

    def set_dataset(self, dataset: str) -> None:
        if dataset not in DATASETS:
            raise ValueError(f"Unknown dataset {dataset!r}; expected one of {DATASETS}")
        self.set(DATASET_KEY, dataset)


class MemoryStatusStore(StatusStore):
    def __init__(self, bus: Optional[EventBus] = None):
        super().__init__(bus)
        self._data: Dict[str, str] = {}

    def _read(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def _write(self, key: str, value: Optional[str]) -> None:
        if value is None:
            self._data.pop(key, None)
        else:
            self._data[key] = value


class SqlStatusStore(StatusStore):
    def __init__(self, engine, bus: Optional[EventBus] = None):
        """
        Args:
            engine: SQLAlchemy engine with the StoreEntry table created.
            bus: EventBus for change notifications.
        """
        super().__init__(bus)
        self.engine = engine

    def _read(self, key: str) -> Optional[str]:
        with Session(self.engine) as s:
            row = s.get(StoreEntry, key)
            return row.value if row else None

    def _write(self, key: str, value: Optional[str]) -> None:
        with Session(self.engine) as s:
            row = s.get(StoreEntry, key)
            if value is None:
                if row:
                    s.delete(row)
                    s.commit()
                return
            if row:
                row.value = value
                row.updated_at = datetime.now(timezone.utc)
            else:
                row = StoreEntry(key=key, value=value)
            s.add(row)
            s.commit()
