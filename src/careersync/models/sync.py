"""Sync domain models: phases, snapshots, results and backend payloads."""
from datetime import datetime
from enum import Enum
from typing import Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class SyncPhase(str, Enum):
    FETCHING = "fetching"
    ACTIVITIES_SYNCED = "activities-synced"
    GENERATING_STORIES = "generating-stories"
    COMPLETE = "complete"

    @property
    def order(self) -> int:
        return list(SyncPhase).index(self)


class SyncMode(str, Enum):
    """Which backend the orchestrator talks to."""

    SEEDED = "seeded"  # canned fixture data seeded by the backend
    LIVE = "live"  # the user's actually-connected tools


IntegrationStatus = Literal["pending", "syncing", "done", "error"]
EntryStatus = Literal["pending", "generating", "done"]
GroupingMethod = Literal["time", "cluster"]


class _CamelModel(BaseModel):
    """Accepts and emits camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class SyncIntegration(_CamelModel):
    id: str
    name: str
    icon: str
    status: IntegrationStatus = "pending"
    item_count: Optional[int] = None
    item_label: Optional[str] = None


class EntryPreview(_CamelModel):
    id: str
    title: str
    grouping_method: GroupingMethod
    activity_count: int = 0
    status: EntryStatus = "pending"


class SyncState(_CamelModel):
    """One snapshot handed to the renderer. Never mutated after emission."""

    phase: SyncPhase
    integrations: Tuple[SyncIntegration, ...] = ()
    entries: Tuple[EntryPreview, ...] = ()
    total_activities: int = 0
    total_entries: int = 0


class SyncResult(_CamelModel):
    activity_count: int
    activities_by_source: Dict[str, int] = Field(default_factory=dict)
    entry_count: int = 0
    temporal_entry_count: int = 0
    cluster_entry_count: int = 0
    narratives_generating_in_background: bool = False


class PersistedSyncStatus(_CamelModel):
    """Durable record of the last successful sync."""

    has_synced: bool = False
    last_sync_at: Optional[datetime] = None
    activity_count: int = 0
    entry_count: int = 0
    temporal_entry_count: int = 0
    cluster_entry_count: int = 0
    # Variant that produced the record; None once cleared
    mode: Optional[SyncMode] = None

    @classmethod
    def empty(cls) -> "PersistedSyncStatus":
        return cls()


class SyncResponse(BaseModel):
    """Body returned by both the seeded and the live sync endpoints.

    Grouping already happened on the backend; `entry_previews` is the
    subset of created entries worth showing while the run completes.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    activity_count: int
    activities_by_source: Dict[str, int] = Field(default_factory=dict)
    entry_count: int = 0
    temporal_entry_count: int = 0
    cluster_entry_count: int = 0
    entry_previews: List[EntryPreview] = Field(default_factory=list)
    narratives_generating_in_background: bool = False
    # Per-tool failures in a live sync: {"github": "GitHub not connected"}
    errors: Dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _entry_counts_add_up(self) -> "SyncResponse":
        if self.entry_count != self.temporal_entry_count + self.cluster_entry_count:
            raise ValueError(
                f"entryCount {self.entry_count} != temporalEntryCount "
                f"{self.temporal_entry_count} + clusterEntryCount "
                f"{self.cluster_entry_count}"
            )
        return self

    def to_result(self) -> SyncResult:
        return SyncResult(
            activity_count=self.activity_count,
            activities_by_source=dict(self.activities_by_source),
            entry_count=self.entry_count,
            temporal_entry_count=self.temporal_entry_count,
            cluster_entry_count=self.cluster_entry_count,
            narratives_generating_in_background=self.narratives_generating_in_background,
        )


class ConnectedTool(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    tool_type: str
    is_connected: bool = False


class NarrativeReadiness(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: str
    ready: bool = False


class NarrativeStatus(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    entries: List[NarrativeReadiness] = Field(default_factory=list)

    @property
    def pending_ids(self) -> List[str]:
        return [e.id for e in self.entries if not e.ready]

    @property
    def all_ready(self) -> bool:
        return not self.pending_ids
