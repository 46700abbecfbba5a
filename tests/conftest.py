"""Shared test fixtures."""
import copy
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

# Import all models so SQLModel.metadata knows about them
from careersync.models.store import StoreEntry  # noqa: F401
from careersync.config import Settings
from careersync.diagnostics import DiagnosticReporter
from careersync.events import EventBus
from careersync.models.sync import SyncResponse
from careersync.store import MemoryStatusStore

ENTRY_PREVIEWS = [
    {"id": "e1", "title": "Shipped OAuth login", "groupingMethod": "cluster", "activityCount": 9},
    {"id": "e2", "title": "Week of Jan 6", "groupingMethod": "time", "activityCount": 12},
    {"id": "e3", "title": "Design system refresh", "groupingMethod": "cluster", "activityCount": 6},
    {"id": "e4", "title": "Week of Jan 13", "groupingMethod": "time", "activityCount": 10},
    {"id": "e5", "title": "Week of Jan 20", "groupingMethod": "time", "activityCount": 8},
]

SEEDED_PAYLOAD: Dict[str, Any] = {
    "activityCount": 45,
    "activitiesBySource": {"github": 18, "jira": 14, "slack": 8, "figma": 5},
    "entryCount": 8,
    "temporalEntryCount": 5,
    "clusterEntryCount": 3,
    "entryPreviews": ENTRY_PREVIEWS,
}


def make_sync_payload(**overrides) -> Dict[str, Any]:
    payload = copy.deepcopy(SEEDED_PAYLOAD)
    payload.update(overrides)
    return payload


def make_sync_response(**overrides) -> SyncResponse:
    return SyncResponse.model_validate(make_sync_payload(**overrides))


def make_mock_client(
    response: Optional[SyncResponse] = None,
    connected_tools: Optional[List[str]] = None,
):
    """AsyncMock standing in for CareerApiClient."""
    client = AsyncMock()
    client.sync_seeded = AsyncMock(return_value=response or make_sync_response())
    client.sync_live = AsyncMock(return_value=response or make_sync_response())
    client.connected_tool_types = AsyncMock(
        return_value=["github", "jira"] if connected_tools is None else connected_tools
    )
    client.clear = AsyncMock(return_value=None)
    client.close = AsyncMock(return_value=None)
    return client


class Recorder:
    """Collects orchestrator callbacks in delivery order."""

    def __init__(self):
        self.states = []
        self.results = []
        self.errors = []
        self.calls = []

    def on_state_update(self, state):
        self.states.append(state)
        self.calls.append(("state", state.phase.value))

    def on_complete(self, result):
        self.results.append(result)
        self.calls.append(("complete", None))

    def on_error(self, error):
        self.errors.append(error)
        self.calls.append(("error", error.kind))

    @property
    def phases(self):
        return [s.phase.value for s in self.states]


@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite engine. Tables recreated fresh for each test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="bus")
def bus_fixture() -> EventBus:
    return EventBus()


@pytest.fixture(name="reporter")
def reporter_fixture() -> DiagnosticReporter:
    return DiagnosticReporter()


@pytest.fixture(name="store")
def store_fixture(bus) -> MemoryStatusStore:
    return MemoryStatusStore(bus=bus)


@pytest.fixture(name="settings")
def settings_fixture() -> Settings:
    """Settings with every delay at zero and a fake credential."""
    return Settings(
        _env_file=None,
        api_base_url="http://test/api/v1",
        access_token="test-token",
        fetching_dwell_seconds=0.0,
        activities_dwell_seconds=0.0,
        stories_dwell_seconds=0.0,
        stories_live_dwell_seconds=0.0,
        retry_base_delay_seconds=0.0,
        narrative_poll_interval_seconds=0.01,
        narrative_poll_timeout_seconds=0.5,
    )


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture(name="make_response")
def make_response_fixture():
    """Factory: SyncResponse for the 45-activity seeded scenario, with overrides."""
    return make_sync_response


@pytest.fixture(name="make_payload")
def make_payload_fixture():
    """Factory: raw JSON body of a sync response, with overrides."""
    return make_sync_payload


@pytest.fixture(name="mock_client")
def mock_client_fixture():
    return make_mock_client()


@pytest.fixture(name="make_client")
def make_client_fixture():
    return make_mock_client
