"""Integration tests for /sync and /diagnostics routes."""
import pytest
from fastapi.testclient import TestClient

from careersync.api.main import create_app
from careersync.api.routes.sync import get_sync_service
from careersync.diagnostics import get_reporter
from careersync.errors import TransientError
from careersync.sync.service import SyncService


@pytest.fixture(name="service")
def service_fixture(mock_client, store, settings, reporter, bus):
    return SyncService(mock_client, store, settings=settings, reporter=reporter, bus=bus)


@pytest.fixture(name="client")
def client_fixture(service, reporter):
    app = create_app()
    app.dependency_overrides[get_sync_service] = lambda: service
    app.dependency_overrides[get_reporter] = lambda: reporter
    with TestClient(app) as c:
        yield c


class TestTrigger:
    def test_trigger_runs_in_background(self, client, service, mock_client):
        resp = client.post("/sync/trigger", json={})
        assert resp.status_code == 200
        assert resp.json() == {"message": "Sync started", "mode": "seeded"}
        # Background tasks finish before TestClient returns
        mock_client.sync_seeded.assert_awaited_once()
        assert service.latest_result.activity_count == 45

    def test_trigger_live(self, client, mock_client):
        resp = client.post("/sync/trigger", json={"mode": "live"})
        assert resp.json()["mode"] == "live"
        mock_client.sync_live.assert_awaited_once()

    def test_trigger_uses_stored_mode(self, client, store):
        store.set_mode("live")
        resp = client.post("/sync/trigger", json={})
        assert resp.json()["mode"] == "live"

    def test_trigger_while_running_conflicts(self, client, service, mock_client):
        service._guard.active = True
        resp = client.post("/sync/trigger", json={})
        assert resp.status_code == 409
        mock_client.sync_seeded.assert_not_awaited()

    def test_invalid_mode(self, client):
        resp = client.post("/sync/trigger", json={"mode": "turbo"})
        assert resp.status_code == 422


class TestState:
    def test_idle(self, client):
        resp = client.get("/sync/state")
        assert resp.status_code == 200
        assert resp.json() == {"running": False, "state": None, "error": None, "narratives": None}

    def test_after_successful_run(self, client):
        client.post("/sync/trigger", json={})
        body = client.get("/sync/state").json()
        assert body["state"]["phase"] == "complete"
        assert body["state"]["totalActivities"] == 45
        assert [i["id"] for i in body["state"]["integrations"]] == ["github", "jira", "slack", "figma"]
        assert {e["status"] for e in body["state"]["entries"]} == {"done"}
        assert body["error"] is None

    def test_after_failed_run(self, client, mock_client):
        mock_client.sync_seeded.side_effect = TransientError("Seeded sync failed: HTTP 503")
        client.post("/sync/trigger", json={})
        body = client.get("/sync/state").json()
        assert body["state"]["phase"] == "fetching"
        assert body["error"] == {"kind": "transient", "message": "Seeded sync failed: HTTP 503"}


class TestStatus:
    def test_never_synced(self, client):
        body = client.get("/sync/status").json()
        assert body["has_synced"] is False
        assert body["mode"] == "seeded"
        assert body["dataset"] == "v1"
        assert body["activity_count"] == 0

    def test_after_sync(self, client):
        client.post("/sync/trigger", json={})
        body = client.get("/sync/status").json()
        assert body["has_synced"] is True
        assert body["activity_count"] == 45
        assert (body["temporal_entry_count"], body["cluster_entry_count"]) == (5, 3)
        assert body["last_sync_at"] is not None


class TestClearData:
    def test_clear(self, client, mock_client):
        client.post("/sync/trigger", json={})
        resp = client.delete("/sync/data")
        assert resp.status_code == 200
        mock_client.clear.assert_awaited_once_with("test-token")
        assert client.get("/sync/status").json()["has_synced"] is False

    def test_clear_backend_failure(self, client, mock_client):
        mock_client.clear.side_effect = TransientError("Clear sync data failed: HTTP 503")
        resp = client.delete("/sync/data")
        assert resp.status_code == 502
        assert resp.json()["detail"]["kind"] == "transient"

    def test_clear_without_token(self, mock_client, store, settings, reporter, bus):
        service = SyncService(
            mock_client, store, settings=settings, reporter=reporter, bus=bus,
            token_provider=lambda: None,
        )
        app = create_app()
        app.dependency_overrides[get_sync_service] = lambda: service
        with TestClient(app) as c:
            resp = c.delete("/sync/data")
        assert resp.status_code == 401
        assert resp.json()["detail"]["message"] == "Please sign in again."


class TestModeAndDataset:
    def test_set_mode(self, client, store):
        resp = client.put("/sync/mode", json={"mode": "live"})
        assert resp.status_code == 200
        assert store.mode.value == "live"

    def test_switch_dataset_without_data(self, client, store):
        resp = client.put("/sync/dataset", json={"dataset": "v2"})
        assert resp.status_code == 200
        assert store.dataset == "v2"

    def test_switch_dataset_needs_confirm(self, client, store, mock_client):
        client.post("/sync/trigger", json={})
        resp = client.put("/sync/dataset", json={"dataset": "v2"})
        assert resp.status_code == 409
        assert store.dataset == "v1"

        resp = client.put("/sync/dataset", json={"dataset": "v2", "confirm": True})
        assert resp.status_code == 200
        assert store.dataset == "v2"
        mock_client.clear.assert_awaited_once()

    def test_unknown_dataset(self, client):
        resp = client.put("/sync/dataset", json={"dataset": "v9"})
        assert resp.status_code == 422


class TestCatalogAndDiagnostics:
    def test_integration_catalog(self, client):
        body = client.get("/sync/integrations").json()
        assert body[0] == {
            "id": "github",
            "name": "GitHub",
            "icon": "github",
            "item_label": "commits & PRs",
        }
        assert len(body) == 7

    def test_diagnostics_export_and_clear(self, client, reporter):
        reporter.capture("Sync:jira", "jira sync failed: token expired")
        body = client.get("/diagnostics").json()
        assert body["errors"][0]["source"] == "Sync:jira"
        assert "exportedAt" in body

        assert client.delete("/diagnostics").status_code == 200
        assert reporter.errors == []
