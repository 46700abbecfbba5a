"""
Async client for the career-story backend.

Wraps httpx.AsyncClient; every call goes through the RequestExecutor so
retries, classification and tracing are applied uniformly. Responses may
arrive bare or wrapped in a `{"data": ...}` envelope; both are accepted.

The session credential is passed per call rather than held by the client,
so a token refresh between runs never requires rebuilding the client.
"""
from types import TracebackType
from typing import Any, List, Optional, Sequence, Type

import httpx
from pydantic import ValidationError

from careersync.client.executor import RequestExecutor
from careersync.errors import MalformedResponseError
from careersync.models.sync import ConnectedTool, NarrativeStatus, SyncResponse

SEEDED_SYNC_PATH = "/demo/sync"
LIVE_SYNC_PATH = "/mcp/sync-and-persist"
INTEGRATIONS_PATH = "/mcp/integrations"
CLEAR_PATH = "/demo/clear"
NARRATIVE_STATUS_PATH = "/journal/narratives/status"


class CareerApiClient:
    def __init__(
        self,
        base_url: str,
        *,
        executor: Optional[RequestExecutor] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        """
        Args:
            base_url: API root, e.g. "https://api.example.com/api/v1".
            executor: RequestExecutor; a default one is created if omitted.
            http_client: Pre-built AsyncClient (tests pass a MockTransport one).
            timeout: Per-request timeout when the client builds its own AsyncClient.
        """
        self.executor = executor or RequestExecutor()
        if http_client is None:
            self._http = httpx.AsyncClient(base_url=base_url, timeout=timeout)
            self._owns_http = True
        else:
            self._http = http_client
            self._owns_http = False

    async def __aenter__(self) -> "CareerApiClient":
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    # ─── Endpoints ────────────────────────────────────────────────────────────

    async def sync_seeded(self, token: str, dataset: Optional[str] = None) -> SyncResponse:
        """Ask the backend to seed fixture data and group it into entries."""
        params = {"dataset": dataset} if dataset and dataset != "v1" else None
        response = await self._request(
            "POST", SEEDED_SYNC_PATH, token, context="Seeded sync", params=params
        )
        return self._parse(SyncResponse, response, "Seeded sync")

    async def sync_live(self, token: str, tool_types: Sequence[str]) -> SyncResponse:
        """Import from the user's connected tools and persist the activity rows."""
        response = await self._request(
            "POST",
            LIVE_SYNC_PATH,
            token,
            context="Live sync",
            json={"toolTypes": list(tool_types), "consentGiven": True},
        )
        return self._parse(SyncResponse, response, "Live sync")

    async def list_integrations(self, token: str) -> List[ConnectedTool]:
        response = await self._request("GET", INTEGRATIONS_PATH, token, context="List integrations")
        body = self._unwrap(response, "List integrations")
        raw = body.get("integrations", []) if isinstance(body, dict) else body
        try:
            return [ConnectedTool.model_validate(item) for item in raw or []]
        except (TypeError, ValidationError) as exc:
            raise MalformedResponseError(f"List integrations: unexpected body: {exc}") from exc

    async def connected_tool_types(self, token: str) -> List[str]:
        """Tool types that currently hold a valid connection."""
        return [t.tool_type for t in await self.list_integrations(token) if t.is_connected]

    async def clear(self, token: str) -> None:
        """Delete every previously synced activity and entry. Idempotent."""
        await self._request("DELETE", CLEAR_PATH, token, context="Clear sync data")

    async def narrative_status(self, token: str, entry_ids: Sequence[str]) -> NarrativeStatus:
        response = await self._request(
            "GET",
            NARRATIVE_STATUS_PATH,
            token,
            context="Narrative status",
            params={"ids": ",".join(entry_ids)},
        )
        return self._parse(NarrativeStatus, response, "Narrative status")

    # ─── Internal helpers ─────────────────────────────────────────────────────

    async def _request(
        self, method: str, path: str, token: str, *, context: str, **kwargs: Any
    ) -> httpx.Response:
        headers = {"Authorization": f"Bearer {token}"}

        def call():
            return self._http.request(method, path, headers=headers, **kwargs)

        return await self.executor.execute(call, context)

    @staticmethod
    def _unwrap(response: httpx.Response, context: str) -> Any:
        try:
            body = response.json()
        except ValueError as exc:
            raise MalformedResponseError(f"{context}: response is not JSON") from exc
        if isinstance(body, dict) and isinstance(body.get("data"), (dict, list)):
            return body["data"]
        return body

    def _parse(self, model, response: httpx.Response, context: str):
        body = self._unwrap(response, context)
        try:
            return model.model_validate(body)
        except ValidationError as exc:
            raise MalformedResponseError(f"{context}: unexpected body: {exc}") from exc
