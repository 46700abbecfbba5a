"""Sync trigger, progress and settings routes."""
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel

from careersync.errors import SyncError
from careersync.models.sync import SyncMode
from careersync.sync.integrations import INTEGRATION_META
from careersync.sync.service import SyncService, build_sync_service

router = APIRouter()

_service: Optional[SyncService] = None

# SyncError.kind → HTTP status for routes that surface backend failures
_ERROR_STATUS = {
    "auth": 401,
    "configuration": 400,
    "validation": 400,
    "not-found": 404,
    "in-progress": 409,
}


def get_sync_service() -> SyncService:
    """FastAPI dependency returning the process-wide SyncService."""
    global _service
    if _service is None:
        _service = build_sync_service()
    return _service


def _http_error(exc: SyncError) -> HTTPException:
    return HTTPException(
        status_code=_ERROR_STATUS.get(exc.kind, 502),
        detail={"kind": exc.kind, "message": exc.user_message},
    )


class SyncTriggerRequest(BaseModel):
    mode: Optional[SyncMode] = None  # If None, uses the stored feature mode


class SyncStateResponse(BaseModel):
    running: bool
    state: Optional[Dict[str, Any]]
    error: Optional[Dict[str, str]]
    narratives: Optional[Dict[str, Any]]


class SyncStatusResponse(BaseModel):
    mode: SyncMode
    dataset: str
    has_synced: bool
    last_sync_at: Optional[datetime]
    activity_count: int
    entry_count: int
    temporal_entry_count: int
    cluster_entry_count: int


class ModeRequest(BaseModel):
    mode: SyncMode


class DatasetRequest(BaseModel):
    dataset: str
    confirm: bool = False


@router.post("/trigger")
async def trigger_sync(
    request: SyncTriggerRequest,
    background_tasks: BackgroundTasks,
    service: SyncService = Depends(get_sync_service),
):
    """
    Start a sync in the background. Returns immediately; progress is
    available from GET /sync/state.
    """
    if service.is_running:
        raise HTTPException(status_code=409, detail="A sync is already in progress")
    mode = request.mode or service.store.mode
    background_tasks.add_task(service.run, mode=mode)
    return {"message": "Sync started", "mode": mode.value}


@router.get("/state", response_model=SyncStateResponse)
def sync_state(service: SyncService = Depends(get_sync_service)):
    """Latest snapshot of the current (or last) run."""
    state = service.latest_state
    error = service.latest_error
    poller = service.poller
    return SyncStateResponse(
        running=service.is_running,
        state=state.model_dump(mode="json", by_alias=True) if state else None,
        error={"kind": error.kind, "message": error.user_message} if error else None,
        narratives=(
            {"status": poller.status.value, "pendingIds": list(poller.pending_ids)}
            if poller
            else None
        ),
    )


@router.get("/status", response_model=SyncStatusResponse)
def sync_status(service: SyncService = Depends(get_sync_service)):
    """Persisted outcome of the last successful sync plus mode/dataset."""
    store = service.store
    status = store.get_sync_status()
    return SyncStatusResponse(
        mode=store.mode,
        dataset=store.dataset,
        has_synced=bool(status and status.has_synced),
        last_sync_at=status.last_sync_at if status else None,
        activity_count=status.activity_count if status else 0,
        entry_count=status.entry_count if status else 0,
        temporal_entry_count=status.temporal_entry_count if status else 0,
        cluster_entry_count=status.cluster_entry_count if status else 0,
    )


@router.delete("/data")
async def clear_data(service: SyncService = Depends(get_sync_service)):
    """Wipe synced activities/entries and reset the persisted outcome."""
    try:
        await service.clear()
    except SyncError as exc:
        raise _http_error(exc)
    return {"message": "Sync data cleared"}


@router.put("/mode")
def set_mode(request: ModeRequest, service: SyncService = Depends(get_sync_service)):
    service.set_mode(request.mode)
    return {"mode": request.mode.value}


@router.put("/dataset")
async def set_dataset(request: DatasetRequest, service: SyncService = Depends(get_sync_service)):
    """
    Select a seeded dataset. If seeded data already exists the caller must
    send confirm=true, which clears it first; otherwise 409.
    """
    try:
        switched = await service.switch_dataset(
            request.dataset, confirm=lambda: request.confirm
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except SyncError as exc:
        raise _http_error(exc)
    if not switched:
        raise HTTPException(
            status_code=409,
            detail="Existing seeded data would be mixed with the new dataset; resend with confirm=true",
        )
    return {"dataset": request.dataset}


@router.get("/integrations", response_model=List[Dict[str, Any]])
def integration_catalog():
    """Display metadata for every known tool source."""
    return [meta._asdict() for meta in INTEGRATION_META]
