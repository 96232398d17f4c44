"""Status router: read-only view of this provider."""

from typing import List

from fastapi import APIRouter, HTTPException, Query
from starlette.requests import Request

from provider import __version__
from provider.deps import get_daemon
from provider.errors import BackendUnavailableError
from provider.models import AllocationView, ArtifactView, ServiceInfo, StatusResponse

router = APIRouter()


def _require_provider(daemon) -> str:
    if daemon.provider_id is None:
        raise HTTPException(status_code=503, detail="Provider not registered yet")
    return daemon.provider_id


@router.get("/", response_model=ServiceInfo)
async def root(request: Request):
    daemon = get_daemon(request)
    return ServiceInfo(
        service="Storage Provider Node",
        version=__version__,
        identity=daemon.identity_address,
        state=daemon.state.value,
    )


@router.get("/api/status", response_model=StatusResponse)
async def provider_status(request: Request):
    daemon = get_daemon(request)
    provider_id = _require_provider(daemon)
    try:
        provider = await daemon.monitoring.get_provider_status(provider_id)
        storage = await daemon.monitoring.get_storage_summary(provider_id)
    except BackendUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))
    if provider is None:
        raise HTTPException(status_code=404, detail="Provider not found")
    return {"state": daemon.state.value, "provider": provider, "storage": storage}


@router.get("/api/allocations", response_model=List[AllocationView])
async def list_allocations(request: Request):
    daemon = get_daemon(request)
    provider_id = _require_provider(daemon)
    try:
        return await daemon.allocations.active_allocations(provider_id)
    except BackendUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.get("/api/artifacts", response_model=List[ArtifactView])
async def list_artifacts(
    request: Request,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
):
    daemon = get_daemon(request)
    provider_id = _require_provider(daemon)
    try:
        return await daemon.backend.list_artifacts(provider_id, limit=limit, offset=offset)
    except BackendUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))
