"""Pydantic response models for the status API."""

from typing import Optional
from pydantic import BaseModel


class ServiceInfo(BaseModel):
    service: str
    version: str
    identity: Optional[str] = None
    state: str


class ProviderStatus(BaseModel):
    id: str
    identity_address: str
    display_name: str
    available_capacity_gb: float
    price_per_gb: float
    active: bool
    health_status: str
    online: bool
    last_heartbeat_at: Optional[float] = None
    heartbeat_age_sec: Optional[float] = None
    updated_at: float


class StorageSummary(BaseModel):
    active_allocations: int
    users: int
    total_allocated_gb: float
    total_used_gb: float
    artifacts: int


class StatusResponse(BaseModel):
    state: str
    provider: ProviderStatus
    storage: StorageSummary


class AllocationView(BaseModel):
    id: str
    user_address: str
    allocated_gb: float
    used_gb: float
    created_at: float
    expires_at: float


class ArtifactView(BaseModel):
    id: str
    allocation_id: str
    original_file_id: str
    artifact_name: str
    file_size: int
    local_path: str
    received_at: float
