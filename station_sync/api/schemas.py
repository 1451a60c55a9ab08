"""
Pydantic schemas for Station API request/response models
"""

from typing import Optional, List, Dict, Any
from pydantic import BaseModel, ConfigDict, Field


class TokenRequest(BaseModel):
    token: str = Field(..., min_length=1)


class MarkCleanRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    item_ids: List[str] = Field(..., alias='itemIds', min_length=1)


class ItemResponse(BaseModel):
    id: str
    rfid_tag: str
    tenant_id: str
    item_type_id: str
    status: str
    tenant_name: Optional[str] = None
    item_type_name: Optional[str] = None
    updated_at: Optional[str] = None
    synced_at: Optional[str] = None


class TenantResponse(BaseModel):
    id: str
    name: str
    qr_code: Optional[str] = None
    updated_at: Optional[str] = None


class ItemTypeResponse(BaseModel):
    id: str
    name: str
    sort_order: int = 0


class StatsResponse(BaseModel):
    items_count: int
    tenants_count: int
    item_types_count: int
    pending_operations_count: int
    last_sync_time: Optional[str] = None
    sample_rfids: List[str] = Field(default_factory=list)


class SyncResultResponse(BaseModel):
    success: bool
    items_count: int = 0
    stats: Optional[Dict[str, Any]] = None
    reason: Optional[str] = None
    error: Optional[str] = None


class SyncStatusResponse(BaseModel):
    state: str
    last_outcome: Optional[str] = None
    sync_in_progress: bool
    online: bool
    last_sync_time: Optional[str] = None
    events: List[Dict[str, Any]] = Field(default_factory=list)


class MarkCleanResponse(BaseModel):
    success: bool
    online: bool
    queued: bool
    operation_id: Optional[int] = None
    result: Any = None


class PendingOperationResponse(BaseModel):
    id: int
    operation_type: str
    endpoint: str
    method: str
    payload: Any = None
    created_at: Optional[str] = None
    retry_count: int = 0
    last_error: Optional[str] = None


class PendingResponse(BaseModel):
    count: int
    operations: List[PendingOperationResponse] = Field(default_factory=list)


class DrainResponse(BaseModel):
    processed: int
    failed: int
    remaining: int


class OnlineResponse(BaseModel):
    online: bool


class DebugSearchResponse(BaseModel):
    total_items: int
    search_term: str
    match_count: int
    matches: List[Dict[str, Any]] = Field(default_factory=list)
    sample_tags: List[str] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    error_type: str
    status: Optional[int] = None
