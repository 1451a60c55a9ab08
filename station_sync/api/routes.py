"""
Station API Router
Local HTTP surface for the station UI: session, sync, lookups and the offline queue
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status

from station_sync import __version__
from station_sync.api.dependencies import get_coordinator, get_store
from station_sync.api.schemas import (
    TokenRequest, MarkCleanRequest, ItemResponse, TenantResponse, ItemTypeResponse,
    StatsResponse, SyncResultResponse, SyncStatusResponse, MarkCleanResponse,
    PendingResponse, DrainResponse, OnlineResponse, DebugSearchResponse
)
from station_sync.core.local_store import LocalStore
from station_sync.core.sync_coordinator import SyncCoordinator

router = APIRouter()
logger = logging.getLogger(__name__)


def _stats_payload(store: LocalStore) -> dict:
    return {**store.stats().to_dict(), 'sample_rfids': store.sample_rfids(5)}


# ----------------------------------------------------------------------
# Session
# ----------------------------------------------------------------------

@router.post("/session", response_model=StatsResponse)
async def start_session(
    request: TokenRequest,
    coordinator: SyncCoordinator = Depends(get_coordinator)
):
    """Set the token and initialize the cache; an empty cache starts a background sync"""
    await coordinator.initialize(request.token)
    return _stats_payload(coordinator.store)


@router.put("/session/token", response_model=OnlineResponse)
async def update_token(
    request: TokenRequest,
    coordinator: SyncCoordinator = Depends(get_coordinator)
):
    coordinator.set_auth_token(request.token)
    return {'online': coordinator.is_online}


# ----------------------------------------------------------------------
# Sync
# ----------------------------------------------------------------------

@router.post("/sync/full", response_model=SyncResultResponse)
async def trigger_full_sync(coordinator: SyncCoordinator = Depends(get_coordinator)):
    logger.info("Manual full sync triggered")
    result = await coordinator.full_sync()
    return result.to_dict()


@router.post("/sync/delta", response_model=SyncResultResponse)
async def trigger_delta_sync(coordinator: SyncCoordinator = Depends(get_coordinator)):
    logger.info("Manual delta sync triggered")
    result = await coordinator.delta_sync()
    return result.to_dict()


@router.get("/sync/status", response_model=SyncStatusResponse)
async def get_sync_status(
    limit: int = Query(10, ge=1, le=50),
    coordinator: SyncCoordinator = Depends(get_coordinator)
):
    last_sync_time = coordinator.store.get_sync_watermark() if coordinator.store.is_open else None
    return {
        'state': coordinator.state.value,
        'last_outcome': coordinator.last_outcome.value if coordinator.last_outcome else None,
        'sync_in_progress': coordinator.sync_in_progress,
        'online': coordinator.is_online,
        'last_sync_time': last_sync_time,
        'events': [event.to_dict() for event in coordinator.broadcaster.recent(limit)]
    }


# ----------------------------------------------------------------------
# Items
# ----------------------------------------------------------------------

@router.get("/items/rfid/{tag}", response_model=ItemResponse)
async def lookup_item(tag: str, store: LocalStore = Depends(get_store)):
    """Scanner hot path: answered from the local cache only"""
    item = store.lookup_by_rfid(tag)
    if item is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"RFID tag '{tag}' not found in cache"
        )
    return item.to_dict()


@router.post("/items/mark-clean", response_model=MarkCleanResponse)
async def mark_items_clean(
    request: MarkCleanRequest,
    coordinator: SyncCoordinator = Depends(get_coordinator)
):
    result = await coordinator.mark_items_clean(request.item_ids)
    return result.to_dict()


# ----------------------------------------------------------------------
# Reference data and stats
# ----------------------------------------------------------------------

@router.get("/stats", response_model=StatsResponse)
async def get_stats(store: LocalStore = Depends(get_store)):
    return _stats_payload(store)


@router.get("/tenants", response_model=List[TenantResponse])
async def list_tenants(store: LocalStore = Depends(get_store)):
    return [tenant.to_dict() for tenant in store.list_tenants()]


@router.get("/item-types", response_model=List[ItemTypeResponse])
async def list_item_types(store: LocalStore = Depends(get_store)):
    return [item_type.to_dict() for item_type in store.list_item_types()]


# ----------------------------------------------------------------------
# Offline queue
# ----------------------------------------------------------------------

@router.get("/pending", response_model=PendingResponse)
async def get_pending(
    limit: int = Query(20, ge=1, le=100),
    store: LocalStore = Depends(get_store)
):
    return {
        'count': store.pending_operations_count(),
        'operations': [op.to_dict() for op in store.list_pending_operations(limit)]
    }


@router.post("/pending/process", response_model=DrainResponse)
async def process_pending(coordinator: SyncCoordinator = Depends(get_coordinator)):
    result = await coordinator.process_pending_operations()
    return result.to_dict()


# ----------------------------------------------------------------------
# Diagnostics
# ----------------------------------------------------------------------

@router.get("/online", response_model=OnlineResponse)
async def get_online(coordinator: SyncCoordinator = Depends(get_coordinator)):
    return {'online': coordinator.is_online}


@router.get("/debug/search", response_model=DebugSearchResponse)
async def debug_search(
    term: str = Query(..., min_length=1),
    store: LocalStore = Depends(get_store)
):
    return store.debug_search(term).to_dict()


@router.get("/health")
async def health_check(coordinator: SyncCoordinator = Depends(get_coordinator)):
    return {
        'status': 'healthy' if coordinator.store.is_open else 'starting',
        'version': __version__,
        'store_open': coordinator.store.is_open,
        'online': coordinator.is_online,
        'sync_state': coordinator.state.value
    }
