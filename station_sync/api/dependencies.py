"""
API Dependencies for the Station API router
"""

import logging
from typing import Optional

from fastapi import HTTPException, status

from station_sync.core.local_store import LocalStore
from station_sync.core.sync_coordinator import SyncCoordinator

logger = logging.getLogger(__name__)

# Set during app initialization
_coordinator: Optional[SyncCoordinator] = None


def init_api_dependencies(coordinator: SyncCoordinator) -> None:
    """Register the coordinator the routes operate on"""
    global _coordinator
    _coordinator = coordinator


async def get_coordinator() -> SyncCoordinator:
    """FastAPI dependency to get the sync coordinator"""
    if _coordinator is None:
        logger.error("Sync coordinator not initialized - call init_api_dependencies first")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Sync engine not initialized"
        )
    return _coordinator


async def get_store() -> LocalStore:
    coordinator = await get_coordinator()
    return coordinator.store
