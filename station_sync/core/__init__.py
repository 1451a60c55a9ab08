"""
Core sync engine: local store, offline queue, remote client and coordinator
"""

from station_sync.core.api_client import RemoteApiClient
from station_sync.core.exceptions import (
    StationSyncError, StoreNotOpenError, AuthenticationMissingError,
    RemoteUnavailableError, RemoteRejectedError, InvalidResponseError
)
from station_sync.core.local_store import LocalStore
from station_sync.core.models import (
    SyncState, CachedItem, CachedTenant, CachedItemType, PendingOperation,
    UpsertResult, CacheStats, SyncResult, DrainResult, MarkCleanResult
)
from station_sync.core.offline_queue import OfflineQueue
from station_sync.core.status import StatusBroadcaster, SyncStatusEvent
from station_sync.core.sync_coordinator import SyncCoordinator

__all__ = [
    'RemoteApiClient', 'LocalStore', 'OfflineQueue', 'SyncCoordinator',
    'StatusBroadcaster', 'SyncStatusEvent',
    'StationSyncError', 'StoreNotOpenError', 'AuthenticationMissingError',
    'RemoteUnavailableError', 'RemoteRejectedError', 'InvalidResponseError',
    'SyncState', 'CachedItem', 'CachedTenant', 'CachedItemType', 'PendingOperation',
    'UpsertResult', 'CacheStats', 'SyncResult', 'DrainResult', 'MarkCleanResult',
]
