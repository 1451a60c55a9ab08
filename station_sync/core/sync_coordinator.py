"""
Sync Coordinator for the station cache
Full and delta synchronization against the remote API, offline queue draining
and online/offline tracking
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Coroutine, Dict, Iterable, List, Optional, Set, Tuple
from urllib.parse import urlencode

from sqlalchemy.exc import DBAPIError

from station_sync.core.api_client import RemoteApiClient
from station_sync.core.exceptions import (
    StationSyncError, AuthenticationMissingError, RemoteUnavailableError,
    InvalidResponseError
)
from station_sync.core.local_store import LocalStore
from station_sync.core.models import (
    SyncState, SyncResult, DrainResult, MarkCleanResult, CacheStats
)
from station_sync.core.status import (
    StatusBroadcaster, SyncStatusEvent, SYNCING, COMPLETED, ERROR
)
from station_sync.core.timeutils import utc_now, to_iso, parse_iso

ALREADY_IN_PROGRESS = 'already_in_progress'
MARK_CLEAN_ENDPOINT = '/items/mark-clean'

DEFAULT_SYNC_SETTINGS: Dict[str, Any] = {
    'page_size': 1000,
    'full_sync_max_pages': 500,
    'delta_sync_max_pages': 100,
    'pending_batch_limit': 100,
    'delta_overlap_seconds': 0,
    'drain_delay_seconds': 0.1,
    'shutdown_timeout_seconds': 30.0,
    'auto_sync_enabled': False,
    'auto_sync_interval_seconds': 300,
}


def public_error_message(error: Exception) -> str:
    """Short error text for results and status events; database errors omit the SQL and bound rows"""
    if isinstance(error, DBAPIError):
        return f"{type(error).__name__}: {error.orig}"
    return str(error)


class SyncCoordinator:
    """Orchestrates synchronization between the remote API and the local store"""

    def __init__(
        self,
        store: LocalStore,
        api_client: RemoteApiClient,
        broadcaster: Optional[StatusBroadcaster] = None,
        settings: Optional[Dict[str, Any]] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        self.store = store
        self.api_client = api_client
        self.broadcaster = broadcaster or StatusBroadcaster()
        self.settings = {**DEFAULT_SYNC_SETTINGS, **(settings or {})}
        self.clock = clock
        self.logger = logging.getLogger(__name__)

        self._token: Optional[str] = None
        self._online = True
        self._sync_in_progress = False
        self._drain_lock = asyncio.Lock()
        self._background_tasks: Set[asyncio.Task] = set()
        self._auto_sync_task: Optional[asyncio.Task] = None

        self.state = SyncState.IDLE
        self.last_outcome: Optional[SyncState] = None

    # ------------------------------------------------------------------
    # Session state
    # ------------------------------------------------------------------

    def set_auth_token(self, token: Optional[str]) -> None:
        self._token = token
        self.logger.info("Auth token set" if token else "Auth token cleared")

    @property
    def auth_token(self) -> Optional[str]:
        return self._token

    @property
    def is_online(self) -> bool:
        return self._online

    @property
    def sync_in_progress(self) -> bool:
        return self._sync_in_progress

    # ------------------------------------------------------------------
    # Remote calls
    # ------------------------------------------------------------------

    async def api_request(self, endpoint: str, method: str = 'GET', body: Any = None) -> Any:
        """
        Call the remote API with the stored token.

        A 2xx response marks the station online. A network failure marks it
        offline. A rejected request leaves the online flag untouched.
        """
        try:
            result = await self.api_client.request(endpoint, method, body, token=self._token)
        except RemoteUnavailableError:
            if self._online:
                self.logger.warning("Remote API unreachable, switching to offline mode")
            self._online = False
            raise
        except InvalidResponseError:
            self._online = True
            raise

        if not self._online:
            self.logger.info("Remote API reachable again")
        self._online = True
        return result

    # ------------------------------------------------------------------
    # Status reporting
    # ------------------------------------------------------------------

    def _publish(self, status: str, message: str, **kwargs) -> None:
        self.broadcaster.publish(SyncStatusEvent(status=status, message=message, **kwargs))

    def _begin_sync(self) -> None:
        self._sync_in_progress = True
        self.state = SyncState.SYNCING

    def _end_sync(self, outcome: SyncState) -> None:
        self.last_outcome = outcome
        self.state = SyncState.IDLE
        self._sync_in_progress = False

    def _fail_sync(self, label: str, error: Exception) -> SyncResult:
        self.logger.error(f"{label} error: {error}")
        message = public_error_message(error)
        self._publish(ERROR, f"{label} failed: {message}", error=message)
        self._end_sync(SyncState.ERROR)
        return SyncResult(success=False, error=message)

    # ------------------------------------------------------------------
    # Full sync
    # ------------------------------------------------------------------

    async def full_sync(self) -> SyncResult:
        """Re-download tenants, item types and all items page by page"""
        if self._sync_in_progress:
            self.logger.info("Sync already in progress, skipping")
            return SyncResult(success=False, reason=ALREADY_IN_PROGRESS)

        self._begin_sync()
        try:
            self.logger.info("Starting full sync...")
            self._publish(SYNCING, "Starting full sync...")

            self._publish(SYNCING, "Loading tenants...")
            tenants = await self.api_request('/settings/tenants')
            if isinstance(tenants, list):
                result = self.store.upsert_tenants(tenants)
                self.logger.info(f"Synced {result.upserted} tenants")

            self._publish(SYNCING, "Loading item types...")
            item_types = await self.api_request('/settings/item-types')
            if isinstance(item_types, list):
                result = self.store.upsert_item_types(item_types)
                self.logger.info(f"Synced {result.upserted} item types")

            self._publish(SYNCING, "Loading items...")
            total_items = await self._sync_item_pages(self.settings['full_sync_max_pages'])

            self.store.set_sync_watermark(self.clock())
            stats = self.store.stats()
            self.logger.info(f"Full sync completed: {stats.to_dict()}")
            self.logger.debug(f"Sample RFIDs in cache: {self.store.sample_rfids(5)}")

            self._publish(
                COMPLETED,
                f"Sync completed ({total_items} items)",
                stats=stats.to_dict()
            )
            self._end_sync(SyncState.COMPLETED)
            return SyncResult(success=True, items_count=total_items, stats=stats)

        except Exception as e:
            return self._fail_sync("Full sync", e)
        finally:
            if self._sync_in_progress:
                self._end_sync(SyncState.ERROR)

    # ------------------------------------------------------------------
    # Delta sync
    # ------------------------------------------------------------------

    async def delta_sync(self) -> SyncResult:
        """Download only items changed since the watermark"""
        if self._sync_in_progress:
            return SyncResult(success=False, reason=ALREADY_IN_PROGRESS)

        last_sync = self.store.get_sync_watermark()
        if not last_sync:
            self.logger.info("No previous sync found, doing full sync")
            return await self.full_sync()

        self._begin_sync()
        try:
            since = self._delta_since(last_sync)
            self.logger.info(f"Starting delta sync since {since}")
            self._publish(SYNCING, "Checking for changes...")

            total_items = await self._sync_item_pages(
                self.settings['delta_sync_max_pages'], updated_since=since
            )

            # Advance even when nothing changed so the next pass does not rescan
            self.store.set_sync_watermark(self.clock())
            stats = self.store.stats()
            self.logger.info(
                f"Delta sync completed: {total_items} items updated, total in cache: {stats.items_count}"
            )

            message = f"{total_items} new/changed items synced" if total_items > 0 else "No changes"
            self._publish(COMPLETED, message, stats=stats.to_dict())
            self._end_sync(SyncState.COMPLETED)
            return SyncResult(success=True, items_count=total_items, stats=stats)

        except Exception as e:
            return self._fail_sync("Delta sync", e)
        finally:
            if self._sync_in_progress:
                self._end_sync(SyncState.ERROR)

    def _delta_since(self, watermark: str) -> str:
        """Watermark sent to the server, pulled back by the configured overlap"""
        overlap = float(self.settings.get('delta_overlap_seconds') or 0)
        parsed = parse_iso(watermark)
        if parsed is None or overlap <= 0:
            return watermark
        return to_iso(parsed - timedelta(seconds=overlap))

    # ------------------------------------------------------------------
    # Paging
    # ------------------------------------------------------------------

    async def _sync_item_pages(self, max_pages: int, updated_since: Optional[str] = None) -> int:
        """Fetch /items page by page, upserting each page as soon as it arrives"""
        page = 1
        total_pages = 1
        total_items = 0
        page_size = self.settings['page_size']

        while True:
            self._publish(
                SYNCING,
                f"Loading items... (page {page}/{total_pages})",
                progress={'page': page, 'totalItems': total_items, 'totalPages': total_pages}
            )

            params = {'page': page, 'limit': page_size}
            if updated_since:
                params['updatedSince'] = updated_since
            response = await self.api_request(f"/items?{urlencode(params)}")

            items, pagination = self._unpack_page(response)
            if pagination:
                total_pages = int(pagination.get('totalPages') or 1)
                self.logger.debug(
                    f"Pagination: page {page}/{total_pages}, total items: {pagination.get('total')}"
                )

            if items:
                result = self.store.upsert_items(items)
                total_items += result.upserted
                self.logger.info(f"Page {page}: synced {result.upserted} items (total: {total_items})")

            if page >= total_pages:
                break

            page += 1
            if page > max_pages:
                self.logger.warning(f"Reached page limit ({max_pages}), stopping")
                break

        return total_items

    @staticmethod
    def _unpack_page(response: Any) -> Tuple[List[Dict[str, Any]], Optional[Dict[str, Any]]]:
        if isinstance(response, list):
            return response, None
        if not isinstance(response, dict):
            return [], None
        items = response.get('data') or []
        pagination = response.get('pagination')
        return items, pagination if isinstance(pagination, dict) else None

    # ------------------------------------------------------------------
    # Offline queue
    # ------------------------------------------------------------------

    async def process_pending_operations(self) -> DrainResult:
        """
        Replay queued operations oldest first.

        Successful replays are removed immediately. A remote rejection records
        retry metadata and moves on; losing the connection stops the pass and
        leaves the rest queued.
        """
        async with self._drain_lock:
            pending = self.store.list_pending_operations(self.settings['pending_batch_limit'])
            if not pending:
                return DrainResult()

            self.logger.info(f"Processing {len(pending)} pending operations")
            processed = 0
            failed = 0

            for op in pending:
                try:
                    await self.api_request(op.endpoint, op.method, op.payload)
                except (RemoteUnavailableError, AuthenticationMissingError) as e:
                    self.logger.error(f"Failed to process operation {op.id}: {e}")
                    self.store.record_pending_operation_failure(op.id, str(e))
                    failed += 1
                    self.logger.info("Offline, stopping pending operations processing")
                    break
                except StationSyncError as e:
                    self.logger.error(f"Operation {op.id} rejected: {e}")
                    self.store.record_pending_operation_failure(op.id, str(e))
                    failed += 1
                    continue

                self.store.remove_pending_operation(op.id)
                processed += 1
                self.logger.info(f"Processed pending operation {op.id}: {op.operation_type}")

            return DrainResult(
                processed=processed,
                failed=failed,
                remaining=self.store.pending_operations_count()
            )

    def queue_operation(self, operation_type: str, endpoint: str, method: str, payload: Any = None) -> int:
        """Enqueue an operation and, when online, try to drain shortly after"""
        operation_id = self.store.enqueue_pending_operation(operation_type, endpoint, method, payload)
        self._spawn(self._persist_queue())

        if self._online:
            self._spawn(self._drain_soon())

        return operation_id

    async def _persist_queue(self) -> None:
        try:
            await asyncio.to_thread(self.store.flush)
        except Exception as e:
            self.logger.error(f"Failed to persist queued operation: {e}")

    async def _drain_soon(self) -> None:
        await asyncio.sleep(self.settings['drain_delay_seconds'])
        try:
            await self.process_pending_operations()
        except Exception as e:
            self.logger.debug(f"Immediate drain failed: {e}")

    # ------------------------------------------------------------------
    # Domain writes
    # ------------------------------------------------------------------

    async def mark_items_clean(self, item_ids: Iterable[str]) -> MarkCleanResult:
        """Mark items clean now, or queue the request if the API is unavailable"""
        payload = {'itemIds': list(item_ids)}

        if self._online:
            try:
                result = await self.api_request(MARK_CLEAN_ENDPOINT, 'POST', payload)
                return MarkCleanResult(success=True, online=True, result=result)
            except Exception as e:
                self.logger.warning(f"Mark clean failed, queueing for later: {e}")

        operation_id = self.queue_operation('mark_clean', MARK_CLEAN_ENDPOINT, 'POST', payload)
        return MarkCleanResult(success=True, online=False, queued=True, operation_id=operation_id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self, token: Optional[str] = None) -> CacheStats:
        """
        Open the store and, if the cache is empty and we have a token, start
        a full sync in the background. Returns stats without waiting for it.
        """
        if token:
            self.set_auth_token(token)

        await asyncio.to_thread(self.store.open)
        self.store.start_autosave()

        stats = self.store.stats()
        self.logger.info(f"Cache stats: {stats.to_dict()}")

        if stats.items_count == 0 and self._token:
            self.logger.info("No cached items, starting full sync...")
            self._spawn(self.full_sync())

        if self.settings.get('auto_sync_enabled'):
            self.start_auto_sync()

        return stats

    def start_auto_sync(self, interval_seconds: Optional[float] = None) -> None:
        """Periodic delta sync followed by a queue drain"""
        if self._auto_sync_task is not None and not self._auto_sync_task.done():
            return
        interval = interval_seconds or self.settings['auto_sync_interval_seconds']
        self._auto_sync_task = asyncio.create_task(self._auto_sync_loop(interval))
        self.logger.info(f"Auto sync started (every {interval}s)")

    async def stop_auto_sync(self) -> None:
        task, self._auto_sync_task = self._auto_sync_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        self.logger.info("Auto sync stopped")

    async def _auto_sync_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            if not self._token:
                continue
            try:
                await self.delta_sync()
                await self.process_pending_operations()
            except Exception as e:
                self.logger.error(f"Error in auto sync: {e}")

    def _spawn(self, coro: Coroutine) -> Optional[asyncio.Task]:
        """Fire-and-forget; failures never reach the caller"""
        try:
            task = asyncio.get_running_loop().create_task(coro)
        except RuntimeError:
            coro.close()
            self.logger.debug("No running event loop, background work skipped")
            return None
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return task

    async def wait_for_background_tasks(self) -> None:
        """Await everything spawned so far (initial sync, drains, flushes)"""
        while self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        await self.stop_auto_sync()

        if self._background_tasks:
            _, still_running = await asyncio.wait(
                list(self._background_tasks),
                timeout=self.settings['shutdown_timeout_seconds']
            )
            for task in still_running:
                self.logger.warning("Background task still running at shutdown, cancelling")
                task.cancel()
            if still_running:
                await asyncio.gather(*still_running, return_exceptions=True)

        await self.store.close()
        await self.api_client.close()
        self.logger.info("Sync coordinator stopped")
