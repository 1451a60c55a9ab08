"""
Local Store for the station cache
In-memory SQLite database mirrored to a snapshot file on disk

The in-memory database is authoritative for the lifetime of the process.
A background task copies it to disk whenever the revision counter has moved
since the last successful save.
"""

import asyncio
import logging
import os
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Union

from sqlalchemy import create_engine, func, select, delete
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from station_sync.core.exceptions import StoreNotOpenError
from station_sync.core.models import (
    Base, ItemDB, TenantDB, ItemTypeDB, PendingOperationDB, SyncMetaDB,
    CachedItem, CachedTenant, CachedItemType, PendingOperation,
    UpsertResult, CacheStats, DebugSearchResult, LAST_SYNC_KEY
)
from station_sync.core.normalization import (
    normalize_item_record, normalize_tenant_record, normalize_item_type_record,
    normalize_rfid_tag
)
from station_sync.core.offline_queue import OfflineQueue
from station_sync.core.timeutils import utc_now, to_iso, parse_iso


class LocalStore:
    """Durable, queryable cache of server-authoritative entities"""

    def __init__(
        self,
        path: Optional[Union[str, Path]] = None,
        autosave_interval: float = 5.0,
        clock: Callable[[], datetime] = utc_now
    ):
        # path=None keeps the store purely in memory (nothing is ever flushed)
        self.path = Path(path) if path else None
        self.autosave_interval = autosave_interval
        self.clock = clock
        self.logger = logging.getLogger(__name__)

        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None
        self._lock = threading.RLock()
        self._flush_lock = threading.Lock()
        self._revision = 0
        self._saved_revision = 0
        self._autosave_task: Optional[asyncio.Task] = None

        self.queue = OfflineQueue(self)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    def open(self) -> 'LocalStore':
        """Load the snapshot (if any) and make sure the schema exists"""
        with self._lock:
            if self._engine is not None:
                return self

            engine = create_engine(
                'sqlite://',
                poolclass=StaticPool,
                connect_args={'check_same_thread': False},
                future=True
            )

            try:
                if self.path and self.path.exists():
                    self._load_snapshot(engine)
                    self.logger.info(f"Loaded existing cache from {self.path}")
                else:
                    self.logger.info("Created new empty cache")

                Base.metadata.create_all(engine)
            except Exception as e:
                engine.dispose()
                self.logger.error(f"Failed to open local store: {e}")
                raise

            self._engine = engine
            self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)
            self._touch()
            self.logger.info(f"Local store ready (snapshot path: {self.path})")
            return self

    def _load_snapshot(self, engine: Engine) -> None:
        source = sqlite3.connect(str(self.path))
        try:
            raw = engine.raw_connection()
            try:
                source.backup(raw.driver_connection)
            finally:
                raw.close()
        finally:
            source.close()

    async def close(self) -> None:
        """Stop autosave, attempt a final flush and release the database"""
        await self.stop_autosave()

        if self._engine is None:
            return

        await asyncio.to_thread(self.flush)

        with self._lock:
            self._engine.dispose()
            self._engine = None
            self._session_factory = None
        self.logger.info("Local store closed")

    # ------------------------------------------------------------------
    # Sessions and revision tracking
    # ------------------------------------------------------------------

    def _touch(self) -> None:
        self._revision += 1

    @property
    def revision(self) -> int:
        return self._revision

    @property
    def is_dirty(self) -> bool:
        return self._revision != self._saved_revision

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Read-only session under the store lock"""
        if self._session_factory is None:
            raise StoreNotOpenError("Local store is not open")

        with self._lock:
            with self._session_factory() as session:
                yield session

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Atomic write: commit and bump the revision, or roll back everything"""
        if self._session_factory is None:
            raise StoreNotOpenError("Local store is not open")

        with self._lock:
            with self._session_factory() as session:
                try:
                    yield session
                    session.commit()
                except Exception:
                    session.rollback()
                    raise
                self._touch()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def flush(self) -> bool:
        """
        Write the in-memory database to the snapshot file if it changed.

        The copy is taken under the store lock; the disk write happens outside
        it. Only the revision captured with the copy is marked saved, so writes
        that land during the disk write keep the store dirty.

        Returns True when the snapshot on disk is current.
        """
        if self.path is None or self._engine is None:
            return False

        with self._flush_lock:
            with self._lock:
                revision = self._revision
                if revision == self._saved_revision:
                    return True
                snapshot = sqlite3.connect(':memory:', check_same_thread=False)
                raw = self._engine.raw_connection()
                try:
                    raw.driver_connection.backup(snapshot)
                finally:
                    raw.close()

            try:
                self._write_snapshot(snapshot)
            except (OSError, sqlite3.Error) as e:
                self.logger.error(f"Failed to save cache to {self.path}: {e}")
                return False
            finally:
                snapshot.close()

            with self._lock:
                self._saved_revision = max(self._saved_revision, revision)

        self.logger.debug(f"Cache saved to disk (revision {revision})")
        return True

    def _write_snapshot(self, snapshot: sqlite3.Connection) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + '.tmp')
        if tmp_path.exists():
            tmp_path.unlink()

        target = sqlite3.connect(str(tmp_path))
        try:
            snapshot.backup(target)
        finally:
            target.close()
        os.replace(tmp_path, self.path)

    def start_autosave(self) -> None:
        """Schedule the periodic flush on the running event loop"""
        if self._autosave_task is not None and not self._autosave_task.done():
            return
        self._autosave_task = asyncio.create_task(self._autosave_loop())

    async def stop_autosave(self) -> None:
        task, self._autosave_task = self._autosave_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _autosave_loop(self) -> None:
        while True:
            await asyncio.sleep(self.autosave_interval)
            if not self.is_dirty:
                continue
            try:
                await asyncio.to_thread(self.flush)
            except Exception as e:
                self.logger.error(f"Autosave error: {e}")

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    def lookup_by_rfid(self, rfid_tag: Optional[str]) -> Optional[CachedItem]:
        """Exact, case-insensitive lookup; None means not cached"""
        normalized = normalize_rfid_tag(rfid_tag)
        if not normalized:
            return None

        stmt = (
            select(ItemDB, TenantDB.name, ItemTypeDB.name)
            .outerjoin(TenantDB, TenantDB.id == ItemDB.tenant_id)
            .outerjoin(ItemTypeDB, ItemTypeDB.id == ItemDB.item_type_id)
            .where(ItemDB.rfid_tag == normalized)
        )

        with self.session() as session:
            row = session.execute(stmt).first()

        if row is None:
            self.logger.debug(f"RFID not found: {normalized}")
            return None

        item, tenant_name, item_type_name = row
        return CachedItem(
            id=item.id,
            rfid_tag=item.rfid_tag,
            tenant_id=item.tenant_id,
            item_type_id=item.item_type_id,
            status=item.status,
            tenant_name=tenant_name or item.tenant_name,
            item_type_name=item_type_name or item.item_type_name,
            updated_at=item.updated_at,
            synced_at=item.synced_at
        )

    def upsert_items(self, items: Optional[List[Dict[str, Any]]]) -> UpsertResult:
        """Insert-or-replace a batch of raw item records in one transaction"""
        if not items:
            return UpsertResult()

        now = to_iso(self.clock())
        rows = []
        skipped = 0

        for raw in items:
            record = normalize_item_record(raw)
            if record is None:
                skipped += 1
                continue
            record['updated_at'] = record['updated_at'] or now
            record['synced_at'] = now
            rows.append(record)

        if skipped:
            self.logger.info(f"Skipped {skipped} items without RFID tag or required fields")

        if rows:
            stmt = ItemDB.__table__.insert().prefix_with('OR REPLACE')
            try:
                with self.transaction() as session:
                    session.connection().execute(stmt, rows)
            except Exception as e:
                self.logger.error(f"Error upserting items, batch rolled back: {e}")
                raise

        return UpsertResult(upserted=len(rows), skipped=skipped)

    def items_count(self) -> int:
        with self.session() as session:
            return session.scalar(select(func.count()).select_from(ItemDB)) or 0

    def sample_rfids(self, limit: int = 5) -> List[str]:
        with self.session() as session:
            return list(session.scalars(select(ItemDB.rfid_tag).limit(limit)))

    def clear_items(self) -> None:
        with self.transaction() as session:
            session.execute(delete(ItemDB))
        self.logger.info("Cleared all cached items")

    def debug_search(self, term: str, limit: int = 10) -> DebugSearchResult:
        """Diagnostic substring search; never used for lookups"""
        normalized = (term or '').strip().upper()

        with self.session() as session:
            total = session.scalar(select(func.count()).select_from(ItemDB)) or 0
            rows = session.execute(
                select(ItemDB.rfid_tag, ItemDB.tenant_id, ItemDB.item_type_id, ItemDB.status)
                .where(func.upper(ItemDB.rfid_tag).contains(normalized, autoescape=True))
                .limit(limit)
            ).all()
            samples = list(session.scalars(
                select(ItemDB.rfid_tag).order_by(func.random()).limit(10)
            ))

        return DebugSearchResult(
            total_items=total,
            search_term=normalized,
            matches=[dict(row._mapping) for row in rows],
            sample_tags=samples
        )

    # ------------------------------------------------------------------
    # Tenants and item types
    # ------------------------------------------------------------------

    def upsert_tenants(self, tenants: Optional[List[Dict[str, Any]]]) -> UpsertResult:
        if not tenants:
            return UpsertResult()

        now = to_iso(self.clock())
        rows = []
        for raw in tenants:
            record = normalize_tenant_record(raw)
            record['updated_at'] = record['updated_at'] or now
            rows.append(record)

        stmt = TenantDB.__table__.insert().prefix_with('OR REPLACE')
        with self.transaction() as session:
            session.connection().execute(stmt, rows)
        return UpsertResult(upserted=len(rows))

    def upsert_item_types(self, item_types: Optional[List[Dict[str, Any]]]) -> UpsertResult:
        if not item_types:
            return UpsertResult()

        rows = [normalize_item_type_record(raw) for raw in item_types]
        stmt = ItemTypeDB.__table__.insert().prefix_with('OR REPLACE')
        with self.transaction() as session:
            session.connection().execute(stmt, rows)
        return UpsertResult(upserted=len(rows))

    def list_tenants(self) -> List[CachedTenant]:
        with self.session() as session:
            rows = session.scalars(select(TenantDB).order_by(TenantDB.name)).all()
            return [row.to_domain_model() for row in rows]

    def list_item_types(self) -> List[CachedItemType]:
        with self.session() as session:
            rows = session.scalars(
                select(ItemTypeDB).order_by(ItemTypeDB.sort_order, ItemTypeDB.name)
            ).all()
            return [row.to_domain_model() for row in rows]

    # ------------------------------------------------------------------
    # Offline queue
    # ------------------------------------------------------------------

    def enqueue_pending_operation(self, operation_type: str, endpoint: str,
                                  method: str, payload: Any = None) -> int:
        return self.queue.enqueue(operation_type, endpoint, method, payload)

    def list_pending_operations(self, limit: int = 100) -> List[PendingOperation]:
        return self.queue.list(limit)

    def remove_pending_operation(self, operation_id: int) -> None:
        self.queue.remove(operation_id)

    def record_pending_operation_failure(self, operation_id: int, error_message: str) -> None:
        self.queue.record_failure(operation_id, error_message)

    def pending_operations_count(self) -> int:
        return self.queue.count()

    # ------------------------------------------------------------------
    # Sync metadata
    # ------------------------------------------------------------------

    def get_meta(self, key: str) -> Optional[str]:
        with self.session() as session:
            row = session.get(SyncMetaDB, key)
            return row.value if row else None

    def set_meta(self, key: str, value: str) -> None:
        with self.transaction() as session:
            session.merge(SyncMetaDB(key=key, value=value))

    def get_sync_watermark(self) -> Optional[str]:
        return self.get_meta(LAST_SYNC_KEY)

    def set_sync_watermark(self, value: Optional[Union[str, datetime]] = None) -> str:
        """
        Advance the watermark. An older value than the stored one is ignored,
        so the watermark only ever moves forward. Returns the stored value.
        """
        new_value = parse_iso(value) if value is not None else self.clock()
        if new_value is None:
            raise ValueError(f"Invalid watermark timestamp: {value!r}")

        with self._lock:
            current = self.get_sync_watermark()
            current_dt = parse_iso(current)
            if current_dt is not None and current_dt > new_value:
                self.logger.debug(f"Ignoring watermark {to_iso(new_value)} older than {current}")
                return current

            stored = to_iso(new_value)
            self.set_meta(LAST_SYNC_KEY, stored)
            return stored

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def stats(self) -> CacheStats:
        with self.session() as session:
            items = session.scalar(select(func.count()).select_from(ItemDB)) or 0
            tenants = session.scalar(select(func.count()).select_from(TenantDB)) or 0
            item_types = session.scalar(select(func.count()).select_from(ItemTypeDB)) or 0
            pending = session.scalar(select(func.count()).select_from(PendingOperationDB)) or 0
            last_sync = session.get(SyncMetaDB, LAST_SYNC_KEY)

        return CacheStats(
            items_count=items,
            tenants_count=tenants,
            item_types_count=item_types,
            pending_operations_count=pending,
            last_sync_time=last_sync.value if last_sync else None
        )
