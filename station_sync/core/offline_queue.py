"""
Offline queue of remote mutations awaiting confirmation

Entries live in the local store's pending_operations table, so they are part
of every snapshot and survive restarts. Delivery is at-least-once: an entry is
removed only after the remote API confirmed it, and no idempotency key is sent.
"""

import json
import logging
from typing import Any, List, Optional, TYPE_CHECKING

from sqlalchemy import select, func, update, delete

from station_sync.core.models import PendingOperationDB, PendingOperation
from station_sync.core.timeutils import to_iso

if TYPE_CHECKING:
    from station_sync.core.local_store import LocalStore

DEFAULT_BATCH_LIMIT = 100


class OfflineQueue:
    """FIFO view over the pending_operations table"""

    def __init__(self, store: 'LocalStore'):
        self.store = store
        self.logger = logging.getLogger(__name__)

    def enqueue(self, operation_type: str, endpoint: str, method: str, payload: Any = None) -> int:
        """Append an operation and return its id"""
        entry = PendingOperationDB(
            operation_type=operation_type,
            endpoint=endpoint,
            method=method.upper(),
            payload=json.dumps(payload) if payload is not None else None,
            created_at=to_iso(self.store.clock()),
            retry_count=0
        )

        with self.store.transaction() as session:
            session.add(entry)
            session.flush()
            operation_id = entry.id

        self.logger.info(f"Queued operation {operation_id}: {operation_type} {method.upper()} {endpoint}")
        return operation_id

    def list(self, limit: int = DEFAULT_BATCH_LIMIT) -> List[PendingOperation]:
        """Oldest first, at most ``limit`` entries"""
        stmt = (
            select(PendingOperationDB)
            .order_by(PendingOperationDB.id.asc())
            .limit(limit)
        )
        with self.store.session() as session:
            return [row.to_domain_model() for row in session.scalars(stmt).all()]

    def get(self, operation_id: int) -> Optional[PendingOperation]:
        with self.store.session() as session:
            row = session.get(PendingOperationDB, operation_id)
            return row.to_domain_model() if row else None

    def remove(self, operation_id: int) -> None:
        with self.store.transaction() as session:
            session.execute(delete(PendingOperationDB).where(PendingOperationDB.id == operation_id))

    def record_failure(self, operation_id: int, error_message: str) -> None:
        """Bump the retry counter and keep the entry queued"""
        with self.store.transaction() as session:
            session.execute(
                update(PendingOperationDB)
                .where(PendingOperationDB.id == operation_id)
                .values(
                    retry_count=PendingOperationDB.retry_count + 1,
                    last_error=error_message
                )
            )

    def count(self) -> int:
        with self.store.session() as session:
            return session.scalar(select(func.count()).select_from(PendingOperationDB)) or 0
