"""
Core data models for the station cache
SQLAlchemy tables for the local SQLite cache plus the domain objects handed to callers
"""

import json
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Dict, Any, List, Optional

from sqlalchemy import Column, String, Integer, Text, Index
from sqlalchemy.orm import declarative_base

Base = declarative_base()

LAST_SYNC_KEY = 'last_full_sync'


class SyncState(Enum):
    """Lifecycle of a single sync pass"""
    IDLE = "idle"
    SYNCING = "syncing"
    COMPLETED = "completed"
    ERROR = "error"


class ItemDB(Base):
    """Cached textile item, keyed by the remote id"""
    __tablename__ = 'items'

    id = Column(String, primary_key=True)
    rfid_tag = Column(String, nullable=False, unique=True)
    tenant_id = Column(String, nullable=False)
    item_type_id = Column(String, nullable=False)
    status = Column(String, nullable=False)
    tenant_name = Column(String, nullable=True)
    item_type_name = Column(String, nullable=True)
    updated_at = Column(String, nullable=False)
    synced_at = Column(String, nullable=False)

    __table_args__ = (
        Index('idx_items_rfid', 'rfid_tag'),
        Index('idx_items_tenant', 'tenant_id'),
        Index('idx_items_updated', 'updated_at'),
    )


class TenantDB(Base):
    """Cached tenant (hotel)"""
    __tablename__ = 'tenants'

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    qr_code = Column(String, nullable=True)
    updated_at = Column(String, nullable=False)

    def to_domain_model(self) -> 'CachedTenant':
        return CachedTenant(
            id=self.id,
            name=self.name,
            qr_code=self.qr_code,
            updated_at=self.updated_at
        )


class ItemTypeDB(Base):
    """Cached item type"""
    __tablename__ = 'item_types'

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    sort_order = Column(Integer, default=0)

    def to_domain_model(self) -> 'CachedItemType':
        return CachedItemType(id=self.id, name=self.name, sort_order=self.sort_order or 0)


class PendingOperationDB(Base):
    """Offline queue entry awaiting confirmation from the remote API"""
    __tablename__ = 'pending_operations'
    __table_args__ = {'sqlite_autoincrement': True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    operation_type = Column(String, nullable=False)
    endpoint = Column(String, nullable=False)
    method = Column(String, nullable=False)
    payload = Column(Text, nullable=True)
    created_at = Column(String, nullable=False)
    retry_count = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)

    def to_domain_model(self) -> 'PendingOperation':
        """Convert to domain model, decoding the stored JSON body"""
        return PendingOperation(
            id=self.id,
            operation_type=self.operation_type,
            endpoint=self.endpoint,
            method=self.method,
            payload=json.loads(self.payload) if self.payload else None,
            created_at=self.created_at,
            retry_count=self.retry_count or 0,
            last_error=self.last_error
        )


class SyncMetaDB(Base):
    """Small key/value table for sync bookkeeping"""
    __tablename__ = 'sync_meta'

    key = Column(String, primary_key=True)
    value = Column(String, nullable=False)


@dataclass
class CachedItem:
    """Item as returned by an RFID lookup"""
    id: str
    rfid_tag: str
    tenant_id: str
    item_type_id: str
    status: str
    tenant_name: Optional[str] = None
    item_type_name: Optional[str] = None
    updated_at: Optional[str] = None
    synced_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CachedTenant:
    id: str
    name: str
    qr_code: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CachedItemType:
    id: str
    name: str
    sort_order: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PendingOperation:
    """Queued remote mutation"""
    id: int
    operation_type: str
    endpoint: str
    method: str
    payload: Any = None
    created_at: Optional[str] = None
    retry_count: int = 0
    last_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class UpsertResult:
    """Outcome of a bulk upsert"""
    upserted: int = 0
    skipped: int = 0


@dataclass
class CacheStats:
    """Counts of everything currently cached"""
    items_count: int = 0
    tenants_count: int = 0
    item_types_count: int = 0
    pending_operations_count: int = 0
    last_sync_time: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SyncResult:
    """Result of a full or delta sync"""
    success: bool
    items_count: int = 0
    stats: Optional[CacheStats] = None
    reason: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'success': self.success,
            'items_count': self.items_count,
            'stats': self.stats.to_dict() if self.stats else None,
            'reason': self.reason,
            'error': self.error
        }
        return {k: v for k, v in data.items() if v is not None}


@dataclass
class DrainResult:
    """Outcome of one pass over the offline queue"""
    processed: int = 0
    failed: int = 0
    remaining: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class MarkCleanResult:
    """Result of a mark-clean request; success is always True once accepted"""
    success: bool = True
    online: bool = True
    queued: bool = False
    operation_id: Optional[int] = None
    result: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class DebugSearchResult:
    """Diagnostic substring search over cached tags"""
    total_items: int
    search_term: str
    matches: List[Dict[str, Any]] = field(default_factory=list)
    sample_tags: List[str] = field(default_factory=list)

    @property
    def match_count(self) -> int:
        return len(self.matches)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['match_count'] = self.match_count
        return data
