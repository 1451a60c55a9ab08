"""
Pytest configuration and fixtures for station sync tests
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs

import pytest

from station_sync.core.exceptions import AuthenticationMissingError
from station_sync.core.local_store import LocalStore
from station_sync.core.status import StatusBroadcaster
from station_sync.core.sync_coordinator import SyncCoordinator


class FakeClock:
    """Settable clock injected into the store and coordinator"""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 1.0) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class FakeRemoteApi:
    """
    In-process stand-in for RemoteApiClient.

    Serves tenants, item types and paginated items from lists, records every
    call, and raises queued exceptions per path to simulate outages.
    """

    def __init__(self):
        self.tenants: List[Dict[str, Any]] = [
            {'id': 't1', 'name': 'Grand Hotel', 'qrCode': 'QR-T1', 'updatedAt': '2024-01-01T00:00:00.000Z'},
            {'id': 't2', 'name': 'Beach Resort', 'qrCode': 'QR-T2', 'updatedAt': '2024-01-01T00:00:00.000Z'},
        ]
        self.item_types: List[Dict[str, Any]] = [
            {'id': 'it1', 'name': 'Towel', 'sortOrder': 2},
            {'id': 'it2', 'name': 'Bed Sheet', 'sortOrder': 1},
        ]
        self.item_pages: List[List[Dict[str, Any]]] = []
        self.delta_pages: List[List[Dict[str, Any]]] = []
        self.failures: Dict[str, List[Exception]] = {}
        self.items_page_failures: Dict[int, Exception] = {}
        self.calls: List[Dict[str, Any]] = []
        self.gate: Optional[asyncio.Event] = None
        self.closed = False

    def fail_next(self, path: str, error: Exception) -> None:
        self.failures.setdefault(path, []).append(error)

    def calls_to(self, path: str) -> List[Dict[str, Any]]:
        return [call for call in self.calls if call['path'] == path]

    async def request(self, endpoint: str, method: str = 'GET', body: Any = None,
                      token: Optional[str] = None) -> Any:
        path, _, query = endpoint.partition('?')
        params = {key: values[0] for key, values in parse_qs(query).items()}
        self.calls.append({'path': path, 'method': method, 'body': body, 'params': params})

        if self.gate is not None:
            await self.gate.wait()

        if not token:
            raise AuthenticationMissingError("No auth token")

        queued = self.failures.get(path)
        if queued:
            raise queued.pop(0)

        if path == '/settings/tenants':
            return self.tenants
        if path == '/settings/item-types':
            return self.item_types
        if path == '/items':
            page = int(params.get('page', 1))
            if page in self.items_page_failures:
                raise self.items_page_failures[page]
            pages = self.delta_pages if 'updatedSince' in params else self.item_pages
            data = pages[page - 1] if page <= len(pages) else []
            return {
                'data': data,
                'pagination': {
                    'page': page,
                    'totalPages': max(len(pages), 1),
                    'total': sum(len(p) for p in pages)
                }
            }
        if path == '/items/mark-clean':
            return {'success': True, 'updated': len(body['itemIds'])}
        return {'success': True}

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def make_item():
    """Factory for raw item records as the remote API serves them"""

    def _make_item(index: int, **overrides) -> Dict[str, Any]:
        record = {
            'id': f'item-{index}',
            'rfidTag': f'E2000017{index:08d}',
            'tenantId': 't1',
            'itemTypeId': 'it1',
            'status': 'AT_LAUNDRY',
            'updatedAt': '2024-02-01T08:00:00.000Z'
        }
        record.update(overrides)
        return record

    return _make_item


@pytest.fixture
def store(clock):
    """Open in-memory store without a snapshot file"""
    local_store = LocalStore(path=None, clock=clock)
    local_store.open()
    return local_store


@pytest.fixture
def snapshot_path(tmp_path):
    return tmp_path / 'data' / 'rfid-cache.sqlite'


@pytest.fixture
def remote():
    return FakeRemoteApi()


@pytest.fixture
def broadcaster():
    return StatusBroadcaster()


@pytest.fixture
def coordinator(store, remote, broadcaster, clock):
    sync_coordinator = SyncCoordinator(
        store=store,
        api_client=remote,
        broadcaster=broadcaster,
        settings={'drain_delay_seconds': 0},
        clock=clock
    )
    sync_coordinator.set_auth_token('test-token')
    return sync_coordinator
