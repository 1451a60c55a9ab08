"""
Unit Tests for record normalization and timestamp helpers
"""

from datetime import datetime, timezone

import pytest

from station_sync.core.normalization import (
    normalize_rfid_tag, normalize_item_record, normalize_tenant_record,
    normalize_item_type_record
)
from station_sync.core.timeutils import to_iso, parse_iso


class TestNormalizeItemRecord:
    """Alias mapping for item records"""

    def test_camel_case_fields(self):
        record = normalize_item_record({
            'id': 'i1', 'rfidTag': ' e2001 ', 'tenantId': 't1', 'itemTypeId': 'it1',
            'status': 'CLEAN', 'updatedAt': '2024-01-01T00:00:00.000Z'
        })

        assert record == {
            'id': 'i1', 'rfid_tag': 'E2001', 'tenant_id': 't1', 'item_type_id': 'it1',
            'status': 'CLEAN', 'updated_at': '2024-01-01T00:00:00.000Z',
            'tenant_name': None, 'item_type_name': None
        }

    def test_snake_case_fields(self):
        record = normalize_item_record({
            'id': 7, 'rfid_tag': 'abc', 'tenant_id': 't1', 'item_type_id': 'it1', 'status': 'DIRTY'
        })

        assert record['id'] == '7'
        assert record['rfid_tag'] == 'ABC'
        assert record['updated_at'] is None

    def test_camel_case_wins_over_empty_snake_case(self):
        record = normalize_item_record({
            'id': 'i1', 'rfidTag': 'TAG', 'rfid_tag': '', 'tenant_id': 't1', 'itemTypeId': 'it1', 'status': 'CLEAN'
        })

        assert record['rfid_tag'] == 'TAG'

    def test_missing_tag_returns_none(self):
        assert normalize_item_record({'id': 'i1', 'tenantId': 't1'}) is None
        assert normalize_item_record({'id': 'i1', 'rfidTag': '   '}) is None

    @pytest.mark.parametrize('missing', ['id', 'tenantId', 'itemTypeId', 'status'])
    def test_missing_required_field_returns_none(self, missing):
        record = {'id': 'i1', 'rfidTag': 'TAG', 'tenantId': 't1', 'itemTypeId': 'it1', 'status': 'CLEAN'}
        del record[missing]

        assert normalize_item_record(record) is None

    def test_blank_status_returns_none(self):
        assert normalize_item_record({
            'id': 'i1', 'rfidTag': 'TAG', 'tenantId': 't1', 'itemTypeId': 'it1', 'status': ''
        }) is None

    def test_non_dict_returns_none(self):
        assert normalize_item_record(None) is None
        assert normalize_item_record('E200') is None

    def test_nested_names(self):
        record = normalize_item_record({
            'id': 'i1', 'rfidTag': 'TAG', 'tenantId': 't1', 'itemTypeId': 'it1', 'status': 'CLEAN',
            'tenant': {'id': 't1', 'name': 'Hotel'},
            'item_type': {'id': 'it1', 'name': 'Towel'}
        })

        assert record['tenant_name'] == 'Hotel'
        assert record['item_type_name'] == 'Towel'


class TestReferenceRecords:
    """Tenants and item types"""

    def test_tenant_qr_code_alias(self):
        assert normalize_tenant_record({'id': 1, 'name': 'Hotel', 'qrCode': 'Q'}) == {
            'id': '1', 'name': 'Hotel', 'qr_code': 'Q', 'updated_at': None
        }

    def test_item_type_sort_order_defaults_to_zero(self):
        assert normalize_item_type_record({'id': 'a', 'name': 'Towel'})['sort_order'] == 0
        assert normalize_item_type_record({'id': 'a', 'name': 'Towel', 'sortOrder': '3'})['sort_order'] == 3


class TestRfidTag:

    def test_normalize_rfid_tag(self):
        assert normalize_rfid_tag(' e200abc\n') == 'E200ABC'
        assert normalize_rfid_tag('') is None
        assert normalize_rfid_tag(None) is None


class TestTimestamps:
    """ISO-8601 helpers"""

    def test_to_iso_uses_milliseconds_and_z(self):
        value = datetime(2024, 3, 1, 12, 30, 15, 123456, tzinfo=timezone.utc)

        assert to_iso(value) == '2024-03-01T12:30:15.123Z'

    def test_naive_datetimes_are_utc(self):
        assert to_iso(datetime(2024, 3, 1, 12, 0, 0)) == '2024-03-01T12:00:00.000Z'

    def test_parse_iso_accepts_z_suffix(self):
        parsed = parse_iso('2024-03-01T12:00:00.000Z')

        assert parsed == datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

    def test_parse_iso_converts_offsets(self):
        parsed = parse_iso('2024-03-01T14:00:00+02:00')

        assert parsed == datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

    def test_parse_iso_rejects_garbage(self):
        assert parse_iso('not a date') is None
        assert parse_iso('') is None
        assert parse_iso(None) is None
