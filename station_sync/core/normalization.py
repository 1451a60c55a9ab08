"""
Field normalization at the ingestion boundary

The backend has served records in both camelCase and snake_case over time.
All key aliasing lives here so the store only ever sees canonical names.
"""

from typing import Dict, Any, Iterable, Optional, Tuple

ITEM_FIELD_ALIASES: Dict[str, Tuple[str, ...]] = {
    'id': ('id',),
    'rfid_tag': ('rfidTag', 'rfid_tag'),
    'tenant_id': ('tenantId', 'tenant_id'),
    'item_type_id': ('itemTypeId', 'item_type_id'),
    'status': ('status',),
    'updated_at': ('updatedAt', 'updated_at'),
    'tenant_name': ('tenantName', 'tenant_name'),
    'item_type_name': ('itemTypeName', 'item_type_name'),
}

REQUIRED_ITEM_FIELDS = ('id', 'tenant_id', 'item_type_id', 'status')

TENANT_FIELD_ALIASES: Dict[str, Tuple[str, ...]] = {
    'id': ('id',),
    'name': ('name',),
    'qr_code': ('qrCode', 'qr_code'),
    'updated_at': ('updatedAt', 'updated_at'),
}

ITEM_TYPE_FIELD_ALIASES: Dict[str, Tuple[str, ...]] = {
    'id': ('id',),
    'name': ('name',),
    'sort_order': ('sortOrder', 'sort_order'),
}


def _first_present(record: Dict[str, Any], keys: Iterable[str]) -> Any:
    """Return the first truthy value among the alias keys"""
    for key in keys:
        value = record.get(key)
        if value not in (None, ''):
            return value
    return None


def _apply_aliases(record: Dict[str, Any], aliases: Dict[str, Tuple[str, ...]]) -> Dict[str, Any]:
    return {canonical: _first_present(record, keys) for canonical, keys in aliases.items()}


def _nested_name(record: Dict[str, Any], key: str) -> Optional[str]:
    nested = record.get(key)
    if isinstance(nested, dict):
        return nested.get('name')
    return None


def normalize_rfid_tag(tag: Optional[str]) -> Optional[str]:
    """Uppercase and strip an RFID tag; blank tags become None"""
    if tag is None:
        return None
    normalized = str(tag).strip().upper()
    return normalized or None


def normalize_item_record(record: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Map a raw item record to canonical column names.

    Returns None when the record has no RFID tag or lacks one of
    REQUIRED_ITEM_FIELDS; callers count it as skipped.
    Denormalized tenant/item type names are taken from flat fields or from
    embedded ``tenant`` / ``itemType`` objects when the API includes them.
    """
    if not isinstance(record, dict):
        return None

    normalized = _apply_aliases(record, ITEM_FIELD_ALIASES)
    normalized['rfid_tag'] = normalize_rfid_tag(normalized['rfid_tag'])
    if not normalized['rfid_tag']:
        return None
    if any(normalized[field] is None for field in REQUIRED_ITEM_FIELDS):
        return None

    normalized['id'] = str(normalized['id'])
    if normalized['tenant_name'] is None:
        normalized['tenant_name'] = _nested_name(record, 'tenant')
    if normalized['item_type_name'] is None:
        normalized['item_type_name'] = _nested_name(record, 'itemType') or _nested_name(record, 'item_type')

    return normalized


def normalize_tenant_record(record: Dict[str, Any]) -> Dict[str, Any]:
    normalized = _apply_aliases(record, TENANT_FIELD_ALIASES)
    if normalized['id'] is not None:
        normalized['id'] = str(normalized['id'])
    return normalized


def normalize_item_type_record(record: Dict[str, Any]) -> Dict[str, Any]:
    normalized = _apply_aliases(record, ITEM_TYPE_FIELD_ALIASES)
    if normalized['id'] is not None:
        normalized['id'] = str(normalized['id'])
    normalized['sort_order'] = int(normalized['sort_order'] or 0)
    return normalized
