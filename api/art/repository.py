"""
Art persistence on top of the ordered key-value store.

New records are written under partitioned keys ("art", size, id) together
with an id lookup entry ("art_by_id", id) -> {"size": n}. Records written
before partitioning still live under legacy keys ("art", id) and are never
rewritten, so lookups by id probe in a fixed order:

1. the legacy key
2. the partitioned key named by the id lookup entry
3. every allowed size (covers partitioned records without a lookup entry)
"""

from __future__ import annotations

import json
import logging

from pydantic import ValidationError as PydanticValidationError

from core import kv, pagination

from . import keys
from .schemas import ArtRecord

logger = logging.getLogger(__name__)


def _json_bytes(value: object) -> bytes:
    return json.dumps(value, ensure_ascii=True).encode("utf-8")


def _encode_record(record: ArtRecord) -> bytes:
    return record.model_dump_json(by_alias=True).encode("utf-8")


def _decode_record(art_key: keys.ArtKey, value: bytes) -> ArtRecord | None:
    try:
        data = json.loads(value)
    except ValueError:
        logger.warning("art_value_undecodable key=%s", art_key)
        return None
    if not isinstance(data, dict):
        logger.warning("art_value_not_object key=%s", art_key)
        return None

    # The key is authoritative: delete resolves records by the id in their key.
    data["id"] = art_key.id
    if isinstance(art_key, keys.PartitionedKey):
        data.setdefault("size", art_key.size)
    else:
        # Legacy records predate sizes; they were all drawn on the default grid.
        data.setdefault("size", keys.default_size())

    try:
        return ArtRecord.model_validate(data)
    except PydanticValidationError:
        logger.warning("art_value_invalid key=%s", art_key)
        return None


def _index_size(value: bytes) -> int | None:
    try:
        data = json.loads(value)
    except ValueError:
        return None
    size = data.get("size") if isinstance(data, dict) else None
    if isinstance(size, int) and not isinstance(size, bool) and size > 0:
        return size
    return None


async def insert_record(record: ArtRecord) -> None:
    """
    Write a new record under its partitioned key, then its id lookup entry.
    """
    store = kv.store()
    await store.put(keys.encode(record.size, record.id), _encode_record(record))
    # A missing lookup entry only costs the size probe in resolve().
    await store.put(keys.id_index_key(record.id), _json_bytes({"size": record.size}))


async def resolve(record_id: str) -> tuple[keys.ArtKey, bytes] | None:
    """
    Find where `record_id` is stored without knowing its key generation.

    Returns the generation-tagged key and the raw value, or None.
    """
    store = kv.store()

    legacy = keys.LegacyKey(id=record_id)
    value = await store.get(legacy.to_key())
    if value is not None:
        return legacy, value

    tried: set[int] = set()
    index_value = await store.get(keys.id_index_key(record_id))
    if index_value is not None:
        size = _index_size(index_value)
        if size is not None:
            tried.add(size)
            candidate = keys.PartitionedKey(size=size, id=record_id)
            value = await store.get(candidate.to_key())
            if value is not None:
                return candidate, value
        logger.warning("art_id_index_stale id=%s", record_id)

    for size in keys.allowed_sizes():
        if size in tried:
            continue
        candidate = keys.PartitionedKey(size=size, id=record_id)
        value = await store.get(candidate.to_key())
        if value is not None:
            return candidate, value

    return None


async def get_record(record_id: str) -> ArtRecord | None:
    found = await resolve(record_id)
    if found is None:
        return None
    art_key, value = found
    return _decode_record(art_key, value)


async def resolve_and_delete(record_id: str) -> bool:
    """
    Delete `record_id` whichever generation it was written under.

    Returns False when nothing was found. Safe to repeat.
    """
    store = kv.store()
    found = await resolve(record_id)
    if found is not None:
        art_key, _ = found
        await store.delete(art_key.to_key())
    # Also clears lookup entries left behind by a partial create or delete.
    await store.delete(keys.id_index_key(record_id))
    return found is not None


async def list_records(
    *,
    size: int | None = None,
    cursor: str | None = None,
    limit: int | None = None,
) -> tuple[list[ArtRecord], str | None]:
    """
    One page of records, newest first.

    Without a size filter the scan covers both key generations.
    """
    result = await pagination.page(
        kv.store(),
        keys.scan_prefix(size),
        cursor=cursor,
        limit=limit,
        reverse=True,
    )

    records: list[ArtRecord] = []
    for entry in result.items:
        art_key = keys.classify(entry.key)
        if art_key is None:
            logger.warning("art_key_unrecognized key=%s", entry.key)
            continue
        record = _decode_record(art_key, entry.value)
        if record is not None:
            records.append(record)
    return records, result.next_cursor
