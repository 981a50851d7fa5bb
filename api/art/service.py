"""
Art "service layer".

Validation, id/timestamp assignment, and the create/list/get/delete
operations the router calls. Nothing here knows about HTTP.
"""

from __future__ import annotations

import logging
import secrets
import time
from typing import Any

from core.kv import INT_MAX
from core.pagination import InvalidCursor

from . import keys, repository
from .schemas import ArtRecord

logger = logging.getLogger(__name__)

MISSING_FIELDS_MESSAGE = "Missing required fields: name, author, or mapping"

_last_created_ms = 0


class ValidationError(ValueError):
    pass


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict, tuple)):
        return len(value) == 0
    # False and 0 are treated as missing.
    if isinstance(value, bool):
        return not value
    if isinstance(value, (int, float)):
        return value == 0
    return False


def _next_created_ms() -> int:
    """
    Wall-clock milliseconds, forced strictly increasing within this process.

    Ids embed this value, so key order inside a size partition follows
    insertion order even when the clock stalls or steps back.
    """
    global _last_created_ms
    now = time.time_ns() // 1_000_000
    _last_created_ms = max(now, _last_created_ms + 1)
    return _last_created_ms


def _is_size(value: Any) -> bool:
    # Sizes are key components, so they must fit the store's integer range.
    return isinstance(value, int) and not isinstance(value, bool) and 0 < value <= INT_MAX


def new_record_id(created_ms: int) -> str:
    # 12 hex digits of time + 64 random bits.
    return f"{created_ms:012x}{secrets.token_hex(8)}"


def validate_size(size: Any) -> int:
    if size is None:
        return keys.default_size()
    if not _is_size(size):
        raise ValidationError("size must be a positive integer.")
    allowed = keys.allowed_sizes()
    if size not in allowed:
        raise ValidationError(f"Unsupported size {size}. Allowed: {list(allowed)}")
    return size


async def create_record(
    *,
    name: Any,
    author: Any,
    mapping: Any,
    size: Any = None,
) -> dict[str, str]:
    """
    Validate and store a new record. Returns {"id": ...}.

    Validation happens before any store call, so a rejected request writes
    nothing.
    """
    if _is_blank(name) or _is_blank(author) or _is_blank(mapping):
        raise ValidationError(MISSING_FIELDS_MESSAGE)
    if not isinstance(name, str) or not isinstance(author, str):
        raise ValidationError("name and author must be strings.")
    checked_size = validate_size(size)

    created_ms = _next_created_ms()
    record = ArtRecord(
        id=new_record_id(created_ms),
        name=name,
        author=author,
        mapping=mapping,
        size=checked_size,
        created_at=created_ms,
    )
    await repository.insert_record(record)

    logger.info(
        "art_stored id=%s name=%r author=%r size=%s",
        record.id,
        record.name,
        record.author,
        record.size,
    )
    return {"id": record.id}


async def list_records(
    *,
    limit: int | None = None,
    cursor: str | None = None,
    size: Any = None,
) -> dict[str, Any]:
    """
    One page of records, newest first, optionally limited to one size.
    """
    if size is not None and not _is_size(size):
        raise ValidationError("size must be a positive integer.")

    try:
        items, next_cursor = await repository.list_records(
            size=size,
            cursor=cursor or None,
            limit=limit,
        )
    except InvalidCursor as exc:
        raise ValidationError(str(exc)) from exc

    return {"items": items, "next_cursor": next_cursor}


async def get_record(record_id: str) -> ArtRecord | None:
    record_id = (record_id or "").strip()
    if not record_id:
        return None
    return await repository.get_record(record_id)


async def delete_record(record_id: str) -> dict[str, bool]:
    record_id = (record_id or "").strip()
    if not record_id:
        return {"deleted": False}

    deleted = await repository.resolve_and_delete(record_id)
    if deleted:
        logger.info("art_deleted id=%s", record_id)
    else:
        logger.info("art_delete_not_found id=%s", record_id)
    return {"deleted": deleted}
