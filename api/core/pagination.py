"""
Cursor pagination over `OrderedStore.scan`.

A cursor is the packed last-yielded key, URL-safe base64 without padding.
Resuming strictly after that key keeps pages stable while other keys are
inserted or deleted: nothing already returned is repeated, and new keys past
the cursor show up on later pages. There is no point-in-time snapshot.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field

from . import settings
from .kv import Entry, Key, OrderedStore, pack_key, unpack_key

DEFAULT_LIMIT = 20
MAX_LIMIT = 200


class InvalidCursor(ValueError):
    pass


@dataclass(frozen=True)
class Page:
    items: list[Entry] = field(default_factory=list)
    next_cursor: str | None = None


def normalize_limit(limit: int | None) -> int:
    default = settings.env_int("PAGE_DEFAULT_LIMIT", DEFAULT_LIMIT)
    maximum = settings.env_int("PAGE_MAX_LIMIT", MAX_LIMIT)
    if limit is None or limit <= 0:
        limit = default
    return max(1, min(limit, maximum))


def encode_cursor(key: Key) -> str:
    return base64.urlsafe_b64encode(pack_key(key)).rstrip(b"=").decode("ascii")


def decode_cursor(cursor: str) -> Key:
    raw = (cursor or "").strip()
    if not raw:
        raise InvalidCursor("Cursor is empty.")
    padded = raw + "=" * (-len(raw) % 4)
    try:
        data = base64.urlsafe_b64decode(padded.encode("ascii"))
        key = unpack_key(data)
    except (binascii.Error, UnicodeError, ValueError) as exc:
        raise InvalidCursor("Cursor is malformed.") from exc
    if not key:
        raise InvalidCursor("Cursor is malformed.")
    return key


async def page(
    store: OrderedStore,
    prefix: Key,
    *,
    cursor: str | None = None,
    limit: int | None = None,
    reverse: bool = False,
) -> Page:
    """
    Fetch one page of entries under `prefix`.

    `cursor` must come from a previous call with the same prefix and
    direction; anything else resumes from an arbitrary (but valid) point.
    """
    size = normalize_limit(limit)
    start_after = decode_cursor(cursor) if cursor else None
    entries, has_more = await store.scan(
        prefix,
        start_after=start_after,
        limit=size,
        reverse=reverse,
    )
    next_cursor = encode_cursor(entries[-1].key) if has_more and entries else None
    return Page(items=entries, next_cursor=next_cursor)
