"""
Ordered key-value store.

Keys are tuples of `str | int` components. They are packed into bytes with an
order-preserving, type-tagged encoding so that comparing packed keys bytewise
gives the same result as comparing the tuples component by component:

- str: 0x02, UTF-8 bytes with 0x00 escaped as 0x00 0xFF, terminated by 0x00
- int: 0x21, 8 bytes big-endian of (n + 2**63)

Strings therefore sort before integers at the same position, and a prefix
scan over `prefix` is the byte range [pack(prefix), pack(prefix) + 0xFF).

`OrderedStore` is what the rest of the API talks to. It owns packing, the
per-call timeout and the mapping of backend failures to `StoreUnavailable`.
The byte-level work is done by a backend: PostgreSQL (asyncpg) in deployment,
an in-memory sorted list for tests and local development.
"""

from __future__ import annotations

import asyncio
import bisect
import logging
import struct
from dataclasses import dataclass
from typing import Protocol, Union

import asyncpg

from . import db, settings

logger = logging.getLogger(__name__)

KeyPart = Union[str, int]
Key = tuple[KeyPart, ...]

_STR_TAG = 0x02
_INT_TAG = 0x21
_INT_OFFSET = 1 << 63
# Range of integers a key component can hold.
INT_MIN = -_INT_OFFSET
INT_MAX = _INT_OFFSET - 1
_RANGE_END = b"\xff"


class StoreUnavailable(RuntimeError):
    pass


@dataclass(frozen=True)
class Entry:
    key: Key
    value: bytes


def pack_key(key: Key) -> bytes:
    out = bytearray()
    for part in key:
        # bool is an int subclass; it is not a valid key component.
        if isinstance(part, bool):
            raise TypeError("Key components must be str or int, got bool.")
        if isinstance(part, str):
            out.append(_STR_TAG)
            out.extend(part.encode("utf-8").replace(b"\x00", b"\x00\xff"))
            out.append(0x00)
        elif isinstance(part, int):
            biased = part + _INT_OFFSET
            if not 0 <= biased < (1 << 64):
                raise ValueError(f"Integer key component out of range: {part}")
            out.append(_INT_TAG)
            out.extend(struct.pack(">Q", biased))
        else:
            raise TypeError(f"Key components must be str or int, got {type(part).__name__}.")
    return bytes(out)


def unpack_key(data: bytes) -> Key:
    parts: list[KeyPart] = []
    i = 0
    n = len(data)
    while i < n:
        tag = data[i]
        i += 1
        if tag == _STR_TAG:
            buf = bytearray()
            while True:
                if i >= n:
                    raise ValueError("Malformed key: unterminated string component.")
                b = data[i]
                if b == 0x00:
                    if i + 1 < n and data[i + 1] == 0xFF:
                        buf.append(0x00)
                        i += 2
                        continue
                    i += 1
                    break
                buf.append(b)
                i += 1
            parts.append(buf.decode("utf-8"))
        elif tag == _INT_TAG:
            if i + 8 > n:
                raise ValueError("Malformed key: truncated integer component.")
            (biased,) = struct.unpack(">Q", data[i : i + 8])
            parts.append(biased - _INT_OFFSET)
            i += 8
        else:
            raise ValueError(f"Malformed key: unknown type tag 0x{tag:02x}.")
    return tuple(parts)


def prefix_range(prefix: Key) -> tuple[bytes, bytes]:
    start = pack_key(prefix)
    return start, start + _RANGE_END


class Backend(Protocol):
    async def get(self, key: bytes) -> bytes | None:
        ...

    async def put(self, key: bytes, value: bytes) -> None:
        ...

    async def delete(self, key: bytes) -> None:
        ...

    async def scan(
        self,
        start: bytes,
        end: bytes,
        *,
        after: bytes | None,
        limit: int,
        reverse: bool,
    ) -> list[tuple[bytes, bytes]]:
        ...


class MemoryBackend:
    """Sorted in-process backend keyed by packed bytes."""

    def __init__(self) -> None:
        self._keys: list[bytes] = []
        self._values: dict[bytes, bytes] = {}

    async def get(self, key: bytes) -> bytes | None:
        return self._values.get(key)

    async def put(self, key: bytes, value: bytes) -> None:
        if key not in self._values:
            bisect.insort(self._keys, key)
        self._values[key] = bytes(value)

    async def delete(self, key: bytes) -> None:
        if self._values.pop(key, None) is None:
            return
        idx = bisect.bisect_left(self._keys, key)
        del self._keys[idx]

    async def scan(
        self,
        start: bytes,
        end: bytes,
        *,
        after: bytes | None,
        limit: int,
        reverse: bool,
    ) -> list[tuple[bytes, bytes]]:
        lo = bisect.bisect_left(self._keys, start)
        hi = bisect.bisect_left(self._keys, end)
        if after is not None:
            if reverse:
                hi = min(hi, bisect.bisect_left(self._keys, after))
            else:
                lo = max(lo, bisect.bisect_right(self._keys, after))
        window = self._keys[lo:hi]
        if reverse:
            window.reverse()
        return [(k, self._values[k]) for k in window[:limit]]


class PostgresBackend:
    """Backend over the `kv_entries` table (see core/db.py)."""

    async def get(self, key: bytes) -> bytes | None:
        row = await db.fetch_one("SELECT value FROM kv_entries WHERE key = $1", key)
        return bytes(row["value"]) if row is not None else None

    async def put(self, key: bytes, value: bytes) -> None:
        await db.execute(
            """
            INSERT INTO kv_entries (key, value)
            VALUES ($1, $2)
            ON CONFLICT (key) DO UPDATE
            SET value = EXCLUDED.value,
                updated_at = now()
            """,
            key,
            value,
        )

    async def delete(self, key: bytes) -> None:
        await db.execute("DELETE FROM kv_entries WHERE key = $1", key)

    async def scan(
        self,
        start: bytes,
        end: bytes,
        *,
        after: bytes | None,
        limit: int,
        reverse: bool,
    ) -> list[tuple[bytes, bytes]]:
        if reverse:
            sql = """
                SELECT key, value
                FROM kv_entries
                WHERE key >= $1
                  AND key < $2
                  AND ($3::bytea IS NULL OR key < $3)
                ORDER BY key DESC
                LIMIT $4
            """
        else:
            sql = """
                SELECT key, value
                FROM kv_entries
                WHERE key >= $1
                  AND key < $2
                  AND ($3::bytea IS NULL OR key > $3)
                ORDER BY key ASC
                LIMIT $4
            """
        rows = await db.fetch_all(sql, start, end, after, limit)
        return [(bytes(r["key"]), bytes(r["value"])) for r in rows]


class OrderedStore:
    """
    Tuple-keyed facade over a byte-level backend.

    Every call is bounded by `timeout_s` (None disables it). Timeouts and
    backend I/O errors surface as `StoreUnavailable`; nothing is retried here.
    """

    def __init__(self, backend: Backend, *, timeout_s: float | None = None) -> None:
        self.backend = backend
        self.timeout_s = timeout_s

    async def _call(self, op: str, awaitable):
        try:
            if self.timeout_s is None:
                return await awaitable
            return await asyncio.wait_for(awaitable, self.timeout_s)
        except asyncio.TimeoutError as exc:
            logger.warning("store_timeout op=%s timeout_s=%s", op, self.timeout_s)
            raise StoreUnavailable(f"Store {op} timed out after {self.timeout_s}s.") from exc
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as exc:
            logger.exception("store_failed op=%s", op)
            raise StoreUnavailable(f"Store {op} failed.") from exc

    async def get(self, key: Key) -> bytes | None:
        return await self._call("get", self.backend.get(pack_key(key)))

    async def put(self, key: Key, value: bytes) -> None:
        await self._call("put", self.backend.put(pack_key(key), value))

    async def delete(self, key: Key) -> None:
        await self._call("delete", self.backend.delete(pack_key(key)))

    async def scan(
        self,
        prefix: Key,
        *,
        start_after: Key | None = None,
        limit: int,
        reverse: bool = False,
    ) -> tuple[list[Entry], bool]:
        """
        Return up to `limit` entries under `prefix` and whether more remain.

        Resumes strictly after `start_after` in the scan direction.
        """
        if limit < 1:
            raise ValueError("limit must be >= 1.")
        start, end = prefix_range(prefix)
        after = pack_key(start_after) if start_after is not None else None
        # One extra row tells us whether another page exists.
        rows = await self._call(
            "scan",
            self.backend.scan(start, end, after=after, limit=limit + 1, reverse=reverse),
        )
        has_more = len(rows) > limit
        entries = [Entry(key=unpack_key(k), value=v) for (k, v) in rows[:limit]]
        return entries, has_more


_store: OrderedStore | None = None


async def init_store() -> None:
    global _store
    if _store is not None:
        return None

    backend_name = settings.kv_backend()
    backend: Backend
    if backend_name == "postgres":
        await db.init_pool()
        backend = PostgresBackend()
    elif backend_name == "memory":
        backend = MemoryBackend()
    else:
        raise RuntimeError(f"Unknown KV_BACKEND '{backend_name}'. Use 'postgres' or 'memory'.")

    _store = OrderedStore(backend, timeout_s=settings.store_timeout_s())
    logger.info("store_ready backend=%s timeout_s=%s", backend_name, _store.timeout_s)


async def close_store() -> None:
    global _store
    _store = None
    await db.close_pool()


def store() -> OrderedStore:
    if _store is None:
        raise RuntimeError("Store is not initialized. Call init_store() on startup.")
    return _store


def set_store(value: OrderedStore | None) -> None:
    """
    Swap the process-wide store (tests inject an in-memory one).
    """
    global _store
    _store = value
