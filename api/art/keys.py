"""
Storage keys for art records.

Two key generations live side by side under the "art" namespace:

- LegacyKey       ("art", id)         written before size partitioning
- PartitionedKey  ("art", size, id)   written by this code

Packed keys are type-tagged (core/kv.py), so the generation of a stored key
is decided by the type of its second component: str means legacy, int means
partitioned. Values are never inspected to tell them apart.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Union

from core import settings
from core.kv import Key

NAMESPACE = "art"
ID_INDEX_NAMESPACE = "art_by_id"

DEFAULT_SIZE = 5
# Every size any version of the service has accepted. Creation is limited to
# this set so the delete probe below it stays exhaustive.
DEFAULT_SIZES = (5, 8, 16, 32)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LegacyKey:
    id: str

    def to_key(self) -> Key:
        return (NAMESPACE, self.id)


@dataclass(frozen=True)
class PartitionedKey:
    size: int
    id: str

    def to_key(self) -> Key:
        return (NAMESPACE, self.size, self.id)


ArtKey = Union[LegacyKey, PartitionedKey]


def default_size() -> int:
    return settings.env_int("ART_DEFAULT_SIZE", DEFAULT_SIZE)


def allowed_sizes() -> tuple[int, ...]:
    """
    Sizes accepted on create and probed on lookup, ascending.

    Configured via ART_SIZES (comma-separated); the default size is always
    included.
    """
    raw = settings.env_str("ART_SIZES", "")
    sizes = set(DEFAULT_SIZES)
    if raw:
        sizes = set()
        for part in raw.split(","):
            part = part.strip()
            if not part:
                continue
            try:
                value = int(part)
            except ValueError:
                logger.warning("art_sizes_invalid_entry value=%r", part)
                continue
            if value > 0:
                sizes.add(value)
    sizes.add(default_size())
    return tuple(sorted(sizes))


def encode(size: int, record_id: str) -> Key:
    return PartitionedKey(size=size, id=record_id).to_key()


def legacy_key(record_id: str) -> Key:
    return LegacyKey(id=record_id).to_key()


def id_index_key(record_id: str) -> Key:
    # Separate namespace: must never match the ("art",) scan prefix.
    return (ID_INDEX_NAMESPACE, record_id)


def scan_prefix(size: int | None = None) -> Key:
    if size is None:
        return (NAMESPACE,)
    return (NAMESPACE, size)


def classify(key: Key) -> ArtKey | None:
    """
    Map a raw stored key to its generation, or None if it is neither.
    """
    if not key or key[0] != NAMESPACE:
        return None
    if len(key) == 2 and isinstance(key[1], str):
        return LegacyKey(id=key[1])
    if len(key) == 3 and isinstance(key[1], int) and isinstance(key[2], str):
        return PartitionedKey(size=key[1], id=key[2])
    return None
