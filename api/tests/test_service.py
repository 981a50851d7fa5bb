from __future__ import annotations

import asyncio
import json

import pytest

from art import keys, repository, service
from core import kv

LEGACY_ID = "3f2b8c1e-9a4d-4c7e-8f21-6b5d0e9a1c44"


def _create(**fields):
    payload = {"name": "A", "author": "B", "mapping": [[0, 1], [1, 0]]}
    payload.update(fields)
    return asyncio.run(service.create_record(**payload))["id"]


def _list(**kwargs):
    return asyncio.run(service.list_records(**kwargs))


def _put_legacy(store, record_id=LEGACY_ID):
    value = {
        "id": record_id,
        "name": "old",
        "author": "someone",
        "mapping": {"0,0": "#000"},
        "createdAt": 1_700_000_000_000,
    }
    asyncio.run(store.put(("art", record_id), json.dumps(value).encode()))


def test_create_defaults_size_and_is_readable(memory_store):
    record_id = _create()

    record = asyncio.run(service.get_record(record_id))
    assert record is not None
    assert record.size == 5
    assert record.mapping == [[0, 1], [1, 0]]
    assert asyncio.run(memory_store.get(("art", 5, record_id))) is not None
    assert asyncio.run(memory_store.get(("art_by_id", record_id))) == b'{"size": 5}'


def test_size_filter(memory_store):
    record_id = _create()

    five = [r.id for r in _list(size=5)["items"]]
    eight = [r.id for r in _list(size=8)["items"]]
    assert record_id in five
    assert record_id not in eight


@pytest.mark.parametrize(
    "fields",
    [
        {"name": ""},
        {"name": "   "},
        {"author": None},
        {"mapping": []},
        {"mapping": {}},
        {"mapping": None},
        {"mapping": 0},
        {"mapping": False},
        {"mapping": 0.0},
        {"size": 0},
        {"size": -4},
        {"size": "5"},
        {"size": True},
        {"size": 7},
        {"size": 2**63},
        {"name": 12},
    ],
)
def test_invalid_create_writes_nothing(memory_store, stored_keys, fields):
    with pytest.raises(service.ValidationError):
        _create(**fields)
    assert stored_keys() == []


def test_ids_follow_creation_order(memory_store):
    ids = [_create() for _ in range(5)]
    assert ids == sorted(ids)
    assert len(set(ids)) == 5


def test_list_is_newest_first_and_pages(memory_store):
    ids = [_create(name=f"n{i}") for i in range(3)]

    first = _list(limit=1)
    second = _list(limit=1, cursor=first["next_cursor"])
    third = _list(limit=1, cursor=second["next_cursor"])

    assert [r.id for r in first["items"]] == [ids[2]]
    assert first["next_cursor"] is not None
    assert [r.id for r in second["items"]] == [ids[1]]
    assert [r.id for r in third["items"]] == [ids[0]]
    assert third["next_cursor"] is None


def test_unfiltered_list_returns_every_record_once_across_generations(memory_store):
    _put_legacy(memory_store)
    created = {_create(size=size) for size in (5, 8, 8, 16)}

    seen = []
    cursor = None
    while True:
        result = _list(limit=2, cursor=cursor)
        seen.extend(r.id for r in result["items"])
        cursor = result["next_cursor"]
        if cursor is None:
            break

    assert sorted(seen) == sorted(created | {LEGACY_ID})
    assert len(seen) == len(set(seen))


def test_legacy_record_is_listed_with_default_size_and_deletable(memory_store):
    _put_legacy(memory_store)

    items = _list()["items"]
    assert [r.id for r in items] == [LEGACY_ID]
    assert items[0].size == 5

    assert asyncio.run(service.delete_record(LEGACY_ID)) == {"deleted": True}
    assert _list()["items"] == []


def test_delete_is_idempotent(memory_store, stored_keys):
    record_id = _create(size=16)

    assert asyncio.run(service.delete_record(record_id)) == {"deleted": True}
    assert asyncio.run(service.delete_record(record_id)) == {"deleted": False}
    assert asyncio.run(service.delete_record("does-not-exist")) == {"deleted": False}
    assert asyncio.run(service.delete_record("does-not-exist")) == {"deleted": False}
    assert stored_keys() == []


def test_partitioned_record_without_lookup_entry_is_found_by_probe(memory_store):
    record_id = _create(size=8)
    asyncio.run(memory_store.delete(keys.id_index_key(record_id)))

    found = asyncio.run(repository.resolve(record_id))
    assert found is not None
    assert found[0] == keys.PartitionedKey(size=8, id=record_id)
    assert asyncio.run(service.delete_record(record_id)) == {"deleted": True}


def test_stale_lookup_entry_is_cleared_on_delete(memory_store, stored_keys):
    asyncio.run(memory_store.put(keys.id_index_key("ghost"), b'{"size": 8}'))

    assert asyncio.run(service.delete_record("ghost")) == {"deleted": False}
    assert stored_keys() == []


def test_corrupt_values_are_skipped(memory_store):
    good = _create()
    asyncio.run(memory_store.put(("art", 5, "zzzz"), b"not json"))
    asyncio.run(memory_store.put(("art", 5, "zzzy"), b'{"name": ""}'))
    asyncio.run(memory_store.put(("art", 5, "x", "extra"), b"{}"))

    assert [r.id for r in _list()["items"]] == [good]


def test_invalid_cursor_is_a_validation_error(memory_store):
    with pytest.raises(service.ValidationError):
        _list(cursor="Bw")


def test_invalid_size_filter_is_a_validation_error(memory_store):
    with pytest.raises(service.ValidationError):
        _list(size=0)


def test_store_failure_aborts_listing(failing_store):
    with pytest.raises(kv.StoreUnavailable):
        _list()


def test_store_failure_on_create(failing_store):
    with pytest.raises(kv.StoreUnavailable):
        _create()


def test_truthy_scalar_mapping_is_accepted(memory_store):
    record_id = _create(mapping=1)
    assert asyncio.run(service.get_record(record_id)).mapping == 1


def test_size_filter_beyond_key_range_is_a_validation_error(memory_store):
    with pytest.raises(service.ValidationError):
        _list(size=2**63)


def test_key_id_wins_over_id_stored_in_value(memory_store):
    value = {"id": "other", "name": "old", "author": "x", "mapping": [1], "createdAt": 1}
    asyncio.run(memory_store.put(("art", LEGACY_ID), json.dumps(value).encode()))

    assert [r.id for r in _list()["items"]] == [LEGACY_ID]
    assert asyncio.run(service.get_record(LEGACY_ID)).id == LEGACY_ID
    assert asyncio.run(service.delete_record(LEGACY_ID)) == {"deleted": True}
    assert _list()["items"] == []
