from __future__ import annotations

import json
from datetime import datetime

import pytest

from terminal.ledger import (
    FileStorage,
    InMemoryStorage,
    LocalAllocationLedger,
    StorageError,
)


KEY = "test_allocations"


def _fields(mi_no="MI-abc-0001", hostel="H1", room_no="101", name="Asha Rao"):
    return {
        "name": name,
        "mi_no": mi_no,
        "email": f"{mi_no.lower()}@example.com",
        "hostel": hostel,
        "room_no": room_no,
        "room_password": "pw-101",
    }


class FailingWriteStorage(InMemoryStorage):
    def __init__(self) -> None:
        super().__init__()
        self.fail_writes = False

    def write(self, key: str, value: str) -> None:
        if self.fail_writes:
            raise StorageError("quota exceeded")
        super().write(key, value)


def test_append_then_all_round_trips_fields_with_generated_id_and_timestamp():
    ledger = LocalAllocationLedger(InMemoryStorage(), storage_key=KEY)
    stored = ledger.append(_fields())

    assert ledger.all() == [stored]
    assert stored.id.startswith("alloc_")
    assert stored.name == "Asha Rao"
    assert stored.mi_no == "MI-abc-0001"
    assert stored.hostel == "H1"
    assert stored.room_no == "101"
    assert stored.room_password == "pw-101"
    assert datetime.fromisoformat(stored.timestamp).tzinfo is not None


def test_ids_are_unique_and_order_is_insertion_order():
    ledger = LocalAllocationLedger(InMemoryStorage(), storage_key=KEY)
    first = ledger.append(_fields("MI-abc-0001"))
    second = ledger.append(_fields("MI-abc-0002"))
    third = ledger.append(_fields("MI-abc-0003"))

    assert [item.id for item in ledger.all()] == [first.id, second.id, third.id]
    assert len({first.id, second.id, third.id}) == 3


def test_remove_by_id_drops_only_that_record():
    ledger = LocalAllocationLedger(InMemoryStorage(), storage_key=KEY)
    keep = ledger.append(_fields("MI-abc-0001"))
    drop = ledger.append(_fields("MI-abc-0002"))

    assert ledger.remove_by_id(drop.id) is True
    assert [item.id for item in ledger.all()] == [keep.id]
    assert ledger.remove_by_id("alloc_missing") is False


def test_find_by_mi_no_and_room_queries():
    ledger = LocalAllocationLedger(InMemoryStorage(), storage_key=KEY)
    ledger.append(_fields("MI-abc-0001", room_no="101"))
    ledger.append(_fields("MI-abc-0002", room_no="101"))
    ledger.append(_fields("MI-abc-0003", room_no="102"))

    assert ledger.find_by_mi_no("MI-abc-0002").room_no == "101"
    assert ledger.find_by_mi_no("MI-zzz-9999") is None
    assert ledger.count_for_room("H1", "101") == 2
    assert [item.mi_no for item in ledger.for_room("H1", "102")] == ["MI-abc-0003"]


def test_failed_append_leaves_prior_contents_unchanged():
    storage = FailingWriteStorage()
    ledger = LocalAllocationLedger(storage, storage_key=KEY)
    existing = ledger.append(_fields("MI-abc-0001"))

    storage.fail_writes = True
    with pytest.raises(StorageError):
        ledger.append(_fields("MI-abc-0002"))

    assert ledger.all() == [existing]


@pytest.mark.parametrize("blob", ["{not json", json.dumps({"id": "x"}), "null", ""])
def test_absent_or_corrupt_blob_reads_as_empty(blob):
    ledger = LocalAllocationLedger(InMemoryStorage({KEY: blob}), storage_key=KEY)
    assert ledger.all() == []
    assert len(ledger) == 0


def test_corrupt_blob_is_replaced_on_next_append():
    storage = InMemoryStorage({KEY: "{not json"})
    ledger = LocalAllocationLedger(storage, storage_key=KEY)
    stored = ledger.append(_fields())
    assert ledger.all() == [stored]


def test_clear_empties_the_ledger():
    ledger = LocalAllocationLedger(InMemoryStorage(), storage_key=KEY)
    ledger.append(_fields("MI-abc-0001"))
    ledger.append(_fields("MI-abc-0002"))
    ledger.clear()
    assert ledger.all() == []


def test_file_storage_survives_a_new_ledger_instance(tmp_path):
    first = LocalAllocationLedger(FileStorage(tmp_path / "ledger"), storage_key=KEY)
    stored = first.append(_fields())

    reloaded = LocalAllocationLedger(FileStorage(tmp_path / "ledger"), storage_key=KEY)
    assert reloaded.all() == [stored]

    raw = json.loads((tmp_path / "ledger" / f"{KEY}.json").read_text(encoding="utf-8"))
    assert raw[0]["miNo"] == "MI-abc-0001"
    assert raw[0]["roomNo"] == "101"

    reloaded.clear()
    assert first.all() == []
    assert not (tmp_path / "ledger" / f"{KEY}.json").exists()


def test_two_ledgers_over_one_storage_never_disagree():
    storage = InMemoryStorage()
    writer = LocalAllocationLedger(storage, storage_key=KEY)
    reader = LocalAllocationLedger(storage, storage_key=KEY)
    writer.append(_fields())
    assert len(reader.all()) == 1


def test_stats_group_by_room_in_first_seen_order():
    ledger = LocalAllocationLedger(InMemoryStorage(), storage_key=KEY)
    ledger.append(_fields("MI-abc-0001", hostel="H2", room_no="7"))
    ledger.append(_fields("MI-abc-0002", hostel="H1", room_no="101"))
    ledger.append(_fields("MI-abc-0003", hostel="H2", room_no="7"))

    stats = ledger.stats()
    assert stats.total_allocations == 3
    assert [(group.hostel, group.room_no, group.count) for group in stats.rooms] == [
        ("H2", "7", 2),
        ("H1", "101", 1),
    ]
