"""Tests for DeviceRegistry."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from feederlink.core import DeviceRegistry
from feederlink.models import Device, ScanResult
from feederlink.storage import Database


class FailingStore:
    def __init__(self) -> None:
        self.saves = 0

    def load(self) -> list[Device]:
        raise OSError("disk gone")

    def save(self, devices: list[Device]) -> bool:
        self.saves += 1
        return False


def _scan(*devices: Device) -> ScanResult:
    return ScanResult(
        scan_timestamp=datetime.now(timezone.utc),
        prefix="192.168.1.",
        devices=list(devices),
    )


def test_add_ignores_duplicate_address(tmp_path):
    registry = DeviceRegistry(Database(tmp_path))

    assert registry.add(Device(name="Barn 1", address="192.168.1.42")) is True
    assert registry.add(Device(name="Barn 1 again", address="192.168.1.42")) is False

    devices = registry.list()
    assert len(devices) == 1
    assert devices[0].name == "Barn 1"


def test_registry_persists_across_instances(tmp_path):
    first = DeviceRegistry(Database(tmp_path))
    device = Device(name="Barn 1", address="192.168.1.42", animal_weight=450)
    first.add(device)

    second = DeviceRegistry(Database(tmp_path))

    assert [d.id for d in second.list()] == [device.id]
    assert second.get(device.id).animal_weight == 450


def test_load_drops_duplicate_addresses(tmp_path):
    db = Database(tmp_path)
    db.save_devices(
        [
            Device(name="A", address="192.168.1.5"),
            Device(name="B", address="192.168.1.5"),
        ]
    )

    registry = DeviceRegistry(db)

    assert [d.name for d in registry.list()] == ["A"]


def test_merge_keeps_existing_entries(tmp_path):
    registry = DeviceRegistry(Database(tmp_path))
    known = Device(name="Renamed", address="192.168.1.10")
    registry.add(known)

    added = registry.merge(
        _scan(
            Device(name="Factory name", address="192.168.1.10"),
            Device(name="Barn 2", address="192.168.1.20"),
            Device(name="Barn 2 echo", address="192.168.1.20"),
        )
    )

    assert [d.address for d in added] == ["192.168.1.20"]
    assert [d.name for d in registry.list()] == ["Renamed", "Barn 2"]


def test_remove(tmp_path):
    registry = DeviceRegistry(Database(tmp_path))
    device = Device(name="Barn 1", address="192.168.1.42")
    registry.add(device)

    assert registry.remove(device.id) is True
    assert registry.remove(device.id) is False
    assert registry.list() == []


def test_update_edits_fields_and_persists(tmp_path):
    db = Database(tmp_path)
    registry = DeviceRegistry(db)
    device = Device(name="Barn 1", address="192.168.1.42")
    registry.add(device)

    updated = registry.update(device.id, animal_name="Daisy", animal_weight=450)

    assert updated.animal_name == "Daisy"
    assert db.load_devices()[0].animal_weight == 450


def test_update_with_mutator(tmp_path):
    registry = DeviceRegistry(Database(tmp_path))
    device = Device(name="Barn 1", address="192.168.1.42")
    registry.add(device)

    def _fatten(target: Device) -> None:
        target.animal_weight += 10

    assert registry.update(device.id, _fatten).animal_weight == 10


def test_update_rejects_address_change(tmp_path):
    registry = DeviceRegistry(Database(tmp_path))
    device = Device(name="Barn 1", address="192.168.1.42")
    registry.add(device)

    with pytest.raises(ValueError):
        registry.update(device.id, address="192.168.1.43")

    def _move(target: Device) -> None:
        target.address = "192.168.1.43"

    with pytest.raises(ValueError):
        registry.update(device.id, _move)

    assert registry.get(device.id).address == "192.168.1.42"


def test_update_rejects_invalid_value(tmp_path):
    registry = DeviceRegistry(Database(tmp_path))
    device = Device(name="Barn 1", address="192.168.1.42")
    registry.add(device)

    with pytest.raises(ValueError):
        registry.update(device.id, animal_weight="heavy")

    assert registry.get(device.id).animal_weight == 0.0


def test_update_unknown_id_returns_none(tmp_path):
    registry = DeviceRegistry(Database(tmp_path))

    assert registry.update(Device(name="x", address="1.2.3.4").id, name="y") is None


def test_find_by_address_name_and_id_prefix(tmp_path):
    registry = DeviceRegistry(Database(tmp_path))
    barn = Device(name="Barn 1", address="192.168.1.42")
    pen = Device(name="Pen", address="192.168.1.43")
    registry.add(barn)
    registry.add(pen)

    assert registry.find("192.168.1.43").id == pen.id
    assert registry.find("Barn 1").id == barn.id
    assert registry.find(barn.short_id).id == barn.id
    assert registry.find("nothing") is None
    assert registry.find("") is None


def test_listeners_receive_snapshots(tmp_path):
    registry = DeviceRegistry(Database(tmp_path))
    seen: list[int] = []
    unsubscribe = registry.subscribe(lambda devices: seen.append(len(devices)))

    registry.add(Device(name="A", address="192.168.1.5"))
    registry.add(Device(name="B", address="192.168.1.6"))
    unsubscribe()
    registry.clear()

    assert seen == [1, 2]
    assert len(registry) == 0


def test_store_failures_keep_memory_authoritative():
    store = FailingStore()
    registry = DeviceRegistry(store)

    assert registry.add(Device(name="A", address="192.168.1.5")) is True
    assert store.saves == 1
    assert len(registry.list()) == 1


def test_snapshots_are_copies(tmp_path):
    registry = DeviceRegistry(Database(tmp_path))
    device = Device(name="Barn 1", address="192.168.1.42")
    registry.add(device)

    registry.list()[0].name = "Mutated"

    assert registry.get(device.id).name == "Barn 1"


def test_len_reads_under_the_write_lock(tmp_path):
    registry = DeviceRegistry(Database(tmp_path))
    registry.add(Device(name="A", address="192.168.1.5"))
    entered = []

    class RecordingLock:
        def __enter__(self):
            entered.append(True)

        def __exit__(self, *_exc):
            return False

    registry._lock = RecordingLock()

    assert len(registry) == 1
    assert entered == [True]
