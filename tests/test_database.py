"""Tests for Database class."""

from feederlink.models import Device, Preferences
from feederlink.storage import Database


def test_devices_roundtrip(tmp_path):
    """Test device list save and load."""
    db = Database(tmp_path)
    device = Device(name="Barn 1", address="192.168.1.42", animal_weight=450)

    assert db.save_devices([device]) is True

    loaded = db.load_devices()
    assert loaded == [device]


def test_missing_files_give_defaults(tmp_path):
    db = Database(tmp_path / "never-created")

    assert db.load_devices() == []
    assert db.load_preferences() == Preferences()


def test_corrupt_device_list_is_ignored(tmp_path):
    db = Database(tmp_path)
    db.devices_path.write_text("{not json")

    assert db.load_devices() == []


def test_unwritable_location_reports_failure(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("a file, not a directory")
    db = Database(blocker / "data")

    assert db.save_devices([]) is False
    assert db.save_preferences(Preferences()) is False


def test_update_preferences_merges(tmp_path):
    """Test preference updates keep untouched fields."""
    db = Database(tmp_path)
    db.update_preferences(last_subnet_prefix="10.0.0.")
    db.update_preferences(last_status="Fed 9.02 lbs")

    preferences = db.load_preferences()
    assert preferences.last_subnet_prefix == "10.0.0."
    assert preferences.last_status == "Fed 9.02 lbs"


def test_init_only_overwrites_when_forced(tmp_path):
    db = Database(tmp_path)
    assert db.init() is True

    db.save_devices([Device(name="Barn 1", address="192.168.1.42")])
    assert db.init() is False
    assert len(db.load_devices()) == 1

    assert db.init(force=True) is True
    assert db.load_devices() == []
