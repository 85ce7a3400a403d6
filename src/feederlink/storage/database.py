from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from feederlink.models import Device, Preferences

logger = logging.getLogger(__name__)

DEVICES_FILE = "devices.json"
PREFERENCES_FILE = "preferences.json"

_device_list = TypeAdapter(list[Device])


class Database:
    """JSON files in the data directory.

    Read and write failures degrade to defaults; nothing here raises on a
    corrupt or unwritable file.
    """

    def __init__(self, data_dir: Path) -> None:
        self._data_dir = data_dir
        self._devices_path = data_dir / DEVICES_FILE
        self._preferences_path = data_dir / PREFERENCES_FILE

    @property
    def path(self) -> Path:
        return self._data_dir

    @property
    def devices_path(self) -> Path:
        return self._devices_path

    @property
    def preferences_path(self) -> Path:
        return self._preferences_path

    def ensure_dirs(self) -> None:
        self._data_dir.mkdir(parents=True, exist_ok=True)

    # DeviceStore protocol used by the registry
    def load(self) -> list[Device]:
        return self.load_devices()

    def save(self, devices: list[Device]) -> bool:
        return self.save_devices(devices)

    def load_devices(self) -> list[Device]:
        if not self._devices_path.exists():
            return []

        try:
            return _device_list.validate_json(self._devices_path.read_bytes())
        except (OSError, ValidationError) as exc:
            logger.warning(
                "Ignoring unreadable device list %s: %s", self._devices_path, exc
            )
            return []

    def save_devices(self, devices: list[Device]) -> bool:
        try:
            self.ensure_dirs()
            self._devices_path.write_bytes(_device_list.dump_json(devices, indent=2))
        except OSError as exc:
            logger.warning(
                "Could not save device list to %s: %s", self._devices_path, exc
            )
            return False
        return True

    def load_preferences(self) -> Preferences:
        if not self._preferences_path.exists():
            return Preferences()

        try:
            with self._preferences_path.open("r") as handle:
                data = json.load(handle)
            return Preferences.model_validate(data)
        except (OSError, ValueError) as exc:
            logger.warning(
                "Ignoring unreadable preferences %s: %s", self._preferences_path, exc
            )
            return Preferences()

    def save_preferences(self, preferences: Preferences) -> bool:
        try:
            self.ensure_dirs()
            with self._preferences_path.open("w") as handle:
                json.dump(preferences.model_dump(mode="json"), handle, indent=2)
        except OSError as exc:
            logger.warning(
                "Could not save preferences to %s: %s", self._preferences_path, exc
            )
            return False
        return True

    def update_preferences(self, **changes: object) -> Preferences:
        preferences = self.load_preferences().model_copy(update=changes)
        self.save_preferences(preferences)
        return preferences

    def init(self, force: bool = False) -> bool:
        existed = self._devices_path.exists()
        self.ensure_dirs()
        if force or not existed:
            self.save_devices([])
            self.save_preferences(Preferences())
            return True
        return False
