"""feederlink - discover, monitor and drive network-attached animal feeders."""

from __future__ import annotations

from importlib.metadata import version

from .config import ScanningConfig, Settings, get_settings
from .models import Device, DeviceStatus, ScanResult
from .storage import Database

__all__ = [
    "Database",
    "Device",
    "DeviceStatus",
    "ScanResult",
    "ScanningConfig",
    "Settings",
    "__version__",
    "get_settings",
]

__version__ = version("feederlink")
