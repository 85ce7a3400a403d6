"""Data models for feederlink."""

from feederlink.models.device import EDITABLE_FIELDS, UNKNOWN, Device, ScanResult
from feederlink.models.preferences import Preferences
from feederlink.models.telemetry import (
    ConnectivityState,
    DeviceStatus,
    FeedLogEntry,
    SignalQuality,
    TelemetrySnapshot,
)

__all__ = [
    "EDITABLE_FIELDS",
    "UNKNOWN",
    "ConnectivityState",
    "Device",
    "DeviceStatus",
    "FeedLogEntry",
    "Preferences",
    "ScanResult",
    "SignalQuality",
    "TelemetrySnapshot",
]
