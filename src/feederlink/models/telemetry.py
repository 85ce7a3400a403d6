"""Live state reported by a controller."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class ConnectivityState(str, Enum):
    UNKNOWN = "Unknown"
    CONNECTING = "Connecting"
    CONNECTED = "Connected"
    DISCONNECTED = "Disconnected"


class SignalQuality(str, Enum):
    EXCELLENT = "Excellent"
    FAIR = "Fair"
    POOR = "Poor"
    UNKNOWN = "Unknown"


class TelemetrySnapshot(BaseModel):
    """One parsed `/getFeededWeight` response."""

    model_config = {"frozen": True, "extra": "forbid"}

    fed_weight: float
    signal_dbm: int | None = None
    feeding: bool = False


class DeviceStatus(BaseModel):
    """Transient per-device view owned by a telemetry poller. Never persisted."""

    model_config = {"extra": "forbid"}

    connectivity: ConnectivityState = ConnectivityState.UNKNOWN
    signal: SignalQuality = SignalQuality.UNKNOWN
    fed_weight: float | None = None
    feeding: bool = False
    ever_connected: bool = False
    missed_ticks: int = 0


class FeedLogEntry(BaseModel):
    model_config = {"frozen": True}

    time: str
    target_weight: float
