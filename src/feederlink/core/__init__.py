from __future__ import annotations

from .client import CommandClient, CommandOutcome, OutcomeKind, build_url
from .controller import FeederController, parse_identity, parse_telemetry
from .registry import DeviceRegistry, DeviceStore
from .scanner import SubnetScanner, candidate_addresses, detect_local_prefix
from .session import (
    FeedingSession,
    FeedingSessionController,
    SessionResult,
    SessionState,
    StopReason,
    default_target_weight,
)
from .telemetry import (
    DevicePoller,
    LogNotifier,
    Notifier,
    TelemetryMonitor,
    signal_bucket,
)

__all__ = [
    "CommandClient",
    "CommandOutcome",
    "DevicePoller",
    "DeviceRegistry",
    "DeviceStore",
    "FeederController",
    "FeedingSession",
    "FeedingSessionController",
    "LogNotifier",
    "Notifier",
    "OutcomeKind",
    "SessionResult",
    "SessionState",
    "StopReason",
    "SubnetScanner",
    "TelemetryMonitor",
    "build_url",
    "candidate_addresses",
    "default_target_weight",
    "detect_local_prefix",
    "parse_identity",
    "parse_telemetry",
    "signal_bucket",
]
