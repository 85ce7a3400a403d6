from __future__ import annotations

import asyncio
import json

import pytest
from fakes import FakeClient, ok

from feederlink.config import PollingConfig
from feederlink.core import (
    CommandOutcome,
    DevicePoller,
    FeederController,
    OutcomeKind,
    TelemetryMonitor,
    signal_bucket,
)
from feederlink.core.telemetry import apply_outcome
from feederlink.models import (
    ConnectivityState,
    Device,
    DeviceStatus,
    SignalQuality,
    TelemetrySnapshot,
)

TIMEOUT = CommandOutcome.failure(OutcomeKind.TIMEOUT)
LOST = CommandOutcome.failure(OutcomeKind.CONNECTION_LOST)


def _status_body(weight: float = 1.5, wifi: str = "-48", feeding: bool = False) -> str:
    return json.dumps(
        {
            "FeededWeight": f"{weight:.2f}",
            "WifiStatus": wifi,
            "FeedingStatus": "true" if feeding else "false",
        }
    )


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (-30, SignalQuality.EXCELLENT),
        (-50, SignalQuality.EXCELLENT),
        ("-51", SignalQuality.FAIR),
        (-69, SignalQuality.FAIR),
        (-70, SignalQuality.POOR),
        (-90, SignalQuality.POOR),
        ("n/a", SignalQuality.UNKNOWN),
        (None, SignalQuality.UNKNOWN),
    ],
)
def test_signal_bucket(raw, expected):
    assert signal_bucket(raw) is expected


def test_failure_before_first_success_disconnects():
    status = apply_outcome(
        DeviceStatus(connectivity=ConnectivityState.CONNECTING), TIMEOUT, None
    )

    assert status.connectivity is ConnectivityState.DISCONNECTED
    assert status.signal is SignalQuality.UNKNOWN


def test_connected_device_tolerates_isolated_timeouts():
    status = apply_outcome(
        DeviceStatus(), ok(), TelemetrySnapshot(fed_weight=2.0, signal_dbm=-60)
    )
    assert status.connectivity is ConnectivityState.CONNECTED
    assert status.signal is SignalQuality.FAIR

    status = apply_outcome(status, TIMEOUT, None, missed_ticks_tolerance=3)
    status = apply_outcome(status, TIMEOUT, None, missed_ticks_tolerance=3)
    assert status.connectivity is ConnectivityState.CONNECTED
    assert status.signal is SignalQuality.UNKNOWN
    assert status.fed_weight == 2.0

    status = apply_outcome(status, TIMEOUT, None, missed_ticks_tolerance=3)
    assert status.connectivity is ConnectivityState.DISCONNECTED


def test_success_resets_missed_ticks():
    status = apply_outcome(DeviceStatus(), ok(), TelemetrySnapshot(fed_weight=0))
    status = apply_outcome(status, TIMEOUT, None)
    status = apply_outcome(status, ok(), TelemetrySnapshot(fed_weight=0.5))

    assert status.missed_ticks == 0
    assert status.connectivity is ConnectivityState.CONNECTED


def test_non_timeout_failure_disconnects_connected_device():
    status = apply_outcome(DeviceStatus(), ok(), TelemetrySnapshot(fed_weight=0))
    status = apply_outcome(status, LOST, None)

    assert status.connectivity is ConnectivityState.DISCONNECTED


def test_poller_tick_updates_status_and_calls_back():
    client = FakeClient({"/getFeededWeight": ok(_status_body(3.25, "-72", True))})
    seen = []
    poller = DevicePoller(
        FeederController(client, "192.168.1.5"),
        0.5,
        on_update=lambda status, snapshot, outcome: seen.append(snapshot),
    )

    status = asyncio.run(poller.tick())

    assert status.connectivity is ConnectivityState.CONNECTED
    assert status.signal is SignalQuality.POOR
    assert status.fed_weight == 3.25
    assert status.feeding is True
    assert seen[0].fed_weight == 3.25


def test_malformed_status_counts_as_failure():
    client = FakeClient({"/getFeededWeight": ok("garbage")})
    poller = DevicePoller(FeederController(client, "192.168.1.5"), 0.5)

    status = asyncio.run(poller.tick())

    assert status.connectivity is ConnectivityState.DISCONNECTED


def test_result_after_stop_is_dropped():
    client = FakeClient({"/getFeededWeight": ok(_status_body())}, delay=0.05)
    seen = []
    poller = DevicePoller(
        FeederController(client, "192.168.1.5"),
        0.5,
        on_update=lambda *args: seen.append(args),
    )

    async def _run():
        pending = asyncio.create_task(poller.tick())
        await asyncio.sleep(0)
        await poller.stop()
        return await pending

    status = asyncio.run(_run())

    assert seen == []
    assert status.connectivity is ConnectivityState.UNKNOWN


def test_poller_runs_until_stopped():
    client = FakeClient({"/getFeededWeight": ok(_status_body())})
    poller = DevicePoller(FeederController(client, "192.168.1.5"), 0.01)

    async def _run():
        poller.start()
        assert poller.status.connectivity is ConnectivityState.CONNECTING
        while client.count("/getFeededWeight") < 3:
            await asyncio.sleep(0.01)
        await poller.stop()
        return client.count("/getFeededWeight")

    polled = asyncio.run(_run())
    assert not poller.running

    assert polled >= 3
    assert client.count("/getFeededWeight") == polled


class RecordingNotifier:
    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []

    def notify(self, title: str, message: str) -> None:
        self.messages.append((title, message))


def test_monitor_notifies_once_per_feeding_start():
    flags = iter([False, True, True, False, True])
    client = FakeClient(
        {"/getFeededWeight": lambda: ok(_status_body(feeding=next(flags, True)))}
    )
    notifier = RecordingNotifier()
    monitor = TelemetryMonitor(client, PollingConfig(list_interval=0.01), notifier)
    device = Device(name="Barn 1", address="192.168.1.5")

    async def _run():
        monitor.start(device)
        while client.count("/getFeededWeight") < 8:
            await asyncio.sleep(0.01)
        await monitor.stop_all()

    asyncio.run(_run())

    assert notifier.messages == [
        ("Feeding Active", "Device Barn 1 is currently feeding."),
        ("Feeding Active", "Device Barn 1 is currently feeding."),
    ]


def test_monitor_sync_tracks_device_set():
    client = FakeClient({"/getFeededWeight": ok(_status_body())})
    monitor = TelemetryMonitor(client, PollingConfig(list_interval=0.01))
    barn = Device(name="Barn", address="192.168.1.5")
    pen = Device(name="Pen", address="192.168.1.6")

    async def _run():
        monitor.sync([barn, pen])
        both = monitor.device_ids
        monitor.sync([pen])
        await asyncio.sleep(0.05)
        remaining = monitor.device_ids
        statuses = monitor.statuses()
        await monitor.stop_all()
        return both, remaining, statuses

    both, remaining, statuses = asyncio.run(_run())

    assert both == {barn.id, pen.id}
    assert remaining == {pen.id}
    assert set(statuses) == {pen.id}
    assert statuses[pen.id].connectivity is ConnectivityState.CONNECTED
    assert monitor.device_ids == set()
