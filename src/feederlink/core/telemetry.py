"""Recurring status polling, one task per controller.

A poller owns the :class:`DeviceStatus` of its device. Ticks run one after
another; each tick replaces the status with a fresh snapshot, so a late
result never accumulates into stale state. Stopping a poller cancels its
schedule at once and any result still arriving afterwards is dropped.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, Protocol
from uuid import UUID

from feederlink.config import PollingConfig
from feederlink.models import (
    ConnectivityState,
    Device,
    DeviceStatus,
    SignalQuality,
    TelemetrySnapshot,
)

from .client import CommandClient, CommandOutcome, OutcomeKind
from .controller import FeederController

logger = logging.getLogger(__name__)

UpdateCallback = Callable[
    [DeviceStatus, TelemetrySnapshot | None, CommandOutcome], Awaitable[None] | None
]


def signal_bucket(raw: Any) -> SignalQuality:
    """Map a raw RSSI reading in dBm to a coarse quality bucket."""
    if raw is None or isinstance(raw, bool):
        return SignalQuality.UNKNOWN
    try:
        value = int(str(raw).strip())
    except ValueError:
        return SignalQuality.UNKNOWN
    if value >= -50:
        return SignalQuality.EXCELLENT
    if value > -70:
        return SignalQuality.FAIR
    return SignalQuality.POOR


def apply_outcome(
    status: DeviceStatus,
    outcome: CommandOutcome,
    snapshot: TelemetrySnapshot | None,
    missed_ticks_tolerance: int = 3,
) -> DeviceStatus:
    """Return the status that follows `status` after one tick.

    Before the first success any failure means Disconnected. Once connected,
    isolated timeouts are tolerated until `missed_ticks_tolerance` of them
    happen in a row; every other failure disconnects immediately.
    """
    if outcome.ok and snapshot is not None:
        return DeviceStatus(
            connectivity=ConnectivityState.CONNECTED,
            signal=signal_bucket(snapshot.signal_dbm),
            fed_weight=snapshot.fed_weight,
            feeding=snapshot.feeding,
            ever_connected=True,
            missed_ticks=0,
        )

    updated = status.model_copy()
    updated.signal = SignalQuality.UNKNOWN
    if not status.ever_connected:
        updated.connectivity = ConnectivityState.DISCONNECTED
        return updated

    if outcome.kind is OutcomeKind.TIMEOUT:
        updated.missed_ticks = status.missed_ticks + 1
        if updated.missed_ticks >= missed_ticks_tolerance:
            updated.connectivity = ConnectivityState.DISCONNECTED
        return updated

    updated.missed_ticks = 0
    updated.connectivity = ConnectivityState.DISCONNECTED
    return updated


class DevicePoller:
    """Fetches `/getFeededWeight` from one controller every `interval` seconds."""

    def __init__(
        self,
        controller: FeederController,
        interval: float,
        *,
        on_update: UpdateCallback | None = None,
        missed_ticks_tolerance: int = 3,
        label: str | None = None,
    ) -> None:
        self._controller = controller
        self._interval = interval
        self._on_update = on_update
        self._tolerance = missed_ticks_tolerance
        self._label = label or controller.address
        self._status = DeviceStatus()
        self._task: asyncio.Task[None] | None = None
        self._stopped = False

    @property
    def status(self) -> DeviceStatus:
        return self._status.model_copy()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._task is not None:
            return
        self._stopped = False
        self._status = self._status.model_copy(
            update={"connectivity": ConnectivityState.CONNECTING}
        )
        self._task = asyncio.create_task(self._run(), name=f"poll:{self._label}")

    def cancel(self) -> None:
        """Stop scheduling ticks without waiting for the task to unwind."""
        self._stopped = True
        if self._task is not None:
            self._task.cancel()

    async def stop(self) -> None:
        self.cancel()
        if self._task is None:
            return
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def tick(self) -> DeviceStatus:
        outcome, snapshot = await self._controller.status()
        if self._stopped:
            logger.debug("[%s] dropping result of stopped poller", self._label)
            return self.status

        if not outcome.ok:
            logger.debug("[%s] status failed: %s", self._label, outcome.kind.value)
        previous = self._status
        self._status = apply_outcome(previous, outcome, snapshot, self._tolerance)
        if previous.connectivity is not self._status.connectivity:
            logger.info("[%s] %s", self._label, self._status.connectivity.value)

        if self._on_update is not None:
            result = self._on_update(self.status, snapshot, outcome)
            if inspect.isawaitable(result):
                await result
        return self.status

    async def _run(self) -> None:
        while not self._stopped:
            await self.tick()
            await asyncio.sleep(self._interval)


class Notifier(Protocol):
    def notify(self, title: str, message: str) -> None: ...


class LogNotifier:
    def notify(self, title: str, message: str) -> None:
        logger.info("%s: %s", title, message)


class TelemetryMonitor:
    """Keeps one poller per registered device for list views.

    Also watches each device's feeding flag and sends one notification on
    every false -> true transition.
    """

    def __init__(
        self,
        client: CommandClient,
        config: PollingConfig | None = None,
        notifier: Notifier | None = None,
        on_update: Callable[[Device, DeviceStatus], None] | None = None,
    ) -> None:
        self._client = client
        self._config = config or PollingConfig()
        self._notifier = notifier or LogNotifier()
        self._on_update = on_update
        self._pollers: dict[UUID, DevicePoller] = {}
        self._devices: dict[UUID, Device] = {}
        self._statuses: dict[UUID, DeviceStatus] = {}
        self._feeding: dict[UUID, bool] = {}

    @property
    def device_ids(self) -> set[UUID]:
        return set(self._pollers)

    def status(self, device_id: UUID) -> DeviceStatus | None:
        status = self._statuses.get(device_id)
        return status.model_copy() if status is not None else None

    def statuses(self) -> dict[UUID, DeviceStatus]:
        return {key: value.model_copy() for key, value in self._statuses.items()}

    def start(self, device: Device) -> None:
        if device.id in self._pollers:
            self._devices[device.id] = device
            return

        poller = DevicePoller(
            FeederController(self._client, device.address),
            self._config.list_interval,
            on_update=self._updater(device.id),
            missed_ticks_tolerance=self._config.missed_ticks_tolerance,
            label=device.address,
        )
        self._pollers[device.id] = poller
        self._devices[device.id] = device
        self._statuses[device.id] = DeviceStatus(
            connectivity=ConnectivityState.CONNECTING
        )
        poller.start()

    def _forget(self, device_id: UUID) -> DevicePoller | None:
        poller = self._pollers.pop(device_id, None)
        self._devices.pop(device_id, None)
        self._statuses.pop(device_id, None)
        self._feeding.pop(device_id, None)
        return poller

    async def stop(self, device_id: UUID) -> None:
        poller = self._forget(device_id)
        if poller is not None:
            await poller.stop()

    def sync(self, devices: Iterable[Device]) -> None:
        """Poll exactly `devices`: start new ones, cancel the rest."""
        wanted = {device.id: device for device in devices}
        for device_id in set(self._pollers) - set(wanted):
            poller = self._forget(device_id)
            if poller is not None:
                poller.cancel()
        for device in wanted.values():
            self.start(device)

    async def stop_all(self) -> None:
        for device_id in list(self._pollers):
            await self.stop(device_id)

    def _updater(self, device_id: UUID) -> UpdateCallback:
        def _update(
            status: DeviceStatus,
            snapshot: TelemetrySnapshot | None,
            _outcome: CommandOutcome,
        ) -> None:
            device = self._devices.get(device_id)
            if device is None:
                return
            self._statuses[device_id] = status
            if snapshot is not None:
                self._track_feeding(device, snapshot.feeding)
            if self._on_update is not None:
                self._on_update(device, status)

        return _update

    def _track_feeding(self, device: Device, feeding: bool) -> None:
        was_feeding = self._feeding.get(device.id, False)
        self._feeding[device.id] = feeding
        if feeding and not was_feeding:
            self._notifier.notify(
                "Feeding Active", f"Device {device.name} is currently feeding."
            )
