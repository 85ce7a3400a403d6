"""The durable set of known controllers, keyed by network address."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from typing import Protocol
from uuid import UUID

from pydantic import ValidationError

from feederlink.models import EDITABLE_FIELDS, Device, ScanResult

logger = logging.getLogger(__name__)

RegistryListener = Callable[[list[Device]], None]


class DeviceStore(Protocol):
    def load(self) -> list[Device]: ...

    def save(self, devices: list[Device]) -> bool: ...


def _same_address(left: str, right: str) -> bool:
    return left.strip().lower() == right.strip().lower()


class DeviceRegistry:
    """Insertion-ordered devices with one entry per address.

    Every mutation persists the whole list through the store. Writes are
    serialized by a lock; readers get snapshot copies. Store failures are
    logged and otherwise ignored, so the in-memory list stays authoritative.
    """

    def __init__(self, store: DeviceStore | None = None) -> None:
        self._store = store
        self._lock = threading.Lock()
        self._devices: list[Device] = []
        self._listeners: list[RegistryListener] = []
        if store is not None:
            self._devices = self._dedupe(self._safe_load(store))

    @staticmethod
    def _safe_load(store: DeviceStore) -> list[Device]:
        try:
            return list(store.load())
        except (OSError, ValueError) as exc:
            logger.warning("Could not load device list: %s", exc)
            return []

    @staticmethod
    def _dedupe(devices: Iterable[Device]) -> list[Device]:
        unique: list[Device] = []
        for device in devices:
            if not any(_same_address(d.address, device.address) for d in unique):
                unique.append(device)
        return unique

    def subscribe(self, listener: RegistryListener) -> Callable[[], None]:
        """Call `listener` with a snapshot after every mutation."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _commit(self) -> list[Device]:
        # Caller holds the lock.
        snapshot = [device.model_copy() for device in self._devices]
        if self._store is not None:
            try:
                saved = self._store.save(snapshot)
            except (OSError, ValueError) as exc:
                logger.warning("Could not save device list: %s", exc)
                saved = False
            if not saved:
                logger.warning("Device list not persisted; keeping in-memory copy")
        return snapshot

    def _notify(self, snapshot: list[Device]) -> None:
        for listener in list(self._listeners):
            listener(snapshot)

    def list(self) -> list[Device]:
        with self._lock:
            return [device.model_copy() for device in self._devices]

    def __len__(self) -> int:
        with self._lock:
            return len(self._devices)

    def get(self, device_id: UUID) -> Device | None:
        with self._lock:
            for device in self._devices:
                if device.id == device_id:
                    return device.model_copy()
        return None

    def find(self, ref: str) -> Device | None:
        """Look a device up by id, id prefix, address or name."""
        ref = ref.strip()
        if not ref:
            return None
        devices = self.list()
        for device in devices:
            if str(device.id) == ref or _same_address(device.address, ref):
                return device
        prefixed = [d for d in devices if str(d.id).startswith(ref.lower())]
        if len(prefixed) == 1:
            return prefixed[0]
        named = [d for d in devices if d.name == ref]
        if len(named) == 1:
            return named[0]
        return None

    def add(self, device: Device) -> bool:
        """Append `device` unless its address is already known."""
        with self._lock:
            if any(_same_address(d.address, device.address) for d in self._devices):
                logger.debug("Device at %s already registered", device.address)
                return False
            self._devices.append(device.model_copy())
            snapshot = self._commit()
        logger.info("Registered '%s' at %s", device.name, device.address)
        self._notify(snapshot)
        return True

    def merge(self, result: ScanResult) -> list[Device]:
        """Add every scan hit with a new address; existing entries win."""
        added: list[Device] = []
        with self._lock:
            for device in result.devices:
                known = self._devices + added
                if any(_same_address(d.address, device.address) for d in known):
                    continue
                added.append(device.model_copy())
            if not added:
                return []
            self._devices.extend(added)
            snapshot = self._commit()
        logger.info("Registered %d new device(s) from scan of %s", len(added), result.prefix)
        self._notify(snapshot)
        return [device.model_copy() for device in added]

    def remove(self, device_id: UUID) -> bool:
        with self._lock:
            remaining = [d for d in self._devices if d.id != device_id]
            if len(remaining) == len(self._devices):
                return False
            self._devices = remaining
            snapshot = self._commit()
        self._notify(snapshot)
        return True

    def update(
        self,
        device_id: UUID,
        mutator: Callable[[Device], None] | None = None,
        **changes: object,
    ) -> Device | None:
        """Apply `mutator` and/or field `changes` to one device and persist.

        Returns the updated device, or None when the id is unknown. Raises
        ValueError for attempts to change the id or address, or for values
        that fail validation; the stored device is untouched in that case.
        """
        forbidden = set(changes) - EDITABLE_FIELDS
        if forbidden:
            raise ValueError(f"Fields cannot be edited: {', '.join(sorted(forbidden))}")

        with self._lock:
            for index, device in enumerate(self._devices):
                if device.id == device_id:
                    break
            else:
                return None

            candidate = device.model_copy()
            try:
                if mutator is not None:
                    mutator(candidate)
                for field, value in changes.items():
                    setattr(candidate, field, value)
            except ValidationError as exc:
                raise ValueError(str(exc)) from exc
            if candidate.id != device.id or candidate.address != device.address:
                raise ValueError("Device id and address are immutable")

            self._devices[index] = candidate
            snapshot = self._commit()
        self._notify(snapshot)
        return candidate.model_copy()

    def clear(self) -> None:
        with self._lock:
            self._devices = []
            snapshot = self._commit()
        self._notify(snapshot)
