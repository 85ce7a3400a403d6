"""Typed wrapper around the controller's HTTP surface."""

from __future__ import annotations

import math
from datetime import datetime, time
from typing import Any

from feederlink.models import UNKNOWN, Device, FeedLogEntry, TelemetrySnapshot

from .client import CommandClient, CommandOutcome, OutcomeKind

IDENTITY_PATH = "/getName"
STATUS_PATH = "/getFeededWeight"
STORAGE_PATH = "/getStorage"
FEED_LOG_PATH = "/getFeedLog"
START_PATH = "/L"
STOP_PATH = "/H"
TARE_PATH = "/TareScale"


def _as_float(value: Any, default: float = 0.0) -> float:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return default
    return default


def _as_text(value: Any, default: str = UNKNOWN) -> str:
    if isinstance(value, str) and value.strip():
        return value
    return default


def parse_identity(payload: Any, address: str) -> Device | None:
    """Build a Device from a `/getName` document, or None if it isn't one.

    Only a non-empty string `name` makes a hit; animal fields fall back to
    defaults when missing or malformed.
    """
    if not isinstance(payload, dict):
        return None
    name = payload.get("name")
    if not isinstance(name, str) or not name.strip():
        return None

    return Device(
        name=name,
        address=address,
        animal_name=_as_text(payload.get("animalName")),
        animal_weight=_as_float(payload.get("animalWeight")),
        animal_daily_gain=_as_float(payload.get("animalDailyGain")),
        animal_gender=_as_text(payload.get("animalGender")),
        animal_species=_as_text(payload.get("animalSpecies")),
    )


def parse_telemetry(payload: Any) -> TelemetrySnapshot:
    """Parse a `/getFeededWeight` document. Raises ValueError when unusable."""
    if not isinstance(payload, dict):
        raise ValueError("status response is not an object")

    raw_weight = payload.get("FeededWeight")
    if raw_weight is None:
        raise ValueError("missing FeededWeight")
    fed_weight = _as_float(raw_weight, default=float("nan"))
    if math.isnan(fed_weight):
        raise ValueError(f"unparsable FeededWeight: {raw_weight!r}")

    signal: int | None
    try:
        signal = int(str(payload.get("WifiStatus", "")).strip())
    except ValueError:
        signal = None

    feeding = str(payload.get("FeedingStatus", "")).strip().lower() == "true"
    return TelemetrySnapshot(fed_weight=fed_weight, signal_dbm=signal, feeding=feeding)


def parse_feed_log(payload: Any) -> list[FeedLogEntry]:
    if not isinstance(payload, list):
        raise ValueError("feed log is not a list")
    entries = []
    for item in payload:
        if not isinstance(item, dict) or "time" not in item:
            raise ValueError(f"malformed feed log entry: {item!r}")
        entries.append(
            FeedLogEntry(
                time=str(item["time"]),
                target_weight=_as_float(item.get("targetWeight")),
            )
        )
    return entries


def format_amount(value: float) -> str:
    return f"{value:.1f}"


class FeederController:
    """One controller, addressed through a shared CommandClient."""

    def __init__(self, client: CommandClient, address: str) -> None:
        self._client = client
        self.address = address

    def __repr__(self) -> str:
        return f"FeederController({self.address!r})"

    async def command(
        self, path: str, params: dict[str, object] | None = None, **kwargs: Any
    ) -> CommandOutcome:
        return await self._client.send(self.address, path, params, **kwargs)

    async def identify(
        self, timeout: float | None = None
    ) -> tuple[CommandOutcome, Device | None]:
        outcome, payload = await self._client.query_json(
            self.address, IDENTITY_PATH, timeout=timeout
        )
        if not outcome.ok:
            return outcome, None
        device = parse_identity(payload, self.address)
        if device is None:
            return CommandOutcome.failure(OutcomeKind.PARSE_ERROR, "missing name"), None
        return outcome, device

    async def status(self) -> tuple[CommandOutcome, TelemetrySnapshot | None]:
        outcome, payload = await self._client.query_json(self.address, STATUS_PATH)
        if not outcome.ok:
            return outcome, None
        try:
            return outcome, parse_telemetry(payload)
        except ValueError as exc:
            return CommandOutcome.failure(OutcomeKind.PARSE_ERROR, str(exc)), None

    async def storage(self) -> tuple[CommandOutcome, str | None]:
        outcome, payload = await self._client.query_json(self.address, STORAGE_PATH)
        if not outcome.ok:
            return outcome, None
        if not isinstance(payload, dict) or "Storage" not in payload:
            return CommandOutcome.failure(OutcomeKind.PARSE_ERROR, "missing Storage"), None
        return outcome, str(payload["Storage"])

    async def feed_log(self) -> tuple[CommandOutcome, list[FeedLogEntry] | None]:
        outcome, payload = await self._client.query_json(self.address, FEED_LOG_PATH)
        if not outcome.ok:
            return outcome, None
        try:
            return outcome, parse_feed_log(payload)
        except ValueError as exc:
            return CommandOutcome.failure(OutcomeKind.PARSE_ERROR, str(exc)), None

    async def set_target_time(self, value: time | datetime | str) -> CommandOutcome:
        if isinstance(value, (time, datetime)):
            value = value.strftime("%H:%M")
        return await self.command("/setTargetTime", {"value": value})

    async def set_animal_weight(self, value: float) -> CommandOutcome:
        return await self.command("/setAnimalWeight", {"value": format_amount(value)})

    async def set_animal_name(self, value: str) -> CommandOutcome:
        return await self.command("/setAnimalName", {"value": value})

    async def set_animal_gender(self, value: str) -> CommandOutcome:
        return await self.command("/setAnimalGender", {"value": value})

    async def set_animal_species(self, value: str) -> CommandOutcome:
        return await self.command("/setAnimalSpecies", {"value": value})

    async def set_daily_gain(self, value: float) -> CommandOutcome:
        return await self.command("/setDailyGain", {"value": format_amount(value)})

    async def set_name(self, value: str) -> CommandOutcome:
        return await self.command("/setName", {"value": value})

    async def set_weight(self, value: float) -> CommandOutcome:
        return await self.command("/setWeight", {"value": format_amount(value)})

    async def tare_scale(self) -> CommandOutcome:
        return await self.command(TARE_PATH)

    # The controller may hold these responses until the auger has moved.
    async def start_feeding(self) -> CommandOutcome:
        return await self.command(START_PATH, timeout=self._client.config.feed_timeout)

    async def stop_feeding(self) -> CommandOutcome:
        return await self.command(STOP_PATH, timeout=self._client.config.feed_timeout)
