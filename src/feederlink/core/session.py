"""Bounded feeding sessions.

A session starts the auger, watches fed-weight samples and stops the auger
once the target is reached. The stop command of a session is sent at most
once: the session is removed from the active table *before* the stop goes
out, so a second trigger (a late telemetry sample, a manual stop, a failing
command) finds nothing to stop.

Any failed command while a session is active triggers a fail-safe stop; the
client never leaves a feeder running on an unconfirmed command. A stop that
is already on the wire survives cancellation of whoever sent it, and a later
manual stop waits for it instead of reporting that nothing was running.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from uuid import UUID

from feederlink.config import FeedingConfig
from feederlink.models import Device, TelemetrySnapshot

from .client import CommandClient, CommandOutcome
from .controller import FeederController

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    FEEDING = "feeding"
    ABORTING = "aborting"


class StopReason(str, Enum):
    TARGET_REACHED = "target reached"
    MANUAL = "manual stop"
    FAIL_SAFE = "fail-safe"


def default_target_weight(animal_weight: float, ratio: float = 0.02) -> float:
    """Daily ration heuristic: a fixed share of the animal's weight."""
    return max(animal_weight, 0.0) * ratio


def round_target(value: float) -> float:
    """Targets reach the controller with one decimal; compare against that."""
    return round(value, 1)


def command_failed(outcome: CommandOutcome) -> bool:
    return not outcome.ok or outcome.is_empty


@dataclass
class FeedingSession:
    device_id: UUID
    address: str
    target_weight: float
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    fed_weight: float = 0.0

    def observe(self, weight: float) -> None:
        self.fed_weight = max(self.fed_weight, weight)


@dataclass(frozen=True)
class SessionResult:
    accepted: bool
    state: SessionState
    outcome: CommandOutcome | None = None
    reason: StopReason | None = None
    message: str = ""

    @property
    def error(self) -> bool:
        return self.reason is StopReason.FAIL_SAFE


ErrorCallback = Callable[[FeedingSession, CommandOutcome], None]
PendingStop = tuple[asyncio.Task[CommandOutcome], StopReason]


class FeedingSessionController:
    def __init__(
        self,
        client: CommandClient,
        config: FeedingConfig | None = None,
        on_error: ErrorCallback | None = None,
    ) -> None:
        self._client = client
        self._config = config or FeedingConfig()
        self._on_error = on_error
        self._sessions: dict[UUID, FeedingSession] = {}
        self._aborting: set[UUID] = set()
        self._stopping: dict[UUID, PendingStop] = {}

    @property
    def config(self) -> FeedingConfig:
        return self._config

    def state(self, device_id: UUID) -> SessionState:
        if device_id in self._sessions:
            return SessionState.FEEDING
        if device_id in self._aborting:
            return SessionState.ABORTING
        return SessionState.IDLE

    def session(self, device_id: UUID) -> FeedingSession | None:
        return self._sessions.get(device_id)

    def is_active(self, device_id: UUID) -> bool:
        return device_id in self._sessions

    def is_stopping(self, device_id: UUID) -> bool:
        return device_id in self._stopping

    def target_for(self, device: Device, amount: float | None = None) -> float:
        if amount is not None:
            return round_target(amount)
        return round_target(
            default_target_weight(device.animal_weight, self._config.default_ratio)
        )

    def _controller(self, session: FeedingSession) -> FeederController:
        return FeederController(self._client, session.address)

    async def start(self, device: Device, target_weight: float | None = None) -> SessionResult:
        if device.id in self._sessions or device.id in self._aborting:
            logger.info("'%s' is already feeding; start ignored", device.name)
            return SessionResult(
                accepted=False,
                state=self.state(device.id),
                message=f"{device.name} is already feeding",
            )
        if device.id in self._stopping:
            return SessionResult(
                accepted=False,
                state=self.state(device.id),
                message=f"{device.name} is still stopping",
            )

        # max_amount bounds explicit amounts only; the ration default is not capped.
        target = self.target_for(device, target_weight)
        if target <= 0:
            return SessionResult(
                accepted=False,
                state=SessionState.IDLE,
                message=f"Target {target:.1f} must be above 0",
            )
        if target_weight is not None and target > self._config.max_amount:
            return SessionResult(
                accepted=False,
                state=SessionState.IDLE,
                message=f"Target {target:.1f} is outside 0-{self._config.max_amount:g}",
            )

        session = FeedingSession(device.id, device.address, target)
        self._sessions[device.id] = session
        controller = self._controller(session)

        outcome = await controller.set_weight(target)
        if command_failed(outcome):
            return await self._abort(session, outcome)

        outcome = await controller.start_feeding()
        if command_failed(outcome):
            return await self._abort(session, outcome)

        logger.info("Feeding '%s' started, target %.1f", device.name, target)
        return SessionResult(
            accepted=True,
            state=self.state(device.id),
            outcome=outcome,
            message=f"Feeding {target:.1f}",
        )

    async def on_telemetry(
        self, device_id: UUID, sample: TelemetrySnapshot | float
    ) -> bool:
        """Check one fed-weight sample; True if it completed the session."""
        session = self._sessions.get(device_id)
        if session is None:
            return False

        weight = sample.fed_weight if isinstance(sample, TelemetrySnapshot) else sample
        session.observe(weight)
        if weight < session.target_weight - self._config.tolerance:
            return False

        del self._sessions[device_id]
        logger.info(
            "Auto-stopped feeding at %.2f (target %.1f)", weight, session.target_weight
        )
        await self._issue_stop(session, StopReason.TARGET_REACHED)
        return True

    async def manual_stop(self, device_id: UUID) -> SessionResult:
        session = self._sessions.pop(device_id, None)
        if session is None:
            return await self._join_stop(device_id)

        outcome = await self._issue_stop(session, StopReason.MANUAL)
        return SessionResult(
            accepted=True,
            state=self.state(device_id),
            outcome=outcome,
            reason=StopReason.MANUAL,
            message=f"Stopped at {session.fed_weight:.2f}",
        )

    async def send_command(
        self,
        device_id: UUID,
        address: str,
        path: str,
        params: dict[str, object] | None = None,
    ) -> CommandOutcome:
        """Send a command; a failure during an active session aborts it."""
        outcome = await self._client.send(address, path, params)
        if command_failed(outcome) and device_id in self._sessions:
            await self.report_failure(device_id, outcome)
        return outcome

    async def report_failure(
        self, device_id: UUID, outcome: CommandOutcome
    ) -> SessionResult:
        """Transport failure reported by a caller while feeding."""
        session = self._sessions.get(device_id)
        if session is None:
            return SessionResult(accepted=False, state=self.state(device_id))
        return await self._abort(session, outcome)

    async def _abort(self, session: FeedingSession, cause: CommandOutcome) -> SessionResult:
        if self._sessions.get(session.device_id) is not session:
            # Already stopped by someone else; nothing left to do.
            return SessionResult(
                accepted=False,
                state=self.state(session.device_id),
                outcome=cause,
                message=cause.describe(),
            )

        del self._sessions[session.device_id]
        self._aborting.add(session.device_id)
        logger.warning(
            "Feeding at %s stopped due to error: %s", session.address, cause.describe()
        )
        try:
            await self._issue_stop(session, StopReason.FAIL_SAFE)
        finally:
            self._aborting.discard(session.device_id)

        if self._on_error is not None:
            self._on_error(session, cause)
        return SessionResult(
            accepted=False,
            state=self.state(session.device_id),
            outcome=cause,
            reason=StopReason.FAIL_SAFE,
            message=cause.describe(),
        )

    async def _join_stop(self, device_id: UUID) -> SessionResult:
        pending = self._stopping.get(device_id)
        if pending is None:
            return SessionResult(
                accepted=False,
                state=self.state(device_id),
                message="No feeding session is active",
            )

        task, reason = pending
        outcome = await asyncio.shield(task)
        self._release_stop(device_id, task)
        return SessionResult(
            accepted=False,
            state=self.state(device_id),
            outcome=outcome,
            reason=reason,
            message=f"Already stopped ({reason.value}): {outcome.describe()}",
        )

    async def _issue_stop(
        self, session: FeedingSession, reason: StopReason
    ) -> CommandOutcome:
        task = asyncio.create_task(self._send_stop(session, reason))
        self._stopping[session.device_id] = (task, reason)
        task.add_done_callback(lambda done: self._release_stop(session.device_id, done))
        outcome = await asyncio.shield(task)
        self._release_stop(session.device_id, task)
        return outcome

    def _release_stop(
        self, device_id: UUID, task: asyncio.Task[CommandOutcome]
    ) -> None:
        pending = self._stopping.get(device_id)
        if pending is not None and pending[0] is task:
            del self._stopping[device_id]

    async def _send_stop(
        self, session: FeedingSession, reason: StopReason
    ) -> CommandOutcome:
        outcome = await self._controller(session).stop_feeding()
        if command_failed(outcome):
            logger.warning(
                "Stop (%s) to %s not confirmed: %s",
                reason.value,
                session.address,
                outcome.describe(),
            )
        else:
            logger.debug("Stop (%s) sent to %s", reason.value, session.address)
        return outcome
