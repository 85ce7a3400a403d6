"""HTTP transport to feeder controllers.

Every request is a GET against ``http://<address><path>``. Failures are never
raised to callers; they come back as a classified :class:`CommandOutcome`.
Nothing in this module retries.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

import aiohttp
from yarl import URL

from feederlink.config import ClientConfig

logger = logging.getLogger(__name__)

_HOST_PATTERN = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9.\-]*[A-Za-z0-9])?$")


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    INVALID_INPUT = "invalid_input"
    TIMEOUT = "timeout"
    NETWORK_UNREACHABLE = "network_unreachable"
    CONNECTION_LOST = "connection_lost"
    HTTP_ERROR = "http_error"
    PARSE_ERROR = "parse_error"


@dataclass(frozen=True)
class CommandOutcome:
    kind: OutcomeKind
    body: str = ""
    status: int | None = None
    detail: str = ""

    @classmethod
    def success(cls, body: str, status: int = 200) -> CommandOutcome:
        return cls(OutcomeKind.SUCCESS, body=body, status=status)

    @classmethod
    def failure(
        cls, kind: OutcomeKind, detail: str = "", status: int | None = None
    ) -> CommandOutcome:
        return cls(kind, status=status, detail=detail)

    @property
    def ok(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS

    @property
    def is_empty(self) -> bool:
        return self.ok and not self.body.strip()

    def describe(self) -> str:
        if self.kind is OutcomeKind.SUCCESS:
            return "OK"
        if self.kind is OutcomeKind.TIMEOUT:
            return "Device timed out, please reset device"
        if self.kind is OutcomeKind.NETWORK_UNREACHABLE:
            return "Network unreachable, check that this machine is on the feeder's network"
        if self.kind is OutcomeKind.CONNECTION_LOST:
            return "Feeder has lost its connection, please reconnect"
        if self.kind is OutcomeKind.HTTP_ERROR:
            return f"Server responded with status code {self.status}"
        if self.kind is OutcomeKind.PARSE_ERROR:
            return f"Unexpected response from feeder: {self.detail}"
        return f"Invalid request: {self.detail}"


def build_url(
    address: str,
    path: str,
    params: Mapping[str, object] | None = None,
    default_port: int = 80,
) -> URL:
    """Build a controller URL, raising ValueError for malformed input."""
    raw = address.strip().rstrip("/")
    if not raw:
        raise ValueError("empty device address")
    if "://" not in raw:
        raw = f"http://{raw}"

    base = URL(raw)
    if base.scheme != "http" or not base.host or base.path not in ("", "/"):
        raise ValueError(f"not a controller address: {address!r}")
    if not _HOST_PATTERN.match(base.host):
        raise ValueError(f"invalid host in address: {address!r}")
    if not path.startswith("/") or "?" in path:
        raise ValueError(f"invalid command path: {path!r}")

    port = default_port if base.is_default_port() else base.port
    url = URL.build(
        scheme="http", host=base.host, port=None if port == 80 else port, path=path
    )
    if params:
        url = url.with_query({key: str(value) for key, value in params.items()})
    return url


class CommandClient:
    """Issues GET requests to controllers and classifies the outcome.

    The session is created lazily inside the running loop. Its connector has
    no connection cap so a subnet sweep can have every probe in flight at
    once.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._config = config or ClientConfig()
        self._session = session
        self._owns_session = session is None

    @property
    def config(self) -> ClientConfig:
        return self._config

    async def __aenter__(self) -> CommandClient:
        return self

    async def __aexit__(self, *_exc: object) -> None:
        await self.close()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            connector = aiohttp.TCPConnector(limit=0)
            self._session = aiohttp.ClientSession(connector=connector)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    async def send(
        self,
        address: str,
        path: str,
        params: Mapping[str, object] | None = None,
        *,
        timeout: float | None = None,
    ) -> CommandOutcome:
        try:
            url = build_url(address, path, params, default_port=self._config.port)
        except ValueError as exc:
            logger.debug("Rejected request %s%s: %s", address, path, exc)
            return CommandOutcome.failure(OutcomeKind.INVALID_INPUT, str(exc))

        limit = timeout if timeout is not None else self._config.command_timeout
        session = await self._ensure_session()
        try:
            async with session.get(
                url, timeout=aiohttp.ClientTimeout(total=limit)
            ) as response:
                payload = await response.read()
                if not 200 <= response.status < 300:
                    logger.debug("%s -> HTTP %d", url, response.status)
                    return CommandOutcome.failure(
                        OutcomeKind.HTTP_ERROR,
                        detail=response.reason or "",
                        status=response.status,
                    )
                body = payload.decode("utf-8", errors="replace")
                return CommandOutcome.success(body, status=response.status)
        except (asyncio.TimeoutError, TimeoutError):
            logger.debug("%s timed out after %.1fs", url, limit)
            return CommandOutcome.failure(OutcomeKind.TIMEOUT, f"after {limit}s")
        except aiohttp.InvalidURL as exc:
            return CommandOutcome.failure(OutcomeKind.INVALID_INPUT, str(exc))
        except aiohttp.ClientConnectorError as exc:
            logger.debug("%s unreachable: %s", url, exc)
            return CommandOutcome.failure(OutcomeKind.NETWORK_UNREACHABLE, str(exc))
        except aiohttp.ClientError as exc:
            logger.debug("%s connection lost: %s", url, exc)
            return CommandOutcome.failure(OutcomeKind.CONNECTION_LOST, str(exc))
        except OSError as exc:
            logger.debug("%s failed mid-request: %s", url, exc)
            return CommandOutcome.failure(OutcomeKind.CONNECTION_LOST, str(exc))

    async def query_json(
        self,
        address: str,
        path: str,
        params: Mapping[str, object] | None = None,
        *,
        timeout: float | None = None,
    ) -> tuple[CommandOutcome, Any]:
        """Send a query and decode its JSON body.

        A body that is not JSON turns a successful outcome into PARSE_ERROR.
        """
        outcome = await self.send(address, path, params, timeout=timeout)
        if not outcome.ok:
            return outcome, None
        try:
            return outcome, json.loads(outcome.body)
        except ValueError as exc:
            return (
                CommandOutcome.failure(
                    OutcomeKind.PARSE_ERROR, str(exc), status=outcome.status
                ),
                None,
            )
