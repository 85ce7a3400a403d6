from __future__ import annotations

import asyncio
import ipaddress
import logging
import socket
from datetime import datetime, timezone

from feederlink.config import ScanningConfig
from feederlink.models import Device, ScanResult

from .client import CommandClient, OutcomeKind
from .controller import FeederController

logger = logging.getLogger(__name__)


def normalize_prefix(prefix: str) -> str:
    """Return `prefix` as three dotted octets with a trailing dot."""
    cleaned = prefix.strip().removeprefix("http://").rstrip(".")
    parts = cleaned.split(".")
    if len(parts) != 3 or not all(p.isdigit() and 0 <= int(p) <= 255 for p in parts):
        raise ValueError(f"Not a /24 address prefix: {prefix!r}")
    return ".".join(str(int(p)) for p in parts) + "."


def candidate_addresses(prefix: str, start: int, end: int) -> list[str]:
    if not 0 <= start <= end <= 255:
        raise ValueError(f"Invalid host range {start}..{end}")
    base = normalize_prefix(prefix)
    return [f"{base}{host}" for host in range(start, end + 1)]


async def check_device(
    client: CommandClient, address: str, timeout: float
) -> Device | None:
    """Probe one address; a miss of any kind is None."""
    logger.debug("Checking %s", address)
    outcome, device = await FeederController(client, address).identify(timeout=timeout)
    if device is not None:
        logger.debug("Found feeder '%s' at %s", device.name, address)
        return device
    if outcome.kind is OutcomeKind.TIMEOUT:
        logger.debug("No response from %s (timeout)", address)
    else:
        logger.debug("No feeder at %s: %s", address, outcome.kind.value)
    return None


class SubnetScanner:
    """Single-flight sweep of a /24 range for feeder controllers.

    All probes of one sweep run at once and are joined before the result is
    published, so a sweep takes about one probe timeout regardless of the
    range size. A scan requested while another is running is ignored.
    """

    def __init__(self, client: CommandClient, config: ScanningConfig | None = None) -> None:
        self._client = client
        self._config = config or ScanningConfig()
        self._scanning = False

    @property
    def is_scanning(self) -> bool:
        return self._scanning

    async def scan(
        self,
        prefix: str | None = None,
        start: int | None = None,
        end: int | None = None,
    ) -> ScanResult | None:
        """Sweep `prefix` + [start, end]; None if a sweep is already running."""
        if self._scanning:
            logger.debug("Scan already in progress, ignoring request")
            return None

        base = normalize_prefix(prefix or self._config.default_prefix)
        first = self._config.range_start if start is None else start
        last = self._config.range_end if end is None else end
        addresses = candidate_addresses(base, first, last)

        self._scanning = True
        try:
            logger.debug(
                "Scanning %s%d-%d (%d hosts, timeout=%.2fs)",
                base,
                first,
                last,
                len(addresses),
                self._config.timeout,
            )
            probes = [
                check_device(self._client, address, self._config.timeout)
                for address in addresses
            ]
            results = await asyncio.gather(*probes)
        finally:
            self._scanning = False

        devices = [device for device in results if device is not None]
        logger.debug("Scan complete: found %d devices", len(devices))
        return ScanResult(
            scan_timestamp=datetime.now(timezone.utc),
            prefix=base,
            devices=devices,
        )


def detect_local_prefix() -> str:
    """Detect the local /24 as a prefix such as '192.168.1.'."""
    try:
        # UDP connect sends nothing; it only selects the outbound interface.
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(("8.8.8.8", 80))
            local_ip = sock.getsockname()[0]
        network = ipaddress.ip_network(f"{local_ip}/24", strict=False)
    except (OSError, ValueError) as exc:
        raise RuntimeError("Could not detect local network") from exc

    prefix = normalize_prefix(str(network.network_address).rsplit(".", 1)[0])
    logger.debug("Detected local network: %s", network)
    return prefix
