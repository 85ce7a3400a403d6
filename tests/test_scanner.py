from __future__ import annotations

import asyncio
import json

import pytest
from fakes import FakeClient, ok

from feederlink.config import ScanningConfig
from feederlink.core import SubnetScanner, candidate_addresses
from feederlink.core.scanner import normalize_prefix

FEEDER = json.dumps(
    {
        "name": "Barn 1",
        "animalName": "Daisy",
        "animalWeight": "450.00",
        "animalDailyGain": "1.20",
        "animalGender": "Female",
        "animalSpecies": "Cow",
    }
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("192.168.1.", "192.168.1."),
        ("192.168.1", "192.168.1."),
        (" http://10.0.0. ", "10.0.0."),
        ("010.000.001", "10.0.1."),
    ],
)
def test_normalize_prefix(raw, expected):
    assert normalize_prefix(raw) == expected


@pytest.mark.parametrize("raw", ["192.168.", "192.168.1.5", "300.1.1.", "a.b.c.", ""])
def test_normalize_prefix_rejects_garbage(raw):
    with pytest.raises(ValueError):
        normalize_prefix(raw)


def test_candidate_addresses_cover_range():
    addresses = candidate_addresses("192.168.1.", 1, 254)

    assert len(addresses) == 254
    assert addresses[0] == "192.168.1.1"
    assert addresses[-1] == "192.168.1.254"


def test_scan_finds_single_responder():
    client = FakeClient(
        {
            ("192.168.1.42", "/getName"): ok(FEEDER),
            ("192.168.1.1", "/getName"): ok("<html>router</html>"),
        }
    )

    result = asyncio.run(SubnetScanner(client).scan("192.168.1."))

    assert result is not None
    assert result.prefix == "192.168.1."
    assert [(d.name, d.address) for d in result.devices] == [("Barn 1", "192.168.1.42")]
    assert result.devices[0].animal_weight == 450.0
    assert client.count("/getName") == 254


def test_scan_ignores_responder_without_name():
    client = FakeClient({("192.168.1.7", "/getName"): ok('{"animalName": "Daisy"}')})

    result = asyncio.run(SubnetScanner(client).scan("192.168.1.", 1, 10))

    assert result.devices == []


def test_scan_collects_every_hit_in_address_order():
    client = FakeClient(
        {
            ("10.0.0.9", "/getName"): ok(json.dumps({"name": "Pen"})),
            ("10.0.0.3", "/getName"): ok(json.dumps({"name": "Barn"})),
        }
    )

    result = asyncio.run(SubnetScanner(client).scan("10.0.0.", 1, 20))

    assert [d.address for d in result.devices] == ["10.0.0.3", "10.0.0.9"]


def test_scan_runs_probes_concurrently():
    client = FakeClient(delay=0.05)
    scanner = SubnetScanner(client, ScanningConfig(range_start=1, range_end=254))

    asyncio.run(scanner.scan("192.168.1."))

    assert client.max_in_flight == 254


def test_scan_is_single_flight():
    client = FakeClient(delay=0.05)
    scanner = SubnetScanner(client)

    async def _run():
        first = asyncio.create_task(scanner.scan("192.168.1.", 1, 5))
        await asyncio.sleep(0)
        assert scanner.is_scanning
        second = await scanner.scan("192.168.1.", 1, 5)
        return await first, second

    first, second = asyncio.run(_run())

    assert first is not None
    assert second is None
    assert not scanner.is_scanning
    assert client.count("/getName") == 5


def test_scan_uses_configured_default_prefix():
    client = FakeClient()
    scanner = SubnetScanner(
        client, ScanningConfig(default_prefix="172.16.5.", range_start=10, range_end=12)
    )

    result = asyncio.run(scanner.scan())

    assert result.prefix == "172.16.5."
    assert [address for address, _, _ in client.calls] == [
        "172.16.5.10",
        "172.16.5.11",
        "172.16.5.12",
    ]
