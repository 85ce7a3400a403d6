"""Device models."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

UNKNOWN = "Unknown"

# Fields the user may change after discovery; id and address are fixed.
EDITABLE_FIELDS = frozenset(
    {
        "name",
        "animal_name",
        "animal_weight",
        "animal_daily_gain",
        "animal_gender",
        "animal_species",
    }
)


class Device(BaseModel):
    """A feeder controller known to the client."""

    model_config = {"extra": "forbid", "validate_assignment": True}

    id: UUID = Field(default_factory=uuid4)
    name: str
    address: str  # host or host:port
    animal_name: str = UNKNOWN
    animal_weight: float = 0.0
    animal_daily_gain: float = 0.0
    animal_gender: str = UNKNOWN
    animal_species: str = UNKNOWN

    @property
    def short_id(self) -> str:
        return str(self.id)[:8]


class ScanResult(BaseModel):
    """Devices found by one sweep of a subnet."""

    model_config = {"extra": "forbid"}

    scan_timestamp: datetime
    prefix: str
    devices: list[Device] = Field(default_factory=list)
