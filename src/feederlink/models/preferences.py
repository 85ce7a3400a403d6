from __future__ import annotations

from pydantic import BaseModel


class Preferences(BaseModel):
    """Small client-side state kept between runs."""

    model_config = {"extra": "ignore"}

    last_feeding_time: float | None = None  # epoch seconds
    last_subnet_prefix: str | None = None
    last_status: str = ""
