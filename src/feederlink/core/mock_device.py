"""Emulated feeder controller for development and testing.

Serves the controller's HTTP surface from memory. While feeding, every
status query dispenses a fixed step of feed until the one-shot target set
with `/setWeight` is reached.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime

from aiohttp import web

logger = logging.getLogger(__name__)

ACK = "OK"


@dataclass
class MockFeederState:
    name: str = "Mock Feeder"
    animal_name: str = "Daisy"
    animal_weight: float = 450.0
    animal_daily_gain: float = 1.2
    animal_gender: str = "Female"
    animal_species: str = "Cow"
    wifi_dbm: int = -48
    storage: float = 80.0
    step: float = 0.5
    target_weight: float = 0.0
    target_time: str = ""
    fed_weight: float = 0.0
    feeding: bool = False
    feed_log: list[dict[str, object]] = field(default_factory=list)
    requests: list[str] = field(default_factory=list)
    failing_paths: set[str] = field(default_factory=set)

    def count(self, path: str) -> int:
        return sum(1 for request in self.requests if request == path)


STATE_KEY = web.AppKey("state", MockFeederState)


def _fmt(value: float) -> str:
    return f"{value:.2f}"


def create_app(state: MockFeederState | None = None) -> web.Application:
    state = state or MockFeederState()
    app = web.Application(middlewares=[_record_middleware])
    app[STATE_KEY] = state

    routes = web.RouteTableDef()

    @routes.get("/getName")
    async def get_name(_request: web.Request) -> web.Response:
        return web.json_response(
            {
                "name": state.name,
                "animalName": state.animal_name,
                "animalWeight": _fmt(state.animal_weight),
                "animalDailyGain": _fmt(state.animal_daily_gain),
                "animalGender": state.animal_gender,
                "animalSpecies": state.animal_species,
            }
        )

    @routes.get("/getFeededWeight")
    async def get_fed_weight(_request: web.Request) -> web.Response:
        if state.feeding:
            state.fed_weight = round(state.fed_weight + state.step, 2)
            state.storage = max(state.storage - state.step, 0.0)
            if state.target_weight and state.fed_weight >= state.target_weight:
                state.feeding = False
        return web.json_response(
            {
                "FeededWeight": _fmt(state.fed_weight),
                "WifiStatus": str(state.wifi_dbm),
                "FeedingStatus": "true" if state.feeding else "false",
            }
        )

    @routes.get("/getStorage")
    async def get_storage(_request: web.Request) -> web.Response:
        return web.json_response({"Storage": _fmt(state.storage)})

    @routes.get("/getFeedLog")
    async def get_feed_log(_request: web.Request) -> web.Response:
        return web.json_response(state.feed_log)

    def _setter(attribute: str, convert: type = str):
        async def handler(request: web.Request) -> web.Response:
            raw = request.query.get("value")
            if raw is None:
                raise web.HTTPBadRequest(text="missing value")
            try:
                setattr(state, attribute, convert(raw))
            except ValueError as exc:
                raise web.HTTPBadRequest(text=str(exc)) from exc
            return web.Response(text=ACK)

        return handler

    for path, attribute, convert in (
        ("/setTargetTime", "target_time", str),
        ("/setAnimalWeight", "animal_weight", float),
        ("/setAnimalName", "animal_name", str),
        ("/setAnimalGender", "animal_gender", str),
        ("/setAnimalSpecies", "animal_species", str),
        ("/setDailyGain", "animal_daily_gain", float),
        ("/setName", "name", str),
        ("/setWeight", "target_weight", float),
    ):
        routes.get(path)(_setter(attribute, convert))

    @routes.get("/TareScale")
    async def tare(_request: web.Request) -> web.Response:
        state.fed_weight = 0.0
        return web.Response(text=ACK)

    @routes.get("/L")
    async def start(_request: web.Request) -> web.Response:
        state.fed_weight = 0.0
        state.feeding = True
        return web.Response(text=ACK)

    @routes.get("/H")
    async def stop(_request: web.Request) -> web.Response:
        if state.feeding or state.fed_weight:
            state.feed_log.append(
                {
                    "time": datetime.now().strftime("%Y-%m-%d %H:%M"),
                    "targetWeight": state.target_weight,
                }
            )
        state.feeding = False
        return web.Response(text=ACK)

    app.add_routes(routes)
    return app


@web.middleware
async def _record_middleware(request: web.Request, handler):
    state = request.app[STATE_KEY]
    state.requests.append(request.path)
    if request.path in state.failing_paths:
        raise web.HTTPInternalServerError(text="simulated failure")
    return await handler(request)


async def serve(
    host: str = "127.0.0.1", port: int = 8080, state: MockFeederState | None = None
) -> None:
    runner = web.AppRunner(create_app(state))
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info("Mock feeder listening on http://%s:%d", host, port)
    try:
        await asyncio.Event().wait()
    finally:
        await runner.cleanup()
