from __future__ import annotations

import logging
import re
import time
import uuid
from contextlib import asynccontextmanager
from typing import Annotated, Any

from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .broadcast import BroadcastLoop, SubscriberHub, traffic_update_message
from .logging_utils import log_event
from .metrics_store import metrics_snapshot, record_request
from .models import (
    BusSimulationRequest,
    BusSimulationResponse,
    BusSimulationStatistics,
    DeleteResponse,
    PollutionMarker,
    Scenario,
    ScenarioInput,
    TrafficSample,
)
from .scenario_store import BASELINE_SCENARIO_ID
from .settings import settings
from .store import CityDataStore
from .traffic_grid import average_density

DEFAULT_TRAFFIC_HOUR: int = 14

# AQI points gained per unit of reduction factor in the bus simulation.
AQI_IMPROVEMENT_PER_REDUCTION: float = 8.0

_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")


@asynccontextmanager
async def lifespan(app: FastAPI):
    store = CityDataStore(seed=settings.rng_seed)
    hub = SubscriberHub()
    broadcaster = BroadcastLoop(store, hub, interval_s=settings.broadcast_interval_s)
    app.state.store = store
    app.state.hub = hub
    app.state.broadcaster = broadcaster
    broadcaster.start()
    yield
    await broadcaster.stop()


app = FastAPI(title="City Pulse Traffic & Pollution Simulator", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins(),
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def record_request_metrics(request: Request, call_next):
    t0 = time.perf_counter()
    response = await call_next(request)
    route = request.scope.get("route")
    path = getattr(route, "path", request.url.path)
    record_request(
        f"{request.method} {path}",
        duration_ms=(time.perf_counter() - t0) * 1000,
        error=response.status_code >= 500,
    )
    return response


def city_store(request: Request) -> CityDataStore:
    store: CityDataStore | None = getattr(request.app.state, "store", None)  # type: ignore[attr-defined]
    if store is None:
        raise HTTPException(status_code=503, detail="store not initialised")
    return store


StoreDep = Annotated[CityDataStore, Depends(city_store)]


def parse_hour(raw: str | None, *, default: int = DEFAULT_TRAFFIC_HOUR) -> int:
    """Leading-integer parse: "7", "7.5" and " 7am" all mean 7; anything else is ``default``."""
    if raw is None:
        return default
    match = _LEADING_INT_RE.match(raw)
    # "0" parses to hour 0 (midnight); only a missing or non-numeric value falls back.
    return int(match.group(1)) if match else default


def _internal_error(event: str, detail: str, exc: Exception) -> HTTPException:
    log_event("request_failed", level=logging.ERROR, endpoint=event, error=str(exc))
    return HTTPException(status_code=500, detail=detail)


SCENARIO_CREATE_PATH = "/api/scenarios"


@app.exception_handler(RequestValidationError)
async def scenario_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Scenario bodies fail with 400 and the pydantic error list; other routes keep the stock 422."""
    route = request.scope.get("route")
    if request.method != "POST" or getattr(route, "path", None) != SCENARIO_CREATE_PATH:
        return await request_validation_exception_handler(request, exc)

    details = [{k: v for k, v in err.items() if k not in ("ctx", "url")} for err in exc.errors()]
    return JSONResponse(
        status_code=400,
        content={"detail": {"error": "Invalid scenario data", "details": jsonable_encoder(details)}},
    )


@app.get("/")
async def root() -> dict[str, str]:
    return {"message": "Backend is running. Visit /docs for the API UI.", "docs": "/docs"}


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/metrics")
async def metrics(request: Request, store: StoreDep) -> dict[str, Any]:
    hub: SubscriberHub | None = getattr(request.app.state, "hub", None)
    return {
        **metrics_snapshot(),
        "traffic_cache": store.traffic_cache.snapshot(),
        "scenario_count": len(store.scenarios),
        "subscriber_count": len(hub) if hub is not None else 0,
    }


@app.get("/api/traffic", response_model=list[TrafficSample])
async def get_traffic(
    store: StoreDep,
    time_param: Annotated[str | None, Query(alias="time")] = None,
) -> list[TrafficSample]:
    hour = parse_hour(time_param)
    try:
        data = store.get_traffic(hour)
    except Exception as e:
        raise _internal_error("get_traffic", "Failed to fetch traffic data", e) from e

    log_event("traffic_request", level=logging.DEBUG, hour=hour, sample_count=len(data))
    return data


@app.get("/api/pollution", response_model=list[PollutionMarker])
async def get_pollution(store: StoreDep) -> list[PollutionMarker]:
    try:
        return store.get_pollution()
    except Exception as e:
        raise _internal_error("get_pollution", "Failed to fetch pollution data", e) from e


@app.post("/api/pollution/regenerate", response_model=list[PollutionMarker])
async def regenerate_pollution(store: StoreDep) -> list[PollutionMarker]:
    try:
        markers = store.regenerate_pollution()
    except Exception as e:
        raise _internal_error("regenerate_pollution", "Failed to regenerate pollution data", e) from e

    log_event("pollution_regenerated", marker_count=len(markers))
    return markers


@app.post("/api/simulate/bus", response_model=BusSimulationResponse)
async def simulate_bus(store: StoreDep, req: BusSimulationRequest | None = None) -> BusSimulationResponse:
    req = req or BusSimulationRequest()
    request_id = str(uuid.uuid4())
    t0 = time.perf_counter()

    try:
        data = store.get_traffic_for(req.time_hour, req.reduction_factor)
        statistics = BusSimulationStatistics(
            traffic_reduction=req.reduction_factor * 100,
            aqi_improvement=req.reduction_factor * AQI_IMPROVEMENT_PER_REDUCTION,
            avg_density=average_density(data),
        )
    except Exception as e:
        raise _internal_error("simulate_bus", "Failed to simulate bus route", e) from e

    log_event(
        "bus_simulation",
        request_id=request_id,
        hour=req.time_hour,
        reduction_factor=req.reduction_factor,
        avg_density=round(statistics.avg_density, 6),
        duration_ms=round((time.perf_counter() - t0) * 1000, 2),
    )
    return BusSimulationResponse(traffic_data=data, statistics=statistics)


@app.get("/api/scenarios", response_model=list[Scenario])
async def list_scenarios(store: StoreDep) -> list[Scenario]:
    try:
        return store.list_scenarios()
    except Exception as e:
        raise _internal_error("list_scenarios", "Failed to fetch scenarios", e) from e


@app.get("/api/scenarios/{scenario_id}", response_model=Scenario)
async def get_scenario(scenario_id: str, store: StoreDep) -> Scenario:
    scenario = store.get_scenario(scenario_id)
    if scenario is None:
        raise HTTPException(status_code=404, detail="Scenario not found")
    return scenario


@app.post(
    "/api/scenarios",
    response_model=Scenario,
    responses={400: {"description": "Invalid scenario data"}},
)
async def create_scenario(payload: Annotated[ScenarioInput, Body()], store: StoreDep) -> Scenario:
    try:
        scenario = store.create_scenario(payload)
    except Exception as e:
        raise _internal_error("create_scenario", "Failed to create scenario", e) from e

    log_event("scenario_created", scenario_id=scenario.id, scenario_name=scenario.name)
    return scenario


@app.delete("/api/scenarios/{scenario_id}", response_model=DeleteResponse)
async def delete_scenario(scenario_id: str, store: StoreDep) -> DeleteResponse:
    if scenario_id == BASELINE_SCENARIO_ID:
        raise HTTPException(status_code=403, detail="Baseline scenario cannot be deleted")

    try:
        deleted = store.delete_scenario(scenario_id)
    except Exception as e:
        raise _internal_error("delete_scenario", "Failed to delete scenario", e) from e

    if not deleted:
        raise HTTPException(status_code=404, detail="Scenario not found")

    log_event("scenario_deleted", scenario_id=scenario_id)
    return DeleteResponse(success=True)


@app.websocket("/ws")
async def live_updates(websocket: WebSocket) -> None:
    store: CityDataStore = websocket.app.state.store
    hub: SubscriberHub = websocket.app.state.hub
    broadcaster: BroadcastLoop = websocket.app.state.broadcaster

    await websocket.accept()
    client = f"{websocket.client.host}:{websocket.client.port}" if websocket.client else "unknown"
    log_event("ws_connected", client=client)

    try:
        # Greet first, then subscribe: the greeting always precedes any live_update.
        await websocket.send_json(traffic_update_message(store, hour=broadcaster.current_hour()))
        await hub.register(websocket)

        # Push-only channel; inbound frames are read and dropped.
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    except WebSocketDisconnect:
        pass
    finally:
        await hub.unregister(websocket)
        log_event("ws_disconnected", client=client)
