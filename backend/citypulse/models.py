from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

PollutionLevel = Literal["good", "moderate", "high"]


class WireModel(BaseModel):
    """Snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class TrafficSample(WireModel):
    model_config = ConfigDict(frozen=True)

    id: str
    grid_x: int
    grid_y: int
    density: float = Field(..., ge=0.0, le=1.0)
    # Hours pass through unvalidated.
    time_hour: int | float
    timestamp: datetime


class PollutionMarker(WireModel):
    model_config = ConfigDict(frozen=True)

    id: str
    lat: float
    lng: float
    aqi: int
    level: PollutionLevel
    timestamp: datetime


class ScenarioInput(WireModel):
    """User-submitted scenario.

    Only the camelCase wire keys are read; anything else, snake_case spellings
    included, is ignored. Scalars are strict: "5" is not a number here.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=False, extra="ignore")

    name: str = Field(..., strict=True)
    description: str | None = Field(default=None, strict=True)
    data: Any = Field(...)
    traffic_reduction: float | None = Field(default=None, strict=True)
    aqi_improvement: float | None = Field(default=None, strict=True)

    @field_validator("data")
    @classmethod
    def data_required(cls, v: Any) -> Any:
        if v is None:
            raise ValueError("data must not be null")
        return v


class Scenario(WireModel):
    id: str
    name: str
    description: str | None = None
    data: Any = None
    traffic_reduction: float = 0.0
    aqi_improvement: float = 0.0
    created_at: datetime


class BusSimulationRequest(WireModel):
    time_hour: int | float = 14
    reduction_factor: float = 0.1


class BusSimulationStatistics(WireModel):
    traffic_reduction: float
    aqi_improvement: float
    avg_density: float


class BusSimulationResponse(WireModel):
    traffic_data: list[TrafficSample]
    statistics: BusSimulationStatistics


class DeleteResponse(BaseModel):
    success: bool


class TrafficUpdateMessage(WireModel):
    type: Literal["traffic_update"] = "traffic_update"
    data: list[TrafficSample]
    timestamp: datetime


class LiveUpdatePayload(WireModel):
    traffic: list[TrafficSample]
    pollution: list[PollutionMarker]
    timestamp: datetime


class LiveUpdateMessage(WireModel):
    type: Literal["live_update"] = "live_update"
    data: LiveUpdatePayload
