from __future__ import annotations

import uuid
from datetime import UTC, datetime
from threading import Lock

from .models import Scenario, ScenarioInput

BASELINE_SCENARIO_ID = "baseline"


def baseline_scenario() -> Scenario:
    return Scenario(
        id=BASELINE_SCENARIO_ID,
        name="Baseline Traffic Pattern",
        description="Current traffic conditions",
        data={"type": "baseline"},
        traffic_reduction=0.0,
        aqi_improvement=0.0,
        created_at=datetime.now(UTC),
    )


class ScenarioStore:
    """In-memory scenarios, kept in insertion order.

    Deletion is unconditional here; keeping ``baseline`` alive is the API
    layer's job.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._items: dict[str, Scenario] = {}

    def add(self, scenario: Scenario) -> Scenario:
        with self._lock:
            self._items[scenario.id] = scenario
        return scenario

    def list(self) -> list[Scenario]:
        with self._lock:
            return list(self._items.values())

    def get(self, scenario_id: str) -> Scenario | None:
        with self._lock:
            return self._items.get(scenario_id)

    def create(self, payload: ScenarioInput) -> Scenario:
        scenario = Scenario(
            id=str(uuid.uuid4()),
            name=payload.name,
            description=payload.description or None,
            data=payload.data,
            traffic_reduction=payload.traffic_reduction or 0.0,
            aqi_improvement=payload.aqi_improvement or 0.0,
            created_at=datetime.now(UTC),
        )
        return self.add(scenario)

    def delete(self, scenario_id: str) -> bool:
        with self._lock:
            return self._items.pop(scenario_id, None) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
