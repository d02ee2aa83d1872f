from __future__ import annotations

from threading import RLock

from .models import PollutionMarker, Scenario, ScenarioInput, TrafficSample
from .pollution import generate_pollution_markers
from .scenario_store import ScenarioStore, baseline_scenario
from .seeded_random import DEFAULT_SEED, SeededRandom
from .traffic_cache import TrafficCacheStore, traffic_key
from .traffic_grid import generate_traffic_grid


class CityDataStore:
    """Everything the API and the broadcast loop share.

    Built once per application and handed to handlers explicitly. The random
    source is a single stream: every generation, from any caller, consumes
    the next draws, so results depend on call order. The lock keeps a
    generation and its cache write together.
    """

    def __init__(self, *, seed: int = DEFAULT_SEED) -> None:
        self._lock = RLock()
        self.rng = SeededRandom(seed)
        self.traffic_cache = TrafficCacheStore()
        self.scenarios = ScenarioStore()
        self._pollution: list[PollutionMarker] = []

        self.scenarios.add(baseline_scenario())
        self.regenerate_pollution()

    # Traffic

    def generate_traffic(self, time_hour: int | float, reduction: float = 0.0) -> list[TrafficSample]:
        """Always draw a fresh grid and overwrite the (hour, reduction) slot."""
        with self._lock:
            samples = generate_traffic_grid(self.rng, time_hour, reduction)
            self.traffic_cache.set(traffic_key(time_hour, reduction), samples)
            return samples

    def get_traffic_for(self, time_hour: int | float, reduction: float = 0.0) -> list[TrafficSample]:
        with self._lock:
            cached = self.traffic_cache.get(traffic_key(time_hour, reduction))
            if cached is not None:
                return cached
            return self.generate_traffic(time_hour, reduction)

    def get_traffic(self, time_hour: int | float) -> list[TrafficSample]:
        return self.get_traffic_for(time_hour, 0.0)

    # Pollution

    def get_pollution(self) -> list[PollutionMarker]:
        with self._lock:
            return list(self._pollution)

    def regenerate_pollution(self) -> list[PollutionMarker]:
        with self._lock:
            markers = generate_pollution_markers(self.rng)
            self._pollution = markers
            return list(markers)

    # Scenarios

    def list_scenarios(self) -> list[Scenario]:
        return self.scenarios.list()

    def get_scenario(self, scenario_id: str) -> Scenario | None:
        return self.scenarios.get(scenario_id)

    def create_scenario(self, payload: ScenarioInput) -> Scenario:
        return self.scenarios.create(payload)

    def delete_scenario(self, scenario_id: str) -> bool:
        return self.scenarios.delete(scenario_id)
