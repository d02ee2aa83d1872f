from __future__ import annotations

import pytest

from citypulse.models import ScenarioInput
from citypulse.pollution import MARKER_COUNT, generate_pollution_markers
from citypulse.scenario_store import BASELINE_SCENARIO_ID, ScenarioStore
from citypulse.seeded_random import SeededRandom
from citypulse.store import CityDataStore
from citypulse.traffic_grid import generate_traffic_grid


def _densities(samples) -> list[float]:
    return [s.density for s in samples]


def _reference_after_pollution(seed: int = 12345) -> SeededRandom:
    # The store draws its pollution snapshot (3 draws per marker) before any traffic.
    rng = SeededRandom(seed)
    generate_pollution_markers(rng)
    return rng


def test_store_seeds_baseline_and_pollution() -> None:
    store = CityDataStore()

    scenarios = store.list_scenarios()
    assert [s.id for s in scenarios] == [BASELINE_SCENARIO_ID]
    baseline = scenarios[0]
    assert baseline.traffic_reduction == 0
    assert baseline.aqi_improvement == 0
    assert baseline.data == {"type": "baseline"}

    assert len(store.get_pollution()) == MARKER_COUNT
    assert store.rng.state == _reference_after_pollution().state


def test_traffic_read_is_cached_per_key() -> None:
    store = CityDataStore()

    first = store.get_traffic(14)
    state_after_first = store.rng.state
    second = store.get_traffic(14)

    assert second == first
    assert store.rng.state == state_after_first
    assert store.traffic_cache.snapshot()["hits"] == 1


def test_results_depend_on_call_order() -> None:
    store = CityDataStore()
    store.get_traffic(14)
    later = store.get_traffic(3)

    reference = _reference_after_pollution()
    expected_14 = generate_traffic_grid(reference, 14)
    expected_3 = generate_traffic_grid(reference, 3)

    assert _densities(store.get_traffic(14)) == _densities(expected_14)
    assert _densities(later) == _densities(expected_3)
    assert _densities(later) != _densities(expected_14)


def test_reduction_is_part_of_the_key() -> None:
    store = CityDataStore()
    plain = store.get_traffic_for(14, 0.0)
    reduced = store.get_traffic_for(14, 0.2)

    assert _densities(reduced) != _densities(plain)
    assert store.get_traffic_for(14, 0.2) == reduced
    assert store.get_traffic(14) == plain
    assert store.get_traffic_for(14.0, 0) == plain


def test_generate_traffic_overwrites_slot() -> None:
    store = CityDataStore()
    cached = store.get_traffic(9)
    fresh = store.generate_traffic(9)

    assert _densities(fresh) != _densities(cached)
    assert store.get_traffic(9) == fresh
    assert store.traffic_cache.snapshot()["overwrites"] == 1


def test_regenerate_pollution_replaces_snapshot() -> None:
    store = CityDataStore()
    before = store.get_pollution()
    after = store.regenerate_pollution()

    assert len(after) == MARKER_COUNT
    assert {m.id for m in before}.isdisjoint({m.id for m in after})
    assert store.get_pollution() == after


def test_scenario_defaults_on_create() -> None:
    store = CityDataStore()
    created = store.create_scenario(ScenarioInput(name="Route 12", data={"route": 12}))

    assert created.id != BASELINE_SCENARIO_ID
    assert created.description is None
    assert created.traffic_reduction == 0
    assert created.aqi_improvement == 0
    assert created.created_at is not None
    assert store.get_scenario(created.id) == created
    assert [s.id for s in store.list_scenarios()] == [BASELINE_SCENARIO_ID, created.id]


def test_scenario_empty_description_becomes_none() -> None:
    store = ScenarioStore()
    created = store.create(ScenarioInput(name="x", description="", data=[], trafficReduction=12.5))
    assert created.description is None
    assert created.traffic_reduction == 12.5


def test_scenario_get_and_delete_missing() -> None:
    store = ScenarioStore()
    assert store.get("nope") is None
    assert store.delete("nope") is False


def test_store_level_delete_does_not_protect_baseline() -> None:
    store = CityDataStore()
    assert store.delete_scenario(BASELINE_SCENARIO_ID) is True
    assert store.get_scenario(BASELINE_SCENARIO_ID) is None


def test_scenario_input_requires_name_and_data() -> None:
    with pytest.raises(ValueError):
        ScenarioInput.model_validate({"data": {}})
    with pytest.raises(ValueError):
        ScenarioInput.model_validate({"name": "x"})
    with pytest.raises(ValueError):
        ScenarioInput.model_validate({"name": "x", "data": None})


def test_scenario_input_reads_camel_case_only() -> None:
    payload = ScenarioInput.model_validate({"name": "x", "data": {}, "traffic_reduction": 7, "aqiImprovement": 1})
    assert payload.traffic_reduction is None
    assert payload.aqi_improvement == 1.0


@pytest.mark.parametrize("field", ["trafficReduction", "aqiImprovement"])
def test_scenario_input_rejects_numeric_strings(field: str) -> None:
    with pytest.raises(ValueError):
        ScenarioInput.model_validate({"name": "x", "data": {}, field: "5"})
