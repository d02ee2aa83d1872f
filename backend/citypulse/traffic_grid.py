from __future__ import annotations

import uuid
from datetime import UTC, datetime

from .models import TrafficSample
from .seeded_random import SeededRandom

GRID_SIZE: int = 20

BASE_DENSITY_RANGE: tuple[float, float] = (0.1, 0.4)

# (first hour, last hour, extra density range); bands are additive.
RUSH_HOUR_BANDS: tuple[tuple[int, int, tuple[float, float]], ...] = (
    (7, 9, (0.3, 0.6)),
    (17, 19, (0.4, 0.7)),
)


def _clamp_unit(value: float) -> float:
    return max(0.0, min(1.0, value))


def cell_density(rng: SeededRandom, time_hour: float, reduction: float = 0.0) -> float:
    """Draw one cell's density. Consumes one draw, plus one per matching rush band."""
    density = rng.range(*BASE_DENSITY_RANGE)
    for first, last, (lo, hi) in RUSH_HOUR_BANDS:
        if first <= time_hour <= last:
            density += rng.range(lo, hi)
    density *= 1 - reduction
    return _clamp_unit(density)


def generate_traffic_grid(
    rng: SeededRandom,
    time_hour: int | float,
    reduction: float = 0.0,
    *,
    now: datetime | None = None,
) -> list[TrafficSample]:
    """Generate the full grid in row-major order (x outer, y inner).

    Neither ``time_hour`` nor ``reduction`` is range-checked; out-of-range
    values simply flow through the arithmetic and the clamp.
    """
    samples: list[TrafficSample] = []
    for x in range(GRID_SIZE):
        for y in range(GRID_SIZE):
            samples.append(
                TrafficSample(
                    id=str(uuid.uuid4()),
                    grid_x=x,
                    grid_y=y,
                    density=cell_density(rng, time_hour, reduction),
                    time_hour=time_hour,
                    timestamp=now or datetime.now(UTC),
                )
            )
    return samples


def average_density(samples: list[TrafficSample]) -> float:
    if not samples:
        return 0.0
    return sum(s.density for s in samples) / len(samples)
