from __future__ import annotations

import math
import uuid
from datetime import UTC, datetime

from .models import PollutionLevel, PollutionMarker
from .seeded_random import SeededRandom

MARKER_COUNT: int = 15

# Simulated city centre (San Francisco-like coordinates).
BASE_LAT: float = 37.7749
BASE_LNG: float = -122.4194
JITTER_DEG: float = 0.05

AQI_RANGE: tuple[int, int] = (20, 150)


def aqi_level(aqi: int) -> PollutionLevel:
    if aqi <= 50:
        return "good"
    if aqi <= 100:
        return "moderate"
    return "high"


def generate_pollution_markers(
    rng: SeededRandom,
    *,
    count: int = MARKER_COUNT,
    base_lat: float = BASE_LAT,
    base_lng: float = BASE_LNG,
    now: datetime | None = None,
) -> list[PollutionMarker]:
    """Scatter ``count`` markers around the base coordinate.

    Each marker consumes three draws in order: lat jitter, lng jitter, aqi.
    """
    markers: list[PollutionMarker] = []
    for _ in range(count):
        lat = base_lat + rng.range(-JITTER_DEG, JITTER_DEG)
        lng = base_lng + rng.range(-JITTER_DEG, JITTER_DEG)
        aqi = math.floor(rng.range(*AQI_RANGE))
        markers.append(
            PollutionMarker(
                id=str(uuid.uuid4()),
                lat=lat,
                lng=lng,
                aqi=aqi,
                level=aqi_level(aqi),
                timestamp=now or datetime.now(UTC),
            )
        )
    return markers
