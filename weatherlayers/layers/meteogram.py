"""
Meteogram: merged forecast time series at a point or along a route.

For every forecast time of a LayerSet the usual surface quantities are
sampled through the merged query surface. A route is summarised by
sampling about ``max_route_samples`` of its waypoints and averaging them,
with directions averaged on the circle.
"""

import logging
import math
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from weatherlayers.data.grid import circular_mean, ensure_utc
from weatherlayers.data.parameters import ParameterSlot
from weatherlayers.layers.layer_set import LayerSet
from weatherlayers.metrics import timed

logger = logging.getLogger(__name__)

SCALAR_FIELDS: Dict[str, ParameterSlot] = {
    "temperature": ParameterSlot.AIR_TEMP,
    "pressure": ParameterSlot.PRESSURE,
    "precipitation": ParameterSlot.PRECIP_TOT,
    "humidity": ParameterSlot.HUMID_RE,
    "cloud_cover": ParameterSlot.CLOUD_TOT,
    "wind_gust": ParameterSlot.WIND_GUST,
    "wave_height": ParameterSlot.HTSIGW,
    "wave_period": ParameterSlot.WVPER,
    "wave_direction": ParameterSlot.WVDIR,
}
DIRECTION_FIELDS = ("wind_direction", "wave_direction")
VALUE_FIELDS = tuple(SCALAR_FIELDS) + ("wind_speed", "wind_direction")


@dataclass
class MeteogramPoint:
    """Merged values at one forecast time; None where no layer has data."""
    time: datetime
    temperature: Optional[float] = None
    pressure: Optional[float] = None
    precipitation: Optional[float] = None
    humidity: Optional[float] = None
    cloud_cover: Optional[float] = None
    wind_speed: Optional[float] = None
    wind_direction: Optional[float] = None
    wind_gust: Optional[float] = None
    wave_height: Optional[float] = None
    wave_period: Optional[float] = None
    wave_direction: Optional[float] = None

    def is_valid(self) -> bool:
        return any(
            v is not None
            for v in (self.temperature, self.wind_speed, self.pressure, self.precipitation)
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class MeteogramLocation:
    """A single point, or a route given as (lat, lon) waypoints."""
    lat: float = 0.0
    lon: float = 0.0
    route: List[Tuple[float, float]] = field(default_factory=list)
    name: str = ""

    @classmethod
    def point(cls, lat: float, lon: float, name: str = "") -> "MeteogramLocation":
        return cls(lat=lat, lon=lon, name=name or f"{lat:.3f}°, {lon:.3f}°")

    @classmethod
    def along(cls, route: Sequence[Tuple[float, float]], name: str = "") -> "MeteogramLocation":
        points = [(float(lat), float(lon)) for lat, lon in route]
        return cls(route=points, name=name or f"Route ({len(points)} points)")

    @property
    def is_route(self) -> bool:
        return bool(self.route)

    @property
    def display_name(self) -> str:
        if self.is_route:
            return f"{self.name} ({len(self.route)} waypoints)"
        return f"{self.name} ({self.lat:.3f}°, {self.lon:.3f}°)"

    def point_at(self, fraction: float) -> Tuple[float, float]:
        """(lat, lon) at ``fraction`` of the way along the route, by waypoint count."""
        if not self.is_route:
            return self.lat, self.lon
        if fraction <= 0.0 or len(self.route) == 1:
            return self.route[0]
        if fraction >= 1.0:
            return self.route[-1]
        segment = 1.0 / (len(self.route) - 1)
        idx = int(fraction / segment)
        if idx >= len(self.route) - 1:
            return self.route[-1]
        local = (fraction - idx * segment) / segment
        (lat1, lon1), (lat2, lon2) = self.route[idx], self.route[idx + 1]
        return lat1 + (lat2 - lat1) * local, lon1 + (lon2 - lon1) * local


def sample_point(layer_set: LayerSet, time: datetime, lat: float, lon: float) -> MeteogramPoint:
    """Merged values of every meteogram field at one point and time."""
    point = MeteogramPoint(time=time)
    wind = layer_set.get_interpolated_vector(
        ParameterSlot.WIND_VX, ParameterSlot.WIND_VY, lon, lat, time,
    )
    if wind is not None:
        point.wind_speed, point.wind_direction = wind
    for name, slot in SCALAR_FIELDS.items():
        setattr(point, name, layer_set.get_interpolated_value(slot, lon, lat, time))
    return point


def _average(samples: List[MeteogramPoint], time: datetime) -> MeteogramPoint:
    avg = MeteogramPoint(time=time)
    for name in VALUE_FIELDS:
        values = [getattr(s, name) for s in samples if getattr(s, name) is not None]
        if not values:
            continue
        if name in DIRECTION_FIELDS:
            setattr(avg, name, circular_mean(values))
        else:
            setattr(avg, name, sum(values) / len(values))
    return avg


class Meteogram:
    """Time series of merged values for one location."""

    def __init__(self, location: MeteogramLocation, points: List[MeteogramPoint]):
        self.location = location
        self.points = points

    def __len__(self) -> int:
        return len(self.points)

    @classmethod
    @timed("meteogram_build")
    def build(
        cls,
        layer_set: LayerSet,
        location: MeteogramLocation,
        times: Optional[Sequence[datetime]] = None,
        max_route_samples: int = 10,
    ) -> "Meteogram":
        times = list(times) if times is not None else layer_set.get_forecast_times()
        points = []
        for t in times:
            t = ensure_utc(t)
            if location.is_route:
                step = max(1, len(location.route) // max_route_samples)
                samples = [
                    sample_point(layer_set, t, lat, lon)
                    for lat, lon in location.route[::step]
                ]
                samples = [s for s in samples if s.is_valid()]
                if not samples:
                    continue
                point = _average(samples, t)
            else:
                point = sample_point(layer_set, t, location.lat, location.lon)
            if point.is_valid():
                points.append(point)

        logger.debug(f"Meteogram for {location.display_name}: {len(points)}/{len(times)} times with data")
        return cls(location, points)

    @property
    def start_time(self) -> Optional[datetime]:
        return self.points[0].time if self.points else None

    @property
    def end_time(self) -> Optional[datetime]:
        return self.points[-1].time if self.points else None

    def data_at_time(self, time: datetime) -> Optional[MeteogramPoint]:
        """Point closest in time to ``time``."""
        if not self.points:
            return None
        time = ensure_utc(time)
        return min(self.points, key=lambda p: abs((p.time - time).total_seconds()))

    def _values(self, name: str) -> List[float]:
        return [getattr(p, name) for p in self.points if getattr(p, name) is not None]

    def temperature_range(self) -> Tuple[float, float]:
        """Padded plotting range; at least 5 degrees wide."""
        values = self._values("temperature")
        if not values:
            return 0.0, 30.0
        span = max(max(values) - min(values), 5.0)
        return min(values) - span * 0.1, max(values) + span * 0.1

    def pressure_range(self) -> Tuple[float, float]:
        values = self._values("pressure")
        if not values:
            return 980.0, 1040.0
        span = max(max(values) - min(values), 20.0)
        return min(values) - span * 0.1, max(values) + span * 0.1

    def wind_speed_range(self) -> Tuple[float, float]:
        """Zero to the next round ceiling of the strongest wind."""
        values = self._values("wind_speed")
        if not values:
            return 0.0, 30.0
        peak = max(values)
        for ceiling in (10.0, 20.0, 30.0, 50.0):
            if peak < ceiling:
                return 0.0, ceiling
        return 0.0, math.ceil(peak / 10.0) * 10.0
