"""
Single-parameter forecast grid on a regular lat/lon lattice.

A Grid holds one parameter at one valid time, plus the metadata the merge
strategy needs (source model, reference run, averaging flag). Values are a
2-D numpy array indexed [lat, lon]; NaN marks missing cells.

Spatial evaluation follows the same fractional-index bilinear scheme used by
the route weather providers: four surrounding nodes, and when some of them
are missing the valid ones are averaged.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Tuple

import numpy as np

from weatherlayers.data.parameters import DataType, LevelType, SourceModel
from weatherlayers.exceptions import GridGeometryError, GridReleasedError

logger = logging.getLogger(__name__)

# Tolerance for coordinate comparisons (degrees)
COORD_EPS = 1e-9

_POLAR_TARGETS = {
    DataType.WIND_DIR: (DataType.WIND_VX, DataType.WIND_VY),
    DataType.CURRENT_DIR: (DataType.CURRENT_VX, DataType.CURRENT_VY),
}


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive datetimes are taken as UTC; aware ones are converted to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def bearing_from_uv(u: float, v: float) -> float:
    """Meteorological bearing (degrees, 0-360) of a U/V vector."""
    return (270.0 - math.degrees(math.atan2(v, u))) % 360.0


def circular_mean(angles, weights=None) -> Optional[float]:
    """Weighted mean of angles in degrees, or None for an empty input."""
    angles = np.radians(np.asarray(angles, dtype=np.float64))
    if angles.size == 0:
        return None
    if weights is None:
        weights = np.ones_like(angles)
    s = float(np.sum(np.asarray(weights) * np.sin(angles)))
    c = float(np.sum(np.asarray(weights) * np.cos(angles)))
    return math.degrees(math.atan2(s, c)) % 360.0


@dataclass(frozen=True)
class GeoBox:
    """Lat/lon bounding box; longitudes may lie outside -180..180."""
    lon_min: float
    lon_max: float
    lat_min: float
    lat_max: float

    @property
    def lon_span(self) -> float:
        return min(self.lon_max - self.lon_min, 360.0)

    def area(self) -> float:
        """Cosine-of-latitude weighted area in square degrees."""
        return _band_area(self.lon_span, self.lat_min, self.lat_max)

    def pieces(self) -> List["GeoBox"]:
        """The box in the -180..180 frame, cut in two where it crosses the antimeridian."""
        width = self.lon_max - self.lon_min
        if width >= 360.0 - COORD_EPS:
            return [GeoBox(-180.0, 180.0, self.lat_min, self.lat_max)]
        lo = ((self.lon_min + 180.0) % 360.0) - 180.0
        hi = lo + width
        if hi <= 180.0 + COORD_EPS:
            return [GeoBox(lo, min(hi, 180.0), self.lat_min, self.lat_max)]
        return [
            GeoBox(lo, 180.0, self.lat_min, self.lat_max),
            GeoBox(-180.0, hi - 360.0, self.lat_min, self.lat_max),
        ]

    def intersection_area(self, other: "GeoBox") -> float:
        """Area of the whole overlap, which may come in two pieces."""
        total = 0.0
        for mine in self.pieces():
            for theirs in other.pieces():
                overlap = mine.intersect(theirs)
                if overlap is not None:
                    total += overlap.area()
        return total

    def intersect(self, other: "GeoBox") -> Optional["GeoBox"]:
        """Widest single overlap box, trying the other box shifted by +/-360 degrees."""
        lat_lo = max(self.lat_min, other.lat_min)
        lat_hi = min(self.lat_max, other.lat_max)
        if lat_hi <= lat_lo:
            return None

        best = None
        for shift in (0.0, 360.0, -360.0):
            lo = max(self.lon_min, other.lon_min + shift)
            hi = min(self.lon_max, other.lon_max + shift)
            if hi > lo and (best is None or hi - lo > best[1] - best[0]):
                best = (lo, hi)
        if best is None:
            return None
        return GeoBox(best[0], best[1], lat_lo, lat_hi)


def _band_area(lon_width: float, lat_lo: float, lat_hi: float) -> float:
    if lon_width <= 0 or lat_hi <= lat_lo:
        return 0.0
    band = math.sin(math.radians(lat_hi)) - math.sin(math.radians(lat_lo))
    return lon_width * band * 180.0 / math.pi


class Grid:
    """One parameter's 2-D value grid at one valid time."""

    def __init__(
        self,
        data_type: DataType,
        lats,
        lons,
        values,
        valid_time: datetime,
        level_type: LevelType = LevelType.SURFACE,
        level_value: int = 0,
        reference_time: Optional[datetime] = None,
        source_model: SourceModel = SourceModel.OTHER,
        time_range: int = 0,
        file_name: Optional[str] = None,
    ):
        self.data_type = DataType(data_type)
        self.level_type = LevelType(level_type)
        self.level_value = int(level_value)
        self.lats = np.asarray(lats, dtype=np.float64).ravel()
        self.lons = np.asarray(lons, dtype=np.float64).ravel()
        data = np.asarray(values, dtype=np.float64)

        if self.lats.size == 0 or self.lons.size == 0:
            raise GridGeometryError("Grid needs at least one latitude and one longitude")
        if data.shape != (self.lats.size, self.lons.size):
            raise GridGeometryError(
                f"values shape {data.shape} does not match "
                f"({self.lats.size}, {self.lons.size}) lat/lon axes"
            )
        if self.lons.size > 1 and np.any(np.diff(self.lons) <= 0):
            raise GridGeometryError("longitudes must be strictly ascending")
        if self.lats.size > 1:
            dlat = np.diff(self.lats)
            if not (np.all(dlat > 0) or np.all(dlat < 0)):
                raise GridGeometryError("latitudes must be strictly monotonic")

        self._values: Optional[np.ndarray] = data
        self._released = False
        self.valid_time = ensure_utc(valid_time)
        self.reference_time = ensure_utc(reference_time) or self.valid_time
        self.source_model = SourceModel(source_model)
        self.time_range = int(time_range)
        self.file_name = file_name

    def __repr__(self) -> str:
        state = "released" if self._released else f"{self.lats.size}x{self.lons.size}"
        return (
            f"Grid({self.data_type.value}, {self.level_type.value}:{self.level_value}, "
            f"valid={self.valid_time:%Y-%m-%d %H:%M}Z, {self.source_model.value}, {state})"
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def values(self) -> np.ndarray:
        if self._released:
            raise GridReleasedError(f"{self!r} accessed after release")
        return self._values

    @property
    def is_released(self) -> bool:
        return self._released

    def release(self) -> None:
        """Free the value array. A grid can only be released once."""
        if self._released:
            raise GridReleasedError(f"{self!r} released twice")
        self._values = None
        self._released = True

    def derive(self, values: np.ndarray, **overrides) -> "Grid":
        """New grid on the same lattice with the same metadata unless overridden."""
        kwargs = dict(
            data_type=self.data_type,
            level_type=self.level_type,
            level_value=self.level_value,
            valid_time=self.valid_time,
            reference_time=self.reference_time,
            source_model=self.source_model,
            time_range=self.time_range,
            file_name=self.file_name,
        )
        kwargs.update(overrides)
        return Grid(lats=self.lats, lons=self.lons, values=values, **kwargs)

    def copy(self) -> "Grid":
        return self.derive(self.values.copy())

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    @property
    def lead_hours(self) -> float:
        return (self.valid_time - self.reference_time).total_seconds() / 3600.0

    def bounds(self) -> Tuple[float, float, float, float]:
        """(lon_min, lon_max, lat_min, lat_max)."""
        return (
            float(self.lons[0]),
            float(self.lons[-1]),
            float(self.lats.min()),
            float(self.lats.max()),
        )

    def box(self) -> GeoBox:
        lon_min, lon_max, lat_min, lat_max = self.bounds()
        if self.is_global():
            return GeoBox(-180.0, 180.0, lat_min, lat_max)
        return GeoBox(lon_min, lon_max, lat_min, lat_max)

    def spacing(self) -> Tuple[float, float]:
        """(di, dj): longitude and latitude step in degrees."""
        di = abs(float(self.lons[1] - self.lons[0])) if self.lons.size > 1 else 0.0
        dj = abs(float(self.lats[1] - self.lats[0])) if self.lats.size > 1 else 0.0
        return di, dj

    def is_global(self) -> bool:
        """True when the longitude axis wraps all the way around."""
        di, _ = self.spacing()
        return di > 0 and (self.lons[-1] - self.lons[0]) + di >= 360.0 - 1e-6

    def crosses_antimeridian(self) -> bool:
        lon_min, lon_max = float(self.lons[0]), float(self.lons[-1])
        return lon_min < 180.0 < lon_max or lon_min < -180.0 < lon_max

    def compatible(self, other: "Grid") -> bool:
        """Same lattice: shape and coordinates match."""
        return (
            self.lats.shape == other.lats.shape
            and self.lons.shape == other.lons.shape
            and np.allclose(self.lats, other.lats)
            and np.allclose(self.lons, other.lons)
        )

    def area(self) -> float:
        return self.box().area()

    def intersection_area(self, other: "Grid") -> float:
        return self.box().intersection_area(other.box())

    def contains(self, lon: float, lat: float, margin_lon: float = 0.0, margin_lat: float = 0.0) -> bool:
        _, _, lat_min, lat_max = self.bounds()
        if lat < lat_min - margin_lat - COORD_EPS or lat > lat_max + margin_lat + COORD_EPS:
            return False
        return self._grid_lon(lon, margin_lon) is not None

    def _grid_lon(self, lon: float, margin: float = 0.0) -> Optional[float]:
        """Query longitude expressed in the grid's own longitude frame."""
        lon_min, lon_max = float(self.lons[0]), float(self.lons[-1])
        if self.is_global():
            return lon_min + (lon - lon_min) % 360.0
        for shift in (0.0, 360.0, -360.0):
            candidate = lon + shift
            if lon_min - margin - COORD_EPS <= candidate <= lon_max + margin + COORD_EPS:
                return candidate
        return None

    @staticmethod
    def _fraction(value: float, axis: np.ndarray) -> float:
        if axis.size == 1:
            return 0.0
        return (value - axis[0]) / (axis[-1] - axis[0]) * (axis.size - 1)

    # ------------------------------------------------------------------
    # Spatial evaluation
    # ------------------------------------------------------------------

    def interpolated_value(
        self, lon: float, lat: float, bilinear: bool = True, circular: bool = False,
    ) -> Optional[float]:
        """
        Value at (lon, lat), or None outside the grid or where data is missing.

        Args:
            lon, lat: query point in degrees; any longitude frame is accepted
            bilinear: bilinear blend of the four surrounding nodes, otherwise
                the nearest node
            circular: treat values as directions in degrees
        """
        data = self.values
        ny, nx = data.shape
        _, _, lat_min, lat_max = self.bounds()
        if lat < lat_min - COORD_EPS or lat > lat_max + COORD_EPS:
            return None
        glon = self._grid_lon(lon)
        if glon is None:
            return None

        wrap = self.is_global()
        fi = min(max(self._fraction(lat, self.lats), 0.0), ny - 1.0)
        fj = self._fraction(glon, self.lons)
        if not wrap:
            fj = min(max(fj, 0.0), nx - 1.0)

        if not bilinear:
            i = int(round(fi))
            j = int(round(fj))
            j = j % nx if wrap else min(j, nx - 1)
            v = data[i, j]
            return float(v) if np.isfinite(v) else None

        i0 = int(math.floor(fi))
        j0 = int(math.floor(fj))
        i1 = min(i0 + 1, ny - 1)
        j1 = (j0 + 1) % nx if wrap else min(j0 + 1, nx - 1)
        di = fi - i0
        dj = fj - j0
        j0 = j0 % nx

        corners = [data[i0, j0], data[i1, j0], data[i0, j1], data[i1, j1]]
        weights = [(1 - di) * (1 - dj), di * (1 - dj), (1 - di) * dj, di * dj]

        valid = [(float(c), w) for c, w in zip(corners, weights) if np.isfinite(c)]
        if not valid:
            return None
        if len(valid) < 4:
            # Average only the valid corners
            vals = [c for c, _ in valid]
            if circular:
                return circular_mean(vals)
            return sum(vals) / len(vals)

        if circular:
            return circular_mean([c for c, _ in valid], [w for _, w in valid])
        return float(sum(c * w for c, w in valid))

    @staticmethod
    def interpolated_vector(
        gx: "Grid", gy: "Grid", lon: float, lat: float, bilinear: bool = True,
    ) -> Optional[Tuple[float, float]]:
        """(magnitude, bearing) from a U/V grid pair, or None if either is undefined."""
        u = gx.interpolated_value(lon, lat, bilinear)
        if u is None:
            return None
        v = gy.interpolated_value(lon, lat, bilinear)
        if v is None:
            return None
        return math.hypot(u, v), bearing_from_uv(u, v)

    # ------------------------------------------------------------------
    # Temporal blending
    # ------------------------------------------------------------------

    def interpolate_scalar(self, other: "Grid", k: float, circular: bool = False) -> Optional["Grid"]:
        """
        Cell-wise blend toward ``other`` at fraction k in [0, 1].

        Circular blending takes the shortest arc on 0-360 degrees.
        Returns None when the two grids are not on the same lattice.
        """
        if not self.compatible(other):
            logger.debug(f"Cannot blend {self!r} with {other!r}: lattice mismatch")
            return None
        a = self.values
        b = other.values
        if circular:
            diff = np.mod(b - a + 180.0, 360.0) - 180.0
            out = np.mod(a + k * diff, 360.0)
        else:
            out = (1.0 - k) * a + k * b
        return self.derive(out, **_blend_times(self, other, k))

    @staticmethod
    def interpolate_vector_pair(
        x0: "Grid", y0: "Grid", x1: "Grid", y1: "Grid", k: float,
    ) -> Optional[Tuple["Grid", "Grid"]]:
        """
        Blend a U/V pair as a 2-D field: magnitude linearly, direction along
        the shortest arc. Both outputs are produced together.
        """
        if not (x0.compatible(y0) and x0.compatible(x1) and x0.compatible(y1)):
            logger.debug(f"Cannot blend vector pair {x0!r}/{x1!r}: lattice mismatch")
            return None
        u0, v0, u1, v1 = x0.values, y0.values, x1.values, y1.values

        if k <= 0.0:
            u, v = u0.copy(), v0.copy()
        elif k >= 1.0:
            u, v = u1.copy(), v1.copy()
        else:
            m = (1.0 - k) * np.hypot(u0, v0) + k * np.hypot(u1, v1)
            a0 = np.arctan2(v0, u0)
            a1 = np.arctan2(v1, u1)
            da = np.mod(a1 - a0 + np.pi, 2.0 * np.pi) - np.pi
            a = a0 + k * da
            u = m * np.cos(a)
            v = m * np.sin(a)

        times = _blend_times(x0, x1, k)
        return x0.derive(u, **times), y0.derive(v, **times)

    @staticmethod
    def polar_to_uv(direction: "Grid", speed: "Grid") -> Optional[Tuple["Grid", "Grid"]]:
        """Convert a direction/speed pair into U/V component grids."""
        targets = _POLAR_TARGETS.get(direction.data_type)
        if targets is None or not direction.compatible(speed):
            return None
        rad = np.radians(direction.values)
        s = speed.values
        u = -s * np.sin(rad)
        v = -s * np.cos(rad)
        return (
            direction.derive(u, data_type=targets[0]),
            speed.derive(v, data_type=targets[1]),
        )


def _blend_times(a: Grid, b: Grid, k: float) -> dict:
    return {
        "valid_time": a.valid_time + (b.valid_time - a.valid_time) * k,
        "reference_time": max(a.reference_time, b.reference_time),
    }
