"""
LayerSet: the top-level aggregate of forecast layers.

Owns the named layers and their priority order, the merge strategy and the
selected time. Every query gathers one candidate grid per enabled layer,
lets the merge strategy pick a winner and evaluates it at the point.

All public methods take the set's re-entrant lock; the layers' one-entry
timeline caches are shared mutable state and must not be rebuilt by two
callers at once.
"""

import logging
import math
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, FrozenSet, List, Optional, Sequence, Tuple

import numpy as np

from weatherlayers.data.grid import GeoBox, Grid, ensure_utc
from weatherlayers.data.parameters import (
    VECTOR_PAIRS,
    ParameterSlot,
    SourceModel,
    is_circular,
)
from weatherlayers.data.reader import GribReader, PygribReader
from weatherlayers.exceptions import LayerLoadError
from weatherlayers.layers.layer import Layer
from weatherlayers.layers.merge_strategy import Candidate, MergeStrategy
from weatherlayers.layers.snapshot import TimelineSnapshot
from weatherlayers.layers.source import Source, SourceOptions
from weatherlayers.metrics import metrics

logger = logging.getLogger(__name__)

# Vector samples at or above this magnitude are rejected as spurious
MAX_SAMPLE_MAGNITUDE = 100.0

# A union wider than this without any crossing grid is treated as global
FULL_GLOBE_SPAN_DEG = 350.0

SEA_CURRENT_SLOTS = (ParameterSlot.SEACURRENT_VX, ParameterSlot.SEACURRENT_VY)


@dataclass
class ZoneLimits:
    """Combined bounding box of all enabled layers."""
    lon_min: float
    lon_max: float
    lat_min: float
    lat_max: float
    crosses_antimeridian: bool = False
    full_globe: bool = False


def _union_area(boxes: Sequence[GeoBox]) -> float:
    """
    Inclusion-exclusion over every subset of boxes with a non-empty overlap.

    Boxes are first cut at the antimeridian so that each overlap is a single
    box in the -180..180 frame.
    """
    boxes = [piece for box in boxes for piece in box.pieces()]
    total = 0.0
    n = len(boxes)

    def visit(start: int, current: Optional[GeoBox], size: int):
        nonlocal total
        for i in range(start, n):
            overlap = boxes[i] if current is None else current.intersect(boxes[i])
            if overlap is None:
                continue
            sign = 1.0 if size % 2 == 0 else -1.0
            total += sign * overlap.area()
            visit(i + 1, overlap, size + 1)

    visit(0, None, 0)
    return total


def _to_pm180(lon: float) -> float:
    return ((lon + 180.0) % 360.0) - 180.0


class LayerSet:
    """Named, ordered collection of layers with a merged query surface."""

    def __init__(
        self,
        merge_strategy: Optional[MergeStrategy] = None,
        reader: Optional[GribReader] = None,
        source_options: Optional[SourceOptions] = None,
        random_attempts: int = 20,
    ):
        self._lock = threading.RLock()
        self._layers: Dict[str, Layer] = {}
        self._order: List[str] = []
        self.merge_strategy = merge_strategy or MergeStrategy()
        self.reader = reader or PygribReader()
        self.source_options = source_options or SourceOptions()
        self.random_attempts = random_attempts

        self._selected_time: Optional[datetime] = None
        self._available_slots: FrozenSet[ParameterSlot] = frozenset()
        self._file_names: List[str] = []
        self.last_message = ""

    def __repr__(self) -> str:
        return f"LayerSet({self._order}, {self.merge_strategy!r})"

    def __len__(self) -> int:
        return len(self._layers)

    # ========================================================================
    # Layer management
    # ========================================================================

    def add_layer(
        self,
        name: str,
        paths: Sequence[str],
        options: Optional[SourceOptions] = None,
        enabled: bool = True,
        reader: Optional[GribReader] = None,
    ) -> Layer:
        """
        Load files into a new layer at the end of the priority order.

        Raises:
            LayerLoadError: duplicate name, or the files could not produce
                usable data. The set is left as it was.
        """
        with self._lock:
            self._check_new_name(name)
            if not paths:
                self._fail(name, f"No files given for layer '{name}'")

            layer = Layer.load(name, paths, reader or self.reader, options or self.source_options)
            if layer.last_error:
                self._fail(name, f"Layer '{name}': {layer.last_error}")
            return self._attach(layer, enabled)

    def add_source_layer(self, name: str, source: Source, enabled: bool = True) -> Layer:
        """Add a layer around an already built Source."""
        with self._lock:
            self._check_new_name(name)
            return self._attach(Layer(name, source), enabled)

    def _check_new_name(self, name: str) -> None:
        if not name:
            self._fail(name, "Layer name must not be empty")
        if name in self._layers:
            self._fail(name, f"Layer '{name}' already exists")

    def _fail(self, name: str, message: str) -> None:
        self.last_message = message
        logger.warning(message)
        raise LayerLoadError(name, message)

    def _attach(self, layer: Layer, enabled: bool) -> Layer:
        if not layer.is_ok():
            self._fail(layer.name, f"Layer '{layer.name}' contains no valid data")
        layer.set_enabled(enabled)
        layer.set_on_change(self._layer_changed)
        self._layers[layer.name] = layer
        self._order.append(layer.name)
        if self._selected_time is None:
            self._selected_time = layer.min_time()
        self._rebuild_caches()
        self.last_message = f"Layer '{layer.name}' added"
        logger.info(
            f"Added layer '{layer.name}': {len(layer.forecast_times())} times, "
            f"{len(layer.available_slots)} parameters, files={layer.file_names}"
        )
        return layer

    def remove_layer(self, name: str) -> bool:
        with self._lock:
            layer = self._layers.pop(name, None)
            if layer is None:
                return False
            self._order.remove(name)
            layer.set_on_change(None)
            layer.invalidate_cache()
            self._rebuild_caches()
            self.last_message = f"Layer '{name}' removed"
            logger.info(self.last_message)
            return True

    def clear_layers(self) -> None:
        with self._lock:
            for layer in self._layers.values():
                layer.set_on_change(None)
                layer.invalidate_cache()
            self._layers.clear()
            self._order.clear()
            self._rebuild_caches()
            logger.info("All layers removed")

    def get_layer(self, name: str) -> Optional[Layer]:
        with self._lock:
            return self._layers.get(name)

    def set_layer_enabled(self, name: str, enabled: bool) -> bool:
        with self._lock:
            layer = self._layers.get(name)
            if layer is None:
                return False
            layer.set_enabled(enabled)
            return True

    def move_layer_up(self, name: str) -> bool:
        """Raise a layer's priority by one place."""
        with self._lock:
            if name not in self._layers:
                return False
            idx = self._order.index(name)
            if idx == 0:
                return False
            self._order[idx - 1], self._order[idx] = self._order[idx], self._order[idx - 1]
            self._rebuild_caches()
            return True

    def move_layer_down(self, name: str) -> bool:
        with self._lock:
            if name not in self._layers:
                return False
            idx = self._order.index(name)
            if idx == len(self._order) - 1:
                return False
            self._order[idx + 1], self._order[idx] = self._order[idx], self._order[idx + 1]
            self._rebuild_caches()
            return True

    def set_layer_order(self, names: Sequence[str]) -> bool:
        """Replace the priority order; ``names`` must list every layer once."""
        with self._lock:
            names = list(names)
            if len(names) != len(self._layers) or set(names) != set(self._layers):
                self.last_message = "Layer order must name every layer exactly once"
                return False
            self._order = names
            self._rebuild_caches()
            return True

    @property
    def layer_order(self) -> List[str]:
        with self._lock:
            return list(self._order)

    @property
    def layers(self) -> List[Layer]:
        """All layers in priority order."""
        with self._lock:
            return [self._layers[name] for name in self._order]

    def enabled_layers(self) -> List[Layer]:
        """Enabled, usable layers in priority order."""
        with self._lock:
            return [
                self._layers[name] for name in self._order
                if self._layers[name].enabled and self._layers[name].is_ok()
            ]

    def is_ok(self) -> bool:
        return bool(self.enabled_layers())

    def _layer_changed(self, layer: Layer) -> None:
        with self._lock:
            self._rebuild_caches()

    def _rebuild_caches(self) -> None:
        slots = set()
        files: List[str] = []
        for layer in self.enabled_layers():
            slots.update(layer.available_slots)
            for name in layer.file_names:
                if name not in files:
                    files.append(name)
        self._available_slots = frozenset(slots)
        self._file_names = files
        metrics.set_gauge("layers_total", len(self._layers))
        metrics.set_gauge("layers_enabled", len(self.enabled_layers()))

    # ========================================================================
    # Cached descriptors
    # ========================================================================

    @property
    def available_slots(self) -> FrozenSet[ParameterSlot]:
        with self._lock:
            return self._available_slots

    @property
    def file_names(self) -> List[str]:
        with self._lock:
            return list(self._file_names)

    def ref_datetime(self) -> Optional[datetime]:
        """Newest reference run among the enabled layers."""
        with self._lock:
            refs = [layer.reference_time for layer in self.enabled_layers() if layer.reference_time]
            return max(refs) if refs else None

    @property
    def selected_time(self) -> Optional[datetime]:
        with self._lock:
            return self._selected_time

    def set_selected_time(self, time: Optional[datetime]) -> None:
        with self._lock:
            self._selected_time = ensure_utc(time)

    def set_merge_strategy(self, strategy: MergeStrategy) -> None:
        with self._lock:
            self.merge_strategy = strategy
            logger.info(f"Merge strategy replaced: {strategy!r}")

    def configure_merge(self, **changes) -> None:
        """Change merge settings without racing concurrent queries."""
        with self._lock:
            self.merge_strategy.configure(**changes)

    # ========================================================================
    # Time axis
    # ========================================================================

    def get_forecast_times(self) -> List[datetime]:
        """Sorted union of every enabled layer's forecast times."""
        with self._lock:
            times = set()
            for layer in self.enabled_layers():
                times.update(layer.forecast_times())
            return sorted(times)

    def min_forecast_time(self) -> Optional[datetime]:
        times = self.get_forecast_times()
        return times[0] if times else None

    def get_forecast_time_span(self) -> float:
        """Hours between the first and last forecast time across layers."""
        times = self.get_forecast_times()
        if len(times) < 2:
            return 0.0
        return (times[-1] - times[0]).total_seconds() / 3600.0

    def get_smallest_interval(self) -> Optional[float]:
        """Smallest gap in minutes between consecutive forecast times."""
        times = self.get_forecast_times()
        gaps = [(b - a).total_seconds() / 60.0 for a, b in zip(times, times[1:])]
        return min(gaps) if gaps else None

    # ========================================================================
    # Point queries
    # ========================================================================

    def _query_time(self, time: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(time) if time is not None else self._selected_time

    def _candidates(
        self, slot: ParameterSlot, time: datetime, pair: Optional[ParameterSlot] = None,
    ) -> List[Tuple[Candidate, TimelineSnapshot]]:
        found = []
        for order, layer in enumerate(self.enabled_layers()):
            timeline = layer.get_timeline_snapshot(time)
            if timeline is None:
                continue
            grid = timeline.get_record(slot)
            if grid is None:
                continue
            if pair is not None and timeline.get_record(pair) is None:
                continue
            candidate = Candidate(
                grid=grid,
                layer_name=layer.name,
                order=order,
                time_range=layer.time_range(),
                time_step_minutes=layer.time_step_minutes(),
            )
            found.append((candidate, timeline))
        return found

    def _winner(
        self,
        slot: ParameterSlot,
        time: datetime,
        lon: Optional[float],
        lat: Optional[float],
        pair: Optional[ParameterSlot] = None,
    ) -> Optional[Tuple[Candidate, TimelineSnapshot]]:
        found = self._candidates(slot, time, pair)
        winner = self.merge_strategy.select([c for c, _ in found], time, lon, lat)
        return found[winner] if winner is not None else None

    def best_candidate(
        self,
        slot,
        lon: float,
        lat: float,
        time: Optional[datetime] = None,
    ) -> Optional[Candidate]:
        """The candidate a point query for ``slot`` would be answered from."""
        key = ParameterSlot.coerce(slot)
        if key is None:
            return None
        with self._lock:
            t = self._query_time(time)
            if t is None:
                return None
            best = self._winner(key, t, lon, lat, pair=VECTOR_PAIRS.get(key))
            return best[0] if best is not None else None

    def get_interpolated_value(
        self,
        slot,
        lon: float,
        lat: float,
        time: Optional[datetime] = None,
        bilinear: bool = True,
    ) -> Optional[float]:
        """Merged value of ``slot`` at (lon, lat), or None where no layer has data."""
        key = ParameterSlot.coerce(slot)
        if key is None:
            return None
        with self._lock:
            t = self._query_time(time)
            if t is None:
                return None
            best = self._winner(key, t, lon, lat)
            if best is None:
                metrics.increment("query_no_data")
                return None
            metrics.increment("query_value")
            return best[0].grid.interpolated_value(lon, lat, bilinear, circular=is_circular(key))

    def get_interpolated_vector(
        self,
        x_slot,
        y_slot,
        lon: float,
        lat: float,
        time: Optional[datetime] = None,
        bilinear: bool = True,
    ) -> Optional[Tuple[float, float]]:
        """
        Merged (magnitude, bearing) of a vector pair at (lon, lat).

        Only layers holding both components compete; the X grid stands in
        for the pair during scoring.
        """
        x_key = ParameterSlot.coerce(x_slot)
        y_key = ParameterSlot.coerce(y_slot)
        if x_key is None or y_key is None or VECTOR_PAIRS.get(x_key) != y_key:
            return None
        with self._lock:
            t = self._query_time(time)
            if t is None:
                return None
            best = self._winner(x_key, t, lon, lat, pair=y_key)
            if best is None:
                metrics.increment("query_no_data")
                return None
            metrics.increment("query_vector")
            candidate, timeline = best
            return Grid.interpolated_vector(
                candidate.grid, timeline.get_record(y_key), lon, lat, bilinear,
            )

    # ========================================================================
    # Geometry
    # ========================================================================

    def _all_grids(self) -> List[Grid]:
        grids = {}
        for layer in self.enabled_layers():
            for snap in layer.source.snapshots:
                for slot in snap.slots:
                    grid = snap.get_record(slot)
                    grids[id(grid)] = grid
        return list(grids.values())

    def get_zone_limits(self) -> Optional[ZoneLimits]:
        """
        Bounding box of every grid in the enabled layers.

        Any grid spanning the antimeridian widens the box to -180..180. A
        union wider than 350 degrees is reported as full-globe coverage.
        """
        with self._lock:
            grids = self._all_grids()
            if not grids:
                return None

            crosses = False
            lon_mins, lon_maxs, lat_mins, lat_maxs = [], [], [], []
            for grid in grids:
                lon_min, lon_max, lat_min, lat_max = grid.bounds()
                if grid.crosses_antimeridian():
                    crosses = True
                if lon_min >= 180.0:
                    lon_min -= 360.0
                    lon_max -= 360.0
                lon_mins.append(lon_min)
                lon_maxs.append(lon_max)
                lat_mins.append(lat_min)
                lat_maxs.append(lat_max)

            lat_lo = max(-90.0, min(lat_mins))
            lat_hi = min(90.0, max(lat_maxs))
            if crosses:
                return ZoneLimits(-180.0, 180.0, lat_lo, lat_hi, crosses_antimeridian=True)

            lon_lo = min(lon_mins)
            lon_hi = max(lon_maxs)
            if lon_hi - lon_lo > FULL_GLOBE_SPAN_DEG:
                return ZoneLimits(-180.0, 180.0, lat_lo, lat_hi, full_globe=True)
            return ZoneLimits(lon_lo, lon_hi, lat_lo, lat_hi)

    def get_coverage_area(self, slot, time: Optional[datetime] = None) -> float:
        """
        Area covered by ``slot`` at the selected time, in cosine-weighted
        square degrees, counting overlap between layers once.
        """
        key = ParameterSlot.coerce(slot)
        if key is None:
            return 0.0
        with self._lock:
            t = self._query_time(time)
            if t is None:
                return 0.0
            with metrics.timer("coverage_area"):
                boxes = [c.grid.box() for c, _ in self._candidates(key, t)]
                return _union_area(boxes)

    def get_random_valid_coordinate(
        self,
        slot,
        paired=None,
        max_attempts: Optional[int] = None,
        rng: Optional[np.random.Generator] = None,
        time: Optional[datetime] = None,
    ) -> Optional[Tuple[float, float]]:
        """
        Random (lon, lat) where ``slot`` has data at the selected time.

        Points are drawn uniformly inside a randomly chosen contributing
        grid. With ``paired`` (either component order) the vector magnitude
        must lie in (threshold, 100); the threshold is 0, except for sea
        currents where it starts at 1 and relaxes linearly to 0 over the
        attempt budget.
        """
        key = ParameterSlot.coerce(slot)
        pair_key = ParameterSlot.coerce(paired) if paired is not None else None
        if key is None or (paired is not None and pair_key is None):
            return None
        if pair_key is not None and VECTOR_PAIRS.get(key) != pair_key:
            if VECTOR_PAIRS.get(pair_key) != key:
                logger.debug(f"{key.name} and {pair_key.name} are not a vector pair")
                return None
            key, pair_key = pair_key, key
        attempts = max_attempts if max_attempts is not None else self.random_attempts
        rng = rng or np.random.default_rng()

        with self._lock:
            t = self._query_time(time)
            if t is None:
                return None
            found = self._candidates(key, t, pair=pair_key)
            if not found:
                return None
            boxes = [c.grid.bounds() for c, _ in found]

            for attempt in range(attempts):
                lon_min, lon_max, lat_min, lat_max = boxes[int(rng.integers(len(boxes)))]
                lon = float(rng.uniform(lon_min, lon_max))
                lat = float(rng.uniform(lat_min, lat_max))

                if pair_key is None:
                    if self.get_interpolated_value(key, lon, lat, t) is not None:
                        return _to_pm180(lon), lat
                    continue

                vector = self.get_interpolated_vector(key, pair_key, lon, lat, t)
                if vector is None:
                    continue
                threshold = 0.0
                if key in SEA_CURRENT_SLOTS:
                    threshold = max(0.0, 1.0 - attempt / attempts)
                if threshold < vector[0] < MAX_SAMPLE_MAGNITUDE:
                    return _to_pm180(lon), lat

            logger.debug(f"No valid {key.name} sample after {attempts} attempts")
            return None

    def create_interpolated_grid(
        self,
        slot,
        lat_min: float,
        lat_max: float,
        lon_min: float,
        lon_max: float,
        target_points: int = 2500,
        time: Optional[datetime] = None,
        bilinear: bool = True,
    ) -> Optional[Grid]:
        """
        Resample the merged field of ``slot`` onto a regular grid of about
        ``target_points`` nodes. Nodes no layer covers are NaN.
        """
        key = ParameterSlot.coerce(slot)
        if key is None or lat_max <= lat_min or lon_max <= lon_min or target_points < 4:
            return None
        with self._lock:
            t = self._query_time(time)
            if t is None:
                return None
            found = self._candidates(key, t)
            if not found:
                return None
            template = found[0][0].grid

            lat_span = lat_max - lat_min
            lon_span = lon_max - lon_min
            ny = max(2, int(round(math.sqrt(target_points * lat_span / lon_span))))
            nx = max(2, int(round(target_points / ny)))
            lats = np.linspace(lat_min, lat_max, ny)
            lons = np.linspace(lon_min, lon_max, nx)

            values = np.full((ny, nx), np.nan)
            with metrics.timer("create_interpolated_grid"):
                for i, lat in enumerate(lats):
                    for j, lon in enumerate(lons):
                        v = self.get_interpolated_value(key, float(lon), float(lat), t, bilinear)
                        if v is not None:
                            values[i, j] = v

            if np.all(np.isnan(values)):
                return None
            return Grid(
                data_type=template.data_type,
                lats=lats,
                lons=lons,
                values=values,
                valid_time=t,
                level_type=template.level_type,
                level_value=template.level_value,
                reference_time=self.ref_datetime(),
                source_model=SourceModel.OTHER,
            )
