"""
Layer: named, switchable wrapper around one Source.

The Layer answers "what does this source say at time t" by bracketing t
between the Source's snapshots, slot by slot, and blending the two grids.
The result is kept in a one-entry cache so repeated queries for the same
time (route evaluation, map redraws) reuse the same TimelineSnapshot.
"""

import logging
from datetime import datetime
from typing import Callable, FrozenSet, List, Optional, Sequence, Tuple

from weatherlayers.data.grid import Grid, ensure_utc
from weatherlayers.data.parameters import (
    VECTOR_PAIRS,
    ParameterSlot,
    is_circular,
    is_vector_y,
)
from weatherlayers.data.reader import GribReader
from weatherlayers.exceptions import SourceLoadError
from weatherlayers.layers.snapshot import Snapshot, TimelineSnapshot
from weatherlayers.layers.source import Source, SourceOptions
from weatherlayers.metrics import metrics

logger = logging.getLogger(__name__)


def _minutes(later: datetime, earlier: datetime) -> float:
    return (later - earlier).total_seconds() / 60.0


class Layer:
    """Enable/disable-able forecast layer with temporal interpolation."""

    def __init__(
        self,
        name: str,
        source: Optional[Source],
        enabled: bool = True,
        on_change: Optional[Callable[["Layer"], None]] = None,
    ):
        self.name = name
        self.source = source
        self.last_error: Optional[str] = None
        self._enabled = enabled
        self._on_change = on_change

        self._cache_time: Optional[datetime] = None
        self._cache: Optional[TimelineSnapshot] = None
        self._cache_filled = False

    def __repr__(self) -> str:
        state = "enabled" if self._enabled else "disabled"
        return f"Layer({self.name!r}, {state}, {self.source!r})"

    @classmethod
    def load(
        cls,
        name: str,
        paths: Sequence[str],
        reader: GribReader,
        options: Optional[SourceOptions] = None,
        on_change: Optional[Callable[["Layer"], None]] = None,
    ) -> "Layer":
        """
        Build a layer from files. A load failure yields a layer that is not
        OK, with the reason in ``last_error``.
        """
        try:
            source = Source.load(paths, reader, source_id=name, options=options)
        except SourceLoadError as e:
            logger.warning(f"Layer '{name}' failed to load: {e}")
            layer = cls(name, None, on_change=on_change)
            layer.last_error = str(e)
            return layer
        return cls(name, source, on_change=on_change)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        if enabled == self._enabled:
            return
        self._enabled = enabled
        if not enabled:
            self.invalidate_cache()
        logger.info(f"Layer '{self.name}' {'enabled' if enabled else 'disabled'}")
        if self._on_change is not None:
            self._on_change(self)

    def set_on_change(self, callback: Optional[Callable[["Layer"], None]]) -> None:
        self._on_change = callback

    def is_ok(self) -> bool:
        return self.source is not None and self.source.is_ok()

    @property
    def available_slots(self) -> FrozenSet[ParameterSlot]:
        return self.source.available_slots if self.source is not None else frozenset()

    @property
    def file_names(self) -> List[str]:
        return list(self.source.file_names) if self.source is not None else []

    @property
    def reference_time(self) -> Optional[datetime]:
        return self.source.reference_time if self.source is not None else None

    def forecast_times(self) -> List[datetime]:
        return self.source.times if self.source is not None else []

    def min_time(self) -> Optional[datetime]:
        return self.source.min_time if self.source is not None else None

    def max_time(self) -> Optional[datetime]:
        return self.source.max_time if self.source is not None else None

    def time_range(self) -> Optional[Tuple[datetime, datetime]]:
        if not self.is_ok():
            return None
        return self.source.min_time, self.source.max_time

    def time_step_minutes(self) -> Optional[float]:
        """Smallest gap between consecutive forecast times."""
        times = self.forecast_times()
        gaps = [_minutes(b, a) for a, b in zip(times, times[1:])]
        return min(gaps) if gaps else None

    # ------------------------------------------------------------------
    # Timeline
    # ------------------------------------------------------------------

    @property
    def cached_time(self) -> Optional[datetime]:
        return self._cache_time if self._cache_filled else None

    def invalidate_cache(self) -> None:
        """Drop the cached timeline, releasing the grids it owns."""
        if self._cache is not None:
            self._cache.release()
        self._cache = None
        self._cache_time = None
        self._cache_filled = False

    def get_timeline_snapshot(self, time: datetime) -> Optional[TimelineSnapshot]:
        """
        Data valid at ``time``, interpolated from the bracketing snapshots.

        Returns None when the layer is disabled or not OK, or when no slot
        can be produced for ``time``. Asking again for the cached time
        returns the very same object.
        """
        if not self._enabled or not self.is_ok():
            return None
        time = ensure_utc(time)

        if self._cache_filled and self._cache_time == time:
            metrics.increment("timeline_cache_hit")
            return self._cache

        metrics.increment("timeline_cache_miss")
        self.invalidate_cache()
        with metrics.timer("timeline_build"):
            timeline = self._build_timeline(time)
        self._cache = timeline
        self._cache_time = time
        self._cache_filled = True
        return timeline

    def _build_timeline(self, time: datetime) -> Optional[TimelineSnapshot]:
        snapshots = self.source.snapshots
        start = self.source.min_time
        timeline = TimelineSnapshot(time, self.name)
        now_minute = _minutes(time, start)

        for slot in ParameterSlot:
            # Y components are only ever written together with their X
            if is_vector_y(slot) or slot in timeline:
                continue
            pair = VECTOR_PAIRS.get(slot)

            before, after = self._bracket(snapshots, time, slot, pair)
            if before is None or after is None:
                continue

            minute1 = _minutes(before.valid_time, start)
            minute2 = _minutes(after.valid_time, start)
            if minute2 < minute1 or now_minute < minute1 or now_minute > minute2:
                continue

            if minute1 == minute2:
                timeline.set_record(slot, before.get_record(slot))
                if pair is not None:
                    timeline.set_record(pair, before.get_record(pair))
                continue

            k = (now_minute - minute1) / (minute2 - minute1)
            if pair is not None:
                blended = Grid.interpolate_vector_pair(
                    before.get_record(slot), before.get_record(pair),
                    after.get_record(slot), after.get_record(pair), k,
                )
                if blended is None:
                    logger.debug(f"Layer '{self.name}': cannot blend {slot.name} pair at {time}")
                    continue
                timeline.set_owned_record(slot, blended[0])
                timeline.set_owned_record(pair, blended[1])
            else:
                grid = before.get_record(slot).interpolate_scalar(
                    after.get_record(slot), k, circular=is_circular(slot),
                )
                if grid is None:
                    logger.debug(f"Layer '{self.name}': cannot blend {slot.name} at {time}")
                    continue
                timeline.set_owned_record(slot, grid)

        if timeline.is_empty():
            return None
        return timeline

    @staticmethod
    def _bracket(
        snapshots: Sequence[Snapshot],
        time: datetime,
        slot: ParameterSlot,
        pair: Optional[ParameterSlot],
    ) -> Tuple[Optional[Snapshot], Optional[Snapshot]]:
        """Last snapshot at or before ``time`` and first at or after it holding the slot (and its pair)."""
        before = None
        after = None
        for snap in snapshots:
            if slot not in snap or (pair is not None and pair not in snap):
                continue
            if snap.valid_time <= time:
                before = snap
            if snap.valid_time >= time:
                after = snap
                break
        return before, after
