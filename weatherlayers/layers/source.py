"""
Source: one loaded file group as a time-ordered list of Snapshots.

Incoming records are grouped by valid time. Inside a group every record is
mapped to its ParameterSlot, and when several records compete for the same
slot the precedence rules below pick one:

1. pressure: mean-sea-level records win;
2. vector slots: U/V records win over direction/speed records;
3. period-averaged records win over instantaneous ones;
4. significant-wave records win over wind-wave records.

Anything still tied keeps the first record seen. Polar vector pairs are
then converted to U/V, and a vector slot never ends up populated alone.
"""

import logging
import os
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence

from weatherlayers.data.grid import Grid
from weatherlayers.data.parameters import (
    CUMULATIVE_SLOTS,
    POLAR_TYPES,
    SIGNIFICANT_WAVE_TYPES,
    TIME_RANGE_AVERAGE,
    VECTOR_PAIRS,
    WAVE_SLOTS,
    LevelType,
    ParameterSlot,
    is_vector,
    slot_for,
)
from weatherlayers.data.reader import GribReader
from weatherlayers.exceptions import SourceLoadError
from weatherlayers.layers.snapshot import Snapshot

logger = logging.getLogger(__name__)


@dataclass
class SourceOptions:
    """Load-time behaviour for a file group."""
    copy_first_cumulative: bool = False  # fill precip/cloud gaps in the first step
    copy_missing_waves: bool = False  # fill wave gaps from neighbouring steps
    newest_file: bool = False  # load only the most recently modified file


def _prefer(slot: ParameterSlot, new: Grid, current: Grid) -> bool:
    """True when ``new`` should replace ``current`` in ``slot``."""
    if slot == ParameterSlot.PRESSURE:
        new_msl = new.level_type == LevelType.MSL
        cur_msl = current.level_type == LevelType.MSL
        if new_msl != cur_msl:
            return new_msl

    if is_vector(slot):
        new_rect = new.data_type not in POLAR_TYPES
        cur_rect = current.data_type not in POLAR_TYPES
        if new_rect != cur_rect:
            return new_rect

    new_avg = new.time_range == TIME_RANGE_AVERAGE
    cur_avg = current.time_range == TIME_RANGE_AVERAGE
    if new_avg != cur_avg:
        return new_avg

    if slot in WAVE_SLOTS:
        new_sig = new.data_type in SIGNIFICANT_WAVE_TYPES
        cur_sig = current.data_type in SIGNIFICANT_WAVE_TYPES
        if new_sig != cur_sig:
            return new_sig

    return False


def _resolve_vector_pairs(chosen: Dict[ParameterSlot, Grid], valid_time: datetime) -> None:
    """Convert polar pairs to U/V and drop incomplete or mixed pairs in place."""
    for x_slot, y_slot in VECTOR_PAIRS.items():
        gx = chosen.get(x_slot)
        gy = chosen.get(y_slot)
        if gx is None and gy is None:
            continue

        if gx is None or gy is None:
            logger.warning(
                f"Dropping unpaired {(gx or gy).data_type.value} at {valid_time}: "
                f"{x_slot.name}/{y_slot.name} needs both components"
            )
            chosen.pop(x_slot, None)
            chosen.pop(y_slot, None)
            continue

        x_polar = gx.data_type in POLAR_TYPES
        y_polar = gy.data_type in POLAR_TYPES
        if not x_polar and not y_polar:
            continue

        converted = Grid.polar_to_uv(gx, gy) if (x_polar and y_polar) else None
        if converted is None:
            logger.warning(
                f"Dropping {x_slot.name}/{y_slot.name} at {valid_time}: "
                f"cannot combine {gx.data_type.value} with {gy.data_type.value}"
            )
            chosen.pop(x_slot)
            chosen.pop(y_slot)
            continue
        chosen[x_slot], chosen[y_slot] = converted


def _file_age_key(path: str):
    try:
        return (os.path.getmtime(path), path)
    except OSError:
        return (0.0, path)


class Source:
    """Immutable, time-sorted sequence of Snapshots from one file group."""

    def __init__(
        self,
        snapshots: Sequence[Snapshot],
        source_id: Optional[str] = None,
        file_names: Optional[Sequence[str]] = None,
    ):
        ordered = sorted(snapshots, key=lambda s: s.valid_time)
        for prev, cur in zip(ordered, ordered[1:]):
            if prev.valid_time == cur.valid_time:
                raise ValueError(f"Duplicate snapshot time {cur.valid_time} in source {source_id}")

        self.source_id = source_id
        self._snapshots = tuple(ordered)
        self.file_names = list(file_names or [])

        slots = set()
        references = []
        for snap in self._snapshots:
            slots.update(snap.slots)
            references.extend(snap.get_record(s).reference_time for s in snap.slots)
        self.available_slots: FrozenSet[ParameterSlot] = frozenset(slots)
        self.reference_time: Optional[datetime] = max(references) if references else None

    def __repr__(self) -> str:
        return f"Source({self.source_id}, {len(self._snapshots)} snapshots, {len(self.available_slots)} slots)"

    def __len__(self) -> int:
        return len(self._snapshots)

    @property
    def snapshots(self) -> tuple:
        return self._snapshots

    @property
    def times(self) -> List[datetime]:
        return [s.valid_time for s in self._snapshots]

    @property
    def min_time(self) -> Optional[datetime]:
        return self._snapshots[0].valid_time if self._snapshots else None

    @property
    def max_time(self) -> Optional[datetime]:
        return self._snapshots[-1].valid_time if self._snapshots else None

    def is_ok(self) -> bool:
        return any(not s.is_empty() for s in self._snapshots)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_records(
        cls,
        records: Iterable[Grid],
        source_id: Optional[str] = None,
        options: Optional[SourceOptions] = None,
        file_names: Optional[Sequence[str]] = None,
    ) -> "Source":
        """Build a Source from a flat record stream."""
        options = options or SourceOptions()
        groups: "OrderedDict[datetime, List[Grid]]" = OrderedDict()
        for grid in records:
            groups.setdefault(grid.valid_time, []).append(grid)

        snapshots = []
        dropped = 0
        for valid_time in sorted(groups):
            chosen: Dict[ParameterSlot, Grid] = {}
            for grid in groups[valid_time]:
                slot = slot_for(grid.data_type, grid.level_type, grid.level_value)
                if slot is None:
                    dropped += 1
                    continue
                current = chosen.get(slot)
                if current is None or _prefer(slot, grid, current):
                    chosen[slot] = grid

            _resolve_vector_pairs(chosen, valid_time)

            snapshot = Snapshot(valid_time, source_id)
            for slot in sorted(chosen):
                snapshot.set_record(slot, chosen[slot])
            snapshots.append(snapshot)

        if dropped:
            logger.debug(f"Source {source_id}: {dropped} records had no parameter slot")

        if options.copy_first_cumulative:
            cls._copy_first_cumulative(snapshots)
        if options.copy_missing_waves:
            cls._copy_missing_waves(snapshots)

        return cls(snapshots, source_id=source_id, file_names=file_names)

    @classmethod
    def load(
        cls,
        paths: Sequence[str],
        reader: GribReader,
        source_id: Optional[str] = None,
        options: Optional[SourceOptions] = None,
    ) -> "Source":
        """
        Read a file group and build its Source.

        Raises:
            SourceLoadError: files missing, unreadable or without any record
        """
        options = options or SourceOptions()
        paths = [str(p) for p in paths]
        if not paths:
            raise SourceLoadError("No files given")
        if options.newest_file and len(paths) > 1:
            paths = [max(paths, key=_file_age_key)]

        records = list(reader.parse(paths))
        if not records:
            raise SourceLoadError(f"{', '.join(paths)} contains no valid data")

        source = cls.from_records(records, source_id=source_id, options=options, file_names=paths)
        logger.info(
            f"Loaded source {source_id}: {len(records)} records, "
            f"{len(source)} times, {len(source.available_slots)} parameters"
        )
        return source

    @staticmethod
    def _copy_first_cumulative(snapshots: List[Snapshot]) -> None:
        if len(snapshots) < 2:
            return
        first = snapshots[0]
        for slot in CUMULATIVE_SLOTS:
            if slot in first:
                continue
            donor = next((s for s in snapshots[1:] if slot in s), None)
            if donor is not None:
                first.set_record(slot, donor.get_record(slot))

    @staticmethod
    def _copy_missing_waves(snapshots: List[Snapshot]) -> None:
        for slot in WAVE_SLOTS:
            have = [i for i, s in enumerate(snapshots) if slot in s]
            if not have:
                continue
            for i, snap in enumerate(snapshots):
                if slot in snap:
                    continue
                earlier = [j for j in have if j < i]
                donor = earlier[-1] if earlier else have[0]
                snap.set_record(slot, snapshots[donor].get_record(slot))
