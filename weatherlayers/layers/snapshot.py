"""
Per-time parameter tables.

A Snapshot maps each ParameterSlot to at most one Grid for a single valid
time. Every entry records whether the Snapshot owns the grid (it was made
by interpolation and must be released with the Snapshot) or borrows it from
a Source, in which case the Snapshot never releases it.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional

from weatherlayers.data.grid import Grid, ensure_utc
from weatherlayers.data.parameters import ParameterSlot

logger = logging.getLogger(__name__)


@dataclass
class SlotEntry:
    grid: Grid
    owned: bool = False


class Snapshot:
    """Grids for all tracked parameters at one valid time from one source."""

    def __init__(self, valid_time: datetime, source_id: Optional[str] = None):
        self.valid_time = ensure_utc(valid_time)
        self.source_id = source_id
        self._slots: Dict[ParameterSlot, SlotEntry] = {}

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}({self.valid_time:%Y-%m-%d %H:%M}Z, "
            f"source={self.source_id}, slots={len(self._slots)})"
        )

    def __contains__(self, slot) -> bool:
        slot = ParameterSlot.coerce(slot)
        return slot is not None and slot in self._slots

    def __len__(self) -> int:
        return len(self._slots)

    def __iter__(self) -> Iterator[ParameterSlot]:
        return iter(sorted(self._slots))

    def is_empty(self) -> bool:
        return not self._slots

    @property
    def slots(self) -> List[ParameterSlot]:
        return sorted(self._slots)

    def set_record(self, slot, grid: Optional[Grid]) -> bool:
        """Store a borrowed grid. Passing None clears the slot."""
        return self._store(slot, grid, owned=False)

    def set_owned_record(self, slot, grid: Optional[Grid]) -> bool:
        """Store a grid this Snapshot takes ownership of."""
        return self._store(slot, grid, owned=True)

    def get_record(self, slot) -> Optional[Grid]:
        entry = self.get_entry(slot)
        return entry.grid if entry is not None else None

    def get_entry(self, slot) -> Optional[SlotEntry]:
        slot = ParameterSlot.coerce(slot)
        if slot is None:
            return None
        return self._slots.get(slot)

    def is_owned(self, slot) -> bool:
        entry = self.get_entry(slot)
        return entry is not None and entry.owned

    def release(self) -> None:
        """Release every owned grid and empty the table. Safe to call twice."""
        owned = [e.grid for e in self._slots.values() if e.owned]
        self._slots.clear()
        for grid in owned:
            grid.release()
        if owned:
            logger.debug(f"Released {len(owned)} owned grids for {self.valid_time}")

    def _store(self, slot, grid: Optional[Grid], owned: bool) -> bool:
        key = ParameterSlot.coerce(slot)
        if key is None:
            logger.warning(f"Ignoring record for invalid parameter slot {slot!r}")
            return False

        previous = self._slots.pop(key, None)
        if previous is not None and previous.owned and previous.grid is not grid:
            previous.grid.release()
        if grid is not None:
            self._slots[key] = SlotEntry(grid=grid, owned=owned)
        self._slot_changed(key)
        return True

    def _slot_changed(self, slot: ParameterSlot) -> None:
        pass


class TimelineSnapshot(Snapshot):
    """
    Snapshot produced by temporal interpolation.

    Holds one opaque derived artefact per slot (isoline geometry for
    renderers); it is dropped whenever that slot's grid changes.
    """

    def __init__(self, valid_time: datetime, source_id: Optional[str] = None):
        super().__init__(valid_time, source_id)
        self._isolines: Dict[ParameterSlot, Any] = {}

    def get_isolines(self, slot) -> Optional[Any]:
        key = ParameterSlot.coerce(slot)
        return self._isolines.get(key) if key is not None else None

    def set_isolines(self, slot, isolines: Any) -> None:
        key = ParameterSlot.coerce(slot)
        if key is not None and key in self._slots:
            self._isolines[key] = isolines

    def release(self) -> None:
        self._isolines.clear()
        super().release()

    def _slot_changed(self, slot: ParameterSlot) -> None:
        self._isolines.pop(slot, None)
