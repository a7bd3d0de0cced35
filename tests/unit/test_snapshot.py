"""
Unit tests for Snapshot and TimelineSnapshot.

Tests slot storage, ownership and release semantics.
"""

import pytest

from conftest import hours, make_grid
from weatherlayers.data.parameters import DataType, ParameterSlot
from weatherlayers.layers.snapshot import Snapshot, TimelineSnapshot


class TestSlots:
    """Tests for storing and reading records."""

    def test_set_and_get(self):
        snap = Snapshot(hours(0), "gfs")
        grid = make_grid()
        assert snap.set_record(ParameterSlot.AIR_TEMP, grid)
        assert snap.get_record(ParameterSlot.AIR_TEMP) is grid
        assert ParameterSlot.AIR_TEMP in snap
        assert snap.slots == [ParameterSlot.AIR_TEMP]
        assert len(snap) == 1

    def test_slot_accepts_int_and_name(self):
        snap = Snapshot(hours(0))
        grid = make_grid()
        snap.set_record(19, grid)
        assert snap.get_record("AIR_TEMP") is grid

    def test_invalid_slot_is_ignored(self):
        snap = Snapshot(hours(0))
        assert not snap.set_record(99, make_grid())
        assert snap.is_empty()
        assert snap.get_record(99) is None
        assert 99 not in snap

    def test_none_clears_slot(self):
        snap = Snapshot(hours(0))
        snap.set_record(ParameterSlot.PRESSURE, make_grid(DataType.PRESSURE))
        snap.set_record(ParameterSlot.PRESSURE, None)
        assert ParameterSlot.PRESSURE not in snap


class TestOwnership:
    """Tests for borrowed versus owned grids."""

    def test_borrowed_grid_survives_release(self):
        snap = Snapshot(hours(0))
        grid = make_grid()
        snap.set_record(ParameterSlot.AIR_TEMP, grid)
        snap.release()
        assert not grid.is_released
        assert snap.is_empty()

    def test_owned_grid_released(self):
        snap = Snapshot(hours(0))
        grid = make_grid()
        snap.set_owned_record(ParameterSlot.AIR_TEMP, grid)
        assert snap.is_owned(ParameterSlot.AIR_TEMP)
        snap.release()
        assert grid.is_released

    def test_release_twice_is_safe(self):
        snap = Snapshot(hours(0))
        snap.set_owned_record(ParameterSlot.AIR_TEMP, make_grid())
        snap.release()
        snap.release()

    def test_replacing_owned_grid_releases_it(self):
        snap = Snapshot(hours(0))
        old = make_grid()
        new = make_grid()
        snap.set_owned_record(ParameterSlot.AIR_TEMP, old)
        snap.set_owned_record(ParameterSlot.AIR_TEMP, new)
        assert old.is_released
        assert not new.is_released

    def test_restoring_same_grid_keeps_it(self):
        snap = Snapshot(hours(0))
        grid = make_grid()
        snap.set_owned_record(ParameterSlot.AIR_TEMP, grid)
        snap.set_owned_record(ParameterSlot.AIR_TEMP, grid)
        assert not grid.is_released

    def test_replacing_borrowed_grid_keeps_it(self):
        snap = Snapshot(hours(0))
        borrowed = make_grid()
        snap.set_record(ParameterSlot.AIR_TEMP, borrowed)
        snap.set_owned_record(ParameterSlot.AIR_TEMP, make_grid())
        assert not borrowed.is_released


class TestTimelineSnapshot:
    """Tests for the isoline cache."""

    def test_isolines_cached_per_slot(self):
        snap = TimelineSnapshot(hours(0))
        snap.set_record(ParameterSlot.PRESSURE, make_grid(DataType.PRESSURE))
        snap.set_isolines(ParameterSlot.PRESSURE, ["line"])
        assert snap.get_isolines(ParameterSlot.PRESSURE) == ["line"]

    def test_isolines_need_a_grid(self):
        snap = TimelineSnapshot(hours(0))
        snap.set_isolines(ParameterSlot.PRESSURE, ["line"])
        assert snap.get_isolines(ParameterSlot.PRESSURE) is None

    def test_changing_slot_drops_isolines(self):
        snap = TimelineSnapshot(hours(0))
        snap.set_record(ParameterSlot.PRESSURE, make_grid(DataType.PRESSURE))
        snap.set_isolines(ParameterSlot.PRESSURE, ["line"])
        snap.set_record(ParameterSlot.PRESSURE, make_grid(DataType.PRESSURE))
        assert snap.get_isolines(ParameterSlot.PRESSURE) is None

    def test_release_clears_isolines(self):
        snap = TimelineSnapshot(hours(0))
        snap.set_owned_record(ParameterSlot.PRESSURE, make_grid(DataType.PRESSURE))
        snap.set_isolines(ParameterSlot.PRESSURE, ["line"])
        snap.release()
        assert snap.get_isolines(ParameterSlot.PRESSURE) is None
