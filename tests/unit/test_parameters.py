"""
Unit tests for the parameter catalogue.

Tests slot coercion, vector pair metadata and record-to-slot mapping.
"""

import pytest

from weatherlayers.data.parameters import (
    VECTOR_PAIRS,
    DataType,
    LevelType,
    ParameterSlot,
    is_circular,
    is_vector,
    is_vector_x,
    is_vector_y,
    paired_slot,
    slot_for,
)


class TestCoerce:
    """Tests for ParameterSlot.coerce()."""

    def test_slot_passes_through(self):
        assert ParameterSlot.coerce(ParameterSlot.PRESSURE) is ParameterSlot.PRESSURE

    def test_int_and_digit_string(self):
        assert ParameterSlot.coerce(11) == ParameterSlot.PRESSURE
        assert ParameterSlot.coerce("11") == ParameterSlot.PRESSURE

    def test_name_is_case_insensitive(self):
        assert ParameterSlot.coerce("air_temp") == ParameterSlot.AIR_TEMP

    @pytest.mark.parametrize("value", [-1, 37, 999, "-3", "nonsense", None, True])
    def test_invalid_values_give_none(self, value):
        assert ParameterSlot.coerce(value) is None

    def test_catalogue_is_contiguous(self):
        assert [int(s) for s in ParameterSlot] == list(range(37))


class TestVectorPairs:
    """Tests for vector pair metadata."""

    def test_pairs_are_symmetric(self):
        for x, y in VECTOR_PAIRS.items():
            assert paired_slot(x) == y
            assert paired_slot(y) == x
            assert is_vector_x(x) and not is_vector_y(x)
            assert is_vector_y(y) and not is_vector_x(y)

    def test_scalar_has_no_pair(self):
        assert paired_slot(ParameterSlot.PRESSURE) is None
        assert not is_vector(ParameterSlot.HTSIGW)

    def test_current_pair(self):
        assert paired_slot(ParameterSlot.SEACURRENT_VX) == ParameterSlot.SEACURRENT_VY

    def test_only_wave_direction_is_circular(self):
        circular = [s for s in ParameterSlot if is_circular(s)]
        assert circular == [ParameterSlot.WVDIR]


class TestSlotFor:
    """Tests for slot_for()."""

    def test_surface_wind(self):
        assert slot_for(DataType.WIND_VX, LevelType.ABOVE_GROUND, 10) == ParameterSlot.WIND_VX

    def test_isobaric_levels(self):
        assert slot_for(DataType.WIND_VY, LevelType.ISOBARIC, 850) == ParameterSlot.WIND_VY850
        assert slot_for(DataType.TEMP, LevelType.ISOBARIC, 500) == ParameterSlot.AIR_TEMP500
        assert slot_for(DataType.GEOPOT_HGT, LevelType.ISOBARIC, 300) == ParameterSlot.GEOP_HGT300

    def test_untracked_isobaric_level_dropped(self):
        assert slot_for(DataType.TEMP, LevelType.ISOBARIC, 925) is None

    def test_polar_wind_lands_in_vector_slots(self):
        assert slot_for(DataType.WIND_DIR, LevelType.ABOVE_GROUND) == ParameterSlot.WIND_VX
        assert slot_for(DataType.WIND_SPEED, LevelType.ABOVE_GROUND) == ParameterSlot.WIND_VY

    def test_single_level_parameters(self):
        assert slot_for(DataType.PRESSURE, LevelType.MSL) == ParameterSlot.PRESSURE
        assert slot_for(DataType.WAVE_HEIGHT_WIND, LevelType.SURFACE) == ParameterSlot.HTSIGW
        assert slot_for(DataType.PRECIP_RATE, LevelType.SURFACE) == ParameterSlot.PRECIP_TOT
        assert slot_for(DataType.WATER_TEMP, LevelType.SURFACE) == ParameterSlot.SEA_TEMP

    def test_single_level_on_isobaric_dropped(self):
        assert slot_for(DataType.PRESSURE, LevelType.ISOBARIC, 500) is None
