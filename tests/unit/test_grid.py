"""
Unit tests for the Grid model.

Tests geometry, spatial interpolation, temporal blending, polar
conversion and the release lifecycle.
"""

import math

import numpy as np
import pytest

from conftest import hours, make_grid
from weatherlayers.data.grid import GeoBox, Grid, bearing_from_uv, circular_mean
from weatherlayers.data.parameters import DataType
from weatherlayers.exceptions import GridGeometryError, GridReleasedError


class TestHelpers:
    """Tests for module-level helpers."""

    def test_bearing_convention(self):
        # Wind blowing toward the east comes from the west
        assert bearing_from_uv(1.0, 0.0) == pytest.approx(270.0)
        # Wind blowing toward the north comes from the south
        assert bearing_from_uv(0.0, 1.0) == pytest.approx(180.0)
        assert bearing_from_uv(0.0, -1.0) == pytest.approx(0.0)

    def test_circular_mean_across_north(self):
        v = circular_mean([350.0, 10.0])
        assert min(v, 360.0 - v) == pytest.approx(0.0, abs=1e-9)

    def test_circular_mean_empty(self):
        assert circular_mean([]) is None


class TestConstruction:
    """Tests for Grid validation."""

    def test_shape_mismatch(self):
        with pytest.raises(GridGeometryError):
            Grid(DataType.TEMP, [0, 1], [0, 1, 2], np.zeros((2, 2)), hours(0))

    def test_descending_longitudes_rejected(self):
        with pytest.raises(GridGeometryError):
            Grid(DataType.TEMP, [0, 1], [2, 1], np.zeros((2, 2)), hours(0))

    def test_descending_latitudes_allowed(self):
        grid = Grid(DataType.TEMP, [20, 10], [0, 10], [[1, 2], [3, 4]], hours(0))
        assert grid.bounds() == (0.0, 10.0, 10.0, 20.0)

    def test_naive_time_is_utc(self):
        grid = make_grid(valid_time=hours(3).replace(tzinfo=None))
        assert grid.valid_time == hours(3)

    def test_reference_defaults_to_valid_time(self):
        grid = Grid(DataType.TEMP, [0, 1], [0, 1], np.zeros((2, 2)), hours(6))
        assert grid.reference_time == hours(6)
        assert grid.lead_hours == 0.0


class TestGeometry:
    """Tests for bounds, boxes and areas."""

    def test_spacing(self):
        grid = make_grid(lats=np.arange(0, 5, 0.25), lons=np.arange(0, 5, 0.5))
        assert grid.spacing() == (0.5, 0.25)

    def test_global_grid_box(self):
        grid = make_grid(lats=[-10, 0, 10], lons=np.arange(0, 360, 1.0))
        assert grid.is_global()
        assert grid.box() == GeoBox(-180.0, 180.0, -10.0, 10.0)

    def test_crosses_antimeridian(self):
        assert make_grid(lons=np.arange(170.0, 191.0)).crosses_antimeridian()
        assert not make_grid().crosses_antimeridian()

    def test_area_of_equatorial_square(self):
        grid = make_grid(lats=[-0.5, 0.5], lons=[0.0, 1.0])
        assert grid.area() == pytest.approx(1.0, rel=1e-4)

    def test_intersection_area(self):
        a = make_grid(lats=[0, 10], lons=[0, 10])
        b = make_grid(lats=[0, 10], lons=[5, 15])
        assert a.intersection_area(b) == pytest.approx(a.area() / 2)

    def test_intersection_across_frames(self):
        a = make_grid(lats=[0, 10], lons=[350.0, 360.0])
        b = make_grid(lats=[0, 10], lons=[-10.0, 0.0])
        assert a.intersection_area(b) == pytest.approx(a.area())

    def test_disjoint_boxes(self):
        a = GeoBox(0, 10, 0, 10)
        assert a.intersect(GeoBox(20, 30, 0, 10)) is None
        assert a.intersect(GeoBox(0, 10, 20, 30)) is None

    def test_contains_with_margin(self):
        grid = make_grid()
        assert grid.contains(5.0, 15.0)
        assert not grid.contains(10.5, 15.0)
        assert grid.contains(10.5, 15.0, margin_lon=1.0)

    def test_contains_other_longitude_frame(self):
        grid = make_grid(lons=np.arange(350.0, 361.0))
        assert grid.contains(-5.0, 15.0)


class TestInterpolatedValue:
    """Tests for Grid.interpolated_value()."""

    def test_bilinear_reproduces_linear_field(self):
        grid = make_grid(value=lambda lon, lat: 2.0 * lon + lat)
        assert grid.interpolated_value(3.25, 12.5) == pytest.approx(2.0 * 3.25 + 12.5)

    def test_nearest(self):
        grid = make_grid(value=lambda lon, lat: lon)
        assert grid.interpolated_value(3.4, 12.0, bilinear=False) == 3.0
        assert grid.interpolated_value(3.6, 12.0, bilinear=False) == 4.0

    def test_outside_gives_none(self):
        grid = make_grid()
        assert grid.interpolated_value(20.0, 15.0) is None
        assert grid.interpolated_value(5.0, 30.0) is None

    def test_on_edge_node(self):
        grid = make_grid(value=lambda lon, lat: lon + lat)
        assert grid.interpolated_value(10.0, 20.0) == pytest.approx(30.0)

    def test_all_corners_missing(self):
        grid = make_grid(value=np.nan)
        assert grid.interpolated_value(5.5, 15.5) is None

    def test_partial_corners_averaged(self):
        values = np.full((11, 11), np.nan)
        values[5, 5] = 2.0
        values[5, 6] = 4.0
        grid = make_grid(value=values)
        # Two valid corners out of four: plain average
        assert grid.interpolated_value(5.9, 15.1) == pytest.approx(3.0)

    def test_global_wrap(self):
        lons = np.arange(0.0, 360.0, 10.0)
        grid = make_grid(lats=[0.0, 10.0], lons=lons, value=lambda lon, lat: np.where(lon == 0.0, 10.0, 0.0))
        # Halfway between 350 and 0 (=360)
        assert grid.interpolated_value(355.0, 0.0) == pytest.approx(5.0)
        assert grid.interpolated_value(-5.0, 0.0) == pytest.approx(5.0)

    def test_circular_value(self):
        values = np.zeros((11, 11))
        values[:, :6] = 350.0
        values[:, 6:] = 10.0
        grid = make_grid(DataType.WAVE_DIR_SIG, value=values)
        v = grid.interpolated_value(5.5, 15.0, circular=True)
        assert min(v, 360.0 - v) == pytest.approx(0.0, abs=1e-9)

    def test_released_grid_raises(self):
        grid = make_grid()
        grid.release()
        with pytest.raises(GridReleasedError):
            grid.interpolated_value(5.0, 15.0)

    def test_interpolated_vector(self):
        gx = make_grid(DataType.WIND_VX, 3.0)
        gy = make_grid(DataType.WIND_VY, 4.0)
        speed, direction = Grid.interpolated_vector(gx, gy, 5.0, 15.0)
        assert speed == pytest.approx(5.0)
        assert direction == pytest.approx(bearing_from_uv(3.0, 4.0))


class TestTemporalBlend:
    """Tests for scalar and vector temporal blending."""

    def test_scalar_midpoint(self):
        a = make_grid(value=10.0, valid_time=hours(0))
        b = make_grid(value=20.0, valid_time=hours(6))
        mid = a.interpolate_scalar(b, 0.5)
        np.testing.assert_allclose(mid.values, 15.0)
        assert mid.valid_time == hours(3)

    @pytest.mark.parametrize("k,expected", [(0.0, 10.0), (1.0, 20.0)])
    def test_scalar_bounds(self, k, expected):
        a = make_grid(value=10.0, valid_time=hours(0))
        b = make_grid(value=20.0, valid_time=hours(6))
        np.testing.assert_allclose(a.interpolate_scalar(b, k).values, expected)

    def test_circular_shortest_arc(self):
        a = make_grid(DataType.WAVE_DIR_SIG, 350.0, hours(0))
        b = make_grid(DataType.WAVE_DIR_SIG, 10.0, hours(6))
        mid = a.interpolate_scalar(b, 0.5, circular=True)
        np.testing.assert_allclose(mid.values, 0.0, atol=1e-9)

    def test_incompatible_lattice(self):
        a = make_grid()
        b = make_grid(lons=np.arange(0.0, 12.0))
        assert a.interpolate_scalar(b, 0.5) is None

    def test_reference_time_is_newest(self):
        a = make_grid(reference_time=hours(-6), valid_time=hours(0))
        b = make_grid(reference_time=hours(0), valid_time=hours(6))
        assert a.interpolate_scalar(b, 0.5).reference_time == hours(0)

    def test_vector_pair_rotates(self):
        # From a westerly (u>0) to a southerly (v>0) wind, same speed
        x0 = make_grid(DataType.WIND_VX, 10.0, hours(0))
        y0 = make_grid(DataType.WIND_VY, 0.0, hours(0))
        x1 = make_grid(DataType.WIND_VX, 0.0, hours(6))
        y1 = make_grid(DataType.WIND_VY, 10.0, hours(6))
        gx, gy = Grid.interpolate_vector_pair(x0, y0, x1, y1, 0.5)
        np.testing.assert_allclose(np.hypot(gx.values, gy.values), 10.0)
        np.testing.assert_allclose(gx.values, 10.0 * math.cos(math.pi / 4))
        assert gx.data_type == DataType.WIND_VX
        assert gy.data_type == DataType.WIND_VY

    def test_vector_pair_bounds_copy(self):
        x0 = make_grid(DataType.WIND_VX, 1.0, hours(0))
        y0 = make_grid(DataType.WIND_VY, 2.0, hours(0))
        x1 = make_grid(DataType.WIND_VX, 3.0, hours(6))
        y1 = make_grid(DataType.WIND_VY, 4.0, hours(6))
        gx, gy = Grid.interpolate_vector_pair(x0, y0, x1, y1, 1.0)
        np.testing.assert_allclose(gx.values, 3.0)
        np.testing.assert_allclose(gy.values, 4.0)
        assert gx.values is not x1.values


class TestPolarToUV:
    """Tests for Grid.polar_to_uv()."""

    def test_north_wind(self):
        direction = make_grid(DataType.WIND_DIR, 0.0)
        speed = make_grid(DataType.WIND_SPEED, 5.0)
        gx, gy = Grid.polar_to_uv(direction, speed)
        np.testing.assert_allclose(gx.values, 0.0, atol=1e-12)
        np.testing.assert_allclose(gy.values, -5.0)
        assert gx.data_type == DataType.WIND_VX

    def test_round_trip_bearing(self):
        direction = make_grid(DataType.WIND_DIR, 135.0)
        speed = make_grid(DataType.WIND_SPEED, 8.0)
        gx, gy = Grid.polar_to_uv(direction, speed)
        assert bearing_from_uv(gx.values[0, 0], gy.values[0, 0]) == pytest.approx(135.0)

    def test_current(self):
        direction = make_grid(DataType.CURRENT_DIR, 90.0)
        speed = make_grid(DataType.CURRENT_SPEED, 1.0)
        gx, gy = Grid.polar_to_uv(direction, speed)
        assert gx.data_type == DataType.CURRENT_VX
        assert gy.data_type == DataType.CURRENT_VY

    def test_not_polar(self):
        assert Grid.polar_to_uv(make_grid(DataType.TEMP), make_grid(DataType.TEMP)) is None


class TestRelease:
    """Tests for the release lifecycle."""

    def test_release_once(self):
        grid = make_grid()
        grid.release()
        assert grid.is_released
        with pytest.raises(GridReleasedError):
            grid.values

    def test_double_release_raises(self):
        grid = make_grid()
        grid.release()
        with pytest.raises(GridReleasedError):
            grid.release()

    def test_copy_is_independent(self):
        grid = make_grid(value=1.0)
        clone = grid.copy()
        grid.release()
        np.testing.assert_allclose(clone.values, 1.0)
