"""
Unit tests for MergeStrategy.

Tests the component scores, every scoring method, hard filters and the
first-listed tie-break.
"""

import numpy as np
import pytest

from conftest import FixedClock, hours, make_grid
from weatherlayers.data.parameters import SourceModel
from weatherlayers.layers.merge_strategy import (
    Candidate,
    MergeConfig,
    MergeStrategy,
    ScoringMethod,
)

FINE = dict(lats=np.linspace(10.0, 12.0, 41), lons=np.linspace(0.0, 2.0, 41))  # 0.05 deg
MEDIUM = dict(lats=np.linspace(10.0, 20.0, 41), lons=np.linspace(0.0, 10.0, 41))  # 0.25 deg


@pytest.fixture
def strategy(clock):
    return MergeStrategy(MergeConfig(), clock=clock)


def candidate(grid, name="a", order=0, time_range=None, step=None):
    return Candidate(grid=grid, layer_name=name, order=order, time_range=time_range, time_step_minutes=step)


class TestComponentScores:
    """Tests for currency, resolution, temporal and quality scores."""

    @pytest.mark.parametrize("step,factor", [(None, 1.0), (30, 1.0), (60, 1.0), (180, 0.8), (360, 0.6)])
    def test_temporal_factor(self, strategy, step, factor):
        assert strategy.temporal_factor(step) == factor

    def test_currency_decays_with_age(self, strategy):
        grid = make_grid(reference_time=hours(0))
        assert strategy.currency_score(grid) == pytest.approx(1.0 - 1.0 / 72.0)
        assert strategy.currency_score(grid, 180) == pytest.approx((1.0 - 1.0 / 72.0) * 0.8)

    def test_currency_clamped(self, strategy):
        assert strategy.currency_score(make_grid(reference_time=hours(-100))) == 0.0
        assert strategy.currency_score(make_grid(reference_time=hours(5))) == 1.0

    def test_resolution_bands(self, strategy):
        assert strategy.resolution_score(make_grid(**FINE)) == 1.0
        assert strategy.resolution_score(make_grid(**MEDIUM)) == 0.8
        assert strategy.resolution_score(make_grid()) == 0.6

    def test_resolution_uses_coarser_axis(self, strategy):
        grid = make_grid(lats=np.linspace(10.0, 12.0, 41), lons=np.arange(0.0, 11.0))
        assert strategy.resolution_score(grid) == 0.6

    @pytest.mark.parametrize("run_hour,lead,quality", [
        (0, 10, 1.0),
        (0, 18, 1.0),
        (0, 30, 0.95),
        (12, 48, 0.95),
        (3, 30, 0.6),
        (0, 60, 0.6),
    ])
    def test_hrrr_quality(self, strategy, run_hour, lead, quality):
        grid = make_grid(source_model=SourceModel.HRRR, reference_time=hours(run_hour))
        assert strategy.model_quality(grid, hours(run_hour + lead)) == quality

    def test_gfs_quality(self, strategy):
        grid = make_grid(source_model=SourceModel.GFS)
        assert strategy.model_quality(grid, hours(72)) == 0.9
        assert strategy.model_quality(grid, hours(100)) == 0.8

    def test_fixed_quality_models(self, strategy):
        assert strategy.model_quality(make_grid(source_model=SourceModel.ERA5), hours(500)) == 1.0
        assert strategy.model_quality(make_grid(source_model=SourceModel.NAM), hours(1)) == 0.7

    def test_unknown_model_default(self, strategy):
        assert strategy.model_quality(make_grid(source_model=SourceModel.OTHER), hours(1)) == 0.7


class TestScoringMethods:
    """Tests for the score formula of each method."""

    def test_combined(self, strategy):
        grid = make_grid(source_model=SourceModel.GFS, **MEDIUM)
        currency = (1.0 - 1.0 / 72.0) * 0.8
        expected = (currency + 0.8) / 2.0 * 0.9
        assert strategy.score([candidate(grid, step=180)], hours(3)) == [pytest.approx(expected)]

    def test_currency_first(self, strategy):
        strategy.set_method(ScoringMethod.CURRENCY_FIRST)
        grid = make_grid(**MEDIUM)
        currency = 1.0 - 1.0 / 72.0
        assert strategy.score([candidate(grid)], hours(0)) == [pytest.approx(0.7 * currency + 0.3 * 0.8)]

    def test_resolution_first(self, strategy):
        strategy.set_method(ScoringMethod.RESOLUTION_FIRST)
        grid = make_grid(**MEDIUM)
        currency = 1.0 - 1.0 / 72.0
        assert strategy.score([candidate(grid)], hours(0)) == [pytest.approx(0.7 * 0.8 + 0.3 * currency)]

    def test_model_quality(self, strategy):
        strategy.set_method("model_quality")
        grid = make_grid(source_model=SourceModel.ECMWF)
        assert strategy.score([candidate(grid)], hours(0)) == [0.9]

    def test_user_priority(self, strategy):
        strategy.set_method(ScoringMethod.USER_PRIORITY)
        cands = [candidate(make_grid(), "b", order=1), candidate(make_grid(), "a", order=0)]
        assert strategy.score(cands, hours(0)) == [0.5, 1.0]
        assert strategy.select(cands, hours(0)) == 1

    def test_configure_weights(self, strategy):
        strategy.configure(method="currency_first", primary_weight=1.0)
        assert strategy.method == ScoringMethod.CURRENCY_FIRST
        grid = make_grid(reference_time=hours(1))
        assert strategy.score([candidate(grid)], hours(0)) == [1.0]

    def test_configure_rejects_unknown_method(self, strategy):
        with pytest.raises(ValueError):
            strategy.configure(method="loudest")


class TestFilters:
    """Tests for the hard filters."""

    def test_missing_grid(self, strategy):
        assert not strategy.passes_filters(candidate(None), hours(0))

    def test_released_grid(self, strategy):
        grid = make_grid()
        grid.release()
        assert not strategy.passes_filters(candidate(grid), hours(0))

    def test_time_range(self, strategy):
        c = candidate(make_grid(), time_range=(hours(0), hours(6)))
        assert strategy.passes_filters(c, hours(6))
        assert not strategy.passes_filters(c, hours(7))

    def test_point_outside_grid(self, strategy):
        c = candidate(make_grid())
        assert strategy.passes_filters(c, hours(0), 5.0, 15.0)
        assert not strategy.passes_filters(c, hours(0), 10.5, 15.0)

    def test_extrapolation_margin(self, clock):
        strategy = MergeStrategy(MergeConfig(extrapolation_factor=1.0), clock=clock)
        c = candidate(make_grid())
        assert strategy.passes_filters(c, hours(0), 10.5, 15.0)
        assert not strategy.passes_filters(c, hours(0), 11.5, 15.0)

    def test_filtered_candidates_score_none(self, strategy):
        cands = [candidate(None, "a"), candidate(make_grid(), "b", order=1)]
        scores = strategy.score(cands, hours(0))
        assert scores[0] is None
        assert scores[1] is not None
        assert strategy.select(cands, hours(0)) == 1

    def test_nothing_qualifies(self, strategy):
        assert strategy.select([candidate(None)], hours(0)) is None
        assert strategy.select([], hours(0)) is None


class TestRanking:
    """Tests for ordering and tie-breaks."""

    def test_tie_goes_to_first_listed_layer(self, strategy):
        cands = [
            candidate(make_grid(), "second", order=1),
            candidate(make_grid(), "first", order=0),
        ]
        assert strategy.select(cands, hours(0)) == 1
        assert strategy.rank(cands, hours(0)) == [1, 0]

    def test_better_score_beats_order(self, strategy):
        cands = [
            candidate(make_grid(), "coarse", order=0),
            candidate(make_grid(**FINE), "fine", order=1),
        ]
        assert strategy.select(cands, hours(0)) == 1

    def test_newer_run_wins(self, clock):
        clock.now = hours(24)
        strategy = MergeStrategy(MergeConfig(), clock=clock)
        cands = [
            candidate(make_grid(reference_time=hours(0)), "old", order=0),
            candidate(make_grid(reference_time=hours(18)), "new", order=1),
        ]
        assert strategy.select(cands, hours(24)) == 1

    def test_deterministic(self, strategy):
        cands = [candidate(make_grid(**MEDIUM), str(i), order=i) for i in range(5)]
        first = strategy.rank(cands, hours(0))
        assert first == strategy.rank(cands, hours(0))
        assert first == [0, 1, 2, 3, 4]

    def test_default_clock(self):
        assert MergeStrategy().now().tzinfo is not None

    def test_fixed_clock(self):
        assert MergeStrategy(clock=FixedClock(hours(2))).now() == hours(2)
