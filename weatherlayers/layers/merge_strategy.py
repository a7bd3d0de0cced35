"""
Candidate scoring for multi-layer merges.

When several layers hold a grid for the same parameter at the requested
time, MergeStrategy ranks them. A candidate first has to pass hard filters
(grid present, layer time range covers the target, point inside the grid
give or take an extrapolation margin). It is then scored from:

- currency: how recent its reference run is, scaled by the layer's time step
- resolution: grid spacing band
- model quality: per-model table with lead-time rules

The default COMBINED method scores ((currency + resolution) / 2) * quality.
Scores equal within ``score_tolerance`` go to the layer listed first.

Every weight and threshold lives in MergeConfig.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from weatherlayers.data.grid import Grid, ensure_utc
from weatherlayers.data.parameters import SourceModel

logger = logging.getLogger(__name__)


class ScoringMethod(str, Enum):
    COMBINED = "combined"
    CURRENCY_FIRST = "currency_first"
    RESOLUTION_FIRST = "resolution_first"
    MODEL_QUALITY = "model_quality"
    USER_PRIORITY = "user_priority"


@dataclass(frozen=True)
class ModelQualityRule:
    """Quality score that applies up to ``max_lead_hours`` (None = any lead)."""
    score: float
    max_lead_hours: Optional[float] = None
    run_hours: Optional[Tuple[int, ...]] = None  # restrict to these UTC run hours

    def matches(self, lead_hours: float, run_hour: int) -> bool:
        if self.max_lead_hours is not None and lead_hours > self.max_lead_hours:
            return False
        if self.run_hours is not None and run_hour not in self.run_hours:
            return False
        return True


DEFAULT_MODEL_QUALITY: Dict[SourceModel, Tuple[ModelQualityRule, ...]] = {
    SourceModel.HRRR: (
        ModelQualityRule(1.0, max_lead_hours=18.0),
        ModelQualityRule(0.95, max_lead_hours=48.0, run_hours=(0, 6, 12, 18)),
        ModelQualityRule(0.6),
    ),
    SourceModel.GFS: (
        ModelQualityRule(0.9, max_lead_hours=72.0),
        ModelQualityRule(0.8),
    ),
    SourceModel.ERA5: (ModelQualityRule(1.0),),
    SourceModel.ECMWF: (ModelQualityRule(0.9),),
    SourceModel.KNMI_HIRLAM: (ModelQualityRule(0.95),),
    SourceModel.KNMI_HARMONIE_AROME: (ModelQualityRule(0.95),),
    SourceModel.NOAA_NCEP_WW3: (ModelQualityRule(0.9),),
    SourceModel.FNMOC_WW3_GLB: (ModelQualityRule(0.9),),
    SourceModel.FNMOC_WW3_MED: (ModelQualityRule(0.9),),
    SourceModel.NOAA_RTOFS: (ModelQualityRule(0.85),),
    SourceModel.METNO: (ModelQualityRule(0.8),),
    SourceModel.NAM: (ModelQualityRule(0.7),),
}


@dataclass
class MergeConfig:
    """Tunable weights and thresholds for candidate scoring."""
    method: ScoringMethod = ScoringMethod.COMBINED
    max_age_hours: float = 72.0

    # (max grid spacing in degrees, score), checked in order
    resolution_bands: Tuple[Tuple[float, float], ...] = ((0.1, 1.0), (0.5, 0.8))
    coarse_resolution_score: float = 0.6

    # (max time step in minutes, factor), checked in order
    temporal_bands: Tuple[Tuple[float, float], ...] = ((60.0, 1.0), (180.0, 0.8))
    coarse_temporal_factor: float = 0.6

    model_quality: Dict[SourceModel, Tuple[ModelQualityRule, ...]] = field(
        default_factory=lambda: dict(DEFAULT_MODEL_QUALITY)
    )
    default_quality: float = 0.7

    # Weight of the leading factor for CURRENCY_FIRST / RESOLUTION_FIRST
    primary_weight: float = 0.7

    # Allowed distance outside a grid, in grid spacings
    extrapolation_factor: float = 0.0
    score_tolerance: float = 1e-9


@dataclass
class Candidate:
    """One layer's grid competing for a query."""
    grid: Optional[Grid]
    layer_name: str
    order: int
    time_range: Optional[Tuple[datetime, datetime]] = None
    time_step_minutes: Optional[float] = None


class MergeStrategy:
    """Scores candidate grids from competing layers."""

    def __init__(
        self,
        config: Optional[MergeConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config or MergeConfig()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def __repr__(self) -> str:
        return f"MergeStrategy({self.config.method.value})"

    @property
    def method(self) -> ScoringMethod:
        return self.config.method

    def set_method(self, method: ScoringMethod) -> None:
        self.configure(method=ScoringMethod(method))

    def configure(self, **changes) -> None:
        """Replace selected MergeConfig fields."""
        if "method" in changes:
            changes["method"] = ScoringMethod(changes["method"])
        self.config = replace(self.config, **changes)
        logger.info(f"Merge strategy configured: {changes}")

    def now(self) -> datetime:
        return ensure_utc(self._clock())

    # ------------------------------------------------------------------
    # Component scores
    # ------------------------------------------------------------------

    def temporal_factor(self, time_step_minutes: Optional[float]) -> float:
        if time_step_minutes is None:
            return 1.0
        for limit, factor in self.config.temporal_bands:
            if time_step_minutes <= limit:
                return factor
        return self.config.coarse_temporal_factor

    def currency_score(self, grid: Grid, time_step_minutes: Optional[float] = None) -> float:
        age_hours = (self.now() - grid.reference_time).total_seconds() / 3600.0
        age_hours = max(age_hours, 0.0)
        currency = 1.0 - min(1.0, age_hours / self.config.max_age_hours)
        return currency * self.temporal_factor(time_step_minutes)

    def resolution_score(self, grid: Grid) -> float:
        resolution = max(grid.spacing())
        for limit, score in self.config.resolution_bands:
            if resolution <= limit:
                return score
        return self.config.coarse_resolution_score

    def model_quality(self, grid: Grid, target_time: datetime) -> float:
        rules = self.config.model_quality.get(grid.source_model)
        if not rules:
            return self.config.default_quality
        lead_hours = (ensure_utc(target_time) - grid.reference_time).total_seconds() / 3600.0
        run_hour = grid.reference_time.hour
        for rule in rules:
            if rule.matches(lead_hours, run_hour):
                return rule.score
        return self.config.default_quality

    # ------------------------------------------------------------------
    # Filters and ranking
    # ------------------------------------------------------------------

    def passes_filters(
        self,
        candidate: Candidate,
        target_time: datetime,
        lon: Optional[float] = None,
        lat: Optional[float] = None,
    ) -> bool:
        grid = candidate.grid
        if grid is None or grid.is_released:
            return False
        if candidate.time_range is not None:
            start, end = candidate.time_range
            if not (start <= target_time <= end):
                return False
        if lon is not None and lat is not None:
            di, dj = grid.spacing()
            factor = self.config.extrapolation_factor
            if not grid.contains(lon, lat, margin_lon=di * factor, margin_lat=dj * factor):
                return False
        return True

    def score(
        self,
        candidates: Sequence[Candidate],
        target_time: datetime,
        lon: Optional[float] = None,
        lat: Optional[float] = None,
    ) -> List[Optional[float]]:
        """One score per candidate; None for candidates failing a hard filter."""
        target_time = ensure_utc(target_time)
        method = self.config.method
        priority = {
            id(c): rank for rank, c in enumerate(sorted(candidates, key=lambda c: c.order))
        }
        n = len(candidates)

        scores: List[Optional[float]] = []
        for c in candidates:
            if not self.passes_filters(c, target_time, lon, lat):
                scores.append(None)
                continue

            if method == ScoringMethod.USER_PRIORITY:
                scores.append(1.0 - priority[id(c)] / n)
                continue
            if method == ScoringMethod.MODEL_QUALITY:
                scores.append(self.model_quality(c.grid, target_time))
                continue

            currency = self.currency_score(c.grid, c.time_step_minutes)
            resolution = self.resolution_score(c.grid)
            w = self.config.primary_weight
            if method == ScoringMethod.CURRENCY_FIRST:
                scores.append(w * currency + (1.0 - w) * resolution)
            elif method == ScoringMethod.RESOLUTION_FIRST:
                scores.append(w * resolution + (1.0 - w) * currency)
            else:
                quality = self.model_quality(c.grid, target_time)
                scores.append((currency + resolution) / 2.0 * quality)
        return scores

    def rank(
        self,
        candidates: Sequence[Candidate],
        target_time: datetime,
        lon: Optional[float] = None,
        lat: Optional[float] = None,
    ) -> List[int]:
        """Indices of the candidates that passed the filters, best first."""
        scores = self.score(candidates, target_time, lon, lat)
        tol = self.config.score_tolerance
        ranked: List[int] = []
        for i in sorted(
            (i for i, s in enumerate(scores) if s is not None),
            key=lambda i: (candidates[i].order, i),
        ):
            # Insert after every entry that beats or ties it
            pos = len(ranked)
            for j, other in enumerate(ranked):
                if scores[i] > scores[other] + tol:
                    pos = j
                    break
            ranked.insert(pos, i)
        return ranked

    def select(
        self,
        candidates: Sequence[Candidate],
        target_time: datetime,
        lon: Optional[float] = None,
        lat: Optional[float] = None,
    ) -> Optional[int]:
        """Index of the winning candidate, or None when nothing qualifies."""
        ranked = self.rank(candidates, target_time, lon, lat)
        if not ranked:
            return None
        winner = ranked[0]
        logger.debug(
            f"Merge picked layer '{candidates[winner].layer_name}' "
            f"out of {len(candidates)} candidates ({self.config.method.value})"
        )
        return winner
