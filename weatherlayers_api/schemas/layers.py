"""Layer management API schemas."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from weatherlayers.layers.merge_strategy import ScoringMethod


class AddLayerRequest(BaseModel):
    """Request to load forecast files into a new layer."""
    name: str = Field(..., min_length=1, max_length=100)
    paths: List[str] = Field(..., min_length=1)
    enabled: bool = True
    # Loader options; None uses the configured defaults
    copy_first_cumulative: Optional[bool] = None
    copy_missing_waves: Optional[bool] = None
    newest_file: Optional[bool] = None


class LayerResponse(BaseModel):
    """Layer summary."""
    name: str
    enabled: bool
    ok: bool
    file_names: List[str]
    parameters: List[str]
    reference_time: Optional[datetime] = None
    min_time: Optional[datetime] = None
    max_time: Optional[datetime] = None
    forecast_times: int = 0
    time_step_minutes: Optional[float] = None


class LayerListResponse(BaseModel):
    layers: List[LayerResponse]
    order: List[str]
    available_parameters: List[str]
    file_names: List[str]
    message: str = ""


class LayerOrderRequest(BaseModel):
    """Full priority order, highest first."""
    names: List[str]


class MergeStrategyModel(BaseModel):
    """Current merge settings."""
    method: ScoringMethod
    max_age_hours: float
    default_quality: float
    primary_weight: float
    extrapolation_factor: float
    score_tolerance: float


class MergeStrategyUpdate(BaseModel):
    """Partial merge settings update."""
    method: Optional[ScoringMethod] = None
    max_age_hours: Optional[float] = Field(None, gt=0)
    default_quality: Optional[float] = Field(None, ge=0, le=1)
    primary_weight: Optional[float] = Field(None, ge=0, le=1)
    extrapolation_factor: Optional[float] = Field(None, ge=0)
    score_tolerance: Optional[float] = Field(None, ge=0)


class TimeAxisResponse(BaseModel):
    """Forecast time axis across the enabled layers."""
    selected_time: Optional[datetime] = None
    reference_time: Optional[datetime] = None
    forecast_times: List[datetime]
    span_hours: float
    smallest_interval_minutes: Optional[float] = None


class SelectedTimeRequest(BaseModel):
    time: datetime
