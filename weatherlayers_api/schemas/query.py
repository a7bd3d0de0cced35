"""Merged query API schemas."""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class ValueResponse(BaseModel):
    """Merged scalar at a point; value is null where no layer has data."""
    parameter: str
    lat: float
    lon: float
    time: Optional[datetime] = None
    value: Optional[float] = None
    layer: Optional[str] = None


class VectorResponse(BaseModel):
    """Merged vector at a point; bearing is the meteorological "from" direction."""
    parameter_x: str
    parameter_y: str
    lat: float
    lon: float
    time: Optional[datetime] = None
    magnitude: Optional[float] = None
    direction: Optional[float] = None
    layer: Optional[str] = None


class ZoneResponse(BaseModel):
    """Bounding box of all enabled layers."""
    available: bool
    lon_min: Optional[float] = None
    lon_max: Optional[float] = None
    lat_min: Optional[float] = None
    lat_max: Optional[float] = None
    crosses_antimeridian: bool = False
    full_globe: bool = False


class CoverageResponse(BaseModel):
    parameter: str
    time: Optional[datetime] = None
    area: float = Field(..., description="Cosine-weighted square degrees")


class RandomCoordinateResponse(BaseModel):
    parameter: str
    lat: Optional[float] = None
    lon: Optional[float] = None


class MeteogramPointModel(BaseModel):
    """Merged values at one forecast time (native units)."""
    time: datetime
    temperature: Optional[float] = None
    pressure: Optional[float] = None
    precipitation: Optional[float] = None
    humidity: Optional[float] = None
    cloud_cover: Optional[float] = None
    wind_speed: Optional[float] = None
    wind_direction: Optional[float] = None
    wind_gust: Optional[float] = None
    wave_height: Optional[float] = None
    wave_period: Optional[float] = None
    wave_direction: Optional[float] = None


class MeteogramResponse(BaseModel):
    name: str
    is_route: bool
    points: List[MeteogramPointModel]
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    temperature_range: List[float]
    pressure_range: List[float]
    wind_speed_range: List[float]


class WeatherProvenanceModel(BaseModel):
    """Weather data source provenance metadata."""
    source_type: str = Field(..., max_length=50)
    model_name: str = Field(..., max_length=100)
    layer_name: str
    forecast_lead_hours: float
    confidence: Literal["high", "medium", "low"]


class PointWeatherResponse(BaseModel):
    lat: float
    lon: float
    time: datetime
    wind_speed_ms: Optional[float] = None
    wind_dir_deg: Optional[float] = None
    wind_gust_ms: Optional[float] = None
    sig_wave_height_m: Optional[float] = None
    wave_period_s: Optional[float] = None
    wave_dir_deg: Optional[float] = None
    current_speed_ms: Optional[float] = None
    current_dir_deg: Optional[float] = None
    pressure: Optional[float] = None
    air_temp: Optional[float] = None
    sea_temp: Optional[float] = None
    provenance: WeatherProvenanceModel
