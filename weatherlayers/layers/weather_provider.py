"""
Point weather provider over a LayerSet.

Exposes the merged query surface as a ``(lat, lon, time) -> PointWeather``
callable, the shape route evaluators expect. Every value comes from the
merge winner at that point and time; the wind winner also supplies the
provenance (model, lead time, confidence).
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from weatherlayers.data.grid import ensure_utc
from weatherlayers.data.parameters import ParameterSlot
from weatherlayers.layers.layer_set import LayerSet

logger = logging.getLogger(__name__)


@dataclass
class WeatherProvenance:
    """Metadata about the source and confidence of weather data."""
    source_type: str  # "forecast" or "none"
    model_name: str  # producing model of the winning layer
    layer_name: str
    forecast_lead_hours: float  # hours ahead of model run time
    confidence: str  # "high" (<72h), "medium" (72-120h), "low" (>120h)

    @staticmethod
    def from_lead_hours(
        lead_hours: float, model_name: str = "multi", layer_name: str = "",
    ) -> "WeatherProvenance":
        if lead_hours < 72:
            confidence = "high"
        elif lead_hours < 120:
            confidence = "medium"
        else:
            confidence = "low"
        return WeatherProvenance(
            source_type="forecast",
            model_name=model_name,
            layer_name=layer_name,
            forecast_lead_hours=lead_hours,
            confidence=confidence,
        )

    @staticmethod
    def unavailable() -> "WeatherProvenance":
        return WeatherProvenance(
            source_type="none",
            model_name="",
            layer_name="",
            forecast_lead_hours=0.0,
            confidence="low",
        )


@dataclass
class PointWeather:
    """Merged conditions at one point; None where no layer has data."""
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
    provenance: WeatherProvenance = field(default_factory=WeatherProvenance.unavailable)

    @property
    def has_data(self) -> bool:
        return any(
            v is not None
            for v in (
                self.wind_speed_ms, self.sig_wave_height_m,
                self.current_speed_ms, self.pressure, self.air_temp,
            )
        )


class LayerSetWeatherProvider:
    """Callable weather source backed by the merged layers."""

    def __init__(self, layer_set: LayerSet, bilinear: bool = True):
        self.layer_set = layer_set
        self.bilinear = bilinear

    def __call__(self, lat: float, lon: float, time: datetime) -> PointWeather:
        return self.get_weather(lat, lon, time)

    def get_weather(self, lat: float, lon: float, time: datetime) -> PointWeather:
        time = ensure_utc(time)
        ls = self.layer_set

        def value(slot: ParameterSlot) -> Optional[float]:
            return ls.get_interpolated_value(slot, lon, lat, time, self.bilinear)

        weather = PointWeather(
            wind_gust_ms=value(ParameterSlot.WIND_GUST),
            sig_wave_height_m=value(ParameterSlot.HTSIGW),
            wave_period_s=value(ParameterSlot.WVPER),
            wave_dir_deg=value(ParameterSlot.WVDIR),
            pressure=value(ParameterSlot.PRESSURE),
            air_temp=value(ParameterSlot.AIR_TEMP),
            sea_temp=value(ParameterSlot.SEA_TEMP),
        )

        wind = ls.get_interpolated_vector(
            ParameterSlot.WIND_VX, ParameterSlot.WIND_VY, lon, lat, time, self.bilinear,
        )
        if wind is not None:
            weather.wind_speed_ms, weather.wind_dir_deg = wind

        current = ls.get_interpolated_vector(
            ParameterSlot.SEACURRENT_VX, ParameterSlot.SEACURRENT_VY, lon, lat, time, self.bilinear,
        )
        if current is not None:
            weather.current_speed_ms, weather.current_dir_deg = current

        weather.provenance = self.get_provenance(lat, lon, time)
        return weather

    def get_provenance(self, lat: float, lon: float, time: datetime) -> WeatherProvenance:
        """Provenance of the layer answering wind (or, failing that, waves) here."""
        time = ensure_utc(time)
        for slot in (ParameterSlot.WIND_VX, ParameterSlot.HTSIGW, ParameterSlot.SEACURRENT_VX):
            candidate = self.layer_set.best_candidate(slot, lon, lat, time)
            if candidate is None:
                continue
            grid = candidate.grid
            lead_hours = (time - grid.reference_time).total_seconds() / 3600.0
            return WeatherProvenance.from_lead_hours(
                lead_hours, model_name=grid.source_model.value, layer_name=candidate.layer_name,
            )
        return WeatherProvenance.unavailable()
