"""
Merged query API router.

Point values and vectors, zone limits, coverage, random sampling,
meteograms and route-evaluation weather. Missing data is answered with
200 and null values; an unknown parameter is a 422. Engine calls run in a
worker thread.
"""

import asyncio
import logging
from datetime import datetime
from typing import List, Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException, Query

from weatherlayers.config import settings as engine_settings
from weatherlayers.data.parameters import VECTOR_PAIRS, ParameterSlot, paired_slot
from weatherlayers.layers.layer_set import LayerSet
from weatherlayers.layers.meteogram import Meteogram, MeteogramLocation
from weatherlayers.layers.weather_provider import LayerSetWeatherProvider
from weatherlayers_api.schemas.query import (
    CoverageResponse,
    MeteogramPointModel,
    MeteogramResponse,
    PointWeatherResponse,
    RandomCoordinateResponse,
    ValueResponse,
    VectorResponse,
    WeatherProvenanceModel,
    ZoneResponse,
)
from weatherlayers_api.state import get_layer_set

router = APIRouter(prefix="/api/query", tags=["Query"])

logger = logging.getLogger(__name__)


def _slot(value: str) -> ParameterSlot:
    slot = ParameterSlot.coerce(value)
    if slot is None:
        raise HTTPException(status_code=422, detail=f"Unknown parameter '{value}'")
    return slot


def _parse_route(route: str) -> List[Tuple[float, float]]:
    """Parse "lat,lon;lat,lon;..." into waypoints."""
    points = []
    for chunk in route.split(";"):
        chunk = chunk.strip()
        if not chunk:
            continue
        try:
            lat_s, lon_s = chunk.split(",")
            lat, lon = float(lat_s), float(lon_s)
        except ValueError:
            raise HTTPException(status_code=422, detail=f"Invalid route point '{chunk}'")
        if not -90.0 <= lat <= 90.0:
            raise HTTPException(status_code=422, detail=f"Latitude out of range in '{chunk}'")
        points.append((lat, lon))
    if not points:
        raise HTTPException(status_code=422, detail="Route has no points")
    return points


@router.get("/value", response_model=ValueResponse)
async def query_value(
    parameter: str,
    lat: float = Query(..., ge=-90, le=90),
    lon: float = Query(..., ge=-360, le=360),
    time: Optional[datetime] = None,
    bilinear: bool = True,
    ls: LayerSet = Depends(get_layer_set),
):
    """Merged value of one parameter at a point."""
    slot = _slot(parameter)

    def _run():
        winner = ls.best_candidate(slot, lon, lat, time)
        return ValueResponse(
            parameter=slot.name,
            lat=lat,
            lon=lon,
            time=time or ls.selected_time,
            value=ls.get_interpolated_value(slot, lon, lat, time, bilinear),
            layer=winner.layer_name if winner is not None else None,
        )

    return await asyncio.to_thread(_run)


@router.get("/vector", response_model=VectorResponse)
async def query_vector(
    parameter_x: str = "WIND_VX",
    parameter_y: Optional[str] = None,
    lat: float = Query(..., ge=-90, le=90),
    lon: float = Query(..., ge=-360, le=360),
    time: Optional[datetime] = None,
    bilinear: bool = True,
    ls: LayerSet = Depends(get_layer_set),
):
    """Merged magnitude and bearing of a vector pair (Y defaults to X's partner)."""
    x_slot = _slot(parameter_x)
    y_slot = _slot(parameter_y) if parameter_y is not None else paired_slot(x_slot)
    if y_slot is None or VECTOR_PAIRS.get(x_slot) != y_slot:
        raise HTTPException(status_code=422, detail=f"{parameter_x} has no vector partner {parameter_y}")

    def _run():
        result = ls.get_interpolated_vector(x_slot, y_slot, lon, lat, time, bilinear)
        winner = ls.best_candidate(x_slot, lon, lat, time) if result is not None else None
        return VectorResponse(
            parameter_x=x_slot.name,
            parameter_y=y_slot.name,
            lat=lat,
            lon=lon,
            time=time or ls.selected_time,
            magnitude=result[0] if result is not None else None,
            direction=result[1] if result is not None else None,
            layer=winner.layer_name if winner is not None else None,
        )

    return await asyncio.to_thread(_run)


@router.get("/zone", response_model=ZoneResponse)
async def query_zone(ls: LayerSet = Depends(get_layer_set)):
    """Bounding box of every grid in the enabled layers."""
    limits = await asyncio.to_thread(ls.get_zone_limits)
    if limits is None:
        return ZoneResponse(available=False)
    return ZoneResponse(
        available=True,
        lon_min=limits.lon_min,
        lon_max=limits.lon_max,
        lat_min=limits.lat_min,
        lat_max=limits.lat_max,
        crosses_antimeridian=limits.crosses_antimeridian,
        full_globe=limits.full_globe,
    )


@router.get("/coverage", response_model=CoverageResponse)
async def query_coverage(
    parameter: str,
    time: Optional[datetime] = None,
    ls: LayerSet = Depends(get_layer_set),
):
    slot = _slot(parameter)

    def _run():
        return CoverageResponse(
            parameter=slot.name,
            time=time or ls.selected_time,
            area=ls.get_coverage_area(slot, time),
        )

    return await asyncio.to_thread(_run)


@router.get("/random", response_model=RandomCoordinateResponse)
async def query_random(
    parameter: str,
    paired: Optional[str] = None,
    time: Optional[datetime] = None,
    ls: LayerSet = Depends(get_layer_set),
):
    """Random coordinate with data, e.g. for particle seeding."""
    slot = _slot(parameter)
    pair = _slot(paired) if paired is not None else None
    if pair is not None and VECTOR_PAIRS.get(slot) != pair and VECTOR_PAIRS.get(pair) != slot:
        raise HTTPException(status_code=422, detail=f"{parameter} and {paired} are not a vector pair")

    coord = await asyncio.to_thread(ls.get_random_valid_coordinate, slot, pair, time=time)
    if coord is None:
        return RandomCoordinateResponse(parameter=slot.name)
    return RandomCoordinateResponse(parameter=slot.name, lon=coord[0], lat=coord[1])


@router.get("/meteogram", response_model=MeteogramResponse)
async def query_meteogram(
    lat: Optional[float] = Query(None, ge=-90, le=90),
    lon: Optional[float] = Query(None, ge=-360, le=360),
    route: Optional[str] = Query(None, description="Waypoints as 'lat,lon;lat,lon;...'"),
    name: str = "",
    ls: LayerSet = Depends(get_layer_set),
):
    """Merged time series at a point or averaged along a route."""
    if route is not None:
        location = MeteogramLocation.along(_parse_route(route), name)
    elif lat is not None and lon is not None:
        location = MeteogramLocation.point(lat, lon, name)
    else:
        raise HTTPException(status_code=422, detail="Give either lat and lon, or route")

    meteogram = await asyncio.to_thread(
        Meteogram.build, ls, location, max_route_samples=engine_settings.meteogram_route_samples,
    )
    return MeteogramResponse(
        name=location.name,
        is_route=location.is_route,
        points=[MeteogramPointModel(**p.to_dict()) for p in meteogram.points],
        start_time=meteogram.start_time,
        end_time=meteogram.end_time,
        temperature_range=list(meteogram.temperature_range()),
        pressure_range=list(meteogram.pressure_range()),
        wind_speed_range=list(meteogram.wind_speed_range()),
    )


@router.get("/weather", response_model=PointWeatherResponse)
async def query_weather(
    lat: float = Query(..., ge=-90, le=90),
    lon: float = Query(..., ge=-360, le=360),
    time: Optional[datetime] = None,
    ls: LayerSet = Depends(get_layer_set),
):
    """Route-evaluation weather with provenance of the answering layer."""
    def _run():
        when = time or ls.selected_time
        if when is None:
            raise HTTPException(status_code=404, detail="No forecast time available")
        return when, LayerSetWeatherProvider(ls).get_weather(lat, lon, when)

    when, weather = await asyncio.to_thread(_run)
    p = weather.provenance
    return PointWeatherResponse(
        lat=lat,
        lon=lon,
        time=when,
        wind_speed_ms=weather.wind_speed_ms,
        wind_dir_deg=weather.wind_dir_deg,
        wind_gust_ms=weather.wind_gust_ms,
        sig_wave_height_m=weather.sig_wave_height_m,
        wave_period_s=weather.wave_period_s,
        wave_dir_deg=weather.wave_dir_deg,
        current_speed_ms=weather.current_speed_ms,
        current_dir_deg=weather.current_dir_deg,
        pressure=weather.pressure,
        air_temp=weather.air_temp,
        sea_temp=weather.sea_temp,
        provenance=WeatherProvenanceModel(
            source_type=p.source_type,
            model_name=p.model_name,
            layer_name=p.layer_name,
            forecast_lead_hours=p.forecast_lead_hours,
            confidence=p.confidence,
        ),
    )
