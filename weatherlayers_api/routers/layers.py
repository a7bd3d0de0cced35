"""
Layer management API router.

Handles loading and removing layers, enable/disable, priority order, merge
strategy settings and the selected forecast time. Engine calls run in a
worker thread so a long load never stalls the event loop.
"""

import asyncio
import logging
from dataclasses import replace

from fastapi import APIRouter, Depends, HTTPException

from weatherlayers.exceptions import LayerLoadError
from weatherlayers.layers.layer import Layer
from weatherlayers.layers.layer_set import LayerSet
from weatherlayers_api.config import settings
from weatherlayers_api.schemas.layers import (
    AddLayerRequest,
    LayerListResponse,
    LayerOrderRequest,
    LayerResponse,
    MergeStrategyModel,
    MergeStrategyUpdate,
    SelectedTimeRequest,
    TimeAxisResponse,
)
from weatherlayers_api.state import get_layer_set

router = APIRouter(tags=["Layers"])

logger = logging.getLogger(__name__)


def _layer_response(layer: Layer) -> LayerResponse:
    return LayerResponse(
        name=layer.name,
        enabled=layer.enabled,
        ok=layer.is_ok(),
        file_names=layer.file_names,
        parameters=sorted(slot.name for slot in layer.available_slots),
        reference_time=layer.reference_time,
        min_time=layer.min_time(),
        max_time=layer.max_time(),
        forecast_times=len(layer.forecast_times()),
        time_step_minutes=layer.time_step_minutes(),
    )


def _list_response(ls: LayerSet) -> LayerListResponse:
    return LayerListResponse(
        layers=[_layer_response(layer) for layer in ls.layers],
        order=ls.layer_order,
        available_parameters=sorted(slot.name for slot in ls.available_slots),
        file_names=ls.file_names,
        message=ls.last_message,
    )


def _require_layer(ls: LayerSet, name: str) -> Layer:
    layer = ls.get_layer(name)
    if layer is None:
        raise HTTPException(status_code=404, detail=f"Layer '{name}' not found")
    return layer


def _merge_model(ls: LayerSet) -> MergeStrategyModel:
    cfg = ls.merge_strategy.config
    return MergeStrategyModel(
        method=cfg.method,
        max_age_hours=cfg.max_age_hours,
        default_quality=cfg.default_quality,
        primary_weight=cfg.primary_weight,
        extrapolation_factor=cfg.extrapolation_factor,
        score_tolerance=cfg.score_tolerance,
    )


# =============================================================================
# Layers
# =============================================================================

@router.get("/api/layers", response_model=LayerListResponse)
async def list_layers(ls: LayerSet = Depends(get_layer_set)):
    """All layers in priority order, highest first."""
    return await asyncio.to_thread(_list_response, ls)


@router.post("/api/layers", response_model=LayerResponse)
async def add_layer(request: AddLayerRequest, ls: LayerSet = Depends(get_layer_set)):
    """
    Load forecast files into a new layer appended at the lowest priority.

    A failed load leaves the layer set unchanged and returns 400 with the
    loader message.
    """
    blocked = [p for p in request.paths if not settings.is_allowed_path(p)]
    if blocked:
        raise HTTPException(status_code=403, detail=f"Paths outside the data directory: {blocked}")

    overrides = {
        key: value
        for key, value in (
            ("copy_first_cumulative", request.copy_first_cumulative),
            ("copy_missing_waves", request.copy_missing_waves),
            ("newest_file", request.newest_file),
        )
        if value is not None
    }
    options = replace(ls.source_options, **overrides)

    def _run():
        layer = ls.add_layer(request.name, request.paths, options=options, enabled=request.enabled)
        return _layer_response(layer)

    try:
        return await asyncio.to_thread(_run)
    except LayerLoadError as e:
        raise HTTPException(status_code=400, detail=e.message)


@router.delete("/api/layers")
async def clear_layers(ls: LayerSet = Depends(get_layer_set)):
    """Remove every layer."""
    await asyncio.to_thread(ls.clear_layers)
    return {"status": "cleared"}


@router.delete("/api/layers/{name}")
async def remove_layer(name: str, ls: LayerSet = Depends(get_layer_set)):
    if not await asyncio.to_thread(ls.remove_layer, name):
        raise HTTPException(status_code=404, detail=f"Layer '{name}' not found")
    return {"status": "removed", "name": name}


def _set_enabled(ls: LayerSet, name: str, enabled: bool) -> LayerResponse:
    layer = _require_layer(ls, name)
    ls.set_layer_enabled(name, enabled)
    return _layer_response(layer)


@router.post("/api/layers/{name}/enable", response_model=LayerResponse)
async def enable_layer(name: str, ls: LayerSet = Depends(get_layer_set)):
    return await asyncio.to_thread(_set_enabled, ls, name, True)


@router.post("/api/layers/{name}/disable", response_model=LayerResponse)
async def disable_layer(name: str, ls: LayerSet = Depends(get_layer_set)):
    return await asyncio.to_thread(_set_enabled, ls, name, False)


def _move(ls: LayerSet, name: str, up: bool) -> LayerListResponse:
    _require_layer(ls, name)
    if up:
        ls.move_layer_up(name)
    else:
        ls.move_layer_down(name)
    return _list_response(ls)


@router.post("/api/layers/{name}/move-up", response_model=LayerListResponse)
async def move_layer_up(name: str, ls: LayerSet = Depends(get_layer_set)):
    """Raise a layer one place; a no-op for the top layer."""
    return await asyncio.to_thread(_move, ls, name, True)


@router.post("/api/layers/{name}/move-down", response_model=LayerListResponse)
async def move_layer_down(name: str, ls: LayerSet = Depends(get_layer_set)):
    return await asyncio.to_thread(_move, ls, name, False)


@router.put("/api/layers/order", response_model=LayerListResponse)
async def set_layer_order(request: LayerOrderRequest, ls: LayerSet = Depends(get_layer_set)):
    """Replace the whole priority order; every layer must be named once."""
    def _run():
        if not ls.set_layer_order(request.names):
            raise HTTPException(status_code=400, detail=ls.last_message)
        return _list_response(ls)

    return await asyncio.to_thread(_run)


# =============================================================================
# Merge strategy
# =============================================================================

@router.get("/api/merge-strategy", response_model=MergeStrategyModel)
async def get_merge_strategy(ls: LayerSet = Depends(get_layer_set)):
    return _merge_model(ls)


@router.put("/api/merge-strategy", response_model=MergeStrategyModel)
async def update_merge_strategy(request: MergeStrategyUpdate, ls: LayerSet = Depends(get_layer_set)):
    """Update the given merge settings; omitted fields keep their value."""
    changes = request.model_dump(exclude_none=True)
    if changes:
        await asyncio.to_thread(ls.configure_merge, **changes)
    return _merge_model(ls)


# =============================================================================
# Time axis
# =============================================================================

def _time_axis(ls: LayerSet) -> TimeAxisResponse:
    return TimeAxisResponse(
        selected_time=ls.selected_time,
        reference_time=ls.ref_datetime(),
        forecast_times=ls.get_forecast_times(),
        span_hours=ls.get_forecast_time_span(),
        smallest_interval_minutes=ls.get_smallest_interval(),
    )


@router.get("/api/time", response_model=TimeAxisResponse)
async def get_time_axis(ls: LayerSet = Depends(get_layer_set)):
    return await asyncio.to_thread(_time_axis, ls)


@router.put("/api/time/selected")
async def set_selected_time(request: SelectedTimeRequest, ls: LayerSet = Depends(get_layer_set)):
    """Set the time used by queries that do not name one."""
    def _run():
        ls.set_selected_time(request.time)
        return ls.selected_time

    return {"selected_time": await asyncio.to_thread(_run)}
