"""
Weather layers API Pydantic schemas.

Re-exports all schema classes:
    from weatherlayers_api.schemas import AddLayerRequest, ValueResponse, ...
"""

# Layers
from .layers import (  # noqa: F401
    AddLayerRequest,
    LayerResponse,
    LayerListResponse,
    LayerOrderRequest,
    MergeStrategyModel,
    MergeStrategyUpdate,
    TimeAxisResponse,
    SelectedTimeRequest,
)

# Queries
from .query import (  # noqa: F401
    ValueResponse,
    VectorResponse,
    ZoneResponse,
    CoverageResponse,
    RandomCoordinateResponse,
    MeteogramPointModel,
    MeteogramResponse,
    WeatherProvenanceModel,
    PointWeatherResponse,
)
