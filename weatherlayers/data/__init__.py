"""Grid model, parameter catalogue and file readers."""

from .parameters import (
    ParameterSlot,
    DataType,
    LevelType,
    SourceModel,
    VECTOR_PAIRS,
    is_vector,
    is_vector_x,
    is_vector_y,
    is_circular,
    paired_slot,
    slot_for,
)
from .grid import Grid, GeoBox, ensure_utc, bearing_from_uv, circular_mean
from .reader import GribReader, InMemoryReader, PygribReader

__all__ = [
    'ParameterSlot',
    'DataType',
    'LevelType',
    'SourceModel',
    'VECTOR_PAIRS',
    'is_vector',
    'is_vector_x',
    'is_vector_y',
    'is_circular',
    'paired_slot',
    'slot_for',
    'Grid',
    'GeoBox',
    'ensure_utc',
    'bearing_from_uv',
    'circular_mean',
    'GribReader',
    'InMemoryReader',
    'PygribReader',
]
