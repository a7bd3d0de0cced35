"""Snapshots, sources, layers and the merged LayerSet query surface."""

from .snapshot import Snapshot, TimelineSnapshot
from .source import Source, SourceOptions
from .layer import Layer
from .merge_strategy import (
    Candidate,
    MergeConfig,
    MergeStrategy,
    ModelQualityRule,
    ScoringMethod,
)
from .layer_set import LayerSet, ZoneLimits
from .meteogram import Meteogram, MeteogramLocation, MeteogramPoint
from .weather_provider import LayerSetWeatherProvider, PointWeather, WeatherProvenance

__all__ = [
    'Snapshot',
    'TimelineSnapshot',
    'Source',
    'SourceOptions',
    'Layer',
    'Candidate',
    'MergeConfig',
    'MergeStrategy',
    'ModelQualityRule',
    'ScoringMethod',
    'LayerSet',
    'ZoneLimits',
    'Meteogram',
    'MeteogramLocation',
    'MeteogramPoint',
    'LayerSetWeatherProvider',
    'PointWeather',
    'WeatherProvenance',
]
