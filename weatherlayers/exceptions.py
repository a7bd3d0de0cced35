"""
Exception hierarchy for the weather layer engine.

Only load-time and programming errors raise. Missing data at query time is
reported as ``None`` and never as an exception.
"""


class WeatherLayersError(Exception):
    """Base class for all engine errors."""


class SourceLoadError(WeatherLayersError):
    """A file group could not be turned into a Source."""


class LayerLoadError(WeatherLayersError):
    """A layer could not be added to a LayerSet."""

    def __init__(self, layer_name: str, message: str):
        super().__init__(message)
        self.layer_name = layer_name
        self.message = message


class GridGeometryError(WeatherLayersError):
    """Grid coordinates and values do not describe a regular lat/lon grid."""


class GridReleasedError(WeatherLayersError):
    """A released grid was accessed or released a second time."""
