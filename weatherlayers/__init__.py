"""Multi-source forecast layer merge and interpolation engine."""

__version__ = "1.0.0"
