"""
Thread-safe state management for the weather layers API.

One LayerSet is shared by every request. It is created lazily from the
engine settings and carries its own lock; this module only guards the
creation and replacement of the set itself.
"""
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from weatherlayers.config import settings as engine_settings
from weatherlayers.data.reader import PygribReader
from weatherlayers.layers.layer_set import LayerSet
from weatherlayers.layers.merge_strategy import MergeStrategy

logger = logging.getLogger(__name__)


def build_layer_set() -> LayerSet:
    """LayerSet configured from the engine settings."""
    return LayerSet(
        merge_strategy=MergeStrategy(engine_settings.merge_config()),
        reader=PygribReader(),
        source_options=engine_settings.source_options(),
        random_attempts=engine_settings.random_sample_attempts,
    )


class ApplicationState:
    """
    Singleton application state manager.

    Use get_app_state() to access the singleton instance.
    """

    _instance: Optional['ApplicationState'] = None
    _lock: threading.Lock = threading.Lock()

    def __new__(cls):
        """Ensure singleton pattern."""
        if cls._instance is None:
            with cls._lock:
                # Double-check locking
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        """Initialize application state (only once)."""
        if self._initialized:
            return

        self._initialized = True
        self._state_lock = threading.RLock()
        self._layer_set: Optional[LayerSet] = None
        self._startup_time = datetime.now(timezone.utc)

        logger.info("Application state initialized")

    @property
    def layer_set(self) -> LayerSet:
        """Shared LayerSet (lazy initialization)."""
        with self._state_lock:
            if self._layer_set is None:
                self._layer_set = build_layer_set()
                logger.info("Layer set initialized")
            return self._layer_set

    def replace_layer_set(self, layer_set: LayerSet) -> None:
        with self._state_lock:
            if self._layer_set is not None:
                self._layer_set.clear_layers()
            self._layer_set = layer_set

    @property
    def uptime_seconds(self) -> float:
        """Get application uptime in seconds."""
        return (datetime.now(timezone.utc) - self._startup_time).total_seconds()

    def health_check(self) -> Dict[str, Any]:
        """Health status of the shared layer set."""
        ls = self.layer_set
        return {
            'layer_set': 'healthy' if ls.is_ok() else 'no_data',
            'layers_total': len(ls),
            'layers_enabled': len(ls.enabled_layers()),
            'uptime_seconds': self.uptime_seconds,
        }


def get_app_state() -> ApplicationState:
    """
    Get the application state singleton.

    Returns:
        ApplicationState: The singleton application state instance
    """
    return ApplicationState()


def get_layer_set() -> LayerSet:
    """FastAPI dependency returning the shared LayerSet."""
    return get_app_state().layer_set


def reset_app_state() -> None:
    """Drop the singleton so the next access starts fresh (tests)."""
    with ApplicationState._lock:
        ApplicationState._instance = None
