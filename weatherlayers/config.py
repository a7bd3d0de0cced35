"""
Engine configuration.

Settings come from environment variables, with a .env file at the project
root loaded first for local development.

Usage:
    from weatherlayers.config import settings

    settings.configure_logging()
    strategy = MergeStrategy(settings.merge_config())
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from weatherlayers.layers.merge_strategy import MergeConfig, ScoringMethod
from weatherlayers.layers.source import SourceOptions

env_path = Path(__file__).parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)


def get_bool(key: str, default: bool = False) -> bool:
    """Get boolean from environment variable."""
    value = os.getenv(key, str(default)).lower()
    return value in ("true", "1", "yes", "on")


def get_float(key: str, default: float) -> float:
    """Get float from environment variable."""
    try:
        return float(os.getenv(key, str(default)))
    except (ValueError, TypeError):
        return default


def get_int(key: str, default: int) -> int:
    """Get int from environment variable."""
    try:
        return int(os.getenv(key, str(default)))
    except (ValueError, TypeError):
        return default


@dataclass
class Settings:
    """Engine settings loaded from environment."""

    # Merge strategy
    merge_scoring_method: str = field(
        default_factory=lambda: os.getenv("MERGE_SCORING_METHOD", ScoringMethod.COMBINED.value)
    )
    merge_max_age_hours: float = field(default_factory=lambda: get_float("MERGE_MAX_AGE_HOURS", 72.0))
    merge_default_quality: float = field(default_factory=lambda: get_float("MERGE_DEFAULT_QUALITY", 0.7))
    merge_extrapolation_factor: float = field(
        default_factory=lambda: get_float("MERGE_EXTRAPOLATION_FACTOR", 0.0)
    )
    merge_score_tolerance: float = field(default_factory=lambda: get_float("MERGE_SCORE_TOLERANCE", 1e-9))

    # Layer loading defaults
    copy_first_cumulative: bool = field(default_factory=lambda: get_bool("LAYER_COPY_FIRST_CUMULATIVE", False))
    copy_missing_waves: bool = field(default_factory=lambda: get_bool("LAYER_COPY_MISSING_WAVES", False))
    newest_file: bool = field(default_factory=lambda: get_bool("LAYER_NEWEST_FILE", False))

    # Queries
    random_sample_attempts: int = field(default_factory=lambda: get_int("RANDOM_SAMPLE_ATTEMPTS", 20))
    meteogram_route_samples: int = field(default_factory=lambda: get_int("METEOGRAM_ROUTE_SAMPLES", 10))

    # Logging
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    log_format: str = field(
        default_factory=lambda: os.getenv(
            "LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
    )

    def __post_init__(self):
        """Validate settings after initialization."""
        valid_methods = {m.value for m in ScoringMethod}
        if self.merge_scoring_method not in valid_methods:
            logging.warning(
                f"Unknown merge scoring method {self.merge_scoring_method!r}, "
                f"using {ScoringMethod.COMBINED.value}"
            )
            self.merge_scoring_method = ScoringMethod.COMBINED.value

        if self.merge_max_age_hours <= 0:
            logging.warning(f"MERGE_MAX_AGE_HOURS {self.merge_max_age_hours} must be positive, using 72")
            self.merge_max_age_hours = 72.0

        if self.random_sample_attempts < 1:
            self.random_sample_attempts = 1
        if self.meteogram_route_samples < 1:
            self.meteogram_route_samples = 1

    def merge_config(self) -> MergeConfig:
        """MergeConfig seeded from these settings."""
        return MergeConfig(
            method=ScoringMethod(self.merge_scoring_method),
            max_age_hours=self.merge_max_age_hours,
            default_quality=self.merge_default_quality,
            extrapolation_factor=self.merge_extrapolation_factor,
            score_tolerance=self.merge_score_tolerance,
        )

    def source_options(self) -> SourceOptions:
        return SourceOptions(
            copy_first_cumulative=self.copy_first_cumulative,
            copy_missing_waves=self.copy_missing_waves,
            newest_file=self.newest_file,
        )

    def configure_logging(self):
        """Configure logging based on settings."""
        level = getattr(logging, self.log_level.upper(), logging.INFO)
        logging.basicConfig(level=level, format=self.log_format)


# Singleton instance
settings = Settings()


def get_settings() -> Settings:
    """Get the settings instance (useful for dependency injection)."""
    return settings
