from __future__ import annotations

import logging
from pathlib import Path
from typing import Literal, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from workpulse import ARGS_DIR

logger = logging.getLogger(__name__)


# =============================================================================
# Pipeline stages
# =============================================================================

class NormalizerConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    excluded_apps: list[str] = Field(default_factory=list)
    excluded_window_patterns: list[str] = Field(default_factory=list)
    min_idle_seconds: float = Field(default=60.0, ge=0)
    drop_rate_alert_threshold: float = Field(default=0.10, ge=0.0, le=1.0)


class SessionizerConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    idle_threshold_seconds: float = Field(default=300.0, ge=0)
    noise_threshold_seconds: float = Field(default=10.0, ge=0)
    merge_threshold_seconds: float = Field(default=30.0, ge=0)
    fallback_bucket_minutes: int = Field(default=60, ge=1, le=1440)


class FocusConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    min_focus_seconds: float = Field(default=1500.0, ge=0)
    lookback_seconds: float = Field(default=300.0, ge=0)
    interruption_max_seconds: float = Field(default=120.0, ge=0)
    max_internal_switches: int = Field(default=2, ge=1)
    fragmentation_constant_seconds: float = Field(default=300.0, gt=0)


class MetricsConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    bucket_minutes: int = Field(default=60, ge=1, le=1440)
    timezone: str = Field(default="UTC")
    top_apps_limit: int = Field(default=5, ge=1)
    low_confidence_active_seconds: float = Field(default=3600.0, ge=0)

    @field_validator("bucket_minutes")
    @classmethod
    def _bucket_divides_day(cls, value: int) -> int:
        if 1440 % value:
            raise ValueError(f"bucket_minutes must divide 1440, got {value}")
        return value

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {value}") from e
        return value


class RecommendationsConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    max_recommendations: int = Field(default=3, ge=1)
    switches_per_hour_high: float = Field(default=20.0, ge=0)
    focus_percentage_low: float = Field(default=30.0, ge=0, le=100)
    fragmentation_high: float = Field(default=70.0, ge=0, le=100)
    focus_percentage_good: float = Field(default=50.0, ge=0, le=100)


class NarrativeConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    provider: Literal["template", "anthropic"] = Field(default="template")
    model: str = Field(default="claude-haiku-4-5-20251001")
    api_key_env: str = Field(default="ANTHROPIC_API_KEY")
    max_tokens: int = Field(default=600, ge=1)
    timeout_seconds: float = Field(default=15.0, gt=0)
    max_retries: int = Field(default=3, ge=1)
    backoff_base_seconds: float = Field(default=1.0, ge=0)
    max_chars: int = Field(default=2000, ge=1)
    circuit_failure_threshold: int = Field(default=5, ge=1)
    circuit_recovery_seconds: float = Field(default=120.0, ge=0)


class StorageConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    db_path: Optional[str] = None
    retention_days: int = Field(default=90, ge=1)
    page_size: int = Field(default=500, ge=1)


# =============================================================================
# AnalyticsConfig (args/analytics.yaml)
# =============================================================================

class AnalyticsConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    normalizer: NormalizerConfig = Field(default_factory=NormalizerConfig)
    sessionizer: SessionizerConfig = Field(default_factory=SessionizerConfig)
    focus: FocusConfig = Field(default_factory=FocusConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    recommendations: RecommendationsConfig = Field(default_factory=RecommendationsConfig)
    narrative: NarrativeConfig = Field(default_factory=NarrativeConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    categories: dict[str, list[str]] = Field(default_factory=dict)


# =============================================================================
# load_and_validate
# =============================================================================

_CONFIG_MAP: dict[str, type[BaseModel]] = {
    "analytics": AnalyticsConfig,
}


def load_and_validate(
    config_name: str = "analytics",
    model_class: type[BaseModel] | None = None,
    path: Path | None = None,
) -> BaseModel:
    if model_class is None:
        model_class = _CONFIG_MAP.get(config_name)
        if model_class is None:
            raise ValueError(f"Unknown config: {config_name}. Available: {list(_CONFIG_MAP.keys())}")

    yaml_path = path or ARGS_DIR / f"{config_name}.yaml"

    try:
        if yaml_path.exists():
            with open(yaml_path) as f:
                raw = yaml.safe_load(f) or {}
        else:
            raw = {}

        return model_class.model_validate(raw)
    except Exception as e:
        logger.warning(f"Config validation failed for {config_name}: {e}, using defaults")
        return model_class()


def load_analytics_config(path: Path | None = None) -> AnalyticsConfig:
    """Load the pipeline configuration, falling back to defaults."""
    return load_and_validate("analytics", AnalyticsConfig, path)  # type: ignore[return-value]
