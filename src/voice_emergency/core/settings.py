"""
Settings management for the voice emergency pipeline.

Session-level options are validated when a session is created; service-wide
settings come from a YAML file with environment variable overrides.
"""

import logging
import math
import os
from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import field_validator
from pydantic import model_validator

from voice_emergency.services.constants import DEFAULTS
from voice_emergency.services.constants import SUPPORTED_LANGUAGES

logger = logging.getLogger(__name__)

ENV_PREFIX = "VEP_"

AudioQuality = Literal["low", "medium", "high"]

ANALYSIS_WINDOW_MS = {
    "low": DEFAULTS["window_low_ms"],
    "medium": DEFAULTS["window_medium_ms"],
    "high": DEFAULTS["window_high_ms"],
}


class FusionWeights(BaseModel):
    """Contribution of each modality to the fused confidence."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    text: float = Field(default=0.7, ge=0.0, le=1.0, description="Text signal weight")
    audio: float = Field(default=0.3, ge=0.0, le=1.0, description="Audio stress weight")

    @model_validator(mode="after")
    def weights_are_convex(self) -> "FusionWeights":
        if not math.isclose(self.text + self.audio, 1.0, abs_tol=1e-6):
            raise ValueError(
                f"Fusion weights must sum to 1.0, got text={self.text} audio={self.audio}"
            )
        return self


class UrgencyThresholds(BaseModel):
    """Fused-confidence cut points for each urgency level (strictly greater than)."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    medium: float = Field(default=0.4, ge=0.0, le=1.0)
    high: float = Field(default=0.6, ge=0.0, le=1.0)
    critical: float = Field(default=0.8, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def thresholds_increase(self) -> "UrgencyThresholds":
        if not (self.medium < self.high < self.critical):
            raise ValueError("Urgency thresholds must satisfy medium < high < critical")
        return self


class DetectionSettings(BaseModel):
    """Tunable detection parameters, loaded once and shared read-only."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    fusion_weights: FusionWeights = Field(default_factory=FusionWeights)
    urgency: UrgencyThresholds = Field(default_factory=UrgencyThresholds)
    emergency_threshold: float = Field(
        default=0.4, ge=0.0, le=1.0, description="Fused confidence above which input is an emergency"
    )
    text_threshold: float = Field(
        default=0.3, ge=0.0, le=1.0, description="Lexical confidence above which text is an emergency"
    )


class SessionConfig(BaseModel):
    """Per-session options, rejected at session creation when invalid."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    language: str = Field(default="english", description="Conversation language")
    enable_emergency_detection: bool = Field(default=True)
    audio_quality: AudioQuality = Field(default="medium")
    real_time_transcription: bool = Field(default=True)
    auto_save: bool = Field(default=True, description="Persist transcripts and audio as they arrive")
    retention_days: int = Field(
        default=DEFAULTS["transcript_retention_days"], ge=1, description="Transcript retention"
    )
    audio_retention_days: int = Field(
        default=DEFAULTS["audio_retention_days"], ge=1, description="Raw audio retention"
    )
    max_session_duration_ms: int = Field(default=DEFAULTS["max_session_duration_ms"], gt=0)
    fusion_weights: FusionWeights = Field(default_factory=FusionWeights)
    alert_threshold: float = Field(default=0.7, gt=0.0, le=1.0)

    @field_validator("language", mode="before")
    @classmethod
    def known_language(cls, v):
        language = str(v).strip().lower()
        if language not in SUPPORTED_LANGUAGES:
            raise ValueError(f"Unsupported language '{v}'. Must be one of: {list(SUPPORTED_LANGUAGES)}")
        return language

    @property
    def analysis_window_ms(self) -> int:
        """Trailing audio window analysed on every evaluation."""
        return ANALYSIS_WINDOW_MS[self.audio_quality]


class LoggingSettings(BaseModel):
    """Log handler settings."""

    level: str = Field(default="INFO")
    directory: Path = Field(default=Path("logs"))
    rotation: str = Field(default=DEFAULTS["log_rotation"])
    backup_count: int = Field(default=DEFAULTS["log_backup_count"], ge=0)


class Settings(BaseModel):
    """Service-wide settings with environment variable support."""

    model_config = ConfigDict(extra="ignore")

    detection: DetectionSettings = Field(default_factory=DetectionSettings)
    session_defaults: SessionConfig = Field(default_factory=SessionConfig)

    # Streaming
    queue_size: int = Field(default=DEFAULTS["queue_size"], gt=0, description="Per-session queue bound")
    transcription_timeout_s: float = Field(default=DEFAULTS["transcription_timeout"], gt=0)
    transcribe_every_ms: int = Field(default=DEFAULTS["transcribe_every_ms"], gt=0)
    chunk_interval_ms: int = Field(default=DEFAULTS["chunk_interval_ms"], gt=0)

    # Persistence retries
    end_session_max_retries: int = Field(default=DEFAULTS["max_retries"], ge=0)
    retry_delay_s: float = Field(default=DEFAULTS["retry_delay"], ge=0)
    retry_max_delay_s: float = Field(default=DEFAULTS["retry_max_delay"], ge=0)

    # Retention
    sweep_interval_s: float = Field(default=DEFAULTS["cleanup_interval"], gt=0)

    # Notifications
    notification_rate_limit: int = Field(default=DEFAULTS["notification_rate_limit"], gt=0)
    notification_period_s: float = Field(default=DEFAULTS["notification_period"], gt=0)
    notification_timeout_s: float = Field(default=DEFAULTS["notification_timeout"], gt=0)

    # Storage and logging
    event_log_path: Optional[Path] = Field(default=None, description="JSON-lines audit log file")
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def from_env(
        cls, env_key: str = "VEP_CONFIG", default_path: str = "configs/base.yaml"
    ) -> "Settings":
        """Load settings from .env, the YAML config file and VEP_* variables."""
        load_dotenv()
        config_path = Path(os.getenv(env_key, default_path))

        data: dict[str, Any] = {}

        if config_path.exists():
            try:
                with open(config_path, encoding="utf-8") as f:
                    file_data = yaml.safe_load(f) or {}
                data.update(file_data)
                logger.info(f"Loaded config from {config_path}")
            except (OSError, yaml.YAMLError) as e:
                logger.warning(f"Failed to load config from {config_path}: {e}")
        else:
            logger.info(f"Config file {config_path} not found, using defaults")

        # Environment variables override config file
        env_overrides = {}
        for key, value in os.environ.items():
            if key.startswith(ENV_PREFIX) and key != env_key:
                env_overrides[key[len(ENV_PREFIX):].lower()] = value

        if env_overrides:
            data.update(env_overrides)
            logger.info(f"Applied environment overrides: {list(env_overrides.keys())}")

        return cls(**data)

    def to_dict(self) -> dict[str, Any]:
        """Convert settings to dictionary."""
        return self.model_dump(mode="json")


# Cached instance for entry points; the core receives settings explicitly
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the cached settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reload_settings() -> Settings:
    """Reload settings from environment and config."""
    global _settings
    _settings = Settings.from_env()
    return _settings
