"""
Constants and default values for the voice emergency pipeline.

This module centralizes magic numbers, timeouts, and thresholds
to make them easier to configure and maintain.
"""

from typing import Any

DEFAULTS = {
    # Audio format
    "canonical_sample_rate": 16000,
    "min_sample_rate": 8000,
    "max_sample_rate": 48000,
    "max_channels": 2,
    "max_chunk_bytes": 1024 * 1024,  # 1 MiB per chunk
    "min_analysis_ms": 100,
    "max_buffer_ms": 10000,
    # Analysis windows per audio quality (ms)
    "window_low_ms": 1500,
    "window_medium_ms": 3000,
    "window_high_ms": 5000,
    # Processing timeouts (seconds)
    "transcription_timeout": 5.0,
    "notification_timeout": 5.0,
    "alert_drain_timeout": 10.0,
    "worker_stop_timeout": 5.0,
    # Streaming
    "queue_size": 64,
    "transcribe_every_ms": 3000,
    "chunk_interval_ms": 1000,
    # Retry settings
    "max_retries": 3,
    "retry_delay": 0.5,
    "retry_max_delay": 5.0,
    # Retention
    "audio_retention_days": 7,
    "transcript_retention_days": 30,
    "max_session_duration_ms": 2 * 60 * 60 * 1000,  # 2 hours
    "cleanup_interval": 3600.0,  # 1 hour
    # Notifications
    "notification_rate_limit": 10,
    "notification_period": 1.0,
    # Summaries
    "summary_max_chars": 200,
    # Log rotation
    "log_backup_count": 7,
    "log_rotation": "midnight",
}

SUPPORTED_LANGUAGES = ("english", "pidgin", "yoruba", "hausa", "igbo")

# Error codes for consistent error handling
ERROR_CODES = {
    "INPUT_ERROR": "INPUT_ERROR",
    "PROVIDER_TIMEOUT": "PROVIDER_TIMEOUT",
    "SESSION_NOT_FOUND": "SESSION_NOT_FOUND",
    "RETENTION_VIOLATION": "RETENTION_VIOLATION",
    "INVALID_SESSION_STATE": "INVALID_SESSION_STATE",
    "PERSISTENCE_ERROR": "PERSISTENCE_ERROR",
    "CIRCUIT_BREAKER_OPEN": "CIRCUIT_BREAKER_OPEN",
    "INTERNAL_ERROR": "INTERNAL_ERROR",
}


def get_timeout(key: str, config: dict[str, Any] | None = None) -> float:
    """
    Get timeout value from config or defaults.

    Args:
        key: Timeout key
        config: Configuration dictionary

    Returns:
        float: Timeout value in seconds
    """
    if config and "timeouts" in config and key in config["timeouts"]:
        return float(config["timeouts"][key])
    default_value = DEFAULTS.get(key)
    if default_value is not None:
        return float(default_value)
    return 5.0


def get_limit(key: str, config: dict[str, Any] | None = None) -> int:
    """
    Get limit value from config or defaults.

    Args:
        key: Limit key
        config: Configuration dictionary

    Returns:
        int: Limit value
    """
    if config and "limits" in config and key in config["limits"]:
        return int(config["limits"][key])
    default_value = DEFAULTS.get(key)
    if default_value is not None:
        return int(default_value)
    return 0
