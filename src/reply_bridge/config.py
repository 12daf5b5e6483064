"""Configuration module for the reply bridge.

This module provides the BridgeConfig class holding every value the core
consumes: tracking TTL, webhook delivery settings, the whitelist, storage
backend selection and logging options.

Example:
    Basic usage:

        >>> config = BridgeConfig(webhook_url="https://trx.example.com/hook")
        >>> config.tracking_ttl_seconds
        86400

    Loading from environment:

        >>> import os
        >>> os.environ['BRIDGE_WEBHOOK_URL'] = 'https://trx.example.com/hook'
        >>> os.environ['BRIDGE_WEBHOOK_WHITELIST'] = '628111@s.whatsapp.net, 1203630@g.us'
        >>> config = BridgeConfig.from_env()
        >>> config.webhook_whitelist
        ['628111@s.whatsapp.net', '1203630@g.us']
"""

import os
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class BridgeConfig(BaseModel):
    """Configuration for the reply bridge.

    Attributes:
        webhook_url: Endpoint that receives correlated replies. Required.
        webhook_timeout_seconds: Per-attempt HTTP timeout (1-300). Default 10.
        webhook_retry_count: Retries after the first failed delivery
            attempt (0-10). Default 3.
        webhook_backoff_base_seconds: Delay before the first retry; doubles
            on each subsequent retry. Default 1.0.
        tracking_ttl_seconds: How long a sent transaction stays active for
            dedup and reply correlation (1-604800). Default 86400 (24 hours).
        sweep_interval_seconds: Interval between purges of expired records.
            Default 3600 (hourly).
        webhook_whitelist: Chat addresses whose replies may be relayed.
            Empty means every address is allowed.
        storage_backend: "memory" or "sqlite". Default "memory".
        tracking_db_path: SQLite database file for the "sqlite" backend.
        log_level: Log level name. Default "INFO".
        json_logs: Emit JSON logs when True, console output otherwise.
        shutdown_timeout_seconds: Deadline for draining in-flight
            deliveries on shutdown. Default 30.

    Note:
        This class is immutable (frozen=True).
    """

    webhook_url: str = Field(
        ...,
        description="Endpoint that receives correlated replies",
    )
    webhook_timeout_seconds: float = Field(
        default=10.0,
        description="Per-attempt HTTP timeout in seconds (1-300)",
    )
    webhook_retry_count: int = Field(
        default=3,
        description="Retries after the first failed delivery attempt (0-10)",
    )
    webhook_backoff_base_seconds: float = Field(
        default=1.0,
        description="Delay before the first retry in seconds",
    )
    tracking_ttl_seconds: int = Field(
        default=86400,
        description="Lifetime of tracking records in seconds (1-604800)",
    )
    sweep_interval_seconds: int = Field(
        default=3600,
        description="Interval between expired-record purges in seconds",
    )
    webhook_whitelist: list[str] | str = Field(
        default_factory=list,
        description="Chat addresses allowed to reach the webhook; empty allows all",
    )
    storage_backend: Literal["memory", "sqlite"] = Field(
        default="memory",
        description="Correlation store backend",
    )
    tracking_db_path: str = Field(
        default="./db/tracking.db",
        description="SQLite file for the sqlite backend",
    )
    log_level: str = Field(default="INFO", description="Log level name")
    json_logs: bool = Field(default=True, description="Emit JSON logs")
    shutdown_timeout_seconds: float = Field(
        default=30.0,
        description="Deadline for draining deliveries on shutdown",
    )

    model_config = {"frozen": True}

    @field_validator("webhook_url")
    @classmethod
    def validate_webhook_url(cls, v: str) -> str:
        """Validate that the webhook URL is an http(s) URL.

        Raises:
            ValueError: If the URL is blank or not http(s).
        """
        v = v.strip()
        if not v:
            raise ValueError("webhook_url is required")
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"webhook_url must be an http(s) URL, got {v!r}")
        return v

    @field_validator("webhook_timeout_seconds")
    @classmethod
    def validate_webhook_timeout_seconds(cls, v: float) -> float:
        if not (1 <= v <= 300):
            raise ValueError(f"webhook_timeout_seconds must be between 1 and 300, got {v}")
        return v

    @field_validator("webhook_retry_count")
    @classmethod
    def validate_webhook_retry_count(cls, v: int) -> int:
        if not (0 <= v <= 10):
            raise ValueError(f"webhook_retry_count must be between 0 and 10, got {v}")
        return v

    @field_validator("webhook_backoff_base_seconds", "shutdown_timeout_seconds")
    @classmethod
    def validate_positive_seconds(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"value must be > 0, got {v}")
        return v

    @field_validator("tracking_ttl_seconds")
    @classmethod
    def validate_tracking_ttl_seconds(cls, v: int) -> int:
        """Validate TTL is within acceptable range.

        Raises:
            ValueError: If TTL is not between 1 and 604800 (7 days).
        """
        if not (1 <= v <= 604800):
            raise ValueError(
                f"tracking_ttl_seconds must be between 1 and 604800 (7 days), got {v}"
            )
        return v

    @field_validator("sweep_interval_seconds")
    @classmethod
    def validate_sweep_interval_seconds(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"sweep_interval_seconds must be >= 1, got {v}")
        return v

    @field_validator("webhook_whitelist", mode="before")
    @classmethod
    def validate_webhook_whitelist(cls, v: Any) -> list[str]:
        """Normalize the whitelist to a list of trimmed, non-empty addresses.

        Example:
            >>> config = BridgeConfig(
            ...     webhook_url="https://trx.example.com/hook",
            ...     webhook_whitelist=" a@g.us, ,b@g.us",
            ... )
            >>> config.webhook_whitelist
            ['a@g.us', 'b@g.us']
        """
        if v is None:
            return []
        if isinstance(v, str):
            # Handle comma-separated string (from environment variables)
            v = v.split(",")

        if not isinstance(v, (list, tuple, set, frozenset)):
            raise ValueError("webhook_whitelist must be a list or comma-separated string")

        return [address.strip() for address in v if address and address.strip()]

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in VALID_LOG_LEVELS:
            raise ValueError(
                f"Invalid log level: {v}. Valid levels are: {', '.join(sorted(VALID_LOG_LEVELS))}"
            )
        return level

    @classmethod
    def from_env(cls, prefix: str = "BRIDGE_") -> "BridgeConfig":
        """Create configuration from environment variables.

        Variable names are the uppercase field names with the prefix, for
        example ``BRIDGE_WEBHOOK_URL`` or ``BRIDGE_TRACKING_TTL_SECONDS``.
        Missing variables fall back to the field defaults.

        Args:
            prefix: Prefix for environment variable names.

        Returns:
            BridgeConfig populated from the environment.

        Raises:
            ValidationError: If a value is invalid or webhook_url is missing.
        """
        config_dict: dict[str, Any] = {}

        field_types = {
            "webhook_url": str,
            "webhook_timeout_seconds": float,
            "webhook_retry_count": int,
            "webhook_backoff_base_seconds": float,
            "tracking_ttl_seconds": int,
            "sweep_interval_seconds": int,
            "webhook_whitelist": list,
            "storage_backend": str,
            "tracking_db_path": str,
            "log_level": str,
            "json_logs": bool,
            "shutdown_timeout_seconds": float,
        }

        for field_name, field_type in field_types.items():
            env_value = os.environ.get(f"{prefix}{field_name.upper()}")
            if env_value is None:
                continue

            if field_type is int:
                config_dict[field_name] = int(env_value)
            elif field_type is float:
                config_dict[field_name] = float(env_value)
            elif field_type is bool:
                config_dict[field_name] = env_value.strip().lower() in ("1", "true", "yes", "on")
            else:
                # Lists stay comma-separated strings; the validator splits them
                config_dict[field_name] = env_value

        return cls(**config_dict)

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> "BridgeConfig":
        """Create configuration from a dictionary.

        Raises:
            ValidationError: If the dictionary contains invalid values.
        """
        return cls(**config_dict)
