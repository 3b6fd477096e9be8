"""Configuration models for Warden.

Pydantic models loaded from an optional YAML file (``.warden.yaml`` by
default). Every field has a default, so an empty or missing file yields a
fully usable configuration.

Example:
    retry:
      max_attempts: 3
      backoff_initial_seconds: 30
      backoff_multiplier: 2
      backoff_max_seconds: 300
    circuit_breaker:
      no_progress_threshold: 3
      same_error_threshold: 5
      output_decline_threshold: 70
      permission_denial_threshold: 2
      cooldown_seconds: 1800
"""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from warden.core.errors import ConfigurationError

DEFAULT_CONFIG_FILE = Path(".warden.yaml")
DEFAULT_STATE_DIR = Path(".warden")


class RetryConfig(BaseModel):
    """Retry budget and exponential backoff settings."""

    max_attempts: int = Field(default=3, ge=0, description="Maximum retries per error signature")
    backoff_initial_seconds: float = Field(
        default=30.0, ge=0, description="Wait before the first retry"
    )
    backoff_multiplier: float = Field(default=2.0, ge=1, description="Backoff growth factor")
    backoff_max_seconds: float = Field(default=300.0, ge=0, description="Backoff cap")

    @model_validator(mode="after")
    def _validate_delay_range(self) -> RetryConfig:
        if self.backoff_initial_seconds > self.backoff_max_seconds:
            raise ValueError(
                f"backoff_initial_seconds ({self.backoff_initial_seconds}) must not exceed "
                f"backoff_max_seconds ({self.backoff_max_seconds})"
            )
        return self


class CircuitBreakerConfig(BaseModel):
    """Stagnation thresholds for the loop-level circuit breaker.

    State transitions:
    - CLOSED -> OPEN: any threshold reached
    - OPEN -> HALF_OPEN: cooldown_seconds elapsed since opening
    - HALF_OPEN -> CLOSED: next healthy loop
    - HALF_OPEN -> OPEN: next unhealthy loop
    """

    no_progress_threshold: int = Field(
        default=3, ge=1, description="Consecutive loops without file changes"
    )
    same_error_threshold: int = Field(
        default=5, ge=1, description="Consecutive loops repeating one error signature"
    )
    output_decline_threshold: float = Field(
        default=70.0,
        gt=0,
        le=100,
        description="Percent drop in output length versus recent history",
    )
    permission_denial_threshold: int = Field(
        default=2, ge=1, description="Consecutive permission-denied loops"
    )
    cooldown_seconds: float = Field(
        default=1800.0, ge=0, description="Time in OPEN before probation (HALF_OPEN)"
    )
    output_history_size: int = Field(
        default=5, ge=1, le=100, description="Loops kept for the output decline baseline"
    )


class AuditConfig(BaseModel):
    """Append-only audit log settings."""

    enabled: bool = True
    max_events: int = Field(
        default=10000, ge=10, description="Events kept in the active log before rotation"
    )


class WardenConfig(BaseModel):
    """Top-level Warden configuration."""

    state_dir: Path = Field(
        default=DEFAULT_STATE_DIR, description="Directory for persisted state documents"
    )
    retry: RetryConfig = Field(default_factory=RetryConfig)
    circuit_breaker: CircuitBreakerConfig = Field(default_factory=CircuitBreakerConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)

    @classmethod
    def from_yaml(cls, path: Path) -> WardenConfig:
        """Load configuration from a YAML file.

        Raises:
            ConfigurationError: If the file is unreadable, not a mapping,
                or fails validation.
        """
        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except OSError as e:
            raise ConfigurationError(f"Cannot read config file {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
        return cls.from_mapping(data, source=str(path))

    @classmethod
    def from_mapping(cls, data: object, source: str = "<config>") -> WardenConfig:
        """Validate an already-parsed configuration mapping."""
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ConfigurationError(f"{source}: configuration must be a mapping")
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(f"{source}: {e}") from e

    @classmethod
    def load(cls, path: Path | None = None) -> WardenConfig:
        """Load from ``path``, or the default file when present, else defaults."""
        if path is not None:
            return cls.from_yaml(path)
        if DEFAULT_CONFIG_FILE.exists():
            return cls.from_yaml(DEFAULT_CONFIG_FILE)
        return cls()
