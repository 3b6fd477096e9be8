"""Core domain models and configuration."""

from warden.core.checkpoint import (
    CircuitBreakerState,
    CircuitState,
    OrchestrationState,
    RepoStatus,
    RepoStatusValue,
    RetryStateDocument,
    RetryStateEntry,
)
from warden.core.config import CircuitBreakerConfig, RetryConfig, WardenConfig
from warden.core.errors import ClassifiedFailure, ErrorCategory, WardenError

__all__ = [
    "CircuitBreakerConfig",
    "CircuitBreakerState",
    "CircuitState",
    "ClassifiedFailure",
    "ErrorCategory",
    "OrchestrationState",
    "RepoStatus",
    "RepoStatusValue",
    "RetryConfig",
    "RetryStateDocument",
    "RetryStateEntry",
    "WardenConfig",
    "WardenError",
]
