"""Error classification types and the Warden exception hierarchy.

Re-exports all public symbols.
"""

from warden.core.errors.codes import ErrorCategory, parse_category
from warden.core.errors.exceptions import (
    ConfigurationError,
    CycleDetectedError,
    DuplicateRepoError,
    InvalidRepoConfigError,
    MissingFieldError,
    NoOrchestrationError,
    OrchestrationError,
    RepoBlockedError,
    RepoConfigError,
    RepoConfigNotFoundError,
    RepoPathNotFoundError,
    UnknownDependencyError,
    UnknownRepoError,
    WardenError,
)
from warden.core.errors.models import ClassifiedFailure, ErrorClassifier
from warden.core.errors.signature import (
    SIGNATURE_LENGTH,
    compute_error_signature,
    normalize_error_message,
)

__all__ = [
    "ErrorCategory",
    "parse_category",
    "ClassifiedFailure",
    "ErrorClassifier",
    "SIGNATURE_LENGTH",
    "compute_error_signature",
    "normalize_error_message",
    "WardenError",
    "ConfigurationError",
    "RepoConfigError",
    "RepoConfigNotFoundError",
    "InvalidRepoConfigError",
    "MissingFieldError",
    "DuplicateRepoError",
    "UnknownDependencyError",
    "RepoPathNotFoundError",
    "CycleDetectedError",
    "OrchestrationError",
    "NoOrchestrationError",
    "UnknownRepoError",
    "RepoBlockedError",
]
