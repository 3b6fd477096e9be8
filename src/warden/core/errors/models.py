"""Data models for classified failures.

The classifier itself lives outside Warden; these types describe what
Warden consumes from it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from .codes import ErrorCategory, parse_category
from .signature import compute_error_signature


@runtime_checkable
class ErrorClassifier(Protocol):
    """Interface of the external error classifier."""

    def classify(self, message: str) -> ErrorCategory:
        """Map a worker error message to a category."""
        ...

    def signature(self, message: str) -> str:
        """Map a worker error message to its stable signature."""
        ...


@dataclass(frozen=True)
class ClassifiedFailure:
    """One observed failure, as reported by the classifier.

    Attributes:
        category: Category label chosen by the classifier.
        signature: Normalized identity of the failure.
        message: Human-readable error text.
    """

    category: ErrorCategory
    signature: str
    message: str = ""

    @classmethod
    def from_message(
        cls,
        message: str,
        category: ErrorCategory | str | None,
    ) -> ClassifiedFailure:
        """Build a failure from a pre-classified label and raw message."""
        return cls(
            category=parse_category(category),
            signature=compute_error_signature(message),
            message=message,
        )

    @classmethod
    def from_classifier(cls, classifier: ErrorClassifier, message: str) -> ClassifiedFailure:
        """Build a failure by delegating to a classifier implementation."""
        return cls(
            category=parse_category(classifier.classify(message)),
            signature=classifier.signature(message),
            message=message,
        )
