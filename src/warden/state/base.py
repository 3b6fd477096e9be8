"""Abstract base for state stores."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from warden.core.logging import get_logger

_logger = get_logger("state")

ModelT = TypeVar("ModelT", bound=BaseModel)

# Document keys
RETRY_STATE = "retry_state"
CIRCUIT_BREAKER_STATE = "circuit_breaker"
ORCHESTRATION_STATE = "orchestration_state"

# Append-only log names
RETRY_LOG = "retry_log"
CIRCUIT_HISTORY_LOG = "circuit_breaker_history"
AUDIT_LOG = "audit_log"
AUDIT_ARCHIVE_LOG = "audit_log.1"


class StateStore(ABC):
    """Persistence boundary for Warden's state documents and logs.

    Documents are whole JSON objects replaced on every save. Logs are
    append-only sequences of JSON objects.
    """

    @abstractmethod
    def load(self, key: str) -> dict[str, Any] | None:
        """Load a document.

        Args:
            key: Document key (e.g. ``retry_state``).

        Returns:
            The stored mapping, or None if absent or unreadable.
        """
        ...

    @abstractmethod
    def save(self, key: str, document: dict[str, Any]) -> None:
        """Replace a document."""
        ...

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Delete a document.

        Returns:
            True if deleted, False if not found.
        """
        ...

    @abstractmethod
    def append(self, log: str, record: dict[str, Any]) -> None:
        """Append one record to a log."""
        ...

    @abstractmethod
    def read_log(self, log: str) -> list[dict[str, Any]]:
        """Return all records of a log, oldest first."""
        ...

    @abstractmethod
    def write_log(self, log: str, records: list[dict[str, Any]]) -> None:
        """Replace the full contents of a log (used for rotation)."""
        ...

    def load_model(self, key: str, model_type: type[ModelT]) -> ModelT | None:
        """Load a document and validate it into a pydantic model.

        A document that fails validation is treated as absent.
        """
        data = self.load(key)
        if data is None:
            return None
        try:
            return model_type.model_validate(data)
        except ValidationError as e:
            _logger.warning("state.invalid_document", key=key, error=str(e))
            return None

    def save_model(self, key: str, model: BaseModel) -> None:
        """Serialize a pydantic model and save it."""
        self.save(key, model.model_dump(mode="json"))

    def append_model(self, log: str, model: BaseModel) -> None:
        """Serialize a pydantic model and append it to a log."""
        self.append(log, model.model_dump(mode="json"))
