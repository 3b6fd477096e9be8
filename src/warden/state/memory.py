"""In-memory state store for testing.

Stores documents and logs in dicts without filesystem I/O. Documents are
deep-copied on the way in and out so callers cannot alias stored state.
"""

from __future__ import annotations

import copy
from typing import Any

from warden.state.base import StateStore


class InMemoryStateStore(StateStore):
    """In-memory state store for tests."""

    def __init__(self) -> None:
        self.documents: dict[str, dict[str, Any]] = {}
        self.logs: dict[str, list[dict[str, Any]]] = {}

    def load(self, key: str) -> dict[str, Any] | None:
        document = self.documents.get(key)
        return copy.deepcopy(document) if document is not None else None

    def save(self, key: str, document: dict[str, Any]) -> None:
        self.documents[key] = copy.deepcopy(document)

    def delete(self, key: str) -> bool:
        if key in self.documents:
            del self.documents[key]
            return True
        return False

    def append(self, log: str, record: dict[str, Any]) -> None:
        self.logs.setdefault(log, []).append(copy.deepcopy(record))

    def read_log(self, log: str) -> list[dict[str, Any]]:
        return copy.deepcopy(self.logs.get(log, []))

    def write_log(self, log: str, records: list[dict[str, Any]]) -> None:
        self.logs[log] = copy.deepcopy(records)
