"""JSON file-based state store.

Each document lives in ``{state_dir}/{key}.json`` and each log in
``{state_dir}/{log}.jsonl``.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from warden.core.logging import get_logger
from warden.state.base import StateStore

_logger = get_logger("state.json")


class JsonStateStore(StateStore):
    """JSON file-based state storage."""

    def __init__(self, state_dir: Path):
        """Initialize the store.

        Args:
            state_dir: Directory to store state files. Created if missing.
        """
        self.state_dir = Path(state_dir)
        self.state_dir.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def _safe_name(name: str) -> str:
        return "".join(c if c.isalnum() or c in "-_." else "_" for c in name)

    def _document_path(self, key: str) -> Path:
        return self.state_dir / f"{self._safe_name(key)}.json"

    def _log_path(self, log: str) -> Path:
        return self.state_dir / f"{self._safe_name(log)}.jsonl"

    def load(self, key: str) -> dict[str, Any] | None:
        path = self._document_path(key)
        if not path.exists():
            return None
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            _logger.warning("state.load_failed", path=str(path), error=str(e))
            return None
        if not isinstance(data, dict):
            _logger.warning("state.load_failed", path=str(path), error="not a JSON object")
            return None
        return data

    def save(self, key: str, document: dict[str, Any]) -> None:
        path = self._document_path(key)
        # Write atomically using temp file + rename
        temp_path = path.with_suffix(".json.tmp")
        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump(document, f, indent=2, default=str)
        temp_path.replace(path)

    def delete(self, key: str) -> bool:
        path = self._document_path(key)
        if path.exists():
            path.unlink()
            return True
        return False

    def append(self, log: str, record: dict[str, Any]) -> None:
        with open(self._log_path(log), "a", encoding="utf-8") as f:
            f.write(json.dumps(record, default=str) + "\n")

    def read_log(self, log: str) -> list[dict[str, Any]]:
        path = self._log_path(log)
        if not path.exists():
            return []
        records: list[dict[str, Any]] = []
        with open(path, encoding="utf-8") as f:
            for line_no, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    records.append(json.loads(line))
                except json.JSONDecodeError:
                    _logger.warning("state.log_line_skipped", path=str(path), line=line_no)
        return records

    def write_log(self, log: str, records: list[dict[str, Any]]) -> None:
        path = self._log_path(log)
        temp_path = path.with_suffix(".jsonl.tmp")
        with open(temp_path, "w", encoding="utf-8") as f:
            for record in records:
                f.write(json.dumps(record, default=str) + "\n")
        temp_path.replace(path)
