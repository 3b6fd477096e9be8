"""Append-only audit log of decision points.

Every retry decision, circuit transition and orchestration event is
recorded here for audit and replay by tools outside Warden. The active log
is capped at ``AuditConfig.max_events``; on overflow the oldest events are
moved to an archive log, replacing any previous archive.
"""

from __future__ import annotations

from typing import Any

from warden.core.checkpoint import AuditEvent
from warden.core.config import AuditConfig
from warden.core.logging import get_current_context, get_logger
from warden.state.base import AUDIT_ARCHIVE_LOG, AUDIT_LOG, StateStore

_logger = get_logger("audit")


class AuditLog:
    """Writer and reader for the audit log."""

    def __init__(
        self,
        store: StateStore,
        config: AuditConfig | None = None,
        session_id: str = "",
    ) -> None:
        self._store = store
        self._config = config or AuditConfig()
        self._session_id = session_id
        self._event_count: int | None = None

    @property
    def session_id(self) -> str:
        return self._session_id

    def record(self, event_type: str, loop_number: int = 0, **details: Any) -> AuditEvent | None:
        """Append an event.

        Session id and loop number fall back to the active ExecutionContext.

        Returns:
            The recorded event, or None when auditing is disabled.
        """
        if not self._config.enabled:
            return None
        if not event_type:
            raise ValueError("event_type is required")

        session_id = self._session_id
        ctx = get_current_context()
        if ctx is not None:
            session_id = session_id or ctx.session_id
            if not loop_number and ctx.loop_number is not None:
                loop_number = ctx.loop_number

        event = AuditEvent(
            event_type=event_type,
            session_id=session_id,
            loop_number=loop_number,
            details=details,
        )
        self._store.append_model(AUDIT_LOG, event)

        if self._event_count is None:
            self._event_count = len(self._store.read_log(AUDIT_LOG))
        else:
            self._event_count += 1
        if self._event_count > self._config.max_events:
            self.rotate()
        return event

    def rotate(self) -> int:
        """Archive events beyond ``max_events``.

        Returns:
            Number of events moved to the archive.
        """
        records = self._store.read_log(AUDIT_LOG)
        overflow = len(records) - self._config.max_events
        if overflow <= 0:
            self._event_count = len(records)
            return 0
        self._store.write_log(AUDIT_ARCHIVE_LOG, records[:overflow])
        self._store.write_log(AUDIT_LOG, records[overflow:])
        self._event_count = self._config.max_events
        _logger.info("audit.rotated", archived=overflow, kept=self._config.max_events)
        return overflow

    def events(self, event_type: str | None = None, limit: int | None = None) -> list[AuditEvent]:
        """Return recorded events, oldest first, optionally filtered.

        Args:
            event_type: Only return events of this type.
            limit: Only return the most recent ``limit`` matching events.
        """
        events = [AuditEvent.model_validate(r) for r in self._store.read_log(AUDIT_LOG)]
        if event_type is not None:
            events = [e for e in events if e.event_type == event_type]
        if limit is not None:
            events = events[-limit:] if limit > 0 else []
        return events
