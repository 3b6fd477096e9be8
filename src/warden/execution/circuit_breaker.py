"""Loop-level circuit breaker for stagnation detection.

Halts a runaway execution loop when it stops making progress or keeps
failing the same way, independently of any single retry policy.

The circuit breaker has three states:
- CLOSED: Normal operation, loops may run
- OPEN: Halted after a stagnation threshold was reached
- HALF_OPEN: Probation after the cooldown elapsed

State transitions:
- CLOSED -> OPEN: any of the four counters reaches its threshold
- OPEN -> HALF_OPEN: after cooldown_seconds in OPEN
- HALF_OPEN -> CLOSED: the next loop is healthy
- HALF_OPEN -> OPEN: the next loop is unhealthy

Counters, updated once per completed loop by record_loop_result():
- consecutive_no_progress: loops that changed no files
- consecutive_same_error: loops repeating the previous error signature
- output_decline_pct: drop of output length versus the recent mean
- consecutive_permission_denials: loops refused a permission

Example usage:
    breaker = CircuitBreaker(config.circuit_breaker, store=store)

    if not breaker.can_execute():
        raise SystemExit("circuit open - run `warden circuit reset`")
    result = run_worker()
    breaker.record_loop_result(
        LoopOutcome(loop=n, files_changed=result.files_changed, ...)
    )
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from warden.core.checkpoint import CircuitBreakerState, CircuitState, CircuitTransition
from warden.core.config import CircuitBreakerConfig
from warden.core.logging import get_logger
from warden.state.audit import AuditLog
from warden.state.base import CIRCUIT_BREAKER_STATE, CIRCUIT_HISTORY_LOG, StateStore
from warden.state.memory import InMemoryStateStore
from warden.utils.time import utc_now

_logger = get_logger("circuit_breaker")


@dataclass(frozen=True)
class LoopOutcome:
    """What one completed loop looked like, as reported by the coordinator.

    Attributes:
        loop: Loop number that produced this outcome.
        files_changed: Number of files the loop modified.
        error_signature: Signature of the loop's error, None if it succeeded.
        output_length: Size of the worker's output, None if unknown.
        permission_denied: Whether the worker was refused a permission.
    """

    loop: int
    files_changed: int = 0
    error_signature: str | None = None
    output_length: int | None = None
    permission_denied: bool = False

    @property
    def made_progress(self) -> bool:
        return self.files_changed > 0

    @property
    def is_healthy(self) -> bool:
        """Healthy loops close a HALF_OPEN circuit; unhealthy ones reopen it."""
        return self.made_progress and self.error_signature is None and not self.permission_denied


class CircuitBreaker:
    """Stagnation detector gating whether the outer loop may continue.

    State is loaded from the store on construction and saved after every
    mutation. The clock is injectable for tests.
    """

    def __init__(
        self,
        config: CircuitBreakerConfig | None = None,
        store: StateStore | None = None,
        audit: AuditLog | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.config = config or CircuitBreakerConfig()
        self._store = store if store is not None else InMemoryStateStore()
        self._audit = audit
        self._clock = clock
        self._state = (
            self._store.load_model(CIRCUIT_BREAKER_STATE, CircuitBreakerState)
            or CircuitBreakerState()
        )

    @property
    def state(self) -> CircuitBreakerState:
        """Copy of the current state record."""
        return self._state.model_copy(deep=True)

    def get_state(self) -> CircuitState:
        """Current circuit state, applying a due OPEN -> HALF_OPEN transition."""
        self._maybe_enter_half_open(self._state.last_loop)
        return self._state.state

    def can_execute(self) -> bool:
        """Whether the coordinator may start another unit of work."""
        return self.get_state() != CircuitState.OPEN

    def time_until_half_open(self) -> float | None:
        """Seconds left in OPEN before probation, or None when not OPEN."""
        if self._state.state != CircuitState.OPEN or self._state.opened_at is None:
            return None
        elapsed = (self._clock() - self._state.opened_at).total_seconds()
        return max(0.0, self.config.cooldown_seconds - elapsed)

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record_loop_result(self, outcome: LoopOutcome) -> CircuitState:
        """Update the counters from one loop and re-evaluate the state.

        Returns:
            The circuit state after evaluation.
        """
        state = self._state
        state.last_loop = outcome.loop

        self._update_counters(outcome)

        if state.state == CircuitState.OPEN:
            self._maybe_enter_half_open(outcome.loop)
        elif state.state == CircuitState.HALF_OPEN:
            if outcome.is_healthy:
                self._transition(CircuitState.CLOSED, "recovery_confirmed", outcome.loop)
            else:
                self._transition(
                    CircuitState.OPEN,
                    self._trip_reason() or "probation_failed",
                    outcome.loop,
                )
        else:
            reason = self._trip_reason()
            if reason is not None:
                self._transition(CircuitState.OPEN, reason, outcome.loop)

        _logger.debug(
            "circuit_breaker.loop_recorded",
            loop=outcome.loop,
            state=state.state.value,
            consecutive_no_progress=state.consecutive_no_progress,
            consecutive_same_error=state.consecutive_same_error,
            output_decline_pct=state.output_decline_pct,
            consecutive_permission_denials=state.consecutive_permission_denials,
        )
        self._save()
        return state.state

    def _update_counters(self, outcome: LoopOutcome) -> None:
        state = self._state

        if outcome.made_progress:
            state.consecutive_no_progress = 0
        else:
            state.consecutive_no_progress += 1

        if outcome.error_signature is None:
            state.consecutive_same_error = 0
        elif outcome.error_signature == state.last_error_signature:
            state.consecutive_same_error += 1
        else:
            state.consecutive_same_error = 1
        state.last_error_signature = outcome.error_signature

        if outcome.permission_denied:
            state.consecutive_permission_denials += 1
        else:
            state.consecutive_permission_denials = 0

        history = state.recent_output_lengths
        if outcome.output_length is None:
            state.output_decline_pct = 0.0
        else:
            baseline = sum(history) / len(history) if history else 0.0
            if baseline > 0:
                decline = (baseline - outcome.output_length) / baseline * 100
                state.output_decline_pct = round(max(decline, 0.0), 2)
            else:
                state.output_decline_pct = 0.0
            history.append(max(outcome.output_length, 0))
            del history[: -self.config.output_history_size]

    def _trip_reason(self) -> str | None:
        """Name of the first threshold reached, or None."""
        state = self._state
        cfg = self.config
        if state.consecutive_permission_denials >= cfg.permission_denial_threshold:
            return (
                f"permission_denied: {state.consecutive_permission_denials} "
                "consecutive permission denials"
            )
        if state.consecutive_no_progress >= cfg.no_progress_threshold:
            return f"no_progress: {state.consecutive_no_progress} loops without file changes"
        if state.consecutive_same_error >= cfg.same_error_threshold:
            return f"same_error: {state.consecutive_same_error} loops repeating one error"
        if state.output_decline_pct >= cfg.output_decline_threshold:
            return f"output_decline: output dropped {state.output_decline_pct:.0f}%"
        return None

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _maybe_enter_half_open(self, loop: int) -> None:
        state = self._state
        if state.state != CircuitState.OPEN or state.opened_at is None:
            return
        elapsed = (self._clock() - state.opened_at).total_seconds()
        if elapsed >= self.config.cooldown_seconds:
            self._transition(CircuitState.HALF_OPEN, "cooldown_elapsed", loop)
            self._save()

    def _transition(self, to_state: CircuitState, reason: str, loop: int) -> None:
        state = self._state
        from_state = state.state
        if from_state == to_state:
            return

        state.state = to_state
        state.last_transition_reason = reason
        if to_state == CircuitState.OPEN:
            state.opened_at = self._clock()
        elif to_state == CircuitState.CLOSED:
            state.opened_at = None

        transition = CircuitTransition(
            timestamp=self._clock(),
            from_state=from_state,
            to_state=to_state,
            reason=reason,
            loop=loop,
        )
        self._store.append_model(CIRCUIT_HISTORY_LOG, transition)

        log_method = _logger.warning if to_state == CircuitState.OPEN else _logger.info
        log_method(
            "circuit_breaker.state_changed",
            from_state=from_state.value,
            to_state=to_state.value,
            reason=reason,
            loop=loop,
        )
        if self._audit is not None:
            self._audit.record(
                "circuit_breaker_state_change",
                loop_number=loop,
                from_state=from_state.value,
                to_state=to_state.value,
                reason=reason,
            )

    def _save(self) -> None:
        self._state.updated_at = self._clock()
        self._store.save_model(CIRCUIT_BREAKER_STATE, self._state)

    # ------------------------------------------------------------------
    # Operator surface
    # ------------------------------------------------------------------

    def reset(self, reason: str = "manual_reset") -> None:
        """Return to CLOSED with every counter cleared."""
        previous = self._state.state
        loop = self._state.last_loop
        if previous != CircuitState.CLOSED:
            self._transition(CircuitState.CLOSED, reason, loop)
        self._state = CircuitBreakerState(
            last_transition_reason=reason,
            last_loop=loop,
        )
        _logger.info("circuit_breaker.reset", from_state=previous.value, reason=reason)
        self._save()

    def get_history(self, limit: int | None = None) -> list[CircuitTransition]:
        """Transition history, oldest first."""
        records = [
            CircuitTransition.model_validate(r)
            for r in self._store.read_log(CIRCUIT_HISTORY_LOG)
        ]
        if limit is not None:
            records = records[-limit:] if limit > 0 else []
        return records

    def get_status(self) -> dict[str, Any]:
        """Status report for the `circuit status` command."""
        current = self.get_state()
        state = self._state
        return {
            "state": current.value,
            "can_execute": current != CircuitState.OPEN,
            "last_transition_reason": state.last_transition_reason,
            "last_loop": state.last_loop,
            "seconds_until_half_open": self.time_until_half_open(),
            "counters": {
                "consecutive_no_progress": state.consecutive_no_progress,
                "consecutive_same_error": state.consecutive_same_error,
                "output_decline_pct": state.output_decline_pct,
                "consecutive_permission_denials": state.consecutive_permission_denials,
            },
            "thresholds": {
                "no_progress": self.config.no_progress_threshold,
                "same_error": self.config.same_error_threshold,
                "output_decline_pct": self.config.output_decline_threshold,
                "permission_denials": self.config.permission_denial_threshold,
                "cooldown_seconds": self.config.cooldown_seconds,
            },
        }

    def __repr__(self) -> str:
        return (
            f"CircuitBreaker(state={self._state.state.value}, "
            f"no_progress={self._state.consecutive_no_progress}/"
            f"{self.config.no_progress_threshold})"
        )


__all__ = [
    "CircuitBreaker",
    "CircuitState",
    "LoopOutcome",
]
