"""Retry decision engine.

Maps a classified failure to a remediation strategy, computes exponential
backoff, and tracks attempt counts per error signature so the budget of
retries applies to each distinct failure separately.

Strategies:
- wait_and_retry: rate limits and transient API errors; sleep, then retry
- retry_with_hint: test/build/dependency failures; retry with a focused hint
- reset_session: context overflow; retry in a fresh worker session
- halt: permission denials; a human must fix the root cause
- no_retry: anything unrecognized

Example usage:
    from warden.execution.retry_strategy import RetryEngine

    engine = RetryEngine(config.retry, store=JsonStateStore(state_dir))
    failure = ClassifiedFailure.from_message(stderr, "test_failure")
    decision = engine.decide(failure, loop=7)
    if decision.proceed:
        hint = engine.consume_pending_hint()
        # run the next attempt, injecting the hint
    else:
        # escalate: stop the loop and ask for a human
        ...
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from warden.core.checkpoint import RetryAttemptRecord, RetryStateDocument, RetryStateEntry
from warden.core.config import RetryConfig
from warden.core.errors import ClassifiedFailure, ErrorCategory, parse_category
from warden.core.logging import get_logger
from warden.state.audit import AuditLog
from warden.state.base import RETRY_LOG, RETRY_STATE, StateStore
from warden.state.memory import InMemoryStateStore
from warden.utils.time import utc_now

_logger = get_logger("retry_strategy")


class RetryStrategy(str, Enum):
    """Remediation chosen for a classified failure."""

    WAIT_AND_RETRY = "wait_and_retry"
    RETRY_WITH_HINT = "retry_with_hint"
    RESET_SESSION = "reset_session"
    HALT = "halt"
    NO_RETRY = "no_retry"

    @property
    def is_retryable(self) -> bool:
        return self not in (RetryStrategy.HALT, RetryStrategy.NO_RETRY)


STRATEGY_TABLE: dict[ErrorCategory, RetryStrategy] = {
    ErrorCategory.RATE_LIMIT: RetryStrategy.WAIT_AND_RETRY,
    ErrorCategory.API_ERROR: RetryStrategy.WAIT_AND_RETRY,
    ErrorCategory.TEST_FAILURE: RetryStrategy.RETRY_WITH_HINT,
    ErrorCategory.BUILD_ERROR: RetryStrategy.RETRY_WITH_HINT,
    ErrorCategory.DEPENDENCY_ERROR: RetryStrategy.RETRY_WITH_HINT,
    ErrorCategory.CONTEXT_OVERFLOW: RetryStrategy.RESET_SESSION,
    ErrorCategory.PERMISSION_DENIED: RetryStrategy.HALT,
    ErrorCategory.UNKNOWN: RetryStrategy.NO_RETRY,
}

RETRY_HINTS: dict[ErrorCategory, str] = {
    ErrorCategory.TEST_FAILURE: (
        "Focus on fixing the failing test. Review the test output carefully "
        "and address the specific assertion that failed."
    ),
    ErrorCategory.BUILD_ERROR: (
        "Check build output carefully. Resolve any compilation errors, "
        "type mismatches, or missing imports."
    ),
    ErrorCategory.DEPENDENCY_ERROR: (
        "Install missing dependency. Check package.json/requirements.txt/Cargo.toml "
        "and run the appropriate install command."
    ),
}

RESET_SESSION_ACTION = "reset_session"


def get_retry_strategy(category: ErrorCategory | str | None) -> RetryStrategy:
    """Strategy for a category; unrecognized labels yield NO_RETRY."""
    return STRATEGY_TABLE[parse_category(category)]


def get_retry_hint(category: ErrorCategory | str | None) -> str:
    """Remediation hint for hint-carrying categories, else an empty string."""
    return RETRY_HINTS.get(parse_category(category), "")


def coerce_attempts(value: object) -> int:
    """Coerce an attempt count to a non-negative integer.

    None, negative numbers and unparseable values become 0.
    """
    if isinstance(value, bool):
        return int(value)
    try:
        attempts = int(value)  # type: ignore[call-overload]
    except (TypeError, ValueError):
        try:
            attempts = int(float(str(value).strip()))
        except (TypeError, ValueError, OverflowError):
            return 0
    return max(attempts, 0)


def calculate_backoff(attempt: int, config: RetryConfig | None = None) -> float:
    """Exponential backoff: ``min(initial * multiplier^(attempt-1), max)``.

    Args:
        attempt: 1-indexed attempt number; values below 1 count as 1.
        config: Backoff settings; defaults to 30s initial, x2, 300s cap.
    """
    cfg = config or RetryConfig()
    initial = cfg.backoff_initial_seconds
    cap = cfg.backoff_max_seconds
    steps = max(coerce_attempts(attempt), 1) - 1

    if initial <= 0 or cfg.backoff_multiplier == 1:
        return min(initial, cap)

    delay = initial
    for _ in range(steps):
        if delay >= cap:
            break
        delay *= cfg.backoff_multiplier
    return min(delay, cap)


def should_retry(
    category: ErrorCategory | str | None,
    attempts: object,
    config: RetryConfig | None = None,
) -> bool:
    """Whether another attempt is allowed for this category.

    HALT and NO_RETRY categories never retry; otherwise retry while
    ``attempts < max_attempts``.
    """
    strategy = get_retry_strategy(category)
    if not strategy.is_retryable:
        return False
    max_attempts = (config or RetryConfig()).max_attempts
    return coerce_attempts(attempts) < max_attempts


@dataclass(frozen=True)
class RetryOutcome:
    """Result of executing a strategy.

    Attributes:
        proceed: True if the coordinator may run another attempt.
        strategy: The strategy that was executed.
        wait_seconds: Time slept before returning.
        hint: Hint recorded for the next attempt, if any.
        action: Action recorded for the coordinator, if any.
    """

    proceed: bool
    strategy: RetryStrategy
    wait_seconds: float = 0.0
    hint: str = ""
    action: str | None = None


@dataclass(frozen=True)
class RetryDecision:
    """Full decision for one classified failure, as returned by decide()."""

    failure: ClassifiedFailure
    strategy: RetryStrategy
    attempt: int
    should_retry: bool
    outcome: RetryOutcome
    reason: str

    @property
    def proceed(self) -> bool:
        return self.should_retry and self.outcome.proceed

    @property
    def escalate(self) -> bool:
        """True when a human has to act before work can resume."""
        return not self.proceed


class RetryEngine:
    """Stateful retry engine bound to a persistence store.

    Retry state is loaded from and saved to the store on every operation,
    so attempt counts survive process restarts within a session.
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        store: StateStore | None = None,
        audit: AuditLog | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config or RetryConfig()
        self._store = store if store is not None else InMemoryStateStore()
        self._audit = audit
        self._sleep = sleep
        self._pending_hint: str | None = None
        self._pending_action: str | None = None

    # ------------------------------------------------------------------
    # Pure policy, bound to this engine's config
    # ------------------------------------------------------------------

    def calculate_backoff(self, attempt: int) -> float:
        return calculate_backoff(attempt, self.config)

    def should_retry(self, category: ErrorCategory | str | None, attempts: object) -> bool:
        return should_retry(category, attempts, self.config)

    # ------------------------------------------------------------------
    # Per-signature state
    # ------------------------------------------------------------------

    def _load(self) -> RetryStateDocument:
        return self._store.load_model(RETRY_STATE, RetryStateDocument) or RetryStateDocument()

    def get_retry_state(self, signature: str) -> RetryStateEntry:
        """State for a signature; unseen signatures have attempt_count 0."""
        return self._load().errors.get(signature, RetryStateEntry())

    def get_all_retry_state(self) -> dict[str, RetryStateEntry]:
        return dict(self._load().errors)

    def update_retry_state(
        self,
        signature: str,
        category: ErrorCategory | str | None,
        outcome: str,
        loop: int = 0,
    ) -> RetryStateEntry:
        """Count one more attempt for a signature and persist it."""
        document = self._load()
        previous = document.errors.get(signature, RetryStateEntry())
        entry = RetryStateEntry(
            category=parse_category(category),
            attempt_count=previous.attempt_count + 1,
            last_attempt_timestamp=utc_now(),
            last_loop=loop,
            last_outcome=outcome,
        )
        document.errors[signature] = entry
        self._store.save_model(RETRY_STATE, document)
        return entry

    def reset_retry_state(self) -> None:
        """Forget every signature (manual reset or session reset)."""
        self._store.save_model(RETRY_STATE, RetryStateDocument())
        self._pending_hint = None
        self._pending_action = None
        _logger.info("retry_strategy.state_reset")
        if self._audit is not None:
            self._audit.record("retry_state_reset")

    # ------------------------------------------------------------------
    # Attempt log
    # ------------------------------------------------------------------

    def log_retry_attempt(
        self,
        loop: int,
        category: ErrorCategory | str | None,
        attempt: int,
        strategy: RetryStrategy,
        outcome: str = "pending",
    ) -> RetryAttemptRecord:
        """Append an immutable attempt record to the retry log."""
        record = RetryAttemptRecord(
            loop=loop,
            error_category=parse_category(category),
            attempt=attempt,
            strategy=strategy.value,
            outcome=outcome,
        )
        self._store.append_model(RETRY_LOG, record)
        if self._audit is not None:
            self._audit.record(
                "retry_triggered",
                loop_number=loop,
                category=record.error_category.value,
                attempt=attempt,
                strategy=strategy.value,
                loop=loop,
            )
        return record

    def get_attempt_log(self) -> list[RetryAttemptRecord]:
        return [RetryAttemptRecord.model_validate(r) for r in self._store.read_log(RETRY_LOG)]

    # ------------------------------------------------------------------
    # Strategy execution
    # ------------------------------------------------------------------

    def execute_retry(
        self,
        strategy: RetryStrategy,
        attempt: int,
        category: ErrorCategory | str | None,
        loop: int = 0,
    ) -> RetryOutcome:
        """Carry out a strategy.

        WAIT_AND_RETRY blocks the calling thread for the backoff delay.
        RETRY_WITH_HINT and RESET_SESSION record a hint or action for the
        coordinator and return at once. HALT and NO_RETRY return a
        non-proceeding outcome without waiting.
        """
        log = _logger.bind(strategy=strategy.value, attempt=attempt, loop=loop)

        if strategy == RetryStrategy.WAIT_AND_RETRY:
            wait_seconds = self.calculate_backoff(attempt)
            log.info(
                "retry_strategy.waiting",
                wait_seconds=wait_seconds,
                max_attempts=self.config.max_attempts,
            )
            self._sleep(wait_seconds)
            self.log_retry_attempt(loop, category, attempt, strategy, "pending")
            return RetryOutcome(proceed=True, strategy=strategy, wait_seconds=wait_seconds)

        if strategy == RetryStrategy.RETRY_WITH_HINT:
            hint = get_retry_hint(category)
            if hint:
                self._pending_hint = hint
            log.info("retry_strategy.hint_recorded", hint=hint)
            self.log_retry_attempt(loop, category, attempt, strategy, "pending")
            return RetryOutcome(proceed=True, strategy=strategy, hint=hint)

        if strategy == RetryStrategy.RESET_SESSION:
            self._pending_action = RESET_SESSION_ACTION
            log.info("retry_strategy.session_reset_requested")
            self.log_retry_attempt(loop, category, attempt, strategy, "pending")
            return RetryOutcome(
                proceed=True, strategy=strategy, action=RESET_SESSION_ACTION
            )

        if strategy == RetryStrategy.HALT:
            log.warning("retry_strategy.halt", category=parse_category(category).value)
            self.log_retry_attempt(loop, category, attempt, strategy, "halt")
            return RetryOutcome(proceed=False, strategy=strategy)

        # NO_RETRY
        log.warning("retry_strategy.no_retry", category=parse_category(category).value)
        self.log_retry_attempt(loop, category, attempt, strategy, "no_retry")
        return RetryOutcome(proceed=False, strategy=strategy)

    def consume_pending_hint(self) -> str | None:
        """Return the recorded hint once, then forget it."""
        hint, self._pending_hint = self._pending_hint, None
        return hint

    def consume_pending_action(self) -> str | None:
        """Return the recorded coordinator action once, then forget it."""
        action, self._pending_action = self._pending_action, None
        return action

    # ------------------------------------------------------------------
    # One-call decision
    # ------------------------------------------------------------------

    def decide(self, failure: ClassifiedFailure, loop: int = 0) -> RetryDecision:
        """Choose and carry out the response to a classified failure.

        Retryable failures with budget left are counted against their
        signature and executed. Exhausted budgets and HALT/NO_RETRY
        categories produce an escalating decision.
        """
        strategy = get_retry_strategy(failure.category)
        previous_attempts = self.get_retry_state(failure.signature).attempt_count

        if not strategy.is_retryable:
            attempt = previous_attempts + 1
            outcome = self.execute_retry(strategy, attempt, failure.category, loop)
            reason = f"{failure.category.value} is not retryable ({strategy.value})"
            retry = False
        elif self.should_retry(failure.category, previous_attempts):
            entry = self.update_retry_state(
                failure.signature, failure.category, "pending", loop
            )
            attempt = entry.attempt_count
            outcome = self.execute_retry(strategy, attempt, failure.category, loop)
            reason = f"attempt {attempt}/{self.config.max_attempts} via {strategy.value}"
            retry = True
        else:
            attempt = previous_attempts
            self.log_retry_attempt(loop, failure.category, attempt, strategy, "exhausted")
            outcome = RetryOutcome(proceed=False, strategy=strategy)
            reason = f"retry budget exhausted after {attempt} attempts"
            retry = False

        _logger.info(
            "retry_strategy.decision",
            signature=failure.signature,
            category=failure.category.value,
            strategy=strategy.value,
            attempt=attempt,
            should_retry=retry,
            loop=loop,
            reason=reason,
        )
        return RetryDecision(
            failure=failure,
            strategy=strategy,
            attempt=attempt,
            should_retry=retry,
            outcome=outcome,
            reason=reason,
        )
