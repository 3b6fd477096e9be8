"""Persisted state documents.

Each concern owns one document that is loaded before and stored after
every mutation, so a session survives process restarts:

- retry state: per-signature attempt counts
- circuit breaker state: loop health counters
- orchestration state: per-repo progress across a job graph

Append-only records (retry attempts, circuit transitions, audit events)
are modeled here too.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from warden.core.errors import ErrorCategory
from warden.utils.time import utc_now

DEFAULT_REPO_PRIORITY = 999


class CircuitState(str, Enum):
    """State of the loop-level circuit breaker."""

    CLOSED = "closed"
    """Normal operation - loops may run."""

    HALF_OPEN = "half_open"
    """Probation - the next loop decides between CLOSED and OPEN."""

    OPEN = "open"
    """Halted - no new loops until cooldown or manual reset."""


class RepoStatusValue(str, Enum):
    """Lifecycle status of a repository job."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    BLOCKED = "blocked"


# =============================================================================
# Retry state
# =============================================================================


class RetryStateEntry(BaseModel):
    """Retry bookkeeping for one error signature."""

    category: ErrorCategory = ErrorCategory.UNKNOWN
    attempt_count: int = Field(default=0, ge=0)
    last_attempt_timestamp: datetime | None = None
    last_loop: int = 0
    last_outcome: str | None = None


class RetryStateDocument(BaseModel):
    """All retry state, keyed by error signature."""

    errors: dict[str, RetryStateEntry] = Field(default_factory=dict)


class RetryAttemptRecord(BaseModel):
    """Immutable record of one execute_retry() invocation."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=utc_now)
    loop: int
    error_category: ErrorCategory
    attempt: int
    strategy: str
    outcome: str


# =============================================================================
# Circuit breaker state
# =============================================================================


class CircuitBreakerState(BaseModel):
    """Process-wide circuit breaker record."""

    state: CircuitState = CircuitState.CLOSED
    consecutive_no_progress: int = 0
    consecutive_same_error: int = 0
    output_decline_pct: float = 0.0
    consecutive_permission_denials: int = 0
    last_transition_reason: str | None = None

    # Bookkeeping needed to compute the counters on the next loop
    last_error_signature: str | None = None
    recent_output_lengths: list[int] = Field(default_factory=list)
    opened_at: datetime | None = None
    last_loop: int = 0
    updated_at: datetime = Field(default_factory=utc_now)


class CircuitTransition(BaseModel):
    """Immutable record of one circuit state transition."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=utc_now)
    from_state: CircuitState
    to_state: CircuitState
    reason: str
    loop: int


# =============================================================================
# Orchestration state
# =============================================================================


class RepoStatus(BaseModel):
    """Progress of one repository job."""

    status: RepoStatusValue = RepoStatusValue.PENDING
    loops: int = 0
    cost_usd: float = 0.0
    priority: int = DEFAULT_REPO_PRIORITY
    blocked_by: set[str] = Field(default_factory=set)
    block_reason: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None


class OrchestrationState(BaseModel):
    """State of one loaded job graph.

    ``repos`` keeps the graph's declaration order, which is the final
    tie-breaker when picking the next repo.
    """

    active: bool = True
    started_at: datetime = Field(default_factory=utc_now)
    repos: dict[str, RepoStatus] = Field(default_factory=dict)
    completed_repos: list[str] = Field(default_factory=list)
    blocked_repos: list[str] = Field(default_factory=list)
    total_cost_usd: float = 0.0
    current_repo: str | None = None
    updated_at: datetime = Field(default_factory=utc_now)

    def count(self, status: RepoStatusValue) -> int:
        """Number of repos currently in ``status``."""
        return sum(1 for repo in self.repos.values() if repo.status == status)


# =============================================================================
# Audit events
# =============================================================================


class AuditEvent(BaseModel):
    """One entry of the append-only audit log."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=utc_now)
    event_type: str
    session_id: str = ""
    loop_number: int = 0
    details: dict[str, Any] = Field(default_factory=dict)
