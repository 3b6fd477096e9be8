"""Multi-repository orchestration.

Tracks per-repository progress across a validated RepoGraph and runs the
jobs one at a time in dependency order. A repository becomes eligible once
every repository it depends on has completed. A failed job is marked
blocked; its siblings keep running, and its dependents stay pending until
an operator unblocks and reruns it.

State lives in a single ``orchestration_state`` document that is saved
after every mutation, so ``warden status`` can observe a run in progress
and a crashed run can be inspected afterwards.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from warden.core.checkpoint import OrchestrationState, RepoStatus, RepoStatusValue
from warden.core.errors import (
    NoOrchestrationError,
    OrchestrationError,
    RepoBlockedError,
    UnknownRepoError,
)
from warden.core.logging import ExecutionContext, get_current_context, get_logger, with_context
from warden.execution.dag import RepoGraph, RepoNode
from warden.state.audit import AuditLog
from warden.state.base import ORCHESTRATION_STATE, StateStore
from warden.utils.time import utc_now

_logger = get_logger("orchestrator")


@dataclass(frozen=True)
class JobResult:
    """Outcome of running one repository job.

    Attributes:
        completed: True only if the job finished its work.
        loops: Loops the job executed.
        cost_usd: Cost the job reported.
        reason: Why the job stopped when it did not complete.
    """

    completed: bool
    loops: int = 0
    cost_usd: float = 0.0
    reason: str | None = None


JobRunner = Callable[[RepoNode], JobResult]


class Orchestrator:
    """Scheduler over one orchestration state document."""

    def __init__(self, store: StateStore, audit: AuditLog | None = None) -> None:
        self._store = store
        self._audit = audit

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load_state(self) -> OrchestrationState | None:
        """The current state document, or None if none was initialized."""
        return self._store.load_model(ORCHESTRATION_STATE, OrchestrationState)

    def _require_state(self) -> OrchestrationState:
        state = self.load_state()
        if state is None:
            raise NoOrchestrationError()
        return state

    def _require_repo(self, state: OrchestrationState, name: str) -> RepoStatus:
        repo = state.repos.get(name)
        if repo is None:
            raise UnknownRepoError(name)
        return repo

    def _save(self, state: OrchestrationState) -> None:
        state.updated_at = utc_now()
        self._store.save_model(ORCHESTRATION_STATE, state)

    def _record(self, event_type: str, **details: Any) -> None:
        if self._audit is not None:
            self._audit.record(event_type, **details)

    # ------------------------------------------------------------------
    # State operations
    # ------------------------------------------------------------------

    def init_orchestration_state(
        self, graph: RepoGraph, seed_dependencies: bool = True
    ) -> OrchestrationState:
        """Create a fresh state for ``graph``, replacing any previous one.

        Args:
            graph: Validated repository graph.
            seed_dependencies: Start each repo blocked by its dependencies.
                When False every repo starts unblocked, and dependency
                order is left to the caller.
        """
        state = OrchestrationState(
            repos={
                node.name: RepoStatus(
                    priority=node.priority,
                    blocked_by=set(node.deps) if seed_dependencies else set(),
                )
                for node in graph
            }
        )
        self._save(state)
        _logger.info(
            "orchestrator.started",
            repo_count=len(graph),
            seed_dependencies=seed_dependencies,
        )
        self._record("orchestration_started", repo_count=len(graph))
        return state

    def get_next_repo(self) -> str | None:
        """Next repository to work on.

        Only pending or in-progress repos with nothing outstanding qualify.
        Lowest priority wins, then declaration order.

        Returns:
            The repo name, or None when nothing can run.
        """
        state = self.load_state()
        if state is None:
            return None
        candidates = [
            (repo.priority, position, name)
            for position, (name, repo) in enumerate(state.repos.items())
            if repo.status in (RepoStatusValue.PENDING, RepoStatusValue.IN_PROGRESS)
            and not repo.blocked_by
        ]
        if not candidates:
            return None
        return min(candidates)[2]

    def is_repo_blocked(self, name: str) -> bool:
        """True iff the repo still waits on at least one dependency."""
        state = self._require_state()
        return bool(self._require_repo(state, name).blocked_by)

    def mark_repo_started(self, name: str) -> None:
        """Move a repo to in_progress and make it current.

        Raises:
            RepoBlockedError: If dependencies are outstanding.
            OrchestrationError: If the repo is completed or blocked.
        """
        state = self._require_state()
        repo = self._require_repo(state, name)
        if repo.blocked_by:
            raise RepoBlockedError(name, repo.blocked_by)
        if repo.status == RepoStatusValue.COMPLETED:
            raise OrchestrationError(f"Repo '{name}' is already completed")
        if repo.status == RepoStatusValue.BLOCKED:
            raise OrchestrationError(
                f"Repo '{name}' is blocked: {repo.block_reason}; unblock it first"
            )

        repo.status = RepoStatusValue.IN_PROGRESS
        if repo.started_at is None:
            repo.started_at = utc_now()
        state.current_repo = name
        self._save(state)
        _logger.info("orchestrator.repo_started", repo=name)

    def mark_repo_complete(self, name: str, loops: int = 0, cost_usd: float = 0.0) -> None:
        """Record a finished repo and release everything waiting on it.

        Raises:
            OrchestrationError: If the repo is already completed or blocked.
        """
        state = self._require_state()
        repo = self._require_repo(state, name)
        if repo.status == RepoStatusValue.COMPLETED:
            raise OrchestrationError(f"Repo '{name}' is already completed")
        if repo.status == RepoStatusValue.BLOCKED:
            raise OrchestrationError(
                f"Repo '{name}' is blocked: {repo.block_reason}; unblock it first"
            )

        repo.status = RepoStatusValue.COMPLETED
        repo.loops = loops
        repo.cost_usd = cost_usd
        repo.completed_at = utc_now()
        if name not in state.completed_repos:
            state.completed_repos.append(name)
        state.total_cost_usd = sum(r.cost_usd for r in state.repos.values())

        unblocked = []
        for other_name, other in state.repos.items():
            if name in other.blocked_by:
                other.blocked_by.discard(name)
                if not other.blocked_by:
                    unblocked.append(other_name)
        if state.current_repo == name:
            state.current_repo = None
        self._save(state)

        _logger.info(
            "orchestrator.repo_completed",
            repo=name,
            loops=loops,
            cost_usd=cost_usd,
            ready=unblocked,
        )
        self._record("repo_completed", repo=name, loops=loops, cost_usd=cost_usd)

    def mark_repo_blocked(
        self,
        name: str,
        reason: str = "Unknown error",
        loops: int = 0,
        cost_usd: float = 0.0,
    ) -> None:
        """Record a failed repo. Its dependents stay pending.

        Raises:
            OrchestrationError: If the repo is already completed.
        """
        state = self._require_state()
        repo = self._require_repo(state, name)
        if repo.status == RepoStatusValue.COMPLETED:
            raise OrchestrationError(f"Repo '{name}' is already completed")

        repo.status = RepoStatusValue.BLOCKED
        repo.block_reason = reason
        repo.loops = loops
        repo.cost_usd = cost_usd
        if name not in state.blocked_repos:
            state.blocked_repos.append(name)
        state.total_cost_usd = sum(r.cost_usd for r in state.repos.values())
        if state.current_repo == name:
            state.current_repo = None
        self._save(state)

        _logger.warning("orchestrator.repo_blocked", repo=name, reason=reason)
        self._record("repo_blocked", repo=name, reason=reason)

    def unblock_repo(self, name: str) -> None:
        """Return a blocked repo to pending so it can be run again.

        Raises:
            OrchestrationError: If the repo is not blocked.
        """
        state = self._require_state()
        repo = self._require_repo(state, name)
        if repo.status != RepoStatusValue.BLOCKED:
            raise OrchestrationError(f"Repo '{name}' is not blocked ({repo.status.value})")

        previous_reason = repo.block_reason
        repo.status = RepoStatusValue.PENDING
        repo.block_reason = None
        state.blocked_repos = [r for r in state.blocked_repos if r != name]
        state.active = True
        self._save(state)

        _logger.info("orchestrator.repo_unblocked", repo=name, previous_reason=previous_reason)
        self._record("repo_unblocked", repo=name, previous_reason=previous_reason)

    def get_status(self) -> dict[str, Any]:
        """Aggregate report of the current orchestration.

        Raises:
            NoOrchestrationError: If no state was initialized.
        """
        state = self._require_state()
        return {
            "active": state.active,
            "started_at": state.started_at.isoformat(),
            "total_repos": len(state.repos),
            "completed": len(state.completed_repos),
            "blocked": len(state.blocked_repos),
            "pending": state.count(RepoStatusValue.PENDING),
            "in_progress": state.count(RepoStatusValue.IN_PROGRESS),
            "current_repo": state.current_repo,
            "total_cost_usd": state.total_cost_usd,
            "completed_repos": list(state.completed_repos),
            "blocked_repos": list(state.blocked_repos),
            "repos": {
                name: {
                    "status": repo.status.value,
                    "loops": repo.loops,
                    "cost_usd": repo.cost_usd,
                    "priority": repo.priority,
                    "blocked_by": sorted(repo.blocked_by),
                    "block_reason": repo.block_reason,
                }
                for name, repo in state.repos.items()
            },
        }

    # ------------------------------------------------------------------
    # Run loop
    # ------------------------------------------------------------------

    def run(
        self,
        graph: RepoGraph,
        job_runner: JobRunner,
        seed_dependencies: bool = True,
    ) -> dict[str, Any]:
        """Run every reachable job in ``graph`` one at a time.

        A job that raises is treated as blocked with the exception text as
        its reason; remaining jobs keep running.

        Returns:
            The final status report, as from get_status().
        """
        self.init_orchestration_state(graph, seed_dependencies=seed_dependencies)
        base_ctx = get_current_context() or ExecutionContext(component="orchestrator")

        while (name := self.get_next_repo()) is not None:
            node = graph.get(name)
            self.mark_repo_started(name)

            with with_context(base_ctx.with_repo(name)):
                try:
                    result = job_runner(node)
                except Exception as e:
                    _logger.exception("orchestrator.job_failed", repo=name)
                    result = JobResult(completed=False, reason=f"{type(e).__name__}: {e}")

            if result.completed:
                self.mark_repo_complete(name, result.loops, result.cost_usd)
            else:
                self.mark_repo_blocked(
                    name,
                    result.reason or "Unknown error",
                    loops=result.loops,
                    cost_usd=result.cost_usd,
                )

        state = self._require_state()
        state.active = False
        state.current_repo = None
        self._save(state)

        report = self.get_status()
        _logger.info(
            "orchestrator.finished",
            completed=report["completed"],
            blocked=report["blocked"],
            pending=report["pending"],
            total_cost_usd=report["total_cost_usd"],
        )
        self._record(
            "orchestration_completed",
            completed=report["completed"],
            blocked=report["blocked"],
            pending=report["pending"],
            total_cost_usd=report["total_cost_usd"],
        )
        return report
