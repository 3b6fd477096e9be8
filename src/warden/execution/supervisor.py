"""Reference execution coordinator.

Drives a caller-supplied worker through the retry engine and circuit
breaker. Each loop:

1. Stop if the circuit breaker is OPEN.
2. Run the worker with any pending hint or session reset.
3. Record the loop's health in the circuit breaker.
4. On failure, route the classified error through RetryEngine.decide()
   and stop when it escalates.

The worker does the actual work (typically invoking an external coding
assistant) and reports what happened in a LoopResult.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from warden.core.checkpoint import CircuitState
from warden.core.errors import ClassifiedFailure, ErrorCategory, ErrorClassifier
from warden.core.logging import ExecutionContext, get_current_context, get_logger, with_context
from warden.execution.circuit_breaker import CircuitBreaker, LoopOutcome
from warden.execution.dag import RepoNode
from warden.execution.orchestrator import JobResult, JobRunner
from warden.execution.retry_strategy import RESET_SESSION_ACTION, RetryEngine

_logger = get_logger("supervisor")

DEFAULT_MAX_LOOPS = 100


@dataclass(frozen=True)
class LoopContext:
    """Inputs handed to the worker for one loop.

    Attributes:
        loop: 1-indexed loop number within this job.
        repo: Repository being worked on, None outside orchestration.
        hint: Remediation hint from the previous failure, if any.
        reset_session: Whether the worker should start a fresh session.
    """

    loop: int
    repo: RepoNode | None = None
    hint: str | None = None
    reset_session: bool = False


@dataclass(frozen=True)
class LoopResult:
    """What the worker reports after one loop.

    A loop failed when ``error_message`` or ``error_category`` is set.
    """

    done: bool = False
    files_changed: int = 0
    output_length: int | None = None
    cost_usd: float = 0.0
    error_message: str | None = None
    error_category: ErrorCategory | str | None = None
    permission_denied: bool = False

    @property
    def failed(self) -> bool:
        return self.error_message is not None or self.error_category is not None


Worker = Callable[[LoopContext], LoopResult]


class LoopSupervisor:
    """Runs one job to completion, escalation or the loop limit."""

    def __init__(
        self,
        worker: Worker,
        retry_engine: RetryEngine,
        circuit_breaker: CircuitBreaker,
        max_loops: int = DEFAULT_MAX_LOOPS,
        classifier: ErrorClassifier | None = None,
    ) -> None:
        if max_loops < 1:
            raise ValueError(f"max_loops must be at least 1, got {max_loops}")
        self.worker = worker
        self.retry_engine = retry_engine
        self.circuit_breaker = circuit_breaker
        self.max_loops = max_loops
        self.classifier = classifier

    def _classify(self, result: LoopResult) -> ClassifiedFailure | None:
        if not result.failed:
            return None
        message = result.error_message or ""
        if result.error_category is None and self.classifier is not None:
            return ClassifiedFailure.from_classifier(self.classifier, message)
        return ClassifiedFailure.from_message(message, result.error_category)

    def run(self, repo: RepoNode | None = None) -> JobResult:
        """Drive the worker until it reports done or the job must stop."""
        base_ctx = get_current_context() or ExecutionContext(component="supervisor")
        if repo is not None and base_ctx.repo != repo.name:
            base_ctx = base_ctx.with_repo(repo.name)

        loops = 0
        cost = 0.0

        for loop in range(1, self.max_loops + 1):
            with with_context(base_ctx.with_loop(loop)):
                if not self.circuit_breaker.can_execute():
                    reason = self.circuit_breaker.state.last_transition_reason
                    _logger.warning("supervisor.circuit_open", loop=loop, reason=reason)
                    return JobResult(
                        completed=False,
                        loops=loops,
                        cost_usd=cost,
                        reason=f"circuit breaker open: {reason}",
                    )

                reset_session = self.retry_engine.consume_pending_action() == RESET_SESSION_ACTION
                if reset_session:
                    self.retry_engine.reset_retry_state()
                ctx = LoopContext(
                    loop=loop,
                    repo=repo,
                    hint=self.retry_engine.consume_pending_hint(),
                    reset_session=reset_session,
                )

                result = self.worker(ctx)
                loops += 1
                cost += result.cost_usd

                failure = self._classify(result)
                state = self.circuit_breaker.record_loop_result(
                    LoopOutcome(
                        loop=loop,
                        files_changed=result.files_changed,
                        error_signature=failure.signature if failure else None,
                        output_length=result.output_length,
                        permission_denied=result.permission_denied,
                    )
                )

                if result.done:
                    _logger.info("supervisor.job_done", loops=loops, cost_usd=cost)
                    return JobResult(completed=True, loops=loops, cost_usd=cost)

                if state == CircuitState.OPEN:
                    reason = self.circuit_breaker.state.last_transition_reason
                    return JobResult(
                        completed=False,
                        loops=loops,
                        cost_usd=cost,
                        reason=f"circuit breaker open: {reason}",
                    )

                if failure is not None:
                    decision = self.retry_engine.decide(failure, loop)
                    if decision.escalate:
                        _logger.warning(
                            "supervisor.escalated",
                            loop=loop,
                            category=failure.category.value,
                            reason=decision.reason,
                        )
                        reason = f"{failure.category.value}: {decision.reason}"
                        if failure.message:
                            reason = f"{reason} ({failure.message})"
                        return JobResult(
                            completed=False,
                            loops=loops,
                            cost_usd=cost,
                            reason=reason,
                        )

        _logger.warning("supervisor.max_loops_reached", max_loops=self.max_loops)
        return JobResult(
            completed=False,
            loops=loops,
            cost_usd=cost,
            reason=f"max loops ({self.max_loops}) reached",
        )

    @staticmethod
    def as_job_runner(factory: Callable[[RepoNode], LoopSupervisor]) -> JobRunner:
        """Adapt a per-repo supervisor factory for Orchestrator.run().

        Example:
            runner = LoopSupervisor.as_job_runner(
                lambda node: LoopSupervisor(make_worker(node), engine, breaker)
            )
            Orchestrator(store).run(graph, runner)
        """

        def run_job(node: RepoNode) -> JobResult:
            return factory(node).run(repo=node)

        return run_job
