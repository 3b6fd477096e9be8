"""Execution layer for Warden.

Contains the retry decision engine, circuit breaker, repository dependency
graph, orchestrator and the reference loop supervisor.
"""

from warden.execution.circuit_breaker import CircuitBreaker, CircuitState, LoopOutcome
from warden.execution.dag import (
    RepoGraph,
    RepoNode,
    build_repo_graph,
    detect_circular_dependencies,
    load_repo_config,
    resolve_execution_order,
)
from warden.execution.orchestrator import JobResult, Orchestrator
from warden.execution.retry_strategy import (
    RetryDecision,
    RetryEngine,
    RetryOutcome,
    RetryStrategy,
    calculate_backoff,
    get_retry_hint,
    get_retry_strategy,
    should_retry,
)
from warden.execution.supervisor import LoopContext, LoopResult, LoopSupervisor

__all__ = [
    "CircuitBreaker",
    "CircuitState",
    "JobResult",
    "LoopContext",
    "LoopOutcome",
    "LoopResult",
    "LoopSupervisor",
    "Orchestrator",
    "RepoGraph",
    "RepoNode",
    "RetryDecision",
    "RetryEngine",
    "RetryOutcome",
    "RetryStrategy",
    "build_repo_graph",
    "calculate_backoff",
    "detect_circular_dependencies",
    "get_retry_hint",
    "get_retry_strategy",
    "load_repo_config",
    "resolve_execution_order",
    "should_retry",
]
