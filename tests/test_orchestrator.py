"""Tests for warden.execution.orchestrator module."""

import pytest

from warden.core.checkpoint import RepoStatusValue
from warden.core.errors import (
    NoOrchestrationError,
    OrchestrationError,
    RepoBlockedError,
    UnknownRepoError,
)
from warden.execution.dag import RepoGraph, RepoNode, load_repo_config
from warden.execution.orchestrator import JobResult, Orchestrator
from warden.state.base import ORCHESTRATION_STATE


def make_graph(*entries: tuple) -> RepoGraph:
    """Build a graph from (name, deps[, priority]) tuples."""
    declaration = []
    for item in entries:
        name, deps, *rest = item
        repo = {"name": name, "path": name, "deps": list(deps)}
        if rest:
            repo["priority"] = rest[0]
        declaration.append(repo)
    return load_repo_config(declaration, check_paths=False)


@pytest.fixture
def chain() -> RepoGraph:
    return make_graph(("a", []), ("b", ["a"]), ("c", ["b"]))


@pytest.fixture
def orchestrator(store, audit) -> Orchestrator:
    return Orchestrator(store, audit=audit)


class TestInitOrchestrationState:
    """Tests for state initialization."""

    def test_fresh_state(self, orchestrator, chain, store):
        state = orchestrator.init_orchestration_state(chain)

        assert state.active
        assert list(state.repos) == ["a", "b", "c"]
        assert all(r.status == RepoStatusValue.PENDING for r in state.repos.values())
        assert state.repos["b"].blocked_by == {"a"}
        assert state.total_cost_usd == 0
        assert state.current_repo is None
        assert ORCHESTRATION_STATE in store.documents

    def test_unseeded_state_starts_unblocked(self, orchestrator, chain):
        state = orchestrator.init_orchestration_state(chain, seed_dependencies=False)
        assert all(not r.blocked_by for r in state.repos.values())

    def test_init_is_idempotent(self, orchestrator, chain):
        orchestrator.init_orchestration_state(chain)
        orchestrator.mark_repo_started("a")
        orchestrator.mark_repo_complete("a", loops=3, cost_usd=1.5)

        orchestrator.init_orchestration_state(chain)
        first = orchestrator.get_status()
        orchestrator.init_orchestration_state(chain)
        second = orchestrator.get_status()

        assert first["repos"] == second["repos"]
        assert second["completed"] == 0
        assert second["total_cost_usd"] == 0

    def test_emits_audit_event(self, orchestrator, chain, audit):
        orchestrator.init_orchestration_state(chain)
        event = audit.events("orchestration_started")[0]
        assert event.details == {"repo_count": 3}


class TestGetNextRepo:
    """Tests for next-repo selection."""

    def test_none_without_state(self, orchestrator):
        assert orchestrator.get_next_repo() is None

    def test_follows_chain(self, orchestrator, chain):
        orchestrator.init_orchestration_state(chain)
        seen = []
        while (name := orchestrator.get_next_repo()) is not None:
            seen.append(name)
            orchestrator.mark_repo_started(name)
            orchestrator.mark_repo_complete(name)
        assert seen == ["a", "b", "c"]

    def test_priority_then_declaration_order(self, orchestrator):
        graph = make_graph(("x", [], 5), ("y", []), ("z", [], 5))
        orchestrator.init_orchestration_state(graph)
        assert orchestrator.get_next_repo() == "x"
        orchestrator.mark_repo_started("x")
        orchestrator.mark_repo_complete("x")
        assert orchestrator.get_next_repo() == "z"

    def test_in_progress_repo_is_offered_again(self, orchestrator, chain):
        orchestrator.init_orchestration_state(chain)
        orchestrator.mark_repo_started("a")
        assert orchestrator.get_next_repo() == "a"

    def test_none_when_everything_is_blocked(self, orchestrator, chain):
        orchestrator.init_orchestration_state(chain)
        orchestrator.mark_repo_started("a")
        orchestrator.mark_repo_blocked("a", "tests failing")
        assert orchestrator.get_next_repo() is None


class TestMarkRepo:
    """Tests for start/complete/block/unblock."""

    def test_start_blocked_repo_raises(self, orchestrator, chain):
        orchestrator.init_orchestration_state(chain)
        assert orchestrator.is_repo_blocked("b")
        with pytest.raises(RepoBlockedError) as exc_info:
            orchestrator.mark_repo_started("b")
        assert exc_info.value.blocked_by == ["a"]

    def test_start_sets_current(self, orchestrator, chain):
        orchestrator.init_orchestration_state(chain)
        orchestrator.mark_repo_started("a")
        status = orchestrator.get_status()
        assert status["current_repo"] == "a"
        assert status["repos"]["a"]["status"] == "in_progress"

    def test_complete_unblocks_dependents(self, orchestrator, chain, audit):
        orchestrator.init_orchestration_state(chain)
        orchestrator.mark_repo_started("a")
        orchestrator.mark_repo_complete("a", loops=4, cost_usd=0.75)

        assert not orchestrator.is_repo_blocked("b")
        assert orchestrator.is_repo_blocked("c")
        status = orchestrator.get_status()
        assert status["current_repo"] is None
        assert status["completed_repos"] == ["a"]
        assert status["repos"]["a"]["loops"] == 4
        assert audit.events("repo_completed")[0].details["repo"] == "a"

    def test_total_cost_is_sum(self, orchestrator):
        graph = make_graph(("a", []), ("b", []))
        orchestrator.init_orchestration_state(graph)
        orchestrator.mark_repo_complete("a", cost_usd=1.25)
        orchestrator.mark_repo_complete("b", cost_usd=2.5)
        assert orchestrator.get_status()["total_cost_usd"] == pytest.approx(3.75)
        assert orchestrator.get_status()["completed_repos"] == ["a", "b"]

    def test_cannot_complete_twice(self, orchestrator, chain):
        orchestrator.init_orchestration_state(chain)
        orchestrator.mark_repo_complete("a", cost_usd=1.0)
        with pytest.raises(OrchestrationError, match="already completed"):
            orchestrator.mark_repo_complete("a", cost_usd=5.0)
        assert orchestrator.get_status()["total_cost_usd"] == pytest.approx(1.0)

    def test_cannot_complete_blocked_repo(self, orchestrator, chain):
        orchestrator.init_orchestration_state(chain)
        orchestrator.mark_repo_blocked("a", "boom")
        with pytest.raises(OrchestrationError, match="unblock"):
            orchestrator.mark_repo_complete("a")

        status = orchestrator.get_status()
        assert status["repos"]["a"]["status"] == "blocked"
        assert status["blocked_repos"] == ["a"]
        assert status["completed_repos"] == []
        assert orchestrator.is_repo_blocked("b")

    def test_cannot_block_completed_repo(self, orchestrator, chain):
        orchestrator.init_orchestration_state(chain)
        orchestrator.mark_repo_complete("a")
        with pytest.raises(OrchestrationError, match="already completed"):
            orchestrator.mark_repo_blocked("a", "late failure")

        status = orchestrator.get_status()
        assert status["repos"]["a"]["status"] == "completed"
        assert status["blocked"] == 0

    def test_blocked_repo_keeps_dependents_pending(self, orchestrator, chain, audit):
        orchestrator.init_orchestration_state(chain)
        orchestrator.mark_repo_started("a")
        orchestrator.mark_repo_blocked("a", "build broken")

        status = orchestrator.get_status()
        assert status["repos"]["a"]["status"] == "blocked"
        assert status["repos"]["a"]["block_reason"] == "build broken"
        assert status["blocked_repos"] == ["a"]
        assert status["repos"]["b"]["blocked_by"] == ["a"]
        assert audit.events("repo_blocked")[0].details["reason"] == "build broken"

    def test_cannot_start_blocked_status(self, orchestrator, chain):
        orchestrator.init_orchestration_state(chain)
        orchestrator.mark_repo_blocked("a", "nope")
        with pytest.raises(OrchestrationError, match="unblock"):
            orchestrator.mark_repo_started("a")

    def test_unblock_returns_to_pending(self, orchestrator, chain, audit):
        orchestrator.init_orchestration_state(chain)
        orchestrator.mark_repo_blocked("a", "flaky")
        orchestrator.unblock_repo("a")

        status = orchestrator.get_status()
        assert status["repos"]["a"]["status"] == "pending"
        assert status["blocked_repos"] == []
        assert orchestrator.get_next_repo() == "a"
        assert audit.events("repo_unblocked")[0].details["previous_reason"] == "flaky"

    def test_unblock_requires_blocked_repo(self, orchestrator, chain):
        orchestrator.init_orchestration_state(chain)
        with pytest.raises(OrchestrationError, match="not blocked"):
            orchestrator.unblock_repo("a")

    def test_unknown_repo(self, orchestrator, chain):
        orchestrator.init_orchestration_state(chain)
        with pytest.raises(UnknownRepoError):
            orchestrator.mark_repo_complete("ghost")

    def test_operations_without_state(self, orchestrator):
        with pytest.raises(NoOrchestrationError):
            orchestrator.get_status()
        with pytest.raises(NoOrchestrationError):
            orchestrator.is_repo_blocked("a")


class TestRun:
    """Tests for the sequential run loop."""

    def test_runs_in_dependency_order(self, orchestrator, chain, audit):
        ran: list[str] = []

        def runner(node: RepoNode) -> JobResult:
            ran.append(node.name)
            return JobResult(completed=True, loops=2, cost_usd=0.5)

        report = orchestrator.run(chain, runner)

        assert ran == ["a", "b", "c"]
        assert report["completed"] == 3
        assert report["total_cost_usd"] == pytest.approx(1.5)
        assert report["active"] is False
        assert audit.events("orchestration_completed")[0].details["completed"] == 3

    def test_failure_does_not_abort_siblings(self, orchestrator):
        graph = make_graph(("a", []), ("b", ["a"]), ("c", []), ("d", ["c"]))

        def runner(node: RepoNode) -> JobResult:
            if node.name == "a":
                return JobResult(completed=False, loops=1, reason="tests failing")
            return JobResult(completed=True, loops=1)

        report = orchestrator.run(graph, runner)

        assert report["repos"]["a"]["status"] == "blocked"
        assert report["repos"]["b"]["status"] == "pending"
        assert report["repos"]["b"]["blocked_by"] == ["a"]
        assert report["repos"]["c"]["status"] == "completed"
        assert report["repos"]["d"]["status"] == "completed"
        assert report["pending"] == 1

    def test_exception_in_job_blocks_repo(self, orchestrator):
        graph = make_graph(("a", []), ("b", []))

        def runner(node: RepoNode) -> JobResult:
            if node.name == "a":
                raise RuntimeError("worker crashed")
            return JobResult(completed=True)

        report = orchestrator.run(graph, runner)

        assert report["repos"]["a"]["status"] == "blocked"
        assert "worker crashed" in report["repos"]["a"]["block_reason"]
        assert report["repos"]["b"]["status"] == "completed"

    def test_diamond_waits_for_both_branches(self, orchestrator):
        graph = make_graph(("a", []), ("b", ["a"]), ("c", ["a"]), ("d", ["b", "c"]))
        ran: list[str] = []

        def runner(node: RepoNode) -> JobResult:
            ran.append(node.name)
            return JobResult(completed=True)

        orchestrator.run(graph, runner)
        assert ran == ["a", "b", "c", "d"]
