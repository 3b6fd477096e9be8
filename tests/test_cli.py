"""Tests for Warden CLI commands."""

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from warden import __version__
from warden.cli import app
from warden.core.checkpoint import CircuitState
from warden.core.errors import ErrorCategory
from warden.execution.circuit_breaker import CircuitBreaker, LoopOutcome
from warden.execution.retry_strategy import RetryEngine
from warden.state import JsonStateStore

runner = CliRunner()


@pytest.fixture
def state_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolated state directory; cwd moves so no stray .warden.yaml is read."""
    monkeypatch.chdir(tmp_path)
    return tmp_path / "state"


@pytest.fixture
def invoke(state_dir: Path):
    """Invoke the app against the isolated state directory."""

    def _invoke(*args: str):
        return runner.invoke(
            app, ["--log-level", "ERROR", "--state-dir", str(state_dir), *args]
        )

    return _invoke


@pytest.fixture
def chain_config(write_repo_config) -> Path:
    return write_repo_config(
        [
            {"name": "a", "path": "a", "deps": []},
            {"name": "b", "path": "b", "deps": ["a"]},
            {"name": "c", "path": "c", "deps": ["b"]},
        ]
    )


class TestVersion:
    """Tests for the --version flag."""

    def test_version(self) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"Warden v{__version__}" in result.stdout


class TestValidateCommand:
    """Tests for the validate command."""

    def test_valid_config(self, invoke, chain_config: Path) -> None:
        result = invoke("validate", str(chain_config))
        assert result.exit_code == 0
        assert "3 repos, no circular dependencies" in result.stdout

    def test_valid_config_json(self, invoke, chain_config: Path) -> None:
        result = invoke("validate", str(chain_config), "--json")
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["valid"] is True
        assert data["execution_order"] == ["a", "b", "c"]
        assert [r["name"] for r in data["repos"]] == ["a", "b", "c"]

    def test_cycle_is_rejected(self, invoke, write_repo_config) -> None:
        path = write_repo_config(
            [
                {"name": "a", "path": "a", "deps": ["b"]},
                {"name": "b", "path": "b", "deps": ["a"]},
            ]
        )
        result = invoke("validate", str(path), "--json")
        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["success"] is False
        assert "Circular dependency detected: a -> b -> a" in data["message"]

    def test_missing_file(self, invoke, tmp_path: Path) -> None:
        result = invoke("validate", str(tmp_path / "nope.json"))
        assert result.exit_code == 1
        assert "Invalid repo config" in result.stdout

    def test_missing_repo_directory(self, invoke, write_repo_config) -> None:
        path = write_repo_config([{"name": "x", "path": "nowhere", "deps": []}])
        result = invoke("validate", str(path), "--json")
        assert result.exit_code == 1
        assert "nowhere" in json.loads(result.stdout)["message"]


class TestOrchestrateCommand:
    """Tests for the orchestrate command."""

    def test_dry_run(self, invoke, chain_config: Path, state_dir: Path) -> None:
        result = invoke("orchestrate", str(chain_config), "--dry-run", "--json")
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["dry_run"] is True
        assert data["execution_order"] == ["a", "b", "c"]
        assert not (state_dir / "orchestration_state.json").exists()

    def test_dry_run_text(self, invoke, chain_config: Path) -> None:
        result = invoke("orchestrate", str(chain_config), "--dry-run")
        assert result.exit_code == 0
        assert "Dry run" in result.stdout

    def test_requires_command(self, invoke, chain_config: Path) -> None:
        result = invoke("orchestrate", str(chain_config))
        assert result.exit_code == 1
        assert "Nothing to run" in result.stdout

    def test_runs_command_in_dependency_order(
        self, invoke, chain_config: Path, repo_dirs: Path
    ) -> None:
        result = invoke(
            "orchestrate", str(chain_config), "--command", "echo $WARDEN_REPO >> ../ran.txt",
            "--json",
        )
        assert result.exit_code == 0, result.stdout
        report = json.loads(result.stdout)
        assert report["completed"] == 3
        assert report["active"] is False
        assert (repo_dirs / "ran.txt").read_text().split() == ["a", "b", "c"]

    def test_failing_repo_blocks_its_dependents(
        self, invoke, chain_config: Path, state_dir: Path
    ) -> None:
        result = invoke(
            "orchestrate", str(chain_config), "--command", 'test "$WARDEN_REPO" != a',
            "--json",
        )
        assert result.exit_code == 1
        report = json.loads(result.stdout)
        assert report["repos"]["a"]["status"] == "blocked"
        assert "exited with code 1" in report["repos"]["a"]["block_reason"]
        assert report["repos"]["b"]["status"] == "pending"
        assert report["repos"]["c"]["status"] == "pending"

        status = invoke("status", "--json")
        assert json.loads(status.stdout)["blocked_repos"] == ["a"]

    def test_failures_do_not_trip_circuit_for_independent_repos(
        self, invoke, write_repo_config
    ) -> None:
        path = write_repo_config(
            [{"name": name, "path": name, "deps": []} for name in ("a", "b", "c", "d")]
        )
        result = invoke(
            "orchestrate", str(path), "--command", 'test "$WARDEN_REPO" = d', "--json"
        )
        assert result.exit_code == 1
        repos = json.loads(result.stdout)["repos"]
        for name in ("a", "b", "c"):
            assert repos[name]["status"] == "blocked"
            assert "circuit breaker" not in repos[name]["block_reason"]
        assert repos["d"]["status"] == "completed"

    def test_open_circuit_from_earlier_run_does_not_block(
        self, invoke, chain_config: Path, state_dir: Path
    ) -> None:
        breaker = CircuitBreaker(store=JsonStateStore(state_dir))
        for loop in range(1, 4):
            breaker.record_loop_result(LoopOutcome(loop=loop))
        assert breaker.get_state() == CircuitState.OPEN

        result = invoke("orchestrate", str(chain_config), "--command", "true", "--json")
        assert result.exit_code == 0, result.stdout
        assert json.loads(result.stdout)["completed"] == 3

    def test_verbose_echoes_command_output(self, chain_config: Path, state_dir: Path) -> None:
        result = runner.invoke(
            app,
            [
                "--verbose", "--log-level", "ERROR", "--state-dir", str(state_dir),
                "orchestrate", str(chain_config), "--command", "echo hello-$WARDEN_REPO",
            ],
        )
        assert result.exit_code == 0, result.stdout
        for name in ("a", "b", "c"):
            assert f"hello-{name}" in result.stdout

    def test_command_output_hidden_by_default(self, invoke, chain_config: Path) -> None:
        result = invoke("orchestrate", str(chain_config), "--command", "echo hello-$WARDEN_REPO")
        assert result.exit_code == 0
        assert "hello-a" not in result.stdout


class TestStatusCommand:
    """Tests for the status command."""

    def test_no_orchestration(self, invoke) -> None:
        result = invoke("status")
        assert result.exit_code == 0
        assert "No orchestration in progress." in result.stdout

    def test_no_orchestration_json(self, invoke) -> None:
        result = invoke("status", "--json")
        assert json.loads(result.stdout) == {
            "active": False,
            "message": "No orchestration in progress.",
        }

    def test_table_after_run(self, invoke, chain_config: Path) -> None:
        invoke("orchestrate", str(chain_config), "--command", "true")
        result = invoke("status")
        assert result.exit_code == 0
        assert "completed" in result.stdout.lower()


class TestUnblockCommand:
    """Tests for the unblock command."""

    def test_unblock_then_rerun(self, invoke, chain_config: Path) -> None:
        invoke("orchestrate", str(chain_config), "--command", 'test "$WARDEN_REPO" != a')

        result = invoke("unblock", "a")
        assert result.exit_code == 0
        assert "unblocked" in result.stdout

        status = json.loads(invoke("status", "--json").stdout)
        assert status["repos"]["a"]["status"] == "pending"

    def test_unblock_not_blocked(self, invoke, chain_config: Path) -> None:
        invoke("orchestrate", str(chain_config), "--command", "true")
        result = invoke("unblock", "a")
        assert result.exit_code == 1
        assert "not blocked" in result.stdout

    def test_unblock_without_orchestration(self, invoke) -> None:
        result = invoke("unblock", "a")
        assert result.exit_code == 1


class TestCircuitCommands:
    """Tests for circuit status and reset."""

    def _open_circuit(self, state_dir: Path) -> None:
        breaker = CircuitBreaker(store=JsonStateStore(state_dir))
        for loop in range(1, 4):
            breaker.record_loop_result(LoopOutcome(loop=loop))

    def test_status_closed(self, invoke) -> None:
        result = invoke("circuit", "status", "--json")
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["state"] == "closed"
        assert data["history"] == []

    def test_status_open_text(self, invoke, state_dir: Path) -> None:
        self._open_circuit(state_dir)
        result = invoke("circuit", "status")
        assert result.exit_code == 0
        assert "OPEN" in result.stdout

    def test_reset(self, invoke, state_dir: Path) -> None:
        self._open_circuit(state_dir)

        result = invoke("circuit", "reset", "--reason", "fixed by hand")
        assert result.exit_code == 0

        breaker = CircuitBreaker(store=JsonStateStore(state_dir))
        assert breaker.get_state() == CircuitState.CLOSED
        assert breaker.state.last_transition_reason == "fixed by hand"


class TestRetryCommands:
    """Tests for retry status and reset."""

    def test_status_and_reset(self, invoke, state_dir: Path) -> None:
        engine = RetryEngine(store=JsonStateStore(state_dir), sleep=lambda _: None)
        engine.update_retry_state("abc123", ErrorCategory.TEST_FAILURE, "pending", loop=4)

        data = json.loads(invoke("retry", "status", "--json").stdout)
        assert data["errors"]["abc123"]["attempt_count"] == 1

        result = invoke("retry", "reset")
        assert result.exit_code == 0
        assert "Retry state reset." in result.stdout
        assert engine.get_all_retry_state() == {}

    def test_status_empty(self, invoke) -> None:
        result = invoke("retry", "status")
        assert result.exit_code == 0
        assert "No tracked errors." in result.stdout
