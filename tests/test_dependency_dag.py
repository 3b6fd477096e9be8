"""Tests for warden.execution.dag module."""

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from warden.core.errors import (
    CycleDetectedError,
    DuplicateRepoError,
    InvalidRepoConfigError,
    MissingFieldError,
    RepoConfigError,
    RepoConfigNotFoundError,
    RepoPathNotFoundError,
    UnknownDependencyError,
)
from warden.execution.dag import (
    RepoGraph,
    RepoNode,
    build_repo_graph,
    detect_circular_dependencies,
    load_repo_config,
    resolve_execution_order,
)


def entry(name: str, deps: list[str] | None = None, **extra) -> dict:
    return {"name": name, "path": name, "deps": deps or [], **extra}


def graph_of(*entries: dict) -> RepoGraph:
    return load_repo_config(list(entries), check_paths=False)


class TestLoadRepoConfig:
    """Tests for declaration loading and validation."""

    def test_loads_file_and_resolves_paths(self, write_repo_config, repo_dirs: Path):
        path = write_repo_config([entry("a"), entry("b", ["a"], priority=2)])

        graph = load_repo_config(path)

        assert graph.names == ["a", "b"]
        assert graph.get("a").path == repo_dirs.resolve() / "a"
        assert graph.get("b").deps == ("a",)
        assert graph.get("b").priority == 2
        assert graph.get("a").priority == 999
        assert graph.source == path

    def test_yaml_declaration(self, repo_dirs: Path):
        path = repo_dirs / "repos.yaml"
        path.write_text("- name: a\n  path: a\n  deps: []\n- name: b\n  path: b\n  deps: [a]\n")
        assert load_repo_config(path).names == ["a", "b"]

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(RepoConfigNotFoundError, match="not found"):
            load_repo_config(tmp_path / "nope.json")

    def test_invalid_json(self, repo_dirs: Path):
        path = repo_dirs / "repos.json"
        path.write_text("[{not json")
        with pytest.raises(InvalidRepoConfigError, match="Invalid JSON"):
            load_repo_config(path)

    def test_not_an_array(self, write_repo_config):
        path = write_repo_config({"name": "a"})  # type: ignore[arg-type]
        with pytest.raises(InvalidRepoConfigError, match="array"):
            load_repo_config(path)

    @pytest.mark.parametrize(
        ("bad", "field"),
        [
            ({"path": "a", "deps": []}, "name"),
            ({"name": "a", "deps": []}, "path"),
            ({"name": "a", "path": "a"}, "deps"),
            ({"name": "a", "path": "a", "deps": "b"}, "deps"),
            ({"name": 3, "path": "a", "deps": []}, "name"),
            ({"name": "a", "path": "a", "deps": [], "priority": "high"}, "priority"),
        ],
    )
    def test_missing_or_mistyped_field(self, bad: dict, field: str):
        with pytest.raises(MissingFieldError) as exc_info:
            load_repo_config([bad], check_paths=False)
        assert exc_info.value.field == field
        assert exc_info.value.index == 0

    def test_duplicate_name(self):
        with pytest.raises(DuplicateRepoError, match="a"):
            graph_of(entry("a"), entry("a"))

    def test_unknown_dependency(self):
        with pytest.raises(UnknownDependencyError) as exc_info:
            graph_of(entry("a", ["ghost"]))
        assert exc_info.value.dependency == "ghost"

    def test_missing_paths_are_all_reported(self, write_repo_config):
        path = write_repo_config(
            [entry("a"), {"name": "x", "path": "missing-x", "deps": []},
             {"name": "y", "path": "missing-y", "deps": []}]
        )
        with pytest.raises(RepoPathNotFoundError) as exc_info:
            load_repo_config(path)
        assert exc_info.value.missing == ["missing-x", "missing-y"]
        assert str(exc_info.value).startswith("Repository paths do not exist:")

    def test_in_memory_declaration_resolves_against_base_dir(self, repo_dirs: Path):
        graph = load_repo_config([entry("c")], base_dir=repo_dirs)
        assert graph.get("c").path == repo_dirs / "c"

    def test_all_errors_are_repo_config_errors(self):
        with pytest.raises(RepoConfigError):
            graph_of(entry("a", ["a", "missing"]))

    def test_duplicate_deps_are_collapsed(self):
        assert graph_of(entry("a"), entry("b", ["a", "a"])).get("b").deps == ("a",)


class TestDetectCircularDependencies:
    """Tests for cycle detection."""

    def test_acyclic_graph_passes(self):
        detect_circular_dependencies(graph_of(entry("a"), entry("b", ["a"]), entry("c", ["b"])))

    def test_three_node_cycle(self):
        graph = graph_of(entry("a", ["b"]), entry("b", ["c"]), entry("c", ["a"]))
        with pytest.raises(CycleDetectedError) as exc_info:
            detect_circular_dependencies(graph)
        assert exc_info.value.cycle == ["a", "b", "c", "a"]
        assert "a -> b -> c -> a" in str(exc_info.value)

    def test_self_loop(self):
        with pytest.raises(CycleDetectedError) as exc_info:
            detect_circular_dependencies(graph_of(entry("a", ["a"])))
        assert exc_info.value.cycle == ["a", "a"]

    def test_cycle_reachable_from_acyclic_prefix(self):
        graph = graph_of(entry("root"), entry("x", ["root", "y"]), entry("y", ["x"]))
        with pytest.raises(CycleDetectedError) as exc_info:
            detect_circular_dependencies(graph)
        assert exc_info.value.cycle == ["x", "y", "x"]

    def test_hand_built_graph_with_undeclared_dependency(self):
        graph = RepoGraph(nodes=(RepoNode(name="a", path="a", deps=("ghost",)),))
        with pytest.raises(UnknownDependencyError) as exc_info:
            detect_circular_dependencies(graph)
        assert exc_info.value.repo == "a"
        assert exc_info.value.dependency == "ghost"
        with pytest.raises(UnknownDependencyError):
            resolve_execution_order(graph)

    def test_deep_chain_does_not_recurse(self):
        entries = [entry("n0")] + [entry(f"n{i}", [f"n{i - 1}"]) for i in range(1, 3000)]
        detect_circular_dependencies(graph_of(*reversed(entries)))


class TestResolveExecutionOrder:
    """Tests for topological ordering."""

    def test_chain(self):
        graph = graph_of(entry("c", ["b"]), entry("b", ["a"]), entry("a"))
        assert resolve_execution_order(graph) == ["a", "b", "c"]

    def test_diamond(self):
        graph = graph_of(
            entry("d", ["b", "c"]), entry("b", ["a"]), entry("c", ["a"]), entry("a")
        )
        order = resolve_execution_order(graph)
        assert order[0] == "a"
        assert order[-1] == "d"
        assert order == ["a", "b", "c", "d"]

    def test_independent_repos_keep_declaration_order(self):
        assert resolve_execution_order(graph_of(entry("z"), entry("y"), entry("x"))) == [
            "z",
            "y",
            "x",
        ]

    def test_priority_breaks_ties(self):
        graph = graph_of(entry("slow", priority=5), entry("fast", priority=1), entry("default"))
        assert resolve_execution_order(graph) == ["fast", "slow", "default"]

    def test_every_repo_after_its_dependencies(self):
        graph = graph_of(
            entry("e", ["d", "a"]),
            entry("d", ["b", "c"]),
            entry("c", ["a"]),
            entry("b", ["a"]),
            entry("a"),
        )
        order = resolve_execution_order(graph)
        for node in graph:
            for dep in node.deps:
                assert order.index(dep) < order.index(node.name)

    def test_cycle_raises(self):
        graph = graph_of(entry("a"), entry("b", ["c"]), entry("c", ["b"]))
        with pytest.raises(CycleDetectedError) as exc_info:
            resolve_execution_order(graph)
        assert exc_info.value.cycle == ["b", "c"]


class TestBuildRepoGraph:
    """Tests for the one-call validation path."""

    def test_valid(self, write_repo_config):
        graph = build_repo_graph(write_repo_config([entry("a"), entry("b", ["a"])]))
        assert isinstance(graph.get("b"), RepoNode)
        assert graph.dependents("a") == ["b"]

    def test_cycle_rejected(self, write_repo_config):
        path = write_repo_config([entry("a", ["b"]), entry("b", ["a"])])
        with pytest.raises(CycleDetectedError):
            build_repo_graph(path)

    def test_to_dict(self, write_repo_config):
        data = build_repo_graph(write_repo_config([entry("a")])).to_dict()
        assert data["repos"][0]["name"] == "a"
        json.dumps(data)

    def test_nodes_are_immutable(self):
        node = graph_of(entry("a")).get("a")
        with pytest.raises(ValidationError):
            node.name = "b"  # type: ignore[misc]
