"""Repository dependency graph.

Loads a job-graph declaration (an ordered list of repositories with their
dependencies), validates it, and computes a valid execution order:
- Field, name and reference validation of every entry
- Path existence checks relative to the declaration file
- Cycle detection, including self-dependencies
- Topological ordering with priority tie-breaking

Declaration format (JSON array, or the same structure in YAML)::

    [
      {"name": "core", "path": "./core", "deps": []},
      {"name": "api", "path": "./api", "deps": ["core"], "priority": 1}
    ]

Dependencies mean "must complete before": ``api`` runs after ``core``.
"""

from __future__ import annotations

import heapq
import json
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field

from warden.core.checkpoint import DEFAULT_REPO_PRIORITY
from warden.core.errors import (
    CycleDetectedError,
    DuplicateRepoError,
    InvalidRepoConfigError,
    MissingFieldError,
    RepoConfigNotFoundError,
    RepoPathNotFoundError,
    UnknownDependencyError,
)
from warden.core.logging import get_logger

_logger = get_logger("dag")

YAML_SUFFIXES = frozenset({".yaml", ".yml"})


class RepoNode(BaseModel):
    """One repository job in the graph.

    Attributes:
        name: Unique repository name.
        path: Resolved repository directory.
        deps: Names of repositories that must complete first, in
            declaration order without duplicates.
        priority: Lower runs earlier among ready repositories.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    path: Path
    deps: tuple[str, ...] = ()
    priority: int = DEFAULT_REPO_PRIORITY


@dataclass(frozen=True)
class RepoGraph:
    """Validated repositories in declaration order.

    Example:
        >>> graph = build_repo_graph([
        ...     {"name": "a", "path": ".", "deps": []},
        ...     {"name": "b", "path": ".", "deps": ["a"]},
        ... ])
        >>> resolve_execution_order(graph)
        ['a', 'b']
    """

    nodes: tuple[RepoNode, ...]
    source: Path | None = None
    _index: dict[str, RepoNode] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_index", {node.name: node for node in self.nodes})

    def __iter__(self) -> Iterator[RepoNode]:
        return iter(self.nodes)

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, name: object) -> bool:
        return name in self._index

    @property
    def names(self) -> list[str]:
        return [node.name for node in self.nodes]

    def get(self, name: str) -> RepoNode:
        """Look up a node by name.

        Raises:
            KeyError: If no repository has that name.
        """
        return self._index[name]

    def dependents(self, name: str) -> list[str]:
        """Repositories that list ``name`` as a dependency."""
        return [node.name for node in self.nodes if name in node.deps]

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON display."""
        return {
            "source": str(self.source) if self.source else None,
            "repos": [
                {
                    "name": node.name,
                    "path": str(node.path),
                    "deps": list(node.deps),
                    "priority": node.priority,
                }
                for node in self.nodes
            ],
        }


# =============================================================================
# Loading and validation
# =============================================================================


def _read_declaration(path: Path) -> Any:
    if not path.is_file():
        raise RepoConfigNotFoundError(str(path))
    text = path.read_text()
    if path.suffix.lower() in YAML_SUFFIXES:
        try:
            return yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise InvalidRepoConfigError(f"Invalid YAML in repo config: {path}") from e
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise InvalidRepoConfigError(f"Invalid JSON in repo config: {path}") from e


def _validate_entry(index: int, entry: Any) -> tuple[str, str, tuple[str, ...], int]:
    if not isinstance(entry, dict):
        raise InvalidRepoConfigError(f"Invalid repo entry #{index}: entry must be an object")

    name = entry.get("name")
    if not isinstance(name, str) or not name:
        raise MissingFieldError(index, "name")
    path = entry.get("path")
    if not isinstance(path, str) or not path:
        raise MissingFieldError(index, "path")
    deps = entry.get("deps")
    if not isinstance(deps, list) or not all(isinstance(d, str) for d in deps):
        raise MissingFieldError(index, "deps")

    priority = entry.get("priority", DEFAULT_REPO_PRIORITY)
    if priority is None:
        priority = DEFAULT_REPO_PRIORITY
    # bool is an int subclass
    if isinstance(priority, bool) or not isinstance(priority, int):
        raise MissingFieldError(index, "priority", reason="invalid type for field")

    return name, path, tuple(dict.fromkeys(deps)), priority


def load_repo_config(
    declaration: Sequence[Any] | str | Path,
    base_dir: Path | None = None,
    check_paths: bool = True,
) -> RepoGraph:
    """Load and validate a job-graph declaration.

    Does not check for cycles; use build_repo_graph() for the full
    validation path.

    Args:
        declaration: A parsed list of entries, or a path to a JSON or YAML
            file holding one.
        base_dir: Directory relative repo paths resolve against. Defaults
            to the declaration file's directory, or the current directory
            for an in-memory declaration.
        check_paths: Whether every repo path must be an existing directory.

    Returns:
        RepoGraph in declaration order.

    Raises:
        RepoConfigError: A subclass describing the first problem found.
    """
    source: Path | None = None
    if isinstance(declaration, (str, Path)):
        source = Path(declaration)
        data = _read_declaration(source)
        if base_dir is None:
            base_dir = source.resolve().parent
    else:
        data = declaration
    if base_dir is None:
        base_dir = Path.cwd()

    if not isinstance(data, list):
        raise InvalidRepoConfigError("Repo config must be a JSON array")

    entries = [_validate_entry(i, entry) for i, entry in enumerate(data)]

    seen: set[str] = set()
    for name, _, _, _ in entries:
        if name in seen:
            raise DuplicateRepoError(name)
        seen.add(name)

    for name, _, deps, _ in entries:
        for dep in deps:
            if dep not in seen:
                raise UnknownDependencyError(name, dep)

    nodes: list[RepoNode] = []
    missing: list[str] = []
    for name, raw_path, deps, priority in entries:
        repo_path = Path(raw_path).expanduser()
        if not repo_path.is_absolute():
            repo_path = base_dir / repo_path
        if check_paths and not repo_path.is_dir():
            missing.append(raw_path)
        nodes.append(RepoNode(name=name, path=repo_path, deps=deps, priority=priority))

    if missing:
        raise RepoPathNotFoundError(missing)

    _logger.debug(
        "dag.config_loaded",
        source=str(source) if source else None,
        repos=len(nodes),
    )
    return RepoGraph(nodes=tuple(nodes), source=source)


# =============================================================================
# Graph algorithms
# =============================================================================


def _check_references(graph: RepoGraph) -> None:
    for node in graph:
        for dep in node.deps:
            if dep not in graph:
                raise UnknownDependencyError(node.name, dep)


def detect_circular_dependencies(graph: RepoGraph) -> None:
    """Reject a graph containing a cycle.

    Walks dependency edges depth-first with an explicit stack, tracking
    nodes on the current path (visiting) and fully explored nodes (visited).

    Raises:
        CycleDetectedError: With the cycle path, first name repeated last.
        UnknownDependencyError: If a dependency is not part of the graph.
    """
    _check_references(graph)
    visiting: set[str] = set()
    visited: set[str] = set()

    for start in graph.names:
        if start in visited:
            continue

        path: list[str] = [start]
        visiting.add(start)
        stack: list[Iterator[str]] = [iter(graph.get(start).deps)]

        while stack:
            dep = next(stack[-1], None)
            if dep is None:
                stack.pop()
                done = path.pop()
                visiting.discard(done)
                visited.add(done)
                continue
            if dep in visiting:
                cycle = path[path.index(dep):] + [dep]
                _logger.warning("dag.cycle_detected", cycle=cycle)
                raise CycleDetectedError(cycle)
            if dep in visited:
                continue
            path.append(dep)
            visiting.add(dep)
            stack.append(iter(graph.get(dep).deps))


def resolve_execution_order(graph: RepoGraph) -> list[str]:
    """Topological order of the graph using Kahn's algorithm.

    Among repositories ready at the same time, lower priority runs first,
    then earlier declaration.

    Raises:
        CycleDetectedError: If some repositories can never become ready.
        UnknownDependencyError: If a dependency is not part of the graph.
    """
    _check_references(graph)
    position = {name: i for i, name in enumerate(graph.names)}
    in_degree = {node.name: len(node.deps) for node in graph}
    dependents: dict[str, list[str]] = {name: [] for name in graph.names}
    for node in graph:
        for dep in node.deps:
            dependents[dep].append(node.name)

    ready = [
        (node.priority, position[node.name], node.name)
        for node in graph
        if in_degree[node.name] == 0
    ]
    heapq.heapify(ready)

    order: list[str] = []
    while ready:
        _, _, name = heapq.heappop(ready)
        order.append(name)
        for dependent in dependents[name]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                node = graph.get(dependent)
                heapq.heappush(ready, (node.priority, position[dependent], dependent))

    if len(order) < len(graph):
        stuck = [name for name in graph.names if in_degree[name] > 0]
        raise CycleDetectedError(
            stuck,
            f"Circular dependency detected: cannot order {', '.join(stuck)}",
        )
    return order


def build_repo_graph(
    declaration: Sequence[Any] | str | Path,
    base_dir: Path | None = None,
    check_paths: bool = True,
) -> RepoGraph:
    """Load a declaration and reject cycles.

    Raises:
        RepoConfigError: If the declaration is invalid or cyclic.
    """
    graph = load_repo_config(declaration, base_dir=base_dir, check_paths=check_paths)
    detect_circular_dependencies(graph)
    return graph
