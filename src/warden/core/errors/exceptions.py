"""Exception hierarchy for Warden.

Configuration errors are raised before any state is created. Orchestration
errors are raised by operations on a live orchestration state.
"""

from __future__ import annotations

from collections.abc import Sequence


class WardenError(Exception):
    """Base class for all Warden errors."""


class ConfigurationError(WardenError):
    """Invalid configuration; aborts before any state mutation."""


class RepoConfigError(ConfigurationError):
    """Invalid repository graph declaration."""


class RepoConfigNotFoundError(RepoConfigError):
    """The declaration file does not exist."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Repo config file not found: {path}")


class InvalidRepoConfigError(RepoConfigError):
    """The declaration is not parseable or not an array."""


class MissingFieldError(RepoConfigError):
    """A repository entry lacks a required field or has the wrong type."""

    def __init__(self, index: int, field: str, reason: str = "missing required field") -> None:
        self.index = index
        self.field = field
        super().__init__(f"Invalid repo entry #{index}: {reason} '{field}'")


class DuplicateRepoError(RepoConfigError):
    """Two repository entries share a name."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Duplicate repo name: {name}")


class UnknownDependencyError(RepoConfigError):
    """A dependency references a repository that is not declared."""

    def __init__(self, repo: str, dependency: str) -> None:
        self.repo = repo
        self.dependency = dependency
        super().__init__(f"Repo '{repo}' depends on undeclared repo '{dependency}'")


class RepoPathNotFoundError(RepoConfigError):
    """One or more repository paths do not exist on disk."""

    def __init__(self, missing: Sequence[str]) -> None:
        self.missing = list(missing)
        listing = "\n".join(f"  {path}" for path in self.missing)
        super().__init__(f"Repository paths do not exist:\n{listing}")


class CycleDetectedError(RepoConfigError):
    """The dependency graph contains a cycle.

    Attributes:
        cycle: The cycle as a list of repo names, first name repeated last.
    """

    def __init__(self, cycle: list[str], message: str | None = None) -> None:
        self.cycle = cycle
        if message is None:
            message = f"Circular dependency detected: {' -> '.join(cycle)}"
        super().__init__(message)


class OrchestrationError(WardenError):
    """Invalid operation on an orchestration state."""


class NoOrchestrationError(OrchestrationError):
    """No orchestration state has been initialized."""

    def __init__(self) -> None:
        super().__init__("No orchestration in progress")


class UnknownRepoError(OrchestrationError):
    """The named repository is not part of the orchestration."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Unknown repo: {name}")


class RepoBlockedError(OrchestrationError):
    """A repository cannot start while dependencies are outstanding."""

    def __init__(self, name: str, blocked_by: Sequence[str]) -> None:
        self.name = name
        self.blocked_by = sorted(blocked_by)
        super().__init__(f"Repo '{name}' is blocked by: {', '.join(self.blocked_by)}")
