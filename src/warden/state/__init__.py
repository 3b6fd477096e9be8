"""State management stores."""

from warden.state.base import StateStore
from warden.state.json_backend import JsonStateStore
from warden.state.memory import InMemoryStateStore

__all__ = ["StateStore", "JsonStateStore", "InMemoryStateStore"]
