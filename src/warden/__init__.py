"""Warden - resilience and scheduling core for autonomous coding loops."""

__version__ = "0.1.0"
