"""Shared utilities for Warden."""
