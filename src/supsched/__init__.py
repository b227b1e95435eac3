"""Greedy supervision-session scheduler for a single supervisor."""

__version__ = "0.1.0"
