"""Fixwright: multi-stage AI code review with generated fixes."""

__version__ = "0.1.0"
