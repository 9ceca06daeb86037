"""Workflow Sidekick: natural language to importable automation workflows."""

__version__ = "0.1.0"
