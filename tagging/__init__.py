"""Resilience core for AI content tagging."""

__version__ = "0.1.0"
