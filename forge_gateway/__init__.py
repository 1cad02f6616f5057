"""Forge Gateway — inference server with degraded-mode routing."""

__version__ = "0.4.0"
