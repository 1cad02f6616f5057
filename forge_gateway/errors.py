"""Startup error taxonomy.

Only the CLI entry point turns these into a process exit; every other layer
either returns an absent capability or lets them propagate.
"""


class ConfigError(ValueError):
    """Config file could not be read or validated."""


class ModelResolutionError(RuntimeError):
    """A configured model role could not be turned into a backend."""

    def __init__(self, role: str, message: str):
        super().__init__(f"{role}: {message}")
        self.role = role


class UnsupportedModelConfigError(ModelResolutionError):
    """The configuration names a backend variant this server cannot run."""
