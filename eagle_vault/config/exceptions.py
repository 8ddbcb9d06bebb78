"""
Configuration Exceptions.
"""

from pathlib import Path


class ConfigError(Exception):
    """Vault configuration could not be loaded."""


class ConfigFileNotFoundError(ConfigError):
    """The configuration file does not exist."""

    def __init__(self, path: str | Path):
        self.path = str(path)
        super().__init__(f"No configuration file at {self.path}")


class ConfigParseError(ConfigError):
    """The configuration file is not valid YAML or not a mapping."""

    def __init__(self, path: str | Path, reason: str):
        self.path = str(path)
        self.reason = reason
        super().__init__(f"Cannot parse {self.path}: {reason}")


class ConfigValidationError(ConfigError):
    """Configuration values failed validation; ``errors`` holds one line per field."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__(
            "Invalid vault configuration:\n" + "\n".join(f"  - {e}" for e in errors)
        )
