"""
Configuration Loader.

Reads ``vault.yaml`` (optionally nested under a top-level ``vault:`` key),
deep-merges a ``vault.<env>.yaml`` overlay when one exists, loads ``.env``
so that ``${VAR}`` references resolve, and validates the result into a
VaultConfig.
"""

from copy import deepcopy
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from .exceptions import (
    ConfigFileNotFoundError,
    ConfigParseError,
    ConfigValidationError,
)
from .models import VaultConfig


def read_yaml(path: Path) -> dict[str, Any]:
    """
    Parse one YAML file into a mapping (an empty file gives ``{}``).

    Raises:
        ConfigFileNotFoundError: If the file does not exist
        ConfigParseError: If the YAML is malformed or its root is not a mapping
    """
    if not path.is_file():
        raise ConfigFileNotFoundError(path)

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigParseError(path, str(e)) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigParseError(path, f"expected a mapping, got {type(data).__name__}")
    return data


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge ``override`` into a copy of ``base``; nested mappings merge key by key."""
    merged = deepcopy(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = deepcopy(value)
    return merged


def _validation_messages(error: ValidationError) -> list[str]:
    return [
        f"{'.'.join(str(part) for part in item['loc'])}: {item['msg']}"
        for item in error.errors()
    ]


class ConfigLoader:
    """
    Load a VaultConfig from YAML.

    Example:
        >>> config = ConfigLoader().load("config/vault.yaml", env="mainnet")
        >>> config.reporting.performance_fee_bps
        1000
    """

    def __init__(self, env_file: Optional[str | Path] = None):
        self._env_file = Path(env_file) if env_file else None
        self._dotenv_loaded = False

    def load(self, path: str | Path, env: Optional[str] = None) -> VaultConfig:
        """
        Read, merge and validate a configuration file.

        Args:
            path: Base YAML file
            env: Overlay name; ``<stem>.<env><suffix>`` beside the base file
                is merged over it when present

        Raises:
            ConfigFileNotFoundError: If the base file is missing
            ConfigParseError: If a file cannot be parsed
            ConfigValidationError: If the merged values are invalid
        """
        path = Path(path)
        self._load_dotenv(path.parent)

        data = read_yaml(path)
        if env:
            overlay = path.with_name(f"{path.stem}.{env}{path.suffix}")
            if overlay.is_file():
                data = deep_merge(data, read_yaml(overlay))

        section = data.get("vault")
        if isinstance(section, dict):
            data = section

        try:
            return VaultConfig.model_validate(data)
        except ValidationError as e:
            raise ConfigValidationError(_validation_messages(e)) from e

    def _load_dotenv(self, config_dir: Path) -> None:
        if self._dotenv_loaded:
            return

        candidates = [config_dir / ".env", config_dir.parent / ".env", Path.cwd() / ".env"]
        if self._env_file:
            candidates.insert(0, self._env_file)

        env_path = next((p for p in candidates if p.is_file()), None)
        if env_path is not None:
            load_dotenv(env_path)
        self._dotenv_loaded = True


def load_config(
    path: str | Path,
    env: Optional[str] = None,
    env_file: Optional[str | Path] = None,
) -> VaultConfig:
    """Load a VaultConfig with a fresh ConfigLoader."""
    return ConfigLoader(env_file=env_file).load(path, env=env)
