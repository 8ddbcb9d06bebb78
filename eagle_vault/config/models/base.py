"""
Base Configuration Model.

Every config section derives from BaseConfig: sections are frozen, unknown
keys are ignored and ``${VAR}`` / ``${VAR:default}`` references in string
values are expanded from the environment before validation.
"""

import os
import re
from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator

ENV_REFERENCE = re.compile(r"\$\{([^}:]+)(?::([^}]*))?\}")


def expand_env(value: Any) -> Any:
    """
    Expand environment references in a value, recursing into dicts and lists.

    An unset variable without a default expands to an empty string.

    Example:
        >>> os.environ["VAULT_KEEPER"] = "0xabc"
        >>> expand_env({"keeper": "${VAULT_KEEPER}", "admin": "${VAULT_ADMIN:0xdef}"})
        {'keeper': '0xabc', 'admin': '0xdef'}
    """
    if isinstance(value, dict):
        return {key: expand_env(item) for key, item in value.items()}
    if isinstance(value, list):
        return [expand_env(item) for item in value]
    if isinstance(value, str):
        return ENV_REFERENCE.sub(
            lambda m: os.environ.get(m.group(1), m.group(2) or ""), value
        )
    return value


def coerce_decimal(value: Any) -> Any:
    """Turn ints, floats and numeric strings into finite Decimals."""
    if value is None or isinstance(value, Decimal):
        return value
    if not isinstance(value, (int, float, str)):
        return value

    try:
        result = Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"'{value}' is not a decimal number") from e
    if not result.is_finite():
        raise ValueError(f"'{value}' must be finite")
    return result


class BaseConfig(BaseModel):
    """Immutable config section with environment expansion."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        validate_default=True,
        str_strip_whitespace=True,
    )

    @model_validator(mode="before")
    @classmethod
    def substitute_environment_variables(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return expand_env(data)
        return data
