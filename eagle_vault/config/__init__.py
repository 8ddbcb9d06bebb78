# Config module - vault configuration system
from .exceptions import (
    ConfigError,
    ConfigFileNotFoundError,
    ConfigParseError,
    ConfigValidationError,
)
from .loader import ConfigLoader, load_config
from .models import (
    AllocationConfig,
    BaseConfig,
    LoggingConfig,
    OracleConfig,
    ReportingConfig,
    RolesConfig,
    ShareConfig,
    SwapConfig,
    VaultConfig,
)

__all__ = [
    # Exceptions
    "ConfigError",
    "ConfigFileNotFoundError",
    "ConfigParseError",
    "ConfigValidationError",
    # Loader
    "ConfigLoader",
    "load_config",
    # Models
    "BaseConfig",
    "ShareConfig",
    "OracleConfig",
    "SwapConfig",
    "AllocationConfig",
    "ReportingConfig",
    "RolesConfig",
    "LoggingConfig",
    "VaultConfig",
]
