# Configuration models
from .base import BaseConfig
from .vault import (
    AllocationConfig,
    LoggingConfig,
    OracleConfig,
    ReportingConfig,
    RolesConfig,
    ShareConfig,
    SwapConfig,
    VaultConfig,
)

__all__ = [
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
