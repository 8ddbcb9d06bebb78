"""
Core module for the Eagle vault engine.

Provides logging utilities, structured events, errors and decimal helpers.
"""

from .events import EventType, LogChannel, VaultEventLogger
from .exceptions import (
    ConfigurationError,
    InputError,
    InsufficientAllowance,
    InsufficientLockedShares,
    InsufficientShares,
    InvalidPrice,
    InvalidReceiver,
    InvariantViolation,
    LifecycleError,
    LossExceeded,
    MaxStrategiesReached,
    MaxSupplyExceeded,
    NotWhitelisted,
    ReentrantCall,
    RegistryError,
    SlippageExceeded,
    StrategyAlreadyActive,
    StrategyNotFound,
    ToleranceError,
    Unauthorized,
    VaultError,
    VaultIsShutdown,
    VaultNotShutdown,
    VaultPaused,
    WeightExceeds100Percent,
    ZeroAddress,
    ZeroAmount,
)
from .logger import get_logger, setup_logger

__all__ = [
    # Logging
    "setup_logger",
    "get_logger",
    "VaultEventLogger",
    "EventType",
    "LogChannel",
    # Errors
    "VaultError",
    "InputError",
    "ZeroAddress",
    "ZeroAmount",
    "InvalidReceiver",
    "InsufficientShares",
    "InsufficientAllowance",
    "Unauthorized",
    "LifecycleError",
    "VaultPaused",
    "VaultIsShutdown",
    "VaultNotShutdown",
    "NotWhitelisted",
    "InvalidPrice",
    "ToleranceError",
    "SlippageExceeded",
    "LossExceeded",
    "RegistryError",
    "MaxStrategiesReached",
    "WeightExceeds100Percent",
    "StrategyNotFound",
    "StrategyAlreadyActive",
    "ConfigurationError",
    "MaxSupplyExceeded",
    "ReentrantCall",
    "InvariantViolation",
    "InsufficientLockedShares",
]
