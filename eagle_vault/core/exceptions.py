"""
Custom exceptions for the Eagle vault engine.

Exception hierarchy:
    VaultError (base)
    ├── InputError
    │   ├── ZeroAddress
    │   ├── ZeroAmount
    │   ├── InvalidReceiver
    │   ├── InsufficientShares
    │   └── InsufficientAllowance
    ├── Unauthorized
    ├── LifecycleError
    │   ├── VaultPaused
    │   ├── VaultIsShutdown
    │   ├── VaultNotShutdown
    │   └── NotWhitelisted
    ├── InvalidPrice
    ├── ToleranceError
    │   ├── SlippageExceeded
    │   └── LossExceeded
    ├── RegistryError
    │   ├── MaxStrategiesReached
    │   ├── WeightExceeds100Percent
    │   ├── StrategyNotFound
    │   └── StrategyAlreadyActive
    ├── ConfigurationError
    ├── MaxSupplyExceeded
    ├── ReentrantCall
    └── InvariantViolation
        └── InsufficientLockedShares

Every error except InvariantViolation is caller-recoverable: the call was
rolled back and may be retried with adjusted parameters.
"""

from decimal import Decimal
from typing import Any


class VaultError(Exception):
    """Base exception for all vault errors."""

    default_message = "Vault error occurred"
    recoverable = True

    def __init__(
        self,
        message: str | None = None,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message or self.default_message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        parts = [self.message]
        if self.code:
            parts.append(f"[{self.code}]")
        if self.details:
            parts.append(f"Details: {self.details}")
        return " ".join(parts)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code!r}, "
            f"details={self.details!r})"
        )


# Malformed input
class InputError(VaultError):
    """Base exception for malformed caller input."""

    default_message = "Invalid input"


class ZeroAddress(InputError):
    """An address argument was empty or the zero address."""

    default_message = "Zero address"


class ZeroAmount(InputError):
    """An amount argument (or the resulting share amount) was zero."""

    default_message = "Zero amount"


class InvalidReceiver(InputError):
    """Receiver cannot hold vault shares or assets."""

    default_message = "Invalid receiver"


class InsufficientShares(InputError):
    """Owner does not hold enough shares."""

    default_message = "Insufficient shares"


class InsufficientAllowance(InputError):
    """Spender allowance is too small."""

    default_message = "Insufficient allowance"


# Role check
class Unauthorized(VaultError):
    """Caller does not hold the required role."""

    default_message = "Unauthorized"

    def __init__(
        self,
        message: str | None = None,
        caller: str | None = None,
        role: str | None = None,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, code, details)
        self.caller = caller
        self.role = role

    def __str__(self) -> str:
        base = super().__str__()
        if self.role:
            return f"{base} (caller={self.caller}, required role={self.role})"
        return base


# Lifecycle state mismatch
class LifecycleError(VaultError):
    """Base exception for lifecycle-state mismatches."""

    default_message = "Operation not allowed in current vault state"


class VaultPaused(LifecycleError):
    """Deposits are paused."""

    default_message = "Vault is paused"


class VaultIsShutdown(LifecycleError):
    """Vault has been shut down permanently."""

    default_message = "Vault is shut down"


class VaultNotShutdown(LifecycleError):
    """Operation requires the vault to be shut down."""

    default_message = "Vault is not shut down"


class NotWhitelisted(LifecycleError):
    """Receiver is not on the deposit allow-list."""

    default_message = "Receiver is not whitelisted"


# Oracle
class InvalidPrice(VaultError):
    """Price feed reading failed validation (bounds, staleness, divergence)."""

    default_message = "Invalid price"


# Economic tolerance
class ToleranceError(VaultError):
    """Base exception for economic tolerance violations."""

    default_message = "Tolerance exceeded"

    def __init__(
        self,
        message: str | None = None,
        expected: Decimal | None = None,
        actual: Decimal | None = None,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, code, details)
        self.expected = expected
        self.actual = actual

    def __str__(self) -> str:
        base = super().__str__()
        if self.expected is not None and self.actual is not None:
            return f"{base} (expected={self.expected}, actual={self.actual})"
        return base


class SlippageExceeded(ToleranceError):
    """Swap output fell below the minimum acceptable amount."""

    default_message = "Slippage exceeded"


class LossExceeded(ToleranceError):
    """Realized withdrawal loss exceeded the caller's tolerance."""

    default_message = "Loss exceeded"


# Registry capacity
class RegistryError(VaultError):
    """Base exception for strategy registry errors."""

    default_message = "Strategy registry error"


class MaxStrategiesReached(RegistryError):
    """Registry is at capacity."""

    default_message = "Maximum number of strategies reached"


class WeightExceeds100Percent(RegistryError):
    """Total strategy weight would exceed 10,000 bps."""

    default_message = "Total strategy weight exceeds 100%"


class StrategyNotFound(RegistryError):
    """Strategy is not registered."""

    default_message = "Strategy not found"


class StrategyAlreadyActive(RegistryError):
    """Strategy is already registered."""

    default_message = "Strategy already active"


class ConfigurationError(VaultError):
    """Role-gated configuration value out of bounds."""

    default_message = "Invalid configuration value"


class MaxSupplyExceeded(VaultError):
    """Minting would push share supply over the hard cap."""

    default_message = "Maximum share supply exceeded"


class ReentrantCall(VaultError):
    """A state-changing entry point was re-entered during a call."""

    default_message = "Reentrant call"


# Internal invariants
class InvariantViolation(VaultError):
    """Ledger invariant breached; state can no longer be trusted."""

    default_message = "Ledger invariant violated"
    recoverable = False


class InsufficientLockedShares(InvariantViolation):
    """Attempted to burn more locked shares than the vault holds."""

    default_message = "Insufficient locked shares"
