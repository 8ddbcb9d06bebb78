# Mock classes for testing
"""In-memory doubles for the vault's external collaborators."""

from .chain_mock import (
    FakeClock,
    MockPool,
    MockPriceFeed,
    MockRouter,
    MockStrategy,
    MockToken,
)

__all__ = [
    "FakeClock",
    "MockToken",
    "MockStrategy",
    "MockPriceFeed",
    "MockPool",
    "MockRouter",
]
