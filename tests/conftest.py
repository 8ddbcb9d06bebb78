"""
Pytest configuration and fixtures for vault engine tests.
"""

from typing import Callable

import pytest

from eagle_vault.config.models import VaultConfig
from eagle_vault.core import VaultEventLogger
from eagle_vault.vault import DualAssetVault
from tests.mocks import (
    FakeClock,
    MockPool,
    MockPriceFeed,
    MockRouter,
    MockStrategy,
    MockToken,
)
from tests.mocks.accounts import (
    ADMIN,
    ALICE,
    BOB,
    FEES,
    KEEPER,
    OWNER,
    STARTING_BALANCE,
    VAULT,
)


# =============================================================================
# Collaborators
# =============================================================================


@pytest.fixture
def clock() -> FakeClock:
    """Clock fixed at 2026-01-01T00:00:00Z."""
    return FakeClock()


@pytest.fixture
def primary() -> MockToken:
    token = MockToken("WLFI", "0xwlfi")
    for account in (ALICE, BOB):
        token.mint(account, STARTING_BALANCE)
    return token


@pytest.fixture
def secondary() -> MockToken:
    token = MockToken("USD1", "0xusd1")
    for account in (ALICE, BOB):
        token.mint(account, STARTING_BALANCE)
    return token


@pytest.fixture
def pool() -> MockPool:
    """Pool at tick 0 (one secondary unit per primary unit)."""
    return MockPool(twap_tick=0)


@pytest.fixture
def router(primary: MockToken, secondary: MockToken) -> MockRouter:
    return MockRouter(primary, secondary)


@pytest.fixture
def make_feed(clock: FakeClock) -> Callable[..., MockPriceFeed]:
    def _make(price: str, age_seconds: int = 0, decimals: int = 8) -> MockPriceFeed:
        return MockPriceFeed(price, clock, decimals=decimals, age_seconds=age_seconds)

    return _make


# =============================================================================
# Vault
# =============================================================================


@pytest.fixture
def vault_config() -> VaultConfig:
    """Default config with every role assigned."""
    return VaultConfig(
        roles={"keeper": KEEPER, "emergency_admin": ADMIN, "fee_recipient": FEES},
        allocation={"deployment_threshold": "100", "min_deployment_interval": 300},
        reporting={"performance_fee_bps": 1000, "profit_max_unlock_time": 7 * 24 * 3600},
    )


@pytest.fixture
def make_vault(
    primary: MockToken,
    secondary: MockToken,
    pool: MockPool,
    router: MockRouter,
    clock: FakeClock,
    vault_config: VaultConfig,
) -> Callable[..., DualAssetVault]:
    """Factory for vaults sharing the test collaborators."""

    def _make(config: VaultConfig | None = None, **kwargs) -> DualAssetVault:
        return DualAssetVault(
            VAULT,
            primary,
            secondary,
            pool,
            router,
            owner=OWNER,
            config=config or vault_config,
            clock=clock,
            events=VaultEventLogger("test-vault"),
            **kwargs,
        )

    return _make


@pytest.fixture
def vault(make_vault) -> DualAssetVault:
    return make_vault()


@pytest.fixture
def make_strategy(primary: MockToken, secondary: MockToken) -> Callable[..., MockStrategy]:
    counter = {"n": 0}

    def _make(**kwargs) -> MockStrategy:
        counter["n"] += 1
        return MockStrategy(f"0xstrategy{counter['n']}", primary, secondary, VAULT, **kwargs)

    return _make
