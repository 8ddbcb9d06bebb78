"""
Strategy Registry Unit Tests.
"""

from decimal import Decimal

import pytest

from eagle_vault.core import (
    MaxStrategiesReached,
    StrategyAlreadyActive,
    StrategyNotFound,
    WeightExceeds100Percent,
    ZeroAddress,
)
from eagle_vault.vault.core import StrategyRegistry
from eagle_vault.vault.models import VaultLedger
from tests.mocks.accounts import VAULT


@pytest.fixture
def registry(clock) -> StrategyRegistry:
    ledger = VaultLedger(
        vault_address=VAULT,
        max_supply=Decimal("50000000"),
        bootstrap_multiplier=Decimal("10000"),
    )
    return StrategyRegistry(ledger, clock)


class TestAddStrategy:
    """Test strategy registration bounds."""

    def test_add(self, registry, make_strategy):
        strategy = make_strategy()

        params = registry.add(strategy, 6000)

        assert params.address == strategy.address
        assert params.active
        assert params.current_debt == Decimal("0")
        assert registry.total_weight() == 6000

    def test_duplicate_rejected(self, registry, make_strategy):
        strategy = make_strategy()
        registry.add(strategy, 1000)

        with pytest.raises(StrategyAlreadyActive):
            registry.add(strategy, 1000)

    def test_weight_over_total(self, registry, make_strategy):
        """Weights across active strategies cannot pass 10,000 bps."""
        registry.add(make_strategy(), 6000)

        with pytest.raises(WeightExceeds100Percent):
            registry.add(make_strategy(), 4001)

    def test_max_strategies(self, registry, make_strategy):
        for _ in range(5):
            registry.add(make_strategy(), 1000)

        with pytest.raises(MaxStrategiesReached):
            registry.add(make_strategy(), 1000)

    def test_zero_address(self, registry, make_strategy):
        strategy = make_strategy()
        strategy.address = ""

        with pytest.raises(ZeroAddress):
            registry.add(strategy, 1000)

    def test_readd_after_deactivation(self, registry, make_strategy):
        """A removed strategy can come back; its entry is reused."""
        strategy = make_strategy()
        registry.add(strategy, 3000)
        registry.deactivate(strategy.address)

        registry.add(strategy, 2000)

        assert len(registry.strategies) == 1
        assert registry.get(strategy.address).weight_bps == 2000


class TestUpdateWeight:
    """Test weight changes."""

    def test_update(self, registry, make_strategy):
        strategy = make_strategy()
        registry.add(strategy, 6000)

        registry.update_weight(strategy.address, 10000)

        assert registry.total_weight() == 10000

    def test_update_over_total(self, registry, make_strategy):
        first, second = make_strategy(), make_strategy()
        registry.add(first, 6000)
        registry.add(second, 3000)

        with pytest.raises(WeightExceeds100Percent):
            registry.update_weight(second.address, 4001)

    def test_unknown_strategy(self, registry):
        with pytest.raises(StrategyNotFound):
            registry.update_weight("0xnobody", 100)


class TestDeactivate:
    """Test deactivation."""

    def test_deactivate_clears_debt_and_weight(self, registry, make_strategy):
        strategy = make_strategy()
        params = registry.add(strategy, 5000)
        params.current_debt = Decimal("250")

        registry.deactivate(strategy.address)

        assert registry.active() == []
        assert params.current_debt == Decimal("0")
        assert params.weight_bps == 0
        with pytest.raises(StrategyNotFound):
            registry.get(strategy.address)
