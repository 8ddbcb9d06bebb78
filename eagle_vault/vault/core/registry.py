"""
Strategy Registry.

Bookkeeping of registered strategies and their target weights. Entries keep
registration order; deployment and withdrawal both walk them in that order.
"""

from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional

from eagle_vault.core import (
    MaxStrategiesReached,
    StrategyAlreadyActive,
    StrategyNotFound,
    WeightExceeds100Percent,
    ZeroAddress,
    get_logger,
)
from eagle_vault.core.utils import MAX_BPS, is_zero_address

from ..interfaces import StrategyProtocol
from ..models.state import StrategyParams, VaultLedger

logger = get_logger(__name__)


class StrategyRegistry:
    """
    Registry of active strategies with weight and capacity bounds.

    Invariants:
        - at most ``max_strategies`` active entries
        - sum of active weights <= 10,000 bps
    """

    def __init__(
        self,
        ledger: VaultLedger,
        clock: Callable[[], datetime],
        max_strategies: int = 5,
    ):
        self._ledger = ledger
        self._clock = clock
        self.max_strategies = max_strategies

    @property
    def strategies(self) -> List[StrategyParams]:
        """All registry entries, registration order."""
        return list(self._ledger.strategies)

    def active(self) -> List[StrategyParams]:
        """Active entries, registration order."""
        return [s for s in self._ledger.strategies if s.active]

    def total_weight(self, exclude: Optional[str] = None) -> int:
        return sum(
            s.weight_bps for s in self.active() if s.address != exclude
        )

    def find(self, address: str) -> Optional[StrategyParams]:
        for params in self._ledger.strategies:
            if params.address == address:
                return params
        return None

    def get(self, address: str) -> StrategyParams:
        """
        Get the active entry for a strategy.

        Raises:
            StrategyNotFound: If no active entry exists
        """
        params = self.find(address)
        if params is None or not params.active:
            raise StrategyNotFound(f"Strategy {address} is not registered")
        return params

    def add(self, strategy: StrategyProtocol, weight_bps: int) -> StrategyParams:
        """
        Register a strategy.

        Raises:
            ZeroAddress: If the strategy has no address
            StrategyAlreadyActive: If the strategy is already active
            MaxStrategiesReached: If the registry is full
            WeightExceeds100Percent: If the new total weight exceeds 10,000 bps
        """
        if is_zero_address(getattr(strategy, "address", None)):
            raise ZeroAddress("Strategy address is empty")

        existing = self.find(strategy.address)
        if existing is not None and existing.active:
            raise StrategyAlreadyActive(f"Strategy {strategy.address} already active")

        if len(self.active()) >= self.max_strategies:
            raise MaxStrategiesReached(
                f"Registry holds the maximum of {self.max_strategies} strategies"
            )
        self._check_weight(weight_bps, self.total_weight())

        if existing is not None:
            # Reactivate in place; a removed entry has no debt left
            existing.strategy = strategy
            existing.weight_bps = weight_bps
            existing.active = True
            existing.last_report = self._clock()
            params = existing
        else:
            params = StrategyParams(
                strategy=strategy,
                weight_bps=weight_bps,
                last_report=self._clock(),
            )
            self._ledger.strategies.append(params)

        logger.info(f"Strategy added: {params.address} ({weight_bps} bps)")
        return params

    def update_weight(self, address: str, weight_bps: int) -> StrategyParams:
        params = self.get(address)
        self._check_weight(weight_bps, self.total_weight(exclude=address))
        old = params.weight_bps
        params.weight_bps = weight_bps
        logger.info(f"Strategy weight updated: {address} {old} -> {weight_bps} bps")
        return params

    def deactivate(self, address: str) -> StrategyParams:
        """Mark an entry inactive and clear its recorded debt."""
        params = self.get(address)
        params.active = False
        params.current_debt = Decimal("0")
        params.weight_bps = 0
        return params

    @staticmethod
    def _check_weight(weight_bps: int, other_weight: int) -> None:
        if weight_bps < 0:
            raise WeightExceeds100Percent(f"Negative weight: {weight_bps}")
        if other_weight + weight_bps > MAX_BPS:
            raise WeightExceeds100Percent(
                f"Total weight {other_weight + weight_bps} bps exceeds {MAX_BPS}",
                details={"requested": weight_bps, "allocated": other_weight},
            )
