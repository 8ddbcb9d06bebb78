"""
Allocation Engine.

Pushes idle capital into active strategies by weight. Each strategy gets
``weight_bps / 10,000`` of the idle amounts present when the deployment
starts, for both assets, so the recorded idle value moves by the same
fraction.
"""

from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional

from eagle_vault.core import get_logger
from eagle_vault.core.utils import ZERO, apply_bps, mul_div

from ..interfaces import TokenProtocol
from ..models.records import AllocationRecord
from ..models.state import StrategyParams, VaultLedger
from .oracle import PriceOracleAdapter
from .registry import StrategyRegistry

logger = get_logger(__name__)


class AllocationEngine:
    """
    Deploys idle capital per weight/threshold/interval policy.

    Strategy failures never abort a deployment round: the failure is logged
    and recorded, and whatever did not leave the vault stays idle.

    Example:
        >>> if engine.tend_trigger():
        ...     records = await engine.deploy(trigger="tend")
    """

    def __init__(
        self,
        ledger: VaultLedger,
        registry: StrategyRegistry,
        oracle: PriceOracleAdapter,
        primary_token: TokenProtocol,
        secondary_token: TokenProtocol,
        clock: Callable[[], datetime],
        max_history: int = 1000,
    ):
        self._ledger = ledger
        self._registry = registry
        self._oracle = oracle
        self._primary = primary_token
        self._secondary = secondary_token
        self._clock = clock
        self._history: List[AllocationRecord] = []
        self._max_history = max_history

    @property
    def history(self) -> List[AllocationRecord]:
        return list(self._history)

    def tend_trigger(self, now: Optional[datetime] = None) -> bool:
        """Whether ``tend`` would deploy anything right now (read-only)."""
        ledger = self._ledger
        if ledger.shutdown:
            return False
        if not any(s.weight_bps > 0 for s in self._registry.active()):
            return False
        if ledger.total_idle <= 0 or ledger.total_idle <= ledger.deployment_threshold:
            return False
        if ledger.last_deployment is not None:
            now = now or self._clock()
            if now - ledger.last_deployment < ledger.min_deployment_interval:
                return False
        return True

    async def deploy(self, trigger: str = "tend") -> List[AllocationRecord]:
        """
        Deploy idle capital to every active strategy, registration order.

        Guards are the caller's concern; see ``tend_trigger``.
        """
        ledger = self._ledger
        start_primary = ledger.idle_primary
        start_secondary = ledger.idle_secondary
        start_value = ledger.total_idle
        records: List[AllocationRecord] = []

        if start_value <= 0 and start_primary <= 0 and start_secondary <= 0:
            return records

        for params in self._registry.active():
            if params.weight_bps <= 0:
                continue
            amount_primary = min(apply_bps(start_primary, params.weight_bps), ledger.idle_primary)
            amount_secondary = min(
                apply_bps(start_secondary, params.weight_bps), ledger.idle_secondary
            )
            value = min(apply_bps(start_value, params.weight_bps), ledger.total_idle)
            if amount_primary <= 0 and amount_secondary <= 0:
                continue

            record = await self._deploy_to(
                params, amount_primary, amount_secondary, value, trigger
            )
            records.append(record)

        if any(r.success for r in records):
            ledger.last_deployment = self._clock()

        self._history.extend(records)
        if len(self._history) > self._max_history:
            self._history = self._history[-self._max_history:]
        return records

    async def _deploy_to(
        self,
        params: StrategyParams,
        amount_primary: Decimal,
        amount_secondary: Decimal,
        value: Decimal,
        trigger: str,
    ) -> AllocationRecord:
        ledger = self._ledger
        vault = ledger.vault_address
        strategy = params.strategy

        balance_primary = await self._primary.balance_of(vault)
        balance_secondary = await self._secondary.balance_of(vault)

        # Book the move before calling out
        ledger.idle_primary -= amount_primary
        ledger.idle_secondary -= amount_secondary
        ledger.total_idle -= value
        params.current_debt += value

        try:
            if amount_primary > 0:
                await self._primary.transfer(vault, strategy.address, amount_primary)
            if amount_secondary > 0:
                await self._secondary.transfer(vault, strategy.address, amount_secondary)
            await strategy.deposit(amount_primary, amount_secondary)
        except Exception as e:
            logger.error(f"Deployment to {params.address} failed: {e}")
            await self._unwind(
                params,
                amount_primary,
                amount_secondary,
                value,
                balance_primary,
                balance_secondary,
            )
            return AllocationRecord(
                strategy=params.address,
                amount_primary=amount_primary,
                amount_secondary=amount_secondary,
                value=value,
                trigger=trigger,
                success=False,
                error_message=str(e),
            )

        logger.info(
            f"Deployed {amount_primary} {self._primary.symbol} + "
            f"{amount_secondary} {self._secondary.symbol} to {params.address} "
            f"(value {value})"
        )
        return AllocationRecord(
            strategy=params.address,
            amount_primary=amount_primary,
            amount_secondary=amount_secondary,
            value=value,
            trigger=trigger,
        )

    async def _unwind(
        self,
        params: StrategyParams,
        amount_primary: Decimal,
        amount_secondary: Decimal,
        value: Decimal,
        balance_primary: Decimal,
        balance_secondary: Decimal,
    ) -> None:
        """Return to idle whatever did not leave the vault."""
        ledger = self._ledger
        vault = ledger.vault_address
        moved_primary = max(ZERO, balance_primary - await self._primary.balance_of(vault))
        moved_secondary = max(
            ZERO, balance_secondary - await self._secondary.balance_of(vault)
        )
        kept_primary = max(ZERO, amount_primary - moved_primary)
        kept_secondary = max(ZERO, amount_secondary - moved_secondary)

        if moved_primary == 0 and moved_secondary == 0:
            value_back = value
        elif kept_primary == 0 and kept_secondary == 0:
            value_back = ZERO
        else:
            rate = await self._oracle.primary_per_secondary_rate()
            value_back = min(
                value, kept_primary + mul_div(kept_secondary, rate, 1)
            )

        ledger.idle_primary += kept_primary
        ledger.idle_secondary += kept_secondary
        ledger.total_idle += value_back
        params.current_debt -= value_back

        if value_back < value:
            logger.warning(
                f"{params.address} holds {value - value_back} of undeposited value; "
                f"the next report reconciles it"
            )
