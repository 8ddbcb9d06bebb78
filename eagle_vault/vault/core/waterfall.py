"""
Withdrawal Waterfall.

Satisfies a withdrawal of ``expected`` primary-asset value in order:
1. Strategies (registration order) refill idle when recorded idle value is
   short; each is asked for ``min(remaining, current_debt)``
2. Idle primary asset
3. Idle secondary asset, swapped to primary (single payout) or paid as-is
   (dual payout)

Whatever a strategy fails to return, and any swap shortfall, is the
withdrawer's loss. The call fails with LossExceeded when that loss is above
the caller's tolerance.
"""

from decimal import ROUND_UP, Decimal
from functools import partial
from typing import List, Optional, Tuple

from eagle_vault.core import LossExceeded, SlippageExceeded, get_logger
from eagle_vault.core.utils import MAX_BPS, ZERO, mul_div, shortfall_bps

from ..interfaces import StrategyProtocol, TokenProtocol
from ..models.records import WithdrawalResult
from ..models.state import VaultLedger
from .guard import LedgerTransaction
from .oracle import PriceOracleAdapter
from .registry import StrategyRegistry
from .swap import SwapExecutor

logger = get_logger(__name__)


def _rebook_pull(address: str, value: Decimal, ledger: VaultLedger) -> None:
    """Move value a strategy already sent back out of its debt and into idle."""
    for params in ledger.strategies:
        if params.address == address:
            params.current_debt -= min(params.current_debt, value)
            break
    ledger.total_idle += value


def _rebook_swap(value_out: Decimal, value_in: Decimal, ledger: VaultLedger) -> None:
    """Re-value idle after secondary was already swapped into primary."""
    ledger.total_idle = max(ZERO, ledger.total_idle - value_out + value_in)


class WithdrawalWaterfall:
    """Fulfils withdrawals from idle holdings and strategies."""

    def __init__(
        self,
        ledger: VaultLedger,
        registry: StrategyRegistry,
        oracle: PriceOracleAdapter,
        swapper: SwapExecutor,
        primary_token: TokenProtocol,
        secondary_token: TokenProtocol,
    ):
        self._ledger = ledger
        self._registry = registry
        self._oracle = oracle
        self._swapper = swapper
        self._primary = primary_token
        self._secondary = secondary_token
        self._rate: Optional[Decimal] = None

    async def _get_rate(self) -> Decimal:
        if self._rate is None:
            self._rate = await self._oracle.primary_per_secondary_rate()
        return self._rate

    async def execute(
        self,
        shares: Decimal,
        expected: Decimal,
        receiver: str,
        max_loss_bps: int,
        dual: bool = False,
        min_primary_out: Optional[Decimal] = None,
        tx: Optional[LedgerTransaction] = None,
    ) -> WithdrawalResult:
        """
        Pull ``expected`` value out of the vault and pay it to the receiver.

        The caller has already burned ``shares``. Ledger changes are booked
        before every external call. Token moves that a rollback of ``tx``
        cannot undo (strategy pulls, payout swaps) are registered with it as
        settlements.

        Raises:
            LossExceeded: If the realized shortfall exceeds ``max_loss_bps``
            SlippageExceeded: If a payout swap cannot meet its minimum, or the
                primary payout falls below ``min_primary_out``
        """
        self._rate = None
        ledger = self._ledger

        touched: List[str] = []
        strategy_loss = ZERO
        if ledger.total_idle < expected:
            touched, strategy_loss = await self._pull_from_strategies(
                expected - ledger.total_idle, tx
            )

        to_pay = max(ZERO, expected - strategy_loss)

        # Idle primary
        pay_primary = min(to_pay, ledger.idle_primary)
        ledger.idle_primary -= pay_primary
        ledger.total_idle -= min(ledger.total_idle, pay_primary)
        received_value = pay_primary
        remaining = to_pay - pay_primary

        # Idle secondary
        pay_secondary = ZERO
        swap_in = ZERO
        swap_value = ZERO
        if remaining > 0 and ledger.idle_secondary > 0:
            rate = await self._get_rate()
            needed = mul_div(remaining, 1, rate, ROUND_UP)
            take = min(needed, ledger.idle_secondary)
            take_value = min(remaining, mul_div(take, rate, 1))
            ledger.idle_secondary -= take
            ledger.total_idle -= min(ledger.total_idle, take_value)
            if dual:
                pay_secondary = take
                received_value += take_value
            else:
                swap_in = take
                swap_value = take_value

        # Swap payout
        if swap_in > 0:
            swapped = await self._swapper.secondary_to_primary(swap_in)
            if tx is not None:
                tx.settle_on_rollback(
                    f"swapped {swap_in} secondary for {swapped} primary",
                    partial(_rebook_swap, swap_value, swapped),
                )
            pay_primary += swapped
            received_value += swapped

        loss = max(ZERO, expected - received_value)
        loss_bps = shortfall_bps(expected, received_value)
        if loss_bps > max_loss_bps:
            raise LossExceeded(
                f"Withdrawal shortfall {loss_bps} bps exceeds tolerance {max_loss_bps} bps",
                expected=expected,
                actual=received_value,
                details={"loss": str(loss)},
            )
        if min_primary_out is not None and pay_primary < min_primary_out:
            raise SlippageExceeded(
                "Primary payout below minimum output",
                expected=min_primary_out,
                actual=pay_primary,
            )

        vault = ledger.vault_address
        if pay_primary > 0:
            await self._primary.transfer(vault, receiver, pay_primary)
        if pay_secondary > 0:
            await self._secondary.transfer(vault, receiver, pay_secondary)

        if loss > 0:
            logger.warning(f"Withdrawal realized a loss of {loss} ({loss_bps} bps)")

        return WithdrawalResult(
            shares=shares,
            expected_assets=expected,
            primary_out=pay_primary,
            secondary_out=pay_secondary,
            received_value=received_value,
            loss=loss,
            loss_bps=loss_bps,
            strategies_touched=touched,
        )

    async def _pull_from_strategies(
        self,
        needed: Decimal,
        tx: Optional[LedgerTransaction] = None,
    ) -> Tuple[List[str], Decimal]:
        """
        Refill idle from strategies, registration order.

        Returns the strategies touched and the value they failed to return.
        """
        ledger = self._ledger
        vault = ledger.vault_address
        remaining = needed
        touched: List[str] = []
        total_loss = ZERO

        for params in self._registry.active():
            if remaining <= 0:
                break
            request = min(remaining, params.current_debt)
            if request <= 0:
                continue

            before_primary = await self._primary.balance_of(vault)
            before_secondary = await self._secondary.balance_of(vault)
            params.current_debt -= request

            try:
                await params.strategy.withdraw(request)
            except Exception as e:
                params.current_debt += request
                logger.warning(f"Strategy {params.address} withdraw failed, skipping: {e}")
                continue

            got_primary = max(ZERO, await self._primary.balance_of(vault) - before_primary)
            got_secondary = max(
                ZERO, await self._secondary.balance_of(vault) - before_secondary
            )
            value = got_primary
            if got_secondary > 0:
                value += mul_div(got_secondary, await self._get_rate(), 1)

            ledger.idle_primary += got_primary
            ledger.idle_secondary += got_secondary
            ledger.total_idle += value
            touched.append(params.address)
            if tx is not None:
                tx.settle_on_rollback(
                    f"{params.address} returned {value}",
                    partial(_rebook_pull, params.address, value),
                )

            if value < request:
                shortfall = request - value
                total_loss += shortfall
                logger.warning(
                    f"Strategy {params.address} returned {value} of {request} requested"
                )
            remaining -= request

        return touched, total_loss

    async def max_withdraw(self, assets: Decimal, max_loss_bps: int) -> Decimal:
        """
        Largest value up to ``assets`` withdrawable within ``max_loss_bps``.

        Each strategy's unrealized loss ratio ``(debt - live) / debt`` is what
        a withdrawal from it would realize. Strategies are taken in
        registration order, as in ``execute``.
        """
        ledger = self._ledger
        available = min(assets, ledger.total_idle)
        realized_loss = ZERO
        tolerance = Decimal(max_loss_bps) / Decimal(MAX_BPS)

        for params in self._registry.active():
            if available >= assets:
                break
            if params.current_debt <= 0:
                continue

            live = await self.strategy_value(params.strategy)
            loss_ratio = ZERO
            if live < params.current_debt:
                loss_ratio = (params.current_debt - live) / params.current_debt

            take = min(assets - available, params.current_debt)
            new_total = available + take
            new_loss = realized_loss + take * loss_ratio
            if new_loss <= new_total * tolerance:
                available, realized_loss = new_total, new_loss
                continue

            # Partial take: (L + x*r) <= (A + x)*t
            if loss_ratio > tolerance:
                partial_take = (available * tolerance - realized_loss) / (loss_ratio - tolerance)
                if partial_take > 0:
                    available += min(take, partial_take)
            break

        return mul_div(available, 1, 1)

    async def strategy_value(self, strategy: StrategyProtocol) -> Decimal:
        """Live value of a strategy's holdings in primary terms."""
        amount_primary, amount_secondary = await strategy.get_total_amounts()
        value = amount_primary
        if amount_secondary > 0:
            value += mul_div(amount_secondary, await self._oracle.primary_per_secondary_rate(), 1)
        return value
