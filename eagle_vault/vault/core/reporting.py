"""
Reporting Engine.

One report cycle:
1. Burn shares vested since the last report
2. Resync idle amounts from the vault's token balances and re-value idle and
   every active strategy at the oracle rate
3. Profit: mint fee shares to the fee recipient and lock the rest of the
   profit's share equivalent, vesting over ``profit_max_unlock_time``
4. Loss: burn still-locked shares first; anything beyond them lowers the
   share price for every holder
"""

from datetime import datetime
from decimal import ROUND_UP, Decimal
from typing import Callable, List, Optional

from eagle_vault.core import get_logger
from eagle_vault.core.utils import ZERO, apply_bps, mul_div

from ..interfaces import TokenProtocol
from ..models.records import ReportRecord, StrategyReport
from ..models.state import VaultLedger
from .guard import TransactionManager
from .oracle import PriceOracleAdapter
from .registry import StrategyRegistry
from .shares import ShareAccounting

logger = get_logger(__name__)


class ReportingEngine:
    """
    Profit/loss reconciliation with time-vested profit recognition.

    Example:
        >>> record = await engine.report()
        >>> record.profit, record.fee_shares, record.locked_shares
    """

    def __init__(
        self,
        ledger: VaultLedger,
        shares: ShareAccounting,
        registry: StrategyRegistry,
        oracle: PriceOracleAdapter,
        transactions: TransactionManager,
        primary_token: TokenProtocol,
        secondary_token: TokenProtocol,
        clock: Callable[[], datetime],
        max_history: int = 100,
    ):
        self._ledger = ledger
        self._shares = shares
        self._registry = registry
        self._oracle = oracle
        self._transactions = transactions
        self._primary = primary_token
        self._secondary = secondary_token
        self._clock = clock
        self._history: List[ReportRecord] = []
        self._max_history = max_history

    @property
    def history(self) -> List[ReportRecord]:
        return list(self._history)

    @property
    def last_record(self) -> Optional[ReportRecord]:
        return self._history[-1] if self._history else None

    async def report(self) -> ReportRecord:
        """Run one reconciliation cycle and return its record."""
        ledger = self._ledger
        shares = self._shares
        now = self._clock()

        total_assets_before = shares.total_assets()
        price_before = shares.price_per_share()
        unlocked_burned = shares.burn_unlocked_shares()

        strategy_reports = await self._revalue(now)
        total_assets_after = shares.total_assets()
        supply = shares.total_supply(now)

        record = ReportRecord(
            timestamp=now,
            total_assets_before=total_assets_before,
            total_assets_after=total_assets_after,
            unlocked_shares_burned=unlocked_burned,
            price_per_share_before=price_before,
            strategies=strategy_reports,
        )

        if total_assets_after > total_assets_before:
            record.profit = total_assets_after - total_assets_before
            self._handle_profit(record, supply, total_assets_before, now)
        elif total_assets_after < total_assets_before:
            record.loss = total_assets_before - total_assets_after
            self._handle_loss(record, supply, total_assets_before)

        if ledger.locked_at_report == 0:
            ledger.last_profit_update = None
            ledger.full_profit_unlock_date = None

        ledger.last_report = now
        record.total_locked_after = shares.total_locked_shares(now)
        record.full_unlock_date = ledger.full_profit_unlock_date
        record.price_per_share_after = shares.price_per_share()

        self._history.append(record)
        if len(self._history) > self._max_history:
            self._history = self._history[-self._max_history:]

        logger.info(
            f"Report: assets {total_assets_before} -> {total_assets_after}, "
            f"profit={record.profit} loss={record.loss} "
            f"fee_shares={record.fee_shares} locked={record.locked_shares}"
        )
        return record

    async def _revalue(self, now: datetime) -> List[StrategyReport]:
        """Re-value idle holdings and every active strategy at the oracle rate."""
        ledger = self._ledger
        await self._transactions.resync_idle()

        rate: Optional[Decimal] = None

        async def value_of(amount_primary: Decimal, amount_secondary: Decimal) -> Decimal:
            nonlocal rate
            if amount_secondary <= 0:
                return amount_primary
            if rate is None:
                rate = await self._oracle.primary_per_secondary_rate()
            return amount_primary + mul_div(amount_secondary, rate, 1)

        ledger.total_idle = await value_of(ledger.idle_primary, ledger.idle_secondary)

        reports: List[StrategyReport] = []
        for params in self._registry.active():
            amount_primary, amount_secondary = await params.strategy.get_total_amounts()
            current = await value_of(amount_primary, amount_secondary)
            reports.append(
                StrategyReport(
                    strategy=params.address,
                    previous_debt=params.current_debt,
                    current_value=current,
                )
            )
            params.current_debt = current
            params.last_report = now
        return reports

    def _handle_profit(
        self,
        record: ReportRecord,
        supply: Decimal,
        total_assets_before: Decimal,
        now: datetime,
    ) -> None:
        ledger = self._ledger
        shares = self._shares
        if supply == 0 or total_assets_before == 0:
            # No holders to protect from dilution
            return

        shares_equivalent = mul_div(record.profit, supply, total_assets_before)
        headroom = shares.mint_headroom()

        fee_shares = ZERO
        if ledger.fee_recipient and ledger.performance_fee_bps > 0:
            fee_shares = min(apply_bps(shares_equivalent, ledger.performance_fee_bps), headroom)
            if fee_shares > 0:
                shares.mint(ledger.fee_recipient, fee_shares)
                headroom -= fee_shares
        record.fee_shares = fee_shares

        to_lock = shares_equivalent - fee_shares
        if ledger.profit_max_unlock_time.total_seconds() == 0:
            # Recognize immediately; nothing stays locked
            if ledger.locked_at_report > 0:
                shares.burn_locked_shares(ledger.locked_at_report)
            return

        to_lock = min(to_lock, headroom)
        if to_lock < shares_equivalent - fee_shares:
            logger.warning(
                f"Supply cap clamps locked shares to {to_lock} "
                f"(wanted {shares_equivalent - fee_shares})"
            )
        shares.lock_shares(to_lock)
        record.locked_shares = to_lock

        if ledger.locked_at_report > 0:
            ledger.last_profit_update = now
            ledger.full_profit_unlock_date = now + ledger.profit_max_unlock_time

    def _handle_loss(
        self,
        record: ReportRecord,
        supply: Decimal,
        total_assets_before: Decimal,
    ) -> None:
        ledger = self._ledger
        if ledger.locked_at_report <= 0 or total_assets_before == 0:
            return

        shares_equivalent = mul_div(record.loss, supply, total_assets_before, ROUND_UP)
        to_burn = min(ledger.locked_at_report, shares_equivalent)
        self._shares.burn_locked_shares(to_burn)
        record.burned_locked_shares = to_burn

        if shares_equivalent > to_burn:
            logger.warning(
                f"Loss exceeds locked profit by {shares_equivalent - to_burn} shares; "
                f"holders absorb the rest"
            )
