"""
Vault Record Models.

Results returned by vault entry points and kept as bounded history:
deposits, withdrawals, deployments, strategy removals and reports.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional
import uuid


@dataclass
class DualDepositResult:
    """
    Outcome of a dual-asset deposit.

    Attributes:
        shares: Shares minted to the receiver
        value: Deposit value in primary-asset terms
        primary_used: Primary asset kept by the vault (including swap output)
        secondary_used: Secondary asset kept by the vault
        secondary_swapped: Secondary asset converted to primary
        primary_from_swap: Primary asset received from the swap
        secondary_refunded: Secondary remainder returned to the caller
    """

    shares: Decimal
    value: Decimal
    primary_used: Decimal
    secondary_used: Decimal
    secondary_swapped: Decimal = Decimal("0")
    primary_from_swap: Decimal = Decimal("0")
    secondary_refunded: Decimal = Decimal("0")

    def to_dict(self) -> Dict[str, Any]:
        return {k: str(v) for k, v in self.__dict__.items()}


@dataclass
class DepositPreview:
    """Preview of a dual-asset deposit."""

    shares: Decimal
    value: Decimal
    usd_value: Decimal


@dataclass
class InjectionPreview:
    """Preview of a capital injection's effect on share value."""

    new_share_value: Decimal
    value_increase: Decimal
    percentage_increase: Decimal


@dataclass
class WithdrawalResult:
    """
    Outcome of a withdrawal or redemption.

    Attributes:
        shares: Shares burned
        expected_assets: Value owed for the burned shares (primary terms)
        primary_out: Primary asset paid to the receiver
        secondary_out: Secondary asset paid to the receiver (dual payout only)
        received_value: Value realized in primary terms
        loss: Shortfall borne by the withdrawer
        loss_bps: Shortfall in basis points of expected_assets
    """

    shares: Decimal
    expected_assets: Decimal
    primary_out: Decimal
    secondary_out: Decimal = Decimal("0")
    received_value: Decimal = Decimal("0")
    loss: Decimal = Decimal("0")
    loss_bps: Decimal = Decimal("0")
    strategies_touched: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "shares": str(self.shares),
            "expected_assets": str(self.expected_assets),
            "primary_out": str(self.primary_out),
            "secondary_out": str(self.secondary_out),
            "received_value": str(self.received_value),
            "loss": str(self.loss),
            "loss_bps": str(self.loss_bps),
            "strategies_touched": list(self.strategies_touched),
        }


@dataclass
class AllocationRecord:
    """
    Record of a deployment of idle capital to a strategy.

    Attributes:
        id: Unique record identifier
        timestamp: When the deployment happened
        strategy: Strategy address
        amount_primary: Primary asset moved to the strategy
        amount_secondary: Secondary asset moved to the strategy
        value: Recorded value added to the strategy's debt
        trigger: What triggered the deployment (deposit, tend, force)
        success: Whether the strategy accepted the deposit
        error_message: Error message if failed
    """

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    strategy: str = ""
    amount_primary: Decimal = Decimal("0")
    amount_secondary: Decimal = Decimal("0")
    value: Decimal = Decimal("0")
    trigger: str = "tend"
    success: bool = True
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "strategy": self.strategy,
            "amount_primary": str(self.amount_primary),
            "amount_secondary": str(self.amount_secondary),
            "value": str(self.value),
            "trigger": self.trigger,
            "success": self.success,
            "error_message": self.error_message,
        }


@dataclass
class RemovalRecord:
    """
    Record of a strategy removal.

    The shortfall (recorded debt minus value returned) is realized as a loss
    at the next report.
    """

    strategy: str
    recorded_debt: Decimal
    returned_primary: Decimal
    returned_secondary: Decimal
    returned_value: Decimal
    shortfall: Decimal
    error_message: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class StrategyReport:
    """Per-strategy valuation change within a report."""

    strategy: str
    previous_debt: Decimal
    current_value: Decimal

    @property
    def gain(self) -> Decimal:
        return max(Decimal("0"), self.current_value - self.previous_debt)

    @property
    def loss(self) -> Decimal:
        return max(Decimal("0"), self.previous_debt - self.current_value)


@dataclass
class ReportRecord:
    """
    Record of one profit/loss reconciliation.

    Attributes:
        timestamp: When the report ran
        total_assets_before: Recorded total assets before the report
        total_assets_after: Re-valued total assets
        profit: Recognized profit (primary terms)
        loss: Recognized loss (primary terms)
        fee_shares: Shares minted to the fee recipient
        locked_shares: Shares newly locked by this report
        burned_locked_shares: Locked shares burned to offset a loss
        unlocked_shares_burned: Previously vested shares burned at report start
        total_locked_after: Locked shares vesting after the report
        full_unlock_date: When the locked shares finish vesting
        price_per_share_before: Share price before the report
        price_per_share_after: Share price right after the report
        strategies: Per-strategy valuation changes
    """

    timestamp: datetime
    total_assets_before: Decimal
    total_assets_after: Decimal
    profit: Decimal = Decimal("0")
    loss: Decimal = Decimal("0")
    fee_shares: Decimal = Decimal("0")
    locked_shares: Decimal = Decimal("0")
    burned_locked_shares: Decimal = Decimal("0")
    unlocked_shares_burned: Decimal = Decimal("0")
    total_locked_after: Decimal = Decimal("0")
    full_unlock_date: Optional[datetime] = None
    price_per_share_before: Decimal = Decimal("0")
    price_per_share_after: Decimal = Decimal("0")
    strategies: List[StrategyReport] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "total_assets_before": str(self.total_assets_before),
            "total_assets_after": str(self.total_assets_after),
            "profit": str(self.profit),
            "loss": str(self.loss),
            "fee_shares": str(self.fee_shares),
            "locked_shares": str(self.locked_shares),
            "burned_locked_shares": str(self.burned_locked_shares),
            "unlocked_shares_burned": str(self.unlocked_shares_burned),
            "total_locked_after": str(self.total_locked_after),
            "full_unlock_date": (
                self.full_unlock_date.isoformat() if self.full_unlock_date else None
            ),
            "price_per_share_before": str(self.price_per_share_before),
            "price_per_share_after": str(self.price_per_share_after),
            "strategies": [
                {
                    "strategy": s.strategy,
                    "previous_debt": str(s.previous_debt),
                    "current_value": str(s.current_value),
                }
                for s in self.strategies
            ],
        }
