"""
Vault Ledger State.

The single shared aggregate every engine component operates on. Components
receive the same ledger instance by reference; transactions snapshot and
restore it in place so those references stay valid.
"""

from copy import copy
from dataclasses import dataclass, field, fields
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Set, Tuple

from ..interfaces import StrategyProtocol


@dataclass
class StrategyParams:
    """
    Registry entry for one strategy.

    Attributes:
        strategy: Opaque strategy handle
        weight_bps: Target share of idle capital per deployment
        active: Whether the strategy takes part in deployment/withdrawal
        current_debt: Recorded value (primary terms) deployed to the strategy
        last_report: Timestamp of the last report that valued this strategy
    """

    strategy: StrategyProtocol
    weight_bps: int
    active: bool = True
    current_debt: Decimal = Decimal("0")
    last_report: Optional[datetime] = None

    @property
    def address(self) -> str:
        return self.strategy.address

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "weight_bps": self.weight_bps,
            "active": self.active,
            "current_debt": str(self.current_debt),
            "last_report": self.last_report.isoformat() if self.last_report else None,
        }


@dataclass
class VaultLedger:
    """
    Mutable vault state.

    Amounts are in whole-token units. ``total_idle`` and each strategy's
    ``current_debt`` are recorded values in primary-asset terms; only a
    report re-values them against live holdings.
    """

    vault_address: str
    max_supply: Decimal
    bootstrap_multiplier: Decimal

    # Idle holdings (token amounts, mirrors of the vault's own balances)
    idle_primary: Decimal = Decimal("0")
    idle_secondary: Decimal = Decimal("0")
    # Recorded value of idle holdings in primary terms
    total_idle: Decimal = Decimal("0")

    strategies: List[StrategyParams] = field(default_factory=list)

    # Share token
    raw_supply: Decimal = Decimal("0")
    balances: Dict[str, Decimal] = field(default_factory=dict)
    allowances: Dict[Tuple[str, str], Decimal] = field(default_factory=dict)

    # Profit locking schedule
    locked_at_report: Decimal = Decimal("0")
    last_profit_update: Optional[datetime] = None
    full_profit_unlock_date: Optional[datetime] = None
    profit_max_unlock_time: timedelta = timedelta(days=7)

    # Fees
    performance_fee_bps: int = 0
    fee_recipient: Optional[str] = None

    # Cadence
    last_report: Optional[datetime] = None
    last_deployment: Optional[datetime] = None
    deployment_threshold: Decimal = Decimal("0")
    min_deployment_interval: timedelta = timedelta(0)

    # Roles
    management: Optional[str] = None
    keeper: Optional[str] = None
    emergency_admin: Optional[str] = None

    # Lifecycle
    paused: bool = False
    shutdown: bool = False
    whitelist_enabled: bool = False
    whitelist: Set[str] = field(default_factory=set)

    @property
    def total_debt(self) -> Decimal:
        """Sum of recorded strategy debt."""
        return sum((s.current_debt for s in self.strategies), Decimal("0"))

    def snapshot(self) -> "VaultLedger":
        """
        Create a detached copy of the ledger for rollback.

        Containers and strategy entries are copied; strategy handles are
        shared, never duplicated.
        """
        clone = copy(self)
        clone.strategies = [copy(s) for s in self.strategies]
        clone.balances = dict(self.balances)
        clone.allowances = dict(self.allowances)
        clone.whitelist = set(self.whitelist)
        return clone

    def restore(self, snapshot: "VaultLedger") -> None:
        """Restore every field from a snapshot, in place."""
        for f in fields(self):
            setattr(self, f.name, getattr(snapshot, f.name))
        # Keep the snapshot reusable
        self.strategies = [copy(s) for s in snapshot.strategies]
        self.balances = dict(snapshot.balances)
        self.allowances = dict(snapshot.allowances)
        self.whitelist = set(snapshot.whitelist)
