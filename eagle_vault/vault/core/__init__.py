"""
Vault Engine Components.

Oracle, swaps, share accounting, strategy registry, allocation, withdrawal,
reporting and lifecycle control, all operating on one shared ledger.
"""

from .allocator import AllocationEngine
from .guard import LedgerTransaction, ReentrancyGuard, TransactionManager, TransactionStatus
from .lifecycle import LifecycleControl, Role
from .oracle import PriceOracleAdapter, tick_to_price
from .registry import StrategyRegistry
from .reporting import ReportingEngine
from .shares import ShareAccounting
from .swap import SwapExecutor
from .waterfall import WithdrawalWaterfall

__all__ = [
    # Guard
    "ReentrancyGuard",
    "TransactionManager",
    "LedgerTransaction",
    "TransactionStatus",
    # Pricing
    "PriceOracleAdapter",
    "tick_to_price",
    "SwapExecutor",
    # Accounting
    "ShareAccounting",
    "StrategyRegistry",
    "AllocationEngine",
    "WithdrawalWaterfall",
    "ReportingEngine",
    # Lifecycle
    "LifecycleControl",
    "Role",
]
