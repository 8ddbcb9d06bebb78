from .records import (
    AllocationRecord,
    DepositPreview,
    DualDepositResult,
    InjectionPreview,
    RemovalRecord,
    ReportRecord,
    StrategyReport,
    WithdrawalResult,
)
from .state import StrategyParams, VaultLedger

__all__ = [
    "VaultLedger",
    "StrategyParams",
    "AllocationRecord",
    "DepositPreview",
    "DualDepositResult",
    "InjectionPreview",
    "RemovalRecord",
    "ReportRecord",
    "StrategyReport",
    "WithdrawalResult",
]
