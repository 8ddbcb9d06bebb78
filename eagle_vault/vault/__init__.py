"""
Vault Module.

Dual-asset tokenized vault engine: share accounting, oracle-validated
conversion, strategy orchestration and time-vested profit reporting.

Includes:
- DualAssetVault: Public entry points over one shared ledger
- Collaborator protocols for tokens, strategies, feeds, pool and router
- Ledger and record models
"""

from .core import (
    AllocationEngine,
    LifecycleControl,
    PriceOracleAdapter,
    ReportingEngine,
    Role,
    ShareAccounting,
    StrategyRegistry,
    SwapExecutor,
    WithdrawalWaterfall,
)
from .interfaces import (
    PoolProtocol,
    PriceFeedProtocol,
    RouterProtocol,
    StrategyProtocol,
    TokenProtocol,
)
from .models import (
    AllocationRecord,
    DepositPreview,
    DualDepositResult,
    InjectionPreview,
    RemovalRecord,
    ReportRecord,
    StrategyParams,
    StrategyReport,
    VaultLedger,
    WithdrawalResult,
)
from .vault import DualAssetVault

__all__ = [
    # Vault
    "DualAssetVault",
    # Components
    "PriceOracleAdapter",
    "SwapExecutor",
    "ShareAccounting",
    "StrategyRegistry",
    "AllocationEngine",
    "WithdrawalWaterfall",
    "ReportingEngine",
    "LifecycleControl",
    "Role",
    # Protocols
    "TokenProtocol",
    "StrategyProtocol",
    "PriceFeedProtocol",
    "PoolProtocol",
    "RouterProtocol",
    # Models
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
