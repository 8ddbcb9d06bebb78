"""
Eagle Vault.

Accounting, pricing, strategy-orchestration and profit/loss-reporting engine
for a dual-asset tokenized vault.
"""

from .vault import DualAssetVault

__version__ = "0.1.0"

__all__ = ["DualAssetVault", "__version__"]
