"""
Lifecycle Control.

Role checks, the pause flag, the one-way shutdown, the deposit allow-list
and the post-shutdown emergency withdrawal.
"""

from decimal import Decimal
from enum import Enum
from typing import Optional

from eagle_vault.core import (
    NotWhitelisted,
    Unauthorized,
    VaultIsShutdown,
    VaultNotShutdown,
    VaultPaused,
    ZeroAddress,
    ZeroAmount,
    get_logger,
)
from eagle_vault.core.utils import MAX_BPS, is_zero_address

from ..models.records import WithdrawalResult
from ..models.state import VaultLedger
from .guard import LedgerTransaction
from .waterfall import WithdrawalWaterfall

logger = get_logger(__name__)


class Role(str, Enum):
    """Vault roles."""

    MANAGEMENT = "management"
    KEEPER = "keeper"
    EMERGENCY_ADMIN = "emergency_admin"


class LifecycleControl:
    """
    Gatekeeper for roles and lifecycle state.

    Management may act wherever the keeper or emergency admin may, except
    for the emergency withdrawal itself.
    """

    def __init__(self, ledger: VaultLedger, waterfall: WithdrawalWaterfall):
        self._ledger = ledger
        self._waterfall = waterfall

    # =========================================================================
    # Roles
    # =========================================================================

    def holder(self, role: Role) -> Optional[str]:
        return getattr(self._ledger, role.value)

    def has_role(self, caller: Optional[str], role: Role) -> bool:
        return caller is not None and caller == self.holder(role)

    def require_management(self, caller: Optional[str]) -> None:
        if not self.has_role(caller, Role.MANAGEMENT):
            raise Unauthorized(caller=caller, role=Role.MANAGEMENT.value)

    def require_keeper(self, caller: Optional[str]) -> None:
        """Keeper or management."""
        if not (
            self.has_role(caller, Role.KEEPER)
            or self.has_role(caller, Role.MANAGEMENT)
        ):
            raise Unauthorized(caller=caller, role=Role.KEEPER.value)

    def require_guardian(self, caller: Optional[str]) -> None:
        """Emergency admin or management."""
        if not (
            self.has_role(caller, Role.EMERGENCY_ADMIN)
            or self.has_role(caller, Role.MANAGEMENT)
        ):
            raise Unauthorized(caller=caller, role=Role.EMERGENCY_ADMIN.value)

    def set_role(self, role: Role, account: str) -> Optional[str]:
        """Assign a role; returns the previous holder."""
        if is_zero_address(account):
            raise ZeroAddress(f"Cannot assign {role.value} to the zero address")
        previous = self.holder(role)
        setattr(self._ledger, role.value, account)
        logger.info(f"Role {role.value}: {previous} -> {account}")
        return previous

    # =========================================================================
    # Deposit gates
    # =========================================================================

    def check_deposit(self, receiver: Optional[str]) -> None:
        """
        Gate a deposit-family call.

        Raises:
            ZeroAddress: If the receiver is empty
            VaultIsShutdown: If the vault is shut down
            VaultPaused: If deposits are paused
            NotWhitelisted: If the allow-list is on and excludes the receiver
        """
        if is_zero_address(receiver):
            raise ZeroAddress("Receiver is the zero address")
        ledger = self._ledger
        if ledger.shutdown:
            raise VaultIsShutdown()
        if ledger.paused:
            raise VaultPaused()
        if ledger.whitelist_enabled and receiver not in ledger.whitelist:
            raise NotWhitelisted(details={"receiver": receiver})

    def deposits_open(self, receiver: Optional[str]) -> bool:
        try:
            self.check_deposit(receiver)
        except (ZeroAddress, VaultIsShutdown, VaultPaused, NotWhitelisted):
            return False
        return True

    def set_whitelisted(self, account: str, allowed: bool) -> None:
        if is_zero_address(account):
            raise ZeroAddress("Cannot whitelist the zero address")
        if allowed:
            self._ledger.whitelist.add(account)
        else:
            self._ledger.whitelist.discard(account)

    def set_whitelist_enabled(self, enabled: bool) -> None:
        self._ledger.whitelist_enabled = enabled

    # =========================================================================
    # Pause / shutdown
    # =========================================================================

    def set_paused(self, paused: bool) -> None:
        if self._ledger.shutdown and not paused:
            raise VaultIsShutdown("Cannot unpause a shut down vault")
        self._ledger.paused = paused
        logger.info(f"Vault {'paused' if paused else 'unpaused'}")

    def shutdown(self) -> bool:
        """
        Shut the vault down permanently.

        Returns:
            False if it was already shut down
        """
        if self._ledger.shutdown:
            return False
        self._ledger.shutdown = True
        self._ledger.paused = True
        logger.warning("Vault shut down")
        return True

    async def emergency_withdraw(
        self,
        amount: Decimal,
        min_out: Decimal,
        to: str,
        tx: Optional[LedgerTransaction] = None,
    ) -> WithdrawalResult:
        """
        Move up to ``amount`` of primary-asset value out of the vault.

        Pulls from idle holdings and strategies like a withdrawal, paying
        out in the primary asset.

        Raises:
            VaultNotShutdown: If the vault is still running
            SlippageExceeded: If less than ``min_out`` reaches ``to``
        """
        if not self._ledger.shutdown:
            raise VaultNotShutdown()
        if is_zero_address(to):
            raise ZeroAddress("Emergency withdrawal to the zero address")
        if amount <= 0:
            raise ZeroAmount("Emergency withdrawal amount must be positive")

        result = await self._waterfall.execute(
            shares=Decimal("0"),
            expected=amount,
            receiver=to,
            max_loss_bps=MAX_BPS,
            min_primary_out=min_out,
            tx=tx,
        )
        logger.warning(f"Emergency withdrawal of {result.primary_out} to {to}")
        return result
