"""
Share Accounting.

Asset/share conversion, the bootstrap ratio, the supply cap, the share
token balances and the profit-locking schedule.

Locked shares are held by the vault's own address. They vest linearly
between ``last_profit_update`` and ``full_profit_unlock_date``; vested
shares drop out of ``total_supply`` immediately and are burned from the
raw supply at the next report.
"""

from datetime import datetime
from decimal import ROUND_DOWN, ROUND_UP, Decimal
from typing import Callable, Optional

from eagle_vault.core import (
    InsufficientAllowance,
    InsufficientLockedShares,
    InsufficientShares,
    InvalidReceiver,
    MaxSupplyExceeded,
    ZeroAddress,
    ZeroAmount,
    get_logger,
)
from eagle_vault.core.utils import ZERO, is_zero_address, mul_div, seconds_between

from ..models.state import VaultLedger

logger = get_logger(__name__)


class ShareAccounting:
    """
    Share ledger operating on the shared vault state.

    Rounding always favours the vault: shares minted and assets paid round
    down, shares burned and assets pulled round up.
    """

    def __init__(self, ledger: VaultLedger, clock: Callable[[], datetime]):
        self._ledger = ledger
        self._clock = clock

    # =========================================================================
    # Supply and vesting
    # =========================================================================

    def unlocked_shares(self, now: Optional[datetime] = None) -> Decimal:
        """
        Shares of the last profitable report that have vested since.

        Clamped to ``[0, locked_at_report]``.
        """
        ledger = self._ledger
        locked = ledger.locked_at_report
        if locked <= 0 or ledger.last_profit_update is None:
            return ZERO

        now = now or self._clock()
        end = ledger.full_profit_unlock_date
        if end is None or now >= end:
            return locked

        elapsed = seconds_between(ledger.last_profit_update, now)
        window = seconds_between(ledger.last_profit_update, end)
        if window == 0:
            return locked
        return min(locked, mul_div(locked, elapsed, window))

    def total_locked_shares(self, now: Optional[datetime] = None) -> Decimal:
        """Shares still vesting."""
        return self._ledger.locked_at_report - self.unlocked_shares(now)

    def total_supply(self, now: Optional[datetime] = None) -> Decimal:
        """Externally visible supply: raw supply net of vested-but-unburned shares."""
        return self._ledger.raw_supply - self.unlocked_shares(now)

    def circulating_supply(self, now: Optional[datetime] = None) -> Decimal:
        """Holder-owned supply (excludes the vault's locked balance)."""
        now = now or self._clock()
        return self.total_supply(now) - self.total_locked_shares(now)

    def profit_unlocking_rate(self) -> Decimal:
        """Shares vesting per second under the current schedule."""
        ledger = self._ledger
        if ledger.last_profit_update is None or ledger.full_profit_unlock_date is None:
            return ZERO
        window = seconds_between(ledger.last_profit_update, ledger.full_profit_unlock_date)
        if window == 0:
            return ZERO
        return mul_div(ledger.locked_at_report, 1, window)

    # =========================================================================
    # Valuation
    # =========================================================================

    def total_assets(self) -> Decimal:
        """Recorded total assets in primary terms."""
        return self._ledger.total_idle + self._ledger.total_debt

    def price_per_share(self) -> Decimal:
        """Primary units per share (the bootstrap price while supply is zero)."""
        supply = self.total_supply()
        if supply == 0:
            return mul_div(Decimal(1), 1, self._ledger.bootstrap_multiplier)
        return mul_div(self.total_assets(), 1, supply)

    def convert_to_shares(self, assets: Decimal, rounding: str = ROUND_DOWN) -> Decimal:
        """
        Convert primary-asset value to shares.

        While supply is zero shares are issued at the bootstrap multiplier.
        Outstanding shares with no assets behind them convert to zero, so
        nothing new can be issued against a wiped-out vault.
        """
        supply = self.total_supply()
        if supply == 0:
            return mul_div(assets, self._ledger.bootstrap_multiplier, 1, rounding)
        total_assets = self.total_assets()
        if total_assets == 0:
            return ZERO
        return mul_div(assets, supply, total_assets, rounding)

    def convert_to_assets(self, shares: Decimal, rounding: str = ROUND_DOWN) -> Decimal:
        """Convert shares to primary-asset value."""
        supply = self.total_supply()
        if supply == 0:
            return mul_div(shares, 1, self._ledger.bootstrap_multiplier, rounding)
        return mul_div(shares, self.total_assets(), supply, rounding)

    def is_insolvent(self) -> bool:
        """Shares are outstanding but no recorded assets back them."""
        return self.total_supply() > 0 and self.total_assets() <= 0

    def preview_deposit(self, assets: Decimal) -> Decimal:
        return self.convert_to_shares(assets, ROUND_DOWN)

    def preview_mint(self, shares: Decimal) -> Decimal:
        return self.convert_to_assets(shares, ROUND_UP)

    def preview_withdraw(self, assets: Decimal) -> Decimal:
        return self.convert_to_shares(assets, ROUND_UP)

    def preview_redeem(self, shares: Decimal) -> Decimal:
        return self.convert_to_assets(shares, ROUND_DOWN)

    # =========================================================================
    # Supply cap
    # =========================================================================

    def mint_headroom(self) -> Decimal:
        """Shares that can still be minted before the raw supply hits the cap."""
        return max(ZERO, self._ledger.max_supply - self._ledger.raw_supply)

    def check_supply_cap(self, shares: Decimal) -> None:
        if self._ledger.raw_supply + shares > self._ledger.max_supply:
            raise MaxSupplyExceeded(
                f"Minting {shares} shares would exceed max supply "
                f"{self._ledger.max_supply}",
                details={"raw_supply": str(self._ledger.raw_supply)},
            )

    # =========================================================================
    # Share token
    # =========================================================================

    def balance_of(self, account: str) -> Decimal:
        """Share balance; the vault's own balance excludes vested shares."""
        balance = self._ledger.balances.get(account, ZERO)
        if account == self._ledger.vault_address:
            return balance - self.unlocked_shares()
        return balance

    def allowance(self, owner: str, spender: str) -> Decimal:
        return self._ledger.allowances.get((owner, spender), ZERO)

    def mint(self, receiver: str, shares: Decimal) -> None:
        """Mint shares, enforcing the supply cap."""
        self.check_supply_cap(shares)
        ledger = self._ledger
        ledger.balances[receiver] = ledger.balances.get(receiver, ZERO) + shares
        ledger.raw_supply += shares

    def burn(self, owner: str, shares: Decimal) -> None:
        ledger = self._ledger
        balance = self.balance_of(owner)
        if shares > balance:
            raise InsufficientShares(
                f"Burn of {shares} exceeds balance {balance}",
                details={"owner": owner},
            )
        ledger.balances[owner] = ledger.balances.get(owner, ZERO) - shares
        ledger.raw_supply -= shares

    def transfer(self, sender: str, recipient: str, shares: Decimal) -> None:
        """Move holder shares between accounts."""
        if is_zero_address(sender) or is_zero_address(recipient):
            raise ZeroAddress("Share transfer to or from the zero address")
        if recipient == self._ledger.vault_address:
            raise InvalidReceiver("Shares cannot be sent to the vault itself")
        if shares < 0:
            raise ZeroAmount("Negative share transfer")

        balance = self.balance_of(sender)
        if shares > balance:
            raise InsufficientShares(
                f"Transfer of {shares} exceeds balance {balance}",
                details={"sender": sender},
            )
        ledger = self._ledger
        ledger.balances[sender] = ledger.balances.get(sender, ZERO) - shares
        ledger.balances[recipient] = ledger.balances.get(recipient, ZERO) + shares

    def approve(self, owner: str, spender: str, shares: Decimal) -> None:
        if is_zero_address(owner) or is_zero_address(spender):
            raise ZeroAddress("Approval for the zero address")
        if shares < 0:
            raise ZeroAmount("Negative allowance")
        self._ledger.allowances[(owner, spender)] = shares

    def spend_allowance(self, owner: str, spender: str, shares: Decimal) -> None:
        """Consume allowance when a spender acts for an owner."""
        if owner == spender:
            return
        current = self.allowance(owner, spender)
        if shares > current:
            raise InsufficientAllowance(
                f"Allowance {current} below {shares}",
                details={"owner": owner, "spender": spender},
            )
        self._ledger.allowances[(owner, spender)] = current - shares

    # =========================================================================
    # Locking schedule
    # =========================================================================

    def burn_unlocked_shares(self) -> Decimal:
        """
        Burn vested shares from the vault's balance and rebase the schedule.

        The remaining locked shares keep vesting at the same rate toward the
        same end date.
        """
        ledger = self._ledger
        now = self._clock()
        unlocked = self.unlocked_shares(now)
        if unlocked > 0:
            self._burn_from_vault(unlocked)
            ledger.locked_at_report -= unlocked
        if ledger.locked_at_report > 0:
            ledger.last_profit_update = now
        return unlocked

    def lock_shares(self, shares: Decimal) -> None:
        """Mint newly locked shares to the vault's own address."""
        if shares <= 0:
            return
        self.mint(self._ledger.vault_address, shares)
        self._ledger.locked_at_report += shares

    def burn_locked_shares(self, shares: Decimal) -> None:
        """Burn still-locked shares to offset a loss."""
        ledger = self._ledger
        if shares > ledger.locked_at_report:
            raise InsufficientLockedShares(
                f"Cannot burn {shares} locked shares, only "
                f"{ledger.locked_at_report} locked",
            )
        self._burn_from_vault(shares)
        ledger.locked_at_report -= shares

    def _burn_from_vault(self, shares: Decimal) -> None:
        ledger = self._ledger
        held = ledger.balances.get(ledger.vault_address, ZERO)
        if shares > held:
            raise InsufficientLockedShares(
                f"Vault holds {held} shares, cannot burn {shares}",
            )
        ledger.balances[ledger.vault_address] = held - shares
        ledger.raw_supply -= shares
