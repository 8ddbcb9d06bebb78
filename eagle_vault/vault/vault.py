"""
Dual-Asset Vault.

Public entry points of the vault engine. Every state-changing call runs
under one non-reentrant guard and inside a ledger transaction, so it either
commits fully or rolls back with its token pulls refunded.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from decimal import ROUND_DOWN, Decimal
from functools import partial
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Tuple

from eagle_vault.config.models import VaultConfig
from eagle_vault.config.models.vault import (
    MAX_PERFORMANCE_FEE_BPS,
    MAX_PROFIT_UNLOCK_SECONDS,
)
from eagle_vault.core import (
    ConfigurationError,
    EventType,
    InputError,
    InvalidReceiver,
    InvariantViolation,
    Unauthorized,
    VaultError,
    VaultEventLogger,
    VaultIsShutdown,
    ZeroAddress,
    ZeroAmount,
    get_logger,
)
from eagle_vault.core.utils import (
    MAX_BPS,
    ZERO,
    calculate_percentage,
    is_zero_address,
    mul_div,
    utc_now,
)

from .core import (
    AllocationEngine,
    LedgerTransaction,
    LifecycleControl,
    PriceOracleAdapter,
    ReentrancyGuard,
    ReportingEngine,
    Role,
    ShareAccounting,
    StrategyRegistry,
    SwapExecutor,
    TransactionManager,
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
    VaultLedger,
    WithdrawalResult,
)

logger = get_logger(__name__)


class DualAssetVault:
    """
    Tokenized vault over a primary asset and a pegged secondary asset.

    Amounts are Decimals in whole-token units. The acting account is passed
    as the keyword-only ``caller`` on every entry point.

    Example:
        >>> vault = DualAssetVault(
        ...     "0xvault", usd1, wlfi, pool, router, owner="0xowner",
        ...     secondary_feed=usd1_feed,
        ... )
        >>> shares = await vault.deposit(Decimal("1000"), "0xalice", caller="0xalice")
        >>> await vault.report(caller="0xowner")
    """

    def __init__(
        self,
        address: str,
        primary_token: TokenProtocol,
        secondary_token: TokenProtocol,
        pool: PoolProtocol,
        router: RouterProtocol,
        owner: str,
        secondary_feed: Optional[PriceFeedProtocol] = None,
        primary_feed: Optional[PriceFeedProtocol] = None,
        config: Optional[VaultConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
        events: Optional[VaultEventLogger] = None,
    ):
        """
        Initialize the vault.

        Args:
            address: The vault's own account address
            primary_token: Primary asset (unit of account)
            secondary_token: Pegged secondary asset
            pool: Market-maker pool used for TWAP and spot prices
            router: Swap router
            owner: Initial owner; management unless the config names one
            secondary_feed: USD feed for the secondary asset
            primary_feed: USD feed for the primary asset
            config: Vault configuration (defaults apply when omitted)
            clock: UTC time source
            events: Structured event logger
        """
        for name, value in (("address", address), ("owner", owner)):
            if is_zero_address(value):
                raise ZeroAddress(f"Vault {name} is the zero address")
        if is_zero_address(primary_token.address) or is_zero_address(secondary_token.address):
            raise ZeroAddress("Vault asset is the zero address")

        self._config = config or VaultConfig()
        self._clock = clock or utc_now
        self._address = address
        self._owner = owner
        self._primary = primary_token
        self._secondary = secondary_token

        cfg = self._config
        self._ledger = VaultLedger(
            vault_address=address,
            max_supply=cfg.shares.max_supply,
            bootstrap_multiplier=cfg.shares.bootstrap_multiplier,
            profit_max_unlock_time=timedelta(seconds=cfg.reporting.profit_max_unlock_time),
            performance_fee_bps=cfg.reporting.performance_fee_bps,
            fee_recipient=cfg.roles.fee_recipient,
            deployment_threshold=cfg.allocation.deployment_threshold,
            min_deployment_interval=timedelta(seconds=cfg.allocation.min_deployment_interval),
            management=cfg.roles.management or owner,
            keeper=cfg.roles.keeper,
            emergency_admin=cfg.roles.emergency_admin,
        )
        self._events = events or VaultEventLogger(
            f"vault-{address}",
            log_dir=cfg.logging.event_log_dir,
            level=getattr(logging, cfg.logging.level),
        )

        self._guard = ReentrancyGuard()
        self._transactions = TransactionManager(self._ledger, primary_token, secondary_token)
        self._oracle = PriceOracleAdapter(
            pool, cfg.oracle, self._clock, secondary_feed, primary_feed
        )
        self._swapper = SwapExecutor(
            router, self._oracle, primary_token, secondary_token, address, cfg.swap
        )
        self._shares = ShareAccounting(self._ledger, self._clock)
        self._registry = StrategyRegistry(
            self._ledger, self._clock, cfg.allocation.max_strategies
        )
        self._allocator = AllocationEngine(
            self._ledger,
            self._registry,
            self._oracle,
            primary_token,
            secondary_token,
            self._clock,
        )
        self._waterfall = WithdrawalWaterfall(
            self._ledger,
            self._registry,
            self._oracle,
            self._swapper,
            primary_token,
            secondary_token,
        )
        self._reporting = ReportingEngine(
            self._ledger,
            self._shares,
            self._registry,
            self._oracle,
            self._transactions,
            primary_token,
            secondary_token,
            self._clock,
            max_history=cfg.reporting.max_report_history,
        )
        self._lifecycle = LifecycleControl(self._ledger, self._waterfall)
        self._removals: List[RemovalRecord] = []

        logger.info(
            f"Vault {address} created: {cfg.shares.symbol} over "
            f"{primary_token.symbol}/{secondary_token.symbol}"
        )

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def address(self) -> str:
        return self._address

    @property
    def config(self) -> VaultConfig:
        return self._config

    @property
    def ledger(self) -> VaultLedger:
        """Live ledger state (read it, do not mutate it)."""
        return self._ledger

    @property
    def events(self) -> VaultEventLogger:
        return self._events

    @property
    def oracle(self) -> PriceOracleAdapter:
        return self._oracle

    @property
    def name(self) -> str:
        return self._config.shares.name

    @property
    def symbol(self) -> str:
        return self._config.shares.symbol

    @property
    def report_history(self) -> List[ReportRecord]:
        return self._reporting.history

    @property
    def allocation_history(self) -> List[AllocationRecord]:
        return self._allocator.history

    @property
    def removal_history(self) -> List[RemovalRecord]:
        return list(self._removals)

    # =========================================================================
    # Call plumbing
    # =========================================================================

    @asynccontextmanager
    async def _call(
        self,
        operation: str,
        caller: Optional[str],
    ) -> AsyncIterator[LedgerTransaction]:
        with self._events.correlation(caller):
            async with self._guard.hold(operation):
                try:
                    async with self._transactions.transaction(operation) as tx:
                        yield tx
                except InvariantViolation as e:
                    logger.critical(f"{operation} hit an accounting invariant breach: {e}")
                    self._reverted(operation, e, logging.CRITICAL)
                    raise
                except VaultError as e:
                    self._reverted(operation, e, logging.WARNING)
                    raise

    def _reverted(self, operation: str, error: VaultError, level: int) -> None:
        self._events.audit(
            EventType.CALL_REVERTED,
            f"{operation} reverted: {error.message}",
            level=level,
            operation=operation,
            error=type(error).__name__,
            code=error.code,
        )

    async def _pull(
        self,
        tx: LedgerTransaction,
        token: TokenProtocol,
        sender: str,
        amount: Decimal,
    ) -> None:
        """Pull tokens from ``sender`` and register their refund on rollback."""
        if amount <= 0:
            return
        await token.transfer(sender, self._address, amount)
        tx.on_rollback(
            f"refund {amount} {token.symbol} to {sender}",
            partial(token.transfer, self._address, sender, amount),
        )

    async def _deploy_after_deposit(self) -> None:
        """Opportunistic deployment; never fails the deposit."""
        if not self._allocator.tend_trigger():
            return
        try:
            records = await self._allocator.deploy(trigger="deposit")
        except Exception as e:
            logger.error(f"Post-deposit deployment failed: {e}")
            return
        self._emit_allocations(records)

    def _emit_allocations(self, records: List[AllocationRecord]) -> None:
        for record in records:
            if record.success:
                self._events.emit(
                    EventType.FUNDS_DEPLOYED,
                    f"Deployed {record.value} to {record.strategy}",
                    **record.to_dict(),
                )
            else:
                self._events.emit(
                    EventType.DEPLOYMENT_FAILED,
                    f"Deployment to {record.strategy} failed",
                    level=logging.WARNING,
                    **record.to_dict(),
                )

    def _check_receiver(self, receiver: Optional[str]) -> None:
        if is_zero_address(receiver):
            raise ZeroAddress("Receiver is the zero address")
        if receiver == self._address:
            raise InvalidReceiver("The vault cannot receive its own shares or assets")

    @staticmethod
    def _check_max_loss(max_loss_bps: int) -> None:
        if not 0 <= max_loss_bps <= MAX_BPS:
            raise InputError(f"max_loss_bps must be within [0, {MAX_BPS}]: {max_loss_bps}")

    # =========================================================================
    # Views
    # =========================================================================

    def total_assets(self) -> Decimal:
        return self._shares.total_assets()

    def total_idle(self) -> Decimal:
        return self._ledger.total_idle

    def total_debt(self) -> Decimal:
        return self._ledger.total_debt

    def total_supply(self) -> Decimal:
        return self._shares.total_supply()

    def circulating_supply(self) -> Decimal:
        return self._shares.circulating_supply()

    def unlocked_shares(self) -> Decimal:
        return self._shares.unlocked_shares()

    def total_locked_shares(self) -> Decimal:
        return self._shares.total_locked_shares()

    def price_per_share(self) -> Decimal:
        return self._shares.price_per_share()

    def balance_of(self, account: str) -> Decimal:
        return self._shares.balance_of(account)

    def allowance(self, owner: str, spender: str) -> Decimal:
        return self._shares.allowance(owner, spender)

    def convert_to_shares(self, assets: Decimal) -> Decimal:
        return self._shares.convert_to_shares(assets)

    def convert_to_assets(self, shares: Decimal) -> Decimal:
        return self._shares.convert_to_assets(shares)

    def preview_deposit(self, assets: Decimal) -> Decimal:
        return self._shares.preview_deposit(assets)

    def preview_mint(self, shares: Decimal) -> Decimal:
        return self._shares.preview_mint(shares)

    def preview_withdraw(self, assets: Decimal) -> Decimal:
        return self._shares.preview_withdraw(assets)

    def preview_redeem(self, shares: Decimal) -> Decimal:
        return self._shares.preview_redeem(shares)

    def get_vault_balances(self) -> Tuple[Decimal, Decimal]:
        """Idle (primary, secondary) token amounts."""
        return self._ledger.idle_primary, self._ledger.idle_secondary

    def max_deposit(self, receiver: str) -> Decimal:
        if not self._lifecycle.deposits_open(receiver) or self._shares.is_insolvent():
            return ZERO
        return self._shares.convert_to_assets(self._shares.mint_headroom(), ROUND_DOWN)

    def max_mint(self, receiver: str) -> Decimal:
        if not self._lifecycle.deposits_open(receiver) or self._shares.is_insolvent():
            return ZERO
        return self._shares.mint_headroom()

    async def max_withdraw(self, owner: str, max_loss_bps: int = 0) -> Decimal:
        """Largest primary value ``owner`` can withdraw within ``max_loss_bps``."""
        self._check_max_loss(max_loss_bps)
        assets = self._shares.preview_redeem(self._shares.balance_of(owner))
        if assets <= 0:
            return ZERO
        return await self._waterfall.max_withdraw(assets, max_loss_bps)

    async def max_redeem(self, owner: str, max_loss_bps: int = 0) -> Decimal:
        """Share dual of ``max_withdraw``."""
        balance = self._shares.balance_of(owner)
        withdrawable = await self.max_withdraw(owner, max_loss_bps)
        if withdrawable >= self._shares.preview_redeem(balance):
            return balance
        return min(balance, self._shares.convert_to_shares(withdrawable, ROUND_DOWN))

    def tend_trigger(self) -> bool:
        return self._allocator.tend_trigger()

    async def get_current_prices(self) -> Tuple[Decimal, Decimal]:
        """(primary_usd, secondary_usd)."""
        return await self._oracle.get_current_prices()

    async def primary_usd_price(self) -> Decimal:
        return await self._oracle.primary_usd_price()

    async def oracle_pool_delta(self) -> Decimal:
        return await self._oracle.oracle_pool_delta()

    async def preview_deposit_dual(
        self,
        amount_primary: Decimal,
        amount_secondary: Decimal,
    ) -> DepositPreview:
        """Preview shares, primary-terms value and USD value of a dual deposit."""
        value = amount_primary
        if amount_secondary > 0:
            rate = await self._oracle.primary_per_secondary_rate()
            value += mul_div(amount_secondary, rate, 1)
        primary_usd, secondary_usd = await self._oracle.get_current_prices()
        usd_value = mul_div(amount_primary, primary_usd, 1) + mul_div(
            amount_secondary, secondary_usd, 1
        )
        return DepositPreview(
            shares=self._shares.preview_deposit(value),
            value=value,
            usd_value=usd_value,
        )

    async def preview_capital_injection(
        self,
        amount_primary: Decimal,
        amount_secondary: Decimal,
    ) -> InjectionPreview:
        """Preview how an injection would move the share value."""
        value = await self._injection_value(amount_primary, amount_secondary)
        current = self._shares.price_per_share()
        supply = self._shares.total_supply()
        if supply == 0:
            return InjectionPreview(
                new_share_value=current,
                value_increase=ZERO,
                percentage_increase=ZERO,
            )
        new_value = mul_div(self._shares.total_assets() + value, 1, supply)
        increase = new_value - current
        return InjectionPreview(
            new_share_value=new_value,
            value_increase=increase,
            percentage_increase=calculate_percentage(increase, current),
        )

    async def _injection_value(
        self,
        amount_primary: Decimal,
        amount_secondary: Decimal,
    ) -> Decimal:
        value = amount_primary
        if amount_secondary > 0:
            rate = await self._oracle.primary_per_secondary_rate()
            value += mul_div(amount_secondary, rate, 1)
        return value

    def get_status(self) -> Dict[str, Any]:
        """
        Get vault status.

        Returns:
            Dictionary with current status
        """
        ledger = self._ledger
        return {
            "address": self._address,
            "symbol": self.symbol,
            "paused": ledger.paused,
            "shutdown": ledger.shutdown,
            "whitelist_enabled": ledger.whitelist_enabled,
            "total_assets": str(self.total_assets()),
            "total_idle": str(ledger.total_idle),
            "total_debt": str(ledger.total_debt),
            "idle_primary": str(ledger.idle_primary),
            "idle_secondary": str(ledger.idle_secondary),
            "total_supply": str(self.total_supply()),
            "circulating_supply": str(self.circulating_supply()),
            "locked_shares": str(self.total_locked_shares()),
            "price_per_share": str(self.price_per_share()),
            "performance_fee_bps": ledger.performance_fee_bps,
            "profit_max_unlock_time": int(ledger.profit_max_unlock_time.total_seconds()),
            "last_report": ledger.last_report.isoformat() if ledger.last_report else None,
            "last_report_record": (
                self._reporting.last_record.to_dict()
                if self._reporting.last_record
                else None
            ),
            "strategies": [s.to_dict() for s in self._registry.strategies],
            "roles": {
                "management": ledger.management,
                "keeper": ledger.keeper,
                "emergency_admin": ledger.emergency_admin,
                "fee_recipient": ledger.fee_recipient,
            },
        }

    # =========================================================================
    # Deposits
    # =========================================================================

    async def deposit(self, assets: Decimal, receiver: str, *, caller: str) -> Decimal:
        """
        Deposit primary asset and mint shares to ``receiver``.

        Returns:
            Shares minted

        Raises:
            ZeroAmount: If nothing would be minted
            VaultPaused, VaultIsShutdown, NotWhitelisted: Deposit gates
            MaxSupplyExceeded: If the supply cap would be breached
        """
        async with self._call("deposit", caller) as tx:
            if assets <= 0:
                raise ZeroAmount("Deposit amount must be positive")
            self._lifecycle.check_deposit(receiver)
            self._check_receiver(receiver)

            shares = self._shares.preview_deposit(assets)
            if shares <= 0:
                raise ZeroAmount("Deposit too small to mint shares")
            await self._enter(tx, caller, receiver, assets, shares)
            self._events.emit(
                EventType.DEPOSIT,
                f"Deposit {assets} -> {shares} shares",
                assets=assets,
                shares=shares,
                receiver=receiver,
            )
            await self._deploy_after_deposit()
            return shares

    async def mint(self, shares: Decimal, receiver: str, *, caller: str) -> Decimal:
        """
        Mint exactly ``shares`` to ``receiver``.

        Returns:
            Primary asset pulled (rounded up)
        """
        async with self._call("mint", caller) as tx:
            if shares <= 0:
                raise ZeroAmount("Mint amount must be positive")
            self._lifecycle.check_deposit(receiver)
            self._check_receiver(receiver)

            assets = self._shares.preview_mint(shares)
            if assets <= 0:
                raise ZeroAmount("Mint too small to require assets")
            await self._enter(tx, caller, receiver, assets, shares)
            self._events.emit(
                EventType.DEPOSIT,
                f"Mint {shares} shares for {assets}",
                assets=assets,
                shares=shares,
                receiver=receiver,
            )
            await self._deploy_after_deposit()
            return assets

    async def _enter(
        self,
        tx: LedgerTransaction,
        caller: str,
        receiver: str,
        assets: Decimal,
        shares: Decimal,
    ) -> None:
        self._shares.mint(receiver, shares)
        self._ledger.idle_primary += assets
        self._ledger.total_idle += assets
        await self._pull(tx, self._primary, caller, assets)

    async def deposit_dual(
        self,
        amount_primary: Decimal,
        amount_secondary: Decimal,
        receiver: str,
        *,
        caller: str,
    ) -> DualDepositResult:
        """
        Deposit both assets and mint shares for their combined value.

        Secondary asset beyond what the strategies' current holdings ratio can
        absorb is swapped into primary; an excess too small to swap is
        returned to the caller.
        """
        async with self._call("deposit_dual", caller) as tx:
            if amount_primary < 0 or amount_secondary < 0:
                raise ZeroAmount("Deposit amounts cannot be negative")
            if amount_primary == 0 and amount_secondary == 0:
                raise ZeroAmount("Both deposit amounts are zero")
            self._lifecycle.check_deposit(receiver)
            self._check_receiver(receiver)
            if self._shares.is_insolvent():
                raise ZeroAmount("Vault has no assets backing its shares")

            consumable = await self._consumable_secondary(amount_primary, amount_secondary)
            excess = amount_secondary - consumable
            to_swap = excess if excess >= self._swapper.min_swap_amount else ZERO
            refund = excess - to_swap

            await self._pull(tx, self._primary, caller, amount_primary)
            await self._pull(tx, self._secondary, caller, amount_secondary)
            # Token amounts are booked as they arrive; their value is booked with the mint
            self._ledger.idle_primary += amount_primary
            self._ledger.idle_secondary += amount_secondary

            primary_from_swap = ZERO
            if to_swap > 0:
                primary_from_swap = await self._swapper.secondary_to_primary(to_swap)
                self._ledger.idle_secondary -= to_swap
                self._ledger.idle_primary += primary_from_swap
                self._events.emit(
                    EventType.SWAP_EXECUTED,
                    f"Swapped {to_swap} {self._secondary.symbol} on deposit",
                    amount_in=to_swap,
                    amount_out=primary_from_swap,
                )

            primary_used = amount_primary + primary_from_swap
            value = primary_used
            if consumable > 0:
                rate = await self._oracle.primary_per_secondary_rate()
                value += mul_div(consumable, rate, 1)

            shares = self._shares.preview_deposit(value)
            if shares <= 0:
                raise ZeroAmount("Deposit too small to mint shares")

            self._shares.mint(receiver, shares)
            self._ledger.total_idle += value

            if refund > 0:
                self._ledger.idle_secondary -= refund
                await self._secondary.transfer(self._address, caller, refund)

            result = DualDepositResult(
                shares=shares,
                value=value,
                primary_used=primary_used,
                secondary_used=consumable,
                secondary_swapped=to_swap,
                primary_from_swap=primary_from_swap,
                secondary_refunded=refund,
            )
            self._events.emit(
                EventType.DEPOSIT_DUAL,
                f"Dual deposit worth {value} -> {shares} shares",
                receiver=receiver,
                **result.to_dict(),
            )
            await self._deploy_after_deposit()
            return result

    async def _consumable_secondary(
        self,
        amount_primary: Decimal,
        amount_secondary: Decimal,
    ) -> Decimal:
        """Secondary amount matching the strategies' aggregate holdings ratio."""
        if amount_secondary <= 0:
            return ZERO

        held_primary = ZERO
        held_secondary = ZERO
        for params in self._registry.active():
            amount_p, amount_s = await params.strategy.get_total_amounts()
            held_primary += amount_p
            held_secondary += amount_s

        if held_primary <= 0:
            # Empty (or secondary-only) strategies put no bound on the ratio
            return amount_secondary
        return min(amount_secondary, mul_div(amount_primary, held_secondary, held_primary))

    async def inject_capital(
        self,
        amount_primary: Decimal,
        amount_secondary: Decimal,
        *,
        caller: str,
    ) -> Decimal:
        """
        Add assets without minting shares, raising the share price.

        Returns:
            Value added in primary terms
        """
        async with self._call("inject_capital", caller) as tx:
            if amount_primary < 0 or amount_secondary < 0:
                raise ZeroAmount("Injection amounts cannot be negative")
            if amount_primary == 0 and amount_secondary == 0:
                raise ZeroAmount("Both injection amounts are zero")
            if is_zero_address(caller):
                raise ZeroAddress("Injection from the zero address")

            value = await self._injection_value(amount_primary, amount_secondary)
            self._ledger.idle_primary += amount_primary
            self._ledger.idle_secondary += amount_secondary
            self._ledger.total_idle += value
            await self._pull(tx, self._primary, caller, amount_primary)
            await self._pull(tx, self._secondary, caller, amount_secondary)

            self._events.emit(
                EventType.CAPITAL_INJECTED,
                f"Capital injected worth {value}",
                amount_primary=amount_primary,
                amount_secondary=amount_secondary,
                value=value,
            )
            return value

    # =========================================================================
    # Withdrawals
    # =========================================================================

    async def withdraw(
        self,
        assets: Decimal,
        receiver: str,
        owner: str,
        max_loss_bps: int = 0,
        *,
        caller: str,
    ) -> WithdrawalResult:
        """Burn the shares worth ``assets`` and pay out in the primary asset."""
        async with self._call("withdraw", caller) as tx:
            if assets <= 0:
                raise ZeroAmount("Withdrawal amount must be positive")
            shares = self._shares.preview_withdraw(assets)
            if shares <= 0:
                raise ZeroAmount("No recorded assets to withdraw")
            return await self._exit(
                EventType.WITHDRAW, shares, assets, receiver, owner, max_loss_bps, caller, tx=tx
            )

    async def redeem(
        self,
        shares: Decimal,
        receiver: str,
        owner: str,
        max_loss_bps: int = 0,
        *,
        caller: str,
    ) -> WithdrawalResult:
        """Burn ``shares`` and pay out their value in the primary asset."""
        async with self._call("redeem", caller) as tx:
            if shares <= 0:
                raise ZeroAmount("Redeem amount must be positive")
            assets = self._shares.preview_redeem(shares)
            if assets <= 0:
                raise ZeroAmount("Redeem too small to pay out assets")
            return await self._exit(
                EventType.WITHDRAW, shares, assets, receiver, owner, max_loss_bps, caller, tx=tx
            )

    async def withdraw_dual(
        self,
        shares: Decimal,
        receiver: str,
        owner: str,
        max_loss_bps: int = 0,
        *,
        caller: str,
    ) -> WithdrawalResult:
        """Burn ``shares`` and pay out both assets without converting the secondary."""
        async with self._call("withdraw_dual", caller) as tx:
            if shares <= 0:
                raise ZeroAmount("Redeem amount must be positive")
            assets = self._shares.preview_redeem(shares)
            if assets <= 0:
                raise ZeroAmount("Redeem too small to pay out assets")
            return await self._exit(
                EventType.WITHDRAW_DUAL,
                shares,
                assets,
                receiver,
                owner,
                max_loss_bps,
                caller,
                dual=True,
                tx=tx,
            )

    async def _exit(
        self,
        event_type: EventType,
        shares: Decimal,
        assets: Decimal,
        receiver: str,
        owner: str,
        max_loss_bps: int,
        caller: str,
        dual: bool = False,
        tx: Optional[LedgerTransaction] = None,
    ) -> WithdrawalResult:
        self._check_max_loss(max_loss_bps)
        self._check_receiver(receiver)
        if is_zero_address(owner):
            raise ZeroAddress("Owner is the zero address")

        if caller != owner:
            self._shares.spend_allowance(owner, caller, shares)
        self._shares.burn(owner, shares)

        result = await self._waterfall.execute(
            shares=shares,
            expected=assets,
            receiver=receiver,
            max_loss_bps=max_loss_bps,
            dual=dual,
            tx=tx,
        )
        self._events.emit(
            event_type,
            f"Withdrawal of {shares} shares paid {result.received_value}",
            owner=owner,
            receiver=receiver,
            **result.to_dict(),
        )
        return result

    # =========================================================================
    # Share token
    # =========================================================================

    async def transfer(self, recipient: str, shares: Decimal, *, caller: str) -> bool:
        async with self._call("transfer", caller):
            self._shares.transfer(caller, recipient, shares)
            self._events.emit(
                EventType.SHARES_TRANSFERRED,
                f"Transfer {shares} shares",
                sender=caller,
                recipient=recipient,
                shares=shares,
            )
            return True

    async def transfer_from(
        self,
        owner: str,
        recipient: str,
        shares: Decimal,
        *,
        caller: str,
    ) -> bool:
        async with self._call("transfer_from", caller):
            self._shares.spend_allowance(owner, caller, shares)
            self._shares.transfer(owner, recipient, shares)
            self._events.emit(
                EventType.SHARES_TRANSFERRED,
                f"Transfer {shares} shares for {owner}",
                sender=owner,
                recipient=recipient,
                shares=shares,
            )
            return True

    async def approve(self, spender: str, shares: Decimal, *, caller: str) -> bool:
        async with self._call("approve", caller):
            self._shares.approve(caller, spender, shares)
            return True

    # =========================================================================
    # Allocation
    # =========================================================================

    async def tend(self, *, caller: str) -> List[AllocationRecord]:
        """Deploy idle capital when the deployment guards allow it (keeper)."""
        async with self._call("tend", caller):
            self._lifecycle.require_keeper(caller)
            if not self._allocator.tend_trigger():
                return []
            records = await self._allocator.deploy(trigger="tend")
            self._emit_allocations(records)
            return records

    async def force_deploy(self, *, caller: str) -> List[AllocationRecord]:
        """Deploy idle capital ignoring the threshold and interval (keeper)."""
        async with self._call("force_deploy", caller):
            self._lifecycle.require_keeper(caller)
            if self._ledger.shutdown:
                raise VaultIsShutdown("Cannot deploy from a shut down vault")
            records = await self._allocator.deploy(trigger="force")
            self._emit_allocations(records)
            return records

    # =========================================================================
    # Reporting
    # =========================================================================

    async def report(self, *, caller: str) -> ReportRecord:
        """Reconcile profit/loss and update the vesting schedule (keeper)."""
        async with self._call("report", caller):
            self._lifecycle.require_keeper(caller)
            record = await self._reporting.report()
            self._events.emit(
                EventType.REPORT,
                f"Report: profit={record.profit} loss={record.loss}",
                **record.to_dict(),
            )
            return record

    # =========================================================================
    # Strategy management
    # =========================================================================

    async def add_strategy(
        self,
        strategy: StrategyProtocol,
        weight_bps: int,
        *,
        caller: str,
    ) -> None:
        async with self._call("add_strategy", caller):
            self._lifecycle.require_management(caller)
            if self._ledger.shutdown:
                raise VaultIsShutdown("Cannot add strategies to a shut down vault")
            params = self._registry.add(strategy, weight_bps)
            self._events.audit(
                EventType.STRATEGY_ADDED,
                f"Strategy {params.address} added",
                strategy=params.address,
                weight_bps=weight_bps,
            )

    async def update_strategy_weight(
        self,
        strategy: str,
        weight_bps: int,
        *,
        caller: str,
    ) -> None:
        async with self._call("update_strategy_weight", caller):
            self._lifecycle.require_management(caller)
            self._registry.update_weight(strategy, weight_bps)
            self._events.audit(
                EventType.STRATEGY_WEIGHT_UPDATED,
                f"Strategy {strategy} weight set to {weight_bps}",
                strategy=strategy,
                weight_bps=weight_bps,
            )

    async def remove_strategy(self, strategy: str, *, caller: str) -> RemovalRecord:
        """
        Pull everything out of a strategy and deactivate it.

        Always succeeds once authorized: the recorded debt moves to idle and
        any shortfall in what comes back is realized at the next report.
        """
        async with self._call("remove_strategy", caller):
            self._lifecycle.require_management(caller)
            params = self._registry.get(strategy)
            handle = params.strategy
            recorded_debt = params.current_debt

            try:
                live_value = await self._waterfall.strategy_value(handle)
            except Exception as e:
                logger.warning(f"Could not value {strategy} before removal: {e}")
                live_value = recorded_debt

            vault = self._address
            before_primary = await self._primary.balance_of(vault)
            before_secondary = await self._secondary.balance_of(vault)

            self._registry.deactivate(strategy)
            self._ledger.total_idle += recorded_debt

            error_message = None
            request = max(recorded_debt, live_value)
            if request > 0:
                try:
                    await handle.withdraw(request)
                except Exception as e:
                    error_message = str(e)
                    logger.error(f"Strategy {strategy} refused withdrawal on removal: {e}")

            got_primary = max(ZERO, await self._primary.balance_of(vault) - before_primary)
            got_secondary = max(
                ZERO, await self._secondary.balance_of(vault) - before_secondary
            )
            self._ledger.idle_primary += got_primary
            self._ledger.idle_secondary += got_secondary

            returned_value = got_primary
            if got_secondary > 0:
                rate = await self._oracle.primary_per_secondary_rate()
                returned_value += mul_div(got_secondary, rate, 1)

            record = RemovalRecord(
                strategy=strategy,
                recorded_debt=recorded_debt,
                returned_primary=got_primary,
                returned_secondary=got_secondary,
                returned_value=returned_value,
                shortfall=max(ZERO, recorded_debt - returned_value),
                error_message=error_message,
                timestamp=self._clock(),
            )
            self._removals.append(record)
            if record.shortfall > 0:
                logger.warning(
                    f"Strategy {strategy} returned {returned_value} of {recorded_debt}; "
                    f"shortfall is realized at the next report"
                )
            self._events.audit(
                EventType.STRATEGY_REMOVED,
                f"Strategy {strategy} removed",
                strategy=strategy,
                recorded_debt=recorded_debt,
                returned_value=returned_value,
                shortfall=record.shortfall,
            )
            return record

    # =========================================================================
    # Role-gated configuration
    # =========================================================================

    async def _set_role(self, role: Role, account: str, caller: str) -> None:
        async with self._call(f"set_{role.value}", caller):
            self._lifecycle.require_management(caller)
            previous = self._lifecycle.set_role(role, account)
            self._events.audit(
                EventType.ROLE_CHANGED,
                f"{role.value} changed",
                role=role.value,
                previous=previous,
                account=account,
            )

    async def set_management(self, account: str, *, caller: str) -> None:
        await self._set_role(Role.MANAGEMENT, account, caller)

    async def set_keeper(self, account: str, *, caller: str) -> None:
        await self._set_role(Role.KEEPER, account, caller)

    async def set_emergency_admin(self, account: str, *, caller: str) -> None:
        await self._set_role(Role.EMERGENCY_ADMIN, account, caller)

    async def _configure(self, setting: str, caller: str, apply: Callable[[], Any]) -> None:
        async with self._call(f"set_{setting}", caller):
            self._lifecycle.require_management(caller)
            value = apply()
            self._events.audit(
                EventType.CONFIG_CHANGED,
                f"{setting} set to {value}",
                setting=setting,
                value=value,
            )

    async def set_fee_recipient(self, recipient: str, *, caller: str) -> None:
        def apply() -> str:
            if is_zero_address(recipient):
                raise ZeroAddress("Fee recipient is the zero address")
            self._ledger.fee_recipient = recipient
            return recipient

        await self._configure("fee_recipient", caller, apply)

    async def set_performance_fee(self, fee_bps: int, *, caller: str) -> None:
        def apply() -> int:
            if not 0 <= fee_bps <= MAX_PERFORMANCE_FEE_BPS:
                raise ConfigurationError(
                    f"Performance fee must be within [0, {MAX_PERFORMANCE_FEE_BPS}] bps"
                )
            self._ledger.performance_fee_bps = fee_bps
            return fee_bps

        await self._configure("performance_fee", caller, apply)

    async def set_profit_max_unlock_time(self, seconds: int, *, caller: str) -> None:
        """
        Set the vesting duration for future profit.

        Setting zero releases every still-locked share immediately.
        """

        def apply() -> int:
            if not 0 <= seconds <= MAX_PROFIT_UNLOCK_SECONDS:
                raise ConfigurationError(
                    f"Profit unlock time must be within [0, {MAX_PROFIT_UNLOCK_SECONDS}] s"
                )
            ledger = self._ledger
            if seconds == 0 and ledger.locked_at_report > 0:
                self._shares.burn_unlocked_shares()
                self._shares.burn_locked_shares(ledger.locked_at_report)
                ledger.last_profit_update = None
                ledger.full_profit_unlock_date = None
            ledger.profit_max_unlock_time = timedelta(seconds=seconds)
            return seconds

        await self._configure("profit_max_unlock_time", caller, apply)

    async def set_deployment_params(
        self,
        threshold: Decimal,
        min_interval: int,
        *,
        caller: str,
    ) -> None:
        def apply() -> str:
            if threshold < 0 or min_interval < 0:
                raise ConfigurationError("Deployment parameters cannot be negative")
            self._ledger.deployment_threshold = threshold
            self._ledger.min_deployment_interval = timedelta(seconds=min_interval)
            return f"threshold={threshold}, interval={min_interval}s"

        await self._configure("deployment_params", caller, apply)

    async def set_twap_interval(self, seconds: int, *, caller: str) -> None:
        def apply() -> int:
            if seconds < 0:
                raise ConfigurationError("TWAP interval cannot be negative")
            self._oracle.twap_interval = seconds
            return seconds

        await self._configure("twap_interval", caller, apply)

    async def set_max_price_age(self, seconds: int, *, caller: str) -> None:
        def apply() -> int:
            if seconds <= 0:
                raise ConfigurationError("Max price age must be positive")
            self._oracle.max_price_age = seconds
            return seconds

        await self._configure("max_price_age", caller, apply)

    async def set_max_oracle_pool_delta(
        self,
        delta_bps: Optional[int],
        *,
        caller: str,
    ) -> None:
        def apply() -> Optional[int]:
            if delta_bps is not None and not 0 <= delta_bps <= MAX_BPS:
                raise ConfigurationError(f"Delta limit must be within [0, {MAX_BPS}] bps")
            self._oracle.max_oracle_pool_delta_bps = delta_bps
            return delta_bps

        await self._configure("max_oracle_pool_delta", caller, apply)

    async def set_whitelisted(self, account: str, allowed: bool, *, caller: str) -> None:
        async with self._call("set_whitelisted", caller):
            self._lifecycle.require_management(caller)
            self._lifecycle.set_whitelisted(account, allowed)
            self._events.audit(
                EventType.WHITELIST_CHANGED,
                f"{account} {'allowed' if allowed else 'removed'}",
                account=account,
                allowed=allowed,
            )

    async def set_whitelist_enabled(self, enabled: bool, *, caller: str) -> None:
        async with self._call("set_whitelist_enabled", caller):
            self._lifecycle.require_management(caller)
            self._lifecycle.set_whitelist_enabled(enabled)
            self._events.audit(
                EventType.WHITELIST_CHANGED,
                f"Whitelist {'enabled' if enabled else 'disabled'}",
                enabled=enabled,
            )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def set_paused(self, paused: bool, *, caller: str) -> None:
        """Pause or unpause deposits (management or emergency admin)."""
        async with self._call("set_paused", caller):
            self._lifecycle.require_guardian(caller)
            self._lifecycle.set_paused(paused)
            self._events.audit(
                EventType.PAUSED if paused else EventType.UNPAUSED,
                f"Deposits {'paused' if paused else 'unpaused'}",
            )

    async def shutdown(self, *, caller: str) -> None:
        """Shut the vault down for good (management or emergency admin)."""
        async with self._call("shutdown", caller):
            self._lifecycle.require_guardian(caller)
            if self._lifecycle.shutdown():
                self._events.audit(
                    EventType.SHUTDOWN,
                    "Vault shut down",
                    level=logging.WARNING,
                )

    async def emergency_withdraw(
        self,
        amount: Decimal,
        min_out: Decimal,
        to: str,
        *,
        caller: str,
    ) -> WithdrawalResult:
        """Sweep up to ``amount`` of value to ``to`` after shutdown (emergency admin)."""
        async with self._call("emergency_withdraw", caller) as tx:
            if not self._lifecycle.has_role(caller, Role.EMERGENCY_ADMIN):
                raise Unauthorized(caller=caller, role=Role.EMERGENCY_ADMIN.value)
            result = await self._lifecycle.emergency_withdraw(amount, min_out, to, tx=tx)
            self._events.audit(
                EventType.EMERGENCY_WITHDRAW,
                f"Emergency withdrawal of {result.primary_out} to {to}",
                level=logging.WARNING,
                to=to,
                **result.to_dict(),
            )
            return result
