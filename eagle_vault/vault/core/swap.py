"""
Swap Executor.

Bounded-slippage conversion between the vault's two assets through the
external router. One attempt per call, no partial fills; the output is
verified against the vault's own token_out balance.
"""

from decimal import Decimal
from typing import Optional

from eagle_vault.config.models import SwapConfig
from eagle_vault.core import SlippageExceeded, ZeroAmount, get_logger
from eagle_vault.core.utils import MAX_BPS, mul_div

from ..interfaces import RouterProtocol, TokenProtocol
from .oracle import PriceOracleAdapter

logger = get_logger(__name__)


class SwapExecutor:
    """Executes exact-input swaps for the vault with a minimum-output guard."""

    def __init__(
        self,
        router: RouterProtocol,
        oracle: PriceOracleAdapter,
        primary_token: TokenProtocol,
        secondary_token: TokenProtocol,
        vault_address: str,
        config: SwapConfig,
    ):
        self._router = router
        self._oracle = oracle
        self._primary = primary_token
        self._secondary = secondary_token
        self._vault = vault_address
        self.pool_fee = config.pool_fee
        self.max_slippage_bps = config.max_slippage_bps
        self.min_swap_amount = config.min_swap_amount

    @staticmethod
    def min_amount_out(
        amount_in: Decimal,
        expected_rate: Decimal,
        max_slippage_bps: int,
    ) -> Decimal:
        """
        Minimum acceptable output for a swap.

        Example:
            >>> SwapExecutor.min_amount_out(Decimal("100"), Decimal("2"), 100)
            Decimal('198.000000000000000000')
        """
        gross = mul_div(amount_in, expected_rate, 1)
        return mul_div(gross, MAX_BPS - max_slippage_bps, MAX_BPS)

    async def swap(
        self,
        token_in: TokenProtocol,
        token_out: TokenProtocol,
        amount_in: Decimal,
        expected_rate: Decimal,
        max_slippage_bps: Optional[int] = None,
    ) -> Decimal:
        """
        Swap ``amount_in`` of token_in held by the vault into token_out.

        Args:
            token_in: Token sold
            token_out: Token bought
            amount_in: Amount sold
            expected_rate: token_out units per token_in unit
            max_slippage_bps: Tolerance (defaults to the configured value)

        Returns:
            Amount of token_out received by the vault

        Raises:
            ZeroAmount: If amount_in is not positive
            InvalidPrice: If the divergence policy refuses the swap
            SlippageExceeded: If the router cannot meet the minimum output
        """
        if amount_in <= 0:
            raise ZeroAmount("Swap amount must be positive")

        slippage = self.max_slippage_bps if max_slippage_bps is None else max_slippage_bps
        await self._oracle.check_divergence()

        min_out = self.min_amount_out(amount_in, expected_rate, slippage)
        balance_before = await token_out.balance_of(self._vault)

        try:
            await self._router.exact_input_single(
                token_in=token_in.address,
                token_out=token_out.address,
                fee=self.pool_fee,
                recipient=self._vault,
                amount_in=amount_in,
                amount_out_minimum=min_out,
            )
        except SlippageExceeded:
            raise
        except Exception as e:
            raise SlippageExceeded(
                f"Swap {token_in.symbol}->{token_out.symbol} failed: {e}",
                expected=min_out,
                code="ROUTER_REVERTED",
            ) from e

        received = await token_out.balance_of(self._vault) - balance_before
        if received < min_out:
            raise SlippageExceeded(
                f"Swap {token_in.symbol}->{token_out.symbol} returned too little",
                expected=min_out,
                actual=received,
            )

        logger.info(
            f"Swapped {amount_in} {token_in.symbol} -> {received} {token_out.symbol} "
            f"(min {min_out})"
        )
        return received

    async def secondary_to_primary(
        self,
        amount: Decimal,
        max_slippage_bps: Optional[int] = None,
    ) -> Decimal:
        """Swap secondary asset to primary at the oracle rate."""
        rate = await self._oracle.primary_per_secondary_rate()
        return await self.swap(
            self._secondary, self._primary, amount, rate, max_slippage_bps
        )

    async def primary_to_secondary(
        self,
        amount: Decimal,
        max_slippage_bps: Optional[int] = None,
    ) -> Decimal:
        """Swap primary asset to secondary at the inverse oracle rate."""
        rate = await self._oracle.primary_per_secondary_rate()
        inverse = mul_div(Decimal(1), Decimal(1), rate)
        return await self.swap(
            self._primary, self._secondary, amount, inverse, max_slippage_bps
        )
