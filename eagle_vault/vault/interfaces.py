"""
External collaborator protocols.

The vault only ever holds opaque handles typed by these protocols, so new
strategy kinds, feeds or routers plug in without touching the ledger.
"""

from datetime import datetime
from decimal import Decimal
from typing import Protocol, Sequence, Tuple, runtime_checkable


@runtime_checkable
class TokenProtocol(Protocol):
    """Fungible token the vault holds (primary or secondary asset)."""

    address: str
    symbol: str

    async def balance_of(self, account: str) -> Decimal:
        """Get token balance of an account."""
        ...

    async def transfer(self, sender: str, recipient: str, amount: Decimal) -> None:
        """Move tokens; raises if the sender balance is insufficient."""
        ...


@runtime_checkable
class StrategyProtocol(Protocol):
    """
    Yield strategy capability contract.

    Implementations must be idempotent and non-raising on zero-value calls.
    """

    address: str

    async def get_total_amounts(self) -> Tuple[Decimal, Decimal]:
        """Get (primary, secondary) amounts currently held for the vault."""
        ...

    async def deposit(self, amount_primary: Decimal, amount_secondary: Decimal) -> Decimal:
        """Account tokens already transferred to the strategy; returns shares or value."""
        ...

    async def withdraw(self, value: Decimal) -> Tuple[Decimal, Decimal]:
        """Return up to ``value`` (primary terms) to the vault; returns amounts sent."""
        ...

    async def rebalance(self) -> None:
        """Rebalance the strategy's internal position."""
        ...


@runtime_checkable
class PriceFeedProtocol(Protocol):
    """External price feed (answer scaled by ``decimals``)."""

    decimals: int

    async def latest_round_data(self) -> Tuple[int, datetime]:
        """Get (answer, updated_at) of the latest round."""
        ...


@runtime_checkable
class PoolProtocol(Protocol):
    """Market-maker pool exposing tick observations."""

    async def observe(self, seconds_agos: Sequence[int]) -> list[int]:
        """Get tick cumulatives for each ``seconds_ago``."""
        ...

    async def current_tick(self) -> int:
        """Get the current pool tick."""
        ...


@runtime_checkable
class RouterProtocol(Protocol):
    """Swap router with an exact-input entry point."""

    async def exact_input_single(
        self,
        token_in: str,
        token_out: str,
        fee: int,
        recipient: str,
        amount_in: Decimal,
        amount_out_minimum: Decimal,
    ) -> Decimal:
        """Swap ``amount_in``; raises instead of filling below the minimum."""
        ...
