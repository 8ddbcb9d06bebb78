"""
Mock chain collaborators for testing.

In-memory tokens, strategies, price feeds, a tick-observation pool and a
swap router. Strategies hold real MockToken balances at their own address,
so the vault's balance-delta accounting is exercised end to end.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Awaitable, Callable, Optional, Sequence


class FakeClock:
    """
    Controllable UTC clock.

    Example:
        >>> clock = FakeClock()
        >>> clock.advance(3600)
    """

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class MockToken:
    """
    Mock fungible token.

    Stores balances in memory:
    - ``mint``/``burn`` for test setup
    - ``transfer`` raises on insufficient balance
    - ``blocked`` recipients make transfers to them fail
    """

    def __init__(self, symbol: str, address: str):
        self.symbol = symbol
        self.address = address
        self._balances: dict[str, Decimal] = {}
        self.blocked: set[str] = set()
        self.transfers: list[tuple[str, str, Decimal]] = []

    async def balance_of(self, account: str) -> Decimal:
        return self._balances.get(account, Decimal("0"))

    def balance(self, account: str) -> Decimal:
        """Synchronous balance read for assertions."""
        return self._balances.get(account, Decimal("0"))

    async def transfer(self, sender: str, recipient: str, amount: Decimal) -> None:
        if recipient in self.blocked:
            raise RuntimeError(f"{self.symbol}: transfers to {recipient} are blocked")
        balance = self._balances.get(sender, Decimal("0"))
        if amount > balance:
            raise ValueError(
                f"{self.symbol}: insufficient balance for {sender} ({balance} < {amount})"
            )
        self._balances[sender] = balance - amount
        self._balances[recipient] = self._balances.get(recipient, Decimal("0")) + amount
        self.transfers.append((sender, recipient, amount))

    def mint(self, account: str, amount: Decimal | int | str) -> None:
        self._balances[account] = self._balances.get(account, Decimal("0")) + Decimal(
            str(amount)
        )

    def burn(self, account: str, amount: Decimal | int | str) -> None:
        amount = Decimal(str(amount))
        self._balances[account] = self._balances.get(account, Decimal("0")) - amount


class MockStrategy:
    """
    Mock yield strategy holding both assets at its own address.

    Behaviour switches:
        loss_bps: Share of every withdrawal that is lost instead of returned
        refuse_withdraw: ``withdraw`` raises
        fail_deposit: ``deposit`` raises (after tokens were transferred in)
        secondary_rate: Primary value of one secondary unit for withdrawals
        on_deposit: Optional async hook run inside ``deposit``
    """

    def __init__(
        self,
        address: str,
        primary: MockToken,
        secondary: MockToken,
        vault_address: str,
        loss_bps: int = 0,
        refuse_withdraw: bool = False,
        fail_deposit: bool = False,
        secondary_rate: Decimal = Decimal("1"),
    ):
        self.address = address
        self._primary = primary
        self._secondary = secondary
        self._vault = vault_address
        self.loss_bps = loss_bps
        self.refuse_withdraw = refuse_withdraw
        self.fail_deposit = fail_deposit
        self.secondary_rate = secondary_rate
        self.on_deposit: Optional[Callable[[], Awaitable[None]]] = None

        self.deposits: list[tuple[Decimal, Decimal]] = []
        self.withdrawals: list[Decimal] = []
        self.rebalance_count = 0

    async def get_total_amounts(self) -> tuple[Decimal, Decimal]:
        return (
            await self._primary.balance_of(self.address),
            await self._secondary.balance_of(self.address),
        )

    async def deposit(self, amount_primary: Decimal, amount_secondary: Decimal) -> Decimal:
        if self.on_deposit is not None:
            await self.on_deposit()
        if self.fail_deposit:
            raise RuntimeError(f"{self.address}: deposit rejected")
        self.deposits.append((amount_primary, amount_secondary))
        return amount_primary + amount_secondary

    async def withdraw(self, value: Decimal) -> tuple[Decimal, Decimal]:
        if self.refuse_withdraw:
            raise RuntimeError(f"{self.address}: withdrawals disabled")
        self.withdrawals.append(value)

        owed = value - value * Decimal(self.loss_bps) / Decimal(10_000)
        lost = value - owed

        held_primary = await self._primary.balance_of(self.address)
        out_primary = min(owed, held_primary)
        out_secondary = Decimal("0")
        if out_primary < owed and self.secondary_rate > 0:
            held_secondary = await self._secondary.balance_of(self.address)
            out_secondary = min((owed - out_primary) / self.secondary_rate, held_secondary)

        # The lost part disappears from the strategy
        self._primary.burn(self.address, min(lost, held_primary - out_primary))

        if out_primary > 0:
            await self._primary.transfer(self.address, self._vault, out_primary)
        if out_secondary > 0:
            await self._secondary.transfer(self.address, self._vault, out_secondary)
        return out_primary, out_secondary

    async def rebalance(self) -> None:
        self.rebalance_count += 1

    def simulate_gain(self, amount: Decimal | int | str) -> None:
        self._primary.mint(self.address, amount)

    def simulate_loss(self, amount: Decimal | int | str) -> None:
        self._primary.burn(self.address, amount)


class MockPriceFeed:
    """Mock price feed with a settable answer and age."""

    def __init__(
        self,
        price: Decimal | str,
        clock: Callable[[], datetime],
        decimals: int = 8,
        age_seconds: int = 0,
    ):
        self.decimals = decimals
        self._clock = clock
        self.price = Decimal(str(price))
        self.age_seconds = age_seconds

    async def latest_round_data(self) -> tuple[int, datetime]:
        answer = int(self.price.scaleb(self.decimals))
        return answer, self._clock() - timedelta(seconds=self.age_seconds)


class MockPool:
    """
    Mock pool with a constant TWAP tick and a separate spot tick.

    Tick cumulatives grow linearly, so any window yields ``twap_tick``.
    """

    def __init__(self, twap_tick: int = 0, spot_tick: Optional[int] = None):
        self.twap_tick = twap_tick
        self.spot_tick = twap_tick if spot_tick is None else spot_tick
        self.observations: list[list[int]] = []

    async def observe(self, seconds_agos: Sequence[int]) -> list[int]:
        self.observations.append(list(seconds_agos))
        horizon = 10_000_000
        return [self.twap_tick * (horizon - s) for s in seconds_agos]

    async def current_tick(self) -> int:
        return self.spot_tick


class MockRouter:
    """
    Mock exact-input router.

    Fills at ``rates[(token_in, token_out)]`` and reverts below the minimum
    output. ``short_delivery`` makes it deliver less than it reports.
    """

    def __init__(self, *tokens: MockToken):
        self._tokens = {t.address: t for t in tokens}
        self.address = "0xrouter"
        self.rates: dict[tuple[str, str], Decimal] = {}
        self.short_delivery = Decimal("0")
        self.calls: list[dict] = []
        for a in tokens:
            for b in tokens:
                if a is not b:
                    self.rates[(a.address, b.address)] = Decimal("1")

    def set_rate(self, token_in: MockToken, token_out: MockToken, rate: Decimal | str) -> None:
        self.rates[(token_in.address, token_out.address)] = Decimal(str(rate))

    async def exact_input_single(
        self,
        token_in: str,
        token_out: str,
        fee: int,
        recipient: str,
        amount_in: Decimal,
        amount_out_minimum: Decimal,
    ) -> Decimal:
        self.calls.append(
            {
                "token_in": token_in,
                "token_out": token_out,
                "fee": fee,
                "amount_in": amount_in,
                "amount_out_minimum": amount_out_minimum,
            }
        )
        amount_out = amount_in * self.rates[(token_in, token_out)]
        if amount_out < amount_out_minimum:
            raise RuntimeError("Too little received")

        await self._tokens[token_in].transfer(recipient, self.address, amount_in)
        self._tokens[token_out].mint(recipient, amount_out - self.short_delivery)
        return amount_out
