"""
Dual-Asset Vault Unit Tests.

Tests for the deposit family, capital injection, strategy removal,
atomicity and the call guard.
"""

import asyncio
from decimal import Decimal

import pytest

from eagle_vault.config.models import VaultConfig
from eagle_vault.core import (
    EventType,
    InvalidReceiver,
    MaxSupplyExceeded,
    ReentrantCall,
    SlippageExceeded,
    StrategyNotFound,
    Unauthorized,
    ZeroAddress,
    ZeroAmount,
)
from eagle_vault.vault import DualAssetVault
from tests.mocks.accounts import (
    ALICE,
    BOB,
    FEES,
    KEEPER,
    OWNER,
    STARTING_BALANCE,
    VAULT,
)


class TestConstruction:
    """Test vault construction."""

    def test_owner_is_management(self, vault):
        assert vault.ledger.management == OWNER
        assert vault.symbol == "vEAGLE"

    def test_zero_owner_rejected(self, primary, secondary, pool, router):
        with pytest.raises(ZeroAddress):
            DualAssetVault(VAULT, primary, secondary, pool, router, owner="")

    def test_initial_status(self, vault):
        status = vault.get_status()

        assert status["total_assets"] == "0"
        assert status["paused"] is False
        assert status["roles"]["keeper"] == KEEPER
        assert status["strategies"] == []


class TestDeposit:
    """Test single-asset deposits and mints."""

    @pytest.mark.asyncio
    async def test_first_deposit_bootstrap(self, vault, primary):
        shares = await vault.deposit(Decimal("1"), ALICE, caller=ALICE)

        assert shares == Decimal("10000")
        assert vault.balance_of(ALICE) == Decimal("10000")
        assert primary.balance(VAULT) == Decimal("1")
        assert vault.get_vault_balances() == (Decimal("1"), Decimal("0"))

    @pytest.mark.asyncio
    async def test_price_stable_across_deposits(self, vault):
        await vault.deposit(Decimal("1000"), ALICE, caller=ALICE)
        await vault.deposit(Decimal("500"), BOB, caller=BOB)

        assert vault.price_per_share() == Decimal("0.0001")
        assert vault.balance_of(BOB) == Decimal("5000000")

    @pytest.mark.asyncio
    async def test_mint_pulls_rounded_up(self, vault, primary):
        assets = await vault.mint(Decimal("10000"), ALICE, caller=ALICE)

        assert assets == Decimal("1")
        assert primary.balance(ALICE) == STARTING_BALANCE - Decimal("1")

    @pytest.mark.asyncio
    async def test_supply_cap(self, vault):
        """50M shares at the bootstrap ratio caps deposits at 5,000."""
        await vault.deposit(Decimal("5000"), ALICE, caller=ALICE)

        with pytest.raises(MaxSupplyExceeded):
            await vault.deposit(Decimal("0.0001"), BOB, caller=BOB)

    @pytest.mark.asyncio
    async def test_over_cap_first_deposit(self, vault):
        with pytest.raises(MaxSupplyExceeded):
            await vault.deposit(Decimal("5001"), ALICE, caller=ALICE)

    @pytest.mark.asyncio
    async def test_zero_amount(self, vault):
        with pytest.raises(ZeroAmount):
            await vault.deposit(Decimal("0"), ALICE, caller=ALICE)

    @pytest.mark.asyncio
    async def test_vault_as_receiver(self, vault):
        with pytest.raises(InvalidReceiver):
            await vault.deposit(Decimal("1"), VAULT, caller=ALICE)

    @pytest.mark.asyncio
    async def test_event_recorded(self, vault):
        await vault.deposit(Decimal("10"), ALICE, caller=ALICE)

        events = vault.events.events_of(EventType.DEPOSIT)
        assert len(events) == 1
        assert events[0].context["caller"] == ALICE
        assert "correlation_id" in events[0].context

    @pytest.mark.asyncio
    async def test_wiped_out_vault_rejects_deposits(self, vault, make_strategy, primary):
        """Nothing can be minted against shares whose assets are gone."""
        strategy = make_strategy()
        await vault.add_strategy(strategy, 10000, caller=OWNER)
        await vault.deposit(Decimal("1000"), ALICE, caller=ALICE)
        strategy.simulate_loss(Decimal("1000"))
        await vault.report(caller=KEEPER)

        assert vault.total_assets() == Decimal("0")
        assert vault.total_supply() == Decimal("10000000")
        assert vault.max_deposit(BOB) == Decimal("0")
        assert vault.max_mint(BOB) == Decimal("0")

        with pytest.raises(ZeroAmount):
            await vault.deposit(Decimal("100"), BOB, caller=BOB)
        with pytest.raises(ZeroAmount):
            await vault.mint(Decimal("1000000"), BOB, caller=BOB)
        with pytest.raises(ZeroAmount):
            await vault.deposit_dual(Decimal("100"), Decimal("100"), BOB, caller=BOB)

        assert primary.balance(BOB) == STARTING_BALANCE
        assert vault.balance_of(BOB) == Decimal("0")

    @pytest.mark.asyncio
    async def test_insufficient_balance_rolls_back(self, vault, primary):
        """A failed pull leaves no shares behind."""
        primary.mint("0xcarol", Decimal("10"))

        with pytest.raises(ValueError):
            await vault.deposit(Decimal("20"), "0xcarol", caller="0xcarol")

        assert vault.balance_of("0xcarol") == Decimal("0")
        assert vault.total_supply() == Decimal("0")
        assert vault.total_assets() == Decimal("0")
        assert primary.balance("0xcarol") == Decimal("10")


class TestDepositDual:
    """Test dual-asset deposits."""

    @pytest.mark.asyncio
    async def test_without_strategies_keeps_both(self, vault, secondary):
        result = await vault.deposit_dual(Decimal("500"), Decimal("500"), ALICE, caller=ALICE)

        assert result.value == Decimal("1000")
        assert result.shares == Decimal("10000000")
        assert result.secondary_used == Decimal("500")
        assert result.secondary_swapped == Decimal("0")
        assert vault.get_vault_balances() == (Decimal("500"), Decimal("500"))
        assert secondary.balance(VAULT) == Decimal("500")

    @pytest.mark.asyncio
    async def test_excess_swapped_to_match_ratio(self, vault, make_strategy, router):
        """Secondary beyond the strategies' 1:1 holdings is swapped."""
        await vault.add_strategy(make_strategy(), 10000, caller=OWNER)
        await vault.deposit_dual(Decimal("500"), Decimal("500"), ALICE, caller=ALICE)

        result = await vault.deposit_dual(Decimal("100"), Decimal("300"), BOB, caller=BOB)

        assert result.secondary_used == Decimal("100")
        assert result.secondary_swapped == Decimal("200")
        assert result.primary_from_swap == Decimal("200")
        assert result.primary_used == Decimal("300")
        assert result.value == Decimal("400")
        assert result.shares == Decimal("4000000")
        assert len(vault.events.events_of(EventType.SWAP_EXECUTED)) == 1

    @pytest.mark.asyncio
    async def test_pulled_tokens_booked_before_swap(self, vault, make_strategy, router):
        """Idle already holds the pulled tokens while the router fills the swap."""
        await vault.add_strategy(make_strategy(), 10000, caller=OWNER)
        await vault.deposit_dual(Decimal("500"), Decimal("500"), ALICE, caller=ALICE)
        seen = []
        fill = router.exact_input_single

        async def observing_fill(*args, **kwargs):
            seen.append(vault.get_vault_balances())
            return await fill(*args, **kwargs)

        router.exact_input_single = observing_fill

        await vault.deposit_dual(Decimal("100"), Decimal("300"), BOB, caller=BOB)

        assert seen == [(Decimal("100"), Decimal("300"))]
        assert vault.get_vault_balances() == (Decimal("300"), Decimal("100"))
        assert vault.total_idle() == Decimal("400")

    @pytest.mark.asyncio
    async def test_dust_refunded(self, make_vault, make_strategy, secondary):
        config = VaultConfig(roles={"keeper": KEEPER}, swap={"min_swap_amount": "10"})
        vault = make_vault(config)
        await vault.add_strategy(make_strategy(), 10000, caller=OWNER)
        await vault.deposit_dual(Decimal("500"), Decimal("500"), ALICE, caller=ALICE)

        result = await vault.deposit_dual(Decimal("100"), Decimal("105"), BOB, caller=BOB)

        assert result.secondary_refunded == Decimal("5")
        assert result.secondary_swapped == Decimal("0")
        assert secondary.balance(BOB) == STARTING_BALANCE - Decimal("100")

    @pytest.mark.asyncio
    async def test_swap_failure_refunds_both(
        self, vault, make_strategy, primary, secondary, router
    ):
        """Primary-only strategies force a swap; a bad fill reverts everything."""
        await vault.add_strategy(make_strategy(), 10000, caller=OWNER)
        await vault.deposit(Decimal("1000"), ALICE, caller=ALICE)
        router.set_rate(secondary, primary, "0.9")

        with pytest.raises(SlippageExceeded):
            await vault.deposit_dual(Decimal("100"), Decimal("100"), BOB, caller=BOB)

        assert primary.balance(BOB) == STARTING_BALANCE
        assert secondary.balance(BOB) == STARTING_BALANCE
        assert vault.balance_of(BOB) == Decimal("0")
        assert vault.events.events_of(EventType.CALL_REVERTED)[-1].data["code"] == (
            "ROUTER_REVERTED"
        )

    @pytest.mark.asyncio
    async def test_both_zero(self, vault):
        with pytest.raises(ZeroAmount):
            await vault.deposit_dual(Decimal("0"), Decimal("0"), ALICE, caller=ALICE)

    @pytest.mark.asyncio
    async def test_preview(self, vault):
        preview = await vault.preview_deposit_dual(Decimal("100"), Decimal("50"))

        assert preview.value == Decimal("150")
        assert preview.shares == Decimal("1500000")
        assert preview.usd_value == Decimal("150")


class TestCapitalInjection:
    """Test share-price-raising injections."""

    @pytest.mark.asyncio
    async def test_preview_and_inject(self, vault):
        await vault.deposit(Decimal("1000"), ALICE, caller=ALICE)

        preview = await vault.preview_capital_injection(Decimal("100"), Decimal("0"))
        assert preview.new_share_value == Decimal("0.00011")
        assert preview.percentage_increase == Decimal("10")

        value = await vault.inject_capital(Decimal("100"), Decimal("0"), caller=BOB)

        assert value == Decimal("100")
        assert vault.price_per_share() == Decimal("0.00011")
        assert vault.balance_of(BOB) == Decimal("0")
        assert len(vault.events.events_of(EventType.CAPITAL_INJECTED)) == 1

    @pytest.mark.asyncio
    async def test_zero_amounts(self, vault):
        with pytest.raises(ZeroAmount):
            await vault.inject_capital(Decimal("0"), Decimal("0"), caller=BOB)

    @pytest.mark.asyncio
    async def test_preview_without_supply(self, vault):
        preview = await vault.preview_capital_injection(Decimal("100"), Decimal("0"))

        assert preview.value_increase == Decimal("0")

    @pytest.mark.asyncio
    async def test_injection_front_run_costs_next_depositor_nothing(self, vault, primary):
        """A tiny first deposit inflated by an injection cannot round a later deposit away."""
        await vault.deposit(Decimal("1"), ALICE, caller=ALICE)
        await vault.inject_capital(Decimal("1000"), Decimal("0"), caller=ALICE)

        shares = await vault.deposit(Decimal("10"), BOB, caller=BOB)
        assert shares > Decimal("99")

        await vault.redeem(shares, BOB, BOB, caller=BOB)

        lost = STARTING_BALANCE - primary.balance(BOB)
        assert Decimal("0") <= lost < Decimal("0.000000000001")

    @pytest.mark.asyncio
    async def test_direct_donation_counted_at_report(self, vault, primary):
        """Tokens sent straight to the vault do not move the price until a report."""
        await vault.deposit(Decimal("1000"), ALICE, caller=ALICE)
        primary.mint(VAULT, Decimal("500"))

        assert vault.total_assets() == Decimal("1000")
        assert await vault.deposit(Decimal("100"), BOB, caller=BOB) == Decimal("1000000")

        await vault.report(caller=KEEPER)

        assert vault.total_assets() == Decimal("1600")


class TestShareTransfers:
    """Test share token entry points."""

    @pytest.mark.asyncio
    async def test_transfer_and_transfer_from(self, vault):
        await vault.deposit(Decimal("10"), ALICE, caller=ALICE)

        await vault.transfer(BOB, Decimal("1000"), caller=ALICE)
        await vault.approve(FEES, Decimal("500"), caller=BOB)
        await vault.transfer_from(BOB, FEES, Decimal("500"), caller=FEES)

        assert vault.balance_of(BOB) == Decimal("500")
        assert vault.balance_of(FEES) == Decimal("500")
        assert vault.allowance(BOB, FEES) == Decimal("0")
        assert len(vault.events.events_of(EventType.SHARES_TRANSFERRED)) == 2


class TestRemoveStrategy:
    """Test strategy removal."""

    @pytest.mark.asyncio
    async def test_full_return(self, vault, make_strategy, primary):
        strategy = make_strategy()
        await vault.add_strategy(strategy, 10000, caller=OWNER)
        await vault.deposit(Decimal("1000"), ALICE, caller=ALICE)

        record = await vault.remove_strategy(strategy.address, caller=OWNER)

        assert record.returned_value == Decimal("1000")
        assert record.shortfall == Decimal("0")
        assert vault.total_idle() == Decimal("1000")
        assert vault.total_debt() == Decimal("0")
        assert primary.balance(VAULT) == Decimal("1000")

    @pytest.mark.asyncio
    async def test_shortfall_realized_at_report(self, vault, make_strategy):
        strategy = make_strategy()
        await vault.add_strategy(strategy, 10000, caller=OWNER)
        await vault.deposit(Decimal("1000"), ALICE, caller=ALICE)
        strategy.simulate_loss(100)

        record = await vault.remove_strategy(strategy.address, caller=OWNER)

        assert record.shortfall == Decimal("100")
        assert vault.total_assets() == Decimal("1000")

        report = await vault.report(caller=KEEPER)
        assert report.loss == Decimal("100")
        assert vault.total_assets() == Decimal("900")

    @pytest.mark.asyncio
    async def test_refusing_strategy_still_removed(self, vault, make_strategy):
        strategy = make_strategy(refuse_withdraw=True)
        await vault.add_strategy(strategy, 10000, caller=OWNER)
        await vault.deposit(Decimal("1000"), ALICE, caller=ALICE)

        record = await vault.remove_strategy(strategy.address, caller=OWNER)

        assert record.error_message is not None
        assert record.shortfall == Decimal("1000")
        assert vault.ledger.strategies[0].active is False
        assert len(vault.removal_history) == 1

    @pytest.mark.asyncio
    async def test_unknown_strategy(self, vault):
        with pytest.raises(StrategyNotFound):
            await vault.remove_strategy("0xnobody", caller=OWNER)

    @pytest.mark.asyncio
    async def test_management_only(self, vault, make_strategy):
        strategy = make_strategy()
        await vault.add_strategy(strategy, 1000, caller=OWNER)

        with pytest.raises(Unauthorized):
            await vault.remove_strategy(strategy.address, caller=KEEPER)
        with pytest.raises(Unauthorized):
            await vault.add_strategy(make_strategy(), 1000, caller=KEEPER)


class TestCallGuard:
    """Test mutual exclusion of entry points."""

    @pytest.mark.asyncio
    async def test_reentrant_call_rejected(self, vault, make_strategy):
        """A strategy calling back into the vault fails its own deployment."""
        strategy = make_strategy()
        seen = []

        async def reenter():
            try:
                await vault.deposit(Decimal("1"), BOB, caller=BOB)
            except ReentrantCall as e:
                seen.append(e)
                raise

        strategy.on_deposit = reenter
        await vault.add_strategy(strategy, 10000, caller=OWNER)

        shares = await vault.deposit(Decimal("1000"), ALICE, caller=ALICE)

        assert shares == Decimal("10000000")
        assert len(seen) == 1
        assert vault.balance_of(BOB) == Decimal("0")
        assert vault.allocation_history[0].success is False

    @pytest.mark.asyncio
    async def test_concurrent_calls_serialize(self, vault):
        results = await asyncio.gather(
            vault.deposit(Decimal("100"), ALICE, caller=ALICE),
            vault.deposit(Decimal("100"), BOB, caller=BOB),
        )

        assert results == [Decimal("1000000"), Decimal("1000000")]
        assert vault.total_assets() == Decimal("200")
