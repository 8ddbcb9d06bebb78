"""
Price Oracle Adapter.

Supplies the secondary->primary conversion rate used for valuation and
swaps. Feed readings are validated (positive, fresh, and for the pegged
asset within the peg band); the pool TWAP is the fallback when a feed is
unset or fails validation.
"""

from datetime import datetime
from decimal import ROUND_DOWN, Decimal, localcontext
from typing import Callable, Optional, Tuple

from eagle_vault.config.models import OracleConfig
from eagle_vault.core import InvalidPrice, get_logger
from eagle_vault.core.utils import MAX_BPS, ZERO, mul_div, round_decimal

from ..interfaces import PoolProtocol, PriceFeedProtocol

logger = get_logger(__name__)

TICK_BASE = Decimal("1.0001")


def tick_to_price(tick: int) -> Decimal:
    """
    Convert a pool tick to the token1-per-token0 price (1.0001 ** tick).

    Example:
        >>> tick_to_price(0)
        Decimal('1.000000000000000000')
    """
    with localcontext() as ctx:
        ctx.prec = 78
        price = TICK_BASE ** tick
    return round_decimal(price)


class PriceOracleAdapter:
    """
    Validated exchange-rate source for the vault.

    Rates are expressed as primary units per one secondary unit. The pool
    orientation is given by ``OracleConfig.primary_is_token0``.
    """

    def __init__(
        self,
        pool: PoolProtocol,
        config: OracleConfig,
        clock: Callable[[], datetime],
        secondary_feed: Optional[PriceFeedProtocol] = None,
        primary_feed: Optional[PriceFeedProtocol] = None,
    ):
        """
        Initialize the oracle adapter.

        Args:
            pool: Market-maker pool for TWAP and spot reads
            config: Oracle configuration
            clock: UTC time source
            secondary_feed: USD feed for the pegged secondary asset
            primary_feed: USD feed for the primary asset
        """
        self._pool = pool
        self._clock = clock
        self._secondary_feed = secondary_feed
        self._primary_feed = primary_feed
        self._peg_lower = config.peg_lower_bound
        self._peg_upper = config.peg_upper_bound
        self._primary_is_token0 = config.primary_is_token0
        self.twap_interval = config.twap_interval
        self.max_price_age = config.max_price_age
        self.max_oracle_pool_delta_bps = config.max_oracle_pool_delta_bps

    @property
    def has_feeds(self) -> bool:
        return self._secondary_feed is not None and self._primary_feed is not None

    # =========================================================================
    # Feed reads
    # =========================================================================

    async def pegged_asset_price(self) -> Decimal:
        """
        Get the validated USD price of the secondary (pegged) asset.

        Raises:
            InvalidPrice: If the feed is unset, non-positive, stale or off-peg
        """
        price = await self._read_feed(self._secondary_feed, "secondary")
        if price < self._peg_lower or price > self._peg_upper:
            raise InvalidPrice(
                f"Pegged asset price {price} outside "
                f"[{self._peg_lower}, {self._peg_upper}]",
                code="OFF_PEG",
                details={"price": str(price)},
            )
        return price

    async def primary_usd_price(self) -> Decimal:
        """Get the validated USD price of the primary asset."""
        return await self._read_feed(self._primary_feed, "primary")

    async def _read_feed(
        self,
        feed: Optional[PriceFeedProtocol],
        name: str,
    ) -> Decimal:
        if feed is None:
            raise InvalidPrice(f"No {name} price feed configured", code="FEED_UNSET")

        answer, updated_at = await feed.latest_round_data()
        if answer <= 0:
            raise InvalidPrice(
                f"Non-positive {name} feed answer: {answer}",
                code="NON_POSITIVE",
            )

        age = (self._clock() - updated_at).total_seconds()
        if age > self.max_price_age:
            raise InvalidPrice(
                f"Stale {name} feed: {int(age)}s old (max {self.max_price_age}s)",
                code="STALE",
                details={"age": int(age)},
            )

        return Decimal(answer).scaleb(-feed.decimals)

    # =========================================================================
    # Pool reads
    # =========================================================================

    async def twap_price(self) -> Decimal:
        """
        Get the time-weighted price of the primary asset in secondary units.

        A window of zero falls back to the pool's current tick.
        """
        window = self.twap_interval
        if window == 0:
            return await self.spot_price()

        cumulatives = await self._pool.observe([window, 0])
        tick = (cumulatives[1] - cumulatives[0]) // window
        return self._orient(tick_to_price(tick))

    async def spot_price(self) -> Decimal:
        """Get the current pool price of the primary asset in secondary units."""
        tick = await self._pool.current_tick()
        return self._orient(tick_to_price(tick))

    def _orient(self, token1_per_token0: Decimal) -> Decimal:
        if self._primary_is_token0:
            return token1_per_token0
        return round_decimal(Decimal(1) / token1_per_token0)

    # =========================================================================
    # Rates
    # =========================================================================

    async def primary_per_secondary_rate(self) -> Decimal:
        """
        Get the primary units one secondary unit is worth.

        Prefers the validated feeds; falls back to the inverse of the pool
        TWAP when either feed is unset or rejects its reading.
        """
        if self.has_feeds:
            try:
                return await self._feed_rate()
            except InvalidPrice as e:
                logger.warning(f"Feed rate unavailable, using pool TWAP: {e}")

        twap = await self.twap_price()
        if twap <= 0:
            raise InvalidPrice("Pool TWAP price is zero", code="ZERO_TWAP")
        return mul_div(Decimal(1), Decimal(1), twap)

    async def _feed_rate(self) -> Decimal:
        secondary_usd = await self.pegged_asset_price()
        primary_usd = await self.primary_usd_price()
        return mul_div(secondary_usd, Decimal(1), primary_usd)

    async def oracle_pool_delta(self) -> Decimal:
        """
        Get the divergence between the feed rate and the pool spot rate, in bps.

        Returns zero when no feed rate is available.
        """
        if not self.has_feeds:
            return ZERO
        try:
            feed_rate = await self._feed_rate()
        except InvalidPrice as e:
            logger.debug(f"No feed rate for delta check: {e}")
            return ZERO

        spot = await self.spot_price()
        pool_rate = mul_div(Decimal(1), Decimal(1), spot)
        if pool_rate == 0:
            return Decimal(MAX_BPS)
        return mul_div(abs(feed_rate - pool_rate), MAX_BPS, pool_rate)

    async def check_divergence(self) -> Decimal:
        """
        Enforce the optional divergence policy before a swap.

        Raises:
            InvalidPrice: If a limit is set and the delta exceeds it
        """
        delta = await self.oracle_pool_delta()
        limit = self.max_oracle_pool_delta_bps
        if limit is not None and delta > limit:
            raise InvalidPrice(
                f"Oracle/pool divergence {delta} bps exceeds {limit} bps",
                code="DIVERGENCE",
                details={"delta_bps": str(delta), "limit_bps": limit},
            )
        if delta > 0:
            logger.debug(f"Oracle/pool delta: {delta} bps")
        return delta

    async def get_current_prices(self) -> Tuple[Decimal, Decimal]:
        """
        Get (primary_usd, secondary_usd).

        Without a primary feed the secondary asset is taken as the USD unit
        and the primary price comes from the pool TWAP.
        """
        try:
            secondary_usd = await self.pegged_asset_price()
        except InvalidPrice as e:
            logger.warning(f"Pegged price unavailable, assuming 1.0: {e}")
            secondary_usd = Decimal(1)

        if self._primary_feed is not None:
            try:
                return await self.primary_usd_price(), secondary_usd
            except InvalidPrice as e:
                logger.warning(f"Primary feed unavailable, using pool TWAP: {e}")

        twap = await self.twap_price()
        primary_usd = round_decimal(twap * secondary_usd, rounding=ROUND_DOWN)
        return primary_usd, secondary_usd
