"""
Vault Configuration Models.

Initial parameters for the vault ledger and its engine components. Values
that management may change at runtime (fees, unlock time, deployment
thresholds) are copied into the ledger at construction; the config itself
stays immutable.
"""

from decimal import Decimal
from typing import Optional

from pydantic import Field, field_validator, model_validator

from .base import BaseConfig, coerce_decimal

MAX_BPS = 10_000
MAX_PERFORMANCE_FEE_BPS = 5_000
MAX_PROFIT_UNLOCK_SECONDS = 365 * 24 * 3600
MAX_STRATEGIES = 5


class ShareConfig(BaseConfig):
    """
    Share token configuration.

    Example:
        >>> config = ShareConfig(bootstrap_multiplier=10000, max_supply=50_000_000)
    """

    name: str = Field(default="Eagle Vault Shares", min_length=1)
    symbol: str = Field(default="vEAGLE", min_length=1)
    bootstrap_multiplier: Decimal = Field(
        default=Decimal("10000"),
        gt=Decimal("0"),
        description="Shares minted per unit of primary asset while supply is zero",
    )
    max_supply: Decimal = Field(
        default=Decimal("50000000"),
        gt=Decimal("0"),
        description="Hard cap on raw share supply",
    )

    @field_validator("bootstrap_multiplier", "max_supply", mode="before")
    @classmethod
    def coerce_to_decimal(cls, v):
        return coerce_decimal(v)


class OracleConfig(BaseConfig):
    """Price feed validation and TWAP parameters."""

    max_price_age: int = Field(
        default=3600,
        gt=0,
        description="Maximum feed age in seconds before a reading is stale",
    )
    peg_lower_bound: Decimal = Field(
        default=Decimal("0.95"),
        gt=Decimal("0"),
        description="Lowest accepted pegged-asset price",
    )
    peg_upper_bound: Decimal = Field(
        default=Decimal("1.05"),
        gt=Decimal("0"),
        description="Highest accepted pegged-asset price",
    )
    twap_interval: int = Field(
        default=1800,
        ge=0,
        description="TWAP window in seconds (0 = pool spot price)",
    )
    max_oracle_pool_delta_bps: Optional[int] = Field(
        default=None,
        ge=0,
        le=MAX_BPS,
        description="Refuse swaps above this feed/pool divergence (None = informational only)",
    )
    primary_is_token0: bool = Field(
        default=True,
        description="Whether the primary asset is token0 of the pool",
    )

    @field_validator("peg_lower_bound", "peg_upper_bound", mode="before")
    @classmethod
    def coerce_to_decimal(cls, v):
        return coerce_decimal(v)

    @model_validator(mode="after")
    def check_peg_band(self) -> "OracleConfig":
        if self.peg_lower_bound >= self.peg_upper_bound:
            raise ValueError(
                f"peg_lower_bound ({self.peg_lower_bound}) must be below "
                f"peg_upper_bound ({self.peg_upper_bound})"
            )
        return self


class SwapConfig(BaseConfig):
    """Swap execution parameters."""

    max_slippage_bps: int = Field(
        default=100,
        ge=0,
        le=MAX_BPS,
        description="Default slippage tolerance for vault-initiated swaps",
    )
    pool_fee: int = Field(
        default=3000,
        ge=0,
        description="Pool fee tier passed to the router",
    )
    min_swap_amount: Decimal = Field(
        default=Decimal("0.000001"),
        ge=Decimal("0"),
        description="Amounts below this are returned to the caller instead of swapped",
    )

    @field_validator("min_swap_amount", mode="before")
    @classmethod
    def coerce_to_decimal(cls, v):
        return coerce_decimal(v)


class AllocationConfig(BaseConfig):
    """Idle-capital deployment policy."""

    deployment_threshold: Decimal = Field(
        default=Decimal("100"),
        ge=Decimal("0"),
        description="Minimum idle value (primary units) before deploying",
    )
    min_deployment_interval: int = Field(
        default=300,
        ge=0,
        description="Minimum seconds between deployments",
    )
    max_strategies: int = Field(
        default=MAX_STRATEGIES,
        ge=1,
        le=MAX_STRATEGIES,
    )

    @field_validator("deployment_threshold", mode="before")
    @classmethod
    def coerce_to_decimal(cls, v):
        return coerce_decimal(v)


class ReportingConfig(BaseConfig):
    """Profit recognition parameters."""

    performance_fee_bps: int = Field(
        default=1000,
        ge=0,
        le=MAX_PERFORMANCE_FEE_BPS,
    )
    profit_max_unlock_time: int = Field(
        default=7 * 24 * 3600,
        ge=0,
        le=MAX_PROFIT_UNLOCK_SECONDS,
        description="Seconds over which recognized profit vests",
    )
    max_report_history: int = Field(default=100, ge=1)


class RolesConfig(BaseConfig):
    """Initial role holders (management defaults to the vault owner)."""

    management: Optional[str] = None
    keeper: Optional[str] = None
    emergency_admin: Optional[str] = None
    fee_recipient: Optional[str] = None

    @field_validator("management", "keeper", "emergency_admin", "fee_recipient", mode="before")
    @classmethod
    def empty_as_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class LoggingConfig(BaseConfig):
    """Logging configuration."""

    level: str = Field(default="INFO")
    event_log_dir: Optional[str] = Field(
        default=None,
        description="Directory for JSON-lines event logs (None = in-memory only)",
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {v}")
        return level

    @field_validator("event_log_dir", mode="before")
    @classmethod
    def empty_as_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class VaultConfig(BaseConfig):
    """
    Complete vault configuration.

    Example:
        >>> config = VaultConfig(reporting={"performance_fee_bps": 500})
        >>> config.reporting.performance_fee_bps
        500
    """

    shares: ShareConfig = Field(default_factory=ShareConfig)
    oracle: OracleConfig = Field(default_factory=OracleConfig)
    swap: SwapConfig = Field(default_factory=SwapConfig)
    allocation: AllocationConfig = Field(default_factory=AllocationConfig)
    reporting: ReportingConfig = Field(default_factory=ReportingConfig)
    roles: RolesConfig = Field(default_factory=RolesConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
