"""Configuration management using Pydantic v2."""

import json
import os
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from alphatracker.core.types import StrategyKind


def parse_dict_env(value: Any) -> Any:
    """Parse mapping values from env (JSON object or ``key=value`` pairs)."""
    if value is None or not isinstance(value, str):
        return value
    if value.strip() == "":
        return value
    try:
        parsed = json.loads(value)
        if isinstance(parsed, dict):
            return parsed
    except json.JSONDecodeError:
        pass
    pairs = [item.split("=", 1) for item in value.split(",") if "=" in item]
    return {k.strip(): float(v) for k, v in pairs} if pairs else value


def _find_env_file() -> str:
    """Find .env file: check project root first, then CWD."""
    project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
    env_path = os.path.join(project_root, ".env")
    if os.path.exists(env_path):
        return env_path
    return ".env"


class TakeProfitTier(BaseModel):
    """One rung of a tiered take-profit ladder."""

    multiple: float = Field(gt=1.0, description="Price multiple of entry that fires this tier")
    sell_fraction: float = Field(gt=0.0, le=1.0, description="Fraction of the position sold")

    @property
    def label(self) -> str:
        """Annotation token recorded once the tier has fired."""
        return f"tier_{self.multiple:g}"


class StrategyConfig(BaseModel):
    """Thresholds, sizing and exit rules for one strategy."""

    allocation: float = Field(gt=0, description="Capital ceiling for the strategy (USD)")
    max_per_trade: float = Field(gt=0, description="Largest single position (USD)")
    base_size: float | None = Field(default=None, gt=0, description="Unscaled position size (USD)")
    max_concurrent_trades: int = Field(ge=1)
    min_win_rate: float = Field(default=0.0, ge=0.0, le=1.0)
    allow_unrated_wallets: bool = Field(
        default=False, description="Accept wallets without any closed-trade history"
    )
    min_trade_size: float = Field(default=0.0, ge=0.0, description="Minimum source trade value (USD)")
    min_token_amount: float = Field(
        default=100.0, ge=0.0, description="Token-amount floor used when the trade is unpriced"
    )

    # Exits
    stop_loss: float = Field(gt=0.0, lt=1.0)
    take_profit: float | None = Field(default=None, gt=0.0)
    take_profit_tiers: list[TakeProfitTier] = Field(default_factory=list)
    trailing_stop: float | None = Field(default=None, gt=0.0, lt=1.0)
    trailing_activation: float | None = Field(default=None, gt=0.0)
    max_hold_hours: float | None = Field(default=None, gt=0.0)
    min_hold_move: float = Field(default=0.0, ge=0.0)

    # Strategy-specific extras
    copy_percentage: float | None = Field(default=None, gt=0.0, le=1.0)
    unpriced_size: float | None = Field(default=None, gt=0.0)
    min_wallet_balance: float | None = Field(default=None, ge=0.0)
    min_buyer_count: int | None = Field(default=None, ge=1)
    buyer_window_seconds: int | None = Field(default=None, gt=0)
    volume_multiplier: float | None = Field(default=None, gt=0.0)
    token_age_limit_hours: float | None = Field(default=None, gt=0.0)
    min_liquidity: float | None = Field(default=None, ge=0.0)

    @model_validator(mode="after")
    def _check_exit_rules(self) -> "StrategyConfig":
        if self.take_profit is not None and self.take_profit_tiers:
            raise ValueError("take_profit and take_profit_tiers are mutually exclusive")
        self.take_profit_tiers.sort(key=lambda t: t.multiple)
        if self.trailing_stop is not None and self.trailing_activation is None:
            self.trailing_activation = self.trailing_stop
        if self.base_size is None:
            self.base_size = self.max_per_trade
        return self


class RiskLimits(BaseModel):
    """Portfolio-wide limits enforced by the risk gate."""

    max_position_size: float = Field(default=0.12, gt=0.0, le=1.0)
    max_drawdown: float = Field(default=0.20, gt=0.0, le=1.0)
    max_daily_loss: float = Field(default=0.03, gt=0.0, le=1.0)
    max_token_exposure: float = Field(default=0.25, gt=0.0, le=1.0)
    max_chain_exposure: float = Field(default=0.50, gt=0.0, le=1.0)
    max_open_positions: int = Field(default=40, ge=1)
    emergency_stop: bool = False


DEFAULT_STRATEGY_CONFIGS: dict[StrategyKind, StrategyConfig] = {
    StrategyKind.COPY_TRADE: StrategyConfig(
        allocation=2500,
        max_per_trade=200,
        max_concurrent_trades=15,
        min_win_rate=0.50,
        allow_unrated_wallets=True,
        min_trade_size=50,
        copy_percentage=0.08,
        unpriced_size=50,
        stop_loss=0.12,
        take_profit=0.40,
        trailing_stop=0.12,
        trailing_activation=0.30,
    ),
    StrategyKind.VOLUME_BREAKOUT: StrategyConfig(
        allocation=2000,
        max_per_trade=150,
        max_concurrent_trades=10,
        min_win_rate=0.0,
        min_trade_size=0,
        volume_multiplier=2.5,
        min_buyer_count=3,
        buyer_window_seconds=7200,
        stop_loss=0.15,
        take_profit=0.60,
        max_hold_hours=48,
        min_hold_move=0.30,
    ),
    StrategyKind.SMART_MONEY: StrategyConfig(
        allocation=2000,
        max_per_trade=250,
        base_size=200,
        max_concurrent_trades=8,
        min_win_rate=0.0,
        min_trade_size=2000,
        min_wallet_balance=75000,
        stop_loss=0.10,
        take_profit=0.35,
        trailing_stop=0.10,
        trailing_activation=0.20,
    ),
    StrategyKind.ARBITRAGE: StrategyConfig(
        allocation=1500,
        max_per_trade=200,
        max_concurrent_trades=8,
        min_win_rate=0.50,
        min_trade_size=250,
        stop_loss=0.08,
        take_profit=0.20,
        trailing_stop=0.08,
        trailing_activation=0.15,
    ),
    StrategyKind.MEMECOIN: StrategyConfig(
        allocation=1000,
        max_per_trade=100,
        max_concurrent_trades=12,
        min_win_rate=0.35,
        min_buyer_count=2,
        buyer_window_seconds=3600,
        stop_loss=0.40,
        take_profit_tiers=[
            TakeProfitTier(multiple=2, sell_fraction=0.6),
            TakeProfitTier(multiple=5, sell_fraction=0.3),
            TakeProfitTier(multiple=10, sell_fraction=0.1),
        ],
        max_hold_hours=48,
        min_hold_move=0.50,
    ),
    StrategyKind.EARLY_GEM: StrategyConfig(
        allocation=500,
        max_per_trade=75,
        base_size=60,
        max_concurrent_trades=6,
        min_win_rate=0.50,
        token_age_limit_hours=120,
        min_liquidity=20000,
        stop_loss=0.25,
        take_profit_tiers=[
            TakeProfitTier(multiple=2.5, sell_fraction=0.7),
            TakeProfitTier(multiple=5, sell_fraction=0.3),
        ],
        max_hold_hours=48,
        min_hold_move=0.50,
    ),
}


def default_strategy_configs() -> dict[StrategyKind, StrategyConfig]:
    """Return a deep copy of the default strategy table."""
    return {kind: cfg.model_copy(deep=True) for kind, cfg in DEFAULT_STRATEGY_CONFIGS.items()}


class AlphaTrackerSettings(BaseSettings):
    """Main configuration for the paper-trading engine."""

    model_config = SettingsConfigDict(
        env_file=_find_env_file(),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        enable_decoding=False,
        env_ignore_empty=True,
    )

    environment: Literal["development", "production"] = Field(
        default="development",
        description="Application environment (development or production)",
    )

    # Capital
    initial_capital: float = Field(default=10000.0, gt=0, description="Starting paper capital in USD")

    # Risk Management
    max_position_size: float = Field(
        default=0.12, gt=0, le=1, description="Max fraction of current capital per position"
    )
    max_drawdown: float = Field(default=0.20, gt=0, le=1, description="Max drawdown from starting capital")
    max_daily_loss: float = Field(
        default=0.03, gt=0, le=1, description="Max realized loss per UTC day, fraction of starting capital"
    )
    max_token_exposure: float = Field(
        default=0.25, gt=0, le=1, description="Max post-trade exposure to one token"
    )
    max_chain_exposure: float = Field(
        default=0.50, gt=0, le=1, description="Max post-trade exposure to one chain"
    )
    max_open_positions: int = Field(default=40, ge=1, description="Global cap on open positions")
    emergency_stop: bool = Field(default=False, description="Pause all new trades")

    # Strategy selection
    adaptive_mode: bool = Field(
        default=False, description="Blend strategy performance into arbiter selection"
    )
    adaptive_score_floor: float = Field(
        default=30.0, ge=0, le=100, description="Minimum combined score for adaptive selection"
    )

    # Caches
    dedup_cache_size: int = Field(default=10000, ge=1, description="Processed event keys kept in memory")
    activity_max_tokens: int = Field(default=5000, ge=1, description="Tokens tracked by the activity log")
    activity_max_wallets: int = Field(default=5000, ge=1, description="Wallets tracked by the activity log")
    activity_max_events_per_key: int = Field(default=500, ge=1)
    activity_retention_hours: float = Field(default=168.0, gt=0, description="Activity retention (7 days)")

    # Global exit overrides
    stagnation_hours: float = Field(default=168.0, gt=0, description="Sanity horizon for stale positions")
    stagnation_min_move: float = Field(default=0.10, ge=0, description="Movement below which a position is stale")
    trend_reversal_sell_count: int = Field(default=5, ge=1, description="Distinct sellers that signal reversal")
    trend_reversal_window_seconds: int = Field(default=3600, gt=0)

    # Price fallbacks
    chain_floor_prices: dict[str, float] = Field(
        default_factory=lambda: {"solana": 0.001},
        description="Floor price per chain when no price can be derived",
    )
    default_floor_price: float = Field(default=1.0, gt=0)

    # Scheduling
    tracking_interval_seconds: float = Field(default=60.0, gt=0, description="Ingestion cycle interval")
    position_interval_seconds: float = Field(default=30.0, gt=0, description="Position cycle interval")
    event_concurrency: int = Field(default=1, ge=1, description="Events evaluated in parallel per cycle")

    # Storage
    duckdb_path: str = Field(default="data/alphatracker.duckdb")
    wallets_file: str | None = Field(
        default=None, description="JSON list of tracked wallets loaded at startup"
    )

    # Logging
    log_level: str = Field(default="INFO")
    log_format: Literal["text", "json"] = Field(default="text")

    @field_validator("chain_floor_prices", mode="before")
    @classmethod
    def parse_chain_floor_prices(cls, v: Any) -> Any:
        return parse_dict_env(v)

    @field_validator("chain_floor_prices")
    @classmethod
    def validate_chain_floor_prices(cls, v: dict[str, float]) -> dict[str, float]:
        for chain, price in v.items():
            if price <= 0:
                raise ValueError(f"Floor price for {chain} must be positive, got {price}")
        return {chain.lower(): price for chain, price in v.items()}

    def risk_limits(self) -> RiskLimits:
        """Build the risk gate limits from the current settings."""
        return RiskLimits(
            max_position_size=self.max_position_size,
            max_drawdown=self.max_drawdown,
            max_daily_loss=self.max_daily_loss,
            max_token_exposure=self.max_token_exposure,
            max_chain_exposure=self.max_chain_exposure,
            max_open_positions=self.max_open_positions,
            emergency_stop=self.emergency_stop,
        )

    def floor_price(self, chain: str) -> float:
        """Last-resort unit price for a chain."""
        return self.chain_floor_prices.get(chain.lower(), self.default_floor_price)


# Global settings instance
settings = AlphaTrackerSettings()
