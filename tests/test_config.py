"""Tests for configuration."""

import pytest
from pydantic import ValidationError

from alphatracker.config import (
    DEFAULT_STRATEGY_CONFIGS,
    AlphaTrackerSettings,
    StrategyConfig,
    TakeProfitTier,
    default_strategy_configs,
    parse_dict_env,
)
from alphatracker.core.types import StrategyKind


def test_settings_defaults() -> None:
    """Test default settings values."""
    cfg = AlphaTrackerSettings(_env_file=None)
    assert cfg.initial_capital == 10000.0
    assert cfg.max_position_size == 0.12
    assert cfg.max_open_positions == 40
    assert cfg.emergency_stop is False
    assert cfg.adaptive_mode is False
    assert cfg.log_format == "text"


def test_risk_limits_built_from_settings() -> None:
    """Test that risk limits mirror the settings fields."""
    cfg = AlphaTrackerSettings(_env_file=None, max_drawdown=0.1, emergency_stop=True)
    limits = cfg.risk_limits()
    assert limits.max_drawdown == 0.1
    assert limits.emergency_stop is True
    assert limits.max_token_exposure == cfg.max_token_exposure


def test_chain_floor_prices_from_env_pairs(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test key=value parsing of CHAIN_FLOOR_PRICES."""
    monkeypatch.setenv("CHAIN_FLOOR_PRICES", "Solana=0.002,base=0.5")
    cfg = AlphaTrackerSettings(_env_file=None)
    assert cfg.chain_floor_prices == {"solana": 0.002, "base": 0.5}
    assert cfg.floor_price("SOLANA") == 0.002


def test_chain_floor_prices_from_env_json(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test JSON parsing of CHAIN_FLOOR_PRICES."""
    monkeypatch.setenv("CHAIN_FLOOR_PRICES", '{"ethereum": 2.5}')
    cfg = AlphaTrackerSettings(_env_file=None)
    assert cfg.floor_price("ethereum") == 2.5


def test_floor_price_falls_back_to_default() -> None:
    """Test default floor for chains without an explicit entry."""
    cfg = AlphaTrackerSettings(_env_file=None)
    assert cfg.floor_price("solana") == 0.001
    assert cfg.floor_price("polygon") == cfg.default_floor_price


def test_non_positive_floor_price_rejected() -> None:
    """Test validation of floor prices."""
    with pytest.raises(ValidationError):
        AlphaTrackerSettings(_env_file=None, chain_floor_prices={"solana": 0.0})


def test_parse_dict_env_passthrough() -> None:
    """Test that non-string values are returned untouched."""
    assert parse_dict_env({"a": 1.0}) == {"a": 1.0}
    assert parse_dict_env(None) is None


def test_take_profit_modes_are_exclusive() -> None:
    """Test that a single target and a ladder cannot be combined."""
    with pytest.raises(ValidationError):
        StrategyConfig(
            allocation=1000,
            max_per_trade=100,
            max_concurrent_trades=5,
            stop_loss=0.2,
            take_profit=0.5,
            take_profit_tiers=[TakeProfitTier(multiple=2, sell_fraction=0.5)],
        )


def test_strategy_config_derived_fields() -> None:
    """Test tier ordering and derived defaults."""
    cfg = StrategyConfig(
        allocation=1000,
        max_per_trade=100,
        max_concurrent_trades=5,
        stop_loss=0.2,
        trailing_stop=0.1,
        take_profit_tiers=[
            TakeProfitTier(multiple=10, sell_fraction=0.3),
            TakeProfitTier(multiple=2, sell_fraction=0.5),
        ],
    )
    assert [t.multiple for t in cfg.take_profit_tiers] == [2, 10]
    assert cfg.take_profit_tiers[0].label == "tier_2"
    assert cfg.trailing_activation == 0.1
    assert cfg.base_size == 100


def test_tier_requires_multiple_above_one() -> None:
    """Test tier validation."""
    with pytest.raises(ValidationError):
        TakeProfitTier(multiple=1.0, sell_fraction=0.5)
    with pytest.raises(ValidationError):
        TakeProfitTier(multiple=2.0, sell_fraction=0.0)


def test_default_strategy_configs_are_copies() -> None:
    """Test that callers cannot mutate the shared default table."""
    table = default_strategy_configs()
    assert set(table) == set(StrategyKind)
    table[StrategyKind.COPY_TRADE].allocation = 1.0
    assert DEFAULT_STRATEGY_CONFIGS[StrategyKind.COPY_TRADE].allocation == 2500


def test_default_table_values() -> None:
    """Test a few tuned constants."""
    table = default_strategy_configs()
    meme = table[StrategyKind.MEMECOIN]
    assert [(t.multiple, t.sell_fraction) for t in meme.take_profit_tiers] == [
        (2, 0.6),
        (5, 0.3),
        (10, 0.1),
    ]
    assert table[StrategyKind.SMART_MONEY].min_wallet_balance == 75000
    assert table[StrategyKind.COPY_TRADE].trailing_activation == 0.30
