"""Trading strategies module."""

from alphatracker.strategies.arbiter import ArbiterDecision, Candidate, StrategyArbiter
from alphatracker.strategies.arbitrage import ArbitrageStrategy
from alphatracker.strategies.base import BaseStrategy
from alphatracker.strategies.copy_trade import CopyTradeStrategy
from alphatracker.strategies.early_gem import EarlyGemStrategy
from alphatracker.strategies.memecoin import MemecoinStrategy
from alphatracker.strategies.registry import StrategyRegistry
from alphatracker.strategies.smart_money import SmartMoneyStrategy, WalletBalanceEstimator
from alphatracker.strategies.volume_breakout import VolumeBreakoutStrategy

__all__ = [
    "ArbiterDecision",
    "ArbitrageStrategy",
    "BaseStrategy",
    "Candidate",
    "CopyTradeStrategy",
    "EarlyGemStrategy",
    "MemecoinStrategy",
    "SmartMoneyStrategy",
    "StrategyArbiter",
    "StrategyRegistry",
    "VolumeBreakoutStrategy",
    "WalletBalanceEstimator",
]
