"""Strategy registry: the closed set of strategy variants, built once at startup."""

from collections.abc import Callable
from datetime import datetime

from alphatracker.config import StrategyConfig, default_strategy_configs
from alphatracker.core.activity import ActivityLog
from alphatracker.core.interfaces import PositionReader, TokenInfoSource
from alphatracker.core.types import StrategyKind, utcnow
from alphatracker.logging import get_logger
from alphatracker.strategies.arbitrage import ArbitrageStrategy
from alphatracker.strategies.base import BaseStrategy
from alphatracker.strategies.copy_trade import CopyTradeStrategy
from alphatracker.strategies.early_gem import EarlyGemStrategy
from alphatracker.strategies.memecoin import MemecoinStrategy
from alphatracker.strategies.smart_money import SmartMoneyStrategy
from alphatracker.strategies.volume_breakout import VolumeBreakoutStrategy

logger = get_logger(__name__)

STRATEGY_CLASSES: dict[StrategyKind, type[BaseStrategy]] = {
    StrategyKind.COPY_TRADE: CopyTradeStrategy,
    StrategyKind.VOLUME_BREAKOUT: VolumeBreakoutStrategy,
    StrategyKind.SMART_MONEY: SmartMoneyStrategy,
    StrategyKind.ARBITRAGE: ArbitrageStrategy,
    StrategyKind.MEMECOIN: MemecoinStrategy,
    StrategyKind.EARLY_GEM: EarlyGemStrategy,
}


class StrategyRegistry:
    """Holds one instance per strategy kind.

    Iteration order follows ``StrategyKind`` declaration order.
    """

    def __init__(self, strategies: dict[StrategyKind, BaseStrategy]) -> None:
        self._strategies = {kind: strategies[kind] for kind in StrategyKind if kind in strategies}

    @classmethod
    def build(
        cls,
        positions: PositionReader,
        activity: ActivityLog,
        token_info: TokenInfoSource | None = None,
        configs: dict[StrategyKind, StrategyConfig] | None = None,
        enabled: set[StrategyKind] | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> "StrategyRegistry":
        """Instantiate every enabled strategy with its configuration."""
        table = default_strategy_configs()
        if configs:
            table.update(configs)
        strategies: dict[StrategyKind, BaseStrategy] = {}
        for kind, strategy_cls in STRATEGY_CLASSES.items():
            if enabled is not None and kind not in enabled:
                continue
            strategies[kind] = strategy_cls(table[kind], positions, activity, token_info, clock)
        logger.info(f"Registered strategies: {', '.join(k.value for k in strategies)}")
        return cls(strategies)

    def get(self, kind: StrategyKind) -> BaseStrategy:
        try:
            return self._strategies[kind]
        except KeyError:
            raise KeyError(f"Strategy {kind.value} is not registered") from None

    def kinds(self) -> list[StrategyKind]:
        return list(self._strategies)

    def __iter__(self):
        return iter(self._strategies.values())

    def __contains__(self, kind: object) -> bool:
        return kind in self._strategies

    def __len__(self) -> int:
        return len(self._strategies)
