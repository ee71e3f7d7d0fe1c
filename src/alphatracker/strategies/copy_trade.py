"""Copy-trade strategy: mirror a fraction of a tracked wallet's buy."""

from alphatracker.core.types import Confidence, StrategyKind, TransactionEvent, Wallet
from alphatracker.strategies.base import BaseStrategy


class CopyTradeStrategy(BaseStrategy):
    """Generic catch-all: copies any qualifying wallet at a fixed percentage."""

    kind = StrategyKind.COPY_TRADE

    def size_position(
        self, event: TransactionEvent, wallet: Wallet
    ) -> tuple[float, Confidence | None]:
        cfg = self.config
        value = event.trade_value()
        if value is None:
            size = cfg.unpriced_size or cfg.base_size
        else:
            size = value * (cfg.copy_percentage or 0.08)
        return size, self._confidence(wallet)

    @staticmethod
    def _confidence(wallet: Wallet) -> Confidence:
        if wallet.win_rate is None:
            return Confidence.LOW
        if wallet.win_rate >= 0.65:
            return Confidence.HIGH
        if wallet.win_rate < 0.55:
            return Confidence.LOW
        return Confidence.MEDIUM

    def describe(self, event: TransactionEvent, wallet: Wallet) -> str:
        if wallet.win_rate is None:
            return f"Copying unrated wallet buy of {event.token_symbol}"
        return f"Copying {wallet.win_rate * 100:.1f}% WR wallet buy of {event.token_symbol}"

    def suitability_bonus(self, event: TransactionEvent, wallet: Wallet) -> float:
        value = event.trade_value() or 0.0
        if (wallet.win_rate or 0.0) >= 0.55 and value >= 100:
            return 25
        return 0
