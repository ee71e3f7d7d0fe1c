"""Arbitrage strategy: follow consistently profitable traders on mid-size trades."""

from alphatracker.core.types import Confidence, StrategyKind, TransactionEvent, Wallet
from alphatracker.strategies.base import BaseStrategy


class ArbitrageStrategy(BaseStrategy):
    kind = StrategyKind.ARBITRAGE

    def size_position(
        self, event: TransactionEvent, wallet: Wallet
    ) -> tuple[float, Confidence | None]:
        win_rate = wallet.win_rate or 0.0
        size = self.config.base_size * min(win_rate / 0.6, 1.5)
        value = event.trade_value() or 0.0
        if value > 5000:
            size *= 1.2
        confidence = Confidence.HIGH if win_rate >= 0.65 else Confidence.MEDIUM
        return size, confidence

    def describe(self, event: TransactionEvent, wallet: Wallet) -> str:
        return (
            f"Consistent trader ({(wallet.win_rate or 0.0) * 100:.1f}% WR) "
            f"buying {event.token_symbol} for ${event.trade_value() or 0.0:,.0f}"
        )

    def suitability_bonus(self, event: TransactionEvent, wallet: Wallet) -> float:
        bonus = 0.0
        value = event.trade_value() or 0.0
        if (wallet.win_rate or 0.0) >= 0.55 and value >= 500:
            bonus += 20
        if event.chain == "ethereum":
            bonus += 10
        return bonus
