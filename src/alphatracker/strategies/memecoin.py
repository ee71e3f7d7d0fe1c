"""Memecoin strategy: enter on coordinated buying by several tracked wallets."""

from datetime import timedelta

from alphatracker.core.types import (
    Confidence,
    Position,
    StrategyKind,
    TransactionEvent,
    Wallet,
)
from alphatracker.strategies.base import BaseStrategy


class MemecoinStrategy(BaseStrategy):
    """Small fixed-size entries, exited through a tiered take-profit ladder."""

    kind = StrategyKind.MEMECOIN

    def _buyer_count(self, event: TransactionEvent) -> int:
        window = timedelta(seconds=self.config.buyer_window_seconds or 3600)
        buyers = self._activity.distinct_buyers(
            event.chain, event.token_address, event.timestamp - window
        )
        buyers.add(event.wallet_address)
        return len(buyers)

    def check_eligibility(
        self, event: TransactionEvent, wallet: Wallet, open_positions: list[Position]
    ) -> str | None:
        required = self.config.min_buyer_count or 2
        count = self._buyer_count(event)
        if count < required:
            return f"Need {required} wallets, only {count} detected"
        return None

    def size_position(
        self, event: TransactionEvent, wallet: Wallet
    ) -> tuple[float, Confidence | None]:
        return self.config.base_size, Confidence.HIGH

    def describe(self, event: TransactionEvent, wallet: Wallet) -> str:
        return f"{self._buyer_count(event)} wallets buying {event.token_symbol} - coordinated signal"

    def suitability_bonus(self, event: TransactionEvent, wallet: Wallet) -> float:
        bonus = 0.0
        if event.chain == "solana":
            bonus += 20
        symbol = event.token_symbol.upper()
        if "BONK" in symbol or "WIF" in symbol or len(symbol) <= 4:
            bonus += 15
        return bonus
