"""Smart-money strategy: follow large trades from well-capitalised wallets."""

import time
from collections.abc import Callable
from datetime import datetime, timedelta

from alphatracker.config import StrategyConfig
from alphatracker.core.activity import ActivityLog
from alphatracker.core.cache import LRUCache
from alphatracker.core.interfaces import PositionReader, TokenInfoSource
from alphatracker.core.types import (
    Confidence,
    Position,
    StrategyKind,
    TransactionEvent,
    Wallet,
    utcnow,
)
from alphatracker.logging import get_logger
from alphatracker.strategies.base import BaseStrategy

logger = get_logger(__name__)


class WalletBalanceEstimator:
    """Rough wallet balance: average recent trade value times a turnover factor.

    Estimates are cached per wallet (LRU, TTL) so a burst of trades from the
    same wallet does not rescan its history each time.
    """

    def __init__(
        self,
        activity: ActivityLog,
        capacity: int = 100,
        ttl_seconds: float = 300.0,
        lookback: timedelta = timedelta(days=30),
        turnover_factor: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._activity = activity
        self._cache: LRUCache[str, float] = LRUCache(capacity, ttl=ttl_seconds, clock=clock)
        self._lookback = lookback
        self._turnover = turnover_factor

    def estimate(self, wallet_address: str, now: datetime) -> float:
        cached = self._cache.get(wallet_address)
        if cached is not None:
            return cached
        values = self._activity.wallet_trade_values(wallet_address, now - self._lookback)
        estimate = (sum(values) / len(values)) * self._turnover if values else 0.0
        self._cache.set(wallet_address, estimate)
        return estimate

    def invalidate(self, wallet_address: str) -> None:
        self._cache.pop(wallet_address)

    def __len__(self) -> int:
        return len(self._cache)


class SmartMoneyStrategy(BaseStrategy):
    """Only priced trades above the minimum size from wallets with a large estimated balance."""

    kind = StrategyKind.SMART_MONEY
    requires_price = True

    def __init__(
        self,
        config: StrategyConfig,
        positions: PositionReader,
        activity: ActivityLog,
        token_info: TokenInfoSource | None = None,
        clock: Callable[[], datetime] = utcnow,
        balance_estimator: WalletBalanceEstimator | None = None,
    ) -> None:
        super().__init__(config, positions, activity, token_info, clock)
        self.balances = balance_estimator or WalletBalanceEstimator(activity)

    def check_eligibility(
        self, event: TransactionEvent, wallet: Wallet, open_positions: list[Position]
    ) -> str | None:
        minimum = self.config.min_wallet_balance or 0.0
        balance = self.balances.estimate(wallet.address, event.timestamp)
        if balance < minimum:
            return f"Wallet balance ~${balance:,.0f} below ${minimum:,.0f}"
        return None

    def size_position(
        self, event: TransactionEvent, wallet: Wallet
    ) -> tuple[float, Confidence | None]:
        value = event.trade_value() or 0.0
        size = self.config.base_size
        if value >= 50000:
            size *= 1.3
        elif value >= 20000:
            size *= 1.15

        balance = self.balances.estimate(wallet.address, event.timestamp)
        ratio = value / balance if balance > 0 else 0.0
        if ratio >= 0.10:
            confidence = Confidence.HIGH
        elif ratio < 0.02:
            confidence = Confidence.LOW
        else:
            confidence = Confidence.MEDIUM
        return size, confidence

    def describe(self, event: TransactionEvent, wallet: Wallet) -> str:
        return f"Smart money buy of {event.token_symbol} for ${event.trade_value() or 0.0:,.0f}"

    def suitability_bonus(self, event: TransactionEvent, wallet: Wallet) -> float:
        return 30 if (event.trade_value() or 0.0) >= 5000 else 0
