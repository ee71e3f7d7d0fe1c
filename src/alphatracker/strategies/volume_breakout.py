"""Volume breakout strategy: enter when buy volume in a token spikes across several wallets."""

from dataclasses import dataclass
from datetime import timedelta

from alphatracker.core.types import (
    Confidence,
    Position,
    StrategyKind,
    TransactionEvent,
    Wallet,
)
from alphatracker.strategies.base import BaseStrategy

_HISTORY = timedelta(days=7)


@dataclass
class VolumeSnapshot:
    recent_volume: float
    historical_avg: float
    multiple: float
    buyer_count: int


class VolumeBreakoutStrategy(BaseStrategy):
    kind = StrategyKind.VOLUME_BREAKOUT

    def volume_snapshot(self, event: TransactionEvent) -> VolumeSnapshot:
        """Recent buy volume against the per-window average of the prior week."""
        window = timedelta(seconds=self.config.buyer_window_seconds or 7200)
        now = event.timestamp
        window_start = now - window

        recent = self._activity.buy_volume(event.chain, event.token_address, window_start)
        historical = self._activity.buy_volume(
            event.chain, event.token_address, now - _HISTORY, window_start
        )
        windows_per_history = _HISTORY / window
        historical_avg = historical / windows_per_history

        if historical_avg > 0:
            multiple = recent / historical_avg
        else:
            multiple = 5.0 if recent > 1000 else 1.0

        buyers = self._activity.distinct_buyers(event.chain, event.token_address, window_start)
        buyers.add(event.wallet_address)
        return VolumeSnapshot(recent, historical_avg, multiple, len(buyers))

    def check_eligibility(
        self, event: TransactionEvent, wallet: Wallet, open_positions: list[Position]
    ) -> str | None:
        snap = self.volume_snapshot(event)
        if snap.multiple < (self.config.volume_multiplier or 2.5):
            return f"Normal volume ({snap.buyer_count} buyers, {snap.multiple:.1f}x)"
        required = self.config.min_buyer_count or 3
        if snap.buyer_count < required:
            return f"Not enough buyers ({snap.buyer_count} < {required})"
        for p in open_positions:
            if p.token_address == event.token_address and p.chain == event.chain:
                return "Already have position in this token"
        return None

    def size_position(
        self, event: TransactionEvent, wallet: Wallet
    ) -> tuple[float, Confidence | None]:
        snap = self.volume_snapshot(event)
        size = self.config.base_size
        if snap.recent_volume > 10000:
            if snap.multiple >= 5:
                size *= 1.2
        else:
            # thin or unpriced volume
            size = min(100.0, self.config.max_per_trade)
        confidence = Confidence.HIGH if snap.multiple >= 5 else Confidence.MEDIUM
        return size, confidence

    def describe(self, event: TransactionEvent, wallet: Wallet) -> str:
        snap = self.volume_snapshot(event)
        hours = (self.config.buyer_window_seconds or 7200) / 3600
        return (
            f"Volume breakout: {snap.multiple:.1f}x normal, "
            f"{snap.buyer_count} buyers in {hours:g}h"
        )

    def suitability_bonus(self, event: TransactionEvent, wallet: Wallet) -> float:
        return 20 if (event.trade_value() or 0.0) >= 500 else 0
