"""Base strategy class.

Every strategy shares the same evaluation skeleton and the same exit rules;
subclasses provide eligibility extras, sizing, and a suitability bonus used
by the adaptive arbiter.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime
from typing import ClassVar

from alphatracker.config import StrategyConfig
from alphatracker.core.activity import ActivityLog
from alphatracker.core.interfaces import PositionReader, TokenInfoSource
from alphatracker.core.types import (
    Confidence,
    ExitDecision,
    ExitType,
    PerformanceStats,
    Position,
    StrategyKind,
    TradeAction,
    TradeEvaluation,
    TransactionEvent,
    Wallet,
    utcnow,
)
from alphatracker.logging import get_logger
from alphatracker.portfolio.performance import compute_performance

logger = get_logger(__name__)


class BaseStrategy(ABC):
    """Base class for all strategies."""

    kind: ClassVar[StrategyKind]
    requires_price: ClassVar[bool] = False

    def __init__(
        self,
        config: StrategyConfig,
        positions: PositionReader,
        activity: ActivityLog,
        token_info: TokenInfoSource | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the strategy."""
        self.config = config
        self._positions = positions
        self._activity = activity
        self._token_info = token_info
        self._clock = clock

    @property
    def name(self) -> str:
        return self.kind.value

    def get_open_positions(self) -> list[Position]:
        return self._positions.get_open_positions(self.kind)

    def available_capital(self, open_positions: list[Position] | None = None) -> float:
        """Allocation minus the entry value of this strategy's open positions."""
        if open_positions is None:
            open_positions = self.get_open_positions()
        return self.config.allocation - sum(p.entry_value_usd for p in open_positions)

    # ------------------------------------------------------------------
    # Entry
    # ------------------------------------------------------------------

    def evaluate_trade(self, event: TransactionEvent, wallet: Wallet) -> TradeEvaluation:
        """Decide whether to copy ``event`` and at what size."""
        cfg = self.config

        if event.action != TradeAction.BUY:
            return self._reject("Not a buy transaction")

        reason = self._check_wallet(wallet)
        if reason:
            return self._reject(reason)

        reason = self._check_trade_size(event)
        if reason:
            return self._reject(reason)

        open_positions = self.get_open_positions()
        if len(open_positions) >= cfg.max_concurrent_trades:
            return self._reject(
                f"Max concurrent trades reached ({len(open_positions)}/{cfg.max_concurrent_trades})"
            )
        available = self.available_capital(open_positions)

        reason = self.check_eligibility(event, wallet, open_positions)
        if reason:
            return self._reject(reason, available)

        raw_size, confidence = self.size_position(event, wallet)
        requested = min(raw_size, cfg.max_per_trade)
        if requested <= 0:
            return self._reject("Computed position size is zero", available)
        if available < requested:
            return self._reject(
                f"Insufficient capital: ${available:.2f} available, ${requested:.2f} requested",
                available,
            )

        size = max(0.0, min(requested, cfg.max_per_trade, available))
        return TradeEvaluation(
            strategy=self.kind,
            should_copy=True,
            position_size=size,
            reason=self.describe(event, wallet),
            confidence=confidence,
            available_capital=available,
        )

    def _reject(self, reason: str, available: float = 0.0) -> TradeEvaluation:
        return TradeEvaluation.reject(self.kind, reason, available)

    def _check_wallet(self, wallet: Wallet) -> str | None:
        cfg = self.config
        if wallet.win_rate is None:
            if cfg.allow_unrated_wallets or cfg.min_win_rate <= 0:
                return None
            return "Wallet has no win-rate history"
        if wallet.win_rate < cfg.min_win_rate:
            return (
                f"Wallet win rate {wallet.win_rate * 100:.1f}% below "
                f"minimum {cfg.min_win_rate * 100:.1f}%"
            )
        return None

    def _check_trade_size(self, event: TransactionEvent) -> str | None:
        cfg = self.config
        value = event.trade_value()
        if value is None:
            if self.requires_price:
                return "No price data for trade"
            if event.amount < cfg.min_token_amount:
                return (
                    f"Trade amount {event.amount:g} below floor {cfg.min_token_amount:g} "
                    "(no price data)"
                )
            return None
        if value < cfg.min_trade_size:
            return f"Trade size ${value:.2f} below minimum ${cfg.min_trade_size:.2f}"
        return None

    def check_eligibility(
        self, event: TransactionEvent, wallet: Wallet, open_positions: list[Position]
    ) -> str | None:
        """Strategy-specific eligibility extras. Returns a rejection reason or ``None``."""
        return None

    @abstractmethod
    def size_position(
        self, event: TransactionEvent, wallet: Wallet
    ) -> tuple[float, Confidence | None]:
        """Return the requested position size (USD) and a confidence label."""
        ...

    def describe(self, event: TransactionEvent, wallet: Wallet) -> str:
        return f"{self.name} signal on {event.token_symbol}"

    # ------------------------------------------------------------------
    # Adaptive scoring
    # ------------------------------------------------------------------

    def eligibility_score(self, event: TransactionEvent, wallet: Wallet) -> float:
        """Suitability of this strategy for the event, 0-100."""
        score = 50.0
        if wallet.strategy_type == self.kind:
            score += 30
        score += self.suitability_bonus(event, wallet)
        return min(100.0, score)

    def suitability_bonus(self, event: TransactionEvent, wallet: Wallet) -> float:
        return 0.0

    # ------------------------------------------------------------------
    # Exit
    # ------------------------------------------------------------------

    def get_exit_strategy(
        self, position: Position, current_price: float, now: datetime | None = None
    ) -> ExitDecision:
        """Apply stop-loss, take-profit, trailing stop and time decay, in that order."""
        cfg = self.config
        if current_price <= 0:
            return ExitDecision.hold()

        change = position.price_change(current_price)

        if change <= -cfg.stop_loss:
            return ExitDecision.full(
                ExitType.STOP_LOSS, f"Stop loss triggered ({cfg.stop_loss * 100:.0f}%)"
            )

        if cfg.take_profit_tiers:
            multiple = current_price / position.entry_price
            fired = position.annotations()
            for tier in cfg.take_profit_tiers:
                if multiple >= tier.multiple and tier.label not in fired:
                    return ExitDecision(
                        should_exit=True,
                        sell_fraction=tier.sell_fraction,
                        reason=(
                            f"Take profit at {tier.multiple:g}x "
                            f"(selling {tier.sell_fraction * 100:.0f}%)"
                        ),
                        exit_type=ExitType.TAKE_PROFIT_TIER,
                        note=tier.label,
                    )
        elif cfg.take_profit is not None and change >= cfg.take_profit:
            return ExitDecision.full(
                ExitType.TAKE_PROFIT, f"Take profit hit (+{change * 100:.1f}%)"
            )

        if cfg.trailing_stop is not None and cfg.trailing_activation is not None:
            peak = max(position.peak_price or position.entry_price, current_price)
            peak_gain = (peak - position.entry_price) / position.entry_price
            if peak_gain >= cfg.trailing_activation:
                retrace = (peak - current_price) / peak
                if retrace >= cfg.trailing_stop:
                    return ExitDecision.full(
                        ExitType.TRAILING_STOP,
                        f"Trailing stop: {retrace * 100:.1f}% below peak ${peak:.6g}",
                    )

        if cfg.max_hold_hours is not None:
            held = position.hours_held(now or self._clock())
            if held >= cfg.max_hold_hours and change < cfg.min_hold_move:
                return ExitDecision.full(
                    ExitType.TIME_DECAY,
                    f"Held {held:.0f}h with only {change * 100:+.1f}% movement",
                )

        return ExitDecision.hold()

    # ------------------------------------------------------------------
    # Performance
    # ------------------------------------------------------------------

    def get_performance(self) -> PerformanceStats:
        """Aggregates over this strategy's closed positions."""
        return compute_performance(
            self.name,
            self._positions.get_closed_positions(self.kind),
            self.config.allocation,
            open_positions=len(self.get_open_positions()),
        )
