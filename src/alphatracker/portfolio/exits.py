"""Exit evaluator: prioritised exit rules for open positions.

Rules, first match wins:

1. Source-wallet exit: the wallet we copied has sold the token since entry.
2. The owning strategy's rules (stop-loss, take-profit, trailing stop, decay).
3. Staleness: held past the sanity horizon with negligible movement.
4. Trend reversal: enough distinct wallets sold the token recently.
"""

from collections.abc import Callable
from datetime import datetime, timedelta

from alphatracker.core.activity import ActivityLog
from alphatracker.core.types import ExitDecision, ExitType, Position, utcnow
from alphatracker.logging import get_logger
from alphatracker.portfolio.ledger import PositionLedger
from alphatracker.strategies.registry import StrategyRegistry

logger = get_logger(__name__)


class ExitEvaluator:
    """Decides whether an open position should be (partially) exited."""

    def __init__(
        self,
        registry: StrategyRegistry,
        ledger: PositionLedger,
        activity: ActivityLog,
        stagnation_hours: float = 168.0,
        stagnation_min_move: float = 0.10,
        reversal_sellers: int = 5,
        reversal_window: timedelta = timedelta(hours=1),
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the exit evaluator."""
        self._registry = registry
        self._ledger = ledger
        self._activity = activity
        self._stagnation_hours = stagnation_hours
        self._stagnation_min_move = stagnation_min_move
        self._reversal_sellers = reversal_sellers
        self._reversal_window = reversal_window
        self._clock = clock

    def evaluate(
        self, position: Position, current_price: float, now: datetime | None = None
    ) -> ExitDecision:
        now = now or self._clock()
        if current_price <= 0:
            return ExitDecision.hold()

        if self._activity.wallet_sold_since(
            position.source_wallet, position.chain, position.token_address, position.entry_time
        ):
            return ExitDecision.full(
                ExitType.WALLET_EXIT,
                f"Source wallet {position.source_wallet[:10]}... sold {position.token_symbol}",
            )

        self._ledger.record_peak(position, current_price)
        if position.strategy in self._registry:
            decision = self._registry.get(position.strategy).get_exit_strategy(
                position, current_price, now
            )
            if decision.should_exit:
                return decision

        change = position.price_change(current_price)
        held = position.hours_held(now)
        if held >= self._stagnation_hours and abs(change) < self._stagnation_min_move:
            return ExitDecision.full(
                ExitType.STAGNATION,
                f"Stale position: held {held:.0f}h with {change * 100:+.1f}% movement",
            )

        sellers = self._activity.distinct_sellers(
            position.chain, position.token_address, now - self._reversal_window
        )
        if len(sellers) >= self._reversal_sellers:
            return ExitDecision.full(
                ExitType.TREND_REVERSAL,
                f"Trend reversal: {len(sellers)} wallets sold {position.token_symbol} recently",
            )

        return ExitDecision.hold()
