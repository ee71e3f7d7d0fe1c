"""Tests for the strategy arbiter."""

import pytest
from helpers import make_event, make_wallet

from alphatracker.config import StrategyConfig
from alphatracker.core.activity import ActivityLog
from alphatracker.core.types import Confidence, PerformanceStats, StrategyKind, TransactionEvent, Wallet
from alphatracker.portfolio.ledger import PositionLedger
from alphatracker.strategies import BaseStrategy, StrategyArbiter, StrategyRegistry
from alphatracker.strategies.arbiter import specificity_weight


class FixedSizeStrategy(BaseStrategy):
    """Accepts every buy at a fixed size."""

    kind = StrategyKind.COPY_TRADE

    def __init__(
        self,
        kind: StrategyKind,
        size: float,
        ledger: PositionLedger,
        activity: ActivityLog,
        fail: bool = False,
    ) -> None:
        config = StrategyConfig(
            allocation=10000,
            max_per_trade=1000,
            max_concurrent_trades=10,
            stop_loss=0.1,
            take_profit=0.5,
        )
        super().__init__(config, ledger, activity)
        self.kind = kind
        self.size = size
        self.fail = fail

    def size_position(
        self, event: TransactionEvent, wallet: Wallet
    ) -> tuple[float, Confidence | None]:
        if self.fail:
            raise ValueError("boom")
        return self.size, Confidence.MEDIUM


def _arbiter(ledger, activity, sizes: dict[StrategyKind, float], **kwargs) -> StrategyArbiter:
    strategies = {kind: FixedSizeStrategy(kind, size, ledger, activity) for kind, size in sizes.items()}
    return StrategyArbiter(StrategyRegistry(strategies), **kwargs)


def test_highest_weighted_size_wins(ledger: PositionLedger, activity: ActivityLog) -> None:
    """Copy trade's 0.8 weight makes it lose to a slightly smaller arbitrage trade."""
    arbiter = _arbiter(
        ledger, activity, {StrategyKind.COPY_TRADE: 100, StrategyKind.ARBITRAGE: 90}
    )
    decision = arbiter.select(make_event(), make_wallet())

    assert decision.should_trade
    assert decision.selected.strategy == StrategyKind.ARBITRAGE
    assert decision.selected.score == pytest.approx(90)
    assert [c.strategy for c in decision.candidates] == [
        StrategyKind.ARBITRAGE,
        StrategyKind.COPY_TRADE,
    ]
    assert len(decision.evaluations) == 2


def test_default_registry_selection(ledger: PositionLedger, activity: ActivityLog) -> None:
    """With real strategies, arbitrage outranks copy trade on a 1000 USD buy."""
    registry = StrategyRegistry.build(
        ledger, activity, enabled={StrategyKind.COPY_TRADE, StrategyKind.ARBITRAGE}
    )
    decision = StrategyArbiter(registry).select(make_event(amount=1000), make_wallet(win_rate=0.62))
    assert decision.selected.strategy == StrategyKind.ARBITRAGE
    assert decision.selected.position_size == 200


def test_no_candidates(ledger: PositionLedger, activity: ActivityLog) -> None:
    """Test the outcome when nothing accepts."""
    registry = StrategyRegistry.build(
        ledger, activity, enabled={StrategyKind.COPY_TRADE, StrategyKind.ARBITRAGE}
    )
    decision = StrategyArbiter(registry).select(make_event(amount=1000), make_wallet(win_rate=0.3))
    assert not decision.should_trade
    assert decision.reason == "No strategy accepted the trade"
    assert all(not e.should_copy for e in decision.evaluations)


def test_tie_selects_nothing(ledger: PositionLedger, activity: ActivityLog) -> None:
    """Exactly equal top scores are not broken arbitrarily."""
    arbiter = _arbiter(
        ledger, activity, {StrategyKind.VOLUME_BREAKOUT: 100, StrategyKind.ARBITRAGE: 100}
    )
    decision = arbiter.select(make_event(), make_wallet())
    assert not decision.should_trade
    assert decision.reason.startswith("Tie between")


def test_failing_strategy_is_isolated(ledger: PositionLedger, activity: ActivityLog) -> None:
    """A strategy that raises counts as a rejection."""
    strategies = {
        StrategyKind.ARBITRAGE: FixedSizeStrategy(StrategyKind.ARBITRAGE, 100, ledger, activity),
        StrategyKind.MEMECOIN: FixedSizeStrategy(
            StrategyKind.MEMECOIN, 500, ledger, activity, fail=True
        ),
    }
    decision = StrategyArbiter(StrategyRegistry(strategies)).select(make_event(), make_wallet())

    assert decision.selected.strategy == StrategyKind.ARBITRAGE
    failed = [e for e in decision.evaluations if e.strategy == StrategyKind.MEMECOIN][0]
    assert failed.reason == "Evaluation error: boom"


def test_smart_money_weight_depends_on_trade_size() -> None:
    """Test the large-trade condition on the smart money weight."""
    assert specificity_weight(StrategyKind.SMART_MONEY, make_event(amount=6000)) == 2.0
    assert specificity_weight(StrategyKind.SMART_MONEY, make_event(amount=1000)) == 1.0
    assert specificity_weight(StrategyKind.EARLY_GEM, make_event(amount=1000)) == 1.5


def test_adaptive_prefers_affinity(ledger: PositionLedger, activity: ActivityLog) -> None:
    """In adaptive mode the wallet's declared style drives selection."""
    arbiter = _arbiter(
        ledger,
        activity,
        {StrategyKind.VOLUME_BREAKOUT: 100, StrategyKind.ARBITRAGE: 100},
        adaptive=True,
    )
    wallet = make_wallet(win_rate=None, strategy_type=StrategyKind.ARBITRAGE)
    decision = arbiter.select(make_event(), wallet)

    assert decision.selected.strategy == StrategyKind.ARBITRAGE
    assert decision.selected.score == pytest.approx(48)
    assert decision.selected.eligibility_score == 80
    assert decision.selected.performance_score == 0
    assert decision.selected.evaluation.reason.startswith("Adaptive: ")
    assert decision.selected.position_size == 100


def test_adaptive_score_floor(ledger: PositionLedger, activity: ActivityLog) -> None:
    """A best score at the floor is not enough."""
    arbiter = _arbiter(ledger, activity, {StrategyKind.ARBITRAGE: 100}, adaptive=True)
    decision = arbiter.select(make_event(), make_wallet(win_rate=None))
    assert not decision.should_trade
    assert "not above 30" in decision.reason


def test_adaptive_resizes_by_capital_health(ledger: PositionLedger, activity: ActivityLog) -> None:
    """A strong wallet scales the winning size up."""
    arbiter = _arbiter(
        ledger,
        activity,
        {StrategyKind.ARBITRAGE: 100},
        adaptive=True,
    )
    wallet = make_wallet(win_rate=0.8, strategy_type=StrategyKind.ARBITRAGE)
    decision = arbiter.select(make_event(), wallet)
    assert decision.size_multiplier == pytest.approx(1.1)
    assert decision.selected.position_size == pytest.approx(110)


def test_capital_health_multiplier() -> None:
    """Test the multiplier table."""
    strong = PerformanceStats(strategy="x", total_trades=5, win_rate=0.7, roi=25)
    weak = PerformanceStats(strategy="x", total_trades=3, win_rate=0.5, roi=-15)
    fresh = PerformanceStats(strategy="x")
    wallet = make_wallet(win_rate=0.6)

    multiplier = StrategyArbiter.capital_health_multiplier
    assert multiplier(strong, wallet, 0.0) == pytest.approx(1.3)
    assert multiplier(strong, make_wallet(win_rate=0.75), -20.0) == pytest.approx(1.3 * 1.1 * 0.5)
    assert multiplier(weak, wallet, 0.0) == pytest.approx(0.7)
    assert multiplier(fresh, wallet, 0.0) == 1.0
    assert multiplier(fresh, make_wallet(win_rate=0.4), 0.0) == pytest.approx(0.8)
