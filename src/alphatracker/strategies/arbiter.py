"""Strategy arbiter: run every registered strategy against an event and pick at most one."""

from dataclasses import dataclass, field

from alphatracker.core.types import (
    PerformanceStats,
    StrategyKind,
    TradeEvaluation,
    TransactionEvent,
    Wallet,
)
from alphatracker.logging import get_logger, log_exception
from alphatracker.portfolio.performance import performance_score
from alphatracker.strategies.registry import StrategyRegistry

logger = get_logger(__name__)

# Multipliers applied to a candidate's size when ranking. Kept exactly as tuned.
SPECIFICITY_WEIGHTS: dict[StrategyKind, float] = {
    StrategyKind.SMART_MONEY: 2.0,
    StrategyKind.EARLY_GEM: 1.5,
    StrategyKind.MEMECOIN: 1.3,
    StrategyKind.COPY_TRADE: 0.8,
    StrategyKind.VOLUME_BREAKOUT: 1.0,
    StrategyKind.ARBITRAGE: 1.0,
}
SMART_MONEY_LARGE_TRADE_USD = 5000.0

PERFORMANCE_WEIGHT = 0.4
ELIGIBILITY_WEIGHT = 0.6
_TIE_EPSILON = 1e-9


def specificity_weight(kind: StrategyKind, event: TransactionEvent) -> float:
    """Ranking weight for a strategy on this event.

    Smart money only earns its premium on large trades.
    """
    if kind == StrategyKind.SMART_MONEY:
        value = event.trade_value() or 0.0
        return SPECIFICITY_WEIGHTS[kind] if value >= SMART_MONEY_LARGE_TRADE_USD else 1.0
    return SPECIFICITY_WEIGHTS.get(kind, 1.0)


@dataclass
class Candidate:
    """A strategy that wants the trade, with its ranking score."""

    evaluation: TradeEvaluation
    score: float
    eligibility_score: float | None = None
    performance_score: float | None = None

    @property
    def strategy(self) -> StrategyKind:
        return self.evaluation.strategy

    @property
    def position_size(self) -> float:
        return self.evaluation.position_size


@dataclass
class ArbiterDecision:
    selected: Candidate | None
    reason: str
    candidates: list[Candidate] = field(default_factory=list)
    evaluations: list[TradeEvaluation] = field(default_factory=list)
    size_multiplier: float = 1.0

    @property
    def should_trade(self) -> bool:
        return self.selected is not None


class StrategyArbiter:
    """Scores strategy candidates for one event and selects the best.

    In the default mode the score is ``position_size x specificity_weight``.
    In adaptive mode it is ``0.4 x performance_score + 0.6 x eligibility_score``,
    the winner must clear ``score_floor``, and its size is rescaled by a
    capital-health multiplier.
    """

    def __init__(
        self,
        registry: StrategyRegistry,
        adaptive: bool = False,
        score_floor: float = 30.0,
    ) -> None:
        """Initialize the arbiter."""
        self._registry = registry
        self.adaptive = adaptive
        self._score_floor = score_floor

    def evaluate_all(self, event: TransactionEvent, wallet: Wallet) -> list[TradeEvaluation]:
        """Run every strategy. A strategy that raises counts as a rejection."""
        results: list[TradeEvaluation] = []
        for strategy in self._registry:
            try:
                results.append(strategy.evaluate_trade(event, wallet))
            except Exception as e:
                log_exception(logger, e, {"strategy": strategy.name, "tx": event.tx_hash})
                results.append(TradeEvaluation.reject(strategy.kind, f"Evaluation error: {e}"))
        return results

    def select(
        self, event: TransactionEvent, wallet: Wallet, portfolio_roi: float = 0.0
    ) -> ArbiterDecision:
        """Pick at most one strategy for ``event``."""
        evaluations = self.evaluate_all(event, wallet)
        accepted = [e for e in evaluations if e.should_copy]
        if not accepted:
            return ArbiterDecision(None, "No strategy accepted the trade", evaluations=evaluations)

        if self.adaptive:
            return self._select_adaptive(event, wallet, accepted, evaluations, portfolio_roi)

        candidates = [
            Candidate(evaluation=e, score=e.position_size * specificity_weight(e.strategy, event))
            for e in accepted
        ]
        return self._pick(candidates, evaluations, floor=0.0)

    def _pick(
        self,
        candidates: list[Candidate],
        evaluations: list[TradeEvaluation],
        floor: float,
    ) -> ArbiterDecision:
        ranked = sorted(candidates, key=lambda c: c.score, reverse=True)
        best = ranked[0]
        if best.score <= floor:
            return ArbiterDecision(
                None,
                f"Best score {best.score:.2f} from {best.strategy.value} not above {floor:g}",
                candidates=ranked,
                evaluations=evaluations,
            )
        if len(ranked) > 1 and abs(ranked[1].score - best.score) <= _TIE_EPSILON:
            tied = [c.strategy.value for c in ranked if abs(c.score - best.score) <= _TIE_EPSILON]
            return ArbiterDecision(
                None,
                f"Tie between {', '.join(tied)} at score {best.score:.2f}",
                candidates=ranked,
                evaluations=evaluations,
            )
        return ArbiterDecision(
            best,
            f"{best.strategy.value} selected (score {best.score:.2f}): {best.evaluation.reason}",
            candidates=ranked,
            evaluations=evaluations,
        )

    def _select_adaptive(
        self,
        event: TransactionEvent,
        wallet: Wallet,
        accepted: list[TradeEvaluation],
        evaluations: list[TradeEvaluation],
        portfolio_roi: float,
    ) -> ArbiterDecision:
        candidates: list[Candidate] = []
        stats_by_kind: dict[StrategyKind, PerformanceStats] = {}
        for evaluation in accepted:
            strategy = self._registry.get(evaluation.strategy)
            stats = strategy.get_performance()
            stats_by_kind[evaluation.strategy] = stats
            perf = performance_score(stats)
            elig = strategy.eligibility_score(event, wallet)
            candidates.append(
                Candidate(
                    evaluation=evaluation,
                    score=PERFORMANCE_WEIGHT * perf + ELIGIBILITY_WEIGHT * elig,
                    eligibility_score=elig,
                    performance_score=perf,
                )
            )

        decision = self._pick(candidates, evaluations, floor=self._score_floor)
        if decision.selected is None:
            return decision

        winner = decision.selected
        multiplier = self.capital_health_multiplier(
            stats_by_kind[winner.strategy], wallet, portfolio_roi
        )
        original = winner.evaluation.position_size
        resized = min(original * multiplier, winner.evaluation.available_capital)
        winner.evaluation = winner.evaluation.model_copy(
            update={
                "position_size": max(0.0, resized),
                "reason": f"Adaptive: {winner.evaluation.reason}",
            }
        )
        decision.size_multiplier = multiplier
        if multiplier != 1.0:
            logger.debug(
                f"Adaptive size for {winner.strategy.value}: "
                f"${original:.2f} x {multiplier:.2f} -> ${winner.position_size:.2f}"
            )
        return decision

    @staticmethod
    def capital_health_multiplier(
        stats: PerformanceStats, wallet: Wallet, portfolio_roi: float
    ) -> float:
        """Size multiplier from strategy ROI/win rate, wallet win rate and portfolio ROI."""
        multiplier = 1.0
        if stats.roi > 20 and stats.win_rate > 0.60:
            multiplier = 1.3
        elif stats.roi > 10 and stats.win_rate > 0.55:
            multiplier = 1.15
        elif stats.total_trades > 0 and (stats.roi < -10 or stats.win_rate < 0.40):
            multiplier = 0.7

        if wallet.win_rate is not None:
            if wallet.win_rate >= 0.70:
                multiplier *= 1.1
            elif wallet.win_rate < 0.50:
                multiplier *= 0.8

        if portfolio_roi < -15:
            multiplier *= 0.5
        return multiplier
