"""Performance aggregates over closed positions."""

from collections import defaultdict
from collections.abc import Iterable, Mapping

import numpy as np

from alphatracker.core.types import ExitStats, PerformanceStats, Position


def compute_performance(
    name: str,
    closed: Iterable[Position],
    allocation: float,
    open_positions: int = 0,
) -> PerformanceStats:
    """Aggregate closed positions into ``PerformanceStats``.

    Wins are positions with positive P&L; everything else counts as a loss.
    ROI is expressed in percent of ``allocation``.
    """
    pnls = np.array([p.pnl or 0.0 for p in closed], dtype=float)
    stats = PerformanceStats(strategy=name, allocation=allocation, current_capital=allocation,
                             open_positions=open_positions)
    if pnls.size == 0:
        return stats

    wins = pnls[pnls > 0]
    losses = pnls[pnls <= 0]
    avg_win = float(wins.mean()) if wins.size else 0.0
    avg_loss = float(abs(losses.mean())) if losses.size else 0.0
    total_pnl = float(pnls.sum())

    if avg_loss > 0:
        profit_factor = avg_win / avg_loss
    else:
        profit_factor = avg_win

    stats.total_trades = int(pnls.size)
    stats.wins = int(wins.size)
    stats.losses = int(losses.size)
    stats.win_rate = wins.size / pnls.size
    stats.avg_win = avg_win
    stats.avg_loss = avg_loss
    stats.total_pnl = total_pnl
    stats.biggest_win = float(pnls.max()) if wins.size else 0.0
    stats.biggest_loss = float(pnls.min()) if losses.size else 0.0
    stats.profit_factor = profit_factor
    stats.current_capital = allocation + total_pnl
    stats.roi = total_pnl / allocation * 100 if allocation > 0 else 0.0
    return stats


def performance_score(stats: PerformanceStats) -> float:
    """Score in [.., 100]: win rate (40) + ROI (30) + profit factor (30).

    ROI and profit factor are capped at 30 points each; a negative ROI
    subtracts from the score.
    """
    score = stats.win_rate * 40
    score += min(30.0, stats.roi / 100 * 30)
    if stats.profit_factor > 0:
        score += min(30.0, stats.profit_factor / 3 * 30)
    return score


def compute_exit_stats(closed: Iterable[Position]) -> list[ExitStats]:
    """Count, average and total P&L of closed positions per exit type, most frequent first."""
    grouped: dict[str, list[float]] = defaultdict(list)
    for position in closed:
        if position.exit_type is None:
            continue
        grouped[position.exit_type.value].append(position.pnl or 0.0)

    rows = [
        ExitStats(
            exit_type=exit_type,
            count=len(pnls),
            avg_pnl=float(np.mean(pnls)),
            total_pnl=float(np.sum(pnls)),
        )
        for exit_type, pnls in grouped.items()
    ]
    return sorted(rows, key=lambda row: row.count, reverse=True)


def rebalance_allocations(
    stats: Mapping[str, PerformanceStats],
    threshold: float = 10.0,
    boost: float = 1.2,
    cut: float = 0.8,
) -> dict[str, float]:
    """Suggested allocations that shift capital toward outperforming strategies.

    A strategy whose ROI is more than ``threshold`` points above the average
    ROI of all strategies gets ``allocation x boost``; more than ``threshold``
    below gets ``allocation x cut``; the rest keep their allocation.
    """
    if not stats:
        return {}
    avg_roi = float(np.mean([s.roi for s in stats.values()]))

    recommendations: dict[str, float] = {}
    for name, perf in stats.items():
        allocation = perf.allocation
        if perf.roi > avg_roi + threshold:
            allocation *= boost
        elif perf.roi < avg_roi - threshold:
            allocation *= cut
        recommendations[name] = allocation
    return recommendations
