"""Portfolio risk metrics and the coarse risk level derived from them."""

from collections.abc import Iterable

import numpy as np

from alphatracker.core.types import PortfolioState, Position, RiskStatus

# Per-trade Sharpe is annualised as if one trade closed per trading day
TRADING_DAYS = 252


def compute_risk_metrics(closed: Iterable[Position], starting_capital: float) -> dict[str, float]:
    """Return-based metrics over closed positions ordered by entry time.

    ``max_drawdown`` is the deepest fall of running capital from its peak.
    """
    trades = sorted(closed, key=lambda p: p.entry_time)
    if not trades:
        return {
            "sharpe_ratio": 0.0,
            "max_drawdown": 0.0,
            "volatility": 0.0,
            "avg_return": 0.0,
            "total_return": 0.0,
        }

    returns = np.array([(p.pnl_pct or 0.0) / 100 for p in trades], dtype=float)
    avg_return = float(returns.mean())
    volatility = float(returns.std())
    sharpe = float(avg_return / volatility * np.sqrt(TRADING_DAYS)) if volatility > 0 else 0.0

    pnls = np.array([p.pnl or 0.0 for p in trades], dtype=float)
    running = starting_capital + np.cumsum(pnls)
    peaks = np.maximum.accumulate(np.concatenate(([starting_capital], running)))[1:]
    drawdowns = (peaks - running) / peaks
    max_drawdown = float(np.clip(drawdowns, 0.0, None).max())

    return {
        "sharpe_ratio": sharpe,
        "max_drawdown": max_drawdown,
        "volatility": volatility,
        "avg_return": avg_return,
        "total_return": float(pnls.sum()) / starting_capital,
    }


def compute_risk_status(
    state: PortfolioState,
    metrics: dict[str, float],
    win_rate: float,
    emergency_stop: bool = False,
) -> RiskStatus:
    """Score portfolio risk 0-100 and bucket it into low / medium / high."""
    utilization = state.open_exposure / state.current_capital if state.current_capital > 0 else 1.0

    score = 0
    if metrics.get("max_drawdown", 0.0) > 0.20:
        score += 30
    if utilization > 0.80:
        score += 25
    if metrics.get("volatility", 0.0) > 0.30:
        score += 20
    if win_rate < 0.50:
        score += 25

    if score >= 70:
        level = "high"
    elif score >= 40:
        level = "medium"
    else:
        level = "low"

    return RiskStatus(
        level=level,
        score=score,
        drawdown=state.drawdown,
        capital_utilization=utilization,
        open_positions=state.open_position_count,
        emergency_stop=emergency_stop,
        metrics=metrics,
    )
