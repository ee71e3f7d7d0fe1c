"""Portfolio snapshot used by the risk gate and risk status."""

from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime

from alphatracker.core.types import PortfolioState, Position, utcnow


def build_portfolio_state(
    starting_capital: float,
    open_positions: Iterable[Position],
    closed_positions: Iterable[Position],
    now: datetime | None = None,
) -> PortfolioState:
    """Summarise positions into a ``PortfolioState``.

    Current capital is starting capital plus realised P&L of closed positions.
    Exposure is measured at entry value. Today's realised loss is the net loss
    of positions closed on the current UTC date (zero when net positive).
    """
    today = (now or utcnow()).date()

    token_exposure: dict[str, float] = defaultdict(float)
    chain_exposure: dict[str, float] = defaultdict(float)
    open_exposure = 0.0
    open_count = 0
    for p in open_positions:
        open_exposure += p.entry_value_usd
        open_count += 1
        token_exposure[PortfolioState.token_key(p.chain, p.token_address)] += p.entry_value_usd
        chain_exposure[p.chain] += p.entry_value_usd

    realized = 0.0
    pnl_today = 0.0
    for p in closed_positions:
        pnl = p.pnl or 0.0
        realized += pnl
        if p.exit_time is not None and p.exit_time.date() == today:
            pnl_today += pnl

    return PortfolioState(
        starting_capital=starting_capital,
        current_capital=starting_capital + realized,
        realized_pnl=realized,
        open_exposure=open_exposure,
        open_position_count=open_count,
        token_exposure=dict(token_exposure),
        chain_exposure=dict(chain_exposure),
        realized_loss_today=max(0.0, -pnl_today),
    )
