"""Pre-trade risk gate.

Runs a fixed sequence of independent checks over a proposed trade and the
current portfolio snapshot. Every check is evaluated (no short-circuit) so a
rejection carries all failing reasons. Evaluating has no side effects.
"""

from alphatracker.config import RiskLimits
from alphatracker.core.types import PortfolioState, RiskCheck, RiskDecision, TradeProposal
from alphatracker.logging import get_logger

logger = get_logger(__name__)


class RiskGate:
    """Approves or rejects proposed trades against portfolio-wide limits."""

    def __init__(self, limits: RiskLimits) -> None:
        """Initialize the risk gate."""
        self.limits = limits

    @property
    def emergency_stop(self) -> bool:
        return self.limits.emergency_stop

    def set_emergency_stop(self, active: bool) -> None:
        """Toggle the emergency stop. While active every trade is rejected."""
        self.limits = self.limits.model_copy(update={"emergency_stop": active})
        if active:
            logger.warning("Emergency stop ACTIVATED - all new trades will be rejected")
        else:
            logger.info("Emergency stop deactivated")

    def check(self, proposal: TradeProposal, state: PortfolioState) -> RiskDecision:
        """Run every check. Approved only if all pass."""
        checks = [
            self._check_position_size(proposal, state),
            self._check_drawdown(state),
            self._check_daily_loss(state),
            self._check_token_exposure(proposal, state),
            self._check_chain_exposure(proposal, state),
            self._check_emergency_stop(),
            self._check_available_capital(proposal, state),
            self._check_open_positions(state),
        ]
        failed = [c for c in checks if not c.passed]
        if failed:
            return RiskDecision(
                approved=False,
                reason="; ".join(c.reason for c in failed),
                checks=checks,
            )
        return RiskDecision(approved=True, reason="All risk checks passed", checks=checks)

    def _check_position_size(self, proposal: TradeProposal, state: PortfolioState) -> RiskCheck:
        limit = state.current_capital * self.limits.max_position_size
        passed = proposal.size_usd <= limit
        return RiskCheck(
            name="position_size",
            passed=passed,
            reason=(
                "Position size within limits"
                if passed
                else f"Position size ${proposal.size_usd:.2f} exceeds maximum ${limit:.2f}"
            ),
            value=proposal.size_usd,
            limit=limit,
        )

    def _check_drawdown(self, state: PortfolioState) -> RiskCheck:
        drawdown = state.drawdown
        passed = drawdown <= self.limits.max_drawdown
        return RiskCheck(
            name="drawdown",
            passed=passed,
            reason=(
                "Drawdown within limits"
                if passed
                else f"Drawdown {drawdown * 100:.1f}% exceeds limit {self.limits.max_drawdown * 100:.1f}%"
            ),
            value=drawdown,
            limit=self.limits.max_drawdown,
        )

    def _check_daily_loss(self, state: PortfolioState) -> RiskCheck:
        limit = self.limits.max_daily_loss * state.starting_capital
        loss = state.realized_loss_today
        passed = loss <= limit
        return RiskCheck(
            name="daily_loss",
            passed=passed,
            reason=(
                "Daily loss within limits"
                if passed
                else f"Daily loss ${loss:.2f} exceeds limit ${limit:.2f}"
            ),
            value=loss,
            limit=limit,
        )

    def _check_token_exposure(self, proposal: TradeProposal, state: PortfolioState) -> RiskCheck:
        key = PortfolioState.token_key(proposal.chain, proposal.token_address)
        after = (state.token_exposure.get(key, 0.0) + proposal.size_usd) / state.starting_capital
        limit = self.limits.max_token_exposure
        passed = after <= limit
        return RiskCheck(
            name="token_exposure",
            passed=passed,
            reason=(
                "Token exposure within limits"
                if passed
                else f"Exposure to {proposal.token_symbol} would reach {after * 100:.1f}% "
                f"(limit {limit * 100:.0f}%)"
            ),
            value=after,
            limit=limit,
        )

    def _check_chain_exposure(self, proposal: TradeProposal, state: PortfolioState) -> RiskCheck:
        after = (state.chain_exposure.get(proposal.chain, 0.0) + proposal.size_usd) / state.starting_capital
        limit = self.limits.max_chain_exposure
        passed = after <= limit
        return RiskCheck(
            name="chain_exposure",
            passed=passed,
            reason=(
                "Chain exposure within limits"
                if passed
                else f"Chain exposure {after * 100:.1f}% too high on {proposal.chain} "
                f"(limit {limit * 100:.0f}%)"
            ),
            value=after,
            limit=limit,
        )

    def _check_emergency_stop(self) -> RiskCheck:
        active = self.limits.emergency_stop
        return RiskCheck(
            name="emergency_stop",
            passed=not active,
            reason="Emergency stop is ACTIVE - all trading paused" if active else "Emergency stop inactive",
        )

    def _check_available_capital(self, proposal: TradeProposal, state: PortfolioState) -> RiskCheck:
        available = state.available_capital
        passed = proposal.size_usd <= available
        return RiskCheck(
            name="available_capital",
            passed=passed,
            reason=(
                "Sufficient capital"
                if passed
                else f"Insufficient capital: ${available:.2f} available, ${proposal.size_usd:.2f} requested"
            ),
            value=proposal.size_usd,
            limit=available,
        )

    def _check_open_positions(self, state: PortfolioState) -> RiskCheck:
        limit = self.limits.max_open_positions
        passed = state.open_position_count < limit
        return RiskCheck(
            name="open_positions",
            passed=passed,
            reason=(
                "Open positions within limits"
                if passed
                else f"Max open positions ({limit}) reached"
            ),
            value=float(state.open_position_count),
            limit=float(limit),
        )
