"""Early gem strategy: elite wallets entering freshly launched tokens."""

from dataclasses import dataclass, field
from datetime import timedelta

from alphatracker.core.types import (
    Confidence,
    Position,
    StrategyKind,
    TransactionEvent,
    Wallet,
)
from alphatracker.strategies.base import BaseStrategy


@dataclass
class RugRisk:
    score: int = 0
    factors: list[str] = field(default_factory=list)

    @property
    def level(self) -> str:
        if self.score >= 50:
            return "high"
        if self.score >= 25:
            return "medium"
        return "low"


class EarlyGemStrategy(BaseStrategy):
    kind = StrategyKind.EARLY_GEM

    def token_age_hours(self, event: TransactionEvent) -> float | None:
        """Hours since launch, or since the token was first seen; ``None`` if unknown."""
        created = None
        if self._token_info is not None:
            info = self._token_info.get_token_info(event.token_address, event.chain)
            if info is not None:
                created = info.created_at
        if created is None:
            created = self._activity.first_seen(event.chain, event.token_address)
        if created is None:
            return None
        return max(0.0, (event.timestamp - created).total_seconds() / 3600)

    def token_liquidity(self, event: TransactionEvent) -> float | None:
        if self._token_info is None:
            return None
        info = self._token_info.get_token_info(event.token_address, event.chain)
        return info.initial_liquidity_usd if info else None

    def assess_rug_risk(self, event: TransactionEvent, liquidity: float | None) -> RugRisk:
        risk = RugRisk()
        sells = self._activity.sell_count(
            event.chain, event.token_address, event.timestamp - timedelta(hours=1)
        )
        if sells > 10:
            risk.score += 30
            risk.factors.append("High sell pressure")
        if liquidity is None:
            risk.score += 20
            risk.factors.append("Unknown liquidity")
        return risk

    def check_eligibility(
        self, event: TransactionEvent, wallet: Wallet, open_positions: list[Position]
    ) -> str | None:
        cfg = self.config
        age = self.token_age_hours(event)
        if age is None:
            return "Token age unknown"
        if cfg.token_age_limit_hours is not None and age > cfg.token_age_limit_hours:
            return f"Token too old ({age:.1f}h > {cfg.token_age_limit_hours:g}h)"

        liquidity = self.token_liquidity(event)
        if liquidity is not None and cfg.min_liquidity is not None and liquidity < cfg.min_liquidity:
            return f"Insufficient liquidity (${liquidity:,.0f})"

        risk = self.assess_rug_risk(event, liquidity)
        if risk.level == "high":
            return f"High rug risk: {', '.join(risk.factors)}"
        return None

    def size_position(
        self, event: TransactionEvent, wallet: Wallet
    ) -> tuple[float, Confidence | None]:
        win_rate = wallet.win_rate or 0.0
        size = self.config.base_size
        if win_rate >= 0.80:
            size *= 1.3
        elif win_rate >= 0.75:
            size *= 1.15
        confidence = Confidence.HIGH if win_rate >= 0.75 else Confidence.MEDIUM
        return size, confidence

    def describe(self, event: TransactionEvent, wallet: Wallet) -> str:
        age = self.token_age_hours(event) or 0.0
        return (
            f"Elite wallet ({(wallet.win_rate or 0.0) * 100:.1f}% WR) entering "
            f"fresh token {event.token_symbol} ({age:.1f}h old)"
        )

    def suitability_bonus(self, event: TransactionEvent, wallet: Wallet) -> float:
        bonus = 0.0
        if (wallet.win_rate or 0.0) >= 0.60:
            bonus += 25
        if event.chain in ("base", "arbitrum"):
            bonus += 15
        return bonus
