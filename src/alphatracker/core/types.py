"""Core types and data models."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


def utcnow() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(UTC)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class StrategyKind(str, Enum):
    """Closed set of strategy variants."""

    COPY_TRADE = "copy_trade"
    SMART_MONEY = "smart_money"
    VOLUME_BREAKOUT = "volume_breakout"
    ARBITRAGE = "arbitrage"
    MEMECOIN = "memecoin"
    EARLY_GEM = "early_gem"


class WalletStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    ARCHIVED = "archived"


class TradeAction(str, Enum):
    BUY = "buy"
    SELL = "sell"


class PositionStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class Confidence(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ExitType(str, Enum):
    """Why a position was (partially) exited."""

    STOP_LOSS = "stop_loss"
    TAKE_PROFIT = "take_profit"
    TAKE_PROFIT_TIER = "take_profit_tier"
    TRAILING_STOP = "trailing_stop"
    TIME_DECAY = "time_decay"
    WALLET_EXIT = "wallet_exit"
    STAGNATION = "stagnation"
    TREND_REVERSAL = "trend_reversal"
    MANUAL = "manual"


class Wallet(BaseModel):
    """Read-only view of a tracked wallet owned by the external registry."""

    address: str
    chain: str
    strategy_type: StrategyKind | None = None
    win_rate: float | None = Field(default=None, ge=0.0, le=1.0)
    total_pnl: float = 0.0
    total_trades: int = Field(default=0, ge=0)
    winning_trades: int = Field(default=0, ge=0)
    status: WalletStatus = WalletStatus.ACTIVE

    @property
    def is_active(self) -> bool:
        return self.status == WalletStatus.ACTIVE


class TransactionEvent(BaseModel):
    """Normalized buy/sell observed on-chain for a tracked wallet."""

    wallet_address: str
    chain: str
    token_address: str
    token_symbol: str = "UNKNOWN"
    action: TradeAction
    amount: float = Field(ge=0.0)
    price_usd: float | None = None
    total_value_usd: float | None = None
    timestamp: datetime = Field(default_factory=utcnow)
    tx_hash: str

    @field_validator("chain")
    @classmethod
    def normalize_chain(cls, v: str) -> str:
        return v.lower()

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        return _as_utc(v)

    @property
    def dedup_key(self) -> str:
        """Identity used to refuse redelivered events."""
        return f"{self.wallet_address}_{self.tx_hash}"

    def effective_price(self) -> float | None:
        """Unit price from the event, or derived from value / amount."""
        if self.price_usd is not None and self.price_usd > 0:
            return self.price_usd
        if self.total_value_usd and self.total_value_usd > 0 and self.amount > 0:
            return self.total_value_usd / self.amount
        return None

    def trade_value(self) -> float | None:
        """USD value of the source trade, when it can be known."""
        if self.total_value_usd is not None and self.total_value_usd > 0:
            return self.total_value_usd
        if self.price_usd is not None and self.price_usd > 0 and self.amount > 0:
            return self.price_usd * self.amount
        return None


class Position(BaseModel):
    """A paper trade. Mutated only by the position ledger."""

    position_id: str
    token_address: str
    token_symbol: str
    chain: str
    strategy: StrategyKind
    source_wallet: str
    source_event_key: str | None = None
    entry_price: float = Field(gt=0.0)
    amount: float = Field(ge=0.0)
    entry_value_usd: float = Field(gt=0.0)
    status: PositionStatus = PositionStatus.OPEN
    exit_price: float | None = None
    exit_value_usd: float | None = None
    pnl: float | None = None
    pnl_pct: float | None = None
    exit_reason: str | None = None
    exit_type: ExitType | None = None
    notes: str = ""
    peak_price: float | None = None
    sold_fraction: float = 0.0
    realized_proceeds_usd: float = 0.0
    entry_time: datetime = Field(default_factory=utcnow)
    exit_time: datetime | None = None

    @field_validator("entry_time", "exit_time")
    @classmethod
    def normalize_times(cls, v: datetime | None) -> datetime | None:
        return _as_utc(v) if v is not None else None

    @property
    def is_open(self) -> bool:
        return self.status == PositionStatus.OPEN

    def annotations(self) -> set[str]:
        """Annotation tokens recorded on the position."""
        return {token.strip() for token in self.notes.split("|") if token.strip()}

    def has_annotation(self, token: str) -> bool:
        return token in self.annotations()

    def price_change(self, current_price: float) -> float:
        """Fractional change from entry (0.25 means +25%)."""
        return (current_price - self.entry_price) / self.entry_price

    def hours_held(self, now: datetime) -> float:
        return (_as_utc(now) - self.entry_time).total_seconds() / 3600.0


class TradeEvaluation(BaseModel):
    """Outcome of one strategy evaluating one event."""

    strategy: StrategyKind
    should_copy: bool
    position_size: float = 0.0
    reason: str
    confidence: Confidence | None = None
    available_capital: float = 0.0

    @classmethod
    def reject(
        cls, strategy: StrategyKind, reason: str, available_capital: float = 0.0
    ) -> "TradeEvaluation":
        return cls(
            strategy=strategy,
            should_copy=False,
            reason=reason,
            available_capital=available_capital,
        )


class ExitDecision(BaseModel):
    """Whether (and how much of) a position should be sold."""

    should_exit: bool = False
    sell_fraction: float = Field(default=1.0, gt=0.0, le=1.0)
    reason: str = ""
    exit_type: ExitType | None = None
    note: str | None = None

    @classmethod
    def hold(cls) -> "ExitDecision":
        return cls(should_exit=False)

    @classmethod
    def full(cls, exit_type: ExitType, reason: str) -> "ExitDecision":
        return cls(should_exit=True, sell_fraction=1.0, reason=reason, exit_type=exit_type)

    @property
    def is_partial(self) -> bool:
        return self.should_exit and self.sell_fraction < 1.0


class PriceQuote(BaseModel):
    price: float
    source: str
    timestamp: datetime = Field(default_factory=utcnow)


class TokenInfo(BaseModel):
    """Token metadata used by age/liquidity checks."""

    token_address: str
    chain: str
    created_at: datetime | None = None
    initial_liquidity_usd: float | None = None

    @field_validator("created_at")
    @classmethod
    def normalize_created_at(cls, v: datetime | None) -> datetime | None:
        return _as_utc(v) if v is not None else None


class PerformanceStats(BaseModel):
    """Aggregates over closed positions."""

    strategy: str
    total_trades: int = 0
    wins: int = 0
    losses: int = 0
    win_rate: float = 0.0
    avg_win: float = 0.0
    avg_loss: float = 0.0
    total_pnl: float = 0.0
    biggest_win: float = 0.0
    biggest_loss: float = 0.0
    profit_factor: float = 0.0
    allocation: float = 0.0
    current_capital: float = 0.0
    roi: float = 0.0
    open_positions: int = 0
    # Suggested allocation per strategy; only filled on the adaptive portfolio view
    rebalance_recommendations: dict[str, float] = Field(default_factory=dict)


class ExitStats(BaseModel):
    """Closed positions grouped by how they were exited."""

    exit_type: str
    count: int
    avg_pnl: float
    total_pnl: float


class PortfolioState(BaseModel):
    """Snapshot of the portfolio used by the risk gate."""

    starting_capital: float = Field(gt=0.0)
    current_capital: float
    realized_pnl: float = 0.0
    open_exposure: float = 0.0
    open_position_count: int = 0
    token_exposure: dict[str, float] = Field(default_factory=dict)
    chain_exposure: dict[str, float] = Field(default_factory=dict)
    realized_loss_today: float = 0.0

    @property
    def available_capital(self) -> float:
        return self.current_capital - self.open_exposure

    @property
    def drawdown(self) -> float:
        return max(0.0, (self.starting_capital - self.current_capital) / self.starting_capital)

    @staticmethod
    def token_key(chain: str, token_address: str) -> str:
        return f"{chain}:{token_address}"


class TradeProposal(BaseModel):
    """A sized trade awaiting risk approval."""

    strategy: StrategyKind
    chain: str
    token_address: str
    token_symbol: str = "UNKNOWN"
    size_usd: float = Field(ge=0.0)


class RiskCheck(BaseModel):
    name: str
    passed: bool
    reason: str
    value: float | None = None
    limit: float | None = None


class RiskDecision(BaseModel):
    approved: bool
    reason: str
    checks: list[RiskCheck] = Field(default_factory=list)

    @property
    def failed_checks(self) -> list[RiskCheck]:
        return [c for c in self.checks if not c.passed]


class RiskStatus(BaseModel):
    """Coarse portfolio risk summary."""

    level: str
    score: int
    drawdown: float
    capital_utilization: float
    open_positions: int = 0
    emergency_stop: bool = False
    metrics: dict[str, float] = Field(default_factory=dict)


class EventType(str, Enum):
    """Lifecycle notifications published on the event bus."""

    TRANSACTION = "transaction"
    POSITION_OPENED = "position_opened"
    POSITION_PARTIAL_EXIT = "position_partial_exit"
    POSITION_CLOSED = "position_closed"
    RISK_BLOCKED = "risk_blocked"
    EMERGENCY_STOP = "emergency_stop"
    ERROR = "error"


@dataclass
class Event:
    """Base event structure."""

    event_type: EventType
    timestamp: datetime = field(default_factory=utcnow)
    data: dict[str, Any] = field(default_factory=dict)
