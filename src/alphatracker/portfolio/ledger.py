"""Position ledger: the only mutation path for paper trades.

Positions are created on risk approval, reduced by partial exits and
terminally closed; they are never deleted. Every mutation is written through
to the repository.
"""

import uuid
from collections.abc import Callable
from datetime import datetime
from typing import Any

from alphatracker.core.cache import DedupCache
from alphatracker.core.types import (
    ExitDecision,
    Position,
    PositionStatus,
    StrategyKind,
    TradeEvaluation,
    TransactionEvent,
    Wallet,
    utcnow,
)
from alphatracker.logging import get_logger
from alphatracker.storage.repository import InMemoryPositionRepository, PositionRepository

logger = get_logger(__name__)

_FRACTION_EPSILON = 1e-9


class LedgerError(Exception):
    """Invalid ledger operation (bad price, closed position, ...)."""


class DuplicateEventError(LedgerError):
    """The source event has already been booked."""


class PositionLedger:
    """Owns positions and the processed-event dedup cache."""

    def __init__(
        self,
        repository: PositionRepository | None = None,
        dedup_capacity: int = 10000,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the ledger, loading any positions already in the repository."""
        self._repo: PositionRepository = repository or InMemoryPositionRepository()
        self._dedup = DedupCache(dedup_capacity)
        self._clock = clock
        self._positions: dict[str, Position] = {}
        self._by_event_key: dict[str, str] = {}
        self._load()

    def _load(self) -> None:
        for position in self._repo.load_positions():
            self._positions[position.position_id] = position
            if position.source_event_key:
                self._by_event_key[position.source_event_key] = position.position_id
                self._dedup.add(position.source_event_key)
        if self._positions:
            logger.info(
                f"Loaded {len(self._positions)} positions "
                f"({len(self.get_open_positions())} open) from storage"
            )

    # ------------------------------------------------------------------
    # Dedup
    # ------------------------------------------------------------------

    def is_processed(self, event_key: str) -> bool:
        return event_key in self._dedup or event_key in self._by_event_key

    def mark_processed(self, event_key: str) -> bool:
        """Record an event key. Returns ``False`` if it was already recorded."""
        if event_key in self._by_event_key:
            return False
        return self._dedup.check_and_add(event_key)

    @property
    def dedup(self) -> DedupCache:
        return self._dedup

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_position(self, position_id: str) -> Position | None:
        return self._positions.get(position_id)

    def get_open_positions(self, strategy: StrategyKind | None = None) -> list[Position]:
        return [
            p for p in self._positions.values()
            if p.status == PositionStatus.OPEN and (strategy is None or p.strategy == strategy)
        ]

    def get_closed_positions(self, strategy: StrategyKind | None = None) -> list[Position]:
        return [
            p for p in self._positions.values()
            if p.status == PositionStatus.CLOSED and (strategy is None or p.strategy == strategy)
        ]

    def all_positions(self) -> list[Position]:
        return list(self._positions.values())

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def open(
        self,
        event: TransactionEvent,
        wallet: Wallet,
        evaluation: TradeEvaluation,
        entry_price: float,
    ) -> Position:
        """Create an open position from an approved evaluation.

        Raises:
            DuplicateEventError: the event already produced a position.
            LedgerError: non-positive entry price or size.
        """
        key = event.dedup_key
        if key in self._by_event_key:
            raise DuplicateEventError(f"Event {key} already booked as {self._by_event_key[key]}")
        if entry_price <= 0:
            raise LedgerError(f"Entry price must be positive, got {entry_price}")
        size = evaluation.position_size
        if size <= 0:
            raise LedgerError(f"Position size must be positive, got {size}")

        position = Position(
            position_id=uuid.uuid4().hex,
            token_address=event.token_address,
            token_symbol=event.token_symbol,
            chain=event.chain,
            strategy=evaluation.strategy,
            source_wallet=wallet.address,
            source_event_key=key,
            entry_price=entry_price,
            amount=size / entry_price,
            entry_value_usd=size,
            notes=f"Copied from {wallet.address[:10]}... | {evaluation.reason}",
            peak_price=entry_price,
            entry_time=self._clock(),
        )
        self._positions[position.position_id] = position
        self._by_event_key[key] = position.position_id
        self._dedup.add(key)
        self._repo.save_position(position)

        logger.info(
            f"Opened {position.strategy.value} position {position.position_id[:8]}: "
            f"{position.token_symbol} ${size:.2f} @ ${entry_price:.6g}"
        )
        return position

    def record_peak(self, position: Position, price: float) -> bool:
        """Raise the stored peak price. Returns ``True`` if it moved."""
        current = self._positions.get(position.position_id, position)
        if price <= 0 or (current.peak_price is not None and price <= current.peak_price):
            return False
        current.peak_price = price
        self._repo.save_position(current)
        return True

    def apply_exit(self, position: Position, current_price: float, decision: ExitDecision) -> Position:
        """Apply a partial or full exit.

        A partial exit (``sell_fraction < 1``) sells that fraction of the remaining
        amount and keeps the position open. ``sold_fraction`` tracks the share of
        the original amount sold so far, so it stays below 1 until the position
        closes. Only a full exit, or a partial one that would leave a negligible
        remainder, closes the position.

        Raises:
            LedgerError: unknown or closed position, or non-positive price.
        """
        current = self._positions.get(position.position_id)
        if current is None:
            raise LedgerError(f"Unknown position {position.position_id}")
        if not decision.should_exit:
            return current
        if current.status != PositionStatus.OPEN:
            raise LedgerError(f"Position {current.position_id} is already closed")
        if current_price <= 0:
            raise LedgerError(f"Exit price must be positive, got {current_price}")

        remaining_after = (1.0 - current.sold_fraction) * (1.0 - decision.sell_fraction)
        if decision.sell_fraction < 1.0 and remaining_after > _FRACTION_EPSILON:
            self._apply_partial(current, current_price, decision)
        else:
            self._apply_close(current, current_price, decision)
        self._repo.save_position(current)
        return current

    def _append_note(self, position: Position, note: str) -> None:
        position.notes = f"{position.notes} | {note}" if position.notes else note

    def _apply_partial(self, position: Position, price: float, decision: ExitDecision) -> None:
        fraction = decision.sell_fraction
        sold = position.amount * fraction
        position.amount = position.amount * (1.0 - fraction)
        position.realized_proceeds_usd += sold * price
        position.sold_fraction = 1.0 - (1.0 - position.sold_fraction) * (1.0 - fraction)
        self._append_note(position, decision.note or f"partial_exit_{fraction:g}")
        logger.info(
            f"Partial exit {fraction * 100:.0f}% of {position.token_symbol} "
            f"@ ${price:.6g}: {decision.reason}"
        )

    def _apply_close(self, position: Position, price: float, decision: ExitDecision) -> None:
        exit_value = position.realized_proceeds_usd + position.amount * price
        pnl = exit_value - position.entry_value_usd

        if decision.note:
            self._append_note(position, decision.note)
        position.exit_price = price
        position.exit_value_usd = exit_value
        position.pnl = pnl
        position.pnl_pct = pnl / position.entry_value_usd * 100
        position.exit_reason = decision.reason
        position.exit_type = decision.exit_type
        position.exit_time = self._clock()
        position.amount = 0.0
        position.sold_fraction = 1.0
        position.status = PositionStatus.CLOSED
        logger.info(
            f"Closed {position.token_symbol} ({position.strategy.value}) @ ${price:.6g}: "
            f"P&L ${pnl:+.2f} ({position.pnl_pct:+.1f}%) - {decision.reason}"
        )

    # ------------------------------------------------------------------
    # System state
    # ------------------------------------------------------------------

    def set_state(self, key: str, value: str) -> None:
        self._repo.set_state(key, value)

    def get_state(self, key: str) -> str | None:
        return self._repo.get_state(key)

    def get_stats(self) -> dict[str, Any]:
        return {
            "open": len(self.get_open_positions()),
            "closed": len(self.get_closed_positions()),
            "dedup": self._dedup.get_state(),
        }

    def close(self) -> None:
        """Release the underlying repository."""
        self._repo.close()
