"""Position and system-state persistence contract, with an in-memory implementation."""

from typing import Protocol

from alphatracker.core.types import Position, PositionStatus


class PositionRepository(Protocol):
    """Storage used by the position ledger. Writes are synchronous."""

    def save_position(self, position: Position) -> None:
        """Insert or replace a position row."""
        ...

    def load_positions(self, status: PositionStatus | None = None) -> list[Position]:
        """All stored positions, optionally filtered by status, in entry order."""
        ...

    def set_state(self, key: str, value: str) -> None: ...

    def get_state(self, key: str) -> str | None: ...

    def close(self) -> None: ...


class InMemoryPositionRepository:
    """Dict-backed repository; positions are stored as copies."""

    def __init__(self) -> None:
        self._positions: dict[str, Position] = {}
        self._state: dict[str, str] = {}

    def save_position(self, position: Position) -> None:
        self._positions[position.position_id] = position.model_copy(deep=True)

    def load_positions(self, status: PositionStatus | None = None) -> list[Position]:
        rows = [p.model_copy(deep=True) for p in self._positions.values()]
        if status is not None:
            rows = [p for p in rows if p.status == status]
        return sorted(rows, key=lambda p: p.entry_time)

    def set_state(self, key: str, value: str) -> None:
        self._state[key] = value

    def get_state(self, key: str) -> str | None:
        return self._state.get(key)

    def close(self) -> None:
        pass
