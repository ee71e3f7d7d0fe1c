"""DuckDB-backed position repository.

Positions are written through on every ledger mutation. Each row keeps a few
queryable columns next to the full JSON document, which is what is read back.
"""

import time
from pathlib import Path

import duckdb

from alphatracker.core.types import Position, PositionStatus
from alphatracker.logging import get_logger

logger = get_logger(__name__)


class DuckDBPositionRepository:
    """Persistent storage for positions and system state using DuckDB."""

    def __init__(self, db_path: str = "data/alphatracker.duckdb") -> None:
        """Open (or create) the database at ``db_path``. ``":memory:"`` is allowed."""
        self._db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = duckdb.connect(db_path)
        self._create_tables()
        logger.info(f"DuckDB position store opened: {db_path}")

    def _create_tables(self) -> None:
        """Create tables if they don't exist."""
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS positions (
                position_id VARCHAR PRIMARY KEY,
                strategy VARCHAR,
                chain VARCHAR,
                token_address VARCHAR,
                status VARCHAR,
                entry_value_usd DOUBLE,
                pnl DOUBLE,
                entry_time DOUBLE,
                exit_time DOUBLE,
                payload VARCHAR,
                updated_at DOUBLE
            )
        """)
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS system_state (
                key VARCHAR PRIMARY KEY,
                value VARCHAR,
                updated_at DOUBLE
            )
        """)

    def save_position(self, position: Position) -> None:
        self._conn.execute(
            """
            INSERT OR REPLACE INTO positions (
                position_id, strategy, chain, token_address, status,
                entry_value_usd, pnl, entry_time, exit_time, payload, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                position.position_id,
                position.strategy.value,
                position.chain,
                position.token_address,
                position.status.value,
                position.entry_value_usd,
                position.pnl,
                position.entry_time.timestamp(),
                position.exit_time.timestamp() if position.exit_time else None,
                position.model_dump_json(),
                time.time(),
            ],
        )

    def load_positions(self, status: PositionStatus | None = None) -> list[Position]:
        if status is None:
            rows = self._conn.execute(
                "SELECT payload FROM positions ORDER BY entry_time"
            ).fetchall()
        else:
            rows = self._conn.execute(
                "SELECT payload FROM positions WHERE status = ? ORDER BY entry_time",
                [status.value],
            ).fetchall()
        return [Position.model_validate_json(row[0]) for row in rows]

    def set_state(self, key: str, value: str) -> None:
        self._conn.execute(
            "INSERT OR REPLACE INTO system_state (key, value, updated_at) VALUES (?, ?, ?)",
            [key, value, time.time()],
        )

    def get_state(self, key: str) -> str | None:
        row = self._conn.execute(
            "SELECT value FROM system_state WHERE key = ?", [key]
        ).fetchone()
        return row[0] if row else None

    def close(self) -> None:
        self._conn.close()
        logger.info("DuckDB position store closed")
