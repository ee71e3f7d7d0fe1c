"""Structured logging setup with trading-context support.

Two output formats are supported, controlled by the ``LOG_FORMAT`` environment
variable (mapped to ``settings.log_format``):

- ``text`` (default): human-readable console output.
  Format: ``2024-01-01 12:00:00 | INFO     | alphatracker.engine
           [wallet=0xabc...] [token=PEPE] [strat=memecoin] | message``

- ``json``: one JSON object per line with fields ``timestamp``, ``level``,
  ``logger``, ``message``, ``wallet``, ``token``, ``strategy``, ``cycle``,
  ``service`` and, on exceptions, ``exc_type``/``exc_value``/``exc_trace``.

Context propagation:
  The ContextVars below are copied into every task spawned with asyncio, so a
  value bound at the start of event or position processing is carried by every
  line logged inside that coroutine. Use ``set_trading_context()`` /
  ``clear_trading_context()`` rather than touching the vars directly.
"""

import json
import logging
import sys
import traceback
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

wallet_var: ContextVar[str | None] = ContextVar("wallet", default=None)
token_var: ContextVar[str | None] = ContextVar("token", default=None)
strategy_var: ContextVar[str | None] = ContextVar("strategy", default=None)
cycle_var: ContextVar[str | None] = ContextVar("cycle", default=None)

_SERVICE_NAME = "alphatracker"


class TradingContextFilter(logging.Filter):
    """Inject the trading context into every log record.

    Absent fields are set to the empty string so aggregators can filter
    them with ``wallet != ""``.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.wallet = wallet_var.get() or ""
        record.token = token_var.get() or ""
        record.strategy = strategy_var.get() or ""
        record.cycle = cycle_var.get() or ""
        return True


class JSONFormatter(logging.Formatter):
    """Emit one JSON object per log line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "wallet": getattr(record, "wallet", ""),
            "token": getattr(record, "token", ""),
            "strategy": getattr(record, "strategy", ""),
            "cycle": getattr(record, "cycle", ""),
            "service": _SERVICE_NAME,
        }

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, exc_tb = record.exc_info
            payload["exc_type"] = exc_type.__name__ if exc_type else None
            payload["exc_value"] = str(exc_value)
            payload["exc_trace"] = traceback.format_exception(exc_type, exc_value, exc_tb)

        return json.dumps(payload, default=str)


class _TradingTextFormatter(logging.Formatter):
    """Human-readable formatter that appends only the context fields that are set."""

    _BASE_FMT = "%(asctime)s | %(levelname)-8s | %(name)s"
    _DATE_FMT = "%Y-%m-%d %H:%M:%S"

    def __init__(self) -> None:
        super().__init__(fmt=self._BASE_FMT, datefmt=self._DATE_FMT)

    def format(self, record: logging.LogRecord) -> str:
        record.message = record.getMessage()
        record.asctime = self.formatTime(record, self.datefmt)
        base = self.formatMessage(record)

        tokens: list[str] = []
        cycle = getattr(record, "cycle", "")
        wallet = getattr(record, "wallet", "")
        token = getattr(record, "token", "")
        strat = getattr(record, "strategy", "")
        if cycle:
            tokens.append(f"[cycle={cycle}]")
        if wallet:
            tokens.append(f"[wallet={wallet[:10]}]")
        if token:
            tokens.append(f"[token={token}]")
        if strat:
            tokens.append(f"[strat={strat}]")

        context_part = (" " + " ".join(tokens)) if tokens else ""
        line = f"{base}{context_part} | {record.message}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def setup_logging() -> None:
    """Configure application logging based on ``settings.log_format``.

    Safe to call more than once: a handler is only added when the root logger
    has none.
    """
    from alphatracker.config import settings

    log_level_str = settings.log_level.upper()
    log_format = settings.log_format.lower()
    log_level = getattr(logging, log_level_str, logging.INFO)

    root_logger = logging.getLogger()
    if root_logger.handlers:
        root_logger.setLevel(log_level)
        return

    root_logger.setLevel(log_level)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.addFilter(TradingContextFilter())

    if log_format == "json":
        console_handler.setFormatter(JSONFormatter())
    else:
        console_handler.setFormatter(_TradingTextFormatter())

    root_logger.addHandler(console_handler)

    logging.getLogger("duckdb").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        "Logging initialised (level=%s, format=%s)", log_level_str, log_format
    )


def set_trading_context(
    wallet: str | None = None,
    token: str | None = None,
    strategy: str | None = None,
    cycle: str | None = None,
) -> None:
    """Bind trading context into the current async context.

    Only the explicitly passed arguments are updated; omitted ones keep the
    value set by an outer frame.

    Typical usage::

        set_trading_context(wallet=event.wallet_address, token=event.token_symbol)
        try:
            ...
        finally:
            clear_trading_context()
    """
    if wallet is not None:
        wallet_var.set(wallet)
    if token is not None:
        token_var.set(token)
    if strategy is not None:
        strategy_var.set(strategy)
    if cycle is not None:
        cycle_var.set(cycle)


def clear_trading_context() -> None:
    """Clear the per-event context vars (the cycle name is left in place)."""
    wallet_var.set(None)
    token_var.set(None)
    strategy_var.set(None)


def get_logger(name: str) -> logging.Logger:
    """Return a standard ``logging.Logger`` for the given module name."""
    return logging.getLogger(name)


def log_exception(
    logger: logging.Logger,
    exc: Exception,
    context: dict[str, Any] | None = None,
) -> None:
    """Log an exception with optional structured context and its traceback."""
    context_str = f" | context={context}" if context else ""
    logger.error("Exception: %s%s", exc, context_str, exc_info=True)
