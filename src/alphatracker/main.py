"""Command line entry point: builds the storage, engine and service stack."""

import argparse
import asyncio
import json
import signal
import sys
from pathlib import Path

from pydantic import TypeAdapter

from alphatracker.config import AlphaTrackerSettings, settings
from alphatracker.core.bus import EventBus
from alphatracker.core.interfaces import (
    EventSource,
    InMemoryWalletRegistry,
    PriceSource,
    QueueEventSource,
    StaticPriceSource,
    TokenInfoSource,
    WalletRegistry,
)
from alphatracker.core.types import Event, EventType, Wallet
from alphatracker.engine import PaperTradingEngine
from alphatracker.logging import get_logger, setup_logging
from alphatracker.portfolio.ledger import PositionLedger
from alphatracker.service import TradingService
from alphatracker.storage.duckdb_store import DuckDBPositionRepository
from alphatracker.storage.repository import PositionRepository

logger = get_logger(__name__)

_WALLET_LIST = TypeAdapter(list[Wallet])


def load_wallets(path: str | None) -> InMemoryWalletRegistry:
    """Load tracked wallets from a JSON file, or start with none."""
    if not path:
        logger.warning("No wallets file configured; no wallet will be copied")
        return InMemoryWalletRegistry()
    wallets = _WALLET_LIST.validate_json(Path(path).read_text(encoding="utf-8"))
    logger.info(f"Loaded {len(wallets)} tracked wallets from {path}")
    return InMemoryWalletRegistry(wallets)


def _log_lifecycle(event: Event) -> None:
    position = event.data.get("position")
    if position is not None:
        logger.debug(f"{event.event_type.value}: {position.token_symbol} ({position.strategy.value})")


def build_service(
    config: AlphaTrackerSettings | None = None,
    repository: PositionRepository | None = None,
    price_source: PriceSource | None = None,
    wallets: WalletRegistry | None = None,
    source: EventSource | None = None,
    token_info: TokenInfoSource | None = None,
) -> TradingService:
    """Assemble the production stack. Every collaborator can be replaced."""
    cfg = config or settings
    repo = repository or DuckDBPositionRepository(cfg.duckdb_path)
    ledger = PositionLedger(repository=repo, dedup_capacity=cfg.dedup_cache_size)

    bus = EventBus()
    for event_type in (
        EventType.POSITION_OPENED,
        EventType.POSITION_PARTIAL_EXIT,
        EventType.POSITION_CLOSED,
    ):
        bus.subscribe(event_type, _log_lifecycle)

    engine = PaperTradingEngine(
        price_source or StaticPriceSource(),
        wallets or load_wallets(cfg.wallets_file),
        token_info=token_info,
        ledger=ledger,
        bus=bus,
        config=cfg,
    )
    return TradingService(engine, source or QueueEventSource(), config=cfg, bus=bus)


async def run(service: TradingService, stop_event: asyncio.Event | None = None) -> None:
    """Run both cycles until SIGINT/SIGTERM (or ``stop_event``), then shut down."""
    stop = stop_event or asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            logger.debug(f"Signal handler for {sig.name} not supported here")

    await service.start()
    try:
        await stop.wait()
        logger.info("Shutdown requested")
    finally:
        await service.stop()
        service.engine.ledger.close()


def report(service: TradingService) -> dict:
    """Performance, risk and exit breakdown from stored positions."""
    engine = service.engine
    return {
        "overall": engine.get_performance().model_dump(),
        "strategies": {name: s.model_dump() for name, s in engine.get_all_performance().items()},
        "risk": engine.get_risk_status().model_dump(),
        "exits": [row.model_dump() for row in engine.get_exit_stats()],
    }


def main() -> None:
    """Main entrypoint."""
    parser = argparse.ArgumentParser(description="alphatracker paper trading engine")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")
    subparsers.add_parser("run", help="Run the ingestion and position cycles")
    subparsers.add_parser("report", help="Print performance and risk from stored positions")
    args = parser.parse_args()

    setup_logging()

    if args.command == "run":
        service = build_service()
        try:
            asyncio.run(run(service))
        except KeyboardInterrupt:
            pass
    elif args.command == "report":
        service = build_service()
        try:
            print(json.dumps(report(service), indent=2, default=str))
        finally:
            service.engine.ledger.close()
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
