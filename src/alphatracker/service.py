"""Trading service: runs the ingestion and position-management cycles on timers."""

from typing import Any

from alphatracker.config import AlphaTrackerSettings, settings
from alphatracker.core.bus import EventBus
from alphatracker.core.interfaces import EventSource
from alphatracker.core.scheduler import CycleJob
from alphatracker.core.types import utcnow
from alphatracker.engine import PaperTradingEngine
from alphatracker.logging import get_logger

logger = get_logger(__name__)


class TradingService:
    """Wires a ``PaperTradingEngine`` to an event source and two independent jobs."""

    def __init__(
        self,
        engine: PaperTradingEngine,
        source: EventSource,
        config: AlphaTrackerSettings | None = None,
        bus: EventBus | None = None,
    ) -> None:
        """Initialize the service. ``bus`` is started and stopped with the jobs."""
        cfg = config or settings
        self.engine = engine
        self._source = source
        self.bus = bus
        self.ingestion_job = CycleJob(
            "ingestion", self.run_ingestion_cycle, cfg.tracking_interval_seconds
        )
        self.position_job = CycleJob(
            "positions", self.run_position_cycle, cfg.position_interval_seconds
        )

    async def run_ingestion_cycle(self) -> int:
        """Fetch pending events and hand them to the engine."""
        events = await self._source.fetch_events()
        self.engine.ledger.set_state("last_tracking_cycle", utcnow().isoformat())
        if not events:
            return 0
        return await self.engine.process_events(events)

    async def run_position_cycle(self) -> dict[str, int]:
        summary = await self.engine.manage_positions()
        if summary["partial_exits"] or summary["closed"] or summary["errors"]:
            logger.info(
                f"Position cycle: checked={summary['checked']} partial={summary['partial_exits']} "
                f"closed={summary['closed']} errors={summary['errors']}"
            )
        return summary

    async def start(self) -> None:
        if self.bus is not None:
            await self.bus.start()
        await self.ingestion_job.start()
        await self.position_job.start()
        logger.info("Trading service started")

    async def stop(self) -> None:
        await self.ingestion_job.stop()
        await self.position_job.stop()
        if self.bus is not None:
            await self.bus.stop()
        logger.info("Trading service stopped")

    def get_status(self) -> dict[str, Any]:
        return {
            "jobs": [self.ingestion_job.get_state(), self.position_job.get_state()],
            "engine": self.engine.get_stats(),
            "risk": self.engine.get_risk_status().model_dump(),
        }
