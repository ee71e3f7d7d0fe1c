"""Paper trading engine: event intake, trade decisions and position management."""

import asyncio
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta
from typing import Any

from alphatracker.config import AlphaTrackerSettings, RiskLimits, StrategyConfig, settings
from alphatracker.core.activity import ActivityLog
from alphatracker.core.bus import EventBus
from alphatracker.core.interfaces import PriceSource, TokenInfoSource, WalletRegistry
from alphatracker.core.types import (
    Event,
    EventType,
    ExitStats,
    PerformanceStats,
    PortfolioState,
    Position,
    RiskStatus,
    StrategyKind,
    TradeAction,
    TradeProposal,
    TransactionEvent,
    utcnow,
)
from alphatracker.logging import (
    clear_trading_context,
    get_logger,
    log_exception,
    set_trading_context,
)
from alphatracker.observability.metrics import metrics
from alphatracker.portfolio.exits import ExitEvaluator
from alphatracker.portfolio.ledger import PositionLedger
from alphatracker.portfolio.performance import (
    compute_exit_stats,
    compute_performance,
    rebalance_allocations,
)
from alphatracker.portfolio.state import build_portfolio_state
from alphatracker.risk.gate import RiskGate
from alphatracker.risk.status import compute_risk_metrics, compute_risk_status
from alphatracker.strategies.arbiter import StrategyArbiter
from alphatracker.strategies.registry import StrategyRegistry

logger = get_logger(__name__)


class PaperTradingEngine:
    """Turns observed wallet activity into paper positions and manages their exits.

    ``process_events`` runs the entry pipeline per event:
    dedup -> activity record -> wallet lookup -> arbiter -> risk gate ->
    entry price -> ledger open. ``manage_positions`` runs the exit evaluator
    over every open position and applies its decisions through the ledger.
    """

    def __init__(
        self,
        price_source: PriceSource,
        wallets: WalletRegistry,
        token_info: TokenInfoSource | None = None,
        ledger: PositionLedger | None = None,
        activity: ActivityLog | None = None,
        strategy_configs: dict[StrategyKind, StrategyConfig] | None = None,
        enabled_strategies: set[StrategyKind] | None = None,
        risk_limits: RiskLimits | None = None,
        starting_capital: float | None = None,
        adaptive: bool | None = None,
        bus: EventBus | None = None,
        clock: Callable[[], datetime] = utcnow,
        config: AlphaTrackerSettings | None = None,
    ) -> None:
        """Initialize the engine and build its components."""
        cfg = config or settings
        self._config = cfg
        self._prices = price_source
        self._wallets = wallets
        self._bus = bus
        self._clock = clock

        self.ledger = ledger or PositionLedger(dedup_capacity=cfg.dedup_cache_size, clock=clock)
        self.activity = activity or ActivityLog(
            max_tokens=cfg.activity_max_tokens,
            max_wallets=cfg.activity_max_wallets,
            max_events_per_key=cfg.activity_max_events_per_key,
            retention=timedelta(hours=cfg.activity_retention_hours),
        )
        self.registry = StrategyRegistry.build(
            self.ledger,
            self.activity,
            token_info=token_info,
            configs=strategy_configs,
            enabled=enabled_strategies,
            clock=clock,
        )
        self.arbiter = StrategyArbiter(
            self.registry,
            adaptive=cfg.adaptive_mode if adaptive is None else adaptive,
            score_floor=cfg.adaptive_score_floor,
        )
        self.gate = RiskGate(risk_limits or cfg.risk_limits())
        self.exits = ExitEvaluator(
            self.registry,
            self.ledger,
            self.activity,
            stagnation_hours=cfg.stagnation_hours,
            stagnation_min_move=cfg.stagnation_min_move,
            reversal_sellers=cfg.trend_reversal_sell_count,
            reversal_window=timedelta(seconds=cfg.trend_reversal_window_seconds),
            clock=clock,
        )

        stored = self.ledger.get_state("total_capital")
        if starting_capital is not None:
            self.starting_capital = starting_capital
        elif stored is not None:
            self.starting_capital = float(stored)
        else:
            self.starting_capital = cfg.initial_capital
        self.ledger.set_state("total_capital", str(self.starting_capital))
        if self.ledger.get_state("emergency_stop") == "true":
            self.gate.set_emergency_stop(True)
            logger.warning("Emergency stop restored from storage; new trades are blocked")

    # ------------------------------------------------------------------
    # Entry pipeline
    # ------------------------------------------------------------------

    async def process_events(
        self, events: Iterable[TransactionEvent], concurrency: int | None = None
    ) -> int:
        """Process a batch of events. Returns the number of positions opened.

        Events already processed (by wallet + tx hash), or repeated within the
        batch, are dropped before anything else. Every fresh event is recorded
        in the activity log, sells included. An event is marked processed only
        once its evaluation completes; a failing event is logged, does not
        affect the rest of the batch, and is evaluated again if redelivered.

        With ``concurrency > 1`` events are evaluated concurrently. Capital
        checks then read portfolio state that other in-flight events have not
        yet written, so a strategy can end up above its allocation.
        """
        concurrency = concurrency or self._config.event_concurrency

        fresh: list[TransactionEvent] = []
        batch_keys: set[str] = set()
        for event in events:
            key = event.dedup_key
            if key in batch_keys or self.ledger.is_processed(key):
                metrics.increment("events_duplicate")
                continue
            batch_keys.add(key)
            self.activity.record(event)
            fresh.append(event)
        metrics.increment("events_processed", len(fresh))

        if concurrency <= 1:
            opened = 0
            for event in fresh:
                if await self._process_event(event):
                    opened += 1
        else:
            semaphore = asyncio.Semaphore(concurrency)

            async def _bounded(ev: TransactionEvent) -> bool:
                async with semaphore:
                    return await self._process_event(ev)

            results = await asyncio.gather(*(_bounded(e) for e in fresh))
            opened = sum(1 for r in results if r)

        self.ledger.set_state("last_trade_execution", self._clock().isoformat())
        if fresh:
            logger.info(f"Processed {len(fresh)} events, opened {opened} positions")
        return opened

    async def _process_event(self, event: TransactionEvent) -> bool:
        set_trading_context(wallet=event.wallet_address, token=event.token_symbol)
        try:
            opened = await self._evaluate_event(event)
        except Exception as e:
            metrics.increment("event_errors")
            log_exception(logger, e, {"tx": event.tx_hash})
            return False
        else:
            self.ledger.mark_processed(event.dedup_key)
            return opened
        finally:
            clear_trading_context()

    async def _evaluate_event(self, event: TransactionEvent) -> bool:
        if event.action != TradeAction.BUY:
            return False

        wallet = await self._wallets.get_wallet(event.wallet_address)
        if wallet is None or not wallet.is_active:
            logger.debug(f"Skipping event from unknown or inactive wallet {event.wallet_address}")
            return False

        decision = self.arbiter.select(event, wallet, portfolio_roi=self.portfolio_roi())
        if not decision.should_trade:
            logger.debug(f"No trade for {event.tx_hash}: {decision.reason}")
            return False

        candidate = decision.selected
        set_trading_context(strategy=candidate.strategy.value)
        metrics.increment_labeled("candidates_selected", candidate.strategy.value)
        proposal = TradeProposal(
            strategy=candidate.strategy,
            chain=event.chain,
            token_address=event.token_address,
            token_symbol=event.token_symbol,
            size_usd=candidate.position_size,
        )
        risk = self.gate.check(proposal, self.portfolio_state())
        if not risk.approved:
            metrics.increment("risk_rejections")
            metrics.increment_labeled("risk_rejections", candidate.strategy.value)
            logger.info(f"Risk gate rejected {event.token_symbol}: {risk.reason}")
            await self._publish(
                EventType.RISK_BLOCKED,
                {"tx_hash": event.tx_hash, "strategy": candidate.strategy.value, "reason": risk.reason},
            )
            return False

        entry_price = await self.resolve_entry_price(event)
        position = self.ledger.open(event, wallet, candidate.evaluation, entry_price)
        metrics.increment("trades_opened")
        metrics.increment_labeled("trades_opened", candidate.strategy.value)
        await self._publish(EventType.POSITION_OPENED, {"position": position})
        return True

    async def resolve_entry_price(self, event: TransactionEvent) -> float:
        """Event price, then the price source, then value / amount, then the chain floor."""
        if event.price_usd is not None and event.price_usd > 0:
            return event.price_usd

        try:
            quote = await self._prices.get_price(event.token_address, event.chain)
            if quote is not None and quote.price > 0:
                return quote.price
        except Exception as e:
            logger.warning(f"Price lookup failed for {event.token_symbol} on {event.chain}: {e}")

        derived = event.effective_price()
        if derived is not None:
            return derived

        floor = self._config.floor_price(event.chain)
        logger.warning(f"No price for {event.token_symbol}; using {event.chain} floor ${floor}")
        return floor

    # ------------------------------------------------------------------
    # Position management
    # ------------------------------------------------------------------

    async def manage_positions(self) -> dict[str, int]:
        """Evaluate every open position once and apply exit decisions."""
        now = self._clock()
        summary = {"checked": 0, "partial_exits": 0, "closed": 0, "errors": 0}

        for position in self.ledger.get_open_positions():
            summary["checked"] += 1
            set_trading_context(
                wallet=position.source_wallet,
                token=position.token_symbol,
                strategy=position.strategy.value,
            )
            try:
                price = await self.current_price(position)
                decision = self.exits.evaluate(position, price, now)
                if not decision.should_exit:
                    continue
                updated = self.ledger.apply_exit(position, price, decision)
                exit_label = decision.exit_type.value if decision.exit_type else "unspecified"
                metrics.increment_labeled("exits", exit_label)
                if updated.is_open:
                    summary["partial_exits"] += 1
                    metrics.increment("partial_exits")
                    await self._publish(EventType.POSITION_PARTIAL_EXIT, {"position": updated})
                else:
                    summary["closed"] += 1
                    metrics.increment("positions_closed")
                    await self._publish(EventType.POSITION_CLOSED, {"position": updated})
            except Exception as e:
                summary["errors"] += 1
                metrics.increment("position_errors")
                log_exception(logger, e, {"position_id": position.position_id})
            finally:
                clear_trading_context()

        self.activity.prune(now)
        metrics.set_gauge("open_positions", float(len(self.ledger.get_open_positions())))
        self.ledger.set_state("last_position_check", now.isoformat())
        return summary

    async def current_price(self, position: Position) -> float:
        """Price source quote, falling back to the entry price."""
        try:
            quote = await self._prices.get_price(position.token_address, position.chain)
            if quote is not None and quote.price > 0:
                return quote.price
        except Exception as e:
            logger.warning(f"Price lookup failed for {position.token_symbol}: {e}")
        logger.warning(f"No current price for {position.token_symbol}; using entry price")
        return position.entry_price

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def portfolio_state(self) -> PortfolioState:
        return build_portfolio_state(
            self.starting_capital,
            self.ledger.get_open_positions(),
            self.ledger.get_closed_positions(),
            now=self._clock(),
        )

    def portfolio_roi(self) -> float:
        """Realised return on starting capital, in percent."""
        return self.portfolio_state().realized_pnl / self.starting_capital * 100

    def get_performance(self, strategy: StrategyKind | None = None) -> PerformanceStats:
        """Stats for one strategy, or for the whole portfolio when ``strategy`` is None.

        In adaptive mode the portfolio view also carries allocation
        recommendations that favour strategies beating the average ROI.
        """
        if strategy is not None:
            return self.registry.get(strategy).get_performance()
        overall = compute_performance(
            "overall",
            self.ledger.get_closed_positions(),
            self.starting_capital,
            open_positions=len(self.ledger.get_open_positions()),
        )
        if self.arbiter.adaptive:
            overall.rebalance_recommendations = rebalance_allocations(self.get_all_performance())
        return overall

    def get_all_performance(self) -> dict[str, PerformanceStats]:
        return {s.name: s.get_performance() for s in self.registry}

    def get_exit_stats(self) -> list[ExitStats]:
        return compute_exit_stats(self.ledger.get_closed_positions())

    def get_risk_status(self) -> RiskStatus:
        state = self.portfolio_state()
        risk_metrics = compute_risk_metrics(self.ledger.get_closed_positions(), self.starting_capital)
        overall = self.get_performance()
        return compute_risk_status(state, risk_metrics, overall.win_rate, self.gate.emergency_stop)

    async def set_emergency_stop(self, active: bool) -> None:
        self.gate.set_emergency_stop(active)
        self.ledger.set_state("emergency_stop", "true" if active else "false")
        await self._publish(EventType.EMERGENCY_STOP, {"active": active})

    def get_stats(self) -> dict[str, Any]:
        return {
            "starting_capital": self.starting_capital,
            "ledger": self.ledger.get_stats(),
            "activity": self.activity.get_state(),
            "emergency_stop": self.gate.emergency_stop,
            "adaptive": self.arbiter.adaptive,
            "exits": [row.model_dump() for row in self.get_exit_stats()],
            "metrics": metrics.get_summary(),
        }

    async def _publish(self, event_type: EventType, data: dict[str, Any]) -> None:
        if self._bus is None:
            return
        try:
            await self._bus.publish(Event(event_type=event_type, data=data))
        except RuntimeError as e:
            logger.warning(f"Dropped {event_type.value} notification: {e}")
