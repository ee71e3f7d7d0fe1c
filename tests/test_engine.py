"""Tests for the paper trading engine."""

import random
from datetime import timedelta

import pytest
from helpers import T0, FakeClock, make_event, make_wallet

from alphatracker.config import AlphaTrackerSettings, StrategyConfig, default_strategy_configs
from alphatracker.core.bus import EventBus
from alphatracker.core.interfaces import InMemoryWalletRegistry, StaticPriceSource
from alphatracker.core.types import (
    Event,
    EventType,
    PositionStatus,
    StrategyKind,
    TradeAction,
    Wallet,
    WalletStatus,
)
from alphatracker.engine import PaperTradingEngine
from alphatracker.observability.metrics import metrics
from alphatracker.portfolio.ledger import PositionLedger
from alphatracker.storage.repository import InMemoryPositionRepository

WALLET = "0xwallet000000001"


@pytest.fixture
def config() -> AlphaTrackerSettings:
    return AlphaTrackerSettings(_env_file=None)


@pytest.fixture
def make_engine(prices, wallets, clock, config):
    def _make(**kwargs) -> PaperTradingEngine:
        kwargs.setdefault("starting_capital", 10000.0)
        return PaperTradingEngine(prices, wallets, clock=clock, config=config, **kwargs)

    return _make


class FlakyWalletRegistry(InMemoryWalletRegistry):
    """Raises for one specific address."""

    async def get_wallet(self, address: str) -> Wallet | None:
        if address == "0xbroken":
            raise ConnectionError("registry unavailable")
        return await super().get_wallet(address)


class OutageWalletRegistry(InMemoryWalletRegistry):
    """Raises for the first ``failures`` lookups, then recovers."""

    def __init__(self, wallets: list[Wallet], failures: int) -> None:
        super().__init__(wallets)
        self._failures = failures

    async def get_wallet(self, address: str) -> Wallet | None:
        if self._failures > 0:
            self._failures -= 1
            raise ConnectionError("registry unavailable")
        return await super().get_wallet(address)


def _capital_invariant_holds(engine: PaperTradingEngine) -> bool:
    for strategy in engine.registry:
        committed = sum(p.entry_value_usd for p in strategy.get_open_positions())
        if committed > strategy.config.allocation + 1e-6:
            return False
    return True


@pytest.mark.asyncio
async def test_opens_position_for_qualifying_buy(make_engine, wallets) -> None:
    """Test the end-to-end entry pipeline with a single strategy."""
    wallets.add(make_wallet(address=WALLET, win_rate=0.62))
    engine = make_engine(enabled_strategies={StrategyKind.COPY_TRADE})

    opened = await engine.process_events([make_event(wallet=WALLET, price=1.0, amount=1000)])

    assert opened == 1
    [position] = engine.ledger.get_open_positions()
    assert position.strategy == StrategyKind.COPY_TRADE
    assert position.entry_value_usd == pytest.approx(80)
    assert position.entry_price == 1.0
    assert metrics.get_counter("trades_opened") == 1
    assert engine.ledger.get_state("last_trade_execution") == T0.isoformat()


@pytest.mark.asyncio
async def test_arbiter_picks_one_strategy(make_engine, wallets) -> None:
    """With every strategy enabled at most one position is opened per event."""
    wallets.add(make_wallet(address=WALLET, win_rate=0.62))
    engine = make_engine()

    opened = await engine.process_events([make_event(wallet=WALLET, price=1.0, amount=5000)])

    assert opened == 1
    [position] = engine.ledger.get_open_positions()
    assert position.strategy == StrategyKind.SMART_MONEY
    assert position.entry_value_usd == 200


@pytest.mark.asyncio
async def test_duplicate_events_are_dropped(make_engine, wallets) -> None:
    """Redelivered events never open a second position."""
    wallets.add(make_wallet(address=WALLET))
    engine = make_engine(enabled_strategies={StrategyKind.COPY_TRADE})
    event = make_event(wallet=WALLET)

    assert await engine.process_events([event, event]) == 1
    assert await engine.process_events([event]) == 0
    assert len(engine.ledger.all_positions()) == 1
    assert metrics.get_counter("events_duplicate") == 2


@pytest.mark.asyncio
async def test_sells_and_unknown_wallets_open_nothing(make_engine, wallets) -> None:
    """Test events that are recorded but never traded."""
    wallets.add(make_wallet(address=WALLET))
    wallets.add(make_wallet(address="0xpaused", status=WalletStatus.PAUSED))
    engine = make_engine(enabled_strategies={StrategyKind.COPY_TRADE})

    opened = await engine.process_events(
        [
            make_event(wallet=WALLET, action=TradeAction.SELL),
            make_event(wallet="0xpaused"),
            make_event(wallet="0xstranger"),
        ]
    )
    assert opened == 0
    assert engine.activity.get_state()["recorded"] == 3


@pytest.mark.asyncio
async def test_failing_event_does_not_stop_batch(prices, clock, config) -> None:
    """An exception while processing one event is isolated."""
    wallets = FlakyWalletRegistry([make_wallet(address=WALLET)])
    engine = PaperTradingEngine(
        prices,
        wallets,
        enabled_strategies={StrategyKind.COPY_TRADE},
        starting_capital=10000.0,
        clock=clock,
        config=config,
    )

    opened = await engine.process_events(
        [make_event(wallet="0xbroken"), make_event(wallet=WALLET)]
    )
    assert opened == 1
    assert metrics.get_counter("event_errors") == 1
    assert metrics.get_counter("trades_opened", label="copy_trade") == 1


@pytest.mark.asyncio
async def test_failed_event_is_retried_on_redelivery(prices, clock, config) -> None:
    """An event that failed transiently is evaluated again, and booked only once."""
    wallets = OutageWalletRegistry([make_wallet(address=WALLET)], failures=1)
    engine = PaperTradingEngine(
        prices,
        wallets,
        enabled_strategies={StrategyKind.COPY_TRADE},
        starting_capital=10000.0,
        clock=clock,
        config=config,
    )
    event = make_event(wallet=WALLET)

    first = await engine.process_events([event])
    assert first == 0
    assert not engine.ledger.is_processed(event.dedup_key)

    second = await engine.process_events([event])
    assert first + second == 1
    assert engine.ledger.is_processed(event.dedup_key)
    assert engine.activity.get_state()["recorded"] == 1

    assert await engine.process_events([event]) == 0
    assert len(engine.ledger.all_positions()) == 1
    assert metrics.get_counter("events_duplicate") == 1


@pytest.mark.asyncio
async def test_entry_price_fallbacks(make_engine, prices) -> None:
    """Event price, then quote, then value / amount, then the chain floor."""
    engine = make_engine()

    assert await engine.resolve_entry_price(make_event(price=2.0)) == 2.0

    prices.set_price("ethereum", "0xquoted", 3.0)
    assert await engine.resolve_entry_price(make_event(token="0xquoted", price=None)) == 3.0

    prices.fail_for("ethereum", "0xdown")
    derived = make_event(token="0xdown", price=None, value=500.0, amount=1000)
    assert await engine.resolve_entry_price(derived) == pytest.approx(0.5)

    unpriced = make_event(token="0xmeme", chain="solana", price=None)
    assert await engine.resolve_entry_price(unpriced) == 0.001
    assert await engine.resolve_entry_price(make_event(token="0xnone", price=None)) == 1.0


@pytest.mark.asyncio
async def test_risk_gate_blocks_and_publishes(make_engine, wallets) -> None:
    """Test the emergency stop path end to end."""
    bus = EventBus()
    blocked: list[Event] = []
    bus.subscribe(EventType.RISK_BLOCKED, blocked.append)
    wallets.add(make_wallet(address=WALLET))
    engine = make_engine(enabled_strategies={StrategyKind.COPY_TRADE}, bus=bus)

    await engine.set_emergency_stop(True)
    assert await engine.process_events([make_event(wallet=WALLET)]) == 0
    await bus.flush()

    assert metrics.get_counter("risk_rejections") == 1
    assert len(blocked) == 1
    assert "Emergency stop" in blocked[0].data["reason"]
    assert engine.ledger.get_state("emergency_stop") == "true"


@pytest.mark.asyncio
async def test_manage_positions_take_profit(make_engine, wallets, prices) -> None:
    """Test closing a position on a price move."""
    bus = EventBus()
    closed_events: list[Event] = []
    bus.subscribe(EventType.POSITION_CLOSED, closed_events.append)
    wallets.add(make_wallet(address=WALLET))
    engine = make_engine(enabled_strategies={StrategyKind.COPY_TRADE}, bus=bus)
    await engine.process_events([make_event(wallet=WALLET, price=1.0, amount=1000)])

    prices.set_price("ethereum", "0xtoken1", 1.5)
    summary = await engine.manage_positions()
    await bus.flush()

    assert summary == {"checked": 1, "partial_exits": 0, "closed": 1, "errors": 0}
    [position] = engine.ledger.get_closed_positions()
    assert position.pnl == pytest.approx(40)
    assert len(closed_events) == 1
    assert engine.portfolio_roi() == pytest.approx(0.4)
    assert engine.get_performance().wins == 1
    assert engine.get_performance(StrategyKind.COPY_TRADE).total_pnl == pytest.approx(40)


@pytest.mark.asyncio
async def test_exit_stats_and_rebalance_recommendations(make_engine, wallets, prices) -> None:
    """Closed positions are grouped by exit type; adaptive mode adds allocation advice."""
    configs = default_strategy_configs()
    configs[StrategyKind.COPY_TRADE] = configs[StrategyKind.COPY_TRADE].model_copy(
        update={"allocation": 100.0}
    )
    wallets.add(make_wallet(address=WALLET))
    engine = make_engine(
        enabled_strategies={StrategyKind.COPY_TRADE, StrategyKind.MEMECOIN},
        strategy_configs=configs,
    )
    await engine.process_events([make_event(wallet=WALLET, price=1.0, amount=1000)])
    prices.set_price("ethereum", "0xtoken1", 1.5)
    await engine.manage_positions()

    [row] = engine.get_exit_stats()
    assert row.exit_type == "take_profit"
    assert row.count == 1
    assert row.total_pnl == pytest.approx(40)
    assert engine.get_stats()["exits"][0]["count"] == 1
    assert engine.get_performance().rebalance_recommendations == {}

    engine.arbiter.adaptive = True
    # copy trade ROI 40% vs memecoin 0%: average 20
    recommendations = engine.get_performance().rebalance_recommendations
    assert recommendations["copy_trade"] == pytest.approx(120)
    assert recommendations["memecoin"] == pytest.approx(800)


@pytest.mark.asyncio
async def test_manage_positions_partial_exit(prices, clock, config) -> None:
    """A tiered take-profit keeps the position open after selling part of it."""
    # 0xb is not tracked: its buy only counts as a coordinated buyer
    wallets = InMemoryWalletRegistry([make_wallet(address="0xa", win_rate=0.5)])
    engine = PaperTradingEngine(
        prices,
        wallets,
        enabled_strategies={StrategyKind.MEMECOIN},
        starting_capital=10000.0,
        clock=clock,
        config=config,
    )
    opened = await engine.process_events(
        [
            make_event(wallet="0xa", chain="solana", price=0.01, amount=100000),
            make_event(wallet="0xb", chain="solana", price=0.01, amount=100000),
        ]
    )
    assert opened == 1

    prices.set_price("solana", "0xtoken1", 0.02)
    summary = await engine.manage_positions()
    assert summary["partial_exits"] == 1
    [position] = engine.ledger.get_open_positions()
    assert position.sold_fraction == pytest.approx(0.6)
    assert position.has_annotation("tier_2")


@pytest.mark.asyncio
async def test_default_memecoin_ladder_keeps_remainder(prices, clock, config) -> None:
    """At 12x the three default tiers fire on successive cycles and the rest stays open."""
    wallets = InMemoryWalletRegistry([make_wallet(address="0xa", win_rate=0.5)])
    engine = PaperTradingEngine(
        prices,
        wallets,
        enabled_strategies={StrategyKind.MEMECOIN},
        starting_capital=10000.0,
        clock=clock,
        config=config,
    )
    await engine.process_events(
        [
            make_event(wallet="0xa", chain="solana", price=0.01, amount=100000),
            make_event(wallet="0xb", chain="solana", price=0.01, amount=100000),
        ]
    )
    [position] = engine.ledger.get_open_positions()
    initial = position.amount

    prices.set_price("solana", "0xtoken1", 0.12)
    amounts = []
    for _ in range(3):
        summary = await engine.manage_positions()
        assert summary["partial_exits"] == 1
        amounts.append(position.amount)

    assert amounts == pytest.approx([initial * 0.4, initial * 0.28, initial * 0.252])
    assert position.sold_fraction == pytest.approx(0.748)
    assert position.is_open
    for label in ("tier_2", "tier_5", "tier_10"):
        assert position.has_annotation(label)
    assert metrics.get_counter("exits", label="take_profit_tier") == 3

    assert (await engine.manage_positions())["partial_exits"] == 0


@pytest.mark.asyncio
async def test_missing_quote_holds_at_entry(make_engine, wallets) -> None:
    """Without a quote the position is valued at entry and kept."""
    wallets.add(make_wallet(address=WALLET))
    engine = make_engine(enabled_strategies={StrategyKind.COPY_TRADE})
    await engine.process_events([make_event(wallet=WALLET)])

    summary = await engine.manage_positions()
    assert summary["closed"] == 0
    assert len(engine.ledger.get_open_positions()) == 1
    assert metrics.get_gauges()["open_positions"] == 1.0


def test_starting_capital_persists(prices, wallets, config) -> None:
    """Test that starting capital is stored with the ledger state."""
    repo = InMemoryPositionRepository()
    PaperTradingEngine(
        prices, wallets, ledger=PositionLedger(repo), starting_capital=5000.0, config=config
    )
    resumed = PaperTradingEngine(prices, wallets, ledger=PositionLedger(repo), config=config)
    assert resumed.starting_capital == 5000.0

    fresh = PaperTradingEngine(prices, wallets, config=config)
    assert fresh.starting_capital == config.initial_capital


@pytest.mark.asyncio
async def test_emergency_stop_survives_restart(prices, wallets, config) -> None:
    """A stored emergency stop is re-applied when the engine is rebuilt."""
    repo = InMemoryPositionRepository()
    first = PaperTradingEngine(prices, wallets, ledger=PositionLedger(repo), config=config)
    await first.set_emergency_stop(True)

    resumed = PaperTradingEngine(prices, wallets, ledger=PositionLedger(repo), config=config)
    assert resumed.gate.emergency_stop is True

    await resumed.set_emergency_stop(False)
    again = PaperTradingEngine(prices, wallets, ledger=PositionLedger(repo), config=config)
    assert again.gate.emergency_stop is False


@pytest.mark.asyncio
@pytest.mark.parametrize("seed", [1, 7, 42, 1234])
async def test_capital_invariant_sequential(seed: int) -> None:
    """Committed capital never exceeds a strategy's allocation in sequential mode."""
    rng = random.Random(seed)
    clock = FakeClock()
    prices = StaticPriceSource()
    wallet_pool = [
        make_wallet(address=f"0xw{i:02d}", chain="ethereum", win_rate=rng.uniform(0.3, 0.95))
        for i in range(8)
    ]
    tokens = [f"0xtok{i}" for i in range(6)]
    chains = ["ethereum", "solana", "base"]

    tight = default_strategy_configs()
    for cfg in tight.values():
        cfg.allocation = 400
    engine = PaperTradingEngine(
        prices,
        InMemoryWalletRegistry(wallet_pool),
        strategy_configs=tight,
        starting_capital=10000.0,
        clock=clock,
        config=AlphaTrackerSettings(
            _env_file=None,
            max_position_size=0.5,
            max_token_exposure=1.0,
            max_chain_exposure=1.0,
            max_drawdown=1.0,
            max_daily_loss=1.0,
        ),
    )

    for _ in range(12):
        batch = []
        for _ in range(rng.randint(1, 8)):
            priced = rng.random() < 0.7
            price = rng.uniform(0.001, 5.0)
            batch.append(
                make_event(
                    wallet=rng.choice(wallet_pool).address,
                    token=rng.choice(tokens),
                    chain=rng.choice(chains),
                    amount=rng.uniform(10, 50000),
                    price=price if priced else None,
                    timestamp=clock.now,
                )
            )
        await engine.process_events(batch)
        assert _capital_invariant_holds(engine)

        for position in engine.ledger.get_open_positions():
            move = rng.uniform(0.1, 3.0)
            prices.set_price(position.chain, position.token_address, move * position.entry_price)
        await engine.manage_positions()
        assert _capital_invariant_holds(engine)
        clock.advance(hours=rng.uniform(0.5, 12))

    for position in engine.ledger.all_positions():
        if position.status == PositionStatus.OPEN and position.sold_fraction == 0:
            assert position.amount * position.entry_price == pytest.approx(position.entry_value_usd)


@pytest.mark.asyncio
async def test_concurrent_processing_can_overspend(clock, config) -> None:
    """Concurrent evaluation reads stale capital across the price lookup.

    Sequential processing keeps the strategy within its allocation; with
    several events in flight both pass the capital check before either is
    booked.
    """
    copy = default_strategy_configs()[StrategyKind.COPY_TRADE]
    tight = copy.model_copy(update={"allocation": 300, "unpriced_size": 200})

    def build() -> PaperTradingEngine:
        return PaperTradingEngine(
            StaticPriceSource(delay=0.01),
            InMemoryWalletRegistry([make_wallet(address=WALLET)]),
            strategy_configs={StrategyKind.COPY_TRADE: tight},
            enabled_strategies={StrategyKind.COPY_TRADE},
            starting_capital=10000.0,
            clock=clock,
            config=config,
        )

    def batch():
        return [
            make_event(wallet=WALLET, token="0xa", price=None, amount=1000),
            make_event(wallet=WALLET, token="0xb", price=None, amount=1000),
        ]

    sequential = build()
    assert await sequential.process_events(batch()) == 1
    assert _capital_invariant_holds(sequential)

    concurrent = build()
    assert await concurrent.process_events(batch(), concurrency=2) == 2
    committed = sum(p.entry_value_usd for p in concurrent.ledger.get_open_positions())
    assert committed == pytest.approx(400)
    assert not _capital_invariant_holds(concurrent)


@pytest.mark.asyncio
async def test_reporting(make_engine, wallets) -> None:
    """Test stats and risk status shapes."""
    wallets.add(make_wallet(address=WALLET))
    engine = make_engine(enabled_strategies={StrategyKind.COPY_TRADE})
    await engine.process_events([make_event(wallet=WALLET)])

    stats = engine.get_stats()
    assert stats["ledger"]["open"] == 1
    assert stats["emergency_stop"] is False
    assert set(engine.get_all_performance()) == {"copy_trade"}

    risk = engine.get_risk_status()
    assert risk.open_positions == 1
    assert risk.capital_utilization == pytest.approx(80 / 10000)
    assert risk.level in {"low", "medium", "high"}
