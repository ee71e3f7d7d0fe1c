"""Shared test fixtures."""

import pytest
from helpers import FakeClock

from alphatracker.core.activity import ActivityLog
from alphatracker.core.interfaces import (
    InMemoryWalletRegistry,
    StaticPriceSource,
    StaticTokenInfoSource,
)
from alphatracker.observability.metrics import metrics
from alphatracker.portfolio.ledger import PositionLedger


@pytest.fixture(autouse=True)
def _reset_metrics():
    """Reset the module-level metrics singleton between tests."""
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def activity() -> ActivityLog:
    return ActivityLog()


@pytest.fixture
def ledger(clock: FakeClock) -> PositionLedger:
    return PositionLedger(clock=clock)


@pytest.fixture
def prices() -> StaticPriceSource:
    return StaticPriceSource()


@pytest.fixture
def wallets() -> InMemoryWalletRegistry:
    return InMemoryWalletRegistry()


@pytest.fixture
def token_info() -> StaticTokenInfoSource:
    return StaticTokenInfoSource()
