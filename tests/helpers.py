"""Builders shared by the test modules."""

import itertools
from datetime import UTC, datetime, timedelta

from alphatracker.core.types import TradeAction, TransactionEvent, Wallet, WalletStatus

T0 = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)

_tx_counter = itertools.count(1)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def make_event(
    wallet: str = "0xwallet000000001",
    token: str = "0xtoken1",
    symbol: str = "TKN",
    chain: str = "ethereum",
    action: TradeAction = TradeAction.BUY,
    amount: float = 1000.0,
    price: float | None = 1.0,
    value: float | None = None,
    timestamp: datetime | None = None,
    tx_hash: str | None = None,
) -> TransactionEvent:
    if value is None and price is not None:
        value = price * amount
    return TransactionEvent(
        wallet_address=wallet,
        chain=chain,
        token_address=token,
        token_symbol=symbol,
        action=action,
        amount=amount,
        price_usd=price,
        total_value_usd=value,
        timestamp=timestamp or T0,
        tx_hash=tx_hash or f"0xtx{next(_tx_counter)}",
    )


def make_wallet(
    address: str = "0xwallet000000001",
    chain: str = "ethereum",
    win_rate: float | None = 0.62,
    strategy_type=None,
    status: WalletStatus = WalletStatus.ACTIVE,
) -> Wallet:
    return Wallet(
        address=address,
        chain=chain,
        win_rate=win_rate,
        strategy_type=strategy_type,
        status=status,
    )
