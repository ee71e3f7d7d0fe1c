"""Contracts for external collaborators, with in-memory implementations."""

import asyncio
from typing import Protocol

from alphatracker.core.types import (
    Position,
    PriceQuote,
    StrategyKind,
    TokenInfo,
    TransactionEvent,
    Wallet,
)


class PriceSource(Protocol):
    """Protocol for price lookup services. May raise on failure."""

    async def get_price(self, token_address: str, chain: str) -> PriceQuote | None:
        """Current USD price of a token, or ``None`` if unknown."""
        ...


class WalletRegistry(Protocol):
    """Protocol for the wallet registry."""

    async def get_wallet(self, address: str) -> Wallet | None:
        """Wallet record by address."""
        ...


class TokenInfoSource(Protocol):
    """Protocol for token metadata (creation time, launch liquidity)."""

    def get_token_info(self, token_address: str, chain: str) -> TokenInfo | None: ...


class EventSource(Protocol):
    """Protocol for the ingestion collaborator."""

    async def fetch_events(self) -> list[TransactionEvent]: ...


class StaticPriceSource:
    """Price source backed by a dict. ``delay`` simulates a slow upstream."""

    def __init__(self, prices: dict[tuple[str, str], float] | None = None, delay: float = 0.0) -> None:
        self._prices: dict[tuple[str, str], float] = {
            (chain.lower(), token): price for (chain, token), price in (prices or {}).items()
        }
        self._failing: set[tuple[str, str]] = set()
        self.delay = delay
        self.calls = 0

    def set_price(self, chain: str, token_address: str, price: float) -> None:
        self._prices[(chain.lower(), token_address)] = price

    def fail_for(self, chain: str, token_address: str) -> None:
        """Make lookups for this token raise."""
        self._failing.add((chain.lower(), token_address))

    async def get_price(self, token_address: str, chain: str) -> PriceQuote | None:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        key = (chain.lower(), token_address)
        if key in self._failing:
            raise ConnectionError(f"price lookup failed for {token_address} on {chain}")
        price = self._prices.get(key)
        if price is None:
            return None
        return PriceQuote(price=price, source="static")


class InMemoryWalletRegistry:
    """Wallet registry backed by a dict keyed by address."""

    def __init__(self, wallets: list[Wallet] | None = None) -> None:
        self._wallets: dict[str, Wallet] = {w.address: w for w in wallets or []}

    def add(self, wallet: Wallet) -> None:
        self._wallets[wallet.address] = wallet

    async def get_wallet(self, address: str) -> Wallet | None:
        return self._wallets.get(address)


class StaticTokenInfoSource:
    def __init__(self, tokens: list[TokenInfo] | None = None) -> None:
        self._tokens: dict[tuple[str, str], TokenInfo] = {
            (t.chain.lower(), t.token_address): t for t in tokens or []
        }

    def add(self, info: TokenInfo) -> None:
        self._tokens[(info.chain.lower(), info.token_address)] = info

    def get_token_info(self, token_address: str, chain: str) -> TokenInfo | None:
        return self._tokens.get((chain.lower(), token_address))


class QueueEventSource:
    """Event source that hands out whatever has been queued since the last fetch."""

    def __init__(self) -> None:
        self._pending: list[TransactionEvent] = []

    def push(self, *events: TransactionEvent) -> None:
        self._pending.extend(events)

    async def fetch_events(self) -> list[TransactionEvent]:
        events, self._pending = self._pending, []
        return events


class PositionReader(Protocol):
    """Read-only view of the position ledger handed to strategies."""

    def get_open_positions(self, strategy: StrategyKind | None = None) -> list[Position]: ...

    def get_closed_positions(self, strategy: StrategyKind | None = None) -> list[Position]: ...
