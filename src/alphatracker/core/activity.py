"""Bounded record of observed wallet activity.

Strategies and the exit evaluator ask windowed questions about recent
activity (distinct buyers of a token, wallets that sold it, a wallet's recent
trade sizes). ``ActivityLog`` answers them from memory, bounded on three
axes: tokens and wallets tracked (LRU), events kept per key, and a retention
horizon measured from the newest event seen for a key.
"""

from collections import deque
from collections.abc import Iterable
from datetime import datetime, timedelta
from typing import Any

from alphatracker.core.cache import LRUCache
from alphatracker.core.types import TradeAction, TransactionEvent, utcnow
from alphatracker.logging import get_logger

logger = get_logger(__name__)


def _token_key(chain: str, token_address: str) -> str:
    return f"{chain.lower()}:{token_address}"


class ActivityLog:
    """In-memory index of recent transaction events by token and by wallet."""

    def __init__(
        self,
        max_tokens: int = 5000,
        max_wallets: int = 5000,
        max_events_per_key: int = 500,
        retention: timedelta = timedelta(days=7),
    ) -> None:
        """Initialize the activity log."""
        self._max_events = max_events_per_key
        self._retention = retention
        self._by_token: LRUCache[str, deque[TransactionEvent]] = LRUCache(max_tokens)
        self._by_wallet: LRUCache[str, deque[TransactionEvent]] = LRUCache(max_wallets)
        self._first_seen: LRUCache[str, datetime] = LRUCache(max_tokens)
        self._recorded = 0

    def _new_deque(self) -> deque[TransactionEvent]:
        return deque(maxlen=self._max_events)

    def _trim(self, events: deque[TransactionEvent], newest: datetime) -> None:
        horizon = newest - self._retention
        while events and events[0].timestamp < horizon:
            events.popleft()

    def record(self, event: TransactionEvent) -> bool:
        """Add an event. Events are assumed to arrive roughly in time order.

        Returns ``False`` if the same wallet transaction is already held.
        """
        known = self._by_wallet.get(event.wallet_address)
        if known and any(e.dedup_key == event.dedup_key for e in known):
            return False

        key = _token_key(event.chain, event.token_address)
        token_events = self._by_token.setdefault(key, self._new_deque)
        token_events.append(event)
        self._trim(token_events, event.timestamp)

        wallet_events = self._by_wallet.setdefault(event.wallet_address, self._new_deque)
        wallet_events.append(event)
        self._trim(wallet_events, event.timestamp)

        first = self._first_seen.get(key)
        if first is None or event.timestamp < first:
            self._first_seen.set(key, event.timestamp)
        self._recorded += 1
        return True

    def record_many(self, events: Iterable[TransactionEvent]) -> None:
        for event in events:
            self.record(event)

    def prune(self, now: datetime | None = None) -> int:
        """Drop events older than the retention horizon. Returns the number removed."""
        now = now or utcnow()
        removed = 0
        for cache in (self._by_token, self._by_wallet):
            for key, events in cache.items():
                before = len(events)
                self._trim(events, now)
                removed += before - len(events)
                if not events:
                    cache.pop(key)
        if removed:
            logger.debug(f"Pruned {removed} activity records older than {self._retention}")
        return removed

    def _token_events(
        self, chain: str, token_address: str, since: datetime, until: datetime | None = None
    ) -> list[TransactionEvent]:
        events = self._by_token.get(_token_key(chain, token_address))
        if not events:
            return []
        return [
            e for e in events
            if e.timestamp >= since and (until is None or e.timestamp < until)
        ]

    def distinct_buyers(self, chain: str, token_address: str, since: datetime) -> set[str]:
        return {
            e.wallet_address
            for e in self._token_events(chain, token_address, since)
            if e.action == TradeAction.BUY
        }

    def distinct_sellers(self, chain: str, token_address: str, since: datetime) -> set[str]:
        return {
            e.wallet_address
            for e in self._token_events(chain, token_address, since)
            if e.action == TradeAction.SELL
        }

    def sell_count(self, chain: str, token_address: str, since: datetime) -> int:
        return sum(
            1 for e in self._token_events(chain, token_address, since)
            if e.action == TradeAction.SELL
        )

    def buy_volume(
        self, chain: str, token_address: str, since: datetime, until: datetime | None = None
    ) -> float:
        """Sum of known USD values of buys in ``[since, until)``."""
        total = 0.0
        for e in self._token_events(chain, token_address, since, until):
            if e.action == TradeAction.BUY:
                total += e.trade_value() or 0.0
        return total

    def first_seen(self, chain: str, token_address: str) -> datetime | None:
        return self._first_seen.get(_token_key(chain, token_address))

    def wallet_sold_since(
        self, wallet_address: str, chain: str, token_address: str, since: datetime
    ) -> bool:
        events = self._by_wallet.get(wallet_address)
        if not events:
            return False
        chain = chain.lower()
        return any(
            e.action == TradeAction.SELL
            and e.chain == chain
            and e.token_address == token_address
            and e.timestamp > since
            for e in events
        )

    def wallet_trade_values(self, wallet_address: str, since: datetime) -> list[float]:
        events = self._by_wallet.get(wallet_address)
        if not events:
            return []
        values = []
        for e in events:
            if e.timestamp < since:
                continue
            value = e.trade_value()
            if value is not None:
                values.append(value)
        return values

    def get_state(self) -> dict[str, Any]:
        return {
            "tokens": len(self._by_token),
            "wallets": len(self._by_wallet),
            "recorded": self._recorded,
        }
