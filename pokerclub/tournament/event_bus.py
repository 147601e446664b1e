"""
Tournament Event Bus.

Outbound notifications for registration, payment, seating, elimination and
results. The lifecycle hands events over after the tournament lock is
released; nothing here can fail a command that has already been persisted.

Delivery targets:
- in-process subscribers, filtered by event type and optionally tournament
- a Redis stream (XADD, capped length) when a client is configured
"""

import asyncio
import json
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, FrozenSet, Iterable, List, Optional
from uuid import uuid4

import redis.asyncio as redis

from pokerclub.logging_config import get_logger
from .models import TournamentEvent, TournamentEventType

logger = get_logger(__name__)

EventHandler = Callable[[TournamentEvent], Awaitable[None]]


@dataclass(frozen=True)
class Subscription:
    subscription_id: str
    event_types: FrozenSet[TournamentEventType]
    handler: EventHandler
    tournament_id: Optional[str] = None

    def matches(self, event: TournamentEvent) -> bool:
        if event.event_type not in self.event_types:
            return False
        return self.tournament_id is None or self.tournament_id == event.tournament_id


@dataclass
class EventMetrics:
    """Counters since the bus was created.

    events_failed counts both stream write failures and handler errors.
    """

    events_published: int = 0
    events_processed: int = 0
    events_failed: int = 0
    handler_time_ms: float = 0.0
    last_published_at: Optional[datetime] = None
    by_type: Dict[str, int] = field(default_factory=dict)

    @property
    def avg_handler_time_ms(self) -> float:
        if not self.events_processed:
            return 0.0
        return self.handler_time_ms / self.events_processed


def stream_fields(event: TournamentEvent) -> Dict[str, str]:
    """Flat string mapping written to the stream; ``data`` is JSON."""
    return {
        "event_id": event.event_id,
        "event_type": event.event_type.name,
        "tournament_id": event.tournament_id,
        "player_id": event.player_id or "",
        "timestamp": event.timestamp.isoformat(),
        "data": json.dumps(event.data, default=str),
    }


class TournamentEventBus:
    """Publishes tournament events. ``publish`` never raises."""

    DEFAULT_STREAM_KEY = "pokerclub:tournament:events"
    DEFAULT_STREAM_MAX_LEN = 10000

    def __init__(
        self,
        redis_client: Optional[redis.Redis] = None,
        stream_key: str = DEFAULT_STREAM_KEY,
        stream_max_len: int = DEFAULT_STREAM_MAX_LEN,
    ):
        self.redis = redis_client
        self.stream_key = stream_key
        self.stream_max_len = stream_max_len
        self._subscriptions: Dict[str, Subscription] = {}
        self._metrics = EventMetrics()

    def subscribe(
        self,
        event_types: Iterable[TournamentEventType],
        handler: EventHandler,
        tournament_id: Optional[str] = None,
    ) -> str:
        """Register ``handler`` for the given types; tournament_id narrows
        delivery to one tournament. Returns the id for ``unsubscribe``."""
        subscription = Subscription(
            subscription_id=str(uuid4()),
            event_types=frozenset(event_types),
            handler=handler,
            tournament_id=tournament_id,
        )
        self._subscriptions[subscription.subscription_id] = subscription
        return subscription.subscription_id

    def unsubscribe(self, subscription_id: str) -> bool:
        return self._subscriptions.pop(subscription_id, None) is not None

    async def publish(self, event: TournamentEvent) -> None:
        if self.redis is not None:
            await self._append_to_stream(event)

        # Snapshot so a handler that unsubscribes does not disturb this round
        targets = [s for s in list(self._subscriptions.values()) if s.matches(event)]
        if targets:
            await asyncio.gather(*(self._deliver(s, event) for s in targets))

        type_name = event.event_type.name
        self._metrics.events_published += 1
        self._metrics.last_published_at = datetime.now(timezone.utc)
        self._metrics.by_type[type_name] = self._metrics.by_type.get(type_name, 0) + 1

    async def publish_batch(self, events: List[TournamentEvent]) -> None:
        for event in events:
            await self.publish(event)

    async def _append_to_stream(self, event: TournamentEvent) -> None:
        try:
            await self.redis.xadd(
                self.stream_key,
                stream_fields(event),
                maxlen=self.stream_max_len,
                approximate=True,
            )
        except redis.RedisError as e:
            self._metrics.events_failed += 1
            logger.warning(
                "event_stream_write_failed",
                stream_key=self.stream_key,
                event_type=event.event_type,
                tournament_id=event.tournament_id,
                error=str(e),
            )

    async def _deliver(self, subscription: Subscription, event: TournamentEvent) -> None:
        started = time.perf_counter()
        try:
            await subscription.handler(event)
        except Exception:
            self._metrics.events_failed += 1
            logger.exception(
                "event_handler_failed",
                subscription_id=subscription.subscription_id,
                event_type=event.event_type,
                tournament_id=event.tournament_id,
            )
            return
        self._metrics.events_processed += 1
        self._metrics.handler_time_ms += (time.perf_counter() - started) * 1000

    def get_metrics(self) -> EventMetrics:
        return self._metrics
