"""PlaybackState — fan-out of controller events to terminal and web clients."""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

logger = logging.getLogger(__name__)


@dataclass
class Subscriber:
    queue: asyncio.Queue
    events: Optional[frozenset[str]] = None   # None: everything
    dropped: int = 0

    def wants(self, event: str) -> bool:
        return self.events is None or event in self.events


@dataclass
class PlaybackState:
    maxsize: int = 50
    _subscribers: dict[str, Subscriber] = field(default_factory=dict, init=False, repr=False)

    def subscribe(self, client_id: str, events: Optional[Iterable[str]] = None) -> asyncio.Queue:
        """Register a client. Its queue receives (event, data) tuples, limited to events if given."""
        sub = Subscriber(
            queue=asyncio.Queue(maxsize=self.maxsize),
            events=frozenset(events) if events is not None else None,
        )
        self._subscribers[client_id] = sub
        return sub.queue

    def unsubscribe(self, client_id: str):
        self._subscribers.pop(client_id, None)

    @property
    def client_count(self) -> int:
        return len(self._subscribers)

    def dropped(self, client_id: str) -> int:
        """Events discarded for client_id because its queue was full."""
        sub = self._subscribers.get(client_id)
        return sub.dropped if sub else 0

    def broadcast(self, event: str, data: Any):
        """Queue an event for every interested subscriber. Never blocks.

        Player callbacks fire synchronously, so this is a plain method.
        A full queue loses its oldest event to make room.
        """
        for cid, sub in self._subscribers.items():
            if not sub.wants(event):
                continue
            if sub.queue.full():
                sub.queue.get_nowait()
                sub.dropped += 1
                if sub.dropped == 1 or sub.dropped % 100 == 0:
                    logger.warning("Subscriber %s is falling behind (%d events dropped)", cid, sub.dropped)
            sub.queue.put_nowait((event, data))
