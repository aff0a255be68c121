# src/auditor/services/event_bus.py
import asyncio
import logging
from typing import Any, Dict, List, Optional

from auditor.managers.config_manager import config_manager
from auditor.model import Event, EventKind

logger = logging.getLogger(__name__)

_END = object()


class Subscription:
    """
    One observer's view of a run's event stream.

    Async-iterable; yields events in emission order and stops after the terminal
    StageChange (or when unsubscribed). Not restartable.
    """

    def __init__(self, bus: "EventBus", max_queue_size: int = 0):
        self._bus = bus
        self._queue: asyncio.Queue = asyncio.Queue()
        self._max = max_queue_size
        self._finished = False
        self.dropped = 0

    def _offer(self, event: Event) -> None:
        # Bounded subscribers drop their oldest pending event rather than block the publisher
        if self._max and self._queue.qsize() >= self._max:
            self._queue.get_nowait()
            self.dropped += 1
        self._queue.put_nowait(event)

    def _end(self) -> None:
        self._queue.put_nowait(_END)

    def __aiter__(self):
        return self

    async def __anext__(self) -> Event:
        if self._finished:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _END:
            self._finished = True
            raise StopAsyncIteration
        return item

    async def collect(self) -> List[Event]:
        """Drains the stream until it ends."""
        return [event async for event in self]

    def close(self) -> None:
        self._bus.unsubscribe(self)


class EventBus:
    """
    Per-run, multi-subscriber fan-out of pipeline events.

    `publish` never blocks: every subscriber owns its own queue. Must be used from
    the event loop thread that owns the run. The bus closes itself after a
    terminal StageChange; later publishes are ignored.
    """

    def __init__(self, run_id: str, max_queue_size: Optional[int] = None, keep_history: bool = True):
        self.run_id = run_id
        if max_queue_size is None:
            max_queue_size = int(config_manager.get_nested("events.max_queue_size", 0))
        self.max_queue_size = max(0, max_queue_size)
        self.keep_history = keep_history

        self._subscribers: List[Subscription] = []
        self._history: List[Event] = []
        self._sequence = 0
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def history(self) -> List[Event]:
        return list(self._history)

    def subscribe(self, replay: bool = False) -> Subscription:
        """
        Registers a new observer. With `replay`, already-published events are
        delivered first. Subscribing to a closed bus yields a finite stream.
        """
        sub = Subscription(self, self.max_queue_size)
        if replay:
            for event in self._history:
                sub._queue.put_nowait(event)
        if self._closed:
            sub._end()
        else:
            self._subscribers.append(sub)
        return sub

    def unsubscribe(self, subscription: Subscription) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)
            subscription._end()

    def publish(self, event: Event) -> None:
        if self._closed:
            logger.debug("Run %s: event published after close was ignored (%s)", self.run_id, event.kind.value)
            return
        if self.keep_history:
            self._history.append(event)
        for sub in list(self._subscribers):
            sub._offer(event)
        if event.is_terminal:
            self.close()

    def emit(self, kind: EventKind, payload: Optional[Dict[str, Any]] = None) -> Optional[Event]:
        """Builds the next event of this run (monotonic sequence) and publishes it."""
        if self._closed:
            return None
        self._sequence += 1
        event = Event(kind=kind, run_id=self.run_id, sequence=self._sequence, payload=payload or {})
        self.publish(event)
        return event

    def close(self) -> None:
        """Ends every open stream. Idempotent."""
        if self._closed:
            return
        self._closed = True
        for sub in self._subscribers:
            sub._end()
        self._subscribers.clear()
