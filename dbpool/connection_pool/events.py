"""
Pool event bus

Observability only: the pool behaves identically whether or not anyone
is subscribed, and a failing listener never affects pool state.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Set

logger = logging.getLogger('dbpool.connection_pool.events')


class PoolEvent(Enum):
    """Events emitted by a pool"""
    INITIALIZED = "initialized"
    CONNECTION_CREATED = "connection_created"
    CONNECTION_ACQUIRED = "connection_acquired"
    CONNECTION_RELEASED = "connection_released"
    CONNECTION_REMOVED = "connection_removed"
    CLOSED = "closed"


@dataclass
class EventData:
    """Payload delivered to listeners"""
    event_type: PoolEvent
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class PoolEventBus:
    """Per-pool listener registry"""

    def __init__(self):
        self.listeners: Dict[PoolEvent, List[Callable]] = {event: [] for event in PoolEvent}
        self._pending: Set[asyncio.Task] = set()

    def subscribe(self, event_type: PoolEvent, listener: Callable) -> None:
        self.listeners[event_type].append(listener)
        logger.debug(f"Listener subscribed: {event_type.value}")

    def unsubscribe(self, event_type: PoolEvent, listener: Callable) -> None:
        try:
            self.listeners[event_type].remove(listener)
            logger.debug(f"Listener unsubscribed: {event_type.value}")
        except ValueError:
            pass

    def emit(self, event_type: PoolEvent, **data: Any) -> None:
        """
        Deliver an event synchronously

        Coroutine listeners are scheduled as tasks on the running loop.
        """
        listeners = self.listeners[event_type]
        if not listeners:
            return

        event = EventData(event_type=event_type, data=data)
        for listener in listeners[:]:
            try:
                if inspect.iscoroutinefunction(listener):
                    task = asyncio.get_running_loop().create_task(listener(event))
                    self._pending.add(task)
                    task.add_done_callback(self._listener_done)
                else:
                    listener(event)
            except Exception as e:
                logger.error(f"Event listener failed for {event_type.value}: {e!r}")

    def _listener_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Async event listener failed: {error!r}")
