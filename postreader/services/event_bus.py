"""
In-process event bus with at-least-once delivery.

Events are buffered in an asyncio.Queue and handed to subscribers by a
pool of consumer tasks. A delivery that raises (or finds no subscriber) is
redelivered with exponential backoff; after `max_attempts` it is parked in
the dead-letter list instead of being dropped.
"""
import asyncio
import itertools
import logging
import uuid
from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from postreader.config import BUS_MAX_ATTEMPTS, BUS_REDELIVERY_DELAY, WORKER_CONSUMERS
from postreader.errors import BusUnavailable

logger = logging.getLogger(__name__)

JOB_CREATED = 'job.created'


@dataclass(frozen=True)
class Event:
    """A message on the bus. `attempt` counts deliveries, starting at 1."""
    topic: str
    job_id: str
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    attempt: int = 1
    published_at: datetime = field(default_factory=datetime.utcnow)


Handler = Callable[[Event], Awaitable[None]]


class EventBus:
    """
    At-least-once message channel between the submission API and workers.

    Handlers must be idempotent: the same event may arrive more than once.
    """

    def __init__(
        self,
        consumers: int = WORKER_CONSUMERS,
        max_attempts: int = BUS_MAX_ATTEMPTS,
        redelivery_delay: float = BUS_REDELIVERY_DELAY,
    ):
        self.consumers = max(1, consumers)
        self.max_attempts = max_attempts
        self.redelivery_delay = redelivery_delay
        self._queue: asyncio.Queue[Optional[Event]] = asyncio.Queue()
        self._handlers: Dict[str, List[Handler]] = {}
        self._tasks: List[asyncio.Task] = []
        self._timers: Dict[int, Tuple[asyncio.TimerHandle, Event]] = {}
        self._timer_ids = itertools.count()
        self._dead_letters: List[Event] = []
        self._outstanding = 0
        self._outstanding_jobs: Counter = Counter()
        self._in_flight: Dict[asyncio.Task, Event] = {}
        self._idle = asyncio.Event()
        self._idle.set()
        self._closed = False

    @property
    def dead_letters(self) -> List[Event]:
        """Events whose every delivery attempt failed."""
        return list(self._dead_letters)

    @property
    def pending_count(self) -> int:
        """Events queued, in flight, or waiting for redelivery."""
        return self._outstanding

    def is_outstanding(self, job_id: str) -> bool:
        """Whether an event for this job is queued, in flight or awaiting redelivery."""
        return self._outstanding_jobs[job_id] > 0

    def subscribe(self, topic: str, handler: Handler):
        """Register an async handler for a topic."""
        self._handlers.setdefault(topic, []).append(handler)

    async def publish(self, topic: str, job_id: str) -> Event:
        """Publish a new event. Raises BusUnavailable once the bus is closed."""
        if self._closed:
            raise BusUnavailable(f'Event bus is closed; cannot publish {topic} for {job_id}')
        event = Event(topic=topic, job_id=job_id)
        self._track(event)
        await self._queue.put(event)
        logger.debug('Published %s for job %s (%s)', topic, job_id, event.event_id)
        return event

    async def redeliver(self, event: Event):
        """Deliver an already-published event again."""
        if self._closed:
            raise BusUnavailable(f'Event bus is closed; cannot redeliver {event.event_id}')
        self._track(event)
        await self._queue.put(replace(event, attempt=event.attempt + 1))

    async def start(self):
        """Start the consumer tasks."""
        if self._tasks:
            return
        self._closed = False

        # Drop shutdown sentinels a previous stop() left unconsumed
        buffered = []
        while not self._queue.empty():
            buffered.append(self._queue.get_nowait())
            self._queue.task_done()
        for event in buffered:
            if event is not None:
                self._queue.put_nowait(event)

        self._tasks = [
            asyncio.create_task(self._consume_loop(), name=f'event-bus-consumer-{i}')
            for i in range(self.consumers)
        ]

    async def stop(self, timeout: float = 5.0):
        """
        Stop the consumers gracefully.

        Events queued before the call are delivered first. Anything the
        consumers do not reach within `timeout` stays buffered, including
        events whose handler was interrupted. Pending redeliveries are
        cancelled and moved to the dead-letter list.
        """
        self._closed = True
        if not self._tasks:
            return

        # One sentinel per consumer to wake them up
        for _ in self._tasks:
            await self._queue.put(None)

        done, pending = await asyncio.wait(self._tasks, timeout=timeout)
        for task in pending:
            task.cancel()
        for task in pending:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []

        # Events whose handler was cut off go back to the buffer
        for task in pending:
            event = self._in_flight.pop(task, None)
            if event is not None:
                logger.warning(
                    'Delivery of event %s interrupted by shutdown; re-buffered', event.event_id,
                )
                self._queue.put_nowait(replace(event, attempt=event.attempt + 1))

        for timer, event in list(self._timers.values()):
            timer.cancel()
            logger.warning('Redelivery of event %s cancelled by shutdown', event.event_id)
            self._dead_letters.append(event)
            self._settle(event)
        self._timers.clear()

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait until every published event is acknowledged or dead-lettered."""
        try:
            await asyncio.wait_for(self._idle.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def _consume_loop(self):
        task = asyncio.current_task()
        while True:
            event = await self._queue.get()
            try:
                if event is None:
                    return
                self._in_flight[task] = event
                try:
                    await self._deliver(event)
                except Exception:
                    # Log but don't crash the loop
                    logger.exception('Error in event bus consumer loop')
                # Not reached on cancellation, so stop() can re-buffer the event
                self._in_flight.pop(task, None)
            finally:
                self._queue.task_done()

    async def _deliver(self, event: Event):
        handlers = self._handlers.get(event.topic, [])
        if not handlers:
            self._retry_or_dead_letter(event, 'no subscriber')
            return

        try:
            for handler in handlers:
                await handler(event)
        except Exception as e:
            logger.warning(
                'Delivery %d of %s for job %s failed: %s',
                event.attempt, event.topic, event.job_id, e,
            )
            self._retry_or_dead_letter(event, str(e))
            return

        self._settle(event)

    def _retry_or_dead_letter(self, event: Event, reason: str):
        if event.attempt >= self.max_attempts:
            logger.error(
                'Event %s (%s for job %s) dead-lettered after %d attempts: %s',
                event.event_id, event.topic, event.job_id, event.attempt, reason,
            )
            self._dead_letters.append(event)
            self._settle(event)
            return

        delay = self.redelivery_delay * (2 ** (event.attempt - 1))
        retry = replace(event, attempt=event.attempt + 1)
        key = next(self._timer_ids)
        timer = asyncio.get_running_loop().call_later(delay, self._requeue, key)
        self._timers[key] = (timer, retry)

    def _requeue(self, key: int):
        _, event = self._timers.pop(key)
        self._queue.put_nowait(event)

    def _track(self, event: Event):
        self._outstanding += 1
        self._outstanding_jobs[event.job_id] += 1
        self._idle.clear()

    def _settle(self, event: Event):
        self._outstanding -= 1
        self._outstanding_jobs[event.job_id] -= 1
        if self._outstanding_jobs[event.job_id] <= 0:
            del self._outstanding_jobs[event.job_id]
        if self._outstanding <= 0:
            self._outstanding = 0
            self._idle.set()


# Singleton instance
_event_bus: Optional[EventBus] = None


def get_event_bus() -> EventBus:
    """Get the event bus singleton instance."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus


def reset_event_bus():
    """Reset the event bus singleton (for testing)."""
    global _event_bus
    _event_bus = None
