import asyncio
import itertools
import json
import logging
import queue
import threading
from typing import Callable, Dict, Optional

import redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

QUEUE_UPDATED = "queue_updated"

Subscriber = Callable[[dict], None]


class SubscriberGone(Exception):
    """Raised by a subscriber whose connection is gone; it gets unsubscribed."""


class AsyncQueueSubscriber:
    """Bridges the dispatcher thread to an asyncio consumer (e.g. a WebSocket).

    Events are handed to the owning loop with ``call_soon_threadsafe`` and
    buffered in a bounded ``asyncio.Queue``. A full buffer drops the event.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, maxsize: int = 100):
        self.loop = loop
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def __call__(self, event: dict) -> None:
        try:
            self.loop.call_soon_threadsafe(self._offer, event)
        except RuntimeError as e:  # loop closed
            raise SubscriberGone(str(e)) from e

    def _offer(self, event: dict) -> None:
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning("Subscriber buffer full, dropped %s event", event.get("event"))

    async def get(self) -> dict:
        return await self.queue.get()


class NotificationService:
    """Single-topic fan-out of queue_updated snapshots.

    ``publish`` only enqueues and never blocks the caller. A background
    dispatcher thread delivers each event at most once to every subscriber
    and, when configured, mirrors it to a Redis pub/sub channel.
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        channel: str = QUEUE_UPDATED,
        max_pending: int = 1000,
    ):
        self.channel = channel
        self._subscribers: Dict[int, Subscriber] = {}
        self._subscribers_lock = threading.Lock()
        self._ids = itertools.count(1)
        self._events: "queue.Queue[Optional[dict]]" = queue.Queue(maxsize=max_pending)
        self._thread: Optional[threading.Thread] = None
        self.dropped_events = 0

        self.redis = None
        self.redis_available = False
        if redis_url:
            self._connect_redis(redis_url)

    # -------------------- lifecycle --------------------

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._thread = threading.Thread(target=self._run, name="queue-notifier", daemon=True)
        self._thread.start()
        logger.info("Notification dispatcher started")

    def stop(self, timeout: float = 2.0) -> None:
        thread = self._thread
        if thread is None:
            return
        self._events.put(None)
        thread.join(timeout)
        self._thread = None
        logger.info("Notification dispatcher stopped")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # -------------------- subscriptions --------------------

    def subscribe(self, callback: Subscriber) -> int:
        token = next(self._ids)
        with self._subscribers_lock:
            self._subscribers[token] = callback
        logger.info("Subscriber %d joined %s", token, self.channel)
        return token

    def unsubscribe(self, token: int) -> bool:
        with self._subscribers_lock:
            removed = self._subscribers.pop(token, None) is not None
        if removed:
            logger.info("Subscriber %d left %s", token, self.channel)
        return removed

    @property
    def subscriber_count(self) -> int:
        with self._subscribers_lock:
            return len(self._subscribers)

    # -------------------- publishing --------------------

    def publish(self, snapshot: dict) -> None:
        event = {"event": QUEUE_UPDATED, "data": snapshot}
        try:
            self._events.put_nowait(event)
        except queue.Full:
            self.dropped_events += 1
            logger.warning("Notification backlog full, dropped %s event", QUEUE_UPDATED)

    def drain(self) -> int:
        """Deliver every pending event on the calling thread. Returns the count."""
        delivered = 0
        while True:
            try:
                event = self._events.get_nowait()
            except queue.Empty:
                return delivered
            if event is not None:
                self._dispatch(event)
                delivered += 1

    def _run(self) -> None:
        while True:
            event = self._events.get()
            if event is None:
                break
            self._dispatch(event)

    def _dispatch(self, event: dict) -> None:
        with self._subscribers_lock:
            targets = list(self._subscribers.items())

        for token, callback in targets:
            try:
                callback(event)
            except SubscriberGone:
                self.unsubscribe(token)
            except Exception:
                logger.error("Subscriber %d failed on %s", token, event.get("event"), exc_info=True)

        if self.redis_available:
            self._mirror(event)

    # -------------------- redis mirror --------------------

    def _connect_redis(self, redis_url: str) -> None:
        try:
            self.redis = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_connect_timeout=1  # Fail fast if Redis is down
            )
            self.redis.ping()
            self.redis_available = True
            logger.info("Mirroring queue events to Redis channel %s", self.channel)
        except (RedisError, ValueError) as e:
            logger.warning("Redis unreachable (%s). Local fan-out only.", e)
            self.redis_available = False

    def _mirror(self, event: dict) -> None:
        try:
            self.redis.publish(self.channel, json.dumps(event))
        except RedisError as e:
            self._handle_redis_error(e)

    def _handle_redis_error(self, e: Exception) -> None:
        logger.warning("Redis error: %s. Disabling Redis mirror.", e)
        self.redis_available = False
