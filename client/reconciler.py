import asyncio
import inspect
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Iterable, List, Optional, Set

from pydantic import ValidationError

from client.api import MatchApiClient
from client.feeds import room_channel, subscribe_channel, user_channel
from constants import (
    ACCOUNT_POLL_INTERVAL, POLL_MAX_BACKOFF, POLL_MAX_FAILURES, PUSH_MAX_RETRIES, PUSH_RETRY_BASE,
    ROOM_POLL_INTERVAL,
)
from schemas.matches import Match, MatchEvent
from logging_config import get_logger

logger = get_logger(__name__)

# offer(match, source) -> True when the match had not been seen before
Sink = Callable[[Match, str], Awaitable[bool]]
Sleep = Callable[[float], Awaitable[Any]]

_CLOSED = object()


class PushListener:
    """Consumes a push stream, reconnecting with exponential backoff.

    The retry counter belongs to this listener. Any delivered event resets it;
    after ``max_retries`` consecutive failures the listener stops and leaves
    the pollers to carry on.
    """

    def __init__(self, name: str, connect: Callable[[], AsyncIterator[Dict[str, Any]]],
                 base_delay: float = PUSH_RETRY_BASE, max_retries: int = PUSH_MAX_RETRIES,
                 sleep: Sleep = asyncio.sleep):
        self.name = name
        self.connect = connect
        self.base_delay = base_delay
        self.max_retries = max_retries
        self.sleep = sleep
        self.attempt = 0
        self.exhausted = False

    async def run(self, sink: Sink):
        while True:
            try:
                async for payload in self.connect():
                    self.attempt = 0
                    try:
                        match = MatchEvent.model_validate(payload).to_match()
                    except ValidationError as e:
                        logger.warning(f"{self.name}: ignoring malformed event: {e}")
                        continue
                    await sink(match, self.name)
                logger.info(f"{self.name}: stream ended")
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"{self.name}: push delivery failed: {e}")

            if self.attempt >= self.max_retries:
                self.exhausted = True
                logger.info(f"{self.name}: giving up after {self.attempt} retries, relying on polling")
                return
            delay = self.base_delay * 2 ** self.attempt
            self.attempt += 1
            logger.debug(f"{self.name}: reconnecting in {delay:.1f}s (retry {self.attempt}/{self.max_retries})")
            await self.sleep(delay)


class PullPoller:
    """Polls an authoritative query on a fixed interval.

    Consecutive failures stretch the wait to ``interval * 2**failures`` (capped
    at ``max_backoff``); after ``max_failures`` in a row the poller stops.
    """

    def __init__(self, name: str, fetch: Callable[[], Awaitable[List[Match]]], interval: float,
                 max_failures: int = POLL_MAX_FAILURES, max_backoff: float = POLL_MAX_BACKOFF,
                 stop_on_match: bool = False, sleep: Sleep = asyncio.sleep):
        self.name = name
        self.fetch = fetch
        self.interval = interval
        self.max_failures = max_failures
        self.max_backoff = max_backoff
        self.stop_on_match = stop_on_match
        self.sleep = sleep
        self.failures = 0
        self.exhausted = False

    async def poll_once(self, sink: Sink) -> int:
        """New matches handed to ``sink``; a ``stop_on_match`` poller counts every match returned."""
        matches = await self.fetch()
        new = 0
        for match in matches:
            if await sink(match, self.name):
                new += 1
        return len(matches) if self.stop_on_match else new

    async def run(self, sink: Sink):
        while True:
            try:
                found = await self.poll_once(sink)
                self.failures = 0
                if self.stop_on_match and found:
                    logger.info(f"{self.name}: match found, polling stopped")
                    return
                delay = self.interval
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.failures += 1
                if self.failures >= self.max_failures:
                    self.exhausted = True
                    logger.warning(f"{self.name}: giving up after {self.failures} consecutive failures: {e}")
                    return
                delay = min(self.interval * 2 ** self.failures, self.max_backoff)
                logger.warning(f"{self.name}: poll failed ({self.failures}/{self.max_failures}), retrying in {delay:.1f}s: {e}")
            await self.sleep(delay)


class MatchReconciler:
    """Merges push and pull producers into one stream where each match appears once.

    Every producer hands matches to ``offer``, which checks and updates the
    seen set under one lock before emitting.
    """

    def __init__(self, on_match: Callable[[Match], Any] = None):
        self.on_match = on_match
        self._seen: Set[str] = set()
        self._lock = asyncio.Lock()
        self._queue: asyncio.Queue = asyncio.Queue()
        self._producers: List[Any] = []
        self._tasks: List[asyncio.Task] = []
        self._started = False
        self._closed = False

    def add_producer(self, producer):
        if self._started:
            raise RuntimeError("Cannot add producers after start()")
        self._producers.append(producer)
        return producer

    @property
    def producers(self) -> List[Any]:
        return list(self._producers)

    def mark_seen(self, match_ids: Iterable[str]):
        """Pre-load ids the caller already knows about so they are never emitted."""
        self._seen.update(match_ids)

    def has_seen(self, match_id: str) -> bool:
        return match_id in self._seen

    async def offer(self, match: Match, source: str = "manual") -> bool:
        async with self._lock:
            if self._closed or match.id in self._seen:
                return False
            self._seen.add(match.id)
            self._queue.put_nowait(match)
        logger.info(f"New match {match.id} ({match.title}) via {source}")
        if self.on_match is not None:
            # callback errors stay here so producers do not count them as delivery failures
            try:
                result = self.on_match(match)
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"on_match callback failed for {match.id}: {e}", exc_info=True)
        return True

    def start(self):
        if self._started:
            return
        self._started = True
        for producer in self._producers:
            self._tasks.append(asyncio.create_task(producer.run(self.offer), name=producer.name))

    async def close(self):
        """Cancel every producer. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        self._queue.put_nowait(_CLOSED)

    async def events(self) -> AsyncIterator[Match]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                # let other consumers see the end too
                self._queue.put_nowait(_CLOSED)
                return
            yield item

    async def next_match(self, timeout: Optional[float] = None) -> Optional[Match]:
        """The next new match, or None when closed or the timeout elapses."""
        try:
            item = await asyncio.wait_for(self._queue.get(), timeout)
        except asyncio.TimeoutError:
            return None
        if item is _CLOSED:
            self._queue.put_nowait(_CLOSED)
            return None
        return item

    async def __aenter__(self):
        self.start()
        return self

    async def __aexit__(self, *exc_info):
        await self.close()


def for_room(api: MatchApiClient, room_id: str, redis_client=None, on_match: Callable[[Match], Any] = None,
             interval: float = ROOM_POLL_INTERVAL) -> MatchReconciler:
    """Reconciler for a voting screen: room channel push plus a short room poll."""
    reconciler = MatchReconciler(on_match=on_match)
    if redis_client is not None:
        channel = room_channel(room_id)
        reconciler.add_producer(PushListener(f"push:{channel}", lambda: subscribe_channel(redis_client, channel)))
    reconciler.add_producer(PullPoller(
        f"poll:room:{room_id}", lambda: api.room_matches(room_id), interval=interval, stop_on_match=True,
    ))
    return reconciler


def for_account(api: MatchApiClient, user_id: str, redis_client=None, on_match: Callable[[Match], Any] = None,
                interval: float = ACCOUNT_POLL_INTERVAL) -> MatchReconciler:
    """Reconciler for the whole session: user channel push plus a slower background poll."""
    reconciler = MatchReconciler(on_match=on_match)
    if redis_client is not None:
        channel = user_channel(user_id)
        reconciler.add_producer(PushListener(f"push:{channel}", lambda: subscribe_channel(redis_client, channel)))
    reconciler.add_producer(PullPoller(f"poll:user:{user_id}", api.check_user_matches, interval=interval))
    return reconciler
