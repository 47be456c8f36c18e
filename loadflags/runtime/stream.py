from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import AsyncIterator, Callable, Deque, List, Optional

from loadflags.runtime.errors import StreamClosedError

logger = logging.getLogger(__name__)

OnNext = Callable[[bool], None]
OnComplete = Callable[[], None]

_DONE = object()


class Subscription:
    def __init__(self, stream: Optional["BusyStream"], on_next: OnNext, on_complete: Optional[OnComplete]) -> None:
        self._stream = stream
        self.on_next = on_next
        self.on_complete = on_complete

    @property
    def active(self) -> bool:
        return self._stream is not None

    def unsubscribe(self) -> None:
        stream, self._stream = self._stream, None
        if stream is not None:
            stream._detach(self)


class BusyStream:
    """Replay-latest boolean stream.

    - subscribe(on_next, on_complete) pushes the current value right away,
      then every later value in the order push() was called; a push made
      from inside a subscriber is delivered after the current value has
      reached every subscriber
    - complete() ends the stream for good: subscribers get on_complete and
      later subscribers only get on_complete
    - `async for value in stream` and `await stream.wait_for(value)` are the
      asyncio views of the same subscription
    """

    def __init__(self, value: bool = False) -> None:
        self._value = bool(value)
        self._subscribers: List[Subscription] = []
        self._closed = False
        # values pushed from inside a subscriber wait here until the current one is delivered
        self._pending: Deque[bool] = deque()
        self._delivering = False

    @property
    def value(self) -> bool:
        return self._value

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, on_next: OnNext, on_complete: Optional[OnComplete] = None) -> Subscription:
        if self._closed:
            sub = Subscription(None, on_next, on_complete)
            self._notify_complete(sub)
            return sub
        sub = Subscription(self, on_next, on_complete)
        self._subscribers.append(sub)
        self._deliver(sub, self._value)
        return sub

    def push(self, value: bool) -> None:
        if self._closed:
            raise StreamClosedError("push on a completed loading stream")
        self._value = bool(value)
        self._pending.append(self._value)
        if self._delivering:
            return
        self._delivering = True
        try:
            while self._pending and not self._closed:
                current = self._pending.popleft()
                for sub in list(self._subscribers):
                    if sub.active:
                        self._deliver(sub, current)
        finally:
            self._delivering = False
            self._pending.clear()

    def complete(self) -> None:
        if self._closed:
            return
        self._closed = True
        subs, self._subscribers = self._subscribers, []
        for sub in subs:
            sub._stream = None
            self._notify_complete(sub)

    def _notify_complete(self, sub: Subscription) -> None:
        if sub.on_complete is None:
            return
        try:
            sub.on_complete()
        except Exception:
            logger.exception("loading stream completion callback failed")

    def _deliver(self, sub: Subscription, value: bool) -> None:
        try:
            sub.on_next(value)
        except Exception:
            logger.exception("loading stream subscriber failed on value=%s", value)

    def _detach(self, sub: Subscription) -> None:
        try:
            self._subscribers.remove(sub)
        except ValueError:
            pass

    def __aiter__(self) -> AsyncIterator[bool]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[bool]:
        queue: asyncio.Queue = asyncio.Queue()
        sub = self.subscribe(queue.put_nowait, lambda: queue.put_nowait(_DONE))
        try:
            while True:
                item = await queue.get()
                if item is _DONE:
                    return
                yield item
        finally:
            sub.unsubscribe()

    async def wait_for(self, value: bool = True) -> None:
        # Fast-path: already satisfied
        if not self._closed and self._value == value:
            return
        values = self._iterate()
        try:
            async for current in values:
                if current == value:
                    return
        finally:
            await values.aclose()
        raise StreamClosedError(f"loading stream completed before reaching {value}")

    def __repr__(self) -> str:
        state = "closed" if self._closed else f"subscribers={len(self._subscribers)}"
        return f"BusyStream(value={self._value}, {state})"
