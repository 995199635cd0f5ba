"""Async coordination primitives for git-watchtower.

Poll cycles and user-triggered actions share one asyncio event loop. These
helpers keep slow or failing collaborator calls from overlapping:

- Mutex: FIFO-fair lock serializing poll cycles and branch switches
- with_timeout: stop waiting on an operation after a deadline
- retry: exponential backoff for transient failures
- Debouncer / Throttler: pace user-triggered actions
"""

import asyncio
import time
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Optional, Set, TypeVar

from git_watchtower.exceptions import InvalidUsageError, OperationTimeoutError
from git_watchtower.logging_config import get_logger

T = TypeVar("T")

logger = get_logger(__name__)

# Strong references to callbacks' coroutines until they finish
_background_tasks: Set[asyncio.Task] = set()


class Mutex:
    """FIFO-fair asyncio mutex.

    Unlike ``asyncio.Lock``, ``release()`` hands ownership straight to the
    oldest waiter, so there is never a moment where the lock is free while
    someone is queued for it. Later arrivals cannot overtake the queue.
    """

    def __init__(self):
        self._locked = False
        self._waiters: Deque[asyncio.Future] = deque()

    def locked(self) -> bool:
        """Return True while some caller holds the lock."""
        return self._locked

    @property
    def queue_length(self) -> int:
        """Number of callers waiting to acquire."""
        return sum(1 for waiter in self._waiters if not waiter.done())

    async def acquire(self) -> None:
        """Wait until the caller is the sole holder."""
        if not self._locked:
            self._locked = True
            return

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Ownership arrived before the cancellation; pass it on
                self.release()
            else:
                try:
                    self._waiters.remove(waiter)
                except ValueError:
                    pass
            raise

    def release(self) -> None:
        """Hand the lock to the next waiter, or unlock if nobody is queued."""
        if not self._locked:
            raise RuntimeError("Mutex.release() called on an unlocked mutex")

        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                # Still locked: ownership moves to the waiter
                waiter.set_result(None)
                return

        self._locked = False

    async def __aenter__(self) -> "Mutex":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.release()

    async def run_exclusive(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run ``operation`` while holding the lock; release on every exit path."""
        async with self:
            return await operation()


def _discard_outcome(future: asyncio.Future) -> None:
    """Retrieve a late outcome nobody is waiting for anymore."""
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.debug(f"Operation finished after its deadline with error: {exc!r}")


async def with_timeout(
    awaitable: Awaitable[T],
    timeout: Optional[float],
    message: str = "Operation timed out",
) -> T:
    """Await ``awaitable`` for at most ``timeout`` seconds.

    Raises OperationTimeoutError(message) if the deadline passes first.
    Otherwise the operation's own result or exception propagates unchanged.
    The operation itself is not cancelled; only the wait stops.
    """
    task = asyncio.ensure_future(awaitable)
    try:
        done, _ = await asyncio.wait({task}, timeout=timeout)
    except asyncio.CancelledError:
        task.add_done_callback(_discard_outcome)
        raise

    if task in done:
        return task.result()

    task.add_done_callback(_discard_outcome)
    raise OperationTimeoutError(message)


async def retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    should_retry: Optional[Callable[[BaseException], bool]] = None,
) -> T:
    """Call ``operation`` until it succeeds, backing off exponentially.

    Waits ``base_delay * 2 ** attempt_index`` seconds (capped at
    ``max_delay``) between attempts. When attempts run out or
    ``should_retry`` rejects the error, the original exception is re-raised.
    Cancellation is a BaseException and is never retried.

    Args:
        operation: Zero-argument callable returning a fresh awaitable per attempt
        max_attempts: Total number of invocations allowed
        base_delay: First backoff delay in seconds
        max_delay: Upper bound for a single backoff delay
        should_retry: Predicate deciding if an error is worth another attempt
    """
    if max_attempts < 1:
        raise InvalidUsageError(f"max_attempts must be at least 1, got {max_attempts}")

    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as e:
            if should_retry is not None and not should_retry(e):
                raise
            if attempt + 1 >= max_attempts:
                raise

            delay = min(base_delay * (2 ** attempt), max_delay)
            logger.debug(f"Attempt {attempt + 1}/{max_attempts} failed ({e}); retrying in {delay}s")
            attempt += 1
            await asyncio.sleep(delay)


async def sleep(seconds: float) -> None:
    """Suspend the current task for ``seconds``."""
    await asyncio.sleep(seconds)


def _invoke(fn: Callable[..., Any], args: tuple, kwargs: dict) -> None:
    """Call ``fn``; schedule it as a task if it turns out to be a coroutine."""
    result = fn(*args, **kwargs)
    if asyncio.iscoroutine(result):
        task = asyncio.ensure_future(result)
        _background_tasks.add(task)
        task.add_done_callback(_background_tasks.discard)


class Debouncer:
    """Run ``fn`` once calls have been quiet for ``wait`` seconds.

    Every trigger restarts the quiet period; the last call's arguments win.
    """

    def __init__(self, fn: Callable[..., Any], wait: float):
        self._fn = fn
        self.wait = wait
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def trigger(self, *args, **kwargs) -> None:
        self.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.wait, self._fire, args, kwargs)

    __call__ = trigger

    def cancel(self) -> None:
        """Drop a pending call without running it."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self, args: tuple, kwargs: dict) -> None:
        self._handle = None
        _invoke(self._fn, args, kwargs)


class Throttler:
    """Run ``fn`` at most once per ``interval`` seconds.

    The first call in a quiet window runs immediately. Calls during the
    cooldown collapse into a single trailing call at the end of the window;
    further calls while that trailing call is scheduled are ignored.
    """

    def __init__(self, fn: Callable[..., Any], interval: float):
        self._fn = fn
        self.interval = interval
        self._last_call: Optional[float] = None
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def trigger(self, *args, **kwargs) -> None:
        if self._handle is not None:
            return

        now = time.monotonic()
        if self._last_call is None or now - self._last_call >= self.interval:
            self._last_call = now
            _invoke(self._fn, args, kwargs)
            return

        remaining = self.interval - (now - self._last_call)
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(remaining, self._fire_trailing, args, kwargs)

    __call__ = trigger

    def cancel(self) -> None:
        """Drop a scheduled trailing call."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire_trailing(self, args: tuple, kwargs: dict) -> None:
        self._handle = None
        self._last_call = time.monotonic()
        _invoke(self._fn, args, kwargs)


def debounce(fn: Callable[..., Any], wait: float) -> Debouncer:
    """Create a Debouncer handle for ``fn``."""
    return Debouncer(fn, wait)


def throttle(fn: Callable[..., Any], interval: float) -> Throttler:
    """Create a Throttler handle for ``fn``."""
    return Throttler(fn, interval)
