from __future__ import annotations

"""Bounded scatter/gather for blocking feed calls, plus a per-provider throttle."""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, Iterable, List, Optional, TypeVar

from .errors import UpstreamFetchError

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class Throttle:
    """Minimum delay between successive calls to one provider.

    Advisory only: callers that arrive together are serialised, nothing is queued
    or dropped.
    """

    def __init__(
        self,
        min_interval: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Any] = time.sleep,
    ):
        self.min_interval = max(0.0, min_interval)
        self._clock = clock
        self._sleep = sleep
        self._last: Optional[float] = None
        self._lock = threading.Lock()

    def wait(self) -> None:
        with self._lock:
            now = self._clock()
            if self._last is not None:
                delay = self.min_interval - (now - self._last)
                if delay > 0:
                    self._sleep(delay)
                    now = self._clock()
            self._last = now


@dataclass
class Outcome(Generic[T, R]):
    item: T
    value: Optional[R] = None
    error: Optional[UpstreamFetchError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def gather_bounded_async(
    func: Callable[[T], R],
    items: Iterable[T],
    max_concurrency: int = 4,
) -> List[Outcome[T, R]]:
    """Run blocking ``func`` over ``items`` with at most ``max_concurrency`` in flight.

    Results keep input order. ``UpstreamFetchError`` is captured per item;
    anything else propagates once every call has finished.
    """
    items = list(items)
    semaphore = asyncio.Semaphore(max(1, max_concurrency))

    async def _one(item: T) -> R:
        async with semaphore:
            return await asyncio.to_thread(func, item)

    results = await asyncio.gather(*(_one(item) for item in items), return_exceptions=True)

    outcomes: List[Outcome[T, R]] = []
    for item, result in zip(items, results):
        if isinstance(result, UpstreamFetchError):
            outcomes.append(Outcome(item=item, error=result))
        elif isinstance(result, BaseException):
            raise result
        else:
            outcomes.append(Outcome(item=item, value=result))
    failed = sum(1 for o in outcomes if not o.ok)
    if failed:
        logger.warning("%d of %d fetches failed", failed, len(outcomes))
    return outcomes


def gather_bounded(
    func: Callable[[T], R],
    items: Iterable[T],
    max_concurrency: int = 4,
) -> List[Outcome[T, R]]:
    return asyncio.run(gather_bounded_async(func, items, max_concurrency))
