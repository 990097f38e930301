# ipam_controller/core/workqueue.py
"""
Rate-limiting work queue
Deduplicates keys and never hands one key to two workers at once
"""

from collections import deque
from typing import Deque, Dict, Hashable, List, Optional, Set, Tuple
import heapq
import itertools
import threading
import time

from ipam_controller.config import settings


class RateLimitingQueue:
    """
    Work queue of resource keys

    - a key queued twice is processed once
    - a key added while a worker holds it is queued again on done()
    - add_after() delays a key, add_rate_limited() delays it by
      base * 2**failures capped at max_delay until forget() is called
    """

    def __init__(
        self,
        base_delay: Optional[float] = None,
        max_delay: Optional[float] = None,
    ):
        self.base_delay = settings.BACKOFF_BASE_SECONDS if base_delay is None else base_delay
        self.max_delay = settings.BACKOFF_MAX_SECONDS if max_delay is None else max_delay

        self._cond = threading.Condition()
        self._queue: Deque[Hashable] = deque()
        self._dirty: Set[Hashable] = set()
        self._processing: Set[Hashable] = set()
        self._waiting: List[Tuple[float, int, Hashable]] = []
        self._failures: Dict[Hashable, int] = {}
        self._counter = itertools.count()
        self._shutting_down = False

    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)

    def _add_locked(self, key: Hashable) -> None:
        if self._shutting_down or key in self._dirty:
            return
        self._dirty.add(key)
        if key in self._processing:
            return
        self._queue.append(key)
        self._cond.notify()

    def _promote_waiting_locked(self) -> Optional[float]:
        """Move due delayed keys into the queue, return seconds until the next one"""
        now = time.monotonic()
        while self._waiting and self._waiting[0][0] <= now:
            _, _, key = heapq.heappop(self._waiting)
            self._add_locked(key)
        if self._waiting:
            return self._waiting[0][0] - now
        return None

    def add(self, key: Hashable) -> None:
        with self._cond:
            self._add_locked(key)

    def add_after(self, key: Hashable, delay: float) -> None:
        if delay <= 0:
            self.add(key)
            return
        with self._cond:
            if self._shutting_down:
                return
            heapq.heappush(self._waiting, (time.monotonic() + delay, next(self._counter), key))
            self._cond.notify_all()

    def when(self, key: Hashable) -> float:
        """Next backoff delay for key, counting one more failure"""
        with self._cond:
            failures = self._failures.get(key, 0)
            self._failures[key] = failures + 1
        return min(self.base_delay * (2 ** failures), self.max_delay)

    def add_rate_limited(self, key: Hashable) -> None:
        self.add_after(key, self.when(key))

    def forget(self, key: Hashable) -> None:
        with self._cond:
            self._failures.pop(key, None)

    def num_requeues(self, key: Hashable) -> int:
        with self._cond:
            return self._failures.get(key, 0)

    def get(self, timeout: Optional[float] = None) -> Optional[Hashable]:
        """
        Block until a key is ready

        Returns:
            The key, or None on shutdown or timeout
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while True:
                next_due = self._promote_waiting_locked()
                if self._queue:
                    key = self._queue.popleft()
                    self._processing.add(key)
                    self._dirty.discard(key)
                    return key
                if self._shutting_down:
                    return None

                wait = next_due
                if deadline is not None:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        return None
                    wait = remaining if wait is None else min(wait, remaining)
                self._cond.wait(wait)

    def done(self, key: Hashable) -> None:
        """Mark a key processed; re-queue it if it was added meanwhile"""
        with self._cond:
            self._processing.discard(key)
            if key in self._dirty:
                self._queue.append(key)
                self._cond.notify()

    def is_idle(self) -> bool:
        """Nothing queued, delayed or in progress"""
        with self._cond:
            return not (self._queue or self._processing or self._waiting)

    def shutdown(self) -> None:
        with self._cond:
            self._shutting_down = True
            self._cond.notify_all()
