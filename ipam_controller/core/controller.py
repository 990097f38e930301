# ipam_controller/core/controller.py
"""
Controller - runs one reconciler on a pool of worker threads
"""

from dataclasses import dataclass
from typing import Callable, Hashable, List, Optional
import logging
import threading

from ipam_controller.errors import StoreError
from .workqueue import RateLimitingQueue

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    """
    Outcome of one reconcile

    requeue: retry with per-key exponential backoff
    requeue_after: retry after a fixed delay, backoff is reset
    """
    requeue: bool = False
    requeue_after: Optional[float] = None


Reconcile = Callable[[Hashable], ReconcileResult]


class Controller:
    """
    Worker pool over a rate-limiting queue

    Different keys are reconciled in parallel; one key is never reconciled
    by two workers at the same time. A failing reconcile is logged and
    retried with backoff, it never stops the workers.
    """

    def __init__(
        self,
        name: str,
        reconcile: Reconcile,
        workers: int = 1,
        queue: Optional[RateLimitingQueue] = None,
    ):
        self.name = name
        self.reconcile = reconcile
        self.workers = workers
        self.queue = queue or RateLimitingQueue()
        self._threads: List[threading.Thread] = []
        self._running = False

    def enqueue(self, key: Hashable) -> None:
        self.queue.add(key)

    def start(self) -> None:
        """Start the worker threads"""
        if self._running:
            return
        self._running = True
        for i in range(self.workers):
            thread = threading.Thread(
                target=self._run_worker, daemon=True, name=f"{self.name}-worker-{i}"
            )
            thread.start()
            self._threads.append(thread)
        logger.info(f"Controller {self.name} started with {self.workers} workers")

    def stop(self, timeout: float = 5.0) -> None:
        """Signal the workers to stop and wait for them to finish"""
        self._running = False
        self.queue.shutdown()
        for thread in self._threads:
            thread.join(timeout=timeout)
        self._threads = []
        logger.info(f"Controller {self.name} stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    def _run_worker(self) -> None:
        while self._running:
            self.process_next_item(timeout=0.1)

    def process_next_item(self, timeout: Optional[float] = None) -> bool:
        """
        Reconcile one key from the queue

        Returns:
            False if no key was ready
        """
        key = self.queue.get(timeout=timeout)
        if key is None:
            return False

        try:
            result = self.reconcile(key)
        except StoreError as e:
            attempt = self.queue.num_requeues(key) + 1
            logger.info(f"[{self.name}] {key}: store error, retry {attempt}: {e}")
            self.queue.add_rate_limited(key)
        except Exception as e:
            logger.exception(f"[{self.name}] {key}: reconcile failed: {e}")
            self.queue.add_rate_limited(key)
        else:
            if result.requeue_after:
                self.queue.forget(key)
                self.queue.add_after(key, result.requeue_after)
            elif result.requeue:
                self.queue.add_rate_limited(key)
            else:
                self.queue.forget(key)
        finally:
            self.queue.done(key)
        return True
