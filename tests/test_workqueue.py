"""Tests for the work queue and the controller worker loop"""
import logging
import threading
import time

from ipam_controller.core import Controller, RateLimitingQueue, ReconcileResult
from ipam_controller.errors import ConflictError

from conftest import eventually


class TestRateLimitingQueue:

    def test_duplicate_keys_are_collapsed(self):
        queue = RateLimitingQueue()
        queue.add("a")
        queue.add("a")
        queue.add("b")
        assert len(queue) == 2
        assert queue.get(timeout=0) == "a"
        assert queue.get(timeout=0) == "b"

    def test_get_times_out(self):
        queue = RateLimitingQueue()
        assert queue.get(timeout=0.01) is None

    def test_key_added_while_processing_is_requeued_on_done(self):
        queue = RateLimitingQueue()
        queue.add("a")
        key = queue.get(timeout=0)

        queue.add("a")
        assert len(queue) == 0
        assert queue.get(timeout=0.01) is None

        queue.done(key)
        assert queue.get(timeout=0) == "a"

    def test_add_after_delays_key(self):
        queue = RateLimitingQueue()
        queue.add_after("a", 0.05)
        assert queue.get(timeout=0) is None
        assert not queue.is_idle()
        assert queue.get(timeout=1.0) == "a"

    def test_backoff_grows_and_is_capped(self):
        queue = RateLimitingQueue(base_delay=0.01, max_delay=0.05)
        delays = [queue.when("a") for _ in range(5)]
        assert delays == [0.01, 0.02, 0.04, 0.05, 0.05]
        assert queue.num_requeues("a") == 5

    def test_forget_resets_backoff(self):
        queue = RateLimitingQueue(base_delay=0.01, max_delay=1.0)
        queue.when("a")
        queue.when("a")
        queue.forget("a")
        assert queue.num_requeues("a") == 0
        assert queue.when("a") == 0.01

    def test_shutdown_releases_getters(self):
        queue = RateLimitingQueue()
        results = []
        thread = threading.Thread(target=lambda: results.append(queue.get()))
        thread.start()
        queue.shutdown()
        thread.join(timeout=1.0)
        assert results == [None]

    def test_is_idle(self):
        queue = RateLimitingQueue()
        assert queue.is_idle()
        queue.add("a")
        assert not queue.is_idle()
        key = queue.get(timeout=0)
        assert not queue.is_idle()
        queue.done(key)
        assert queue.is_idle()


class TestController:

    def test_successful_reconcile_forgets_key(self):
        queue = RateLimitingQueue(base_delay=0.01)
        seen = []
        controller = Controller("test", lambda key: seen.append(key) or ReconcileResult(), queue=queue)
        queue.when("a")

        controller.enqueue("a")
        assert controller.process_next_item(timeout=0)
        assert seen == ["a"]
        assert queue.num_requeues("a") == 0
        assert queue.is_idle()

    def test_no_item(self):
        controller = Controller("test", lambda key: ReconcileResult())
        assert not controller.process_next_item(timeout=0)

    def test_failing_reconcile_is_retried_with_backoff(self):
        queue = RateLimitingQueue(base_delay=0.01, max_delay=0.01)
        calls = []

        def reconcile(key):
            calls.append(key)
            if len(calls) < 3:
                raise RuntimeError("transient")
            return ReconcileResult()

        controller = Controller("test", reconcile, queue=queue)
        controller.enqueue("a")
        for _ in range(3):
            assert controller.process_next_item(timeout=1.0)
        assert calls == ["a", "a", "a"]
        assert queue.num_requeues("a") == 0

    def test_store_errors_are_retried(self, caplog):
        caplog.set_level(logging.INFO, logger="ipam_controller.core.controller")
        queue = RateLimitingQueue(base_delay=0.01)
        calls = []

        def reconcile(key):
            calls.append(key)
            if len(calls) == 1:
                raise ConflictError("stale")
            return ReconcileResult()

        controller = Controller("test", reconcile, queue=queue)
        controller.enqueue("a")
        controller.process_next_item(timeout=0)
        assert queue.num_requeues("a") == 1
        assert controller.process_next_item(timeout=1.0)
        assert len(calls) == 2
        assert "a: store error, retry 1: stale" in caplog.text

    def test_requeue_after(self):
        queue = RateLimitingQueue()
        results = iter([ReconcileResult(requeue_after=0.02), ReconcileResult()])
        controller = Controller("test", lambda key: next(results), queue=queue)

        controller.enqueue("a")
        controller.process_next_item(timeout=0)
        assert queue.get(timeout=0) is None
        assert controller.process_next_item(timeout=1.0)
        assert queue.is_idle()

    def test_requeue_uses_backoff(self):
        queue = RateLimitingQueue(base_delay=0.01)
        results = iter([ReconcileResult(requeue=True), ReconcileResult()])
        controller = Controller("test", lambda key: next(results), queue=queue)

        controller.enqueue("a")
        controller.process_next_item(timeout=0)
        assert queue.num_requeues("a") == 1
        assert controller.process_next_item(timeout=1.0)

    def test_one_key_is_never_reconciled_concurrently(self):
        active = set()
        overlaps = []
        done = []
        lock = threading.Lock()

        def reconcile(key):
            with lock:
                if key in active:
                    overlaps.append(key)
                active.add(key)
            time.sleep(0.01)
            with lock:
                active.discard(key)
                done.append(key)
            return ReconcileResult()

        controller = Controller("test", reconcile, workers=4)
        controller.start()
        try:
            for _ in range(20):
                controller.enqueue("a")
                controller.enqueue("b")
                time.sleep(0.002)
            assert eventually(controller.queue.is_idle)
        finally:
            controller.stop()

        assert overlaps == []
        assert "a" in done and "b" in done
        assert not controller.is_running
