"""
Unit Tests for the in-process webhook queue

Retry timing is driven by an injected clock, so nothing here sleeps
except the timeout tests.
"""
import threading
import time

import pytest

from shipsarthi.exceptions import DuplicateEventError, QueueFullError, ValidationError
from shipsarthi.services.webhook_queue import WebhookQueue


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class ScriptedProcessor:
    """Raises the scripted exceptions in order, then succeeds."""

    def __init__(self, *failures):
        self.failures = list(failures)
        self.jobs = []

    def __call__(self, job):
        self.jobs.append((job.id, job.attempts))
        if self.failures:
            raise self.failures.pop(0)
        return {"ok": True}


class TestEnqueue:
    def test_enqueue_returns_job_id_and_tracks_dedup_key(self):
        queue = WebhookQueue(ScriptedProcessor(), max_size=10)
        job_id = queue.enqueue("scan-status", {"a": 1}, dedup_key="scan:1")

        assert job_id.startswith("scan-status-")
        assert queue.is_pending("scan:1")
        assert not queue.is_pending("scan:2")
        assert queue.get_stats()["queue_size"] == 1

    def test_full_queue_rejects(self):
        queue = WebhookQueue(ScriptedProcessor(), max_size=2)
        queue.enqueue("epod", {})
        queue.enqueue("epod", {})

        with pytest.raises(QueueFullError) as exc:
            queue.enqueue("epod", {})
        assert exc.value.status_code == 503
        assert exc.value.retry_after > 0

    def test_stopping_queue_rejects(self):
        queue = WebhookQueue(ScriptedProcessor(), max_size=2)
        queue.stop(timeout=1)
        with pytest.raises(QueueFullError):
            queue.enqueue("epod", {})


class TestProcessing:
    def test_jobs_run_in_arrival_order(self):
        seen = []
        queue = WebhookQueue(lambda job: seen.append(job.payload["n"]), max_size=10)
        for n in range(3):
            queue.enqueue("scan-status", {"n": n})

        assert queue.drain() == 3
        assert seen == [0, 1, 2]
        assert queue.get_stats()["processed"] == 3

    def test_success_clears_pending_key(self):
        queue = WebhookQueue(ScriptedProcessor(), max_size=10)
        queue.enqueue("scan-status", {}, dedup_key="k")
        queue.drain()
        assert not queue.is_pending("k")

    def test_retries_with_exponential_backoff(self):
        clock = FakeClock()
        processor = ScriptedProcessor(RuntimeError("db down"), RuntimeError("db down"))
        queue = WebhookQueue(processor, max_size=10, max_retries=3, retry_delay=1.0, clock=clock)
        queue.enqueue("scan-status", {}, dedup_key="k")

        assert queue.process_next() is True   # attempt 1 fails, due at t=1
        assert queue.process_next() is False  # not due yet
        assert queue.is_pending("k")

        clock.now = 1.0
        assert queue.process_next() is True   # attempt 2 fails, due at t=3
        clock.now = 2.9
        assert queue.process_next() is False
        clock.now = 3.0
        assert queue.process_next() is True   # attempt 3 succeeds

        stats = queue.get_stats()
        assert stats["retries"] == 2
        assert stats["processed"] == 1
        assert stats["failed"] == 0
        assert [attempts for _, attempts in processor.jobs] == [1, 2, 3]
        assert not queue.is_pending("k")

    def test_dropped_after_max_retries(self):
        processor = ScriptedProcessor(*[RuntimeError("boom")] * 10)
        queue = WebhookQueue(processor, max_size=10, max_retries=3, retry_delay=0)
        queue.enqueue("epod", {"waybill": "1"})

        queue.drain()

        stats = queue.get_stats()
        assert len(processor.jobs) == 4  # first attempt + 3 retries
        assert stats["retries"] == 3
        assert stats["failed"] == 1
        assert stats["queue_size"] == 0

    def test_duplicate_counts_as_handled(self):
        queue = WebhookQueue(ScriptedProcessor(DuplicateEventError(dedup_key="k")), max_size=10)
        queue.enqueue("scan-status", {}, dedup_key="k")
        queue.drain()

        stats = queue.get_stats()
        assert stats["duplicates"] == 1
        assert stats["failed"] == 0
        assert stats["retries"] == 0

    def test_validation_error_is_not_retried(self):
        processor = ScriptedProcessor(ValidationError("bad image"))
        queue = WebhookQueue(processor, max_size=10, max_retries=3, retry_delay=0)
        queue.enqueue("epod", {})
        queue.drain()

        assert len(processor.jobs) == 1
        assert queue.get_stats()["failed"] == 1

    def test_one_failing_job_does_not_block_others(self):
        def processor(job):
            if job.payload["n"] == 1:
                raise RuntimeError("bad job")

        queue = WebhookQueue(processor, max_size=10, max_retries=0, retry_delay=0)
        for n in range(3):
            queue.enqueue("scan-status", {"n": n})
        queue.drain()

        stats = queue.get_stats()
        assert stats["processed"] == 2
        assert stats["failed"] == 1

    def test_job_timeout(self):
        release = threading.Event()

        def stuck(job):
            release.wait(5)

        queue = WebhookQueue(stuck, max_size=10, max_retries=0, retry_delay=0, job_timeout=0.1)
        queue.enqueue("qc-image", {})
        try:
            queue.drain()
        finally:
            release.set()

        assert queue.get_stats()["failed"] == 1

    def test_timed_out_job_holds_the_worker(self):
        release = threading.Event()
        lock = threading.Lock()
        active = []
        peak = []

        def processor(job):
            with lock:
                active.append(job.id)
                peak.append(len(active))
            try:
                if job.payload["n"] == 1 and job.attempts == 1:
                    release.wait(5)
            finally:
                with lock:
                    active.remove(job.id)

        queue = WebhookQueue(processor, max_size=10, max_retries=3, retry_delay=0, job_timeout=0.1)
        queue.enqueue("scan-status", {"n": 1})
        queue.enqueue("scan-status", {"n": 2})

        assert queue.drain() == 1  # first attempt times out
        assert queue.process_next() is False  # nothing starts while it still runs
        assert queue.get_stats()["retries"] == 1

        release.set()
        deadline = time.monotonic() + 5
        while queue.get_stats()["processed"] < 2 and time.monotonic() < deadline:
            queue.drain()
            time.sleep(0.01)

        assert queue.get_stats()["processed"] == 2
        assert max(peak) == 1
        assert queue.get_stats()["failed"] == 1


class TestDrainThread:
    def test_background_thread_processes_jobs(self):
        done = threading.Event()
        queue = WebhookQueue(lambda job: done.set(), max_size=10)
        queue.start()
        try:
            queue.enqueue("scan-status", {})
            assert done.wait(5)
            assert queue.get_stats()["running"] is True
        finally:
            queue.stop(timeout=5)
        assert queue.get_stats()["running"] is False
