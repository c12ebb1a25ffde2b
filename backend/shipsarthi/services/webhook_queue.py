"""
In-process webhook job queue

Decouples the carrier-facing HTTP handlers (which must answer at once)
from processing. One drain thread runs jobs one at a time, in arrival
order, each under a hard timeout, on a single worker thread. A job that
times out cannot be interrupted: no other job starts until its worker
returns, so there is never more than one job running. Failed jobs are
retried with exponential backoff (retry_delay * 2^(attempt-1)) and dropped
after max_retries, counted as permanently failed.

Jobs live only in memory: anything still queued when the process exits
is lost. The carrier redelivers unacknowledged pushes and processing is
idempotent, so the loss window is the queue itself.
"""
import heapq
import itertools
import threading
import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Set

from shipsarthi.core.settings import settings
from shipsarthi.exceptions import DuplicateEventError, QueueFullError, ValidationError
from shipsarthi.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class WebhookJob:
    id: str
    type: str
    payload: Dict[str, Any]
    dedup_key: Optional[str] = None
    attempts: int = 0
    created_at: datetime = field(default_factory=datetime.utcnow)
    last_attempt_at: Optional[datetime] = None
    last_error: Optional[str] = None
    available_at: float = 0.0  # monotonic clock


class WebhookQueue:
    """Bounded FIFO with delayed retries and a single drain thread."""

    def __init__(
        self,
        processor: Callable[[WebhookJob], Any],
        max_size: Optional[int] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        job_timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.processor = processor
        self.max_size = max_size or settings.WEBHOOK_QUEUE_MAX_SIZE
        self.max_retries = settings.WEBHOOK_MAX_RETRIES if max_retries is None else max_retries
        self.retry_delay = settings.WEBHOOK_RETRY_DELAY_SECONDS if retry_delay is None else retry_delay
        self.job_timeout = job_timeout or settings.WEBHOOK_JOB_TIMEOUT_SECONDS
        self._clock = clock

        # (available_at, sequence, job); sequence keeps FIFO order among due jobs
        self._heap: List = []
        self._sequence = itertools.count()
        self._pending_keys: Set[str] = set()
        self._condition = threading.Condition()
        self._processing = False
        self._stopping = False
        self._thread: Optional[threading.Thread] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._inflight: Optional[Future] = None

        self.stats = {"processed": 0, "failed": 0, "retries": 0, "duplicates": 0}

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    def enqueue(self, job_type: str, payload: Dict[str, Any], dedup_key: Optional[str] = None) -> str:
        """Queue a job and return its id. Never blocks on processing."""
        with self._condition:
            if self._stopping:
                raise QueueFullError("Webhook queue is shutting down, retry later", retry_after=5)
            if len(self._heap) >= self.max_size:
                logger.warning(
                    f"Webhook queue full ({len(self._heap)} jobs), rejecting {job_type}",
                    extra={"job_type": job_type, "queue_size": len(self._heap)},
                )
                raise QueueFullError(queue_size=len(self._heap))

            job = WebhookJob(
                id=f"{job_type}-{uuid.uuid4().hex[:12]}",
                type=job_type,
                payload=payload,
                dedup_key=dedup_key,
                available_at=self._clock(),
            )
            heapq.heappush(self._heap, (job.available_at, next(self._sequence), job))
            if dedup_key:
                self._pending_keys.add(dedup_key)
            self._condition.notify()

        logger.info(
            f"Webhook job {job.id} queued",
            extra={"job_id": job.id, "job_type": job_type, "queue_size": len(self._heap)},
        )
        return job.id

    def is_pending(self, dedup_key: Optional[str]) -> bool:
        if not dedup_key:
            return False
        with self._condition:
            return dedup_key in self._pending_keys

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    def _worker_busy(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def _on_worker_done(self, future: Future) -> None:
        with self._condition:
            self._condition.notify_all()

    def _pop_due(self) -> Optional[WebhookJob]:
        """Caller holds the condition. Nothing is due while a timed-out job still runs."""
        if self._worker_busy():
            return None
        if self._heap and self._heap[0][0] <= self._clock():
            return heapq.heappop(self._heap)[2]
        return None

    def _run_with_timeout(self, job: WebhookJob) -> Any:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="webhook-job")
        future = self._executor.submit(self.processor, job)
        with self._condition:
            self._inflight = future
        future.add_done_callback(self._on_worker_done)
        try:
            return future.result(timeout=self.job_timeout)
        except FutureTimeoutError:
            logger.error(
                f"Webhook job {job.id} still running after {self.job_timeout}s, holding the queue until it returns",
                extra={"job_id": job.id, "job_type": job.type},
            )
            raise TimeoutError(f"job exceeded {self.job_timeout}s timeout")

    def process_next(self) -> bool:
        """Run one due job. Returns False when nothing was due."""
        with self._condition:
            job = self._pop_due()
            if job is None:
                return False
            self._processing = True

        job.attempts += 1
        job.last_attempt_at = datetime.utcnow()
        started = time.monotonic()
        try:
            self._run_with_timeout(job)
        except DuplicateEventError:
            self._finish(job, "duplicates")
            logger.info(f"Webhook job {job.id} was a duplicate", extra={"job_id": job.id})
        except ValidationError as e:
            # Bad data will not improve on retry
            job.last_error = e.message
            self._finish(job, "failed")
            logger.error(
                f"Webhook job {job.id} rejected: {e.message}",
                extra={"job_id": job.id, "job_type": job.type, "details": e.details},
            )
        except Exception as e:
            job.last_error = str(e)
            self._retry_or_drop(job)
        else:
            self._finish(job, "processed")
            logger.info(
                f"Webhook job {job.id} processed",
                extra={
                    "job_id": job.id,
                    "job_type": job.type,
                    "attempts": job.attempts,
                    "duration_ms": int((time.monotonic() - started) * 1000),
                },
            )
        finally:
            with self._condition:
                self._processing = False
        return True

    def _finish(self, job: WebhookJob, outcome: str) -> None:
        with self._condition:
            self.stats[outcome] += 1
            if job.dedup_key:
                self._pending_keys.discard(job.dedup_key)

    def _retry_or_drop(self, job: WebhookJob) -> None:
        if job.attempts <= self.max_retries:
            delay = self.retry_delay * (2 ** (job.attempts - 1))
            job.available_at = self._clock() + delay
            with self._condition:
                self.stats["retries"] += 1
                heapq.heappush(self._heap, (job.available_at, next(self._sequence), job))
                self._condition.notify()
            logger.warning(
                f"Webhook job {job.id} failed (attempt {job.attempts}), retrying in {delay:.1f}s: {job.last_error}",
                extra={"job_id": job.id, "job_type": job.type, "attempts": job.attempts, "error": job.last_error},
            )
        else:
            self._finish(job, "failed")
            logger.error(
                f"Webhook job {job.id} dropped after {job.attempts} attempts: {job.last_error}",
                extra={
                    "job_id": job.id,
                    "job_type": job.type,
                    "attempts": job.attempts,
                    "error": job.last_error,
                    "payload_keys": sorted(job.payload),
                },
            )

    def drain(self) -> int:
        """Run every job that is due now; returns how many ran."""
        count = 0
        while self.process_next():
            count += 1
        return count

    def _drain_loop(self) -> None:
        logger.info("Webhook queue drain loop started")
        while True:
            with self._condition:
                while not self._stopping:
                    if self._heap and not self._worker_busy():
                        wait = self._heap[0][0] - self._clock()
                        if wait <= 0:
                            break
                        self._condition.wait(timeout=wait)
                    else:
                        self._condition.wait()
                if self._stopping:
                    break
            try:
                self.process_next()
            except Exception:
                # process_next handles job errors itself; this guards the loop
                logger.exception("Webhook drain loop error")
        logger.info("Webhook queue drain loop stopped")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        with self._condition:
            if self._thread is not None and self._thread.is_alive():
                return
            self._stopping = False
            self._thread = threading.Thread(target=self._drain_loop, name="webhook-drain", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop dequeuing; an in-flight job finishes or hits its timeout."""
        with self._condition:
            self._stopping = True
            self._condition.notify_all()
        if self._thread is not None:
            self._thread.join(timeout=timeout if timeout is not None else self.job_timeout + 1)
            self._thread = None
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None
            self._inflight = None
        dropped = len(self._heap)
        if dropped:
            logger.warning(f"Webhook queue stopped with {dropped} unprocessed jobs")

    def get_stats(self) -> Dict[str, Any]:
        with self._condition:
            return {
                "queue_size": len(self._heap),
                "processing": self._processing,
                "running": self._thread is not None and self._thread.is_alive(),
                "max_size": self.max_size,
                **self.stats,
            }
