"""
Deferred audit writer.

Audit follow-ups produced by the interception layer are queued here and
persisted by a single daemon thread, so writing the trail never adds latency
to the response. The queue is bounded: when it is full a job is dropped and
the loss is logged. On graceful shutdown the application drains whatever is
still queued, bounded by ``AUDIT_SHUTDOWN_DRAIN_SECONDS``.
"""
import logging
import queue
import threading
import time
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ebulletin.core.config import settings
from ebulletin.db.session import SessionLocal

logger = logging.getLogger(__name__)

AuditJob = Callable[[Session], None]

_STOP = object()


class AuditWriter:
    """Bounded queue of audit jobs consumed by one worker thread."""

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        maxsize: int = 1000,
        asynchronous: bool = True,
    ):
        self.session_factory = session_factory
        self.maxsize = maxsize
        self.asynchronous = asynchronous
        self._queue: "queue.Queue" = queue.Queue(maxsize=maxsize)
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self.dropped = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        """Start the worker thread (no-op if already running or inline)."""
        if not self.asynchronous:
            return
        with self._lock:
            if self.running:
                return
            self._thread = threading.Thread(
                target=self._run, name="audit-writer", daemon=True
            )
            self._thread.start()
            logger.info(f"Audit writer started (queue size {self.maxsize})")

    def submit(self, job: AuditJob) -> bool:
        """
        Enqueue a job without blocking.

        Returns:
            True if the job was accepted (or run inline), False if it was dropped
        """
        if not self.asynchronous:
            self._execute(job)
            return True

        if not self.running:
            self.start()

        try:
            self._queue.put_nowait(job)
        except queue.Full:
            self.dropped += 1
            logger.error(
                f"Audit queue full ({self.maxsize} pending); dropping audit entry "
                f"(dropped so far: {self.dropped})"
            )
            return False
        return True

    def flush(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until every queued job has been processed.

        Returns:
            True if the queue drained, False if ``timeout`` expired first
        """
        if not self.asynchronous:
            return True

        deadline = None if timeout is None else time.monotonic() + timeout
        with self._queue.all_tasks_done:
            while self._queue.unfinished_tasks:
                if deadline is None:
                    self._queue.all_tasks_done.wait()
                    continue
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._queue.all_tasks_done.wait(remaining)
        return True

    def stop(self, drain: bool = True, timeout: Optional[float] = None) -> None:
        """
        Stop the worker.

        With ``drain`` the queued jobs are written first (up to ``timeout``
        seconds); without it they are discarded.
        """
        if not self.running:
            return

        if drain:
            if not self.flush(timeout):
                discarded = self._discard_pending()
                logger.warning(
                    f"Audit drain timed out; discarded {discarded} queued entries"
                )
        else:
            discarded = self._discard_pending()
            if discarded:
                logger.warning(f"Discarded {discarded} queued audit entries")

        self._queue.put(_STOP)
        self._thread.join(timeout)
        if self._thread.is_alive():
            # Still busy with a job; it exits once it reaches the stop marker
            logger.warning("Audit writer did not stop within the timeout")
            return
        self._thread = None
        logger.info("Audit writer stopped")

    def _discard_pending(self) -> int:
        discarded = 0
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                return discarded
            self._queue.task_done()
            discarded += 1

    def _run(self) -> None:
        while True:
            job = self._queue.get()
            try:
                if job is _STOP:
                    return
                self._execute(job)
            finally:
                self._queue.task_done()

    def _execute(self, job: AuditJob) -> None:
        db = self.session_factory()
        try:
            job(db)
        except Exception as e:
            logger.error(f"Audit job failed: {e}", exc_info=True)
        finally:
            db.close()


audit_writer = AuditWriter(
    session_factory=SessionLocal,
    maxsize=settings.AUDIT_QUEUE_MAXSIZE,
    asynchronous=settings.AUDIT_ASYNC_WRITES,
)
