"""
Tests for the deferred audit writer.
"""
import threading

import pytest
from sqlalchemy.orm import Session

from ebulletin.db.session import SessionLocal
from ebulletin.models.audit_log import AuditLog
from ebulletin.services.audit import log_action
from ebulletin.services.audit_queue import AuditWriter


def _write(description: str):
    def job(db: Session) -> None:
        log_action(db, action_type="CREATE", target_table="categories", description=description)

    return job


@pytest.fixture
def writer(db: Session):
    writer = AuditWriter(session_factory=SessionLocal, maxsize=2, asynchronous=True)
    yield writer
    writer.stop(drain=False, timeout=5)


class TestAuditWriter:
    """Tests for the background queue."""

    def test_jobs_are_persisted(self, db: Session, writer: AuditWriter):
        assert writer.submit(_write("first")) is True
        assert writer.submit(_write("second")) is True

        assert writer.flush(timeout=5) is True
        descriptions = {row.description for row in db.query(AuditLog).all()}
        assert descriptions == {"first", "second"}

    def test_full_queue_drops(self, db: Session, writer: AuditWriter):
        """Test a job submitted to a full queue is rejected and counted."""
        started = threading.Event()
        release = threading.Event()

        def blocking(db: Session) -> None:
            started.set()
            release.wait(5)

        writer.submit(blocking)
        assert started.wait(5)

        assert writer.submit(_write("queued 1")) is True
        assert writer.submit(_write("queued 2")) is True
        assert writer.submit(_write("dropped")) is False
        assert writer.dropped == 1

        release.set()
        assert writer.flush(timeout=5) is True
        descriptions = {row.description for row in db.query(AuditLog).all()}
        assert descriptions == {"queued 1", "queued 2"}

    def test_stop_drains(self, db: Session):
        writer = AuditWriter(session_factory=SessionLocal, maxsize=10, asynchronous=True)
        for i in range(5):
            writer.submit(_write(f"entry {i}"))

        writer.stop(drain=True, timeout=5)

        assert writer.running is False
        assert db.query(AuditLog).count() == 5

    def test_stop_timeout_keeps_single_worker(self, db: Session, writer: AuditWriter):
        """Test a worker busy past the stop timeout is not replaced by a second one."""
        started = threading.Event()
        release = threading.Event()

        def blocking(db: Session) -> None:
            started.set()
            release.wait(5)

        writer.submit(blocking)
        assert started.wait(5)
        worker = writer._thread

        writer.stop(drain=False, timeout=0.1)
        assert writer.running is True
        assert writer._thread is worker

        writer.submit(_write("late"))
        assert writer._thread is worker

        release.set()
        worker.join(5)
        assert worker.is_alive() is False

        # The next submission starts a fresh worker that also picks up "late"
        writer.submit(_write("after restart"))
        assert writer._thread is not worker
        assert writer.flush(timeout=5) is True
        descriptions = {row.description for row in db.query(AuditLog).all()}
        assert descriptions == {"late", "after restart"}

    def test_failing_job_does_not_stop_worker(self, db: Session, writer: AuditWriter):
        def broken(db: Session) -> None:
            raise RuntimeError("boom")

        writer.submit(broken)
        writer.submit(_write("after failure"))

        assert writer.flush(timeout=5) is True
        assert writer.running is True
        assert db.query(AuditLog).one().description == "after failure"

    def test_inline_mode(self, db: Session):
        writer = AuditWriter(session_factory=SessionLocal, asynchronous=False)
        assert writer.submit(_write("inline")) is True
        assert writer.running is False
        assert db.query(AuditLog).one().description == "inline"
