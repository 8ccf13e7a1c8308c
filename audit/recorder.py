"""
audit/recorder.py -- Fire-and-forget audit writer.

The HTTP layer hands finished AuditRecords to AuditRecorder.submit(), which
only enqueues them. A single worker thread drains the queue and writes to
AuditStore, so:

  - the response path never waits on the audit database;
  - records are written in submission order (one worker, FIFO queue);
  - a failing or slow sink is logged and otherwise ignored. Auditing must
    never fail or block the request it describes.

When the queue is full the record is dropped with a warning rather than
blocking the caller.

Lifecycle: start() and stop() are called from the FastAPI lifespan. flush()
blocks until everything submitted so far has been written (or has failed);
tests use it to read back what a request produced.
"""

from __future__ import annotations

import logging
import queue
import threading
from datetime import datetime, timezone

from audit.models import AuditRecord
from audit.store import AuditStore

logger = logging.getLogger("tasktrack.audit")

_STOP = object()


class AuditRecorder:
    def __init__(self, store: AuditStore, max_queue: int = 1000) -> None:
        self.store = store
        self._queue: queue.Queue = queue.Queue(maxsize=max_queue)
        self._worker: threading.Thread | None = None

    def start(self) -> None:
        if self._worker is not None and self._worker.is_alive():
            return
        self._worker = threading.Thread(target=self._run, name="audit-recorder", daemon=True)
        self._worker.start()

    def submit(self, record: AuditRecord) -> None:
        """Queue record for writing. Never blocks, never raises."""
        try:
            self._queue.put_nowait(record)
        except queue.Full:
            logger.warning("Audit queue full; dropping record for %s %s", record.method, record.path)

    def flush(self) -> None:
        """Block until every record submitted so far has been processed."""
        self._queue.join()

    def stop(self, timeout: float = 5.0) -> None:
        """Write what is queued, then stop the worker."""
        if self._worker is None:
            return
        self._queue.put(_STOP)
        self._worker.join(timeout=timeout)
        if self._worker.is_alive():
            logger.warning("Audit worker did not stop within %.1fs", timeout)
        self._worker = None

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self.store.append(item)
            except Exception:
                logger.exception("Audit write failed for %s %s", item.method, item.path)
            finally:
                self._queue.task_done()


def client_ip(forwarded_for: str | None, peer: str | None) -> str | None:
    """First X-Forwarded-For hop if present, else the socket peer address."""
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first
    return peer


def outcome_reason(status_code: int, error_code: str | None) -> str:
    if status_code < 400:
        return "success"
    return error_code or "failed_request"


def build_record(
    *,
    method: str,
    path: str,
    status_code: int,
    event_type: str = "request",
    error_code: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    user_id: int | None = None,
    username: str | None = None,
    body: str | None = None,
) -> AuditRecord:
    return AuditRecord(
        event_time=datetime.now(timezone.utc).isoformat(),
        event_type=event_type,
        method=method,
        path=path,
        status_code=status_code,
        success=200 <= status_code < 400,
        reason=outcome_reason(status_code, error_code),
        ip_address=ip_address,
        user_agent=user_agent,
        user_id=user_id,
        username=username,
        body=body,
    )
