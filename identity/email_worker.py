"""
Background delivery of outbound email.

Jobs go into a bounded queue consumed by worker threads. Enqueueing never
blocks the caller: when the queue is full or closed the job is dropped and
logged. ``close`` drains what it can before a deadline and drops the rest.
"""
import logging
import queue
import threading
import time
from typing import List, Optional, Protocol

from .models import EmailJob


logger = logging.getLogger(__name__)

_STOP = object()


class MailSender(Protocol):
    def send_email(self, to_email: str, subject: str, html_content: str) -> bool:
        ...


class EmailWorker:
    """Bounded mail queue with one or more consumer threads."""

    def __init__(self, sender: MailSender, maxsize: int = 100, workers: int = 1):
        self.sender = sender
        self._queue: "queue.Queue" = queue.Queue(maxsize=maxsize)
        self._workers = workers
        self._threads: List[threading.Thread] = []
        self._lock = threading.Lock()
        self._closed = False
        self._abandon = threading.Event()
        self.sent = 0
        self.failed = 0
        self.dropped = 0

    def start(self) -> "EmailWorker":
        with self._lock:
            if self._threads or self._closed:
                return self
            for i in range(self._workers):
                thread = threading.Thread(
                    target=self._run, name=f"email-worker-{i}", daemon=True
                )
                thread.start()
                self._threads.append(thread)
        return self

    def _count(self, attr: str) -> None:
        with self._lock:
            setattr(self, attr, getattr(self, attr) + 1)

    def _run(self) -> None:
        while True:
            job = self._queue.get()
            try:
                if job is _STOP:
                    return
                if self._abandon.is_set():
                    self._count('dropped')
                    continue
                self._deliver(job)
            finally:
                self._queue.task_done()

    def _deliver(self, job: EmailJob) -> None:
        try:
            ok = self.sender.send_email(job.to, job.subject, job.body_html)
        except Exception:
            logger.exception(f"Failed to send email to {job.to}")
            self._count('failed')
            return
        if ok:
            logger.info(f"Successfully sent email to {job.to}")
            self._count('sent')
        else:
            logger.warning(f"Failed to send email to {job.to}")
            self._count('failed')

    def enqueue(self, to: str, subject: str, body_html: str) -> bool:
        """
        Queue an email for delivery without blocking.

        Returns:
            True if queued, False if the job was dropped
        """
        job = EmailJob(to=to, subject=subject, body_html=body_html)
        with self._lock:
            if self._closed:
                logger.warning(f"Email worker closed, dropping email to {to}")
                self.dropped += 1
                return False
            try:
                self._queue.put_nowait(job)
            except queue.Full:
                logger.warning(f"Email queue full, dropping email to {to}")
                self.dropped += 1
                return False
        return True

    def pending(self) -> int:
        return self._queue.qsize()

    def close(self, timeout: Optional[float] = 10.0) -> int:
        """
        Stop accepting jobs and wait for queued ones until ``timeout``.

        Jobs still queued at the deadline are dropped. A send already in
        progress is left to finish on its daemon thread.

        Returns:
            Number of jobs dropped during shutdown
        """
        with self._lock:
            if self._closed:
                return 0
            self._closed = True
            dropped_before = self.dropped

        deadline = None if timeout is None else time.monotonic() + timeout

        def remaining() -> Optional[float]:
            if deadline is None:
                return None
            return max(deadline - time.monotonic(), 0)

        if not self._threads:
            # Never started: nothing will drain the queue
            self._abandon.set()
        else:
            for _ in self._threads:
                try:
                    self._queue.put(_STOP, timeout=remaining())
                except queue.Full:
                    break
            for thread in self._threads:
                thread.join(remaining())

        if any(t.is_alive() for t in self._threads) or not self._threads:
            self._abandon.set()
            while True:
                try:
                    job = self._queue.get_nowait()
                except queue.Empty:
                    break
                if job is not _STOP:
                    self._count('dropped')
                self._queue.task_done()
            for _ in self._threads:
                try:
                    self._queue.put_nowait(_STOP)
                except queue.Full:
                    break

        dropped = self.dropped - dropped_before
        if dropped:
            logger.warning(f"Email worker shut down, {dropped} email(s) dropped")
        return dropped

    def __enter__(self) -> "EmailWorker":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
