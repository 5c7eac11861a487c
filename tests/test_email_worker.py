"""Tests for the background email worker and email rendering."""
import threading
import time
from datetime import timedelta

from identity.config import SMTPConfig
from identity.email_service import EmailService, render_confirmation_email
from identity.email_worker import EmailWorker


class RecordingSender:
    def __init__(self, result=True):
        self.result = result
        self.sent = []

    def send_email(self, to_email, subject, html_content):
        self.sent.append(to_email)
        return self.result


class BlockingSender(RecordingSender):
    def __init__(self):
        super().__init__()
        self.started = threading.Event()
        self.release = threading.Event()

    def send_email(self, to_email, subject, html_content):
        self.started.set()
        self.release.wait(5)
        return super().send_email(to_email, subject, html_content)


class ExplodingSender:
    def send_email(self, to_email, subject, html_content):
        raise RuntimeError("smtp down")


def test_close_delivers_queued_jobs():
    sender = RecordingSender()
    worker = EmailWorker(sender, maxsize=10).start()
    for i in range(3):
        assert worker.enqueue(f"user{i}@example.com", "Hi", "<p>hi</p>")

    assert worker.close(timeout=5) == 0
    assert sorted(sender.sent) == ["user0@example.com", "user1@example.com", "user2@example.com"]
    assert worker.sent == 3


def test_enqueue_does_not_block_when_full():
    worker = EmailWorker(RecordingSender(), maxsize=1)

    assert worker.enqueue("a@example.com", "s", "b")
    started = time.monotonic()
    assert not worker.enqueue("b@example.com", "s", "b")
    assert time.monotonic() - started < 1
    assert worker.dropped == 1

    # Never started, so the queued job is dropped on close
    assert worker.close(timeout=0) == 1


def test_enqueue_after_close_is_dropped():
    worker = EmailWorker(RecordingSender()).start()
    worker.close(timeout=1)

    assert not worker.enqueue("late@example.com", "s", "b")
    assert worker.dropped == 1


def test_close_drops_remaining_jobs_at_deadline():
    sender = BlockingSender()
    worker = EmailWorker(sender, maxsize=10).start()
    worker.enqueue("first@example.com", "s", "b")
    assert sender.started.wait(5)
    worker.enqueue("second@example.com", "s", "b")
    worker.enqueue("third@example.com", "s", "b")

    started = time.monotonic()
    dropped = worker.close(timeout=0.2)
    assert time.monotonic() - started < 2
    assert dropped == 2

    sender.release.set()
    for thread in worker._threads:
        thread.join(5)
    assert sender.sent == ["first@example.com"]


def test_failures_are_counted_and_worker_keeps_running():
    worker = EmailWorker(ExplodingSender()).start()
    worker.enqueue("a@example.com", "s", "b")
    worker.enqueue("b@example.com", "s", "b")
    worker.close(timeout=5)

    assert worker.failed == 2
    assert worker.sent == 0


def test_context_manager_starts_and_drains():
    sender = RecordingSender(result=False)
    with EmailWorker(sender, workers=2) as worker:
        worker.enqueue("a@example.com", "s", "b")

    assert sender.sent == ["a@example.com"]
    assert worker.failed == 1


def test_unconfigured_email_service_refuses_to_send():
    assert EmailService(SMTPConfig()).send_email("a@example.com", "s", "<p>b</p>") is False


def test_render_confirmation_email_mentions_link_and_validity():
    subject, html, text = render_confirmation_email(
        "https://forum.example.com/confirm?token=abc", timedelta(hours=24)
    )
    assert subject == "Confirm Your Email Address"
    assert 'href="https://forum.example.com/confirm?token=abc"' in html
    assert "24 hours" in text
