"""Tests for the confirmation token lifecycle."""
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from identity.confirmation import ConfirmationService
from identity.errors import (
    ConfirmationIssueFailed,
    RateLimited,
    TokenAlreadyUsed,
    TokenExpired,
    TokenUnknown,
)


@pytest.fixture
def account(store, clock):
    account_id = store.create_account(
        "alice", "alice@example.com", "hash", is_email_confirmed=False, created_at=clock()
    )
    return store.get_account_by_id(account_id)


def test_issue_and_send_queues_link_with_token(confirmation, account, notifier, store):
    confirmation.issue_and_send(account.id, account.email)

    assert len(notifier.jobs) == 1
    to, subject, body = notifier.jobs[0]
    assert to == "alice@example.com"
    assert subject == "Confirm Your Email Address"
    token = notifier.tokens_for(to)[0]
    assert f"https://forum.test/api/v1/auth/confirm-email?token={token}" in body
    assert len(token) >= 43

    record = store.get_latest_confirmation(account.id)
    assert record.token == token
    assert record.is_stale is False
    assert record.expires_at - record.last_sent_at == timedelta(hours=24)


def test_resend_inside_cooldown_is_rate_limited(confirmation, account, notifier, clock):
    confirmation.issue_and_send(account.id, account.email)
    clock.advance(minutes=2)

    with pytest.raises(RateLimited) as excinfo:
        confirmation.resend(account.id)

    assert excinfo.value.retry_after == timedelta(minutes=3)
    assert len(notifier.jobs) == 1


def test_resend_after_cooldown_supersedes_previous_token(confirmation, account, notifier, clock, store):
    confirmation.issue_and_send(account.id, account.email)
    clock.advance(minutes=5, seconds=1)
    confirmation.resend(account.id)

    first, second = notifier.tokens_for(account.email)
    assert first != second

    with pytest.raises(TokenAlreadyUsed):
        confirmation.confirm(first)
    assert store.get_account_by_id(account.id).is_email_confirmed is False

    assert confirmation.confirm(second) == account.id
    assert store.get_account_by_id(account.id).is_email_confirmed is True


def test_resend_right_after_confirmation_is_allowed(confirmation, account, notifier):
    confirmation.issue_and_send(account.id, account.email)
    confirmation.confirm(notifier.tokens_for(account.email)[0])

    confirmation.resend(account.id)
    assert len(notifier.jobs) == 2


def test_resend_unknown_account(confirmation):
    with pytest.raises(ConfirmationIssueFailed):
        confirmation.resend(12345)


def test_confirm_is_one_time(confirmation, account, notifier, store):
    confirmation.issue_and_send(account.id, account.email)
    token = notifier.tokens_for(account.email)[0]

    assert confirmation.confirm(token) == account.id
    assert store.get_account_by_id(account.id).is_email_confirmed is True

    with pytest.raises(TokenAlreadyUsed):
        confirmation.confirm(token)


def test_confirm_expired_token_marks_it_stale(confirmation, account, notifier, store, clock):
    confirmation.issue_and_send(account.id, account.email)
    token = notifier.tokens_for(account.email)[0]
    clock.advance(hours=24, seconds=1)

    with pytest.raises(TokenExpired):
        confirmation.confirm(token)
    assert store.get_account_by_id(account.id).is_email_confirmed is False
    assert store.get_confirmation_by_token(token).is_stale is True

    with pytest.raises(TokenAlreadyUsed):
        confirmation.confirm(token)


def test_confirm_at_exact_expiry_still_succeeds(confirmation, account, notifier, clock):
    confirmation.issue_and_send(account.id, account.email)
    clock.advance(hours=24)

    assert confirmation.confirm(notifier.tokens_for(account.email)[0]) == account.id


def test_confirm_unknown_token(confirmation):
    with pytest.raises(TokenUnknown):
        confirmation.confirm("not-a-real-token")


def test_concurrent_issue_installs_one_live_token(confirmation, account, notifier, store):
    barrier = threading.Barrier(2)

    def attempt(_):
        barrier.wait()
        try:
            confirmation.resend(account.id)
            return True
        except RateLimited:
            return False

    with ThreadPoolExecutor(max_workers=2) as pool:
        results = list(pool.map(attempt, range(2)))

    assert sorted(results) == [False, True]
    assert len(notifier.jobs) == 1
    with store.get_connection() as conn:
        live = conn.execute(
            'SELECT COUNT(*) FROM email_confirmations WHERE account_id = ? AND is_stale = 0',
            (account.id,)
        ).fetchone()[0]
    assert live == 1


def test_failed_enqueue_does_not_roll_back_issue(store, config, security, clock, account):
    class FullNotifier:
        def enqueue(self, to, subject, body_html):
            return False

    service = ConfirmationService(store, FullNotifier(), config, security, clock=clock)
    service.issue_and_send(account.id, account.email)

    assert store.get_latest_confirmation(account.id).is_stale is False
