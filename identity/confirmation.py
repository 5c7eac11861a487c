"""
Email confirmation token lifecycle: issuance, resend rate limit, expiry and
one-time consumption.

A token row moves from live to stale exactly once: when it is consumed, when
it is found expired on a confirmation attempt, or when a newer token for the
same account supersedes it. Stale rows are kept so that replaying an old
token reports it as used rather than unknown.
"""
import logging
import sqlite3
from datetime import datetime, timezone
from typing import Callable, Protocol

from .config import IdentityConfig
from .database import CredentialStore
from .email_service import render_confirmation_email
from .errors import (
    ConfirmationFailed,
    ConfirmationIssueFailed,
    RateLimited,
    TokenAlreadyUsed,
    TokenExpired,
    TokenUnknown,
)
from .security import SecurityManager
from .utils import generate_confirmation_link


logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Notifier(Protocol):
    def enqueue(self, to: str, subject: str, body_html: str) -> bool:
        ...


class ConfirmationService:
    """Issues and redeems email confirmation tokens."""

    def __init__(
        self,
        store: CredentialStore,
        notifier: Notifier,
        config: IdentityConfig,
        security: SecurityManager,
        clock: Clock = utcnow
    ):
        self.store = store
        self.notifier = notifier
        self.config = config
        self.security = security
        self.clock = clock

    def issue_and_send(self, account_id: int, email: str) -> None:
        """
        Issue a fresh confirmation token and queue the confirmation email.

        The cooldown check and the token replacement run in one write
        transaction, so concurrent requests for the same account produce at
        most one new live token.

        Raises:
            RateLimited: if a live token was sent less than the cooldown ago
            ConfirmationIssueFailed: if the token could not be stored
        """
        now = self.clock()
        token = self.security.generate_token()
        expires_at = now + self.config.confirmation_validity

        try:
            with self.store.transaction() as conn:
                if self.store.get_account_by_id(account_id, conn=conn) is None:
                    raise ConfirmationIssueFailed("account not found")
                current = self.store.get_latest_confirmation(account_id, conn=conn)
                if current is not None and not current.is_stale:
                    elapsed = now - current.last_sent_at
                    if elapsed < self.config.confirmation_cooldown:
                        raise RateLimited(self.config.confirmation_cooldown - elapsed)
                self.store.replace_confirmation(account_id, token, now, expires_at, conn=conn)
        except sqlite3.IntegrityError as e:
            # Lost a race with another issuer for the same account
            logger.info(f"Concurrent confirmation issue for account {account_id}")
            raise RateLimited(self.config.confirmation_cooldown) from e
        except sqlite3.Error as e:
            logger.error(f"Failed to store confirmation token for account {account_id}: {e}")
            raise ConfirmationIssueFailed() from e

        logger.info(f"Issued confirmation token for account {account_id}")

        link = generate_confirmation_link(
            self.config.base_url, self.config.confirmation_path, token
        )
        subject, html_content, _ = render_confirmation_email(
            link, self.config.confirmation_validity
        )
        if not self.notifier.enqueue(email, subject, html_content):
            logger.warning(f"Confirmation email for account {account_id} was not queued")

    def resend(self, account_id: int) -> None:
        """
        Re-issue a confirmation email for an existing account.

        Raises:
            RateLimited: inside the cooldown window
            ConfirmationIssueFailed: if the account does not exist or the
                token could not be stored
        """
        try:
            account = self.store.get_account_by_id(account_id)
        except sqlite3.Error as e:
            raise ConfirmationIssueFailed() from e
        if account is None:
            raise ConfirmationIssueFailed("account not found")
        self.issue_and_send(account.id, account.email)

    def confirm(self, token: str) -> int:
        """
        Redeem a confirmation token.

        Returns:
            The confirmed account's ID

        Raises:
            TokenUnknown: no such token
            TokenAlreadyUsed: token is stale (used, expired or superseded)
            TokenExpired: token was past its expiry; it is now stale
            ConfirmationFailed: the updates could not be applied
        """
        now = self.clock()
        try:
            with self.store.transaction() as conn:
                record = self.store.get_confirmation_by_token(token, conn=conn)
                if record is None:
                    raise TokenUnknown()
                if record.is_stale:
                    raise TokenAlreadyUsed()
                if record.is_expired(now):
                    self.store.mark_confirmation_stale(token, conn=conn)
                    expired_account = record.account_id
                else:
                    expired_account = None
                    if not self.store.mark_email_confirmed(record.account_id, conn=conn):
                        raise ConfirmationFailed()
                    if not self.store.mark_confirmation_stale(token, conn=conn):
                        raise ConfirmationFailed()
        except sqlite3.Error as e:
            logger.error(f"Failed to apply confirmation token: {e}")
            raise ConfirmationFailed() from e

        # Raised after commit so the stale mark persists
        if expired_account is not None:
            logger.info(f"Expired confirmation token used for account {expired_account}")
            raise TokenExpired()

        logger.info(f"Confirmed email for account {record.account_id}")
        return record.account_id
