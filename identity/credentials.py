"""
Local email/password signup and signin.
"""
import logging
import sqlite3
from typing import Optional

from .confirmation import Clock, ConfirmationService, utcnow
from .database import CredentialStore
from .domain_check import DomainReputationChecker
from .errors import (
    AccountExists,
    ConfirmationIssueFailed,
    IdentityError,
    InvalidCredentials,
    StoreUnavailable,
)
from .models import Provider, UserSession
from .security import SecurityManager
from .utils import extract_domain, require_valid_email, sanitize_email


logger = logging.getLogger(__name__)


class CredentialService:
    """Creates password accounts and checks their credentials."""

    def __init__(
        self,
        store: CredentialStore,
        confirmation: ConfirmationService,
        checker: Optional[DomainReputationChecker],
        security: SecurityManager,
        clock: Clock = utcnow
    ):
        # checker=None disables the DNS gate (local development)
        self.store = store
        self.confirmation = confirmation
        self.checker = checker
        self.security = security
        self.clock = clock
        self._dummy_hash: Optional[str] = None

    def _timing_hash(self) -> str:
        if self._dummy_hash is None:
            self._dummy_hash = self.security.hash_password(self.security.generate_token())
        return self._dummy_hash

    def sign_up(self, username: str, email: str, password: str) -> int:
        """
        Register a new local account and send its confirmation email.

        Args:
            username: Requested username
            email: Email address; its domain must publish MX, SPF and DMARC
            password: Plain text password

        Returns:
            The new account's ID

        Raises:
            AccountExists: email or username already registered
            InvalidEmail: the address is not syntactically valid
            DomainUnverifiable: the domain lacks required DNS records
            ConfirmationIssueFailed: the account was created but the
                confirmation token could not be issued; retry via resend
            StoreUnavailable: the store failed before the account was created
        """
        email = sanitize_email(email)
        username = username.strip()
        require_valid_email(email)

        try:
            exists = self.store.account_exists(email, username)
        except sqlite3.Error as e:
            logger.error(f"Signup lookup failed: {e}")
            raise StoreUnavailable() from e
        if exists:
            raise AccountExists()

        domain = extract_domain(email)
        if self.checker is not None:
            self.checker.require_valid(domain)

        password_hash = self.security.hash_password(password)
        now = self.clock()

        try:
            with self.store.transaction() as conn:
                account_id = self.store.create_account(
                    username, email, password_hash,
                    is_email_confirmed=False, created_at=now, conn=conn
                )
                self.store.create_login_method(
                    account_id, Provider.LOCAL, email, created_at=now, conn=conn
                )
        except sqlite3.IntegrityError as e:
            # Another signup claimed the email or username after our check
            raise AccountExists() from e
        except sqlite3.Error as e:
            logger.error(f"Signup insert failed: {e}")
            raise StoreUnavailable() from e

        logger.info(f"Created account {account_id} with local login")

        try:
            self.confirmation.issue_and_send(account_id, email)
        except ConfirmationIssueFailed:
            raise
        except IdentityError as e:
            logger.error(f"Confirmation issue failed for new account {account_id}: {e}")
            raise ConfirmationIssueFailed() from e

        return account_id

    def sign_in(self, email: str, password: str) -> int:
        """
        Check an email/password pair.

        Does not look at the confirmation flag; see ``build_session``.

        Returns:
            The account ID

        Raises:
            InvalidCredentials: unknown email, wrong password, or an
                account without a password
            StoreUnavailable: the store failed during the lookup
        """
        try:
            account = self.store.get_account_by_email(sanitize_email(email))
        except sqlite3.Error as e:
            logger.error(f"Signin lookup failed: {e}")
            raise StoreUnavailable() from e

        # Every miss pays for one bcrypt comparison so timing does not reveal
        # whether the email is registered
        if account is None or not account.password_hash:
            self.security.verify_password(password, self._timing_hash())
            raise InvalidCredentials()

        if not self.security.verify_password(password, account.password_hash):
            raise InvalidCredentials()

        try:
            self.store.update_last_login(account.id, self.clock())
        except sqlite3.Error as e:
            logger.error(f"Failed to record login for account {account.id}: {e}")
            raise StoreUnavailable() from e
        return account.id

    def build_session(self, account_id: int) -> Optional[UserSession]:
        """Typed session value for a signed-in account, or None if it is gone."""
        account = self.store.get_account_by_id(account_id)
        if account is None:
            return None
        return UserSession(
            account_id=account.id,
            email=account.email,
            username=account.username,
            is_email_confirmed=account.is_email_confirmed
        )
