"""
Maps a verified Google identity to exactly one local account.

Google identities are looked up by verified email. An existing account with
the same email (for example from a password signup) gets the Google login
linked to it; otherwise a new, already-confirmed account is created. No
confirmation email is sent for Google accounts.
"""
import logging
import sqlite3
from typing import Optional

from .config import GoogleOAuthConfig
from .confirmation import Clock, utcnow
from .database import CredentialStore
from .errors import IdentityResolutionFailed, InvalidEmail, OAuthError
from .oauth import GoogleOAuth
from .models import Provider
from .security import SecurityManager
from .utils import require_valid_email, sanitize_email


logger = logging.getLogger(__name__)

USERNAME_ATTEMPTS = 5


class IdentityResolutionService:
    """Finds or creates the local account behind a Google sign-in."""

    def __init__(
        self,
        store: CredentialStore,
        oauth_config: GoogleOAuthConfig,
        security: SecurityManager,
        oauth: Optional[GoogleOAuth] = None,
        clock: Clock = utcnow
    ):
        self.store = store
        self.oauth_config = oauth_config
        self.oauth = oauth or GoogleOAuth(oauth_config)
        self.security = security
        self.clock = clock

    def authorization_url(self, state: str) -> str:
        """URL of the Google consent page; ``state`` must be kept by the caller."""
        return self.oauth.get_authorization_url(state)

    def resolve_callback(self, code: str, state: str, expected_state: str) -> int:
        """
        Handle the OAuth redirect: check state, exchange the code, resolve.

        Raises:
            OAuthError: state mismatch, missing code or failed exchange
            IdentityResolutionFailed: the account could not be found or created
        """
        if not self.security.states_match(expected_state, state):
            raise OAuthError("invalid oauth state")
        if not code:
            raise OAuthError("missing code in callback")

        profile = self.oauth.fetch_profile(code)
        return self.resolve_google_identity(profile.id, profile.email, profile.name)

    def resolve_google_identity(
        self,
        external_id: str,
        verified_email: str,
        display_name: str = ""
    ) -> int:
        """
        Return the account for a verified Google identity, creating it if needed.

        Args:
            external_id: Google subject ID (logged only; linking is by email)
            verified_email: Email address Google has verified
            display_name: Google profile name, used to derive a username

        Returns:
            Account ID

        Raises:
            IdentityResolutionFailed: on persistence errors; ``retryable`` is
                set when every generated username collided
        """
        email = sanitize_email(verified_email)
        try:
            require_valid_email(email)
        except InvalidEmail as e:
            raise IdentityResolutionFailed("google profile has no usable email") from e

        try:
            return self._resolve(email, display_name)
        except IdentityResolutionFailed:
            raise
        except sqlite3.Error as e:
            logger.error(f"Identity resolution failed for google subject {external_id}: {e}")
            raise IdentityResolutionFailed() from e

    def _resolve(self, email: str, display_name: str) -> int:
        # 1. Existing google login
        account_id = self.store.get_account_id_by_login_method(Provider.GOOGLE, email)
        if account_id is not None:
            return account_id

        # 2. Existing account with this email, e.g. from a password signup
        account_id = self._link_existing(email)
        if account_id is not None:
            return account_id

        # 3. New account
        for _ in range(USERNAME_ATTEMPTS):
            username = self.security.generate_username(display_name, email)
            now = self.clock()
            try:
                with self.store.transaction() as conn:
                    account_id = self.store.create_account(
                        username, email, None,
                        is_email_confirmed=True, created_at=now, conn=conn
                    )
                    self.store.create_login_method(
                        account_id, Provider.GOOGLE, email, created_at=now, conn=conn
                    )
            except sqlite3.IntegrityError:
                # Either a concurrent login created the account, or the username is taken
                account_id = self._link_existing(email)
                if account_id is not None:
                    return account_id
                logger.info(f"Generated username {username} already taken, retrying")
                continue

            logger.info(f"Created account {account_id} from google login")
            return account_id

        raise IdentityResolutionFailed(
            "could not generate a unique username", retryable=True
        )

    def _link_existing(self, email: str) -> Optional[int]:
        account = self.store.get_account_by_email(email)
        if account is None:
            return None
        if self.store.create_login_method(account.id, Provider.GOOGLE, email, created_at=self.clock()):
            logger.info(f"Linked google login to account {account.id}")
        return account.id
