"""
Google OAuth 2.0 integration for authentication.
"""
import logging

from google.auth.exceptions import GoogleAuthError
from google_auth_oauthlib.flow import Flow
from oauthlib.oauth2.rfc6749.errors import OAuth2Error
from pydantic import ValidationError
from requests import RequestException

from .config import GoogleOAuthConfig
from .errors import OAuthError
from .models import GoogleProfile


logger = logging.getLogger(__name__)

USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"


class GoogleOAuth:
    """Handles the Google OAuth 2.0 authorization-code flow."""

    def __init__(self, config: GoogleOAuthConfig):
        self.config = config

    def is_configured(self) -> bool:
        return self.config.is_configured()

    def _flow(self) -> Flow:
        if not self.is_configured():
            raise OAuthError("Google OAuth not initialized")
        return Flow.from_client_config(
            self.config.client_config(),
            scopes=self.config.scopes,
            redirect_uri=self.config.redirect_uri,
            autogenerate_code_verifier=False
        )

    def get_authorization_url(self, state: str) -> str:
        """
        Generate Google OAuth authorization URL.

        Args:
            state: State parameter for CSRF protection, kept in the caller's session

        Returns:
            Authorization URL to redirect user to
        """
        authorization_url, _ = self._flow().authorization_url(
            access_type='offline',
            include_granted_scopes='true',
            state=state,
            prompt='consent'
        )
        return authorization_url

    def fetch_profile(self, auth_code: str) -> GoogleProfile:
        """
        Exchange an authorization code and fetch the user's profile.

        Args:
            auth_code: Authorization code from OAuth callback

        Returns:
            GoogleProfile with id, email and name

        Raises:
            OAuthError: if the exchange or profile fetch fails, or the
                provider has not verified the email
        """
        flow = self._flow()
        try:
            flow.fetch_token(code=auth_code)
        except (OAuth2Error, GoogleAuthError, RequestException) as e:
            logger.warning(f"Google token exchange error: {e}")
            raise OAuthError("failed to exchange token") from e

        try:
            response = flow.authorized_session().get(USERINFO_URL, timeout=10)
        except (GoogleAuthError, RequestException) as e:
            logger.warning(f"Failed to fetch google user info: {e}")
            raise OAuthError("failed to fetch google userinfo") from e

        if response.status_code != 200:
            logger.warning(f"Google userinfo response status: {response.status_code}")
            raise OAuthError("failed to fetch google userinfo")

        try:
            profile = GoogleProfile.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.warning(f"Failed to decode google userinfo: {e}")
            raise OAuthError("failed to decode google userinfo") from e

        if not profile.verified_email:
            raise OAuthError("google account email is not verified")

        return profile
