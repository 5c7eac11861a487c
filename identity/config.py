"""
Configuration for the identity layer.

Values are read from environment variables (optionally via a .env file) and
passed explicitly into the services that need them.
"""
import logging
import os
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

from dotenv import load_dotenv
from pydantic import BaseModel, Field


DEFAULT_DATABASE_PATH = os.path.join(
    os.path.dirname(os.path.dirname(__file__)), 'data', 'identity.db'
)

GOOGLE_AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() in ("true", "1", "yes")


class IdentityConfig(BaseModel):
    """Core settings for accounts, confirmation tokens and mail delivery."""
    database_path: str = DEFAULT_DATABASE_PATH
    database_timeout: float = 5.0
    base_url: str = "http://localhost:8080"
    confirmation_path: str = "/api/v1/auth/confirm-email"
    confirmation_cooldown: timedelta = timedelta(minutes=5)
    confirmation_validity: timedelta = timedelta(hours=24)
    bcrypt_rounds: int = 12
    dns_timeout: float = 3.0
    require_domain_records: bool = True
    mail_queue_size: int = 100
    mail_workers: int = 1
    mail_shutdown_timeout: float = 10.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "IdentityConfig":
        return cls(
            database_path=os.environ.get('DATABASE_PATH', DEFAULT_DATABASE_PATH),
            database_timeout=float(os.environ.get('DATABASE_TIMEOUT', '5')),
            base_url=os.environ.get('APP_BASE_URL', 'http://localhost:8080').rstrip('/'),
            confirmation_cooldown=timedelta(
                seconds=int(os.environ.get('CONFIRMATION_COOLDOWN_SECONDS', '300'))
            ),
            confirmation_validity=timedelta(
                hours=int(os.environ.get('CONFIRMATION_VALIDITY_HOURS', '24'))
            ),
            bcrypt_rounds=int(os.environ.get('BCRYPT_ROUNDS', '12')),
            dns_timeout=float(os.environ.get('DNS_TIMEOUT', '3')),
            require_domain_records=_env_bool('REQUIRE_DOMAIN_RECORDS', 'true'),
            mail_queue_size=int(os.environ.get('MAIL_QUEUE_SIZE', '100')),
            mail_workers=int(os.environ.get('MAIL_WORKERS', '1')),
            mail_shutdown_timeout=float(os.environ.get('MAIL_SHUTDOWN_TIMEOUT', '10')),
            log_level=os.environ.get('LOG_LEVEL', 'INFO'),
        )

    def validate(self) -> Tuple[bool, Optional[str]]:
        """Validate configuration values.

        Returns:
            Tuple of (is_valid, error_message).
        """
        if self.database_timeout <= 0:
            return False, "DATABASE_TIMEOUT must be positive"

        # bcrypt accepts cost factors 4..31
        if self.bcrypt_rounds < 4 or self.bcrypt_rounds > 31:
            return False, "BCRYPT_ROUNDS must be between 4 and 31"

        if self.confirmation_validity <= self.confirmation_cooldown:
            return False, "CONFIRMATION_VALIDITY_HOURS must exceed the resend cooldown"

        if self.dns_timeout <= 0:
            return False, "DNS_TIMEOUT must be positive"

        if self.mail_queue_size < 1:
            return False, "MAIL_QUEUE_SIZE must be positive"

        if self.mail_workers < 1:
            return False, "MAIL_WORKERS must be positive"

        if not self.base_url.startswith(("http://", "https://")):
            return False, "APP_BASE_URL must be an http(s) URL"

        return True, None


class GoogleOAuthConfig(BaseModel):
    """Google OAuth 2.0 client settings."""
    client_id: str = ""
    client_secret: str = ""
    redirect_uri: str = "http://localhost:8080/api/v1/auth/google/callback"
    scopes: List[str] = Field(default_factory=lambda: [
        'openid',
        'https://www.googleapis.com/auth/userinfo.email',
        'https://www.googleapis.com/auth/userinfo.profile',
    ])

    @classmethod
    def from_env(cls) -> "GoogleOAuthConfig":
        return cls(
            client_id=os.environ.get('GOOGLE_CLIENT_ID', ''),
            client_secret=os.environ.get('GOOGLE_CLIENT_SECRET', ''),
            redirect_uri=os.environ.get(
                'GOOGLE_REDIRECT_URL',
                'http://localhost:8080/api/v1/auth/google/callback'
            ),
        )

    def is_configured(self) -> bool:
        """Check if OAuth credentials are configured."""
        return bool(self.client_id and self.client_secret)

    def client_config(self) -> Dict[str, Any]:
        """Client configuration in the format google-auth-oauthlib expects."""
        return {
            "web": {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "auth_uri": GOOGLE_AUTH_URI,
                "token_uri": GOOGLE_TOKEN_URI,
                "redirect_uris": [self.redirect_uri]
            }
        }


class SMTPConfig(BaseModel):
    """Outbound mail server settings."""
    host: str = "smtp.gmail.com"
    port: int = 587
    sender: str = ""
    username: str = ""
    password: str = ""

    @classmethod
    def from_env(cls) -> "SMTPConfig":
        username = os.environ.get('SMTP_USER', '')
        return cls(
            host=os.environ.get('SMTP_HOST', 'smtp.gmail.com'),
            port=int(os.environ.get('SMTP_PORT', '587')),
            sender=os.environ.get('SMTP_FROM', username),
            username=username,
            password=os.environ.get('SMTP_PASS', ''),
        )

    def is_configured(self) -> bool:
        return bool(self.sender and self.username and self.password)


class Settings(BaseModel):
    """All configuration sections together."""
    identity: IdentityConfig
    google: GoogleOAuthConfig
    smtp: SMTPConfig


def load_config(env_file: Optional[str] = None) -> Settings:
    """
    Load every configuration section from the environment.

    Args:
        env_file: Optional path to a .env file; defaults to python-dotenv's search

    Returns:
        Settings with identity, google and smtp sections
    """
    load_dotenv(env_file)
    return Settings(
        identity=IdentityConfig.from_env(),
        google=GoogleOAuthConfig.from_env(),
        smtp=SMTPConfig.from_env(),
    )


def setup_logging(level: str = "INFO") -> None:
    """Configure root logging for processes embedding the identity layer."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
