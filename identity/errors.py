"""
Error kinds raised by the identity services.

The HTTP layer maps each class to a status code; messages are safe to show
to end users and never contain tokens or persistence details.
"""
from datetime import timedelta
from typing import Optional, Sequence


class IdentityError(Exception):
    """Base class for all identity layer errors."""

    message = "identity operation failed"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)


class AccountExists(IdentityError):
    message = "user already exists"


class InvalidEmail(IdentityError):
    message = "invalid email format"


class DomainUnverifiable(IdentityError):
    """The signup email's domain lacks MX, SPF or DMARC records."""

    def __init__(self, domain: str, missing: Sequence[str]):
        self.domain = domain
        self.missing = list(missing)
        super().__init__(
            f"domain {domain} missing required records: {', '.join(self.missing)}"
        )


class InvalidCredentials(IdentityError):
    message = "invalid credentials"


class StoreUnavailable(IdentityError):
    """The credential store failed or stayed locked past its timeout."""
    message = "the service is temporarily unavailable, please try again"


class RateLimited(IdentityError):
    """A confirmation email was requested again inside the cooldown window."""

    def __init__(self, retry_after: Optional[timedelta] = None):
        self.retry_after = retry_after
        message = "please wait a few minutes before requesting another confirmation email"
        if retry_after is not None:
            seconds = max(int(retry_after.total_seconds()), 1)
            message = f"please wait {seconds} seconds before requesting another confirmation email"
        super().__init__(message)


class TokenUnknown(IdentityError):
    message = "invalid or unknown token"


class TokenAlreadyUsed(IdentityError):
    message = "this token is stale or already used"


class TokenExpired(IdentityError):
    message = "this token has expired, please request a new confirmation email"


class ConfirmationFailed(IdentityError):
    """A valid token could not be applied; nothing was committed."""
    message = "failed to confirm email, please try again"


class ConfirmationIssueFailed(IdentityError):
    """The account exists but its confirmation email could not be issued."""
    message = "account created but the confirmation email could not be issued"


class IdentityResolutionFailed(IdentityError):
    message = "failed to create or find user"

    def __init__(self, message: Optional[str] = None, retryable: bool = False):
        self.retryable = retryable
        super().__init__(message)


class OAuthError(IdentityError):
    message = "google sign-in failed"
