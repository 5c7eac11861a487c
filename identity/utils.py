"""
Utility functions for the identity layer.
"""
from urllib.parse import urlencode

from email_validator import EmailNotValidError, validate_email

from .errors import InvalidEmail


def sanitize_email(email: str) -> str:
    """
    Sanitize and normalize an email address.

    Args:
        email: Email address to sanitize

    Returns:
        Normalized email address
    """
    return email.strip().lower()


def require_valid_email(email: str) -> None:
    """
    Check address syntax with the same rules the ``Account`` model applies.

    Raises:
        InvalidEmail: if the address would not load back from the store
    """
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError as e:
        raise InvalidEmail() from e


def extract_domain(email: str) -> str:
    """
    Return the domain part of an email, e.g. "someone@example.com" -> "example.com".

    Raises:
        InvalidEmail: if the address does not contain exactly one '@'
    """
    parts = email.split('@')
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise InvalidEmail()
    return parts[1].strip().lower().rstrip('.')


def generate_confirmation_link(base_url: str, path: str, token: str) -> str:
    """
    Generate a full URL for email confirmation.

    Args:
        base_url: Public base URL of the API
        path: Confirmation endpoint path
        token: Confirmation token

    Returns:
        Full confirmation URL
    """
    params = urlencode({'token': token})
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}?{params}"
