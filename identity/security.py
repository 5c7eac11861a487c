"""
Security utilities for password hashing, token generation and usernames.
"""
import base64
import hashlib
import hmac
import re
import secrets

import bcrypt


USERNAME_SUFFIX_DIGITS = 4
_USERNAME_DISALLOWED = re.compile(r'[^a-z0-9]')


def _prehash(password: str) -> bytes:
    # bcrypt only reads 72 bytes; a base64 SHA-256 digest is 44
    digest = hashlib.sha256(password.encode('utf-8')).digest()
    return base64.b64encode(digest)


class SecurityManager:
    """Handles password hashing and random secret generation."""

    TOKEN_BYTES = 32  # 256 bits
    STATE_BYTES = 16

    def __init__(self, bcrypt_rounds: int = 12):
        self.bcrypt_rounds = bcrypt_rounds

    def hash_password(self, password: str) -> str:
        """
        Hash a password using bcrypt.

        Every additional round doubles the work per guess. The password is
        pre-hashed with SHA-256 so passphrases of any length are accepted.

        Args:
            password: Plain text password

        Returns:
            Hashed password string
        """
        salt = bcrypt.gensalt(rounds=self.bcrypt_rounds)
        return bcrypt.hashpw(_prehash(password), salt).decode('utf-8')

    @staticmethod
    def verify_password(password: str, password_hash: str) -> bool:
        """
        Verify a password against its hash.

        Args:
            password: Plain text password to verify
            password_hash: Stored hash to compare against

        Returns:
            True if password matches; False otherwise, including for
            OAuth-only accounts that have no usable hash
        """
        if not password_hash:
            return False
        try:
            return bcrypt.checkpw(
                _prehash(password),
                password_hash.encode('utf-8')
            )
        except ValueError:
            return False

    def generate_token(self) -> str:
        """
        Generate a cryptographically secure random token.

        Returns:
            URL-safe token string
        """
        return secrets.token_urlsafe(self.TOKEN_BYTES)

    def generate_oauth_state(self) -> str:
        """Random value for the OAuth ``state`` parameter (CSRF protection)."""
        return secrets.token_urlsafe(self.STATE_BYTES)

    @staticmethod
    def states_match(expected: str, received: str) -> bool:
        if not expected or not received:
            return False
        return hmac.compare_digest(expected.encode('utf-8'), received.encode('utf-8'))

    @staticmethod
    def sanitize_username(value: str) -> str:
        """Lowercase and keep only a-z and 0-9."""
        return _USERNAME_DISALLOWED.sub('', value.lower())

    @classmethod
    def generate_username(cls, display_name: str, email: str) -> str:
        """
        Build a local username from a display name, or the email local part.

        A random numeric suffix keeps collisions unlikely; callers retry with
        a fresh suffix when one happens anyway.
        """
        base = cls.sanitize_username(re.sub(r'\s+', '', display_name or ''))
        if not base:
            base = cls.sanitize_username(email.split('@', 1)[0])
        if not base:
            base = 'user'
        digits = ''.join(secrets.choice('0123456789') for _ in range(USERNAME_SUFFIX_DIGITS))
        return f"{base}{digits}"
