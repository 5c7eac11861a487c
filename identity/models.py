"""
Pydantic models for the identity layer.
"""
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, EmailStr


class Provider(str, Enum):
    """Login method provider tags as stored in login_methods.provider."""
    LOCAL = "email"
    GOOGLE = "google"


class Account(BaseModel):
    """Account row."""
    id: int
    username: str
    email: EmailStr
    password_hash: Optional[str] = None
    is_email_confirmed: bool = False
    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None

    @property
    def has_password(self) -> bool:
        return self.password_hash is not None


class LoginMethod(BaseModel):
    """Link between an account and one authentication provider."""
    id: Optional[int] = None
    account_id: int
    provider: Provider
    identifier: str
    created_at: Optional[datetime] = None


class ConfirmationToken(BaseModel):
    """Email confirmation token row."""
    id: Optional[int] = None
    account_id: int
    token: str
    created_at: datetime
    last_sent_at: datetime
    expires_at: datetime
    is_stale: bool = False

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


class DomainInfo(BaseModel):
    """DNS deliverability signals for an email domain."""
    domain: str
    has_mx: bool = False
    has_spf: bool = False
    spf_record: str = ""
    has_dmarc: bool = False
    dmarc_record: str = ""

    @property
    def missing(self) -> List[str]:
        missing = []
        if not self.has_mx:
            missing.append("MX")
        if not self.has_spf:
            missing.append("SPF")
        if not self.has_dmarc:
            missing.append("DMARC")
        return missing

    @property
    def is_valid(self) -> bool:
        return not self.missing


class GoogleProfile(BaseModel):
    """The minimal profile returned by Google's userinfo endpoint."""
    id: str
    email: str
    name: str = ""
    verified_email: bool = True


class EmailJob(BaseModel):
    """An outbound email waiting in the notifier queue."""
    to: str
    subject: str
    body_html: str


class UserSession(BaseModel):
    """Authenticated account carried through a request."""
    account_id: int
    email: str
    username: str
    is_authenticated: bool = True
    is_email_confirmed: bool = False

    @property
    def warning(self) -> Optional[str]:
        if self.is_email_confirmed:
            return None
        return "Your email is not yet confirmed. Please check your inbox."
