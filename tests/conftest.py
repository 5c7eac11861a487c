"""Shared pytest fixtures.

Each test gets a fresh SQLite file, a controllable clock, a notifier that
records queued emails instead of sending them, and a DNS resolver answering
from a dict.
"""
import re
import threading
from datetime import datetime, timedelta, timezone

import dns.resolver
import pytest

from identity.config import GoogleOAuthConfig, IdentityConfig
from identity.confirmation import ConfirmationService
from identity.credentials import CredentialService
from identity.database import CredentialStore
from identity.domain_check import DomainReputationChecker
from identity.resolution import IdentityResolutionService
from identity.security import SecurityManager


TOKEN_RE = re.compile(r'token=([A-Za-z0-9_\-]+)')


class FakeClock:
    def __init__(self, start=None):
        self.now = start or datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class RecordingNotifier:
    def __init__(self):
        self.jobs = []
        self._lock = threading.Lock()

    def enqueue(self, to, subject, body_html):
        with self._lock:
            self.jobs.append((to, subject, body_html))
        return True

    def tokens_for(self, to):
        return [TOKEN_RE.search(body).group(1) for rcpt, _, body in self.jobs if rcpt == to]


class FakeTXT:
    def __init__(self, *chunks):
        self.strings = tuple(c.encode('utf-8') for c in chunks)


class FakeResolver:
    """Answers from ``records[(name, rdtype)]``; anything else is NXDOMAIN."""

    def __init__(self, records=None):
        self.records = records or {}
        self.queries = []

    def resolve(self, name, rdtype, lifetime=None):
        self.queries.append((name, rdtype))
        answer = self.records.get((name, rdtype))
        if answer is None:
            raise dns.resolver.NXDOMAIN()
        if isinstance(answer, Exception):
            raise answer
        return answer


def good_domain_records(domain):
    return {
        (domain, 'MX'): ['10 mx.' + domain],
        (domain, 'TXT'): [FakeTXT('google-site-verification=abc'),
                          FakeTXT('v=spf1 include:_spf.', domain, ' ~all')],
        ('_dmarc.' + domain, 'TXT'): [FakeTXT('v=DMARC1; p=reject')],
    }


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def resolver():
    return FakeResolver(good_domain_records('example.com'))


@pytest.fixture
def config(tmp_path):
    return IdentityConfig(
        database_path=str(tmp_path / 'identity.db'),
        base_url='https://forum.test',
        bcrypt_rounds=4
    )


@pytest.fixture
def store(config):
    store = CredentialStore(config.database_path, timeout=config.database_timeout)
    store.init_database()
    return store


@pytest.fixture
def security():
    return SecurityManager(bcrypt_rounds=4)


@pytest.fixture
def checker(resolver):
    return DomainReputationChecker(timeout=1.0, resolver=resolver)


@pytest.fixture
def confirmation(store, notifier, config, security, clock):
    return ConfirmationService(store, notifier, config, security, clock=clock)


@pytest.fixture
def credentials(store, confirmation, checker, security, clock):
    return CredentialService(store, confirmation, checker, security, clock=clock)


@pytest.fixture
def resolution(store, security, clock):
    return IdentityResolutionService(store, GoogleOAuthConfig(), security, clock=clock)
