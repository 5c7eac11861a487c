"""Tests for configuration loading and service wiring."""
import os
from datetime import timedelta
from unittest.mock import patch

import pytest

from identity.config import GoogleOAuthConfig, IdentityConfig, SMTPConfig, Settings, load_config
from identity.factory import IdentityServices, create_services


def test_default_values():
    with patch.dict(os.environ, {}, clear=True):
        config = IdentityConfig.from_env()

    assert config.confirmation_cooldown == timedelta(minutes=5)
    assert config.confirmation_validity == timedelta(hours=24)
    assert config.bcrypt_rounds == 12
    assert config.require_domain_records is True
    assert config.validate() == (True, None)


def test_environment_override():
    env_vars = {
        "DATABASE_PATH": "/tmp/other.db",
        "APP_BASE_URL": "https://forum.example.com/",
        "CONFIRMATION_COOLDOWN_SECONDS": "60",
        "BCRYPT_ROUNDS": "10",
        "REQUIRE_DOMAIN_RECORDS": "false",
        "GOOGLE_CLIENT_ID": "cid",
        "GOOGLE_CLIENT_SECRET": "csecret",
        "SMTP_USER": "mailer@example.com",
        "SMTP_PASS": "pw",
    }
    with patch.dict(os.environ, env_vars, clear=True):
        settings = load_config(env_file=os.devnull)

    assert settings.identity.database_path == "/tmp/other.db"
    assert settings.identity.base_url == "https://forum.example.com"
    assert settings.identity.confirmation_cooldown == timedelta(seconds=60)
    assert settings.identity.bcrypt_rounds == 10
    assert settings.identity.require_domain_records is False
    assert settings.google.is_configured()
    assert settings.smtp.sender == "mailer@example.com"
    assert settings.smtp.is_configured()


@pytest.mark.parametrize("field,value,name", [
    ("bcrypt_rounds", 3, "BCRYPT_ROUNDS"),
    ("database_timeout", 0, "DATABASE_TIMEOUT"),
    ("confirmation_validity", timedelta(minutes=1), "CONFIRMATION_VALIDITY_HOURS"),
    ("mail_queue_size", 0, "MAIL_QUEUE_SIZE"),
    ("base_url", "forum.example.com", "APP_BASE_URL"),
])
def test_validate_rejects_bad_values(field, value, name):
    config = IdentityConfig(**{field: value})
    is_valid, error = config.validate()

    assert not is_valid
    assert name in error


def test_google_client_config():
    config = GoogleOAuthConfig(client_id="cid", client_secret="sec", redirect_uri="https://x/cb")
    web = config.client_config()["web"]

    assert web["client_id"] == "cid"
    assert web["redirect_uris"] == ["https://x/cb"]
    assert not GoogleOAuthConfig().is_configured()


def test_services_wire_together(tmp_path, notifier):
    settings = Settings(
        identity=IdentityConfig(
            database_path=str(tmp_path / "nested" / "identity.db"),
            bcrypt_rounds=4,
            require_domain_records=False
        ),
        google=GoogleOAuthConfig(),
        smtp=SMTPConfig()
    )
    services = IdentityServices(settings, notifier=notifier)

    account_id = services.credentials.sign_up("alice", "alice@example.com", "secret123")
    assert services.credentials.sign_in("alice@example.com", "secret123") == account_id
    assert len(notifier.jobs) == 1
    services.close()


def test_create_services_rejects_invalid_config(tmp_path):
    settings = Settings(
        identity=IdentityConfig(database_path=str(tmp_path / "x.db"), bcrypt_rounds=2),
        google=GoogleOAuthConfig(),
        smtp=SMTPConfig()
    )
    with pytest.raises(ValueError):
        create_services(settings)


def test_create_services_starts_mail_worker(tmp_path):
    settings = Settings(
        identity=IdentityConfig(
            database_path=str(tmp_path / "identity.db"),
            bcrypt_rounds=4,
            mail_shutdown_timeout=1
        ),
        google=GoogleOAuthConfig(),
        smtp=SMTPConfig()
    )
    services = create_services(settings)

    assert services.worker is not None
    assert services.credentials.checker is not None
    services.close()
