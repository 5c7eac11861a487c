"""
Wiring of the identity services from configuration.
"""
import logging
from typing import Optional

from .config import Settings, load_config, setup_logging
from .confirmation import ConfirmationService, Notifier
from .credentials import CredentialService
from .database import CredentialStore
from .domain_check import DomainReputationChecker
from .email_service import EmailService
from .email_worker import EmailWorker
from .resolution import IdentityResolutionService
from .security import SecurityManager


logger = logging.getLogger(__name__)


class IdentityServices:
    """The store, mail worker and the three services sharing them."""

    def __init__(
        self,
        settings: Settings,
        notifier: Optional[Notifier] = None,
        checker: Optional[DomainReputationChecker] = None
    ):
        config = settings.identity
        self.settings = settings
        self.store = CredentialStore(config.database_path, timeout=config.database_timeout)
        self.store.init_database()
        self.security = SecurityManager(bcrypt_rounds=config.bcrypt_rounds)

        self.worker: Optional[EmailWorker] = None
        if notifier is None:
            if not settings.smtp.is_configured():
                logger.warning("SMTP not configured, confirmation emails will fail to send")
            self.worker = EmailWorker(
                EmailService(settings.smtp),
                maxsize=config.mail_queue_size,
                workers=config.mail_workers
            ).start()
            notifier = self.worker

        if checker is None and config.require_domain_records:
            checker = DomainReputationChecker(timeout=config.dns_timeout)

        self.confirmation = ConfirmationService(self.store, notifier, config, self.security)
        self.credentials = CredentialService(self.store, self.confirmation, checker, self.security)
        self.resolution = IdentityResolutionService(self.store, settings.google, self.security)

    def close(self) -> None:
        """Drain the mail queue within the configured shutdown deadline."""
        if self.worker is not None:
            self.worker.close(self.settings.identity.mail_shutdown_timeout)


def create_services(settings: Optional[Settings] = None) -> IdentityServices:
    """Build services from ``settings`` or from the environment."""
    if settings is None:
        settings = load_config()
    setup_logging(settings.identity.log_level)
    is_valid, error = settings.identity.validate()
    if not is_valid:
        raise ValueError(error)
    return IdentityServices(settings)
