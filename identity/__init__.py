"""
Identity layer for the forum backend.

Provides local signup/signin, email confirmation and Google account linking.
"""
from .config import (
    IdentityConfig,
    GoogleOAuthConfig,
    SMTPConfig,
    Settings,
    load_config,
    setup_logging
)
from .confirmation import ConfirmationService
from .credentials import CredentialService
from .database import CredentialStore
from .domain_check import DomainReputationChecker
from .email_service import EmailService, render_confirmation_email
from .email_worker import EmailWorker
from .errors import (
    IdentityError,
    AccountExists,
    InvalidEmail,
    DomainUnverifiable,
    InvalidCredentials,
    StoreUnavailable,
    RateLimited,
    TokenUnknown,
    TokenAlreadyUsed,
    TokenExpired,
    ConfirmationFailed,
    ConfirmationIssueFailed,
    IdentityResolutionFailed,
    OAuthError
)
from .factory import IdentityServices, create_services
from .models import (
    Account,
    LoginMethod,
    ConfirmationToken,
    DomainInfo,
    GoogleProfile,
    EmailJob,
    Provider,
    UserSession
)
from .oauth import GoogleOAuth
from .resolution import IdentityResolutionService
from .security import SecurityManager

__all__ = [
    # Configuration
    'IdentityConfig',
    'GoogleOAuthConfig',
    'SMTPConfig',
    'Settings',
    'load_config',
    'setup_logging',
    # Services
    'CredentialService',
    'ConfirmationService',
    'IdentityResolutionService',
    'IdentityServices',
    'create_services',
    # Collaborators
    'CredentialStore',
    'DomainReputationChecker',
    'EmailService',
    'EmailWorker',
    'GoogleOAuth',
    'SecurityManager',
    'render_confirmation_email',
    # Models
    'Account',
    'LoginMethod',
    'ConfirmationToken',
    'DomainInfo',
    'GoogleProfile',
    'EmailJob',
    'Provider',
    'UserSession',
    # Errors
    'IdentityError',
    'AccountExists',
    'InvalidEmail',
    'DomainUnverifiable',
    'InvalidCredentials',
    'StoreUnavailable',
    'RateLimited',
    'TokenUnknown',
    'TokenAlreadyUsed',
    'TokenExpired',
    'ConfirmationFailed',
    'ConfirmationIssueFailed',
    'IdentityResolutionFailed',
    'OAuthError'
]
