"""Identity front door: sign-in flows, single-use tokens, and session state."""

from identity.exceptions import (
    AuthError,
    InvalidEmailError,
    InvalidCredentialsError,
    EmailUnavailableError,
    WeakPasswordError,
    InvalidTokenError,
    TokenNotFoundError,
    TokenExpiredError,
    TokenAlreadyUsedError,
    InvalidMagicLinkError,
    EmailVerifiedAlreadyError,
    InvalidPersonalInformationError,
    NotAuthenticatedError,
    EmailPendingRequiredError,
)
from identity.types import (
    TokenKind,
    UserRecord,
    UserRef,
    PersonalInformation,
    SecurityToken,
    SessionPhase,
    SessionState,
)
from identity.outcomes import FlowResult, Notification, Step, NOTIFICATION_MESSAGES
from identity.config import IdentityConfig
from identity.tokens import TokenIssuer, normalize_token
from identity.credentials import CredentialGuard
from identity.guards import AntiAutomationGuard
from identity.validators import EmailValidator, is_url_trusted
from identity.stores import UserStore, TokenStore, InMemoryIdentityStore
from identity.flow import FlowOrchestrator
