"""Identity flow state machine.

Every action takes the current SessionState plus its payload and returns a
FlowResult holding the next SessionState and the outcome. Domain errors are
recovered here and turned into notification codes; anything else propagates.
A failed action always returns the state it was given, unchanged.
"""

import logging
from datetime import datetime
from typing import Callable
from urllib.parse import quote

from identity.config import IdentityConfig
from identity.credentials import CredentialGuard
from identity.exceptions import (
    EmailPendingRequiredError,
    EmailUnavailableError,
    EmailVerifiedAlreadyError,
    InvalidCredentialsError,
    InvalidEmailError,
    InvalidMagicLinkError,
    InvalidPersonalInformationError,
    InvalidTokenError,
    NotAuthenticatedError,
    TokenNotFoundError,
    WeakPasswordError,
)
from identity.guards import AntiAutomationGuard
from identity.mailer import MailDispatcher
from identity.outcomes import FlowResult, Notification, Step
from identity.security_logger import SecurityEvent, SecurityLogger
from identity.stores import UserStore
from identity.tokens import TokenIssuer, normalize_token
from identity.types import PersonalInformation, SessionState, TokenKind, UserRecord
from identity.validators import EmailValidator, is_url_trusted
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class FlowOrchestrator:
    """Drives a browser session between anonymous, email-pending and authenticated.

    Handles:
    - Start of sign-in (email entry, did-you-mean)
    - Password sign-in and sign-up
    - Magic links (with enumeration safety and the same-browser rule)
    - Email verification codes
    - Password reset (enumeration safe, strength checked before the token is spent)
    - Personal information, sign-out, post sign-in redirect
    """

    def __init__(
        self,
        config: IdentityConfig,
        users: UserStore,
        token_issuer: TokenIssuer,
        credential_guard: CredentialGuard,
        email_validator: EmailValidator,
        mailer: MailDispatcher,
        security_logger: SecurityLogger,
        anti_automation_guard: AntiAutomationGuard | None = None,
        clock: Callable[[], datetime] = now_utc,
    ):
        self._config = config
        self._users = users
        self._tokens = token_issuer
        self._credentials = credential_guard
        self._emails = email_validator
        self._mailer = mailer
        self._security_logger = security_logger
        self._guard = anti_automation_guard or AntiAutomationGuard()
        self._clock = clock

    # Preconditions

    def _require_pending_email(self, session: SessionState) -> str:
        if not session.pending_email:
            raise EmailPendingRequiredError("No email entered in this session")
        return session.pending_email

    def _require_user(self, session: SessionState) -> UserRecord:
        if session.authenticated_user is None:
            raise NotAuthenticatedError("Sign-in required")
        user = self._users.get_by_id(session.authenticated_user.id)
        if user is None:
            raise NotAuthenticatedError("Signed-in user no longer exists")
        return user

    # Sign-in entry

    def begin(self, session: SessionState, interaction_id: str | None = None, referer: str | None = None) -> FlowResult:
        """Entry point: remember the return target, then show the right first step."""
        session = session.with_return_target(interaction_id, referer)
        if session.authenticated_user is not None:
            return FlowResult.ok(session, Step.SIGNED_IN)
        return FlowResult.ok(session, Step.START_SIGN_IN, email=session.pending_email)

    def start_login(self, session: SessionState, email: str) -> FlowResult:
        """Record the entered email and route to sign-in or sign-up."""
        normalized = self._emails.normalize(email)
        try:
            if not self._emails.is_valid(normalized):
                raise InvalidEmailError(self._emails.suggest(normalized))

            user = self._users.find_by_email(normalized)
            if user is None and self._config.suggest_email_corrections:
                suggestion = self._emails.suggest(normalized)
                if suggestion:
                    raise InvalidEmailError(suggestion)
        except InvalidEmailError as e:
            context = {"login_hint": email}
            if e.did_you_mean:
                context["did_you_mean"] = e.did_you_mean
            return FlowResult.fail(session, Step.START_SIGN_IN, Notification.INVALID_EMAIL, **context)

        self._security_logger.log(
            SecurityEvent.LOGIN_STARTED,
            email=normalized,
            user_id=user.id if user else None,
            details={"user_exists": user is not None},
        )
        return FlowResult.ok(
            session.with_pending_email(normalized),
            Step.SIGN_IN if user else Step.SIGN_UP,
            email=normalized,
        )

    def password_login(self, session: SessionState, password: str) -> FlowResult:
        try:
            email = self._require_pending_email(session)
        except EmailPendingRequiredError:
            return FlowResult.fail(session, Step.START_SIGN_IN, reason="email_required")

        user = self._users.find_by_email(email)
        try:
            if not password:
                raise InvalidCredentialsError("Empty password")
            if not self._credentials.verify(password, user.password_hash if user else None):
                raise InvalidCredentialsError("Password does not match")
        except InvalidCredentialsError as e:
            self._security_logger.log(
                SecurityEvent.PASSWORD_LOGIN_FAILED,
                email=email,
                user_id=user.id if user else None,
                details={"reason": str(e)},
            )
            return FlowResult.fail(session, Step.SIGN_IN, Notification.INVALID_CREDENTIALS)

        self._security_logger.log(SecurityEvent.PASSWORD_LOGIN_SUCCEEDED, email=email, user_id=user.id)
        return FlowResult.ok(session.authenticate(user), Step.SIGNED_IN)

    def signup(self, session: SessionState, password: str) -> FlowResult:
        try:
            email = self._require_pending_email(session)
        except EmailPendingRequiredError:
            return FlowResult.fail(session, Step.START_SIGN_IN, reason="email_required")

        if not password:
            return FlowResult.fail(session, Step.SIGN_UP, Notification.INVALID_CREDENTIALS)

        try:
            if self._users.find_by_email(email) is not None:
                raise EmailUnavailableError(f"Email already registered: {email}")
            self._credentials.check_strength(password)
            user = self._users.create(email, self._credentials.hash(password))
        except EmailUnavailableError:
            self._security_logger.log(
                SecurityEvent.SIGNUP_FAILED, email=email, details={"reason": "email_unavailable"}
            )
            return FlowResult.fail(session, Step.START_SIGN_IN, Notification.EMAIL_UNAVAILABLE)
        except WeakPasswordError as e:
            self._security_logger.log(
                SecurityEvent.SIGNUP_FAILED, email=email, details={"reason": "weak_password"}
            )
            return FlowResult.fail(
                session, Step.SIGN_UP, Notification.WEAK_PASSWORD, min_length=e.min_length
            )

        self._security_logger.log(SecurityEvent.SIGNUP_SUCCEEDED, email=user.email, user_id=user.id)
        return FlowResult.ok(session.authenticate(user), Step.SIGNED_IN)

    # Magic links

    def request_magic_link(self, session: SessionState) -> FlowResult:
        """Mint and send a magic link for the pending email.

        The outcome never depends on whether an account exists for the email.
        """
        try:
            email = self._require_pending_email(session)
        except EmailPendingRequiredError:
            return FlowResult.fail(session, Step.START_SIGN_IN, Notification.INVALID_EMAIL)

        token = self._tokens.issue(TokenKind.MAGIC_LINK, email=email)
        self._security_logger.log(
            SecurityEvent.MAGIC_LINK_REQUESTED,
            email=email,
            details={"expires_at": token.expires_at.isoformat()},
        )
        self._mailer.send_magic_link(email, token.token)
        return FlowResult.ok(session, Step.MAGIC_LINK_SENT, email=email)

    def consume_magic_link(self, session: SessionState, token: str, confirmed: bool = False) -> FlowResult:
        """Sign in with a magic link.

        A link opened without the pending email (another browser, a crawler,
        a mail scanner) is not consumed: the result asks for a manual
        confirmation, which comes back with `confirmed=True`.
        """
        value = normalize_token(token)
        had_pending_email = bool(session.pending_email)

        try:
            if not value:
                raise InvalidMagicLinkError("Empty magic link token")

            if not confirmed and self._guard.requires_manual_confirmation(session):
                self._security_logger.log(SecurityEvent.MAGIC_LINK_CONFIRMATION_REQUIRED)
                return FlowResult.ok(session, Step.CONFIRM_MAGIC_LINK, magic_link_token=value)

            with self._tokens.redeem(TokenKind.MAGIC_LINK, value) as record:
                user = self._magic_link_user(record.subject_email)
        except (InvalidTokenError, InvalidMagicLinkError) as e:
            self._security_logger.log(
                SecurityEvent.MAGIC_LINK_FAILED,
                email=session.pending_email,
                details={"reason": type(e).__name__},
            )
            if had_pending_email:
                return FlowResult.fail(session, Step.SIGN_IN, Notification.INVALID_MAGIC_LINK_WITH_REINIT)
            return FlowResult.fail(session, Step.START_SIGN_IN, Notification.INVALID_MAGIC_LINK)

        self._security_logger.log(SecurityEvent.MAGIC_LINK_VERIFIED, email=user.email, user_id=user.id)
        return FlowResult.ok(session.authenticate(user), Step.SIGNED_IN)

    def _magic_link_user(self, email: str) -> UserRecord:
        """User owning `email`, created without password if new. Marks the email verified."""
        user = self._users.find_by_email(email)
        if user is None:
            try:
                user = self._users.create(email, None)
                self._security_logger.log(
                    SecurityEvent.SIGNUP_SUCCEEDED,
                    email=user.email,
                    user_id=user.id,
                    details={"method": "magic_link"},
                )
            except EmailUnavailableError:
                # Created concurrently.
                user = self._users.find_by_email(email)
        if user.email_verified_at is None:
            user = self._users.mark_email_verified(user.id, self._clock())
        return user

    # Email verification

    def request_email_verification(self, session: SessionState, check_before_send: bool = False) -> FlowResult:
        """Send a verification code to the signed-in user's email.

        With `check_before_send`, no new code goes out while an earlier one is
        still live; `code_sent` in the context says which happened.
        """
        try:
            user = self._require_user(session)
            if not user.needs_email_verification(self._clock(), self._config.email_verification_max_age_days):
                raise EmailVerifiedAlreadyError(f"Email already verified: {user.email}")
        except NotAuthenticatedError:
            return FlowResult.fail(session, Step.START_SIGN_IN, reason="not_authenticated")
        except EmailVerifiedAlreadyError:
            return FlowResult.fail(session, Step.PERSONAL_INFORMATION, Notification.EMAIL_VERIFIED_ALREADY)

        notification = Notification.EMAIL_VERIFICATION_RENEWAL if user.email_verified_at else None

        if check_before_send and self._tokens.find_live(TokenKind.EMAIL_VERIFICATION, str(user.id)):
            return FlowResult.ok(session, Step.VERIFY_EMAIL, notification, email=user.email, code_sent=False)

        token = self._tokens.issue(TokenKind.EMAIL_VERIFICATION, user_id=user.id)
        self._security_logger.log(SecurityEvent.EMAIL_VERIFICATION_REQUESTED, email=user.email, user_id=user.id)
        self._mailer.send_verification_code(user.email, token.token)
        return FlowResult.ok(session, Step.VERIFY_EMAIL, notification, email=user.email, code_sent=True)

    def consume_email_verification(self, session: SessionState, code: str) -> FlowResult:
        try:
            user = self._require_user(session)
        except NotAuthenticatedError:
            return FlowResult.fail(session, Step.START_SIGN_IN, reason="not_authenticated")

        try:
            with self._tokens.redeem(TokenKind.EMAIL_VERIFICATION, code) as record:
                if record.subject_user_id != user.id:
                    raise TokenNotFoundError("Code belongs to another user")
                user = self._users.mark_email_verified(user.id, self._clock())
        except InvalidTokenError as e:
            self._security_logger.log(
                SecurityEvent.EMAIL_VERIFICATION_FAILED,
                email=user.email,
                user_id=user.id,
                details={"reason": type(e).__name__},
            )
            return FlowResult.fail(session, Step.VERIFY_EMAIL, Notification.INVALID_VERIFY_EMAIL_CODE)

        self._security_logger.log(SecurityEvent.EMAIL_VERIFICATION_SUCCEEDED, email=user.email, user_id=user.id)
        return FlowResult.ok(session.refresh_user(user), Step.SIGNED_IN)

    # Password reset

    def request_password_reset(self, session: SessionState, email: str) -> FlowResult:
        """Mint a reset token for `email`; mail it only if an account exists.

        The outcome is identical whether or not the account exists.
        """
        normalized = self._emails.normalize(email)
        if not self._emails.is_valid(normalized):
            return FlowResult.fail(session, Step.RESET_PASSWORD, Notification.INVALID_EMAIL)

        token = self._tokens.issue(TokenKind.PASSWORD_RESET, email=normalized)
        user = self._users.find_by_email(normalized)
        self._security_logger.log(
            SecurityEvent.PASSWORD_RESET_REQUESTED,
            email=normalized,
            user_id=user.id if user else None,
        )
        if user is not None:
            self._mailer.send_reset_password(user.email, token.token)
        else:
            logger.debug("Password reset requested for unknown email; nothing sent")

        return FlowResult.ok(session, Step.START_SIGN_IN, Notification.RESET_PASSWORD_EMAIL_SENT)

    def consume_password_reset(self, session: SessionState, token: str, new_password: str) -> FlowResult:
        """Set a new password with a reset token.

        The strength check runs first, so a weak password leaves a valid
        token unspent.
        """
        value = normalize_token(token)
        if not value:
            return FlowResult.fail(session, Step.RESET_PASSWORD, Notification.INVALID_TOKEN)

        try:
            self._credentials.check_strength(new_password)
        except WeakPasswordError as e:
            return FlowResult.fail(
                session,
                Step.CHANGE_PASSWORD,
                Notification.WEAK_PASSWORD,
                reset_password_token=value,
                min_length=e.min_length,
            )

        password_hash = self._credentials.hash(new_password)
        try:
            with self._tokens.redeem(TokenKind.PASSWORD_RESET, value) as record:
                user = self._users.find_by_email(record.subject_email)
                if user is None:
                    raise TokenNotFoundError("No account for reset token subject")
                self._users.update_password_hash(user.id, password_hash)
        except InvalidTokenError as e:
            self._security_logger.log(
                SecurityEvent.PASSWORD_RESET_FAILED, details={"reason": type(e).__name__}
            )
            return FlowResult.fail(session, Step.RESET_PASSWORD, Notification.INVALID_TOKEN)

        self._security_logger.log(SecurityEvent.PASSWORD_RESET_SUCCEEDED, email=user.email, user_id=user.id)
        return FlowResult.ok(session, Step.START_SIGN_IN, Notification.PASSWORD_CHANGE_SUCCESS)

    # Signed-in actions

    def update_personal_information(self, session: SessionState, information: PersonalInformation) -> FlowResult:
        try:
            user = self._require_user(session)
            missing = information.missing_fields()
            if missing:
                raise InvalidPersonalInformationError(missing)
        except NotAuthenticatedError:
            return FlowResult.fail(session, Step.START_SIGN_IN, reason="not_authenticated")
        except InvalidPersonalInformationError as e:
            return FlowResult.fail(
                session,
                Step.PERSONAL_INFORMATION,
                Notification.INVALID_PERSONAL_INFORMATIONS,
                fields=e.fields,
            )

        user = self._users.update_fields(user.id, information.stripped())
        self._security_logger.log(SecurityEvent.PERSONAL_INFORMATION_UPDATED, email=user.email, user_id=user.id)
        return FlowResult.ok(
            session.refresh_user(user),
            Step.SIGNED_IN,
            Notification.PERSONAL_INFORMATION_UPDATE_SUCCESS,
        )

    def sign_out(self, session: SessionState) -> FlowResult:
        if session.authenticated_user is not None:
            self._security_logger.log(
                SecurityEvent.SESSION_SIGNED_OUT,
                email=session.authenticated_user.email,
                user_id=session.authenticated_user.id,
            )
        return FlowResult.ok(session.signed_out(), Step.START_SIGN_IN, Notification.LOGOUT_SUCCESS)

    def continue_after_sign_in(self, session: SessionState) -> FlowResult:
        """Where to send a signed-in browser: SSO interaction, trusted referer, or home."""
        if session.interaction_id:
            location = f"/interaction/{quote(session.interaction_id, safe='')}/login"
            return FlowResult.ok(session, Step.REDIRECT, location=location)

        if session.referer and is_url_trusted(session.referer, self._config.trusted_host_names()):
            # A referer is followed once.
            return FlowResult.ok(
                session.model_copy(update={"referer": None}),
                Step.REDIRECT,
                location=session.referer,
            )

        return FlowResult.ok(session, Step.REDIRECT, location="/")
