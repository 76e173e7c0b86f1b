"""Pydantic models for the identity domain."""

from datetime import datetime, timedelta
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, model_validator


class TokenKind(str, Enum):
    """Single-use token purposes. A token only validates for its own kind."""

    EMAIL_VERIFICATION = "email_verification"
    MAGIC_LINK = "magic_link"
    PASSWORD_RESET = "password_reset"


class UserRecord(BaseModel):
    """A registered user, as held by the user store."""

    id: UUID
    email: str
    password_hash: str | None = None
    email_verified_at: datetime | None = None
    given_name: str | None = None
    family_name: str | None = None
    phone_number: str | None = None
    job: str | None = None
    created_at: datetime
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}

    def needs_email_verification(self, now: datetime, max_age_days: int | None = None) -> bool:
        """True if the email was never verified, or the verification went stale."""
        if self.email_verified_at is None:
            return True
        if max_age_days is None:
            return False
        return now - self.email_verified_at > timedelta(days=max_age_days)


class UserRef(BaseModel):
    """Reference to the signed-in user kept in the browser session."""

    id: UUID
    email: str

    model_config = {"frozen": True}


class PersonalInformation(BaseModel):
    """Profile fields editable once signed in."""

    given_name: str = ""
    family_name: str = ""
    phone_number: str = ""
    job: str = ""

    def missing_fields(self) -> list[str]:
        """Names of fields that are empty once surrounding whitespace is removed."""
        return [name for name, value in self.model_dump().items() if not value.strip()]

    def stripped(self) -> dict[str, str]:
        return {name: value.strip() for name, value in self.model_dump().items()}


class SecurityToken(BaseModel):
    """A single-use, time-limited token awaiting consumption."""

    token: str = Field(..., description="URL-safe random token")
    kind: TokenKind
    subject_user_id: UUID | None = None
    subject_email: str | None = None
    issued_at: datetime
    expires_at: datetime
    consumed_at: datetime | None = None

    @model_validator(mode="after")
    def _require_subject(self) -> "SecurityToken":
        if self.subject_user_id is None and self.subject_email is None:
            raise ValueError("SecurityToken needs a subject_user_id or a subject_email")
        return self

    @property
    def subject(self) -> str:
        """Subject key used to group tokens of one kind (user id or email)."""
        if self.subject_user_id is not None:
            return str(self.subject_user_id)
        return self.subject_email

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def is_valid(self, now: datetime) -> bool:
        """Valid iff never consumed and not yet expired."""
        return self.consumed_at is None and not self.is_expired(now)


class SessionPhase(str, Enum):
    """Where a browser session stands in the sign-in flow."""

    ANONYMOUS = "anonymous"
    EMAIL_PENDING = "email_pending"
    AUTHENTICATED = "authenticated"


class SessionState(BaseModel):
    """
    Flow state attached to one browser session.

    Frozen: every transition returns a new value, so a failed action hands
    back the exact state it received.
    """

    pending_email: str | None = None
    authenticated_user: UserRef | None = None
    interaction_id: str | None = None
    referer: str | None = None

    model_config = {"frozen": True}

    @property
    def phase(self) -> SessionPhase:
        if self.authenticated_user is not None:
            return SessionPhase.AUTHENTICATED
        if self.pending_email:
            return SessionPhase.EMAIL_PENDING
        return SessionPhase.ANONYMOUS

    def with_pending_email(self, email: str) -> "SessionState":
        return self.model_copy(update={"pending_email": email})

    def authenticate(self, user: UserRecord) -> "SessionState":
        """Sign the user in. Always drops the pending email."""
        return self.model_copy(
            update={
                "authenticated_user": UserRef(id=user.id, email=user.email),
                "pending_email": None,
            }
        )

    def with_return_target(self, interaction_id: str | None, referer: str | None) -> "SessionState":
        """Remember where to send the browser once signed in. None keeps the stored value."""
        update = {}
        if interaction_id:
            update["interaction_id"] = interaction_id
        if referer:
            update["referer"] = referer
        return self.model_copy(update=update)

    def refresh_user(self, user: UserRecord) -> "SessionState":
        return self.model_copy(update={"authenticated_user": UserRef(id=user.id, email=user.email)})

    def signed_out(self) -> "SessionState":
        return self.model_copy(update={"authenticated_user": None, "pending_email": None})


# Request payloads. Values are kept as plain strings so the flow, not the
# transport, decides which outcome an empty or malformed value maps to.


class StartSignInRequest(BaseModel):
    login: str


class PasswordRequest(BaseModel):
    password: str


class MagicLinkTokenRequest(BaseModel):
    magic_link_token: str


class VerifyEmailRequest(BaseModel):
    verify_email_token: str


class ResetPasswordRequest(BaseModel):
    login: str


class ChangePasswordRequest(BaseModel):
    reset_password_token: str
    password: str
