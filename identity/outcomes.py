"""Flow outcomes: stable notification codes, next steps, and the result type."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from identity.types import SessionState


class Notification(str, Enum):
    """Outcome codes surfaced to the web layer. Values are stable identifiers."""

    INVALID_EMAIL = "invalid_email"
    INVALID_CREDENTIALS = "invalid_credentials"
    INVALID_TOKEN = "invalid_token"
    INVALID_MAGIC_LINK = "invalid_magic_link"
    INVALID_MAGIC_LINK_WITH_REINIT = "invalid_magic_link_with_reinit"
    EMAIL_UNAVAILABLE = "email_unavailable"
    WEAK_PASSWORD = "weak_password"
    EMAIL_VERIFIED_ALREADY = "email_verified_already"
    INVALID_VERIFY_EMAIL_CODE = "invalid_verify_email_code"
    INVALID_PERSONAL_INFORMATIONS = "invalid_personal_informations"
    PASSWORD_CHANGE_SUCCESS = "password_change_success"
    RESET_PASSWORD_EMAIL_SENT = "reset_password_email_sent"
    EMAIL_VERIFICATION_RENEWAL = "email_verification_renewal"
    PERSONAL_INFORMATION_UPDATE_SUCCESS = "personal_information_update_success"
    LOGOUT_SUCCESS = "logout_success"


class Step(str, Enum):
    """The view or redirect the web layer should present next."""

    START_SIGN_IN = "start_sign_in"
    SIGN_IN = "sign_in"
    SIGN_UP = "sign_up"
    MAGIC_LINK_SENT = "magic_link_sent"
    CONFIRM_MAGIC_LINK = "confirm_magic_link"
    VERIFY_EMAIL = "verify_email"
    RESET_PASSWORD = "reset_password"
    CHANGE_PASSWORD = "change_password"
    PERSONAL_INFORMATION = "personal_information"
    SIGNED_IN = "signed_in"
    REDIRECT = "redirect"


NOTIFICATION_MESSAGES: dict[Notification, dict[str, str]] = {
    Notification.INVALID_EMAIL: {
        "type": "error",
        "description": "Invalid email address.",
    },
    Notification.INVALID_CREDENTIALS: {
        "type": "error",
        "description": "Incorrect password.",
    },
    Notification.INVALID_TOKEN: {
        "type": "warning",
        "description": (
            "The link you used is invalid or expired.\n\n"
            "Use “Reset” to receive a new link."
        ),
    },
    Notification.INVALID_MAGIC_LINK: {
        "type": "warning",
        "description": "The link you used is invalid or expired.",
    },
    Notification.INVALID_MAGIC_LINK_WITH_REINIT: {
        "type": "warning",
        "description": (
            "The link you used is invalid or expired.\n\n"
            "Use “Send the link” to receive a new link."
        ),
    },
    Notification.EMAIL_UNAVAILABLE: {
        "type": "warning",
        "description": (
            "An account already exists with this email.\n\n"
            "If you forgot your password, use “Forgot your password?”."
        ),
    },
    Notification.WEAK_PASSWORD: {
        "type": "error",
        "description": "Your password is too short. Please choose a longer password.",
    },
    Notification.EMAIL_VERIFIED_ALREADY: {
        "type": "error",
        "description": "Your email is already verified.",
    },
    Notification.INVALID_VERIFY_EMAIL_CODE: {
        "type": "error",
        "description": "The verification code you used is invalid or expired.",
    },
    Notification.INVALID_PERSONAL_INFORMATIONS: {
        "type": "error",
        "description": "The personal information format is invalid.",
    },
    Notification.PASSWORD_CHANGE_SUCCESS: {
        "type": "success",
        "description": "Your password was updated.\n\nPlease sign in with your new password.",
    },
    Notification.RESET_PASSWORD_EMAIL_SENT: {
        "type": "info",
        "description": "You will receive a reset link by email.",
    },
    Notification.EMAIL_VERIFICATION_RENEWAL: {
        "type": "info",
        "description": "To keep your account secure, your email address must be verified regularly.",
    },
    Notification.PERSONAL_INFORMATION_UPDATE_SUCCESS: {
        "type": "success",
        "description": "Your information was updated.",
    },
    Notification.LOGOUT_SUCCESS: {
        "type": "info",
        "description": "You are now signed out.",
    },
}


@dataclass(frozen=True)
class FlowResult:
    """
    Tagged result of one flow action.

    `state` is the session state to persist. On failure it is the exact
    state the action received. `context` carries values the next view needs
    (a did-you-mean suggestion, a token to echo back, a redirect location),
    never a password.
    """

    succeeded: bool
    state: SessionState
    step: Step
    notification: Notification | None = None
    context: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(
        cls,
        state: SessionState,
        step: Step,
        notification: Notification | None = None,
        **context: Any,
    ) -> "FlowResult":
        return cls(True, state, step, notification, context)

    @classmethod
    def fail(
        cls,
        state: SessionState,
        step: Step,
        notification: Notification | None = None,
        **context: Any,
    ) -> "FlowResult":
        return cls(False, state, step, notification, context)
