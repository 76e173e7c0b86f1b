"""Security event logging for the identity audit trail.

Append-only log to the security_events table. Never pass passwords or token
values in `details`.
"""

from enum import Enum
from typing import Any
from uuid import UUID

from psycopg2.extras import Json

from clients.postgres_client import PostgresClient
from utils.timezone import now_utc


class SecurityEvent(Enum):
    """Identity flow security event types."""

    LOGIN_STARTED = "login_started"
    PASSWORD_LOGIN_SUCCEEDED = "password_login_succeeded"
    PASSWORD_LOGIN_FAILED = "password_login_failed"
    SIGNUP_SUCCEEDED = "signup_succeeded"
    SIGNUP_FAILED = "signup_failed"
    MAGIC_LINK_REQUESTED = "magic_link_requested"
    MAGIC_LINK_SENT = "magic_link_sent"
    MAGIC_LINK_CONFIRMATION_REQUIRED = "magic_link_confirmation_required"
    MAGIC_LINK_VERIFIED = "magic_link_verified"
    MAGIC_LINK_FAILED = "magic_link_failed"
    EMAIL_VERIFICATION_REQUESTED = "email_verification_requested"
    EMAIL_VERIFICATION_SUCCEEDED = "email_verification_succeeded"
    EMAIL_VERIFICATION_FAILED = "email_verification_failed"
    PASSWORD_RESET_REQUESTED = "password_reset_requested"
    PASSWORD_RESET_SUCCEEDED = "password_reset_succeeded"
    PASSWORD_RESET_FAILED = "password_reset_failed"
    PERSONAL_INFORMATION_UPDATED = "personal_information_updated"
    SESSION_SIGNED_OUT = "session_signed_out"
    MAIL_DISPATCH_FAILED = "mail_dispatch_failed"


class SecurityLogger:
    """Append-only security event logger."""

    def __init__(self, postgres: PostgresClient):
        self._db = postgres

    def log(
        self,
        event: SecurityEvent,
        email: str | None = None,
        user_id: UUID | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Log security event to database. Never pass passwords or token values."""
        self._db.execute_returning(
            """INSERT INTO security_events
               (event_type, email, user_id, ip_address, user_agent, details, created_at)
               VALUES (%s, %s, %s, %s, %s, %s, %s)
               RETURNING id""",
            (
                event.value,
                email,
                str(user_id) if user_id else None,
                ip_address,
                user_agent,
                Json(details) if details else None,
                now_utc(),
            ),
        )
