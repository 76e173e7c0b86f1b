"""PostgreSQL-backed user and token stores.

Tables: users, security_tokens (see sql/identity_schema.sql).
Emails are stored lowercased; uniqueness is enforced by the users table.
"""

from contextlib import AbstractContextManager
from datetime import datetime
from typing import Any
from uuid import UUID

from clients.postgres_client import PostgresClient
from identity.exceptions import EmailUnavailableError
from identity.stores import USER_UPDATABLE_FIELDS
from identity.types import SecurityToken, TokenKind, UserRecord
from utils.timezone import to_utc

_USER_COLUMNS = """id, email, password_hash, email_verified_at, given_name,
       family_name, phone_number, job, created_at, updated_at"""

_TOKEN_COLUMNS = "token, kind, subject_user_id, subject_email, issued_at, expires_at, consumed_at"


def _uuid(value: Any) -> UUID | None:
    if value is None:
        return None
    return UUID(value) if isinstance(value, str) else value


def _user_from_row(row: dict) -> UserRecord:
    return UserRecord(**{**row, "id": _uuid(row["id"])})


def _token_from_row(row: dict) -> SecurityToken:
    return SecurityToken(
        token=row["token"],
        kind=TokenKind(row["kind"]),
        subject_user_id=_uuid(row["subject_user_id"]),
        subject_email=row["subject_email"],
        issued_at=to_utc(row["issued_at"]),
        expires_at=to_utc(row["expires_at"]),
        consumed_at=to_utc(row["consumed_at"]) if row["consumed_at"] else None,
    )


class IdentityDatabase:
    """UserStore and TokenStore on PostgreSQL."""

    def __init__(self, postgres: PostgresClient):
        self._db = postgres

    def transaction(self) -> AbstractContextManager[None]:
        """User and token writes inside the block commit together."""
        return self._db.transaction()

    # Users

    def find_by_email(self, email: str) -> UserRecord | None:
        """Find user by email (case-insensitive)."""
        row = self._db.execute_single(
            f"SELECT {_USER_COLUMNS} FROM users WHERE email = lower(%s)",
            (email,),
        )
        return _user_from_row(row) if row else None

    def get_by_id(self, user_id: UUID) -> UserRecord | None:
        row = self._db.execute_single(
            f"SELECT {_USER_COLUMNS} FROM users WHERE id = %s",
            (user_id,),
        )
        return _user_from_row(row) if row else None

    def create(self, email: str, password_hash: str | None) -> UserRecord:
        """Create a user (email lowercased).

        Raises:
            EmailUnavailableError: Email already registered.
        """
        # A UniqueViolation would abort an enclosing transaction.
        rows = self._db.execute_returning(
            f"""INSERT INTO users (email, password_hash)
                VALUES (lower(%s), %s)
                ON CONFLICT (email) DO NOTHING
                RETURNING {_USER_COLUMNS}""",
            (email, password_hash),
        )
        if not rows:
            raise EmailUnavailableError(f"Email already registered: {email.lower()}")
        return _user_from_row(rows[0])

    def _update_returning(self, user_id: UUID, assignments: str, params: tuple) -> UserRecord:
        rows = self._db.execute_returning(
            f"""UPDATE users SET {assignments}, updated_at = now()
                WHERE id = %s
                RETURNING {_USER_COLUMNS}""",
            (*params, user_id),
        )
        if not rows:
            raise ValueError(f"User not found: {user_id}")
        return _user_from_row(rows[0])

    def update_fields(self, user_id: UUID, fields: dict[str, Any]) -> UserRecord:
        """Update profile fields. Column names come from a fixed allow-list."""
        unknown = set(fields) - set(USER_UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Fields not updatable: {', '.join(sorted(unknown))}")
        if not fields:
            user = self.get_by_id(user_id)
            if user is None:
                raise ValueError(f"User not found: {user_id}")
            return user
        names = [name for name in USER_UPDATABLE_FIELDS if name in fields]
        assignments = ", ".join(f"{name} = %s" for name in names)
        return self._update_returning(user_id, assignments, tuple(fields[name] for name in names))

    def update_password_hash(self, user_id: UUID, password_hash: str) -> UserRecord:
        return self._update_returning(user_id, "password_hash = %s", (password_hash,))

    def mark_email_verified(self, user_id: UUID, verified_at: datetime) -> UserRecord:
        return self._update_returning(user_id, "email_verified_at = %s", (verified_at,))

    # Tokens

    def store_token(self, token: SecurityToken) -> None:
        self._db.execute_returning(
            f"""INSERT INTO security_tokens ({_TOKEN_COLUMNS})
                VALUES (%s, %s, %s, %s, %s, %s, %s)
                RETURNING token""",
            (
                token.token,
                token.kind.value,
                token.subject_user_id,
                token.subject_email,
                token.issued_at,
                token.expires_at,
                token.consumed_at,
            ),
        )

    def get_token(self, kind: TokenKind, value: str) -> SecurityToken | None:
        row = self._db.execute_single(
            f"SELECT {_TOKEN_COLUMNS} FROM security_tokens WHERE kind = %s AND token = %s",
            (kind.value, value),
        )
        return _token_from_row(row) if row else None

    def mark_consumed(self, kind: TokenKind, value: str, now: datetime) -> SecurityToken | None:
        """Compare-and-set on consumed_at. Only one concurrent caller gets a row back."""
        rows = self._db.execute_returning(
            f"""UPDATE security_tokens
                SET consumed_at = %s
                WHERE kind = %s AND token = %s
                  AND consumed_at IS NULL
                  AND expires_at > %s
                RETURNING {_TOKEN_COLUMNS}""",
            (now, kind.value, value, now),
        )
        return _token_from_row(rows[0]) if rows else None

    def find_live_token(self, kind: TokenKind, subject: str, now: datetime) -> SecurityToken | None:
        row = self._db.execute_single(
            f"""SELECT {_TOKEN_COLUMNS} FROM security_tokens
                WHERE kind = %s
                  AND (subject_user_id::text = %s OR subject_email = %s)
                  AND consumed_at IS NULL
                  AND expires_at > %s
                ORDER BY issued_at DESC
                LIMIT 1""",
            (kind.value, subject, subject, now),
        )
        return _token_from_row(row) if row else None

