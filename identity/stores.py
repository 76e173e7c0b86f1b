"""Persistence contracts for users and security tokens, plus an in-memory store.

The in-memory store backs tests and local development. Production uses
`identity.database.IdentityDatabase` on PostgreSQL.
"""

import threading
from contextlib import AbstractContextManager, contextmanager
from datetime import datetime
from typing import Any, Iterator, Protocol
from uuid import UUID, uuid4

from identity.exceptions import EmailUnavailableError
from identity.types import SecurityToken, TokenKind, UserRecord
from utils.timezone import now_utc

USER_UPDATABLE_FIELDS = ("given_name", "family_name", "phone_number", "job")


class UserStore(Protocol):
    """User records, unique by case-insensitive email."""

    def find_by_email(self, email: str) -> UserRecord | None: ...

    def get_by_id(self, user_id: UUID) -> UserRecord | None: ...

    def create(self, email: str, password_hash: str | None) -> UserRecord: ...

    def update_fields(self, user_id: UUID, fields: dict[str, Any]) -> UserRecord: ...

    def update_password_hash(self, user_id: UUID, password_hash: str) -> UserRecord: ...

    def mark_email_verified(self, user_id: UUID, verified_at: datetime) -> UserRecord: ...


class TokenStore(Protocol):
    """Security tokens keyed by (kind, value)."""

    def transaction(self) -> AbstractContextManager[None]:
        """Token and user writes made inside the block commit together or not at all.

        Stores implementing both protocols share one transaction for both.
        """
        ...

    def store_token(self, token: SecurityToken) -> None: ...

    def get_token(self, kind: TokenKind, value: str) -> SecurityToken | None: ...

    def mark_consumed(self, kind: TokenKind, value: str, now: datetime) -> SecurityToken | None:
        """Atomically set consumed_at if still unconsumed and unexpired.

        Returns the updated token, or None when another caller got there
        first or the token expired.
        """
        ...

    def find_live_token(self, kind: TokenKind, subject: str, now: datetime) -> SecurityToken | None: ...


class InMemoryIdentityStore:
    """Thread-safe in-memory UserStore and TokenStore."""

    def __init__(self):
        self._lock = threading.RLock()
        self._users: dict[UUID, UserRecord] = {}
        self._ids_by_email: dict[str, UUID] = {}
        self._tokens: dict[tuple[TokenKind, str], SecurityToken] = {}

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Holds the lock for the whole block; restores the previous records if it raises."""
        with self._lock:
            snapshot = (dict(self._users), dict(self._ids_by_email), dict(self._tokens))
            try:
                yield
            except BaseException:
                self._users, self._ids_by_email, self._tokens = snapshot
                raise

    # Users

    def find_by_email(self, email: str) -> UserRecord | None:
        with self._lock:
            user_id = self._ids_by_email.get(email.lower())
            return self._users.get(user_id) if user_id else None

    def get_by_id(self, user_id: UUID) -> UserRecord | None:
        with self._lock:
            return self._users.get(user_id)

    def create(self, email: str, password_hash: str | None) -> UserRecord:
        key = email.lower()
        with self._lock:
            if key in self._ids_by_email:
                raise EmailUnavailableError(f"Email already registered: {key}")
            now = now_utc()
            user = UserRecord(
                id=uuid4(),
                email=key,
                password_hash=password_hash,
                created_at=now,
                updated_at=now,
            )
            self._users[user.id] = user
            self._ids_by_email[key] = user.id
            return user

    def _update(self, user_id: UUID, changes: dict[str, Any]) -> UserRecord:
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                raise ValueError(f"User not found: {user_id}")
            updated = user.model_copy(update={**changes, "updated_at": now_utc()})
            self._users[user_id] = updated
            return updated

    def update_fields(self, user_id: UUID, fields: dict[str, Any]) -> UserRecord:
        unknown = set(fields) - set(USER_UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Fields not updatable: {', '.join(sorted(unknown))}")
        return self._update(user_id, fields)

    def update_password_hash(self, user_id: UUID, password_hash: str) -> UserRecord:
        return self._update(user_id, {"password_hash": password_hash})

    def mark_email_verified(self, user_id: UUID, verified_at: datetime) -> UserRecord:
        return self._update(user_id, {"email_verified_at": verified_at})

    # Tokens

    def store_token(self, token: SecurityToken) -> None:
        with self._lock:
            self._tokens[(token.kind, token.token)] = token

    def get_token(self, kind: TokenKind, value: str) -> SecurityToken | None:
        with self._lock:
            return self._tokens.get((kind, value))

    def mark_consumed(self, kind: TokenKind, value: str, now: datetime) -> SecurityToken | None:
        with self._lock:
            token = self._tokens.get((kind, value))
            if token is None or not token.is_valid(now):
                return None
            consumed = token.model_copy(update={"consumed_at": now})
            self._tokens[(kind, value)] = consumed
            return consumed

    def find_live_token(self, kind: TokenKind, subject: str, now: datetime) -> SecurityToken | None:
        with self._lock:
            live = [
                token
                for (token_kind, _), token in self._tokens.items()
                if token_kind == kind and token.subject == subject and token.is_valid(now)
            ]
        if not live:
            return None
        return max(live, key=lambda token: token.issued_at)
