"""Single-use security tokens: minting, validation, and atomic consumption.

Tokens are opaque `secrets.token_urlsafe` strings. Values typed or pasted by
users are compared after removing all whitespace, since minted tokens never
contain any.
"""

import logging
import re
import secrets
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Callable, Iterator
from uuid import UUID

from identity.config import IdentityConfig
from identity.exceptions import (
    TokenAlreadyUsedError,
    TokenExpiredError,
    TokenNotFoundError,
)
from identity.stores import TokenStore
from identity.types import SecurityToken, TokenKind
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


def normalize_token(value: str) -> str:
    """Strip every whitespace character, including ones inside the value."""
    return _WHITESPACE.sub("", value or "")


class TokenIssuer:
    """Mints and checks single-use tokens against a TokenStore.

    Re-issuing a token of the same kind for the same subject does not revoke
    the earlier one; it stays usable until it expires or is consumed.
    """

    def __init__(
        self,
        store: TokenStore,
        config: IdentityConfig,
        clock: Callable[[], datetime] = now_utc,
    ):
        self._store = store
        self._config = config
        self._clock = clock

    def ttl_for(self, kind: TokenKind) -> timedelta:
        """Lifetime applied to newly issued tokens of `kind`."""
        minutes = {
            TokenKind.EMAIL_VERIFICATION: self._config.email_verification_expiry_minutes,
            TokenKind.MAGIC_LINK: self._config.magic_link_expiry_minutes,
            TokenKind.PASSWORD_RESET: self._config.reset_password_expiry_minutes,
        }[kind]
        return timedelta(minutes=minutes)

    def issue(
        self,
        kind: TokenKind,
        *,
        user_id: UUID | None = None,
        email: str | None = None,
        ttl: timedelta | None = None,
    ) -> SecurityToken:
        """Generate, persist and return a fresh token for a user or an email."""
        now = self._clock()
        token = SecurityToken(
            token=secrets.token_urlsafe(self._config.token_bytes),
            kind=kind,
            subject_user_id=user_id,
            subject_email=email,
            issued_at=now,
            expires_at=now + (ttl if ttl is not None else self.ttl_for(kind)),
        )
        self._store.store_token(token)
        logger.debug("Issued %s token for subject %s", kind.value, token.subject)
        return token

    def _check(self, token: SecurityToken | None, now: datetime) -> SecurityToken:
        if token is None:
            raise TokenNotFoundError("Token not found")
        if token.consumed_at is not None:
            raise TokenAlreadyUsedError("Token has already been used")
        if token.is_expired(now):
            raise TokenExpiredError("Token has expired")
        return token

    def validate(self, kind: TokenKind, value: str) -> SecurityToken:
        """Look up a token and check it is usable. Never mutates.

        Raises:
            TokenNotFoundError: No token of this kind has this value.
            TokenAlreadyUsedError: Token was consumed before.
            TokenExpiredError: Token lifetime elapsed.
        """
        value = normalize_token(value)
        if not value:
            raise TokenNotFoundError("Empty token")
        return self._check(self._store.get_token(kind, value), self._clock())

    def consume(self, kind: TokenKind, value: str) -> SecurityToken:
        """Validate then mark the token consumed. First concurrent caller wins.

        Raises the same errors as `validate`. A caller losing a race gets
        TokenAlreadyUsedError.
        """
        token = self.validate(kind, value)
        now = self._clock()
        consumed = self._store.mark_consumed(kind, token.token, now)
        if consumed is None:
            # Lost the compare-and-set: report why from the stored record.
            self._check(self._store.get_token(kind, token.token), now)
            raise TokenAlreadyUsedError("Token has already been used")
        return consumed

    @contextmanager
    def redeem(self, kind: TokenKind, value: str) -> Iterator[SecurityToken]:
        """Consume a token inside a store transaction and yield it.

        Writes made in the block commit together with the consumption. If the
        block raises, both are rolled back and the token stays usable.
        """
        with self._store.transaction():
            yield self.consume(kind, value)

    def find_live(self, kind: TokenKind, subject: str) -> SecurityToken | None:
        """Most recent unconsumed, unexpired token of `kind` for `subject`."""
        return self._store.find_live_token(kind, subject, self._clock())
