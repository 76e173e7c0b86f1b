"""Browser session state storage.

SessionState is stored as JSON in Valkey under `session:<id>`, with a TTL
reset on every save. The id travels in an httponly cookie and is a
`secrets.token_urlsafe` string.
"""

import logging
import secrets

from pydantic import ValidationError

from clients.valkey_client import ValkeyClient
from identity.config import IdentityConfig
from identity.types import SessionState

logger = logging.getLogger(__name__)


class SessionStore:
    """Load and save SessionState by session id. Last write wins."""

    KEY_PREFIX = "session:"

    def __init__(self, valkey: ValkeyClient, config: IdentityConfig):
        self._valkey = valkey
        self._config = config

    def _key(self, session_id: str) -> str:
        return f"{self.KEY_PREFIX}{session_id}"

    @staticmethod
    def new_session_id() -> str:
        return secrets.token_urlsafe(32)

    def load(self, session_id: str | None) -> SessionState:
        """State for `session_id`; unknown, expired or corrupt ids load as anonymous."""
        if not session_id:
            return SessionState()
        try:
            data = self._valkey.get_json(self._key(session_id))
        except ValueError:
            logger.warning("Discarding unreadable session state")
            return SessionState()
        if data is None:
            return SessionState()
        try:
            return SessionState.model_validate(data)
        except ValidationError:
            logger.warning("Discarding session state that no longer validates")
            return SessionState()

    def save(self, session_id: str, state: SessionState) -> None:
        self._valkey.set_json(
            self._key(session_id),
            state.model_dump(mode="json"),
            expire_seconds=self._config.session_expiry_hours * 3600,
        )

    def destroy(self, session_id: str) -> None:
        """Safe to call with a nonexistent id."""
        self._valkey.delete(self._key(session_id))
