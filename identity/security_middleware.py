"""Session middleware for FastAPI - loads and persists SessionState per request."""

from uuid import UUID

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from identity.config import IdentityConfig
from identity.session import SessionStore
from identity.types import SessionState


def _signed_in_id(state: SessionState) -> UUID | None:
    return state.authenticated_user.id if state.authenticated_user else None


class SessionMiddleware(BaseHTTPMiddleware):
    """Binds the browser session to `request.state.identity_session`.

    1. Reads the session id from the session cookie
    2. Loads SessionState (anonymous when missing or unknown)
    3. After the handler, saves whatever state the handler left there
    4. Issues a cookie the first time a non-empty state needs storing
    5. When the signed-in user changes (sign-in, sign-out), destroys the
       old record and continues under a new session id
    """

    STATE_ATTRIBUTE = "identity_session"

    def __init__(self, app, session_store: SessionStore, config: IdentityConfig):
        super().__init__(app)
        self._session_store = session_store
        self._config = config

    async def dispatch(self, request: Request, call_next):
        """Process request through middleware."""
        session_id = request.cookies.get(self._config.session_cookie_name)
        loaded = self._session_store.load(session_id)
        setattr(request.state, self.STATE_ATTRIBUTE, loaded)

        response = await call_next(request)

        state: SessionState = getattr(request.state, self.STATE_ATTRIBUTE)
        if session_id is not None and _signed_in_id(loaded) != _signed_in_id(state):
            self._session_store.destroy(session_id)
            session_id = None
            if state == SessionState():
                response.delete_cookie(self._config.session_cookie_name)
                return response

        if session_id is None and state == SessionState():
            return response

        if session_id is None:
            session_id = self._session_store.new_session_id()
            response.set_cookie(
                key=self._config.session_cookie_name,
                value=session_id,
                httponly=True,
                secure=self._config.session_cookie_secure,
                samesite="lax",
                max_age=self._config.session_expiry_hours * 3600,
            )

        # Saving on every request keeps the TTL sliding.
        self._session_store.save(session_id, state)
        return response
