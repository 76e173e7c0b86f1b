"""Shared test fixtures for the identity test suite."""

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import Mock

import pytest
from argon2 import PasswordHasher
from dotenv import load_dotenv

from clients.email_client import EmailGatewayClient
from identity.config import IdentityConfig
from identity.credentials import CredentialGuard
from identity.flow import FlowOrchestrator
from identity.mailer import MailDispatcher
from identity.security_logger import SecurityLogger
from identity.stores import InMemoryIdentityStore
from identity.tokens import TokenIssuer
from identity.types import TokenKind
from identity.validators import EmailValidator

# Vault variables for the client tests that read the environment
load_dotenv(Path(__file__).parent.parent / ".env")


# =============================================================================
# TEST CONSTANTS
# =============================================================================

TEST_EMAIL = "testuser@test.example.com"
TEST_PASSWORD = "correct-horse-battery"
TEST_START = datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# TEST DOUBLES
# =============================================================================


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeValkey:
    """In-process stand-in for ValkeyClient. `data` holds the raw stored strings."""

    def __init__(self):
        self.data: dict[str, str] = {}
        self.expiry: dict[str, int] = {}

    def ping(self) -> bool:
        return True

    def delete(self, key: str) -> bool:
        self.expiry.pop(key, None)
        return self.data.pop(key, None) is not None

    def set_json(self, key: str, value: dict, expire_seconds: int) -> None:
        self.data[key] = json.dumps(value)
        self.expiry[key] = expire_seconds

    def get_json(self, key: str) -> dict | None:
        value = self.data.get(key)
        if value is None:
            return None
        try:
            return json.loads(value)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in key '{key}': {e}") from e

    def close(self) -> None:
        pass


# =============================================================================
# CORE FIXTURES
# =============================================================================


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(TEST_START)


@pytest.fixture
def config() -> IdentityConfig:
    """Test config: default lifetimes, plain-HTTP cookies for TestClient."""
    return IdentityConfig(
        app_base_url="https://id.test.example.com",
        session_cookie_secure=False,
    )


@pytest.fixture
def store() -> InMemoryIdentityStore:
    return InMemoryIdentityStore()


@pytest.fixture
def token_issuer(store, config, clock) -> TokenIssuer:
    return TokenIssuer(store, config, clock=clock)


@pytest.fixture(scope="session")
def fast_hasher() -> PasswordHasher:
    """Cheapest argon2 parameters; production defaults make tests slow."""
    return PasswordHasher(time_cost=1, memory_cost=8, parallelism=1)


@pytest.fixture
def credential_guard(config, fast_hasher) -> CredentialGuard:
    return CredentialGuard(min_length=config.password_min_length, hasher=fast_hasher)


@pytest.fixture
def security_logger():
    """Mock security logger - events are asserted, not stored."""
    return Mock(spec=SecurityLogger)


@pytest.fixture
def email_gateway():
    """Mock email gateway - no actual emails sent in tests."""
    mock = Mock(spec=EmailGatewayClient)
    mock.send.return_value = None
    return mock


@pytest.fixture
def mailer(email_gateway, config, security_logger) -> MailDispatcher:
    """Inline dispatcher so sends happen before the action returns."""
    return MailDispatcher(email_gateway, config, security_logger)


@pytest.fixture
def orchestrator(config, store, token_issuer, credential_guard, mailer, security_logger, clock):
    return FlowOrchestrator(
        config=config,
        users=store,
        token_issuer=token_issuer,
        credential_guard=credential_guard,
        email_validator=EmailValidator(),
        mailer=mailer,
        security_logger=security_logger,
        clock=clock,
    )


@pytest.fixture
def register_user(store, credential_guard, clock):
    """Create a user directly in the store."""

    def _register(email=TEST_EMAIL, password=TEST_PASSWORD, verified=False):
        user = store.create(email, credential_guard.hash(password) if password else None)
        if verified:
            user = store.mark_email_verified(user.id, clock())
        return user

    return _register


@pytest.fixture
def live_token(store, clock):
    """Value of the newest live token of a kind for a subject (email or user id)."""

    def _live(kind: TokenKind, subject) -> str | None:
        token = store.find_live_token(kind, str(subject), clock())
        return token.token if token else None

    return _live


@pytest.fixture
def valkey() -> FakeValkey:
    return FakeValkey()
