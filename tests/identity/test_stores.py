"""Tests for InMemoryIdentityStore."""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from identity.exceptions import EmailUnavailableError
from identity.types import SecurityToken, TokenKind

NOW = datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


def make_token(value="abc123", kind=TokenKind.MAGIC_LINK, **overrides) -> SecurityToken:
    fields = {
        "token": value,
        "kind": kind,
        "subject_email": "a@example.com",
        "issued_at": NOW,
        "expires_at": NOW + timedelta(minutes=10),
    }
    fields.update(overrides)
    return SecurityToken(**fields)


class TestUsers:
    """User records."""

    def test_create_and_find(self, store):
        user = store.create("a@example.com", "hash")

        assert store.find_by_email("a@example.com") == user
        assert store.get_by_id(user.id) == user
        assert user.email_verified_at is None

    def test_email_is_case_insensitive(self, store):
        user = store.create("Ada@Example.com", None)

        assert user.email == "ada@example.com"
        assert store.find_by_email("ADA@EXAMPLE.COM").id == user.id

    def test_duplicate_email_rejected(self, store):
        store.create("a@example.com", None)
        with pytest.raises(EmailUnavailableError):
            store.create("A@example.com", "hash")

    def test_unknown_user(self, store):
        assert store.find_by_email("nobody@example.com") is None
        assert store.get_by_id(uuid4()) is None

    def test_update_fields(self, store):
        user = store.create("a@example.com", None)

        updated = store.update_fields(user.id, {"given_name": "Ada", "job": "Analyst"})

        assert updated.given_name == "Ada"
        assert store.get_by_id(user.id).job == "Analyst"

    def test_update_fields_rejects_unknown_fields(self, store):
        user = store.create("a@example.com", None)
        with pytest.raises(ValueError, match="email"):
            store.update_fields(user.id, {"email": "evil@example.com"})

    def test_update_missing_user(self, store):
        with pytest.raises(ValueError):
            store.update_password_hash(uuid4(), "hash")

    def test_mark_email_verified(self, store):
        user = store.create("a@example.com", None)
        assert store.mark_email_verified(user.id, NOW).email_verified_at == NOW


class TestTokens:
    """Token records and the compare-and-set."""

    def test_store_and_get(self, store):
        token = make_token()
        store.store_token(token)

        assert store.get_token(TokenKind.MAGIC_LINK, "abc123") == token
        assert store.get_token(TokenKind.PASSWORD_RESET, "abc123") is None

    def test_mark_consumed_once(self, store):
        store.store_token(make_token())

        first = store.mark_consumed(TokenKind.MAGIC_LINK, "abc123", NOW)
        second = store.mark_consumed(TokenKind.MAGIC_LINK, "abc123", NOW)

        assert first.consumed_at == NOW
        assert second is None

    def test_mark_consumed_refuses_expired(self, store):
        store.store_token(make_token())
        assert store.mark_consumed(TokenKind.MAGIC_LINK, "abc123", NOW + timedelta(minutes=10)) is None

    def test_mark_consumed_unknown(self, store):
        assert store.mark_consumed(TokenKind.MAGIC_LINK, "missing", NOW) is None

    def test_find_live_token(self, store):
        store.store_token(make_token("older"))
        store.store_token(make_token("newer", issued_at=NOW + timedelta(minutes=1)))
        store.store_token(make_token("other", subject_email="b@example.com"))

        live = store.find_live_token(TokenKind.MAGIC_LINK, "a@example.com", NOW + timedelta(minutes=2))

        assert live.token == "newer"

    def test_find_live_token_none(self, store):
        store.store_token(make_token())
        assert store.find_live_token(TokenKind.MAGIC_LINK, "a@example.com", NOW + timedelta(hours=1)) is None


class TestTransaction:
    """Token and user writes that must land together."""

    def test_commit(self, store):
        store.store_token(make_token())

        with store.transaction():
            store.mark_consumed(TokenKind.MAGIC_LINK, "abc123", NOW)
            store.create("a@example.com", None)

        assert store.get_token(TokenKind.MAGIC_LINK, "abc123").consumed_at == NOW
        assert store.find_by_email("a@example.com") is not None

    def test_exception_restores_tokens_and_users(self, store):
        store.store_token(make_token())

        with pytest.raises(RuntimeError):
            with store.transaction():
                store.mark_consumed(TokenKind.MAGIC_LINK, "abc123", NOW)
                store.create("a@example.com", None)
                raise RuntimeError("write failed")

        assert store.get_token(TokenKind.MAGIC_LINK, "abc123").consumed_at is None
        assert store.find_by_email("a@example.com") is None
        assert store.create("a@example.com", None).email == "a@example.com"
