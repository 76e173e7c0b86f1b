"""Tests for SessionStore - SessionState in Valkey."""

from uuid import uuid4

import pytest

from identity.session import SessionStore
from identity.types import SessionState, UserRef


@pytest.fixture
def session_store(valkey, config):
    return SessionStore(valkey, config)


class TestLoad:
    """Loading never fails; unknown sessions are anonymous."""

    def test_no_session_id(self, session_store):
        assert session_store.load(None) == SessionState()

    def test_unknown_session_id(self, session_store):
        assert session_store.load("unknown") == SessionState()

    def test_round_trip(self, session_store):
        state = SessionState(
            pending_email="a@example.com",
            authenticated_user=UserRef(id=uuid4(), email="b@example.com"),
            interaction_id="abc",
        )
        session_store.save("sid", state)

        assert session_store.load("sid") == state

    def test_corrupt_json_is_anonymous(self, session_store, valkey):
        valkey.data["session:sid"] = "{not json"
        assert session_store.load("sid") == SessionState()

    def test_invalid_shape_is_anonymous(self, session_store, valkey):
        valkey.set_json("session:sid", {"authenticated_user": {"id": "not-a-uuid"}}, expire_seconds=60)
        assert session_store.load("sid") == SessionState()


class TestSave:
    """Saving refreshes the TTL."""

    def test_uses_prefixed_key_and_ttl(self, session_store, valkey):
        session_store.save("sid", SessionState(pending_email="a@example.com"))

        assert valkey.get_json("session:sid") == {
            "pending_email": "a@example.com",
            "authenticated_user": None,
            "interaction_id": None,
            "referer": None,
        }
        assert valkey.expiry["session:sid"] == 720 * 3600

    def test_last_write_wins(self, session_store):
        session_store.save("sid", SessionState(pending_email="a@example.com"))
        session_store.save("sid", SessionState(pending_email="b@example.com"))

        assert session_store.load("sid").pending_email == "b@example.com"

    def test_destroy(self, session_store):
        session_store.save("sid", SessionState(pending_email="a@example.com"))

        session_store.destroy("sid")
        session_store.destroy("never-existed")

        assert session_store.load("sid") == SessionState()


class TestNewSessionId:
    def test_ids_are_unique(self):
        ids = {SessionStore.new_session_id() for _ in range(100)}
        assert len(ids) == 100
        assert all(len(session_id) >= 43 for session_id in ids)
