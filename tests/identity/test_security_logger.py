"""Tests for SecurityLogger - identity event audit trail."""

from datetime import timezone
from unittest.mock import Mock
from uuid import uuid4

import pytest
from psycopg2.extras import Json

from clients.postgres_client import PostgresClient
from identity.security_logger import SecurityEvent, SecurityLogger
from utils.timezone import now_utc


@pytest.fixture
def postgres():
    return Mock(spec=PostgresClient)


@pytest.fixture
def audit_log(postgres):
    """SecurityLogger over a mocked database."""
    return SecurityLogger(postgres)


class TestLogEvent:
    """Test event logging."""

    def test_inserts_event(self, audit_log, postgres):
        """Event row carries its type, email and client details."""
        user_id = uuid4()

        audit_log.log(
            event=SecurityEvent.MAGIC_LINK_REQUESTED,
            email="logged@test.example.com",
            user_id=user_id,
            ip_address="192.168.1.1",
        )

        query, params = postgres.execute_returning.call_args.args
        assert "INSERT INTO security_events" in query
        assert params[:5] == ("magic_link_requested", "logged@test.example.com", str(user_id), "192.168.1.1", None)

    def test_details_stored_as_json(self, audit_log, postgres):
        audit_log.log(SecurityEvent.SIGNUP_FAILED, details={"reason": "weak_password"})

        details = postgres.execute_returning.call_args.args[1][5]
        assert isinstance(details, Json)
        assert details.adapted == {"reason": "weak_password"}

    def test_no_details(self, audit_log, postgres):
        audit_log.log(SecurityEvent.SESSION_SIGNED_OUT)
        assert postgres.execute_returning.call_args.args[1][5] is None

    def test_created_at_is_utc(self, audit_log, postgres):
        audit_log.log(SecurityEvent.LOGIN_STARTED, email="logged@test.example.com")

        created_at = postgres.execute_returning.call_args.args[1][6]
        assert created_at.tzinfo == timezone.utc
        assert created_at <= now_utc()
