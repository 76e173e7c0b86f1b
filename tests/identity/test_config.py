"""Tests for identity/config.py - Identity configuration with validation."""

import pytest
from pydantic import ValidationError

from identity.config import IdentityConfig


class TestIdentityConfigDefaults:
    """Tests that IdentityConfig has sensible defaults."""

    def test_token_lifetimes(self):
        config = IdentityConfig()
        assert config.email_verification_expiry_minutes == 15
        assert config.magic_link_expiry_minutes == 60
        assert config.reset_password_expiry_minutes == 60

    def test_password_min_length_default(self):
        assert IdentityConfig().password_min_length == 10

    def test_token_entropy_default(self):
        """32 bytes is well above 128 bits."""
        assert IdentityConfig().token_bytes == 32

    def test_renewal_disabled_by_default(self):
        assert IdentityConfig().email_verification_max_age_days is None

    def test_session_defaults(self):
        config = IdentityConfig()
        assert config.session_expiry_hours == 720  # 30 days
        assert config.session_cookie_name == "identity_session"
        assert config.session_cookie_secure is True


class TestIdentityConfigValidation:
    """Tests that IdentityConfig enforces validation bounds."""

    @pytest.mark.parametrize(
        "field,value",
        [
            ("email_verification_expiry_minutes", 4),
            ("email_verification_expiry_minutes", 61),
            ("magic_link_expiry_minutes", 1441),
            ("reset_password_expiry_minutes", 0),
            ("token_bytes", 15),
            ("password_min_length", 0),
            ("email_verification_max_age_days", 0),
            ("session_expiry_hours", 0),
            ("session_expiry_hours", 2161),
        ],
    )
    def test_out_of_bounds_rejected(self, field, value):
        with pytest.raises(ValidationError):
            IdentityConfig(**{field: value})

    def test_valid_custom_values(self):
        config = IdentityConfig(
            email_verification_expiry_minutes=30,
            magic_link_expiry_minutes=120,
            password_min_length=12,
            email_verification_max_age_days=365,
        )
        assert config.magic_link_expiry_minutes == 120
        assert config.email_verification_max_age_days == 365


class TestTrustedHostNames:
    """Redirect hosts always include the app's own host."""

    def test_includes_app_host(self):
        config = IdentityConfig(app_base_url="https://ID.Example.com:8443/base")
        assert config.trusted_host_names() == {"id.example.com"}

    def test_merges_configured_hosts(self):
        config = IdentityConfig(
            app_base_url="https://id.example.com",
            trusted_hosts=["App.Example.com", "admin.example.com"],
        )
        assert config.trusted_host_names() == {"id.example.com", "app.example.com", "admin.example.com"}
