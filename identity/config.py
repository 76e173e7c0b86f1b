"""Identity flow configuration."""

from urllib.parse import urlparse

from pydantic import BaseModel, Field


class IdentityConfig(BaseModel):
    """
    Identity flow configuration.

    Token lifetimes are in minutes; session and renewal windows use the
    coarser unit that reads naturally for them.
    """

    # Token lifetimes
    email_verification_expiry_minutes: int = Field(
        default=15,
        description="How long an email verification code remains valid",
        ge=5,
        le=60,
    )
    magic_link_expiry_minutes: int = Field(
        default=60,
        description="How long magic links remain valid",
        ge=5,
        le=1440,
    )
    reset_password_expiry_minutes: int = Field(
        default=60,
        description="How long password reset links remain valid",
        ge=5,
        le=1440,
    )
    token_bytes: int = Field(
        default=32,
        description="Random bytes per minted token (32 bytes = 256 bits)",
        ge=16,
        le=64,
    )

    # Credentials
    password_min_length: int = Field(
        default=10,
        description="Minimum password length, in characters",
        ge=1,
    )

    # Email verification
    email_verification_max_age_days: int | None = Field(
        default=None,
        description="Re-verify emails verified longer ago than this (None disables renewal)",
        ge=1,
    )
    suggest_email_corrections: bool = Field(
        default=True,
        description="Reject unknown emails whose domain looks like a typo of a common provider",
    )

    # Browser session
    session_expiry_hours: int = Field(
        default=720,  # 30 days
        description="Lifetime of the stored session state in hours",
        ge=1,
        le=2160,
    )
    session_cookie_name: str = Field(
        default="identity_session",
        description="Cookie carrying the browser session id",
    )
    session_cookie_secure: bool = Field(
        default=True,
        description="Only send the session cookie over HTTPS",
    )

    # Application
    app_base_url: str = Field(
        default="http://localhost:8000",
        description="Base URL for links sent by email",
    )
    app_name: str = Field(
        default="Identity",
        description="Application name for emails",
    )
    trusted_hosts: list[str] = Field(
        default_factory=list,
        description="Extra hosts accepted as post sign-in redirect targets",
    )

    def trusted_host_names(self) -> set[str]:
        """Hosts accepted for redirects, always including the app's own host."""
        hosts = {host.lower() for host in self.trusted_hosts}
        own_host = urlparse(self.app_base_url).hostname
        if own_host:
            hosts.add(own_host.lower())
        return hosts
