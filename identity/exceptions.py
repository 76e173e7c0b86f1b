"""Typed exceptions for identity flow failures.

Each failure the flow can report has its own class. The orchestrator catches
them at its boundary and turns them into outcome codes, so nothing here ever
reaches the browser as an exception.
"""


class AuthError(Exception):
    """Base class for authentication/authorization errors."""


class InvalidEmailError(AuthError):
    """Email failed format validation, or looks like a typo of a known domain."""

    def __init__(self, did_you_mean: str | None = None):
        self.did_you_mean = did_you_mean
        message = "Invalid email address"
        if did_you_mean:
            message = f"{message} (did you mean {did_you_mean}?)"
        super().__init__(message)


class InvalidCredentialsError(AuthError):
    """Password does not match, or the account has no password."""


class EmailUnavailableError(AuthError):
    """An account already exists with this email."""


class WeakPasswordError(AuthError):
    """Password is shorter than the configured minimum."""

    def __init__(self, min_length: int):
        self.min_length = min_length
        super().__init__(f"Password must be at least {min_length} characters long.")


class InvalidTokenError(AuthError):
    """
    Token is invalid, expired, or already used.

    Callers that only care about validity catch this class; the subclasses
    exist for logging the precise reason.
    """


class TokenNotFoundError(InvalidTokenError):
    """No token of the requested kind matches the value."""


class TokenExpiredError(InvalidTokenError):
    """Token exists but its lifetime has elapsed."""


class TokenAlreadyUsedError(InvalidTokenError):
    """Token was consumed before. Single-use tokens never validate twice."""


class InvalidMagicLinkError(AuthError):
    """Magic link token could not be used to sign in."""


class EmailVerifiedAlreadyError(AuthError):
    """The authenticated user's email is already verified."""


class InvalidPersonalInformationError(AuthError):
    """One or more required personal information fields are empty."""

    def __init__(self, fields: list[str]):
        self.fields = fields
        super().__init__(f"Missing personal information: {', '.join(fields)}")


class NotAuthenticatedError(AuthError):
    """Action requires an authenticated session."""


class EmailPendingRequiredError(AuthError):
    """Action requires an email entered earlier in the same session."""
