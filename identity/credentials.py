"""Password strength policy and argon2 hashing."""

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHash, VerificationError, VerifyMismatchError

from identity.exceptions import WeakPasswordError


class CredentialGuard:
    """Checks password strength, hashes and verifies passwords.

    Plaintext passwords are never logged or included in error messages.
    """

    def __init__(self, min_length: int = 10, hasher: PasswordHasher | None = None):
        self._min_length = min_length
        self._hasher = hasher or PasswordHasher()
        # Verified against when an account has no password, so the
        # response time does not reveal which case occurred.
        self._dummy_hash = self._hasher.hash("not-a-real-password")

    @property
    def min_length(self) -> int:
        return self._min_length

    def check_strength(self, password: str) -> None:
        """Raise WeakPasswordError if shorter than the minimum.

        Length counts characters (code points), not encoded bytes.
        """
        if len(password or "") < self._min_length:
            raise WeakPasswordError(self._min_length)

    def hash(self, password: str) -> str:
        return self._hasher.hash(password)

    def verify(self, password: str, stored_hash: str | None) -> bool:
        """Constant-time check of `password` against an argon2 hash."""
        if not stored_hash:
            try:
                self._hasher.verify(self._dummy_hash, password or "")
            except VerificationError:
                pass
            return False
        try:
            return self._hasher.verify(stored_hash, password or "")
        except (VerifyMismatchError, VerificationError, InvalidHash):
            return False
