"""
auth/hashing.py -- bcrypt password hashing.

bcrypt is used directly rather than through passlib: passlib's wrap-bug
detection hashes a password longer than 72 bytes, which current bcrypt
releases reject outright.

The work factor is fixed when the hasher is constructed (once, at startup,
from Settings.bcrypt_rounds). It is never chosen per call.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import bcrypt

from auth.errors import MalformedHashError

# bcrypt only reads the first 72 bytes of its input; longer inputs are rejected
# by the library. Request validation caps passwords at this size.
MAX_PASSWORD_BYTES = 72


class PasswordHasher:
    """Salted adaptive password hashing.

    Usage:
        hasher = PasswordHasher(rounds=settings.bcrypt_rounds)
        digest = hasher.hash("correct horse")
        hasher.verify("correct horse", digest)  # True
    """

    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds
        # Timing equalization: computed once so the first unknown-user login
        # is not measurably slower than later ones.
        self._dummy_hash = self.hash("communityauth_timing_dummy")

    def hash(self, password: str) -> str:
        """Return a bcrypt digest of password with a fresh salt."""
        return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, password: str, password_hash: str) -> bool:
        """Return True if password matches password_hash.

        A mismatch is False, never an exception. A digest bcrypt cannot parse
        raises MalformedHashError -- that is corrupted data, not a wrong
        password.
        """
        candidate = password.encode("utf-8")
        if len(candidate) > MAX_PASSWORD_BYTES:
            # Nothing this long can have been hashed.
            return False
        try:
            return bcrypt.checkpw(candidate, password_hash.encode("utf-8"))
        except ValueError as exc:
            raise MalformedHashError("Stored password hash is malformed.") from exc

    def verify_dummy(self, password: str) -> None:
        """Spend one comparison's worth of work against a throwaway hash.

        Called when a login names no known user so that response time does
        not reveal whether the account exists.
        """
        self.verify(password, self._dummy_hash)
