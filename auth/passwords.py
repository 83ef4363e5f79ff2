"""
auth/passwords.py -- Credential hashing and verification.

bcrypt is used directly, no passlib wrapper. bcrypt is the right choice for
low-entropy secrets because its cost factor makes brute force expensive, every
hash carries its own random salt, and checkpw compares in constant time.

bcrypt only looks at the first 72 bytes of input and current releases reject
longer values outright, so the policy check refuses them up front rather than
letting two different passwords collapse into the same hash.

Timing equalization: the decoy hash is computed once at construction. Callers
that find no account must still run verify_decoy() so the response time for
"no such account" matches "wrong password".

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging

import bcrypt

from auth.errors import WeakInputError

logger = logging.getLogger("authgate.auth")

_BCRYPT_MAX_BYTES = 72
_DECOY_PASSWORD = "authgate_timing_decoy"


class CredentialHasher:
    """Salted one-way password hashing with a minimum-length policy."""

    def __init__(self, min_length: int = 6, rounds: int = 12) -> None:
        self.min_length = min_length
        self.rounds = rounds
        self._decoy_hash = self._hashpw(_DECOY_PASSWORD)

    def check_strength(self, password: str) -> None:
        """Raise WeakInputError if the password violates the policy."""
        if len(password) < self.min_length:
            raise WeakInputError(f"Password must be at least {self.min_length} characters long.")
        if len(password.encode("utf-8")) > _BCRYPT_MAX_BYTES:
            raise WeakInputError(f"Password must be at most {_BCRYPT_MAX_BYTES} bytes long.")

    def hash(self, password: str) -> str:
        """Return a bcrypt hash of the password. Two calls never return the same value."""
        self.check_strength(password)
        return self._hashpw(password)

    def verify(self, password: str, stored: str) -> bool:
        """Return True if the password matches the stored hash.

        Never raises: a malformed stored hash or an oversize password is a
        mismatch, not an error.
        """
        try:
            return bcrypt.checkpw(password.encode("utf-8"), stored.encode("utf-8"))
        except (ValueError, TypeError):
            logger.debug("bcrypt rejected the verify input; treating as mismatch")
            return False

    def verify_decoy(self, password: str) -> bool:
        """Burn one verify against the decoy hash. Always returns False."""
        self.verify(password, self._decoy_hash)
        return False

    def _hashpw(self, password: str) -> str:
        return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")
