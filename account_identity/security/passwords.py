"""bcrypt-backed credential hashing."""

from __future__ import annotations

import bcrypt


class BcryptHasher:
    """One-way password hashing with a configurable bcrypt cost factor."""

    def __init__(self, rounds: int = 10) -> None:
        if not 4 <= rounds <= 31:
            raise ValueError("bcrypt rounds must be between 4 and 31")
        self._rounds = rounds

    def hash(self, plaintext: str) -> str:
        return bcrypt.hashpw(plaintext.encode("utf-8"), bcrypt.gensalt(rounds=self._rounds)).decode("utf-8")

    def compare(self, plaintext: str, hashed: str) -> bool:
        """Constant-time check of ``plaintext`` against a stored hash; malformed hashes never match."""
        try:
            return bcrypt.checkpw(plaintext.encode("utf-8"), hashed.encode("utf-8"))
        except ValueError:
            return False
