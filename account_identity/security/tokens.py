"""Signing and verification of session JWTs."""

from __future__ import annotations

import time
from typing import Any, Callable

import jwt

from ..domain.errors import InvalidToken


class JwtTokenIssuer:
    """HS256 token issuer that stamps issuer, issue time and expiry onto claims."""

    algorithm = "HS256"

    def __init__(
        self,
        *,
        secret: str,
        issuer: str,
        ttl_seconds: int,
        time_source: Callable[[], float] = time.time,
    ) -> None:
        self._secret = secret
        self._issuer = issuer
        self._ttl_seconds = ttl_seconds
        self._time = time_source

    def sign(self, claims: dict[str, Any]) -> tuple[str, int]:
        """Create a signed JWT carrying ``claims``.

        Parameters
        ----------
        claims:
            Account attributes to embed; ``sub`` must hold the account identifier.

        Returns
        -------
        tuple[str, int]
            A tuple containing the encoded JWT string and its TTL (in seconds).
        """

        now = int(self._time())
        payload: dict[str, Any] = {
            **claims,
            "iss": self._issuer,
            "iat": now,
            "exp": now + self._ttl_seconds,
        }
        token = jwt.encode(payload, self._secret, algorithm=self.algorithm)
        return token, self._ttl_seconds

    def verify(self, token: str) -> dict[str, Any]:
        """Decode and verify a JWT returning its payload.

        Raises
        ------
        InvalidToken
            When the token is malformed, expired, or signed by another issuer.
        """

        try:
            return jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                issuer=self._issuer,
                options={"require": ["exp", "iat", "sub"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise InvalidToken("token expired") from exc
        except jwt.PyJWTError as exc:
            raise InvalidToken(f"token rejected: {exc}") from exc
