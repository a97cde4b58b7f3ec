"""Session issuance after a successful authentication."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Callable

from .account import AccountView, Actor, utcnow
from .audit import AuditAction, AuditRecorder
from .ports import AccountStore, TokenIssuer

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SessionToken:
    """Bearer token handed back to a client after login."""

    access_token: str
    expires_in: int
    token_type: str = "bearer"


def build_claims(account: AccountView) -> dict[str, Any]:
    """Return the account attributes embedded in a session token."""
    return {
        "sub": account.account_id,
        "email": account.email,
        "name": account.name,
        "surname": account.surname,
        "age": account.age,
        "role": account.role.value,
        "createdAt": account.created_at.isoformat() if account.created_at else None,
    }


class SessionIssuer:
    def __init__(
        self,
        store: AccountStore,
        tokens: TokenIssuer,
        audit: AuditRecorder,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._tokens = tokens
        self._audit = audit
        self._clock = clock

    def issue_session(self, account: AccountView, caller_ip: str | None) -> SessionToken:
        """Record the login on the account and return a signed token for it.

        Recording the login is best effort: if the account has disappeared in
        the meantime the token is still issued for the credentials that were
        already verified.
        """
        now = self._clock()
        recorded = self._store.conditional_update(
            account.account_id,
            lambda current: True,
            lambda current: replace(current, last_login_at=now, last_login_ip=caller_ip),
        )
        if recorded is None:
            logger.warning("account %s vanished before its login could be recorded", account.account_id)
        else:
            self._audit.record(
                AuditAction.login,
                actor=Actor(id=account.account_id, email=account.email),
                target=recorded,
                note=f"Login from {caller_ip}",
                ip_address=caller_ip,
            )

        token, expires_in = self._tokens.sign(build_claims(account))
        return SessionToken(access_token=token, expires_in=expires_in)

    def verify(self, token: str) -> dict[str, Any]:
        return self._tokens.verify(token)
