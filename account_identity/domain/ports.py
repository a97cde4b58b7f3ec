"""Interfaces of the collaborators the account core depends on."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Optional, Protocol, Tuple

from .account import Account
from .audit import AuditAction, AuditEntry
from .contracts import AccountFilter


class AccountStore(Protocol):
    def find_by_email(self, email: str) -> Account | None: ...

    def find_by_id(self, account_id: str) -> Account | None: ...

    def insert(self, account: Account) -> Account:
        """Persist a new account; raises ``DuplicateEmail`` if the email is taken."""
        ...

    def conditional_update(
        self,
        account_id: str,
        predicate: Callable[[Account], bool],
        mutation: Callable[[Account], Account],
    ) -> Account | None:
        """Atomically read the current record, test ``predicate`` and write ``mutation``.

        Returns the stored result, or ``None`` when the account is missing or
        the predicate rejected its current state.
        """
        ...

    def count(self, criteria: AccountFilter) -> int: ...

    def find_all(self, criteria: AccountFilter) -> list[Account]: ...


class AuditLog(Protocol):
    def append(self, entry: AuditEntry) -> None: ...

    def list_events(
        self,
        *,
        account_id: str | None = None,
        actions: tuple[AuditAction, ...] | None = None,
        target_role: str | None = None,
        created_after: datetime | None = None,
        created_before: datetime | None = None,
        limit: int = 50,
        cursor: Tuple[datetime, int] | None = None,
    ) -> tuple[list[AuditEntry], Optional[Tuple[datetime, int]]]: ...


class CredentialHasher(Protocol):
    def hash(self, plaintext: str) -> str: ...

    def compare(self, plaintext: str, hashed: str) -> bool: ...


class TokenIssuer(Protocol):
    def sign(self, claims: dict[str, Any]) -> tuple[str, int]:
        """Return the signed token and its lifetime in seconds."""
        ...

    def verify(self, token: str) -> dict[str, Any]:
        """Return the claims of a valid token or raise ``InvalidToken``."""
        ...
