"""In-process account and audit storage used for local development and tests."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from threading import Lock
from typing import Callable, Optional, Tuple

from .domain.account import Account, utcnow
from .domain.audit import AuditAction, AuditEntry
from .domain.contracts import AccountFilter
from .domain.errors import DuplicateEmail


def _matches(account: Account, criteria: AccountFilter) -> bool:
    if criteria.deleted is not None and account.deleted != criteria.deleted:
        return False
    if criteria.is_blocked is not None and account.is_blocked != criteria.is_blocked:
        return False
    if criteria.created_since and (account.created_at is None or account.created_at < criteria.created_since):
        return False
    if criteria.last_login_since and (
        account.last_login_at is None or account.last_login_at < criteria.last_login_since
    ):
        return False
    if criteria.updated_since and (account.updated_at is None or account.updated_at < criteria.updated_since):
        return False
    return True


class InMemoryAccountStore:
    """Thread-safe account store; a single lock serialises every read-modify-write."""

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock
        self._accounts: dict[str, Account] = {}
        self._ids_by_email: dict[str, str] = {}
        self._lock = Lock()

    def find_by_email(self, email: str) -> Account | None:
        with self._lock:
            account_id = self._ids_by_email.get(email.lower())
            return self._accounts.get(account_id) if account_id else None

    def find_by_id(self, account_id: str) -> Account | None:
        with self._lock:
            return self._accounts.get(account_id)

    def insert(self, account: Account) -> Account:
        email = account.email.lower()
        with self._lock:
            if email in self._ids_by_email:
                raise DuplicateEmail(f"{email} is already registered")
            now = self._clock()
            stored = replace(
                account,
                email=email,
                created_at=account.created_at or now,
                updated_at=account.updated_at or now,
            )
            self._accounts[stored.account_id] = stored
            self._ids_by_email[email] = stored.account_id
            return stored

    def conditional_update(
        self,
        account_id: str,
        predicate: Callable[[Account], bool],
        mutation: Callable[[Account], Account],
    ) -> Account | None:
        with self._lock:
            current = self._accounts.get(account_id)
            if current is None or not predicate(current):
                return None
            updated = replace(mutation(current), account_id=account_id, updated_at=self._clock())
            updated = replace(updated, email=updated.email.lower())
            if updated.email != current.email:
                owner = self._ids_by_email.get(updated.email)
                if owner is not None and owner != account_id:
                    raise DuplicateEmail(f"{updated.email} is already registered")
                del self._ids_by_email[current.email]
                self._ids_by_email[updated.email] = account_id
            self._accounts[account_id] = updated
            return updated

    def count(self, criteria: AccountFilter) -> int:
        with self._lock:
            return sum(1 for account in self._accounts.values() if _matches(account, criteria))

    def find_all(self, criteria: AccountFilter) -> list[Account]:
        with self._lock:
            matched = [account for account in self._accounts.values() if _matches(account, criteria)]
        return sorted(matched, key=lambda account: (account.created_at, account.account_id))


class InMemoryAuditLog:
    """Append-only audit log held in a list."""

    def __init__(self) -> None:
        self._entries: list[AuditEntry] = []
        self._lock = Lock()

    @property
    def entries(self) -> list[AuditEntry]:
        with self._lock:
            return list(self._entries)

    def append(self, entry: AuditEntry) -> None:
        with self._lock:
            self._entries.append(replace(entry, audit_id=len(self._entries) + 1))

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
    ) -> tuple[list[AuditEntry], Optional[Tuple[datetime, int]]]:
        limit = max(1, min(limit, 100))
        results = self.entries
        if account_id:
            results = [entry for entry in results if entry.target_account_id == account_id]
        if actions:
            results = [entry for entry in results if entry.action in actions]
        if target_role:
            results = [
                entry for entry in results
                if entry.target_role is not None and entry.target_role.value == target_role
            ]
        if created_after:
            results = [entry for entry in results if entry.created_at >= created_after]
        if created_before:
            results = [entry for entry in results if entry.created_at <= created_before]
        results.sort(key=lambda entry: (entry.created_at, entry.audit_id), reverse=True)
        if cursor:
            results = [entry for entry in results if (entry.created_at, entry.audit_id) < cursor]
        page = results[:limit]
        next_cursor = None
        if len(results) > limit:
            last = page[-1]
            next_cursor = (last.created_at, last.audit_id)
        return page, next_cursor
