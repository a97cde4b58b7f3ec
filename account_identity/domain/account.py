from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    user = "user"
    admin = "admin"
    super_admin = "super-admin"
    basic = "basic"


@dataclass(frozen=True, slots=True)
class Actor:
    """Identity responsible for a transition; both fields are empty for system actions."""

    id: str | None = None
    email: str | None = None


SYSTEM_ACTOR = Actor()


@dataclass(frozen=True, slots=True)
class Account:
    """Immutable snapshot of a stored account record, credential included.

    Snapshots are never mutated; a new state is derived with
    :func:`dataclasses.replace` and handed to the store for an atomic write.
    """

    account_id: str
    email: str
    name: str
    surname: str
    age: int
    birth_date: date
    password_hash: str
    role: Role = Role.user
    deleted: bool = False
    is_blocked: bool = False
    failed_login_attempts: int = 0
    lockout_until: datetime | None = None
    last_login_at: datetime | None = None
    last_login_ip: str | None = None
    modified_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def is_locked(self, now: datetime) -> bool:
        return self.lockout_until is not None and self.lockout_until > now

    def public(self) -> "AccountView":
        return AccountView(
            account_id=self.account_id,
            email=self.email,
            name=self.name,
            surname=self.surname,
            age=self.age,
            birth_date=self.birth_date,
            role=self.role,
            deleted=self.deleted,
            is_blocked=self.is_blocked,
            failed_login_attempts=self.failed_login_attempts,
            lockout_until=self.lockout_until,
            last_login_at=self.last_login_at,
            last_login_ip=self.last_login_ip,
            modified_by=self.modified_by,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    def audit_profile(self) -> dict[str, Any]:
        """Return the name/email/role triple recorded in audit change snapshots."""
        return {"name": self.name, "email": self.email, "role": self.role.value}


@dataclass(frozen=True, slots=True)
class AccountView:
    """Account snapshot safe to hand outside the store (no password hash)."""

    account_id: str
    email: str
    name: str
    surname: str
    age: int
    birth_date: date
    role: Role
    deleted: bool
    is_blocked: bool
    failed_login_attempts: int
    lockout_until: datetime | None
    last_login_at: datetime | None
    last_login_ip: str | None
    modified_by: str | None
    created_at: datetime | None
    updated_at: datetime | None
