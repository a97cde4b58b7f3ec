"""Domain-level request contracts shared by multiple layers."""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import date, datetime
from typing import Any

from .account import Role


@dataclass(slots=True)
class CreateAccountInput:
    """Validated inputs required to register an account."""

    email: str
    password: str
    name: str
    surname: str
    age: int
    birth_date: date
    role: Role = Role.user


@dataclass(slots=True)
class UpdateAccountInput:
    """Partial profile update; ``None`` means leave the field unchanged."""

    email: str | None = None
    password: str | None = None
    name: str | None = None
    surname: str | None = None
    age: int | None = None
    birth_date: date | None = None
    role: Role | None = None

    def changes(self) -> dict[str, Any]:
        """Return only the fields that were supplied."""
        return {
            item.name: getattr(self, item.name)
            for item in fields(self)
            if getattr(self, item.name) is not None
        }


@dataclass(frozen=True, slots=True)
class AccountFilter:
    """Criteria accepted by ``AccountStore.count`` and ``AccountStore.find_all``.

    Unset fields do not constrain the result.
    """

    deleted: bool | None = None
    is_blocked: bool | None = None
    created_since: datetime | None = None
    last_login_since: datetime | None = None
    updated_since: datetime | None = None
