"""Audit trail entries and the fire-and-forget recorder used by the core."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable

from .account import Account, Actor, Role

if TYPE_CHECKING:
    from .ports import AuditLog

logger = logging.getLogger(__name__)


class AuditAction(str, Enum):
    create = "create"
    update = "update"
    delete = "delete"
    restore = "restore"
    block = "block"
    unblock = "unblock"
    login = "login"
    brute_force_attempt = "brute-force-attempt"


@dataclass(frozen=True, slots=True)
class AuditEntry:
    """Immutable record of an action taken against an account."""

    action: AuditAction
    created_at: datetime
    actor_id: str | None = None
    actor_email: str | None = None
    target_account_id: str | None = None
    target_role: Role | None = None
    changes: dict[str, Any] = field(default_factory=dict)
    note: str | None = None
    ip_address: str | None = None
    audit_id: int | None = None


class AuditRecorder:
    """Build audit entries and append them without failing the caller."""

    def __init__(self, log: "AuditLog", clock: Callable[[], datetime]) -> None:
        self._log = log
        self._clock = clock

    def record(
        self,
        action: AuditAction,
        *,
        actor: Actor,
        target: Account | None = None,
        changes: dict[str, Any] | None = None,
        note: str | None = None,
        ip_address: str | None = None,
    ) -> None:
        entry = AuditEntry(
            action=action,
            created_at=self._clock(),
            actor_id=actor.id,
            actor_email=actor.email,
            target_account_id=target.account_id if target else None,
            target_role=target.role if target else None,
            changes=changes or {},
            note=note,
            ip_address=ip_address,
        )
        try:
            self._log.append(entry)
        except Exception:
            logger.exception(
                "failed to write %s audit entry for account %s",
                action.value,
                entry.target_account_id,
            )
