"""Aggregate account figures consumed by the reporting dashboard."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from .account import Role
from .audit import AuditAction, AuditEntry
from .contracts import AccountFilter
from .ports import AccountStore, AuditLog

ADMIN_MODIFICATION_LIMIT = 50


@dataclass(slots=True)
class AccountStats:
    total_users: int
    created_last_week: int
    created_last_month: int
    active_last_week: int
    active_last_month: int
    deleted: int
    blocked: int
    modified_last_30_days: int
    admin_modifications: list[AuditEntry] = field(default_factory=list)


def collect_stats(
    store: AccountStore,
    audit_log: AuditLog,
    now: datetime,
    *,
    admin_modification_limit: int = ADMIN_MODIFICATION_LIMIT,
) -> AccountStats:
    """Count accounts by lifecycle state and recent activity.

    These counts deliberately include deleted and blocked accounts where the
    figure is about them; only ``total_users`` excludes deleted accounts.
    """
    week_ago = now - timedelta(days=7)
    month_ago = now - timedelta(days=30)
    admin_changes, _ = audit_log.list_events(
        actions=(AuditAction.update, AuditAction.delete),
        target_role=Role.admin.value,
        limit=admin_modification_limit,
    )
    return AccountStats(
        total_users=store.count(AccountFilter(deleted=False)),
        created_last_week=store.count(AccountFilter(created_since=week_ago)),
        created_last_month=store.count(AccountFilter(created_since=month_ago)),
        active_last_week=store.count(AccountFilter(last_login_since=week_ago)),
        active_last_month=store.count(AccountFilter(last_login_since=month_ago)),
        deleted=store.count(AccountFilter(deleted=True)),
        blocked=store.count(AccountFilter(is_blocked=True)),
        modified_last_30_days=store.count(AccountFilter(updated_since=month_ago)),
        admin_modifications=admin_changes,
    )
