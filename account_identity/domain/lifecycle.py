"""Account lifecycle transitions and the read queries that respect soft deletion."""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable

from .account import SYSTEM_ACTOR, Account, AccountView, Actor, utcnow
from .audit import AuditAction, AuditRecorder
from .contracts import AccountFilter, CreateAccountInput, UpdateAccountInput
from .errors import DuplicateEmail, NotFound
from .ports import AccountStore, CredentialHasher

logger = logging.getLogger(__name__)


def _always(_: Account) -> bool:
    return True


class LifecycleEngine:
    """Apply create/update/delete/restore/block/unblock transitions to accounts.

    ``deleted`` and ``is_blocked`` are independent flags. Each transition is a
    single conditional write against the store and is followed by exactly one
    audit entry.
    """

    def __init__(
        self,
        store: AccountStore,
        hasher: CredentialHasher,
        audit: AuditRecorder,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._hasher = hasher
        self._audit = audit
        self._clock = clock

    def create(self, payload: CreateAccountInput, actor: Actor = SYSTEM_ACTOR) -> AccountView:
        """Register a new account; the email must be unused by any account, deleted ones included."""
        email = payload.email.strip().lower()
        if self._store.find_by_email(email) is not None:
            raise DuplicateEmail(f"{email} is already registered")

        now = self._clock()
        account = Account(
            account_id=str(uuid.uuid4()),
            email=email,
            name=payload.name,
            surname=payload.surname,
            age=payload.age,
            birth_date=payload.birth_date,
            password_hash=self._hasher.hash(payload.password),
            role=payload.role,
            modified_by=actor.id,
            created_at=now,
            updated_at=now,
        )
        saved = self._store.insert(account)
        self._audit.record(
            AuditAction.create,
            actor=actor,
            target=saved,
            changes={"after": saved.audit_profile()},
        )
        logger.info("account %s created by %s", saved.account_id, actor.id or "self-registration")
        return saved.public()

    def update(
        self, account_id: str, payload: UpdateAccountInput, actor: Actor = SYSTEM_ACTOR
    ) -> AccountView:
        """Apply a partial profile update regardless of the deleted/blocked flags."""
        changes: dict[str, Any] = payload.changes()
        if "email" in changes:
            changes["email"] = changes["email"].strip().lower()
            owner = self._store.find_by_email(changes["email"])
            if owner is not None and owner.account_id != account_id:
                raise DuplicateEmail(f"{changes['email']} is already registered")
        if "password" in changes:
            changes["password_hash"] = self._hasher.hash(changes.pop("password"))

        before, after = self._transition(
            account_id, _always, lambda current: replace(current, **changes, modified_by=actor.id)
        )
        self._audit.record(
            AuditAction.update,
            actor=actor,
            target=after,
            changes={"before": before.audit_profile(), "after": after.audit_profile()},
        )
        return after.public()

    def soft_delete(self, account_id: str, actor: Actor = SYSTEM_ACTOR) -> AccountView:
        before, after = self._transition(
            account_id, _always, lambda current: replace(current, deleted=True, modified_by=actor.id)
        )
        self._audit.record(
            AuditAction.delete,
            actor=actor,
            target=after,
            changes={"before": before.audit_profile(), "after": {"deleted": True}},
        )
        return after.public()

    def restore(self, account_id: str, actor: Actor = SYSTEM_ACTOR) -> AccountView:
        """Clear the deleted flag; only accounts that are currently deleted qualify."""
        _, after = self._transition(
            account_id,
            lambda current: current.deleted,
            lambda current: replace(current, deleted=False, modified_by=actor.id),
            missing=f"deleted account {account_id} not found",
        )
        self._audit.record(
            AuditAction.restore,
            actor=actor,
            target=after,
            changes={"before": {"deleted": True}, "after": {"deleted": False}},
        )
        return after.public()

    def block(self, account_id: str, actor: Actor = SYSTEM_ACTOR) -> AccountView:
        return self._set_blocked(account_id, True, actor)

    def unblock(self, account_id: str, actor: Actor = SYSTEM_ACTOR) -> AccountView:
        return self._set_blocked(account_id, False, actor)

    def _set_blocked(self, account_id: str, blocked: bool, actor: Actor) -> AccountView:
        before, after = self._transition(
            account_id,
            _always,
            lambda current: replace(current, is_blocked=blocked, modified_by=actor.id),
        )
        verb = "blocked" if blocked else "unblocked"
        self._audit.record(
            AuditAction.block if blocked else AuditAction.unblock,
            actor=actor,
            target=after,
            changes={"before": {"is_blocked": before.is_blocked}, "after": {"is_blocked": blocked}},
            note=f"User {after.email} {verb}.",
        )
        return after.public()

    def _transition(
        self,
        account_id: str,
        predicate: Callable[[Account], bool],
        mutation: Callable[[Account], Account],
        *,
        missing: str | None = None,
    ) -> tuple[Account, Account]:
        """Run one conditional write and return the (before, after) snapshots."""
        seen: list[Account] = []

        def apply(current: Account) -> Account:
            seen.append(current)
            return mutation(current)

        updated = self._store.conditional_update(account_id, predicate, apply)
        if updated is None:
            raise NotFound(missing or f"account {account_id} not found")
        return seen[-1], updated

    # Read side. Self-service queries hide deleted accounts; the admin
    # listings are the only way deleted or blocked accounts surface again.

    def get_account(self, account_id: str) -> AccountView:
        account = self._store.find_by_id(account_id)
        if account is None or account.deleted:
            raise NotFound(f"account {account_id} not found")
        return account.public()

    def list_accounts(self) -> list[AccountView]:
        return [account.public() for account in self._store.find_all(AccountFilter(deleted=False))]

    def list_deleted(self) -> list[AccountView]:
        return [account.public() for account in self._store.find_all(AccountFilter(deleted=True))]

    def list_blocked(self) -> list[AccountView]:
        return [account.public() for account in self._store.find_all(AccountFilter(is_blocked=True))]
