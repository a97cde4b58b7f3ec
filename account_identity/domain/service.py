"""Account service orchestrating authentication, lifecycle transitions and auditing."""

from __future__ import annotations

from base64 import urlsafe_b64decode, urlsafe_b64encode
from datetime import datetime
import json
from typing import Any, Callable, Optional, Tuple

from .account import SYSTEM_ACTOR, AccountView, Actor, utcnow
from .audit import AuditAction, AuditEntry, AuditRecorder
from .contracts import CreateAccountInput, UpdateAccountInput
from .errors import (
    AccountBlocked,
    AccountDeleted,
    AccountLocked,
    AccountNotFound,
    AuthenticationError,
)
from .guard import LOCKOUT_MINUTES, MAX_LOGIN_ATTEMPTS, BruteForceGuard
from .lifecycle import LifecycleEngine
from .ports import AccountStore, AuditLog, CredentialHasher, TokenIssuer
from .sessions import SessionIssuer, SessionToken
from .stats import AccountStats, collect_stats
from ..metrics import LIFECYCLE_TRANSITIONS, LOGIN_ATTEMPTS

_LOGIN_OUTCOMES: dict[type[AuthenticationError], str] = {
    AccountNotFound: "not_found",
    AccountDeleted: "deleted",
    AccountBlocked: "blocked",
    AccountLocked: "locked",
}


class AccountService:
    """Account workflows exposed to the HTTP layer."""

    def __init__(
        self,
        store: AccountStore,
        audit_log: AuditLog,
        hasher: CredentialHasher,
        tokens: TokenIssuer,
        *,
        max_login_attempts: int = MAX_LOGIN_ATTEMPTS,
        lockout_minutes: int = LOCKOUT_MINUTES,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Wire the guard, lifecycle engine and session issuer around shared collaborators."""
        self._store = store
        self._audit_log = audit_log
        self._clock = clock
        recorder = AuditRecorder(audit_log, clock)
        self.guard = BruteForceGuard(
            store,
            hasher,
            recorder,
            max_attempts=max_login_attempts,
            lockout_minutes=lockout_minutes,
            clock=clock,
        )
        self.lifecycle = LifecycleEngine(store, hasher, recorder, clock=clock)
        self.sessions = SessionIssuer(store, tokens, recorder, clock=clock)

    def login(self, email: str, password: str, caller_ip: str | None) -> SessionToken:
        """Authenticate credentials and issue a session token."""
        try:
            account = self.guard.authenticate(email, password, caller_ip)
        except AuthenticationError as exc:
            LOGIN_ATTEMPTS.labels(outcome=_LOGIN_OUTCOMES.get(type(exc), "invalid_credentials")).inc()
            raise
        LOGIN_ATTEMPTS.labels(outcome="success").inc()
        return self.sessions.issue_session(account, caller_ip)

    def verify_token(self, token: str) -> dict[str, Any]:
        return self.sessions.verify(token)

    def register(self, payload: CreateAccountInput) -> AccountView:
        """Self-registration: the new account's email stands in as the actor."""
        return self.create_account(payload, Actor(email=payload.email.strip().lower()))

    def create_account(self, payload: CreateAccountInput, actor: Actor = SYSTEM_ACTOR) -> AccountView:
        account = self.lifecycle.create(payload, actor)
        LIFECYCLE_TRANSITIONS.labels(action=AuditAction.create.value).inc()
        return account

    def update_account(
        self, account_id: str, payload: UpdateAccountInput, actor: Actor = SYSTEM_ACTOR
    ) -> AccountView:
        account = self.lifecycle.update(account_id, payload, actor)
        LIFECYCLE_TRANSITIONS.labels(action=AuditAction.update.value).inc()
        return account

    def delete_account(self, account_id: str, actor: Actor = SYSTEM_ACTOR) -> AccountView:
        account = self.lifecycle.soft_delete(account_id, actor)
        LIFECYCLE_TRANSITIONS.labels(action=AuditAction.delete.value).inc()
        return account

    def restore_account(self, account_id: str, actor: Actor = SYSTEM_ACTOR) -> AccountView:
        account = self.lifecycle.restore(account_id, actor)
        LIFECYCLE_TRANSITIONS.labels(action=AuditAction.restore.value).inc()
        return account

    def block_account(self, account_id: str, actor: Actor = SYSTEM_ACTOR) -> AccountView:
        account = self.lifecycle.block(account_id, actor)
        LIFECYCLE_TRANSITIONS.labels(action=AuditAction.block.value).inc()
        return account

    def unblock_account(self, account_id: str, actor: Actor = SYSTEM_ACTOR) -> AccountView:
        account = self.lifecycle.unblock(account_id, actor)
        LIFECYCLE_TRANSITIONS.labels(action=AuditAction.unblock.value).inc()
        return account

    def get_account(self, account_id: str) -> AccountView:
        """Retrieve a non-deleted account by identifier."""
        return self.lifecycle.get_account(account_id)

    def list_accounts(self) -> list[AccountView]:
        return self.lifecycle.list_accounts()

    def list_deleted_accounts(self) -> list[AccountView]:
        return self.lifecycle.list_deleted()

    def list_blocked_accounts(self) -> list[AccountView]:
        return self.lifecycle.list_blocked()

    def stats(self) -> AccountStats:
        return collect_stats(self._store, self._audit_log, self._clock())

    def list_audit_events(
        self,
        *,
        account_id: str | None = None,
        action: AuditAction | None = None,
        created_after: datetime | None = None,
        created_before: datetime | None = None,
        limit: int = 50,
        cursor: str | None = None,
    ) -> tuple[list[AuditEntry], str | None]:
        """Return audit entries newest first with optional filters and cursor pagination."""
        decoded_cursor: Optional[Tuple[datetime, int]] = None
        if cursor:
            decoded_cursor = self._decode_cursor(cursor)
        records, next_cursor_tuple = self._audit_log.list_events(
            account_id=account_id,
            actions=(action,) if action else None,
            created_after=created_after,
            created_before=created_before,
            limit=limit,
            cursor=decoded_cursor,
        )
        next_cursor = self._encode_cursor(next_cursor_tuple) if next_cursor_tuple else None
        return records, next_cursor

    def _encode_cursor(self, cursor: Tuple[datetime, int] | None) -> str | None:
        if cursor is None:
            return None
        created_at, audit_id = cursor
        payload = json.dumps({"created_at": created_at.isoformat(), "audit_id": audit_id})
        return urlsafe_b64encode(payload.encode("utf-8")).decode("utf-8")

    def _decode_cursor(self, cursor: str) -> Tuple[datetime, int]:
        try:
            data = json.loads(urlsafe_b64decode(cursor.encode("utf-8")).decode("utf-8"))
            created_at = datetime.fromisoformat(data["created_at"])
            audit_id = int(data["audit_id"])
            return created_at, audit_id
        except Exception as exc:
            raise ValueError("invalid cursor") from exc
