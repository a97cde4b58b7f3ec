"""Credential validation with a persistent brute-force lockout."""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Callable

from .account import Account, AccountView, Actor, utcnow
from .audit import AuditAction, AuditRecorder
from .errors import (
    AccountBlocked,
    AccountDeleted,
    AccountLocked,
    AccountNotFound,
    AuthenticationError,
    InvalidCredentials,
)
from .ports import AccountStore, CredentialHasher

logger = logging.getLogger(__name__)

MAX_LOGIN_ATTEMPTS = 5
LOCKOUT_MINUTES = 15


class BruteForceGuard:
    """Evaluate login attempts against an account's failure counter and lockout.

    The checks run in a fixed order: existence, soft deletion, administrative
    block, active lockout and finally the password comparison. The failure
    counter is only touched by the comparison step, so attempts made while an
    account is locked can neither extend the lockout nor probe the password.
    """

    def __init__(
        self,
        store: AccountStore,
        hasher: CredentialHasher,
        audit: AuditRecorder,
        *,
        max_attempts: int = MAX_LOGIN_ATTEMPTS,
        lockout_minutes: int = LOCKOUT_MINUTES,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if lockout_minutes < 1:
            raise ValueError("lockout_minutes must be at least 1")
        self._store = store
        self._hasher = hasher
        self._audit = audit
        self._max_attempts = max_attempts
        self._lockout = timedelta(minutes=lockout_minutes)
        self._clock = clock

    def authenticate(self, email: str, candidate_password: str, caller_ip: str | None) -> AccountView:
        """Return the account snapshot for valid credentials or raise an ``AuthenticationError``."""
        normalized = email.strip().lower()
        now = self._clock()
        account = self._store.find_by_email(normalized)
        self._reject_unusable(account, normalized, caller_ip, now)

        if self._hasher.compare(candidate_password, account.password_hash):
            return self._clear_failures(account, normalized, caller_ip, now).public()

        self._record_failure(account, normalized, caller_ip, now)
        raise InvalidCredentials(f"wrong password for account {account.account_id}")

    def _reject_unusable(
        self, account: Account | None, email: str, caller_ip: str | None, now: datetime
    ) -> None:
        """Raise for a missing, deleted, blocked or locked account; in that order."""
        if account is None:
            self._report(email, caller_ip, "account not found", target=None)
            raise AccountNotFound(f"no account registered for {email}")

        if account.deleted:
            logger.warning("login attempt for deleted account %s from %s", email, caller_ip)
            raise AccountDeleted(f"account {account.account_id} is deleted")

        if account.is_blocked:
            logger.warning("login attempt for blocked account %s from %s", email, caller_ip)
            raise AccountBlocked(f"account {account.account_id} is blocked")

        if account.is_locked(now):
            remaining = remaining_lockout_minutes(account.lockout_until, now)
            self._report(
                email,
                caller_ip,
                f"Account locked. Try again in {remaining} minutes.",
                target=account,
            )
            raise AccountLocked(remaining)

    def _write_back(
        self,
        account: Account,
        email: str,
        caller_ip: str | None,
        now: datetime,
        mutation: Callable[[Account], Account],
    ) -> Account:
        """Apply ``mutation`` only while the stored record is still usable.

        The record may have been deleted, blocked or locked by another request
        since it was read; in that case the current state is reported instead.
        """
        updated = self._store.conditional_update(
            account.account_id,
            lambda current: not current.deleted
            and not current.is_blocked
            and not current.is_locked(now),
            mutation,
        )
        if updated is not None:
            return updated
        current = self._store.find_by_id(account.account_id)
        self._reject_unusable(current, email, caller_ip, now)
        raise AuthenticationError(f"account {account.account_id} changed during authentication")

    def _clear_failures(
        self, account: Account, email: str, caller_ip: str | None, now: datetime
    ) -> Account:
        return self._write_back(
            account,
            email,
            caller_ip,
            now,
            lambda current: replace(current, failed_login_attempts=0, lockout_until=None),
        )

    def _record_failure(
        self, account: Account, email: str, caller_ip: str | None, now: datetime
    ) -> None:
        lockout_until = now + self._lockout

        def increment(current: Account) -> Account:
            attempts = current.failed_login_attempts + 1
            if attempts >= self._max_attempts:
                return replace(current, failed_login_attempts=attempts, lockout_until=lockout_until)
            return replace(current, failed_login_attempts=attempts)

        # The increment is applied to the stored record, not to ``account``,
        # so concurrent failures are all counted.
        result = self._write_back(account, email, caller_ip, now, increment)

        if result.failed_login_attempts >= self._max_attempts:
            minutes = int(self._lockout.total_seconds() // 60)
            reason = f"Account locked for {minutes} minutes due to too many failed attempts."
        else:
            reason = "Invalid password"
        self._report(
            email,
            caller_ip,
            reason,
            target=result,
            changes={
                "failed_login_attempts": result.failed_login_attempts,
                "lockout_until": result.lockout_until.isoformat() if result.lockout_until else None,
            },
        )

    def _report(
        self,
        email: str,
        caller_ip: str | None,
        reason: str,
        *,
        target: Account | None,
        changes: dict | None = None,
    ) -> None:
        message = f"Failed login attempt for email: {email} from IP: {caller_ip}. Reason: {reason}"
        logger.warning("failed login attempt for %s from %s: %s", email, caller_ip, reason)
        self._audit.record(
            AuditAction.brute_force_attempt,
            actor=Actor(email=email),
            target=target,
            changes=changes,
            note=message,
            ip_address=caller_ip,
        )


def remaining_lockout_minutes(lockout_until: datetime, now: datetime) -> int:
    """Whole minutes left on a lockout, rounded up."""
    return math.ceil((lockout_until - now).total_seconds() / 60)
