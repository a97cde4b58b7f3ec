"""Postgres persistence for accounts and their audit trail."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Optional, Tuple

from psycopg import errors
from psycopg.rows import tuple_row
from psycopg.types.json import Json
from psycopg_pool import ConnectionPool

from .domain.account import Account, Role
from .domain.audit import AuditAction, AuditEntry
from .domain.contracts import AccountFilter
from .domain.errors import DuplicateEmail

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS accounts (
        account_id TEXT PRIMARY KEY,
        email TEXT NOT NULL UNIQUE,
        name TEXT NOT NULL,
        surname TEXT NOT NULL,
        age INTEGER NOT NULL CHECK (age >= 0),
        birth_date DATE NOT NULL,
        password_hash TEXT NOT NULL,
        role TEXT NOT NULL DEFAULT 'user'
            CHECK (role IN ('user', 'admin', 'super-admin', 'basic')),
        deleted BOOLEAN NOT NULL DEFAULT FALSE,
        is_blocked BOOLEAN NOT NULL DEFAULT FALSE,
        failed_login_attempts INTEGER NOT NULL DEFAULT 0 CHECK (failed_login_attempts >= 0),
        lockout_until TIMESTAMPTZ,
        last_login_at TIMESTAMPTZ,
        last_login_ip TEXT,
        modified_by TEXT,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS account_audit_log (
        audit_id BIGSERIAL PRIMARY KEY,
        action TEXT NOT NULL,
        actor_id TEXT,
        actor_email TEXT,
        target_account_id TEXT,
        target_role TEXT,
        changes JSONB NOT NULL DEFAULT '{}'::jsonb,
        note TEXT,
        ip_address TEXT,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS account_audit_log_created_idx
        ON account_audit_log (created_at DESC, audit_id DESC)
    """,
    """
    CREATE INDEX IF NOT EXISTS account_audit_log_target_idx
        ON account_audit_log (target_account_id)
    """,
)

ACCOUNT_COLUMNS = (
    "account_id, email, name, surname, age, birth_date, password_hash, role, deleted, "
    "is_blocked, failed_login_attempts, lockout_until, last_login_at, last_login_ip, "
    "modified_by, created_at, updated_at"
)


def _account_clauses(criteria: AccountFilter) -> tuple[str, list[Any]]:
    clauses = ["TRUE"]
    params: list[Any] = []
    if criteria.deleted is not None:
        clauses.append("deleted = %s")
        params.append(criteria.deleted)
    if criteria.is_blocked is not None:
        clauses.append("is_blocked = %s")
        params.append(criteria.is_blocked)
    if criteria.created_since:
        clauses.append("created_at >= %s")
        params.append(criteria.created_since)
    if criteria.last_login_since:
        clauses.append("last_login_at >= %s")
        params.append(criteria.last_login_since)
    if criteria.updated_since:
        clauses.append("updated_at >= %s")
        params.append(criteria.updated_since)
    return " AND ".join(clauses), params


class AccountRepository:
    """Postgres-backed account store with row-locked conditional updates."""

    def __init__(self, pool: ConnectionPool) -> None:
        """Store the connection pool used for all database interactions."""
        self._pool = pool

    def ensure_schema(self) -> None:
        """Create the account and audit tables when they do not exist yet."""
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                for statement in SCHEMA_STATEMENTS:
                    cur.execute(statement)
            conn.commit()

    def find_by_email(self, email: str) -> Account | None:
        return self._fetch_one(
            f"SELECT {ACCOUNT_COLUMNS} FROM accounts WHERE email = %s", (email.lower(),)
        )

    def find_by_id(self, account_id: str) -> Account | None:
        return self._fetch_one(
            f"SELECT {ACCOUNT_COLUMNS} FROM accounts WHERE account_id = %s", (account_id,)
        )

    def insert(self, account: Account) -> Account:
        """Persist a new account, translating the email unique violation into ``DuplicateEmail``."""
        try:
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(
                        f"""
                        INSERT INTO accounts ({ACCOUNT_COLUMNS})
                        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s,
                                COALESCE(%s, NOW()), COALESCE(%s, NOW()))
                        RETURNING {ACCOUNT_COLUMNS}
                        """,
                        (
                            account.account_id,
                            account.email.lower(),
                            account.name,
                            account.surname,
                            account.age,
                            account.birth_date,
                            account.password_hash,
                            account.role.value,
                            account.deleted,
                            account.is_blocked,
                            account.failed_login_attempts,
                            account.lockout_until,
                            account.last_login_at,
                            account.last_login_ip,
                            account.modified_by,
                            account.created_at,
                            account.updated_at,
                        ),
                    )
                    row = cur.fetchone()
                conn.commit()
        except errors.UniqueViolation as exc:
            raise DuplicateEmail(f"{account.email.lower()} is already registered") from exc
        return self._map_record(row)

    def conditional_update(
        self,
        account_id: str,
        predicate: Callable[[Account], bool],
        mutation: Callable[[Account], Account],
    ) -> Account | None:
        """Lock the row, evaluate ``predicate`` on its current state and write ``mutation``.

        ``SELECT ... FOR UPDATE`` holds the row until commit, so concurrent
        callers on the same account observe each other's writes in turn.
        """
        try:
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(
                        f"SELECT {ACCOUNT_COLUMNS} FROM accounts WHERE account_id = %s FOR UPDATE",
                        (account_id,),
                    )
                    row = cur.fetchone()
                    if not row:
                        conn.rollback()
                        return None
                    current = self._map_record(row)
                    if not predicate(current):
                        conn.rollback()
                        return None
                    updated = mutation(current)
                    cur.execute(
                        f"""
                        UPDATE accounts
                        SET email = %s, name = %s, surname = %s, age = %s, birth_date = %s,
                            password_hash = %s, role = %s, deleted = %s, is_blocked = %s,
                            failed_login_attempts = %s, lockout_until = %s, last_login_at = %s,
                            last_login_ip = %s, modified_by = %s, updated_at = NOW()
                        WHERE account_id = %s
                        RETURNING {ACCOUNT_COLUMNS}
                        """,
                        (
                            updated.email.lower(),
                            updated.name,
                            updated.surname,
                            updated.age,
                            updated.birth_date,
                            updated.password_hash,
                            updated.role.value,
                            updated.deleted,
                            updated.is_blocked,
                            updated.failed_login_attempts,
                            updated.lockout_until,
                            updated.last_login_at,
                            updated.last_login_ip,
                            updated.modified_by,
                            account_id,
                        ),
                    )
                    row = cur.fetchone()
                conn.commit()
        except errors.UniqueViolation as exc:
            raise DuplicateEmail(f"email of account {account_id} is already registered") from exc
        return self._map_record(row)

    def count(self, criteria: AccountFilter) -> int:
        where_sql, params = _account_clauses(criteria)
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(f"SELECT COUNT(*) FROM accounts WHERE {where_sql}", params)
                row = cur.fetchone()
        return int(row[0])

    def find_all(self, criteria: AccountFilter) -> list[Account]:
        where_sql, params = _account_clauses(criteria)
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    f"SELECT {ACCOUNT_COLUMNS} FROM accounts WHERE {where_sql} "
                    "ORDER BY created_at, account_id",
                    params,
                )
                rows = cur.fetchall()
        return [self._map_record(row) for row in rows]

    def _fetch_one(self, query: str, params: tuple) -> Account | None:
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(query, params)
                row = cur.fetchone()
                if not row:
                    return None
        return self._map_record(row)

    def _map_record(self, row: tuple) -> Account:
        """Convert a raw database tuple into the domain ``Account`` snapshot."""
        return Account(
            account_id=row[0],
            email=row[1],
            name=row[2],
            surname=row[3],
            age=row[4],
            birth_date=row[5],
            password_hash=row[6],
            role=Role(row[7]),
            deleted=row[8],
            is_blocked=row[9],
            failed_login_attempts=row[10],
            lockout_until=row[11],
            last_login_at=row[12],
            last_login_ip=row[13],
            modified_by=row[14],
            created_at=row[15],
            updated_at=row[16],
        )


class AuditLogRepository:
    """Append-only audit trail stored in ``account_audit_log``."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def append(self, entry: AuditEntry) -> None:
        """Record an audit trail entry capturing account activity."""
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO account_audit_log (
                        action, actor_id, actor_email, target_account_id, target_role,
                        changes, note, ip_address, created_at
                    )
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                    """,
                    (
                        entry.action.value,
                        entry.actor_id,
                        entry.actor_email,
                        entry.target_account_id,
                        entry.target_role.value if entry.target_role else None,
                        Json(entry.changes),
                        entry.note,
                        entry.ip_address,
                        entry.created_at,
                    ),
                )
                conn.commit()

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
        """Return audit entries with optional filters and cursor pagination, newest first."""
        limit = max(1, min(limit, 100))
        clauses = ["TRUE"]
        params: list[Any] = []

        if account_id:
            clauses.append("target_account_id = %s")
            params.append(account_id)
        if actions:
            clauses.append("action = ANY(%s)")
            params.append([action.value for action in actions])
        if target_role:
            clauses.append("target_role = %s")
            params.append(target_role)
        if created_after:
            clauses.append("created_at >= %s")
            params.append(created_after)
        if created_before:
            clauses.append("created_at <= %s")
            params.append(created_before)
        if cursor:
            clauses.append("(created_at, audit_id) < (%s, %s)")
            params.extend(cursor)

        where_sql = " AND ".join(clauses)
        query = f"""
            SELECT audit_id, action, actor_id, actor_email, target_account_id, target_role,
                   changes, note, ip_address, created_at
            FROM account_audit_log
            WHERE {where_sql}
            ORDER BY created_at DESC, audit_id DESC
            LIMIT %s
        """
        params.append(limit + 1)

        records: list[AuditEntry] = []
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(query, params)
                for row in cur.fetchall():
                    records.append(
                        AuditEntry(
                            audit_id=row[0],
                            action=AuditAction(row[1]),
                            actor_id=row[2],
                            actor_email=row[3],
                            target_account_id=row[4],
                            target_role=Role(row[5]) if row[5] else None,
                            changes=row[6] or {},
                            note=row[7],
                            ip_address=row[8],
                            created_at=row[9],
                        )
                    )

        next_cursor: Tuple[datetime, int] | None = None
        if len(records) > limit:
            records = records[:limit]
            last = records[-1]
            next_cursor = (last.created_at, last.audit_id)
        return records, next_cursor
