"""HTTP route definitions for the account identity service."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from pydantic import BaseModel, EmailStr, Field

from ..config import get_settings
from ..domain.account import AccountView, Actor, Role
from ..domain.audit import AuditAction, AuditEntry
from ..domain.contracts import CreateAccountInput, UpdateAccountInput
from ..domain.errors import AccountError, AccountLocked, InvalidToken, PermissionDenied
from ..domain.service import AccountService
from ..security.rate_limiter import SlidingWindowRateLimiter
from ..security.redis_rate_limiter import RedisSlidingWindowRateLimiter
from ..security.roles import is_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1")

SELF_SERVICE_ROLES = frozenset({Role.user, Role.basic})


class AccountResponse(BaseModel):
    """Serialised representation of an account, without its credential."""

    account_id: str
    email: EmailStr
    name: str
    surname: str
    age: int
    birth_date: date
    role: Role
    deleted: bool
    is_blocked: bool
    failed_login_attempts: int
    lockout_until: datetime | None = None
    last_login_at: datetime | None = None
    last_login_ip: str | None = None
    modified_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_domain(cls, account: AccountView) -> "AccountResponse":
        """Build a response model from the domain snapshot."""
        return cls(
            account_id=account.account_id,
            email=account.email,
            name=account.name,
            surname=account.surname,
            age=account.age,
            birth_date=account.birth_date,
            role=account.role,
            deleted=account.deleted,
            is_blocked=account.is_blocked,
            failed_login_attempts=account.failed_login_attempts,
            lockout_until=account.lockout_until,
            last_login_at=account.last_login_at,
            last_login_ip=account.last_login_ip,
            modified_by=account.modified_by,
            created_at=account.created_at,
            updated_at=account.updated_at,
        )


class CreateAccountRequest(BaseModel):
    """Payload accepted when registering or creating an account."""

    email: EmailStr
    password: str = Field(..., min_length=6, max_length=72)
    name: str = Field(..., min_length=1)
    surname: str = Field(..., min_length=1)
    age: int = Field(..., ge=0)
    birth_date: date
    role: Role = Role.user

    def to_input(self) -> CreateAccountInput:
        return CreateAccountInput(
            email=self.email,
            password=self.password,
            name=self.name,
            surname=self.surname,
            age=self.age,
            birth_date=self.birth_date,
            role=self.role,
        )


class UpdateAccountRequest(BaseModel):
    """Partial update; omitted fields are left untouched."""

    email: EmailStr | None = None
    password: str | None = Field(default=None, min_length=6, max_length=72)
    name: str | None = Field(default=None, min_length=1)
    surname: str | None = Field(default=None, min_length=1)
    age: int | None = Field(default=None, ge=0)
    birth_date: date | None = None
    role: Role | None = None

    def to_input(self) -> UpdateAccountInput:
        return UpdateAccountInput(
            email=self.email,
            password=self.password,
            name=self.name,
            surname=self.surname,
            age=self.age,
            birth_date=self.birth_date,
            role=self.role,
        )


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    """Token issuance response containing the bearer token and metadata."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int


class PrincipalResponse(BaseModel):
    valid: bool = True
    account_id: str
    email: str | None = None
    name: str | None = None
    surname: str | None = None
    role: str | None = None


class AuditLogEntry(BaseModel):
    """Audit log response entry."""

    audit_id: int | None
    action: AuditAction
    actor_id: str | None
    actor_email: str | None
    target_account_id: str | None
    target_role: Role | None
    changes: dict[str, Any]
    note: str | None
    ip_address: str | None
    created_at: datetime

    @classmethod
    def from_domain(cls, entry: AuditEntry) -> "AuditLogEntry":
        return cls(
            audit_id=entry.audit_id,
            action=entry.action,
            actor_id=entry.actor_id,
            actor_email=entry.actor_email,
            target_account_id=entry.target_account_id,
            target_role=entry.target_role,
            changes=entry.changes,
            note=entry.note,
            ip_address=entry.ip_address,
            created_at=entry.created_at,
        )


class AuditLogResponse(BaseModel):
    """Envelope for paginated audit log data."""

    items: list[AuditLogEntry]
    next_cursor: str | None = None


class StatsResponse(BaseModel):
    total_users: int
    created_last_week: int
    created_last_month: int
    active_last_week: int
    active_last_month: int
    deleted: int
    blocked: int
    modified_last_30_days: int
    admin_modifications: list[AuditLogEntry]


@dataclass(slots=True)
class Principal:
    """Caller identity decoded from a bearer token."""

    account_id: str
    email: str | None
    role: str | None
    claims: dict[str, Any]

    @property
    def actor(self) -> Actor:
        return Actor(id=self.account_id, email=self.email)

    @property
    def is_admin(self) -> bool:
        return is_admin(self.role)


settings = get_settings()


def _build_rate_limiter() -> SlidingWindowRateLimiter | RedisSlidingWindowRateLimiter:
    """Instantiate the configured rate limiter backend, preferring Redis when available."""
    if settings.rate_limit_backend == "redis" and settings.redis_url:
        try:
            import redis

            client = redis.from_url(settings.redis_url)
            # fail fast so a dead Redis falls back to the local limiter
            client.ping()
            logger.info("rate limiter configured for redis backend at %s", settings.redis_url)
            return RedisSlidingWindowRateLimiter(
                client,
                max_requests=settings.rate_limit_requests,
                window_seconds=settings.rate_limit_window_seconds,
            )
        except Exception as exc:  # pragma: no cover - depends on a live redis
            logger.warning("redis rate limiter unavailable, falling back to in-memory: %s", exc)

    logger.info("rate limiter using in-memory backend")
    return SlidingWindowRateLimiter(
        max_requests=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )


rate_limiter = _build_rate_limiter()


def get_service(request: Request) -> AccountService:
    """Resolve the `AccountService` stored on the FastAPI application state."""
    service: AccountService = request.app.state.account_service
    return service


def get_principal(
    authorization: str | None = Header(default=None),
    service: AccountService = Depends(get_service),
) -> Principal:
    """Authenticate the bearer token on the request."""
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="missing bearer token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        claims = service.verify_token(token.strip())
    except InvalidToken as exc:
        logger.info("rejected bearer token: %s", exc)
        raise _http_error(exc) from exc
    return Principal(
        account_id=claims["sub"],
        email=claims.get("email"),
        role=claims.get("role"),
        claims=claims,
    )


def require_admin(principal: Principal = Depends(get_principal)) -> Principal:
    if not principal.is_admin:
        raise _http_error(PermissionDenied(f"account {principal.account_id} is not an administrator"))
    return principal


def _client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


def _throttle(scope: str, request: Request) -> None:
    wait = rate_limiter.acquire(f"{scope}:{_client_ip(request)}")
    if wait:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="rate limited",
            headers={"Retry-After": str(math.ceil(wait))},
        )


def _require_self_or_admin(principal: Principal, account_id: str) -> None:
    if principal.account_id != account_id and not principal.is_admin:
        raise _http_error(
            PermissionDenied(f"account {principal.account_id} may not manage account {account_id}")
        )


@router.post("/auth/register", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
def register(
    payload: CreateAccountRequest,
    request: Request,
    service: AccountService = Depends(get_service),
) -> AccountResponse:
    """Self-registration; privileged roles can only be granted by an administrator."""
    _throttle("register", request)
    if payload.role not in SELF_SERVICE_ROLES:
        raise _http_error(PermissionDenied(f"self-registration cannot request role {payload.role.value}"))
    try:
        account = service.register(payload.to_input())
    except AccountError as exc:
        raise _http_error(exc) from exc
    return AccountResponse.from_domain(account)


@router.post("/auth/login", response_model=TokenResponse)
def login(
    payload: LoginRequest,
    request: Request,
    service: AccountService = Depends(get_service),
) -> TokenResponse:
    """Validate credentials and issue a signed session token."""
    _throttle("login", request)
    try:
        session = service.login(payload.email, payload.password, _client_ip(request))
    except AccountError as exc:
        raise _http_error(exc) from exc
    return TokenResponse(
        access_token=session.access_token,
        token_type=session.token_type,
        expires_in=session.expires_in,
    )


@router.get("/auth/verify-token", response_model=PrincipalResponse)
def verify_token(principal: Principal = Depends(get_principal)) -> PrincipalResponse:
    return PrincipalResponse(
        account_id=principal.account_id,
        email=principal.email,
        name=principal.claims.get("name"),
        surname=principal.claims.get("surname"),
        role=principal.role,
    )


@router.get("/users/me", response_model=AccountResponse)
def get_me(
    principal: Principal = Depends(get_principal),
    service: AccountService = Depends(get_service),
) -> AccountResponse:
    try:
        return AccountResponse.from_domain(service.get_account(principal.account_id))
    except AccountError as exc:
        raise _http_error(exc) from exc


@router.get("/users", response_model=list[AccountResponse])
def list_accounts(
    _: Principal = Depends(require_admin),
    service: AccountService = Depends(get_service),
) -> list[AccountResponse]:
    return [AccountResponse.from_domain(account) for account in service.list_accounts()]


@router.post("/users", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
def create_account(
    payload: CreateAccountRequest,
    principal: Principal = Depends(require_admin),
    service: AccountService = Depends(get_service),
) -> AccountResponse:
    """Create an account on behalf of an administrator."""
    try:
        account = service.create_account(payload.to_input(), principal.actor)
    except AccountError as exc:
        raise _http_error(exc) from exc
    return AccountResponse.from_domain(account)


@router.get("/users/deleted", response_model=list[AccountResponse])
def list_deleted_accounts(
    _: Principal = Depends(require_admin),
    service: AccountService = Depends(get_service),
) -> list[AccountResponse]:
    return [AccountResponse.from_domain(account) for account in service.list_deleted_accounts()]


@router.get("/users/blocked", response_model=list[AccountResponse])
def list_blocked_accounts(
    _: Principal = Depends(require_admin),
    service: AccountService = Depends(get_service),
) -> list[AccountResponse]:
    return [AccountResponse.from_domain(account) for account in service.list_blocked_accounts()]


@router.get("/users/stats", response_model=StatsResponse)
def account_stats(
    _: Principal = Depends(require_admin),
    service: AccountService = Depends(get_service),
) -> StatsResponse:
    stats = service.stats()
    return StatsResponse(
        total_users=stats.total_users,
        created_last_week=stats.created_last_week,
        created_last_month=stats.created_last_month,
        active_last_week=stats.active_last_week,
        active_last_month=stats.active_last_month,
        deleted=stats.deleted,
        blocked=stats.blocked,
        modified_last_30_days=stats.modified_last_30_days,
        admin_modifications=[AuditLogEntry.from_domain(entry) for entry in stats.admin_modifications],
    )


@router.get("/users/{account_id}", response_model=AccountResponse)
def get_account(
    account_id: str,
    principal: Principal = Depends(get_principal),
    service: AccountService = Depends(get_service),
) -> AccountResponse:
    """Retrieve a non-deleted account; callers may read their own record unless they are admins."""
    _require_self_or_admin(principal, account_id)
    try:
        return AccountResponse.from_domain(service.get_account(account_id))
    except AccountError as exc:
        raise _http_error(exc) from exc


@router.put("/users/{account_id}", response_model=AccountResponse)
def update_account(
    account_id: str,
    payload: UpdateAccountRequest,
    principal: Principal = Depends(get_principal),
    service: AccountService = Depends(get_service),
) -> AccountResponse:
    _require_self_or_admin(principal, account_id)
    if payload.role is not None and not principal.is_admin:
        raise _http_error(PermissionDenied(f"account {principal.account_id} may not change roles"))
    try:
        account = service.update_account(account_id, payload.to_input(), principal.actor)
    except AccountError as exc:
        raise _http_error(exc) from exc
    return AccountResponse.from_domain(account)


@router.delete("/users/{account_id}", response_model=AccountResponse)
def delete_account(
    account_id: str,
    principal: Principal = Depends(get_principal),
    service: AccountService = Depends(get_service),
) -> AccountResponse:
    _require_self_or_admin(principal, account_id)
    try:
        account = service.delete_account(account_id, principal.actor)
    except AccountError as exc:
        raise _http_error(exc) from exc
    return AccountResponse.from_domain(account)


@router.put("/users/{account_id}/restore", response_model=AccountResponse)
def restore_account(
    account_id: str,
    principal: Principal = Depends(require_admin),
    service: AccountService = Depends(get_service),
) -> AccountResponse:
    try:
        account = service.restore_account(account_id, principal.actor)
    except AccountError as exc:
        raise _http_error(exc) from exc
    return AccountResponse.from_domain(account)


@router.put("/users/{account_id}/block", response_model=AccountResponse)
def block_account(
    account_id: str,
    principal: Principal = Depends(require_admin),
    service: AccountService = Depends(get_service),
) -> AccountResponse:
    try:
        account = service.block_account(account_id, principal.actor)
    except AccountError as exc:
        raise _http_error(exc) from exc
    return AccountResponse.from_domain(account)


@router.put("/users/{account_id}/unblock", response_model=AccountResponse)
def unblock_account(
    account_id: str,
    principal: Principal = Depends(require_admin),
    service: AccountService = Depends(get_service),
) -> AccountResponse:
    try:
        account = service.unblock_account(account_id, principal.actor)
    except AccountError as exc:
        raise _http_error(exc) from exc
    return AccountResponse.from_domain(account)


@router.get("/audit/logs", response_model=AuditLogResponse)
def list_audit_logs(
    account_id: str | None = Query(default=None),
    action: AuditAction | None = Query(default=None),
    created_after: datetime | None = Query(default=None),
    created_before: datetime | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=100),
    cursor: str | None = Query(default=None),
    _: Principal = Depends(require_admin),
    service: AccountService = Depends(get_service),
) -> AuditLogResponse:
    """Return paginated audit entries with optional filtering."""
    try:
        records, next_cursor = service.list_audit_events(
            account_id=account_id,
            action=action,
            created_after=created_after,
            created_before=created_before,
            limit=limit,
            cursor=cursor,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    return AuditLogResponse(
        items=[AuditLogEntry.from_domain(record) for record in records],
        next_cursor=next_cursor,
    )


def _http_error(exc: AccountError) -> HTTPException:
    """Translate a domain error into an HTTP error carrying only its public message."""
    headers: dict[str, str] | None = None
    if isinstance(exc, AccountLocked):
        headers = {"Retry-After": str(exc.remaining_minutes * 60)}
    elif exc.status_code == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}
    return HTTPException(status_code=exc.status_code, detail=exc.public_message, headers=headers)
