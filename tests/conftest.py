from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from account_identity.domain.account import Actor, Role
from account_identity.domain.contracts import CreateAccountInput
from account_identity.domain.service import AccountService
from account_identity.memory import InMemoryAccountStore, InMemoryAuditLog
from account_identity.security.passwords import BcryptHasher
from account_identity.security.tokens import JwtTokenIssuer

PASSWORD = "correct-horse"


class FrozenClock:
    """Controllable replacement for ``utcnow``."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc))


@pytest.fixture
def store(clock) -> InMemoryAccountStore:
    return InMemoryAccountStore(clock=clock)


@pytest.fixture
def audit_log() -> InMemoryAuditLog:
    return InMemoryAuditLog()


@pytest.fixture
def hasher() -> BcryptHasher:
    return BcryptHasher(rounds=4)


@pytest.fixture
def token_issuer() -> JwtTokenIssuer:
    return JwtTokenIssuer(secret="test-secret-0123456789abcdef0123456789", issuer="test-issuer", ttl_seconds=900)


@pytest.fixture
def service(store, audit_log, hasher, token_issuer, clock) -> AccountService:
    return AccountService(store, audit_log, hasher, token_issuer, clock=clock)


@pytest.fixture
def make_account(service):
    """Create accounts through the lifecycle engine with sensible profile defaults."""

    def _make(
        email: str = "ada@example.com",
        password: str = PASSWORD,
        role: Role = Role.user,
        actor: Actor | None = None,
    ):
        return service.create_account(
            CreateAccountInput(
                email=email,
                password=password,
                name="Ada",
                surname="Lovelace",
                age=36,
                birth_date=date(1815, 12, 10),
                role=role,
            ),
            actor or Actor(id="admin-1", email="root@example.com"),
        )

    return _make
