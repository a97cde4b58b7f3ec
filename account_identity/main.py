"""FastAPI application wiring for the account identity service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from psycopg_pool import ConnectionPool

from .api.routes import router as v1_router
from .config import Settings, get_settings
from .domain.service import AccountService
from .memory import InMemoryAccountStore, InMemoryAuditLog
from .repository import AccountRepository, AuditLogRepository
from .security.passwords import BcryptHasher
from .security.tokens import JwtTokenIssuer

settings = get_settings()

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


def build_service(settings: Settings, store, audit_log) -> AccountService:
    """Assemble the account service from its storage backends and configured security primitives."""
    return AccountService(
        store,
        audit_log,
        BcryptHasher(rounds=settings.password_hash_rounds),
        JwtTokenIssuer(
            secret=settings.jwt_secret,
            issuer=settings.jwt_issuer,
            ttl_seconds=settings.jwt_ttl_seconds,
        ),
        max_login_attempts=settings.max_login_attempts,
        lockout_minutes=settings.lockout_minutes,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialise shared resources (storage backend, services) for the app lifecycle."""
    if settings.storage_backend == "memory":
        logger.info("account storage using in-memory backend")
        app.state.account_service = build_service(settings, InMemoryAccountStore(), InMemoryAuditLog())
        yield
        return

    logger.info("account storage using postgres backend")
    pool = ConnectionPool(settings.database_url, open=False)
    pool.open()
    app.state.pool = pool
    accounts = AccountRepository(pool)
    accounts.ensure_schema()
    app.state.account_service = build_service(settings, accounts, AuditLogRepository(pool))
    try:
        yield
    finally:
        pool.close()


app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=600,
)


@app.get("/healthz", tags=["health"])
def healthz() -> dict[str, str]:
    """Return a minimal readiness indicator used by orchestration systems."""
    return {"status": "ok"}


@app.get("/metrics", tags=["health"])
def metrics() -> Response:
    """Expose login and lifecycle counters for Prometheus scrapes."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(v1_router)
