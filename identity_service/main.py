"""FastAPI application wiring for the identity service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from functools import partial

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from psycopg_pool import ConnectionPool

from .api.routes import register_exception_handlers, router as v1_router
from .config import Settings, get_settings
from .domain.service import AuthenticationService
from .repository import AccountRepository
from .security.mfa import MfaProvider
from .security.passwords import PasswordHasher
from .security.tokens import TokenIssuer

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)


def build_service(
    pool: ConnectionPool,
    password_hasher: PasswordHasher,
    mfa_provider: MfaProvider,
    token_issuer: TokenIssuer,
) -> AuthenticationService:
    """Assemble a request-scoped service around a fresh repository."""
    return AuthenticationService(
        AccountRepository(pool),
        password_hasher=password_hasher,
        mfa_provider=mfa_provider,
        token_issuer=token_issuer,
    )


def configure_state(app: FastAPI, pool: ConnectionPool, config: Settings) -> None:
    """Attach settings and the service factory to the application state."""
    app.state.settings = config
    app.state.pool = pool
    app.state.service_factory = partial(
        build_service,
        pool,
        PasswordHasher(config),
        MfaProvider(config),
        TokenIssuer(config),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialise shared resources (Postgres pool, security primitives) for the app lifecycle."""
    pool = ConnectionPool(settings.database_url, open=False)
    pool.open()
    configure_state(app, pool, settings)
    logger.info("%s %s started", settings.app_name, settings.version)
    try:
        yield
    finally:
        pool.close()


app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)

# CORS for local frontend dev
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=600,
)

register_exception_handlers(app)


@app.get("/healthz", tags=["health"])
def healthz() -> dict[str, str]:
    """Return a minimal readiness indicator used by orchestration systems."""
    return {"status": "ok"}


@app.get("/metrics", include_in_schema=False)
def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(v1_router)


def run() -> None:
    """Serve the application with uvicorn using the configured host and port."""
    import uvicorn

    uvicorn.run(app, host=settings.http_host, port=settings.http_port, log_level=settings.log_level.lower())
