"""HTTP route definitions for the identity service."""

from __future__ import annotations

import logging
import re
from typing import Any

import jwt
from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field, field_validator

from ..config import Settings, get_settings
from ..domain.account import Role
from ..domain.contracts import RegisterInput
from ..domain.errors import (
    ErrorKind,
    IdentityError,
    InvalidCredentialsError,
    InvalidMfaCodeError,
)
from ..domain.service import AuthenticationService
from ..metrics import LOGIN_ATTEMPTS, MFA_EVENTS, REGISTRATIONS
from ..security.throttle import build_login_throttle, throttle_key
from ..security.tokens import decode_access_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1")

STRONG_PASSWORD = re.compile(
    r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[!@#$%^&*()_+\-=\[\]{}|;:,.<>?]).{12,}$"
)

ERROR_STATUS: dict[ErrorKind, int] = {
    ErrorKind.validation: status.HTTP_400_BAD_REQUEST,
    ErrorKind.invalid_credentials: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.not_authenticated: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.invalid_mfa_code: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.account_inactive: status.HTTP_403_FORBIDDEN,
    ErrorKind.mfa_not_enabled: status.HTTP_400_BAD_REQUEST,
    ErrorKind.setup_not_initiated: status.HTTP_400_BAD_REQUEST,
    ErrorKind.not_found: status.HTTP_404_NOT_FOUND,
    ErrorKind.conflict: status.HTTP_409_CONFLICT,
}


class RegisterRequest(BaseModel):
    """Payload accepted when registering an account."""

    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str

    @field_validator("password")
    @classmethod
    def _strong_password(cls, value: str) -> str:
        if not STRONG_PASSWORD.match(value):
            raise ValueError(
                "password must be at least 12 characters and contain an uppercase letter, "
                "a lowercase letter, a digit and a special character"
            )
        return value


class RegisterResponse(BaseModel):
    account_id: str


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class VerifyMfaRequest(LoginRequest):
    code: str = Field(..., pattern=r"^\d{6}$")


class ConfirmMfaRequest(BaseModel):
    code: str = Field(..., pattern=r"^\d{6}$")


class AuthenticationResponse(BaseModel):
    """Login outcome; ``token`` is absent while a second factor is pending."""

    token: str | None = None
    account_id: str
    requires_two_factor: bool = False
    message: str | None = None


class EnableMfaResponse(BaseModel):
    secret_key: str
    provisioning_uri: str
    message: str


class ConfirmMfaResponse(BaseModel):
    success: bool
    message: str


class AssignRoleRequest(BaseModel):
    role: str = Field(..., min_length=1)


class MeResponse(BaseModel):
    """Identity summary taken from the caller's token claims."""

    account_id: str
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    roles: list[str] = Field(default_factory=list)


class BearerIdentityContext:
    """Identity context backed by the claims of a verified bearer token."""

    def __init__(self, claims: dict[str, Any] | None) -> None:
        self._claims = claims

    @property
    def claims(self) -> dict[str, Any] | None:
        return self._claims

    @property
    def roles(self) -> list[str]:
        if not self._claims:
            return []
        roles = self._claims.get("role") or []
        return [roles] if isinstance(roles, str) else list(roles)

    def current_account_id(self) -> str | None:
        if not self._claims:
            return None
        return self._claims.get("sub")


settings = get_settings()

login_throttle = build_login_throttle(settings)


def get_service(request: Request) -> AuthenticationService:
    """Build a request-scoped `AuthenticationService` from the factory on application state."""
    return request.app.state.service_factory()


def get_identity(
    request: Request,
    authorization: str | None = Header(default=None),
) -> BearerIdentityContext:
    """Resolve the caller from the ``Authorization: Bearer`` header, if any."""
    if not authorization:
        return BearerIdentityContext(None)
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return BearerIdentityContext(None)
    app_settings: Settings = request.app.state.settings
    try:
        claims = decode_access_token(token.strip(), app_settings)
    except jwt.PyJWTError as exc:
        logger.debug("rejected bearer token: %s", exc)
        return BearerIdentityContext(None)
    return BearerIdentityContext(claims)


def require_admin(identity: BearerIdentityContext = Depends(get_identity)) -> BearerIdentityContext:
    if identity.current_account_id() is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="not authenticated")
    if Role.admin.value not in identity.roles:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="admin role required")
    return identity


def _ensure_not_throttled(key: str) -> None:
    if login_throttle.is_blocked(key):
        LOGIN_ATTEMPTS.labels(outcome="throttled").inc()
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="too many failed attempts",
        )


@router.post("/auth/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
def register(
    payload: RegisterRequest,
    service: AuthenticationService = Depends(get_service),
) -> RegisterResponse:
    """Register an account holding the default ``User`` role."""
    account_id = service.register(
        RegisterInput(
            first_name=payload.first_name,
            last_name=payload.last_name,
            email=payload.email,
            password=payload.password,
        )
    )
    REGISTRATIONS.inc()
    return RegisterResponse(account_id=account_id)


@router.post("/auth/login", response_model=AuthenticationResponse)
def login(
    payload: LoginRequest,
    service: AuthenticationService = Depends(get_service),
) -> AuthenticationResponse:
    """Authenticate with email and password."""
    key = throttle_key(payload.email)
    _ensure_not_throttled(key)
    try:
        result = service.login(payload.email, payload.password)
    except InvalidCredentialsError:
        login_throttle.record_failure(key)
        LOGIN_ATTEMPTS.labels(outcome="failure").inc()
        raise
    login_throttle.reset(key)
    LOGIN_ATTEMPTS.labels(outcome="mfa_required" if result.requires_two_factor else "success").inc()
    return AuthenticationResponse(
        token=result.token,
        account_id=result.account_id,
        requires_two_factor=result.requires_two_factor,
        message=result.message,
    )


@router.post("/auth/mfa/verify", response_model=AuthenticationResponse)
def verify_mfa(
    payload: VerifyMfaRequest,
    service: AuthenticationService = Depends(get_service),
) -> AuthenticationResponse:
    """Complete a login that was answered with ``requires_two_factor``."""
    key = throttle_key(payload.email)
    _ensure_not_throttled(key)
    try:
        result = service.verify_mfa_login(payload.email, payload.password, payload.code)
    except (InvalidCredentialsError, InvalidMfaCodeError) as exc:
        login_throttle.record_failure(key)
        if isinstance(exc, InvalidMfaCodeError):
            MFA_EVENTS.labels(event="rejected").inc()
        LOGIN_ATTEMPTS.labels(outcome="failure").inc()
        raise
    login_throttle.reset(key)
    MFA_EVENTS.labels(event="verified").inc()
    LOGIN_ATTEMPTS.labels(outcome="success").inc()
    return AuthenticationResponse(
        token=result.token,
        account_id=result.account_id,
        requires_two_factor=False,
        message=result.message,
    )


@router.post("/auth/mfa/enable", response_model=EnableMfaResponse)
def enable_mfa(
    identity: BearerIdentityContext = Depends(get_identity),
    service: AuthenticationService = Depends(get_service),
) -> EnableMfaResponse:
    """Start MFA enrollment for the caller."""
    setup = service.enable_mfa(identity)
    MFA_EVENTS.labels(event="enabled").inc()
    return EnableMfaResponse(
        secret_key=setup.secret_key,
        provisioning_uri=setup.provisioning_uri,
        message=setup.message,
    )


@router.post("/auth/mfa/confirm", response_model=ConfirmMfaResponse)
def confirm_mfa(
    payload: ConfirmMfaRequest,
    identity: BearerIdentityContext = Depends(get_identity),
    service: AuthenticationService = Depends(get_service),
) -> ConfirmMfaResponse:
    """Finish MFA enrollment by proving possession of the issued secret."""
    confirmation = service.confirm_mfa(identity, payload.code)
    MFA_EVENTS.labels(event="confirmed").inc()
    return ConfirmMfaResponse(success=confirmation.success, message=confirmation.message)


@router.post("/admin/accounts/{account_id}/roles", status_code=status.HTTP_204_NO_CONTENT)
def assign_role(
    account_id: str,
    payload: AssignRoleRequest,
    _: BearerIdentityContext = Depends(require_admin),
    service: AuthenticationService = Depends(get_service),
) -> Response:
    service.assign_role(account_id, payload.role)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/admin/accounts/{account_id}/roles/{role}", status_code=status.HTTP_204_NO_CONTENT)
def revoke_role(
    account_id: str,
    role: str,
    _: BearerIdentityContext = Depends(require_admin),
    service: AuthenticationService = Depends(get_service),
) -> Response:
    service.revoke_role(account_id, role)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/admin/accounts/{account_id}/deactivate", status_code=status.HTTP_204_NO_CONTENT)
def deactivate_account(
    account_id: str,
    _: BearerIdentityContext = Depends(require_admin),
    service: AuthenticationService = Depends(get_service),
) -> Response:
    service.deactivate_account(account_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/admin/accounts/{account_id}/activate", status_code=status.HTTP_204_NO_CONTENT)
def activate_account(
    account_id: str,
    _: BearerIdentityContext = Depends(require_admin),
    service: AuthenticationService = Depends(get_service),
) -> Response:
    service.activate_account(account_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/users/me", response_model=MeResponse)
def me(identity: BearerIdentityContext = Depends(get_identity)) -> MeResponse:
    """Echo the identity carried by the caller's token."""
    claims = identity.claims
    if not claims:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="not authenticated")
    return MeResponse(
        account_id=claims["sub"],
        email=claims.get("email"),
        first_name=claims.get("given_name"),
        last_name=claims.get("family_name"),
        roles=identity.roles,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Translate domain errors to JSON responses and hide unexpected faults."""

    @app.exception_handler(IdentityError)
    async def _identity_error(request: Request, exc: IdentityError) -> JSONResponse:
        status_code = ERROR_STATUS.get(exc.kind, status.HTTP_400_BAD_REQUEST)
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc.kind.value)
        return JSONResponse(
            status_code=status_code,
            content={"detail": exc.message, "error": exc.kind.value},
        )

    @app.exception_handler(Exception)
    async def _unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "An unexpected error occurred."},
        )
