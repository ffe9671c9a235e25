"""Domain-level contracts shared by the flow, the storage adapter and the transport."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from .account import UserAccount


class AccountStore(Protocol):
    """Persistence collaborator; must enforce email uniqueness on commit."""

    def exists_by_email(self, email: str) -> bool: ...

    def get(self, account_id: str) -> UserAccount | None: ...

    def get_by_email(self, email: str) -> UserAccount | None: ...

    def add(self, account: UserAccount) -> None: ...

    def update(self, account: UserAccount) -> None: ...

    def commit(self) -> int: ...


class IdentityContext(Protocol):
    """Resolves the caller of an already-authenticated request."""

    def current_account_id(self) -> str | None: ...


@dataclass(slots=True)
class RegisterInput:
    """Inputs required to register an account."""

    first_name: str
    last_name: str
    email: str
    password: str


@dataclass(slots=True)
class LoginResult:
    """Outcome of a login step.

    ``token`` is ``None`` exactly when ``requires_two_factor`` is set.
    """

    account_id: str
    token: str | None = None
    requires_two_factor: bool = False
    message: str | None = None


@dataclass(slots=True)
class MfaSetup:
    secret_key: str
    provisioning_uri: str
    message: str = (
        "Scan the QR code or enter the secret key in your authenticator app, "
        "then confirm with a code to complete setup."
    )


@dataclass(slots=True)
class MfaConfirmation:
    success: bool
    message: str
