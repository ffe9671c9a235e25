"""User account aggregate and its MFA enrollment states."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, Union

from .errors import ConflictError, NotFoundError, SetupNotInitiatedError, ValidationError

NAME_MAX_LENGTH = 100
EMAIL_MIN_LENGTH = 5
EMAIL_MAX_LENGTH = 255


class Role(str, Enum):
    admin = "Admin"
    user = "User"


@dataclass(frozen=True, slots=True)
class NotEnrolled:
    """No MFA secret has been issued."""


@dataclass(frozen=True, slots=True)
class SecretIssued:
    """A secret was handed to the owner but no code has been verified against it yet."""

    secret: str


@dataclass(frozen=True, slots=True)
class Enabled:
    """The owner proved possession of the secret; logins require a second factor."""

    secret: str


MfaState = Union[NotEnrolled, SecretIssued, Enabled]


def mfa_state_from_columns(secret: str | None, enabled: bool) -> MfaState:
    """Rebuild the enrollment variant from its flat storage representation."""
    if enabled:
        if not secret:
            raise ValidationError("MFA cannot be enabled without a secret.")
        return Enabled(secret)
    if secret:
        return SecretIssued(secret)
    return NotEnrolled()


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _role_name(role: str | Role) -> str:
    return role.value if isinstance(role, Role) else role


def _require_name(field_name: str, value: str) -> str:
    trimmed = (value or "").strip()
    if not trimmed:
        raise ValidationError(f"{field_name} cannot be empty.")
    if len(trimmed) > NAME_MAX_LENGTH:
        raise ValidationError(f"{field_name} cannot exceed {NAME_MAX_LENGTH} characters.")
    return trimmed


def _require_email(value: str) -> str:
    email = normalize_email(value or "")
    if not email:
        raise ValidationError("email cannot be empty.")
    if "@" not in email or len(email) < EMAIL_MIN_LENGTH:
        raise ValidationError("email format is invalid.")
    if len(email) > EMAIL_MAX_LENGTH:
        raise ValidationError(f"email cannot exceed {EMAIL_MAX_LENGTH} characters.")
    return email


def _require_roles(roles: Iterable[str | Role]) -> tuple[str, ...]:
    names = tuple(_role_name(role) for role in roles)
    if not names:
        raise ValidationError("an account must hold at least one role.")
    if any(not name or not name.strip() for name in names):
        raise ValidationError("role cannot be empty.")
    if len(set(names)) != len(names):
        raise ValidationError("roles cannot contain duplicates.")
    return names


@dataclass(frozen=True, slots=True)
class UserAccount:
    """Authentication-relevant state of an identity.

    Instances are immutable and validated on construction. Every mutation
    returns a new instance with ``updated_at`` refreshed, so there is no path
    that changes a field without passing through validation.
    """

    account_id: str
    email: str
    first_name: str
    last_name: str
    credential_hash: str
    roles: tuple[str, ...]
    created_at: datetime
    updated_at: datetime
    is_active: bool = True
    mfa: MfaState = field(default_factory=NotEnrolled)

    def __post_init__(self) -> None:
        if not self.account_id:
            raise ValidationError("account id cannot be empty.")
        if not self.credential_hash or not self.credential_hash.strip():
            raise ValidationError("credential hash cannot be empty.")
        if not isinstance(self.mfa, (NotEnrolled, SecretIssued, Enabled)):
            raise ValidationError("unknown MFA enrollment state.")
        object.__setattr__(self, "first_name", _require_name("first_name", self.first_name))
        object.__setattr__(self, "last_name", _require_name("last_name", self.last_name))
        object.__setattr__(self, "email", _require_email(self.email))
        object.__setattr__(self, "roles", _require_roles(self.roles))

    @classmethod
    def register(
        cls,
        *,
        first_name: str,
        last_name: str,
        email: str,
        credential_hash: str,
        roles: Iterable[str | Role] = (Role.user,),
    ) -> "UserAccount":
        """Create a brand-new active account with a fresh identifier."""
        now = _utcnow()
        return cls(
            account_id=str(uuid.uuid4()),
            email=email,
            first_name=first_name,
            last_name=last_name,
            credential_hash=credential_hash,
            roles=tuple(roles),
            created_at=now,
            updated_at=now,
        )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def mfa_secret(self) -> str | None:
        if isinstance(self.mfa, (SecretIssued, Enabled)):
            return self.mfa.secret
        return None

    @property
    def mfa_enabled(self) -> bool:
        return isinstance(self.mfa, Enabled)

    def has_role(self, role: str | Role) -> bool:
        return _role_name(role) in self.roles

    def update_profile(self, first_name: str, last_name: str, email: str) -> "UserAccount":
        return self._touch(first_name=first_name, last_name=last_name, email=email)

    def change_password(self, credential_hash: str) -> "UserAccount":
        return self._touch(credential_hash=credential_hash)

    def add_role(self, role: str | Role) -> "UserAccount":
        name = _role_name(role)
        if not name or not name.strip():
            raise ValidationError("role cannot be empty.")
        if name in self.roles:
            raise ConflictError(f"User already has the role '{name}'.")
        return self._touch(roles=self.roles + (name,))

    def remove_role(self, role: str | Role) -> "UserAccount":
        name = _role_name(role)
        if name not in self.roles:
            raise NotFoundError(f"User does not have the role '{name}'.")
        return self._touch(roles=tuple(r for r in self.roles if r != name))

    def activate(self) -> "UserAccount":
        if self.is_active:
            raise ConflictError("User is already active.")
        return self._touch(is_active=True)

    def deactivate(self) -> "UserAccount":
        if not self.is_active:
            raise ConflictError("User is already deactivated.")
        return self._touch(is_active=False)

    def issue_mfa_secret(self, secret: str) -> "UserAccount":
        """Move to ``SecretIssued``; a pending secret is replaced."""
        if self.mfa_enabled:
            raise ConflictError("Two-factor authentication is already enabled for this user.")
        if not secret or not secret.strip():
            raise ValidationError("MFA secret cannot be empty.")
        return self._touch(mfa=SecretIssued(secret))

    def enable_mfa(self) -> "UserAccount":
        """Move from ``SecretIssued`` to ``Enabled``.

        Callers must have verified a code against ``mfa_secret`` first.
        """
        if isinstance(self.mfa, NotEnrolled):
            raise SetupNotInitiatedError()
        if isinstance(self.mfa, Enabled):
            raise ConflictError("Two-factor authentication is already enabled.")
        return self._touch(mfa=Enabled(self.mfa.secret))

    def _touch(self, **changes) -> "UserAccount":
        now = max(_utcnow(), self.updated_at)
        return replace(self, updated_at=now, **changes)
