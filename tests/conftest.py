from __future__ import annotations

import pytest

from identity_service.config import Settings
from identity_service.domain.account import UserAccount
from identity_service.domain.errors import ConflictError
from identity_service.domain.service import AuthenticationService
from identity_service.security.mfa import MfaProvider
from identity_service.security.passwords import PasswordHasher
from identity_service.security.tokens import TokenIssuer


class FakeRepository:
    """In-memory account store mimicking the Postgres unit of work."""

    def __init__(self) -> None:
        self._accounts: dict[str, UserAccount] = {}
        self._pending: list[UserAccount] = []
        self.writes = 0

    def exists_by_email(self, email: str) -> bool:
        return any(account.email == email.lower() for account in self._accounts.values())

    def get(self, account_id: str) -> UserAccount | None:
        return self._accounts.get(account_id)

    def get_by_email(self, email: str) -> UserAccount | None:
        for account in self._accounts.values():
            if account.email == email.lower():
                return account
        return None

    def add(self, account: UserAccount) -> None:
        self._pending.append(account)

    def update(self, account: UserAccount) -> None:
        self._pending.append(account)

    def commit(self) -> int:
        pending, self._pending = self._pending, []
        staged = dict(self._accounts)
        for account in pending:
            for other in staged.values():
                if other.email == account.email and other.account_id != account.account_id:
                    raise ConflictError("A user with this email already exists.")
            staged[account.account_id] = account
        self._accounts = staged
        self.writes += len(pending)
        return len(pending)


class StaticIdentity:
    def __init__(self, account_id: str | None) -> None:
        self._account_id = account_id

    def current_account_id(self) -> str | None:
        return self._account_id


@pytest.fixture
def settings() -> Settings:
    """Settings with cheap Argon2 parameters so tests stay fast."""
    return Settings(
        jwt_secret="test-secret-0123456789abcdef0123456789",
        argon2_time_cost=1,
        argon2_memory_cost_kb=1024,
        argon2_parallelism=1,
        mfa_issuer="Identity Test",
    )


@pytest.fixture
def repository() -> FakeRepository:
    return FakeRepository()


@pytest.fixture
def hasher(settings: Settings) -> PasswordHasher:
    return PasswordHasher(settings)


@pytest.fixture
def mfa(settings: Settings) -> MfaProvider:
    return MfaProvider(settings)


@pytest.fixture
def issuer(settings: Settings) -> TokenIssuer:
    return TokenIssuer(settings)


@pytest.fixture
def service(repository, hasher, mfa, issuer) -> AuthenticationService:
    return AuthenticationService(repository, hasher, mfa, issuer)


@pytest.fixture
def identity_for():
    """Build an identity context resolving to the given account id."""
    return StaticIdentity
