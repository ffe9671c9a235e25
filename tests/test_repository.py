from __future__ import annotations

import uuid
from contextlib import contextmanager
from datetime import datetime, timezone

import pytest

from identity_service.domain.account import Enabled, NotEnrolled, SecretIssued
from identity_service.domain.errors import ValidationError
from identity_service.repository import AccountRecord, AccountRepository

CREATED = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_record(**overrides) -> AccountRecord:
    fields = dict(
        account_id="6f1c2a9e-0c1b-4a43-9a55-5a1f3c0e7b21",
        email="ana@example.com",
        first_name="Ana",
        last_name="Gomez",
        password_hash="$argon2id$v=19$m=1024,t=1,p=1$c2FsdA==$a2V5",
        roles=["User", "Admin"],
        is_active=True,
        mfa_secret=None,
        mfa_enabled=False,
        created_at=CREATED,
        updated_at=CREATED,
    )
    fields.update(overrides)
    return AccountRecord(**fields)


def test_record_maps_to_domain():
    account = make_record().to_domain()
    assert account.roles == ("User", "Admin")
    assert account.credential_hash.startswith("$argon2id$")
    assert isinstance(account.mfa, NotEnrolled)


@pytest.mark.parametrize(
    "secret, enabled, expected",
    [
        ("JBSWY3DPEHPK3PXP", False, SecretIssued),
        ("JBSWY3DPEHPK3PXP", True, Enabled),
    ],
)
def test_record_maps_mfa_columns(secret, enabled, expected):
    account = make_record(mfa_secret=secret, mfa_enabled=enabled).to_domain()
    assert isinstance(account.mfa, expected)


def test_corrupt_row_is_rejected():
    with pytest.raises(ValidationError):
        make_record(roles=[]).to_domain()


def test_commit_without_staged_changes_skips_the_database():
    # the pool is never touched when nothing is staged
    assert AccountRepository(pool=None).commit() == 0  # type: ignore[arg-type]


class RecordingCursor:
    rowcount = 1

    def __init__(self, statements: list) -> None:
        self._statements = statements

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, query, params=None):
        self._statements.append((query, params))

    def fetchone(self):
        return None


class RecordingPool:
    """Connection pool double that records the statements it is given."""

    def __init__(self) -> None:
        self.statements: list = []

    @contextmanager
    def connection(self):
        yield self

    @contextmanager
    def transaction(self):
        yield self

    def cursor(self, row_factory=None):
        return RecordingCursor(self.statements)


def test_get_compares_native_uuid_keys():
    pool = RecordingPool()
    account_id = "6f1c2a9e-0c1b-4a43-9a55-5a1f3c0e7b21"

    assert AccountRepository(pool).get(account_id) is None  # type: ignore[arg-type]

    query, params = pool.statements[0]
    assert "account_id = %s" in query
    assert "::text" not in query
    assert params == (uuid.UUID(account_id),)


@pytest.mark.parametrize("account_id", ["missing", "", "6f1c2a9e-not-a-uuid"])
def test_get_with_malformed_id_is_missing(account_id):
    pool = RecordingPool()
    assert AccountRepository(pool).get(account_id) is None  # type: ignore[arg-type]
    assert pool.statements == []


def test_update_targets_the_uuid_key():
    pool = RecordingPool()
    repository = AccountRepository(pool)  # type: ignore[arg-type]
    account = make_record().to_domain()

    repository.update(account.deactivate())

    assert repository.commit() == 1
    query, params = pool.statements[0]
    assert "WHERE account_id = %s::uuid" in query
    assert params[-1] == account.account_id
