"""Database repository for identity/account data."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime

from psycopg import errors as pg_errors
from psycopg.rows import tuple_row
from psycopg.types.json import Json
from psycopg_pool import ConnectionPool

from .domain.account import UserAccount, mfa_state_from_columns
from .domain.errors import ConflictError

_ACCOUNT_COLUMNS = """
    account_id, email, first_name, last_name, password_hash, roles,
    is_active, mfa_secret, mfa_enabled, created_at, updated_at
"""


@dataclass(slots=True)
class AccountRecord:
    """Row projection used when mapping database tuples to domain aggregates."""

    account_id: str
    email: str
    first_name: str
    last_name: str
    password_hash: str
    roles: list[str]
    is_active: bool
    mfa_secret: str | None
    mfa_enabled: bool
    created_at: datetime
    updated_at: datetime

    def to_domain(self) -> UserAccount:
        return UserAccount(
            account_id=str(self.account_id),
            email=self.email,
            first_name=self.first_name,
            last_name=self.last_name,
            credential_hash=self.password_hash,
            roles=tuple(self.roles or ()),
            created_at=self.created_at,
            updated_at=self.updated_at,
            is_active=self.is_active,
            mfa=mfa_state_from_columns(self.mfa_secret, self.mfa_enabled),
        )


class AccountRepository:
    """Postgres-backed account store.

    Reads hit the database immediately. ``add`` and ``update`` only stage the
    aggregate; ``commit`` writes every staged row in one transaction.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        """Store the connection pool used for all database interactions."""
        self._pool = pool
        self._pending: list[tuple[str, UserAccount]] = []

    def exists_by_email(self, email: str) -> bool:
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute("SELECT 1 FROM accounts WHERE email = %s", (email.lower(),))
                return cur.fetchone() is not None

    def get(self, account_id: str) -> UserAccount | None:
        """Fetch an account by id or return ``None``."""
        try:
            key = uuid.UUID(str(account_id))
        except ValueError:
            return None
        return self._fetch_one("account_id = %s", key)

    def get_by_email(self, email: str) -> UserAccount | None:
        """Fetch an account by normalised email or return ``None``."""
        return self._fetch_one("email = %s", email.lower())

    def add(self, account: UserAccount) -> None:
        self._pending.append(("insert", account))

    def update(self, account: UserAccount) -> None:
        self._pending.append(("update", account))

    def commit(self) -> int:
        """Flush staged changes and return the number of rows written.

        A duplicate email surfaces as :class:`ConflictError`; nothing from the
        batch is kept in that case.
        """
        pending, self._pending = self._pending, []
        if not pending:
            return 0

        written = 0
        try:
            with self._pool.connection() as conn:
                with conn.transaction():
                    with conn.cursor() as cur:
                        for operation, account in pending:
                            if operation == "insert":
                                cur.execute(
                                    f"""
                                    INSERT INTO accounts ({_ACCOUNT_COLUMNS})
                                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                                    """,
                                    (
                                        account.account_id,
                                        account.email,
                                        account.first_name,
                                        account.last_name,
                                        account.credential_hash,
                                        Json(list(account.roles)),
                                        account.is_active,
                                        account.mfa_secret,
                                        account.mfa_enabled,
                                        account.created_at,
                                        account.updated_at,
                                    ),
                                )
                            else:
                                cur.execute(
                                    """
                                    UPDATE accounts
                                    SET email = %s, first_name = %s, last_name = %s,
                                        password_hash = %s, roles = %s, is_active = %s,
                                        mfa_secret = %s, mfa_enabled = %s, updated_at = %s
                                    WHERE account_id = %s::uuid
                                    """,
                                    (
                                        account.email,
                                        account.first_name,
                                        account.last_name,
                                        account.credential_hash,
                                        Json(list(account.roles)),
                                        account.is_active,
                                        account.mfa_secret,
                                        account.mfa_enabled,
                                        account.updated_at,
                                        account.account_id,
                                    ),
                                )
                            written += cur.rowcount
        except pg_errors.UniqueViolation as exc:
            raise ConflictError("A user with this email already exists.") from exc
        return written

    def _fetch_one(self, predicate: str, value: object) -> UserAccount | None:
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE {predicate}",
                    (value,),
                )
                row = cur.fetchone()
                if not row:
                    return None
        return self._map_record(row)

    def _map_record(self, row: tuple) -> UserAccount:
        """Convert a raw database tuple into the domain ``UserAccount``."""
        return AccountRecord(*row).to_domain()
