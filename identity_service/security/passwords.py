"""Argon2id password hashing with a self-describing record format.

Records look like::

    $argon2id$v=19$m=65536,t=4,p=4$<salt, base64>$<derived key, base64>

Verification always uses the parameters stored in the record, so records
written under older defaults remain verifiable after the defaults change.
"""

from __future__ import annotations

import base64
import hmac
import logging
import secrets
from dataclasses import dataclass

from argon2.exceptions import HashingError
from argon2.low_level import ARGON2_VERSION, Type, hash_secret_raw

from ..config import Settings
from ..domain.errors import ValidationError

logger = logging.getLogger(__name__)

ALGORITHM = "argon2id"
SALT_BYTES = 16
KEY_BYTES = 32

# Ceiling for parameters read back from stored records, so a corrupted record
# cannot make verification allocate unbounded memory.
MAX_TIME_COST = 64
MAX_MEMORY_COST_KB = 4 * 1024 * 1024
MAX_PARALLELISM = 64


@dataclass(frozen=True, slots=True)
class HashRecord:
    """Decoded form of a serialized password hash."""

    version: int
    memory_cost_kb: int
    time_cost: int
    parallelism: int
    salt: bytes
    key: bytes

    def serialize(self) -> str:
        salt = base64.b64encode(self.salt).decode("ascii")
        key = base64.b64encode(self.key).decode("ascii")
        return (
            f"${ALGORITHM}$v={self.version}"
            f"$m={self.memory_cost_kb},t={self.time_cost},p={self.parallelism}"
            f"${salt}${key}"
        )

    @classmethod
    def parse(cls, record: str) -> "HashRecord":
        """Decode a serialized record, raising ``ValueError`` on any malformation."""
        parts = record.split("$")
        if len(parts) != 6 or parts[0] != "" or parts[1] != ALGORITHM:
            raise ValueError("unrecognised hash record")

        version_tag, _, version = parts[2].partition("=")
        if version_tag != "v":
            raise ValueError("missing version")

        params: dict[str, int] = {}
        for item in parts[3].split(","):
            name, _, value = item.partition("=")
            params[name] = int(value)
        if set(params) != {"m", "t", "p"}:
            raise ValueError("missing cost parameters")

        parsed = cls(
            version=int(version),
            memory_cost_kb=params["m"],
            time_cost=params["t"],
            parallelism=params["p"],
            salt=base64.b64decode(parts[4], validate=True),
            key=base64.b64decode(parts[5], validate=True),
        )
        if not (
            1 <= parsed.time_cost <= MAX_TIME_COST
            and 1 <= parsed.parallelism <= MAX_PARALLELISM
            and 8 * parsed.parallelism <= parsed.memory_cost_kb <= MAX_MEMORY_COST_KB
        ):
            raise ValueError("cost parameters out of range")
        if not parsed.salt or not parsed.key:
            raise ValueError("empty salt or key")
        return parsed


class PasswordHasher:
    """One-way, salted, memory-hard password hashing."""

    def __init__(self, settings: Settings) -> None:
        """Read the cost parameters once from the process configuration."""
        time_cost = settings.argon2_time_cost
        memory_cost_kb = settings.argon2_memory_cost_kb
        parallelism = settings.argon2_parallelism
        if time_cost < 1 or parallelism < 1 or memory_cost_kb < 8 * parallelism:
            raise ValueError(
                "argon2 parameters require time_cost >= 1, parallelism >= 1 "
                "and memory_cost_kb >= 8 * parallelism"
            )
        self._time_cost = time_cost
        self._memory_cost_kb = memory_cost_kb
        self._parallelism = parallelism
        self._decoy_record: str | None = None

    def decoy_record(self) -> str:
        """Return a record with the configured costs that no real password matches.

        Verifying against it costs as much as a real verification, which keeps
        lookups of unknown accounts from finishing measurably faster.
        """
        if self._decoy_record is None:
            self._decoy_record = self.hash(secrets.token_urlsafe(32))
        return self._decoy_record

    def hash(self, password: str) -> str:
        """Hash ``password`` with a fresh random salt and return the serialized record."""
        if not password:
            raise ValidationError("Password cannot be empty.")
        salt = secrets.token_bytes(SALT_BYTES)
        key = self._derive(
            password,
            salt,
            time_cost=self._time_cost,
            memory_cost_kb=self._memory_cost_kb,
            parallelism=self._parallelism,
            key_len=KEY_BYTES,
            version=ARGON2_VERSION,
        )
        return HashRecord(
            version=ARGON2_VERSION,
            memory_cost_kb=self._memory_cost_kb,
            time_cost=self._time_cost,
            parallelism=self._parallelism,
            salt=salt,
            key=key,
        ).serialize()

    def verify(self, password: str, record: str) -> bool:
        """Return ``True`` when ``password`` matches ``record``; never raises."""
        if not password or not record:
            return False
        try:
            parsed = HashRecord.parse(record)
            candidate = self._derive(
                password,
                parsed.salt,
                time_cost=parsed.time_cost,
                memory_cost_kb=parsed.memory_cost_kb,
                parallelism=parsed.parallelism,
                key_len=len(parsed.key),
                version=parsed.version,
            )
        except (ValueError, TypeError, HashingError):
            logger.debug("password verification failed on a malformed hash record")
            return False
        return hmac.compare_digest(candidate, parsed.key)

    def needs_rehash(self, record: str) -> bool:
        """Return ``True`` when ``record`` was produced with other parameters than the configured ones."""
        try:
            parsed = HashRecord.parse(record)
        except (ValueError, TypeError):
            return True
        return (
            parsed.version != ARGON2_VERSION
            or parsed.time_cost != self._time_cost
            or parsed.memory_cost_kb != self._memory_cost_kb
            or parsed.parallelism != self._parallelism
            or len(parsed.salt) != SALT_BYTES
            or len(parsed.key) != KEY_BYTES
        )

    @staticmethod
    def _derive(
        password: str,
        salt: bytes,
        *,
        time_cost: int,
        memory_cost_kb: int,
        parallelism: int,
        key_len: int,
        version: int,
    ) -> bytes:
        return hash_secret_raw(
            secret=password.encode("utf-8"),
            salt=salt,
            time_cost=time_cost,
            memory_cost=memory_cost_kb,
            parallelism=parallelism,
            hash_len=key_len,
            type=Type.ID,
            version=version,
        )
