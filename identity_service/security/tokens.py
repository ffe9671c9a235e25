"""Issuing and validating application JWTs."""

from __future__ import annotations

import time
import uuid
from typing import Any

import jwt

from ..config import Settings
from ..domain.account import UserAccount

ALGORITHM = "HS256"


class TokenIssuer:
    """Signs short-lived access tokens for authenticated accounts."""

    def __init__(self, settings: Settings) -> None:
        """Capture the signing key, issuer, audience and TTL for the process lifetime."""
        self._secret = settings.jwt_secret
        self._issuer = settings.jwt_issuer
        self._audience = settings.jwt_audience
        self._ttl_seconds = settings.jwt_ttl_minutes * 60

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    def issue(self, account: UserAccount) -> str:
        """Create a signed JWT representing ``account``.

        Parameters
        ----------
        account:
            The authenticated account. Its id becomes the ``sub`` claim and each
            of its roles is listed under ``role``.

        Returns
        -------
        str
            The encoded compact JWT.
        """

        now = int(time.time())
        payload: dict[str, Any] = {
            "iss": self._issuer,
            "aud": self._audience,
            "sub": account.account_id,
            "email": account.email,
            "jti": str(uuid.uuid4()),
            "given_name": account.first_name,
            "family_name": account.last_name,
            "role": list(account.roles),
            "iat": now,
            "nbf": now,
            "exp": now + self._ttl_seconds,
        }
        return jwt.encode(payload, self._secret, algorithm=ALGORITHM)


def decode_access_token(token: str, settings: Settings) -> dict[str, Any]:
    """Decode and verify a JWT returning its payload.

    Parameters
    ----------
    token:
        Encoded JWT issued by this service.
    settings:
        Configuration holding the signing key, issuer and audience.

    Returns
    -------
    dict[str, Any]
        The decoded payload if signature, issuer, audience and expiry checks succeed.

    Raises
    ------
    jwt.PyJWTError
        Propagated when the token is invalid, expired, or signed by another issuer.
    """

    return jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[ALGORITHM],
        audience=settings.jwt_audience,
        issuer=settings.jwt_issuer,
        options={"require": ["exp", "sub", "jti"]},
    )
