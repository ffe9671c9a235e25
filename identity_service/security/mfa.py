"""TOTP (RFC 6238) enrollment material and code verification."""

from __future__ import annotations

import binascii
import logging
from datetime import datetime
from urllib.parse import quote, urlencode

import pyotp

from ..config import Settings

logger = logging.getLogger(__name__)

# 32 base32 characters carry 160 bits.
SECRET_LENGTH = 32
CODE_DIGITS = 6
STEP_SECONDS = 30


class MfaProvider:
    """Generates TOTP secrets and checks codes within a tolerance window."""

    def __init__(self, settings: Settings) -> None:
        self._issuer = settings.mfa_issuer
        self._valid_window = max(0, settings.mfa_valid_window)

    @property
    def issuer(self) -> str:
        return self._issuer

    def generate_setup(self, account_label: str, issuer_label: str | None = None) -> tuple[str, str]:
        """Return ``(secret, provisioning_uri)`` for a new enrollment.

        Nothing is persisted; the caller decides where the secret goes.
        """
        secret = pyotp.random_base32(length=SECRET_LENGTH)
        issuer = issuer_label or self._issuer
        # every dynamic segment is escaped; "/" would otherwise split the label path
        label = f"{quote(issuer, safe='')}:{quote(account_label, safe='')}"
        query = urlencode({"secret": secret, "issuer": issuer}, quote_via=quote, safe="")
        uri = f"otpauth://totp/{label}?{query}"
        return secret, uri

    def verify_code(
        self, secret: str, code: str, *, for_time: int | float | datetime | None = None
    ) -> bool:
        """Return ``True`` when ``code`` matches the current, previous or next step.

        Empty input and undecodable secrets yield ``False`` rather than an error.
        """
        if not secret or not secret.strip() or not code:
            return False
        code = "".join(code.split())
        if len(code) != CODE_DIGITS or not code.isdigit():
            return False
        try:
            totp = pyotp.TOTP(secret.strip(), digits=CODE_DIGITS, interval=STEP_SECONDS)
            return totp.verify(code, for_time=for_time, valid_window=self._valid_window)
        except (binascii.Error, ValueError, TypeError):
            logger.debug("TOTP verification failed on an undecodable secret")
            return False
