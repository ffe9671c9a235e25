"""Error kinds raised by the authentication core.

Every error is user-facing and recoverable. The transport layer maps ``kind``
to a status code; ``message`` is safe to return to the caller verbatim.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    validation = "ValidationError"
    invalid_credentials = "InvalidCredentials"
    account_inactive = "AccountInactive"
    mfa_not_enabled = "MfaNotEnabled"
    setup_not_initiated = "SetupNotInitiated"
    invalid_mfa_code = "InvalidMfaCode"
    conflict = "Conflict"
    not_found = "NotFound"
    not_authenticated = "NotAuthenticated"


class IdentityError(Exception):
    """Base class for domain rule violations."""

    kind: ErrorKind = ErrorKind.validation
    default_message = "Request could not be processed."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(IdentityError):
    kind = ErrorKind.validation
    default_message = "One or more validation errors occurred."


class InvalidCredentialsError(IdentityError):
    kind = ErrorKind.invalid_credentials
    default_message = "Invalid credentials."


class AccountInactiveError(IdentityError):
    kind = ErrorKind.account_inactive
    default_message = "User account is inactive."


class MfaNotEnabledError(IdentityError):
    kind = ErrorKind.mfa_not_enabled
    default_message = "Two-factor authentication is not enabled for this account."


class SetupNotInitiatedError(IdentityError):
    kind = ErrorKind.setup_not_initiated
    default_message = "MFA setup not initiated. Call the enable endpoint first."


class InvalidMfaCodeError(IdentityError):
    kind = ErrorKind.invalid_mfa_code
    default_message = "Invalid two-factor authentication code."


class ConflictError(IdentityError):
    kind = ErrorKind.conflict
    default_message = "The request conflicts with the current state of the account."


class NotFoundError(IdentityError):
    kind = ErrorKind.not_found
    default_message = "Account not found."


class NotAuthenticatedError(IdentityError):
    kind = ErrorKind.not_authenticated
    default_message = "User is not authenticated."
