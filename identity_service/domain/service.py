"""Authentication flows: registration, login with an optional TOTP step, MFA enrollment and role management."""

from __future__ import annotations

import logging

from .account import Role, UserAccount, normalize_email
from .contracts import (
    AccountStore,
    IdentityContext,
    LoginResult,
    MfaConfirmation,
    MfaSetup,
    RegisterInput,
)
from .errors import (
    AccountInactiveError,
    ConflictError,
    InvalidCredentialsError,
    InvalidMfaCodeError,
    MfaNotEnabledError,
    NotAuthenticatedError,
    NotFoundError,
    SetupNotInitiatedError,
    ValidationError,
)
from ..security.mfa import MfaProvider
from ..security.passwords import PasswordHasher
from ..security.tokens import TokenIssuer

logger = logging.getLogger(__name__)

ASSIGNABLE_ROLES = frozenset(role.value for role in Role)


class AuthenticationService:
    """Composes hashing, TOTP and token issuance over an account store.

    One instance serves a single request: the store it holds is a unit of
    work whose staged changes are flushed by ``commit``.
    """

    def __init__(
        self,
        store: AccountStore,
        password_hasher: PasswordHasher,
        mfa_provider: MfaProvider,
        token_issuer: TokenIssuer,
    ) -> None:
        """Store collaborators; every one of them is required."""
        for name, collaborator in (
            ("store", store),
            ("password_hasher", password_hasher),
            ("mfa_provider", mfa_provider),
            ("token_issuer", token_issuer),
        ):
            if collaborator is None:
                raise TypeError(f"{name} is required")
        self._store = store
        self._hasher = password_hasher
        self._mfa = mfa_provider
        self._tokens = token_issuer

    def register(self, payload: RegisterInput) -> str:
        """Create an account holding the ``User`` role and return its id."""
        email = normalize_email(payload.email)
        if self._store.exists_by_email(email):
            raise ConflictError(f"A user with email '{email}' already exists.")

        credential_hash = self._hasher.hash(payload.password)
        account = UserAccount.register(
            first_name=payload.first_name,
            last_name=payload.last_name,
            email=email,
            credential_hash=credential_hash,
            roles=(Role.user,),
        )

        self._store.add(account)
        self._store.commit()
        logger.info("account %s registered", account.account_id)
        return account.account_id

    def login(self, email: str, password: str) -> LoginResult:
        """First authentication step.

        Accounts with MFA enabled get a pending result and no token; the
        caller must follow up with :meth:`verify_mfa_login`.
        """
        account = self._authenticate(email, password)
        if account.mfa_enabled:
            logger.info("login for account %s requires a second factor", account.account_id)
            return LoginResult(
                account_id=account.account_id,
                requires_two_factor=True,
                message="Two-factor authentication code required. Verify with your authenticator app.",
            )

        account = self._upgrade_credential(account, password)
        logger.info("account %s logged in", account.account_id)
        return LoginResult(account_id=account.account_id, token=self._tokens.issue(account))

    def verify_mfa_login(self, email: str, password: str, code: str) -> LoginResult:
        """Second authentication step.

        The password is checked again on every call so a pending login cannot
        be completed with the code alone.
        """
        account = self._authenticate(email, password)
        if not account.mfa_enabled or not account.mfa_secret:
            raise MfaNotEnabledError()
        if not self._mfa.verify_code(account.mfa_secret, code):
            logger.info("rejected TOTP code for account %s", account.account_id)
            raise InvalidMfaCodeError()

        account = self._upgrade_credential(account, password)
        logger.info("account %s logged in with a second factor", account.account_id)
        return LoginResult(
            account_id=account.account_id,
            token=self._tokens.issue(account),
            message="Login successful with two-factor authentication.",
        )

    def enable_mfa(self, identity: IdentityContext) -> MfaSetup:
        """Issue a fresh TOTP secret to the caller; a pending secret is overwritten."""
        account = self._current_account(identity)
        if account.mfa_enabled:
            raise ConflictError("Two-factor authentication is already enabled for this user.")

        secret, uri = self._mfa.generate_setup(account.email, self._mfa.issuer)
        self._store.update(account.issue_mfa_secret(secret))
        self._store.commit()
        logger.info("MFA secret issued for account %s", account.account_id)
        return MfaSetup(secret_key=secret, provisioning_uri=uri)

    def confirm_mfa(self, identity: IdentityContext, code: str) -> MfaConfirmation:
        """Turn MFA on for the caller once ``code`` matches the pending secret."""
        account = self._current_account(identity)
        secret = account.mfa_secret
        if not secret:
            raise SetupNotInitiatedError()
        if account.mfa_enabled:
            raise ConflictError("Two-factor authentication is already enabled.")
        if not self._mfa.verify_code(secret, code):
            raise InvalidMfaCodeError("Invalid two-factor authentication code. Please try again.")

        self._store.update(account.enable_mfa())
        self._store.commit()
        logger.info("MFA enabled for account %s", account.account_id)
        return MfaConfirmation(
            success=True,
            message="Two-Factor Authentication has been successfully enabled for your account.",
        )

    def assign_role(self, account_id: str, role: str) -> None:
        if role not in ASSIGNABLE_ROLES:
            raise ValidationError(
                f"role must be one of: {', '.join(sorted(ASSIGNABLE_ROLES))}."
            )
        account = self._require_account(account_id)
        self._store.update(account.add_role(role))
        self._store.commit()
        logger.info("role %s assigned to account %s", role, account_id)

    def revoke_role(self, account_id: str, role: str) -> None:
        """Remove ``role``; an account always keeps at least one role."""
        account = self._require_account(account_id)
        self._store.update(account.remove_role(role))
        self._store.commit()
        logger.info("role %s revoked from account %s", role, account_id)

    def deactivate_account(self, account_id: str) -> None:
        account = self._require_account(account_id)
        self._store.update(account.deactivate())
        self._store.commit()
        logger.info("account %s deactivated", account_id)

    def activate_account(self, account_id: str) -> None:
        account = self._require_account(account_id)
        self._store.update(account.activate())
        self._store.commit()
        logger.info("account %s activated", account_id)

    def _authenticate(self, email: str, password: str) -> UserAccount:
        # Unknown email and wrong password must be indistinguishable.
        account = self._store.get_by_email(normalize_email(email or ""))
        if account is None:
            self._hasher.verify(password, self._hasher.decoy_record())
            raise InvalidCredentialsError()
        if not self._hasher.verify(password, account.credential_hash):
            raise InvalidCredentialsError()
        if not account.is_active:
            raise AccountInactiveError()
        return account

    def _upgrade_credential(self, account: UserAccount, password: str) -> UserAccount:
        # Records written under older cost parameters are rewritten once the password is known.
        if not self._hasher.needs_rehash(account.credential_hash):
            return account
        upgraded = account.change_password(self._hasher.hash(password))
        self._store.update(upgraded)
        self._store.commit()
        logger.info("credential hash upgraded for account %s", account.account_id)
        return upgraded

    def _current_account(self, identity: IdentityContext) -> UserAccount:
        account_id = identity.current_account_id()
        if not account_id:
            raise NotAuthenticatedError()
        account = self._store.get(account_id)
        if account is None:
            raise NotFoundError("User not found.")
        return account

    def _require_account(self, account_id: str) -> UserAccount:
        account = self._store.get(account_id)
        if account is None:
            raise NotFoundError(f"User with ID '{account_id}' not found.")
        return account
