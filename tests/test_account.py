"""Tests for the UserAccount aggregate and its MFA enrollment states."""

from __future__ import annotations

import dataclasses

import pytest

from identity_service.domain.account import (
    Enabled,
    NotEnrolled,
    Role,
    SecretIssued,
    UserAccount,
    mfa_state_from_columns,
)
from identity_service.domain.errors import (
    ConflictError,
    NotFoundError,
    SetupNotInitiatedError,
    ValidationError,
)

HASH = "$argon2id$v=19$m=1024,t=1,p=1$c2FsdA==$a2V5"


def make_account(**overrides) -> UserAccount:
    fields = {
        "first_name": "Ana",
        "last_name": "Gomez",
        "email": "ana@example.com",
        "credential_hash": HASH,
    }
    fields.update(overrides)
    return UserAccount.register(**fields)


def test_register_normalises_and_applies_defaults():
    account = make_account(first_name="  Ana ", last_name=" Gomez", email="  Ana@Example.COM ")

    assert account.account_id
    assert account.first_name == "Ana"
    assert account.last_name == "Gomez"
    assert account.email == "ana@example.com"
    assert account.roles == ("User",)
    assert account.is_active is True
    assert isinstance(account.mfa, NotEnrolled)
    assert account.mfa_secret is None
    assert account.mfa_enabled is False
    assert account.created_at == account.updated_at
    assert account.full_name == "Ana Gomez"


def test_register_assigns_distinct_ids():
    assert make_account().account_id != make_account().account_id


@pytest.mark.parametrize(
    "overrides",
    [
        {"first_name": ""},
        {"first_name": "   "},
        {"first_name": "x" * 101},
        {"last_name": ""},
        {"last_name": "y" * 101},
        {"email": ""},
        {"email": "no-at-sign.example.com"},
        {"email": "a@b"},
        {"email": "a" * 250 + "@example.com"},
        {"credential_hash": ""},
        {"credential_hash": "   "},
        {"roles": ()},
        {"roles": ("User", "User")},
        {"roles": ("",)},
    ],
)
def test_register_rejects_invalid_fields(overrides):
    with pytest.raises(ValidationError):
        make_account(**overrides)


def test_name_at_max_length_is_accepted():
    account = make_account(first_name="x" * 100)
    assert len(account.first_name) == 100


def test_accounts_are_immutable():
    account = make_account()
    with pytest.raises(dataclasses.FrozenInstanceError):
        account.is_active = False  # type: ignore[misc]


def test_add_role_returns_new_value_and_refreshes_timestamp():
    account = make_account()
    promoted = account.add_role(Role.admin)

    assert promoted.roles == ("User", "Admin")
    assert account.roles == ("User",)
    assert promoted.updated_at >= account.updated_at
    assert promoted.created_at == account.created_at


def test_add_role_rejects_duplicates():
    with pytest.raises(ConflictError):
        make_account().add_role("User")


def test_add_role_rejects_blank():
    with pytest.raises(ValidationError):
        make_account().add_role(" ")


def test_remove_role():
    account = make_account().add_role("Admin").remove_role("User")
    assert account.roles == ("Admin",)


def test_remove_role_keeps_at_least_one_role():
    with pytest.raises(ValidationError):
        make_account().remove_role("User")


def test_remove_missing_role():
    with pytest.raises(NotFoundError):
        make_account().remove_role("Admin")


def test_deactivate_and_activate():
    account = make_account()
    inactive = account.deactivate()
    assert inactive.is_active is False
    assert inactive.activate().is_active is True


def test_activation_state_changes_must_change_state():
    account = make_account()
    with pytest.raises(ConflictError):
        account.activate()
    with pytest.raises(ConflictError):
        account.deactivate().deactivate()


def test_update_profile_revalidates():
    account = make_account()
    updated = account.update_profile("Ana María", "Gómez", "ANA.MARIA@example.com")
    assert updated.full_name == "Ana María Gómez"
    assert updated.email == "ana.maria@example.com"

    with pytest.raises(ValidationError):
        account.update_profile("", "Gomez", "ana@example.com")


def test_change_password_requires_hash():
    account = make_account()
    assert account.change_password("$argon2id$new").credential_hash == "$argon2id$new"
    with pytest.raises(ValidationError):
        account.change_password("")


def test_mfa_enrollment_state_machine():
    account = make_account()

    issued = account.issue_mfa_secret("JBSWY3DPEHPK3PXP")
    assert issued.mfa == SecretIssued("JBSWY3DPEHPK3PXP")
    assert issued.mfa_secret == "JBSWY3DPEHPK3PXP"
    assert issued.mfa_enabled is False

    reissued = issued.issue_mfa_secret("KRSXG5CTMVRXEZLU")
    assert reissued.mfa_secret == "KRSXG5CTMVRXEZLU"

    enabled = reissued.enable_mfa()
    assert enabled.mfa == Enabled("KRSXG5CTMVRXEZLU")
    assert enabled.mfa_enabled is True


def test_enable_mfa_requires_issued_secret():
    with pytest.raises(SetupNotInitiatedError):
        make_account().enable_mfa()


def test_enabled_mfa_cannot_be_restarted_or_reenabled():
    enabled = make_account().issue_mfa_secret("JBSWY3DPEHPK3PXP").enable_mfa()
    with pytest.raises(ConflictError):
        enabled.enable_mfa()
    with pytest.raises(ConflictError):
        enabled.issue_mfa_secret("KRSXG5CTMVRXEZLU")


def test_issue_mfa_secret_rejects_blank():
    with pytest.raises(ValidationError):
        make_account().issue_mfa_secret("")


@pytest.mark.parametrize(
    "secret, enabled, expected",
    [
        (None, False, NotEnrolled()),
        ("", False, NotEnrolled()),
        ("JBSWY3DPEHPK3PXP", False, SecretIssued("JBSWY3DPEHPK3PXP")),
        ("JBSWY3DPEHPK3PXP", True, Enabled("JBSWY3DPEHPK3PXP")),
    ],
)
def test_mfa_state_from_columns(secret, enabled, expected):
    assert mfa_state_from_columns(secret, enabled) == expected


def test_mfa_state_from_columns_rejects_enabled_without_secret():
    with pytest.raises(ValidationError):
        mfa_state_from_columns(None, True)
