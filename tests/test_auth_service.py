from __future__ import annotations

from pathlib import Path

import pytest

from roleauth.api.errors import ApiError
from roleauth.auth.errors import (
    AuthenticationFailed,
    Forbidden,
    IdentifierTaken,
    PrincipalUnavailable,
    RevokedToken,
    ValidationFailed,
)

from auth_fixtures import build_service


def test_auth_service_bootstrap_admin_and_login(tmp_path: Path) -> None:
    service, _ledger, _store = build_service(tmp_path)

    admin = service.bootstrap_admin_user()
    again = service.bootstrap_admin_user()
    principal, pair = service.login("admin", "admin@local", "admin-pass-123")

    assert admin is not None
    assert again is not None and again.principal_id == admin.principal_id
    assert principal.principal_id == admin.principal_id
    assert principal.last_authenticated_at is not None
    assert service.authenticate(pair.access).role == "admin"


def test_auth_service_register_then_login_lifecycle(tmp_path: Path) -> None:
    service, _ledger, _store = build_service(tmp_path)

    principal, joined = service.register("member", "A@X.com", "password-1")
    logged_principal, logged = service.login("member", "a@x.com", "password-1")

    assert principal.identifier == "a@x.com"
    assert principal.password_hash != "password-1"
    assert logged_principal.principal_id == principal.principal_id
    assert logged.family_id != joined.family_id


def test_auth_service_register_rejects_duplicate_identifier(tmp_path: Path) -> None:
    service, _ledger, _store = build_service(tmp_path)
    service.register("member", "a@x.com", "password-1")

    with pytest.raises(IdentifierTaken) as exc:
        service.register("member", "a@x.com", "password-2")

    assert exc.value.status_code == 409


def test_auth_service_same_identifier_in_two_roles(tmp_path: Path) -> None:
    service, _ledger, _store = build_service(tmp_path)

    member, _pair = service.register("member", "a@x.com", "password-1")
    employee, _pair = service.register("employee", "a@x.com", "password-2")

    assert member.principal_id != employee.principal_id
    with pytest.raises(AuthenticationFailed):
        service.login("member", "a@x.com", "password-2")


def test_auth_service_register_validates_input(tmp_path: Path) -> None:
    service, _ledger, _store = build_service(tmp_path)

    with pytest.raises(ValidationFailed):
        service.register("member", "not an email@", "password-1")
    with pytest.raises(ValidationFailed):
        service.register("member", "a@x.com", "short")
    with pytest.raises(ValidationFailed):
        service.register("pilot", "a@x.com", "password-1")


def test_auth_service_register_respects_self_register_roles(tmp_path: Path) -> None:
    service, _ledger, _store = build_service(tmp_path)

    with pytest.raises(Forbidden):
        service.register("admin", "root@x.com", "password-1")

    principal = service.create_principal(
        "admin", "root@x.com", "password-1", self_service=False
    )
    assert principal.role == "admin"


def test_auth_service_login_invalid_credentials_raises_api_error(tmp_path: Path) -> None:
    service, _ledger, _store = build_service(tmp_path)
    service.register("member", "a@x.com", "password-1")

    with pytest.raises(ApiError) as wrong_password:
        service.login("member", "a@x.com", "bad-password")
    with pytest.raises(ApiError) as unknown:
        service.login("member", "nobody@x.com", "password-1")

    assert wrong_password.value.status_code == 401
    assert unknown.value.detail == wrong_password.value.detail


def test_auth_service_login_rejects_deactivated_principal(tmp_path: Path) -> None:
    service, _ledger, _store = build_service(tmp_path)
    principal, _pair = service.register("member", "a@x.com", "password-1")
    service.deactivate_principal("member", principal.principal_id)

    with pytest.raises(AuthenticationFailed):
        service.login("member", "a@x.com", "password-1")


def test_auth_service_logout_revokes_family(tmp_path: Path) -> None:
    service, ledger, _store = build_service(tmp_path)
    _principal, pair = service.register("member", "a@x.com", "password-1")

    assert service.logout(pair.refresh) is True
    assert service.logout(pair.refresh) is False

    with pytest.raises(RevokedToken):
        service.refresh(pair.refresh)
    assert ledger.get(pair.family_id).revoked_reason == "logout"


def test_auth_service_logout_ignores_invalid_tokens(tmp_path: Path) -> None:
    service, _ledger, _store = build_service(tmp_path)
    _principal, pair = service.register("member", "a@x.com", "password-1")

    assert service.logout(None) is False
    assert service.logout("garbage") is False
    assert service.logout(pair.access) is False


def test_auth_service_logout_all_revokes_every_family(tmp_path: Path) -> None:
    service, _ledger, _store = build_service(tmp_path)
    principal, first = service.register("member", "a@x.com", "password-1")
    _principal, second = service.login("member", "a@x.com", "password-1")

    assert service.logout_all(principal.principal_id) == 2

    for pair in (first, second):
        with pytest.raises(RevokedToken):
            service.refresh(pair.refresh)


def test_auth_service_deactivate_revokes_sessions(tmp_path: Path) -> None:
    service, ledger, _store = build_service(tmp_path)
    principal, pair = service.register("member", "a@x.com", "password-1")

    assert service.deactivate_principal("member", principal.principal_id) == 1

    assert ledger.get(pair.family_id).revoked is True
    with pytest.raises(PrincipalUnavailable):
        service.authenticate(pair.access)


def test_auth_service_delete_frees_identifier(tmp_path: Path) -> None:
    service, _ledger, _store = build_service(tmp_path)
    principal, pair = service.register("member", "a@x.com", "password-1")

    service.delete_principal("member", principal.principal_id)
    replacement, _pair = service.register("member", "a@x.com", "password-2")

    assert replacement.principal_id != principal.principal_id
    with pytest.raises(PrincipalUnavailable):
        service.authenticate(pair.access)


def test_auth_service_admin_operations_reject_unknown_principal(tmp_path: Path) -> None:
    service, _ledger, _store = build_service(tmp_path)

    with pytest.raises(ValidationFailed):
        service.deactivate_principal("member", "missing")
    with pytest.raises(ValidationFailed):
        service.delete_principal("member", "missing")


def test_auth_service_admin_operations_are_scoped_to_role(tmp_path: Path) -> None:
    service, ledger, store = build_service(tmp_path)
    admin = service.bootstrap_admin_user()
    _admin, admin_pair = service.login("admin", "admin@local", "admin-pass-123")

    with pytest.raises(ValidationFailed):
        service.deactivate_principal("member", admin.principal_id)
    with pytest.raises(ValidationFailed):
        service.delete_principal("member", admin.principal_id)

    assert store.find_by_id(admin.principal_id).is_available
    assert ledger.get(admin_pair.family_id).revoked is False
    assert service.authenticate(admin_pair.access).role == "admin"
