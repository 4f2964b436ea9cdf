from __future__ import annotations

from pathlib import Path

import pytest

from roleauth.auth.errors import (
    Forbidden,
    InvalidToken,
    PrincipalUnavailable,
    TokenExpired,
    Unauthenticated,
)

from auth_fixtures import FakeClock, build_service


def test_resolver_returns_context_for_valid_access_token(tmp_path: Path) -> None:
    service, _ledger, _store = build_service(tmp_path)
    principal, pair = service.register("member", "a@x.com", "password-1")

    context = service.authenticate(pair.access)

    assert context.principal_id == principal.principal_id
    assert context.role == "member"
    assert context.family_id == pair.family_id


def test_resolver_is_stateless_about_the_ledger(tmp_path: Path) -> None:
    service, ledger, _store = build_service(tmp_path)
    _principal, pair = service.register("member", "a@x.com", "password-1")

    assert service.logout(pair.refresh) is True
    context = service.authenticate(pair.access)

    assert context.family_id == pair.family_id
    assert ledger.get(pair.family_id).revoked is True


def test_resolver_rejects_missing_and_expired_tokens(tmp_path: Path) -> None:
    clock = FakeClock()
    service, _ledger, _store = build_service(tmp_path, clock=clock)
    _principal, pair = service.register("member", "a@x.com", "password-1")

    with pytest.raises(Unauthenticated):
        service.authenticate("")

    clock.advance(300)
    with pytest.raises(TokenExpired):
        service.authenticate(pair.access)


def test_resolver_rejects_unavailable_principals(tmp_path: Path) -> None:
    service, _ledger, store = build_service(tmp_path)
    active, active_pair = service.register("member", "a@x.com", "password-1")
    deleted, deleted_pair = service.register("member", "b@x.com", "password-1")

    store.set_active(active.principal_id, False)
    store.soft_delete(deleted.principal_id)

    with pytest.raises(PrincipalUnavailable):
        service.authenticate(active_pair.access)
    with pytest.raises(PrincipalUnavailable):
        service.authenticate(deleted_pair.access)


def test_resolver_rejects_token_for_unserved_role(tmp_path: Path) -> None:
    wide, _ledger, store = build_service(tmp_path / "wide")
    _principal, pair = wide.register("member", "a@x.com", "password-1")
    narrow, _ledger, _store = build_service(
        tmp_path / "narrow", store=store, roles=("admin",)
    )

    with pytest.raises(InvalidToken):
        narrow.authenticate(pair.access)


def test_auth_context_require_role(tmp_path: Path) -> None:
    service, _ledger, _store = build_service(tmp_path)
    _principal, pair = service.register("member", "a@x.com", "password-1")
    context = service.authenticate(pair.access)

    context.require_role("member", "admin")
    with pytest.raises(Forbidden) as exc:
        context.require_role("admin")

    assert exc.value.status_code == 403


def test_resolver_repeated_calls_have_no_side_effects(tmp_path: Path) -> None:
    service, ledger, _store = build_service(tmp_path)
    _principal, pair = service.register("member", "a@x.com", "password-1")
    before = ledger.get(pair.family_id)

    first = service.authenticate(pair.access)
    second = service.authenticate(pair.access)

    assert first == second
    assert ledger.get(pair.family_id) == before
