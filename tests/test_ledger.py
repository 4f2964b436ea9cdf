from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from roleauth.auth.ledger import RevocationLedger

from auth_fixtures import T0, FakeClock


def _ledger(tmp_path: Path, clock: FakeClock | None = None) -> RevocationLedger:
    return RevocationLedger(database_path=tmp_path / "state.db", clock=clock or FakeClock())


def test_ledger_create_and_get_family(tmp_path: Path) -> None:
    ledger = _ledger(tmp_path)

    ledger.create_family("f1", T0 + 100, principal_id="p1", role="member")
    record = ledger.get("f1")
    ledger.close()

    assert record is not None
    assert record.next_seq == 1
    assert record.revoked is False
    assert record.refreshable_until == T0 + 100
    assert record.created_at == T0


def test_ledger_rejects_duplicate_family(tmp_path: Path) -> None:
    ledger = _ledger(tmp_path)
    ledger.create_family("f1", T0 + 100, principal_id="p1", role="member")

    with pytest.raises(ValueError):
        ledger.create_family("f1", T0 + 100, principal_id="p1", role="member")
    ledger.close()


def test_ledger_unknown_family_is_none(tmp_path: Path) -> None:
    ledger = _ledger(tmp_path)

    assert ledger.get("missing") is None
    assert ledger.advance("missing", 1) is False
    assert ledger.revoke("missing") is False
    ledger.close()


def test_ledger_advance_is_compare_and_swap(tmp_path: Path) -> None:
    ledger = _ledger(tmp_path)
    ledger.create_family("f1", T0 + 100, principal_id="p1", role="member")

    assert ledger.advance("f1", 1) is True
    assert ledger.advance("f1", 1) is False
    assert ledger.advance("f1", 2) is True

    record = ledger.get("f1")
    ledger.close()
    assert record is not None
    assert record.next_seq == 3
    assert record.last_rotated_at == T0


def test_ledger_concurrent_advance_has_single_winner(tmp_path: Path) -> None:
    ledger = _ledger(tmp_path)
    ledger.create_family("f1", T0 + 100, principal_id="p1", role="member")

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: ledger.advance("f1", 1), range(16)))
    ledger.close()

    assert results.count(True) == 1


def test_ledger_revoke_is_sticky(tmp_path: Path) -> None:
    ledger = _ledger(tmp_path)
    ledger.create_family("f1", T0 + 100, principal_id="p1", role="member")

    assert ledger.revoke("f1", reason="logout") is True
    assert ledger.revoke("f1", reason="again") is False
    assert ledger.advance("f1", 1) is False

    record = ledger.get("f1")
    ledger.close()
    assert record is not None
    assert record.revoked is True
    assert record.revoked_reason == "logout"


def test_ledger_revoke_all_for_principal(tmp_path: Path) -> None:
    clock = FakeClock()
    ledger = _ledger(tmp_path, clock)
    ledger.create_family("f1", T0 + 100, principal_id="p1", role="member")
    ledger.create_family("f2", T0 + 100, principal_id="p1", role="member")
    ledger.create_family("f3", T0 + 100, principal_id="p2", role="member")

    assert [r.family_id for r in ledger.list_active_families("p1")] == ["f1", "f2"]
    assert ledger.revoke_all_for_principal("p1", reason="logout_all") == 2
    assert ledger.list_active_families("p1") == []
    assert [r.family_id for r in ledger.list_active_families("p2")] == ["f3"]

    clock.advance(100)
    assert ledger.list_active_families("p2") == []
    ledger.close()


def test_ledger_survives_reopen(tmp_path: Path) -> None:
    ledger = _ledger(tmp_path)
    ledger.create_family("f1", T0 + 100, principal_id="p1", role="member")
    ledger.advance("f1", 1)
    ledger.close()

    reopened = _ledger(tmp_path)
    record = reopened.get("f1")
    reopened.close()

    assert record is not None
    assert record.next_seq == 2
