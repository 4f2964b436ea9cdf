"""Revocation ledger: next valid refresh sequence and revoked flag per family.

This is the only mutable, contended state in the session subsystem. Every
write that matters for replay protection is a single conditional update keyed
on the family id, so rotations within one family are linearizable without a
global lock.
"""

from __future__ import annotations

import logging
import sqlite3
import time
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Callable

from pymongo import MongoClient, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from roleauth.auth.errors import StoreUnavailable
from roleauth.auth.models import FamilyRecord
from roleauth.core.migrations import apply_migrations

LOGGER = logging.getLogger(__name__)

_FAMILY_COLUMNS = (
    "family_id, principal_id, role, next_seq, refreshable_until, revoked, "
    "revoked_at, revoked_reason, created_at, last_rotated_at"
)


class RevocationLedger:
    """Token family ledger on SQLite, or MongoDB when configured."""

    def __init__(
        self,
        *,
        database_path: Path,
        mongo_uri: str = "",
        mongo_db: str = "roleauth",
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize ledger storage."""
        self._clock = clock
        self._lock = Lock()
        self._mongo_families: Any = None
        self._connection: sqlite3.Connection | None = None

        if mongo_uri:
            try:
                client: Any = MongoClient(mongo_uri, serverSelectionTimeoutMS=3000)
                client.admin.command("ping")
                self._mongo_families = client[mongo_db]["auth_token_families"]
                self._mongo_families.create_index("family_id", unique=True)
                self._mongo_families.create_index([("principal_id", 1), ("revoked", 1)])
            except PyMongoError:
                LOGGER.warning("ledger_mongo_unavailable_using_sqlite")
                self._mongo_families = None

        if self._mongo_families is None:
            apply_migrations(database_path)
            self._connection = sqlite3.connect(
                str(database_path), check_same_thread=False, isolation_level=None
            )
            self._connection.row_factory = sqlite3.Row

    def _now(self) -> int:
        return int(self._clock())

    def _query(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        assert self._connection is not None
        try:
            with self._lock:
                return self._connection.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise StoreUnavailable("Revocation ledger unavailable") from exc

    def _write(self, sql: str, params: tuple = ()) -> int:
        """Run one autocommitted statement and return the affected row count."""
        assert self._connection is not None
        try:
            with self._lock:
                return self._connection.execute(sql, params).rowcount
        except sqlite3.IntegrityError:
            raise
        except sqlite3.Error as exc:
            raise StoreUnavailable("Revocation ledger unavailable") from exc

    @staticmethod
    def _from_row(row: sqlite3.Row) -> FamilyRecord:
        return FamilyRecord(
            family_id=row["family_id"],
            principal_id=row["principal_id"],
            role=row["role"],
            next_seq=int(row["next_seq"]),
            refreshable_until=int(row["refreshable_until"]),
            revoked=bool(row["revoked"]),
            revoked_at=row["revoked_at"],
            revoked_reason=row["revoked_reason"] or "",
            created_at=int(row["created_at"]),
            last_rotated_at=row["last_rotated_at"],
        )

    @staticmethod
    def _from_doc(doc: dict[str, Any]) -> FamilyRecord:
        doc = {key: value for key, value in doc.items() if key not in {"_id", "refreshable_until_dt"}}
        return FamilyRecord.model_validate(doc)

    def create_family(
        self,
        family_id: str,
        refreshable_until: int,
        *,
        principal_id: str,
        role: str,
    ) -> FamilyRecord:
        """Register a fresh family expecting sequence 1 next."""
        record = FamilyRecord(
            family_id=family_id,
            principal_id=principal_id,
            role=role,
            next_seq=1,
            refreshable_until=int(refreshable_until),
            created_at=self._now(),
        )
        if self._mongo_families is not None:
            doc = record.model_dump()
            # Native datetime copy of the ceiling for the TTL index.
            doc["refreshable_until_dt"] = datetime.fromtimestamp(
                record.refreshable_until, tz=timezone.utc
            )
            try:
                self._mongo_families.insert_one(doc)
            except DuplicateKeyError as exc:
                raise ValueError(f"Token family already exists: {family_id}") from exc
            except PyMongoError as exc:
                raise StoreUnavailable("Revocation ledger unavailable") from exc
            return record

        try:
            self._write(
                f"""
                INSERT INTO auth_token_families({_FAMILY_COLUMNS})
                VALUES (?, ?, ?, ?, ?, 0, NULL, '', ?, NULL)
                """,
                (
                    record.family_id,
                    record.principal_id,
                    record.role,
                    record.next_seq,
                    record.refreshable_until,
                    record.created_at,
                ),
            )
        except sqlite3.IntegrityError as exc:
            raise ValueError(f"Token family already exists: {family_id}") from exc
        return record

    def get(self, family_id: str) -> FamilyRecord | None:
        """Return the family record or ``None`` when unknown."""
        if self._mongo_families is not None:
            try:
                doc = self._mongo_families.find_one({"family_id": family_id})
            except PyMongoError as exc:
                raise StoreUnavailable("Revocation ledger unavailable") from exc
            return self._from_doc(doc) if doc else None

        rows = self._query(
            f"SELECT {_FAMILY_COLUMNS} FROM auth_token_families WHERE family_id = ?",
            (family_id,),
        )
        return self._from_row(rows[0]) if rows else None

    def advance(self, family_id: str, expected_seq: int) -> bool:
        """Compare-and-increment ``next_seq``; true only for the single winner."""
        now = self._now()
        if self._mongo_families is not None:
            try:
                doc = self._mongo_families.find_one_and_update(
                    {"family_id": family_id, "next_seq": expected_seq, "revoked": False},
                    {"$inc": {"next_seq": 1}, "$set": {"last_rotated_at": now}},
                    return_document=ReturnDocument.AFTER,
                )
            except PyMongoError as exc:
                raise StoreUnavailable("Revocation ledger unavailable") from exc
            return doc is not None

        return self._write(
            """
            UPDATE auth_token_families
            SET next_seq = next_seq + 1, last_rotated_at = ?
            WHERE family_id = ? AND next_seq = ? AND revoked = 0
            """,
            (now, family_id, expected_seq),
        ) == 1

    def revoke(self, family_id: str, reason: str = "") -> bool:
        """Mark family revoked; returns whether this call flipped the flag."""
        now = self._now()
        if self._mongo_families is not None:
            try:
                result = self._mongo_families.update_one(
                    {"family_id": family_id, "revoked": False},
                    {"$set": {"revoked": True, "revoked_at": now, "revoked_reason": reason}},
                )
            except PyMongoError as exc:
                raise StoreUnavailable("Revocation ledger unavailable") from exc
            return result.modified_count > 0

        return self._write(
            """
            UPDATE auth_token_families
            SET revoked = 1, revoked_at = ?, revoked_reason = ?
            WHERE family_id = ? AND revoked = 0
            """,
            (now, reason, family_id),
        ) == 1

    def revoke_all_for_principal(self, principal_id: str, reason: str = "") -> int:
        """Revoke every live family of a principal and return how many flipped."""
        now = self._now()
        if self._mongo_families is not None:
            try:
                result = self._mongo_families.update_many(
                    {"principal_id": principal_id, "revoked": False},
                    {"$set": {"revoked": True, "revoked_at": now, "revoked_reason": reason}},
                )
            except PyMongoError as exc:
                raise StoreUnavailable("Revocation ledger unavailable") from exc
            return int(result.modified_count)

        return self._write(
            """
            UPDATE auth_token_families
            SET revoked = 1, revoked_at = ?, revoked_reason = ?
            WHERE principal_id = ? AND revoked = 0
            """,
            (now, reason, principal_id),
        )

    def list_active_families(self, principal_id: str) -> list[FamilyRecord]:
        """Return unrevoked families whose refresh ceiling has not lapsed."""
        now = self._now()
        if self._mongo_families is not None:
            try:
                docs = self._mongo_families.find(
                    {
                        "principal_id": principal_id,
                        "revoked": False,
                        "refreshable_until": {"$gt": now},
                    }
                )
                return [self._from_doc(doc) for doc in docs]
            except PyMongoError as exc:
                raise StoreUnavailable("Revocation ledger unavailable") from exc

        rows = self._query(
            f"""
            SELECT {_FAMILY_COLUMNS} FROM auth_token_families
            WHERE principal_id = ? AND revoked = 0 AND refreshable_until > ?
            ORDER BY created_at
            """,
            (principal_id, now),
        )
        return [self._from_row(row) for row in rows]

    def close(self) -> None:
        """Close SQLite resources."""
        if self._connection is not None:
            with self._lock:
                self._connection.close()
            self._connection = None
