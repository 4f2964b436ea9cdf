"""Repository for principal records (the credential store)."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from threading import Lock
from typing import Any

from pymongo import MongoClient
from pymongo.errors import DuplicateKeyError, PyMongoError

from roleauth.auth.errors import IdentifierTaken, StoreUnavailable
from roleauth.auth.models import Principal, utc_now

LOGGER = logging.getLogger(__name__)


def normalize_identifier(identifier: str) -> str:
    return (identifier or "").strip().lower()


class PrincipalRepository:
    """Principal repository with MongoDB primary and file-store fallback."""

    def __init__(
        self,
        runtime_dir: Path,
        *,
        mongo_uri: str = "",
        mongo_db: str = "roleauth",
    ) -> None:
        """Initialize repository storage backends."""
        self._fallback_dir = runtime_dir / "auth_store"
        self._fallback_dir.mkdir(parents=True, exist_ok=True)
        self._principals_file = self._fallback_dir / "principals.json"
        self._file_lock = Lock()
        self._mongo_principals: Any = None

        if mongo_uri:
            try:
                client: Any = MongoClient(mongo_uri, serverSelectionTimeoutMS=3000)
                client.admin.command("ping")
                self._mongo_principals = client[mongo_db]["auth_principals"]
                self._mongo_principals.create_index("principal_id", unique=True)
                self._mongo_principals.create_index(
                    [("role", 1), ("identifier", 1)],
                    unique=True,
                    partialFilterExpression={"deleted_at": None},
                    name="uniq_live_role_identifier",
                )
            except PyMongoError:
                LOGGER.warning("principal_store_mongo_unavailable_using_file_store")
                self._mongo_principals = None

    @property
    def backend(self) -> str:
        return "mongo" if self._mongo_principals is not None else "file"

    def _read_json_file(self, path: Path) -> list[dict[str, Any]]:
        """Read list payload from JSON file; callers hold ``_file_lock``."""
        if not path.exists():
            return []
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            LOGGER.error("principal_store_file_unreadable")
            raise StoreUnavailable("Principal store unreadable") from exc
        if not isinstance(payload, list):
            raise StoreUnavailable("Principal store unreadable")
        return payload

    def _write_json_file(self, path: Path, items: list[dict[str, Any]]) -> None:
        """Persist list payload by replacing the file with a finished copy."""
        tmp = path.with_suffix(path.suffix + ".tmp")
        try:
            tmp.write_text(json.dumps(items, ensure_ascii=False, indent=2), encoding="utf-8")
            tmp.replace(path)
        except OSError as exc:
            raise StoreUnavailable("Principal store write failed") from exc

    @staticmethod
    def _is_live_match(row: dict[str, Any], role: str, identifier: str) -> bool:
        return (
            not row.get("deleted_at")
            and str(row.get("role", "")) == role
            and normalize_identifier(str(row.get("identifier", ""))) == identifier
        )

    def find_by_identifier(self, role: str, identifier: str) -> Principal | None:
        """Get live (non-deleted) principal of a role by identifier."""
        key = normalize_identifier(identifier)
        if self._mongo_principals is not None:
            try:
                doc = self._mongo_principals.find_one(
                    {"role": role, "identifier": key, "deleted_at": None}, {"_id": 0}
                )
            except PyMongoError as exc:
                raise StoreUnavailable() from exc
            return Principal.model_validate(doc) if doc else None

        with self._file_lock:
            rows = self._read_json_file(self._principals_file)
        for row in rows:
            if self._is_live_match(row, role, key):
                return Principal.model_validate(row)
        return None

    def find_by_id(self, principal_id: str) -> Principal | None:
        """Get principal by id, including soft-deleted ones."""
        if self._mongo_principals is not None:
            try:
                doc = self._mongo_principals.find_one(
                    {"principal_id": principal_id}, {"_id": 0}
                )
            except PyMongoError as exc:
                raise StoreUnavailable() from exc
            return Principal.model_validate(doc) if doc else None

        with self._file_lock:
            rows = self._read_json_file(self._principals_file)
        for row in rows:
            if str(row.get("principal_id", "")) == principal_id:
                return Principal.model_validate(row)
        return None

    def create_principal(self, principal: Principal) -> Principal:
        """Insert a principal; ``(role, identifier)`` must be free among live rows."""
        principal = principal.model_copy(
            update={"identifier": normalize_identifier(principal.identifier)}
        )
        if self._mongo_principals is not None:
            try:
                self._mongo_principals.insert_one(principal.model_dump())
            except DuplicateKeyError as exc:
                raise IdentifierTaken() from exc
            except PyMongoError as exc:
                raise StoreUnavailable() from exc
            return principal

        with self._file_lock:
            items = self._read_json_file(self._principals_file)
            if any(
                self._is_live_match(row, principal.role, principal.identifier)
                for row in items
            ):
                raise IdentifierTaken()
            items.append(principal.model_dump(mode="json"))
            self._write_json_file(self._principals_file, items)
        return principal

    def save_principal(self, principal: Principal) -> None:
        """Replace a stored principal by id."""
        principal = principal.model_copy(update={"updated_at": utc_now()})
        if self._mongo_principals is not None:
            try:
                self._mongo_principals.update_one(
                    {"principal_id": principal.principal_id},
                    {"$set": principal.model_dump()},
                    upsert=True,
                )
            except PyMongoError as exc:
                raise StoreUnavailable() from exc
            return

        with self._file_lock:
            items = self._read_json_file(self._principals_file)
            next_items = [
                row
                for row in items
                if str(row.get("principal_id", "")) != principal.principal_id
            ]
            next_items.append(principal.model_dump(mode="json"))
            self._write_json_file(self._principals_file, next_items)

    def _update_fields(self, principal_id: str, fields: dict[str, Any]) -> bool:
        fields = {**fields, "updated_at": utc_now()}
        if self._mongo_principals is not None:
            try:
                result = self._mongo_principals.update_one(
                    {"principal_id": principal_id}, {"$set": fields}
                )
            except PyMongoError as exc:
                raise StoreUnavailable() from exc
            return result.matched_count > 0

        with self._file_lock:
            items = self._read_json_file(self._principals_file)
            found = False
            for row in items:
                if str(row.get("principal_id", "")) == principal_id:
                    row.update(
                        {
                            key: value.isoformat() if hasattr(value, "isoformat") else value
                            for key, value in fields.items()
                        }
                    )
                    found = True
            if found:
                self._write_json_file(self._principals_file, items)
        return found

    def set_active(self, principal_id: str, active: bool) -> bool:
        """Toggle the active flag; returns whether the principal exists."""
        return self._update_fields(principal_id, {"is_active": bool(active)})

    def soft_delete(self, principal_id: str) -> bool:
        """Mark principal deleted; it stops matching identifier lookups."""
        return self._update_fields(principal_id, {"deleted_at": utc_now()})

    def touch_last_authenticated(self, principal_id: str) -> None:
        self._update_fields(principal_id, {"last_authenticated_at": utc_now()})
