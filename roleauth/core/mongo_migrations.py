"""Versioned MongoDB schema migrations for auth collections."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable

import pymongo
from pymongo.errors import PyMongoError

from roleauth.core.config import StorageConfig
from roleauth.core.logging import CORRELATION_ID_CTX

LOGGER = logging.getLogger(__name__)

MigrationFn = Callable[[Any], None]


def _migration_0001_principal_indexes(db: Any) -> None:
    db["auth_principals"].create_index("principal_id", unique=True)
    db["auth_principals"].create_index(
        [("role", 1), ("identifier", 1)],
        unique=True,
        partialFilterExpression={"deleted_at": None},
        name="uniq_live_role_identifier",
    )


def _migration_0002_token_family_indexes(db: Any) -> None:
    db["auth_token_families"].create_index("family_id", unique=True)
    db["auth_token_families"].create_index([("principal_id", 1), ("revoked", 1)])


def _migration_0003_token_family_ttl(db: Any) -> None:
    # Families are useless once their refresh ceiling passes.
    db["auth_token_families"].create_index(
        "refreshable_until_dt",
        expireAfterSeconds=0,
        name="idx_auth_token_families_ceiling_ttl",
    )


MIGRATIONS: list[tuple[str, MigrationFn]] = [
    ("0001_principal_indexes", _migration_0001_principal_indexes),
    ("0002_token_family_indexes", _migration_0002_token_family_indexes),
    ("0003_token_family_ttl", _migration_0003_token_family_ttl),
]


def apply_mongo_migrations(storage: StorageConfig) -> list[str]:
    """Apply MongoDB migrations if a Mongo URI is configured."""
    if not storage.mongo_uri:
        return []

    applied: list[str] = []
    client: Any = pymongo.MongoClient(storage.mongo_uri, serverSelectionTimeoutMS=3000)
    try:
        client.admin.command("ping")
        db = client[storage.mongo_db]
        migration_collection = db["schema_migrations"]
        migration_collection.create_index("migration_id", unique=True)

        for migration_id, migration_fn in MIGRATIONS:
            if migration_collection.find_one({"migration_id": migration_id}):
                continue
            migration_fn(db)
            migration_collection.insert_one(
                {
                    "migration_id": migration_id,
                    "applied_at": datetime.now(timezone.utc),
                    "correlation_id": CORRELATION_ID_CTX.get(),
                }
            )
            applied.append(migration_id)
    except PyMongoError:
        LOGGER.warning("mongo_migrations_skipped", exc_info=True)
    finally:
        client.close()
    return applied
