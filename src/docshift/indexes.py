"""
Secondary index migration.

Copies index definitions of a collection from the source store to the
target store. The default ``_id`` index is skipped, and an index that
already exists at the target counts as migrated, so the copy can be
repeated safely.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from docshift.stores.interface import DocumentStore

logger = logging.getLogger(__name__)


@dataclass
class IndexMigrationResult:
    """
    Result of copying the indexes of one collection.

    Attributes:
        collection: Collection whose indexes were copied.
        created: Names of indexes created at the target.
        existing: Names of indexes that already existed at the target.
        dry_run: True when nothing was created.
    """

    collection: str
    created: list[str] = field(default_factory=list)
    existing: list[str] = field(default_factory=list)
    dry_run: bool = False

    @property
    def migrated_count(self) -> int:
        return len(self.created) + len(self.existing)


async def migrate_indexes(
    source: DocumentStore,
    target: DocumentStore,
    collection: str,
    *,
    dry_run: bool = False,
) -> IndexMigrationResult:
    """
    Copy the secondary indexes of ``collection`` to the target store.

    Args:
        source: Store whose index definitions are copied.
        target: Store receiving the indexes.
        collection: Collection name.
        dry_run: List what would be created without creating anything.

    Returns:
        IndexMigrationResult with the migrated index names.

    Raises:
        Exception: Any store error other than "index already exists".
    """
    logger.info("Migrating indexes for collection: %s", collection)
    result = IndexMigrationResult(collection=collection, dry_run=dry_run)

    for index in await source.list_indexes(collection):
        if index.is_default:
            continue

        if dry_run:
            logger.info("DRY RUN: Would create index %s", index.name)
            result.created.append(index.name)
            continue

        if await target.create_index(collection, index):
            logger.info("Created index: %s", index.name)
            result.created.append(index.name)
        else:
            result.existing.append(index.name)

    logger.info("Migrated %d indexes for %s", result.migrated_count, collection)
    return result


__all__ = ["IndexMigrationResult", "migrate_indexes"]
