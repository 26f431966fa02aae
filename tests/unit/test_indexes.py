"""Unit tests for secondary index migration."""

import pytest

from docshift.indexes import migrate_indexes
from docshift.stores.in_memory import InMemoryDocumentStore
from docshift.stores.interface import IndexSpec

YEAR_INDEX = IndexSpec(name="year_-1", keys=(("year", -1),), options={"sparse": True})
NAME_INDEX = IndexSpec(name="name_1", keys=(("name", 1),), options={"unique": True})


@pytest.fixture
def source() -> InMemoryDocumentStore:
    return InMemoryDocumentStore("source.local", enable_tracing=False)


@pytest.fixture
def target() -> InMemoryDocumentStore:
    return InMemoryDocumentStore("target.local", enable_tracing=False)


class TestMigrateIndexes:
    @pytest.mark.asyncio
    async def test_copies_secondary_indexes(self, source, target):
        await source.create_index("markers", YEAR_INDEX)
        await source.create_index("markers", NAME_INDEX)

        result = await migrate_indexes(source, target, "markers")

        assert result.created == ["year_-1", "name_1"]
        assert result.migrated_count == 2
        target_indexes = {i.name: i for i in await target.list_indexes("markers")}
        assert target_indexes["name_1"].options == {"unique": True}

    @pytest.mark.asyncio
    async def test_existing_indexes_count_as_migrated(self, source, target):
        await source.create_index("markers", YEAR_INDEX)
        await target.create_index("markers", YEAR_INDEX)

        result = await migrate_indexes(source, target, "markers")

        assert result.created == []
        assert result.existing == ["year_-1"]
        assert result.migrated_count == 1

    @pytest.mark.asyncio
    async def test_dry_run_creates_nothing(self, source, target):
        await source.create_index("markers", YEAR_INDEX)

        result = await migrate_indexes(source, target, "markers", dry_run=True)

        assert result.dry_run is True
        assert result.created == ["year_-1"]
        assert await target.list_indexes("markers") == []

    @pytest.mark.asyncio
    async def test_only_default_index(self, source, target):
        source.seed("markers", [{"_id": 1}])

        result = await migrate_indexes(source, target, "markers")

        assert result.migrated_count == 0
