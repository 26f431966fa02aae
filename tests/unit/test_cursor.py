"""Unit tests for BatchCursor."""

import pytest

from docshift.cursor import BatchCursor
from tests.fixtures import make_documents


class TestBatchCursor:
    """Tests for deterministic windows over a collection."""

    @pytest.mark.asyncio
    async def test_windows_are_ordered_by_id(self, source_store):
        source_store.seed("markers", list(reversed(make_documents(5))))
        cursor = BatchCursor(source_store, "markers")

        window = await cursor.next_window(0, 3)

        assert [d["_id"] for d in window] == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_consecutive_windows_do_not_overlap(self, source_store):
        source_store.seed("markers", make_documents(5))
        cursor = BatchCursor(source_store, "markers")

        first = await cursor.next_window(0, 3)
        second = await cursor.next_window(3, 3)

        assert [d["_id"] for d in first + second] == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_same_offset_yields_same_window(self, source_store):
        source_store.seed("markers", make_documents(10))
        cursor = BatchCursor(source_store, "markers")

        assert await cursor.next_window(4, 3) == await cursor.next_window(4, 3)

    @pytest.mark.asyncio
    async def test_past_end_is_empty(self, source_store):
        source_store.seed("markers", make_documents(5))
        cursor = BatchCursor(source_store, "markers")

        assert await cursor.next_window(5, 3) == []

    @pytest.mark.asyncio
    async def test_invalid_arguments(self, source_store):
        cursor = BatchCursor(source_store, "markers")
        assert cursor.collection_name == "markers"

        with pytest.raises(ValueError, match="offset"):
            await cursor.next_window(-1, 10)
        with pytest.raises(ValueError, match="batch_size"):
            await cursor.next_window(0, 0)
