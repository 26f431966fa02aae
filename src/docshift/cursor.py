"""
Batch cursor over a source collection.

Windows are addressed by document offset into the collection ordered by
ascending ``_id``, so an offset saved as a resume token addresses the same
documents in a later invocation as long as the source is not modified.
"""

from docshift.stores.interface import Document, DocumentStore


class BatchCursor:
    """
    Produces deterministic windows of a source collection.

    The cursor holds no position of its own; callers pass the offset of
    every window, which keeps resumption a matter of passing a saved
    offset back in.

    Example:
        >>> cursor = BatchCursor(source, "markers")
        >>> window = await cursor.next_window(offset=0, batch_size=1000)
        >>> if not window:
        ...     print("end of collection")
    """

    def __init__(self, store: DocumentStore, collection_name: str) -> None:
        self._store = store
        self._collection_name = collection_name

    @property
    def collection_name(self) -> str:
        return self._collection_name

    async def next_window(self, offset: int, batch_size: int) -> list[Document]:
        """
        Read the window starting at ``offset``.

        Args:
            offset: Number of documents to skip (>= 0).
            batch_size: Maximum window length (>= 1).

        Returns:
            Up to ``batch_size`` documents in ascending ``_id`` order. An empty
            list means the end of the collection was reached.

        Raises:
            ValueError: If offset or batch_size is out of range.
        """
        if offset < 0:
            raise ValueError(f"offset must be >= 0, got {offset}")
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")

        return await self._store.find_window(self._collection_name, offset, batch_size)


__all__ = ["BatchCursor"]
