"""
Protocol definition for notevault storage backends.

Implemented by:
- DocumentStore (SQLite + FTS5, persistent)
- MemoryStore (dict + rapidfuzz, in-process)

Both must select the same set of paths for the same structural filters.
Only the free-text relevance method (and therefore ordering among text
matches) differs.
"""

from typing import Optional, Protocol, runtime_checkable

from .types import Document, SearchFilters


@runtime_checkable
class StorageProtocol(Protocol):
    """Interface contract shared by every storage backend."""

    # -- Lifecycle --

    def initialize(self) -> None:
        """Prepare the backend. Safe to call more than once."""
        ...

    def clear(self) -> None:
        """Remove every stored document."""
        ...

    def close(self) -> None:
        """Release backend resources."""
        ...

    # -- Write operations --

    def upsert(self, doc: Document) -> None:
        """Insert or fully replace the document stored at ``doc.path``."""
        ...

    def upsert_batch(self, docs: list[Document]) -> None:
        """Same end state as calling upsert() for each document in order."""
        ...

    def replace_all(self, docs: list[Document]) -> None:
        """Make ``docs`` the whole contents. Readers see the old set or the new one."""
        ...

    # -- Read operations --

    def get(self, path: str) -> Optional[Document]: ...

    def get_all(self) -> list[Document]: ...

    def count(self) -> int: ...

    def search(
        self,
        text: str = "",
        filters: Optional[SearchFilters] = None,
    ) -> list[Document]:
        """Free-text match (if any) ANDed with structural filters, truncated to limit.

        Raises:
            QueryError: If a filter value is malformed
        """
        ...

    def get_by_tag(self, tag: str) -> list[Document]:
        """Documents with ``tag`` or any descendant tag, most recent first."""
        ...

    def get_recent(self, limit: int) -> list[Document]:
        """Most recently modified (else created) documents, at most ``limit``."""
        ...

    def list_tags(self) -> list[str]:
        """Sorted distinct tags across all documents."""
        ...
