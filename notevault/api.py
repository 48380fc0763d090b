"""
Core API for the note vault.

Vault ties configuration, the indexer and a storage backend together:
- initialize(): scan the vault and load every note into storage
- search(): free text plus structural filters
- get_note(), get_notes_by_tag(), get_recent_notes(), list_tags()
- summarize(): counts by type/status/category for a filtered set
"""

import dataclasses
import logging
import posixpath
import time
from collections import Counter
from pathlib import Path
from typing import Any, Optional

from .config import VaultConfig, load_config
from .errors import QueryError
from .filters import validate_filters
from .indexer import IndexResult, VaultIndexer, resolve_in_vault
from .protocol import StorageProtocol
from .types import Document, SearchFilters

logger = logging.getLogger(__name__)

DEFAULT_RECENT_LIMIT = 10
SUMMARY_RECENT_COUNT = 5


class Vault:
    """
    Indexed, queryable view of a directory of Markdown notes.

    Example:
        with Vault("~/Notes") as vault:
            vault.initialize()
            hits = vault.search("roadmap", tags=["work"])
    """

    def __init__(
        self,
        vault_path: Optional[str | Path] = None,
        *,
        config: Optional[VaultConfig] = None,
        storage: Optional[StorageProtocol] = None,
    ) -> None:
        """
        Args:
            vault_path: Vault root directory. Ignored when ``config`` is given.
            config: Pre-loaded VaultConfig (skips config file discovery)
            storage: Injected storage backend (skips factory creation)
        """
        if config is None:
            if vault_path is None:
                raise ValueError("Either vault_path or config is required")
            config = load_config(Path(vault_path).expanduser())
        self._config = config
        self._root = Path(config.vault_path).expanduser()

        if storage is None:
            from .backend import create_storage
            storage = create_storage(config)
        self._storage = storage

        self._indexer = VaultIndexer(
            self._root,
            config.index_patterns,
            config.exclude_patterns,
            max_file_size=config.max_file_size,
            max_workers=config.max_workers,
        )

        # Persistent operations log beside the SQLite index
        self._ops_log_handler = None
        if config.backend == "sqlite":
            from .logging_config import configure_ops_log
            self._ops_log_handler = configure_ops_log(config.db_path.parent)

        self._last_index: Optional[IndexResult] = None

    @property
    def config(self) -> VaultConfig:
        return self._config

    @property
    def root(self) -> Path:
        return self._root

    @property
    def storage(self) -> StorageProtocol:
        return self._storage

    @property
    def last_index(self) -> Optional[IndexResult]:
        """Result of the most recent initialize(), if any."""
        return self._last_index

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def initialize(self) -> IndexResult:
        """
        Prepare storage and replace its contents with a fresh vault scan.

        Every call rescans the vault; notes deleted since the last run
        disappear from the store.

        Raises:
            StorageInitializationError: If the backend cannot be prepared
        """
        start = time.monotonic()
        self._storage.initialize()
        result = self._indexer.index()
        self._storage.replace_all(result.documents)
        self._last_index = result
        logger.info(
            "Vault ready: %d notes, %d errors (%.2fs)",
            len(result.documents), len(result.errors), time.monotonic() - start,
        )
        return result

    def close(self) -> None:
        """Release storage and detach the operations log."""
        self._storage.close()
        if self._ops_log_handler is not None:
            from .logging_config import remove_ops_log
            remove_ops_log(self._ops_log_handler)
            self._ops_log_handler = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def _check_limit(self, limit: Any, maximum: int) -> int:
        if isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= maximum:
            raise QueryError(f"Limit must be between 1 and {maximum}")
        return limit

    def _filters(self, filters: Optional[SearchFilters], filter_kwargs: dict) -> SearchFilters:
        if filters is None:
            filters = SearchFilters()
        if filter_kwargs:
            try:
                filters = dataclasses.replace(filters, **filter_kwargs)
            except TypeError as e:
                raise QueryError(f"Unknown filter: {e}") from e
        return validate_filters(filters)

    def search(
        self,
        query: str = "",
        filters: Optional[SearchFilters] = None,
        **filter_kwargs: Any,
    ) -> list[Document]:
        """
        Search notes.

        Args:
            query: Free text; empty means filters only
            filters: Structural filters
            **filter_kwargs: SearchFilters fields overriding ``filters``

        Raises:
            QueryError: For malformed filters or a limit above max_search_results
        """
        if query is not None and not isinstance(query, str):
            raise QueryError("query must be a string")
        filters = self._filters(filters, filter_kwargs)
        self._check_limit(filters.limit, self._config.max_search_results)
        results = self._storage.search(query or "", filters)
        logger.debug("search %r -> %d results", query, len(results))
        return results

    def get_note(self, path: str) -> Optional[Document]:
        """
        Get a note by vault-relative path.

        Raises:
            PathSecurityError: If the path resolves outside the vault
            QueryError: If the path is empty
        """
        if not isinstance(path, str) or not path.strip():
            raise QueryError("path is required")
        resolve_in_vault(self._root, path)
        key = posixpath.normpath(path.strip().replace("\\", "/"))
        return self._storage.get(key)

    def get_notes_by_tag(self, tag: str) -> list[Document]:
        """Notes carrying ``tag`` or any tag nested under it, most recent first."""
        if not isinstance(tag, str) or not tag.strip():
            raise QueryError("tag is required")
        return self._storage.get_by_tag(tag.strip())

    def get_recent_notes(self, limit: int = DEFAULT_RECENT_LIMIT) -> list[Document]:
        self._check_limit(limit, self._config.max_recent_notes)
        return self._storage.get_recent(limit)

    def list_tags(self) -> list[str]:
        return self._storage.list_tags()

    def count(self) -> int:
        return self._storage.count()

    def summarize(
        self,
        filters: Optional[SearchFilters] = None,
        **filter_kwargs: Any,
    ) -> dict[str, Any]:
        """
        Aggregate counts over every note matching ``filters``.

        ``limit`` is ignored: counts cover all matches, and
        ``recently_modified`` lists the five most recent of them.

        Returns:
            Dict with total, by_type, by_status, by_category and
            recently_modified
        """
        filters = self._filters(filters, filter_kwargs)
        filters = dataclasses.replace(filters, limit=max(self._storage.count(), 1))
        notes = self._storage.search("", filters)

        def _counts(attr: str) -> dict[str, int]:
            counter = Counter(getattr(n.metadata, attr) for n in notes)
            return dict(sorted(counter.items()))

        return {
            "total": len(notes),
            "by_type": _counts("type"),
            "by_status": _counts("status"),
            "by_category": _counts("category"),
            "recently_modified": [
                {"title": n.title, "path": n.path, "modified": n.metadata.modified}
                for n in notes[:SUMMARY_RECENT_COUNT]
            ],
        }
