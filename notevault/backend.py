"""
Storage backend factory.

Creates the storage backend named by configuration:

- ``sqlite`` (default): DocumentStore, persistent SQLite + FTS5
- ``memory``: MemoryStore, in-process dict + rapidfuzz

Both satisfy StorageProtocol; callers never depend on the concrete type.
"""

from .config import VaultConfig
from .errors import ConfigError
from .protocol import StorageProtocol


def create_storage(config: VaultConfig) -> StorageProtocol:
    """
    Create an uninitialized storage backend from configuration.

    Raises:
        ConfigError: If the backend name is unknown
    """
    if config.backend == "sqlite":
        from .document_store import DocumentStore
        return DocumentStore(
            config.db_path,
            weights=config.weights,
            archive_prefix=config.archive_prefix,
        )
    if config.backend == "memory":
        from .memory_store import MemoryStore
        return MemoryStore(
            weights=config.weights,
            score_cutoff=config.score_cutoff,
            archive_prefix=config.archive_prefix,
        )
    raise ConfigError(f"Unknown storage backend: {config.backend!r}. Available: ['sqlite', 'memory']")
