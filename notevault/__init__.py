"""
notevault

Index a vault of Markdown notes with YAML frontmatter and query it by
text, hierarchical tags, folder, type, status, category and date.

Quick Start:
    from notevault import Vault

    with Vault("~/Notes") as vault:
        vault.initialize()
        results = vault.search("roadmap", tags=["work"], limit=10)

CLI Usage:
    notevault --vault ~/Notes search "roadmap" -t work
    notevault --vault ~/Notes recent -n 5
    notevault --vault ~/Notes mcp

Storage Backends:
    sqlite (default)  persistent SQLite + FTS5 at <vault>/.notevault/notes.db
    memory            in-process dict with fuzzy matching

Environment Variables:
    NOTEVAULT_VAULT    - Vault directory for the CLI and MCP server
    NOTEVAULT_CONFIG   - Path to notevault.toml
    NOTEVAULT_MEMORY   - Set to 1 to use the in-memory backend
    NOTEVAULT_VERBOSE  - Set to 1 for debug logging
"""

from .api import Vault
from .config import VaultConfig, load_config
from .errors import (
    ConfigError,
    IndexationError,
    NotevaultError,
    PathSecurityError,
    QueryError,
    StorageInitializationError,
)
from .types import Document, NoteMetadata, SearchFilters

__version__ = "0.1.0"
__all__ = [
    "Vault",
    "VaultConfig",
    "load_config",
    "Document",
    "NoteMetadata",
    "SearchFilters",
    "NotevaultError",
    "IndexationError",
    "StorageInitializationError",
    "QueryError",
    "PathSecurityError",
    "ConfigError",
]
