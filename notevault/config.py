"""
Configuration management for notevault.

The configuration is stored as a TOML file, by default ``notevault.toml``
in the vault root. It selects which notes are indexed, which storage
backend serves queries, and the limits applied to callers.

A missing file is not an error: every setting has a default.
"""

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import tomli_w

from .errors import ConfigError
from .filters import archive_prefix_for
from .types import DEFAULT_WEIGHTS


CONFIG_FILENAME = "notevault.toml"
CONFIG_ENV = "NOTEVAULT_CONFIG"
MEMORY_ENV = "NOTEVAULT_MEMORY"
STORE_DIRNAME = ".notevault"
DB_FILENAME = "notes.db"

BACKENDS = ("sqlite", "memory")

DEFAULT_INDEX_PATTERNS = [
    "Work/**/*.md",
    "Projects/**/*.md",
    "Knowledge/**/*.md",
    "Life/**/*.md",
    "Dailies/**/*.md",
]

DEFAULT_EXCLUDE_PATTERNS = [
    "Archive/**/*.md",
    "_Meta/Attachments/**",
    ".trash/**",
    "node_modules/**",
    ".git/**",
]

DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024
DEFAULT_MAX_SEARCH_RESULTS = 100
DEFAULT_MAX_RECENT_NOTES = 100

# Fraction of mismatch tolerated by fuzzy matching (0 exact, 1 anything)
DEFAULT_FUZZY_THRESHOLD = 0.4

DEFAULT_MAX_WORKERS = 8


@dataclass
class VaultConfig:
    """Complete vault configuration."""
    vault_path: Path
    index_patterns: list[str] = field(default_factory=lambda: list(DEFAULT_INDEX_PATTERNS))
    exclude_patterns: list[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDE_PATTERNS))
    max_file_size: int = DEFAULT_MAX_FILE_SIZE
    archive_folder: str = "Archive"

    max_search_results: int = DEFAULT_MAX_SEARCH_RESULTS
    max_recent_notes: int = DEFAULT_MAX_RECENT_NOTES
    fuzzy_threshold: float = DEFAULT_FUZZY_THRESHOLD
    weights: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_WEIGHTS))

    backend: str = "sqlite"
    storage_path: Optional[Path] = None

    max_workers: int = DEFAULT_MAX_WORKERS

    @property
    def config_path(self) -> Path:
        """Default location of the TOML config file for this vault."""
        return self.vault_path / CONFIG_FILENAME

    @property
    def db_path(self) -> Path:
        """SQLite database file for the sqlite backend."""
        if self.storage_path is not None:
            return self.storage_path
        return self.vault_path / STORE_DIRNAME / DB_FILENAME

    @property
    def archive_prefix(self) -> str:
        return archive_prefix_for(self.archive_folder)

    @property
    def score_cutoff(self) -> float:
        """rapidfuzz score (0-100) equivalent to ``fuzzy_threshold``."""
        return round((1.0 - self.fuzzy_threshold) * 100.0, 6)


def _section(data: dict, name: str) -> dict:
    section = data.get(name, {})
    if not isinstance(section, dict):
        raise ConfigError(f"[{name}] must be a table")
    return section


def _str_list(section: dict, key: str, default: list[str]) -> list[str]:
    value = section.get(key, default)
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"{key} must be a list of strings")
    return list(value)


def _number(section: dict, key: str, default, kind=int):
    value = section.get(key, default)
    if isinstance(value, bool):
        raise ConfigError(f"{key} must be a number")
    if kind is float and isinstance(value, int):
        value = float(value)
    if not isinstance(value, kind):
        raise ConfigError(f"{key} must be {'an integer' if kind is int else 'a number'}")
    return value


def resolve_config_path(vault_path: Path, config_path: Optional[Path] = None) -> Path:
    """
    Find the config file to use.

    Priority:
    1. Explicit ``config_path``
    2. NOTEVAULT_CONFIG environment variable
    3. ``<vault>/notevault.toml``
    """
    if config_path is not None:
        return Path(config_path)
    env_path = os.environ.get(CONFIG_ENV)
    if env_path:
        return Path(env_path).expanduser()
    return Path(vault_path) / CONFIG_FILENAME


def config_from_dict(vault_path: Path, data: dict[str, Any]) -> VaultConfig:
    """Build a VaultConfig from parsed TOML, applying defaults for missing keys."""
    vault = _section(data, "vault")
    search = _section(data, "search")
    weights_section = search.get("weights", {})
    if not isinstance(weights_section, dict):
        raise ConfigError("[search.weights] must be a table")
    storage = _section(data, "storage")
    indexer = _section(data, "indexer")

    weights = dict(DEFAULT_WEIGHTS)
    for key, value in weights_section.items():
        if key not in DEFAULT_WEIGHTS:
            raise ConfigError(
                f"Unknown search weight {key!r}. Expected one of: {', '.join(DEFAULT_WEIGHTS)}"
            )
        weights[key] = _number(weights_section, key, value, float)

    archive_folder = vault.get("archive_folder", "Archive")
    if not isinstance(archive_folder, str):
        raise ConfigError("archive_folder must be a string")

    backend = storage.get("backend", "sqlite")
    storage_path = storage.get("path")
    if storage_path is not None:
        if not isinstance(storage_path, str):
            raise ConfigError("storage path must be a string")
        storage_path = Path(storage_path).expanduser()
        if not storage_path.is_absolute():
            storage_path = Path(vault_path) / storage_path

    config = VaultConfig(
        vault_path=Path(vault_path),
        index_patterns=_str_list(vault, "index_patterns", DEFAULT_INDEX_PATTERNS),
        exclude_patterns=_str_list(vault, "exclude_patterns", DEFAULT_EXCLUDE_PATTERNS),
        max_file_size=_number(vault, "max_file_size", DEFAULT_MAX_FILE_SIZE),
        archive_folder=archive_folder,
        max_search_results=_number(search, "max_search_results", DEFAULT_MAX_SEARCH_RESULTS),
        max_recent_notes=_number(search, "max_recent_notes", DEFAULT_MAX_RECENT_NOTES),
        fuzzy_threshold=_number(search, "fuzzy_threshold", DEFAULT_FUZZY_THRESHOLD, float),
        weights=weights,
        backend=backend,
        storage_path=storage_path,
        max_workers=_number(indexer, "max_workers", DEFAULT_MAX_WORKERS),
    )
    validate_config(config)
    return config


def validate_config(config: VaultConfig) -> None:
    """
    Check a configuration for values the indexer or stores cannot use.

    Raises:
        ConfigError: Describing the first invalid value found
    """
    if not config.index_patterns:
        raise ConfigError("index_patterns must contain at least one pattern")
    for name in ("max_file_size", "max_search_results", "max_recent_notes", "max_workers"):
        if getattr(config, name) < 1:
            raise ConfigError(f"{name} must be a positive integer")
    if not 0.0 <= config.fuzzy_threshold <= 1.0:
        raise ConfigError("fuzzy_threshold must be between 0 and 1")
    for key, value in config.weights.items():
        if value < 0:
            raise ConfigError(f"search weight {key!r} must not be negative")
    if config.backend not in BACKENDS:
        raise ConfigError(
            f"Unknown storage backend: {config.backend!r}. Expected one of: {', '.join(BACKENDS)}"
        )


def load_config(vault_path: Path, config_path: Optional[Path] = None) -> VaultConfig:
    """
    Load configuration for a vault.

    A missing file yields the defaults. ``NOTEVAULT_MEMORY=1`` forces the
    in-memory backend regardless of the file.

    Raises:
        ConfigError: If the file is not valid TOML or holds invalid values
    """
    vault_path = Path(vault_path).expanduser()
    path = resolve_config_path(vault_path, config_path)

    data: dict[str, Any] = {}
    if path.exists():
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid config file {path}: {e}") from e
        except OSError as e:
            raise ConfigError(f"Cannot read config file {path}: {e}") from e

    config = config_from_dict(vault_path, data)
    if os.environ.get(MEMORY_ENV, "").strip().lower() in ("1", "true", "yes"):
        config.backend = "memory"
    return config


def config_to_dict(config: VaultConfig) -> dict[str, Any]:
    """TOML structure for a configuration (inverse of config_from_dict)."""
    storage: dict[str, Any] = {"backend": config.backend}
    if config.storage_path is not None:
        storage["path"] = str(config.storage_path)
    return {
        "vault": {
            "index_patterns": list(config.index_patterns),
            "exclude_patterns": list(config.exclude_patterns),
            "max_file_size": config.max_file_size,
            "archive_folder": config.archive_folder,
        },
        "search": {
            "max_search_results": config.max_search_results,
            "max_recent_notes": config.max_recent_notes,
            "fuzzy_threshold": config.fuzzy_threshold,
            "weights": dict(config.weights),
        },
        "storage": storage,
        "indexer": {
            "max_workers": config.max_workers,
        },
    }


def save_config(config: VaultConfig, path: Optional[Path] = None) -> Path:
    """
    Write configuration as TOML.

    Creates the parent directory if it doesn't exist.

    Returns:
        The path written
    """
    path = Path(path) if path is not None else config.config_path
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "wb") as f:
        tomli_w.dump(config_to_dict(config), f)
    return path
