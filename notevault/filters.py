"""
Structural filter semantics shared by every storage backend.

The SQLite store translates these rules into SQL; the memory store calls
the predicates directly. Both must agree on which paths a query selects.
"""

import dataclasses
import re
from typing import Iterable, Optional

from .errors import QueryError
from .types import (
    DEFAULT_LIMIT,
    NOTE_CATEGORIES,
    NOTE_STATUSES,
    NOTE_TYPES,
    Document,
    SearchFilters,
    date_key,
    parse_date,
)

TAG_SEPARATOR = "/"

# A path pattern ending with this marker selects a whole folder
RECURSIVE_SUFFIX = "/**"

ARCHIVE_PREFIX = "archive/"

_WORD_RE = re.compile(r"\w+", re.UNICODE)


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------

def matches_tag(note_tag: str, search_tag: str) -> bool:
    """
    Hierarchical, case-insensitive tag match.

    ``work`` matches ``work`` and ``work/puppet`` but not ``homework``,
    and ``work/puppet`` does not match a note tagged only ``work``.
    """
    note = note_tag.lower()
    search = search_tag.lower()
    if note == search:
        return True
    return note.startswith(search + TAG_SEPARATOR)


def matches_any_tag(note_tags: Iterable[str], search_tags: Iterable[str]) -> bool:
    """True if any note tag matches any requested tag."""
    search = list(search_tags)
    return any(matches_tag(nt, st) for nt in note_tags for st in search)


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

def split_path_pattern(pattern: str) -> tuple[str, bool]:
    """Lowercase a path pattern and report whether it is a folder prefix.

    Returns (needle, is_prefix). ``Work/**`` gives ("work", True);
    ``meeting`` gives ("meeting", False).
    """
    lowered = pattern.lower()
    if lowered.endswith(RECURSIVE_SUFFIX):
        return lowered[:-len(RECURSIVE_SUFFIX)], True
    return lowered, False


def matches_path_pattern(path: str, pattern: str) -> bool:
    """Folder-prefix match for ``X/**`` patterns, substring match otherwise."""
    needle, is_prefix = split_path_pattern(pattern)
    candidate = path.lower()
    if is_prefix:
        return candidate.startswith(needle)
    return needle in candidate


def is_archived(path: str, prefix: str = ARCHIVE_PREFIX) -> bool:
    return path.lower().startswith(prefix.lower())


def archive_prefix_for(folder: str) -> str:
    """Archive prefix for a configured archive folder name (``Archive`` → ``archive/``)."""
    folder = folder.strip().strip("/")
    return f"{folder.lower()}/" if folder else ARCHIVE_PREFIX


# ---------------------------------------------------------------------------
# Free text
# ---------------------------------------------------------------------------

def query_terms(text: Optional[str]) -> list[str]:
    """Word tokens of a free-text query. Empty means "no text search"."""
    if not text:
        return []
    return _WORD_RE.findall(text)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def _check_choice(name: str, value, choices: tuple[str, ...]) -> Optional[str]:
    if value is None or value == "":
        return None
    if value not in choices:
        raise QueryError(f"Invalid {name}. Must be one of: {', '.join(choices)}")
    return value


def _check_date(name: str, value) -> Optional[str]:
    if value is None or value == "":
        return None
    if not isinstance(value, str) or parse_date(value) is None:
        raise QueryError(f"{name} must be in YYYY-MM-DD format")
    return value


def validate_limit(limit) -> int:
    """Reject anything but a positive integer limit."""
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
        raise QueryError("limit must be a positive integer")
    return limit


def validate_filters(filters: Optional[SearchFilters]) -> SearchFilters:
    """
    Check and normalize a filter set.

    Returns a new SearchFilters with empty values collapsed to None and
    the default limit applied.

    Raises:
        QueryError: For an unknown type/status/category, a malformed
            date, a non-positive limit, or tags that are not strings
    """
    if filters is None:
        return SearchFilters()

    tags = filters.tags
    if isinstance(tags, str):
        tags = [tags]
    if tags is not None:
        if not all(isinstance(t, str) for t in tags):
            raise QueryError("tags must be a list of strings")
        tags = [t.strip() for t in tags if t.strip()] or None

    limit = filters.limit
    if limit is None:
        limit = DEFAULT_LIMIT
    validate_limit(limit)

    path_pattern = filters.path_pattern
    if path_pattern is not None and not isinstance(path_pattern, str):
        raise QueryError("path pattern must be a string")

    return dataclasses.replace(
        filters,
        tags=tags,
        type=_check_choice("type", filters.type, NOTE_TYPES),
        status=_check_choice("status", filters.status, NOTE_STATUSES),
        category=_check_choice("category", filters.category, NOTE_CATEGORIES),
        date_from=_check_date("dateFrom", filters.date_from),
        date_to=_check_date("dateTo", filters.date_to),
        path_pattern=path_pattern or None,
        include_archive=bool(filters.include_archive),
        limit=limit,
    )


# ---------------------------------------------------------------------------
# In-memory evaluation
# ---------------------------------------------------------------------------

def matches_filters(
    doc: Document,
    filters: SearchFilters,
    archive_prefix: str = ARCHIVE_PREFIX,
) -> bool:
    """Apply every structural filter except ``limit`` to one document.

    ``filters`` must already have been through validate_filters().
    """
    meta = doc.metadata
    if filters.path_pattern and not matches_path_pattern(doc.path, filters.path_pattern):
        return False
    if not filters.include_archive and is_archived(doc.path, archive_prefix):
        return False
    if filters.tags and not matches_any_tag(meta.tags, filters.tags):
        return False
    if filters.type and meta.type != filters.type:
        return False
    if filters.status and meta.status != filters.status:
        return False
    if filters.category and meta.category != filters.category:
        return False
    if filters.date_from or filters.date_to:
        modified = date_key(meta.modified)
        if modified is None:
            return False
        if filters.date_from and modified < filters.date_from:
            return False
        if filters.date_to and modified > filters.date_to:
            return False
    return True
