"""
Data types for the note index.

A Document is a read-only snapshot of one Markdown note as it was parsed
during the last indexing pass. Frontmatter keys the index understands are
explicit fields on NoteMetadata; everything else is kept verbatim in
``extra``.
"""

import re
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import Any, Optional


NOTE_TYPES = ("note", "project", "task", "daily", "meeting")
NOTE_STATUSES = ("active", "archived", "idea", "completed")
NOTE_CATEGORIES = ("work", "personal", "knowledge", "life", "dailies")

DEFAULT_TYPE = "note"
DEFAULT_STATUS = "active"
DEFAULT_CATEGORY = "personal"

# Frontmatter keys mapped onto NoteMetadata fields (never stored in extra)
KNOWN_KEYS = frozenset({"created", "modified", "tags", "type", "status", "category"})

DEFAULT_LIMIT = 20

# Relative weight of each searchable field in text relevance
DEFAULT_WEIGHTS = {
    "title": 3.0,
    "tags": 2.5,
    "frontmatter": 2.0,
    "content": 1.0,
}

_DATE_RE = re.compile(r'^\d{4}-\d{2}-\d{2}$')


def parse_date(value: str) -> Optional[date]:
    """Parse a strict YYYY-MM-DD string.

    Returns None for anything else, including impossible calendar dates
    such as 2025-02-30.
    """
    if not value or not isinstance(value, str):
        return None
    if not _DATE_RE.match(value):
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def date_key(value: Optional[str]) -> Optional[str]:
    """Date portion of a stored timestamp, used by date-range filters.

    ``2025-01-15`` and ``2025-01-15T09:30`` both give ``2025-01-15``.
    Values whose first ten characters are not a valid date give None.
    """
    if not value:
        return None
    head = value[:10]
    return head if parse_date(head) else None


def is_valid_type(value: Any) -> bool:
    return isinstance(value, str) and value in NOTE_TYPES


def is_valid_status(value: Any) -> bool:
    return isinstance(value, str) and value in NOTE_STATUSES


def is_valid_category(value: Any) -> bool:
    return isinstance(value, str) and value in NOTE_CATEGORIES


def to_json_value(value: Any) -> Any:
    """Convert a YAML-loaded value into something json.dumps accepts.

    Dates become ISO strings; containers are converted recursively.
    """
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): to_json_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_json_value(v) for v in value]
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


@dataclass
class NoteMetadata:
    """
    Parsed frontmatter of a note.

    Attributes:
        created: Creation date string as written in the frontmatter
        modified: Modification date string as written in the frontmatter
        tags: Hierarchical tags in document order (``work/puppet``)
        type: One of NOTE_TYPES
        status: One of NOTE_STATUSES
        category: One of NOTE_CATEGORIES
        extra: Any other frontmatter keys, JSON-capable values
    """
    created: Optional[str] = None
    modified: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    type: str = DEFAULT_TYPE
    status: str = DEFAULT_STATUS
    category: str = DEFAULT_CATEGORY
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class Document:
    """
    A single indexed note.

    ``path`` is relative to the vault root, uses ``/`` separators and is
    the unique key in every storage backend.
    """
    path: str
    title: str
    body: str
    excerpt: str = ""
    metadata: NoteMetadata = field(default_factory=NoteMetadata)

    @property
    def tags(self) -> list[str]:
        return self.metadata.tags

    @property
    def modified(self) -> str | None:
        return self.metadata.modified

    def to_dict(self) -> dict:
        """Full JSON-serializable representation (used by get_note)."""
        return asdict(self)

    def to_summary(self) -> dict:
        """Compact representation for result lists."""
        return {
            "path": self.path,
            "title": self.title,
            "excerpt": self.excerpt,
            "tags": list(self.metadata.tags),
            "type": self.metadata.type,
            "status": self.metadata.status,
            "category": self.metadata.category,
            "modified": self.metadata.modified,
        }


def properties_text(doc: Document) -> str:
    """Searchable text for frontmatter values other than tags.

    Covers type, status, category and the string values of custom keys.
    """
    meta = doc.metadata
    parts = [meta.type, meta.status, meta.category]
    for value in meta.extra.values():
        if isinstance(value, str):
            parts.append(value)
        elif isinstance(value, list):
            parts.extend(v for v in value if isinstance(v, str))
    return " ".join(parts)


def recency_key(doc: Document) -> str:
    """Sort key for "most recent first" ordering: modified, else created."""
    return doc.metadata.modified or doc.metadata.created or ""


def sort_by_recency(docs: list[Document]) -> list[Document]:
    """Order documents most recent first, ties broken by path.

    Both storage backends order this way so that truncation to a limit
    selects the same documents.
    """
    ordered = sorted(docs, key=lambda d: d.path)
    ordered.sort(key=recency_key, reverse=True)
    return ordered


@dataclass
class SearchFilters:
    """
    Structural filters applied on top of (or instead of) free-text search.

    All set filters are ANDed. ``tags`` match hierarchically and are ORed
    among themselves. Dates are inclusive YYYY-MM-DD bounds on ``modified``.
    """
    tags: Optional[list[str]] = None
    type: Optional[str] = None
    status: Optional[str] = None
    category: Optional[str] = None
    date_from: Optional[str] = None
    date_to: Optional[str] = None
    path_pattern: Optional[str] = None
    include_archive: bool = False
    limit: int = DEFAULT_LIMIT
