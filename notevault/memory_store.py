"""
In-memory document store with fuzzy text matching.

Holds every note in a dict keyed by path. Free-text queries run against
a rapidfuzz match index built from four weighted fields; structural
filters are the same predicates the SQLite store expresses in SQL, so
both backends select the same paths for the same filters.
"""

import copy
import logging
import threading
from dataclasses import dataclass
from typing import Iterable, Optional

from rapidfuzz import fuzz, process, utils

from .filters import (
    ARCHIVE_PREFIX,
    matches_any_tag,
    matches_filters,
    query_terms,
    validate_filters,
    validate_limit,
)
from .types import (
    DEFAULT_WEIGHTS,
    Document,
    SearchFilters,
    properties_text,
    recency_key,
    sort_by_recency,
)

logger = logging.getLogger(__name__)

# rapidfuzz scores are 0-100; 60 corresponds to a 0.4 distance threshold
DEFAULT_SCORE_CUTOFF = 60.0

# Index field name -> weight key in the search weights
_FIELDS = {
    "title": "title",
    "tags": "tags",
    "properties": "frontmatter",
    "body": "content",
}


def _field_score(query: str, choice: str, *, score_cutoff=None, **kwargs) -> float:
    """Best fuzzy alignment of the query inside a field value.

    partial_ratio aligns the shorter string inside the longer one, so a
    one-letter title would match any query containing that letter. Field
    values shorter than the query are compared whole instead.
    """
    if len(choice) < len(query):
        return fuzz.ratio(query, choice, score_cutoff=score_cutoff)
    return fuzz.partial_ratio(query, choice, score_cutoff=score_cutoff)


@dataclass(frozen=True)
class _FuzzyIndex:
    """Per-field choice maps handed to rapidfuzz. Immutable once built."""
    fields: dict[str, dict[str, str]]

    @classmethod
    def build(cls, docs: list[Document]) -> "_FuzzyIndex":
        fields: dict[str, dict[str, str]] = {name: {} for name in _FIELDS}
        for doc in docs:
            fields["title"][doc.path] = doc.title
            fields["tags"][doc.path] = " ".join(doc.metadata.tags)
            fields["properties"][doc.path] = properties_text(doc)
            fields["body"][doc.path] = doc.body
        return cls(fields)

    def match(
        self,
        query: str,
        weights: dict[str, float],
        score_cutoff: float,
    ) -> dict[str, float]:
        """Weighted relevance per matching path. A path matches if any field does."""
        scores: dict[str, float] = {}
        for name, choices in self.fields.items():
            if not choices:
                continue
            weight = weights[_FIELDS[name]]
            hits = process.extract(
                query,
                choices,
                scorer=_field_score,
                processor=utils.default_process,
                score_cutoff=score_cutoff,
                limit=None,
            )
            for _choice, score, path in hits:
                scores[path] = scores.get(path, 0.0) + score * weight
        return scores


def _copies(docs: Iterable[Document]) -> list[Document]:
    """Detached copies; callers never hold the stored objects."""
    return [copy.deepcopy(d) for d in docs]


class MemoryStore:
    """
    Dict-backed store with a rebuildable fuzzy index.

    The index is rebuilt from scratch after every change. Writers replace
    the document map and index together under the lock; readers take the
    pair as a snapshot and never see one without the other.
    """

    def __init__(
        self,
        *,
        weights: Optional[dict[str, float]] = None,
        score_cutoff: float = DEFAULT_SCORE_CUTOFF,
        archive_prefix: str = ARCHIVE_PREFIX,
    ):
        self._weights = {**DEFAULT_WEIGHTS, **(weights or {})}
        self._score_cutoff = score_cutoff
        self._archive_prefix = archive_prefix.lower()
        self._docs: dict[str, Document] = {}
        self._index = _FuzzyIndex.build([])
        self._lock = threading.RLock()
        self.rebuild_count = 0

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def initialize(self) -> None:
        """Nothing to prepare; present for interface parity."""

    def clear(self) -> None:
        with self._lock:
            self._swap({})

    def close(self) -> None:
        self.clear()

    def __enter__(self):
        self.initialize()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def upsert(self, doc: Document) -> None:
        self.upsert_batch([doc])

    def upsert_batch(self, docs: list[Document]) -> None:
        """Replace or add each document, then rebuild the index once."""
        if not docs:
            return
        with self._lock:
            updated = dict(self._docs)
            for doc in docs:
                updated[doc.path] = copy.deepcopy(doc)
            self._swap(updated)
        logger.debug("Upserted %d notes into memory store", len(docs))

    def replace_all(self, docs: list[Document]) -> None:
        with self._lock:
            self._swap({doc.path: copy.deepcopy(doc) for doc in docs})
        logger.debug("Replaced memory store contents with %d notes", len(docs))

    def _swap(self, docs: dict[str, Document]) -> None:
        index = _FuzzyIndex.build(list(docs.values()))
        self.rebuild_count += 1
        self._docs = docs
        self._index = index

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def get(self, path: str) -> Optional[Document]:
        doc = self._docs.get(path)
        return copy.deepcopy(doc) if doc is not None else None

    def get_all(self) -> list[Document]:
        return _copies(self._docs.values())

    def count(self) -> int:
        return len(self._docs)

    def search(
        self,
        text: str = "",
        filters: Optional[SearchFilters] = None,
    ) -> list[Document]:
        """
        Fuzzy text match (if any) followed by structural filters.

        Results are ordered most recent first; among equally recent notes
        the better text match comes first.

        Raises:
            QueryError: If a filter value is malformed
        """
        filters = validate_filters(filters)
        with self._lock:
            docs = self._docs
            index = self._index

        if query_terms(text):
            relevance = index.match(text.strip(), self._weights, self._score_cutoff)
            candidates = [docs[path] for path in relevance]
        else:
            relevance = {}
            candidates = list(docs.values())

        matched = [
            doc for doc in candidates
            if matches_filters(doc, filters, self._archive_prefix)
        ]
        matched.sort(key=lambda d: (-relevance.get(d.path, 0.0), d.path))
        matched.sort(key=recency_key, reverse=True)
        return _copies(matched[:filters.limit])

    def get_by_tag(self, tag: str) -> list[Document]:
        with self._lock:
            docs = list(self._docs.values())
        return _copies(sort_by_recency([d for d in docs if matches_any_tag(d.metadata.tags, [tag])]))

    def get_recent(self, limit: int) -> list[Document]:
        validate_limit(limit)
        with self._lock:
            docs = list(self._docs.values())
        return _copies(sort_by_recency(docs)[:limit])

    def list_tags(self) -> list[str]:
        with self._lock:
            docs = list(self._docs.values())
        return sorted({tag for doc in docs for tag in doc.metadata.tags})
