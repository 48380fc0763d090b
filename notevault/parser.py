"""
Markdown note parsing: YAML frontmatter, metadata normalization, excerpts.

Parsing never rejects a note for bad metadata values; unknown type,
status or category fall back to defaults. Only frontmatter that is not
valid YAML (or not a mapping) makes a note unparsable.
"""

import re
from datetime import date, datetime
from typing import Any, Optional

import yaml

from .errors import IndexationError
from .types import (
    DEFAULT_CATEGORY,
    DEFAULT_STATUS,
    DEFAULT_TYPE,
    KNOWN_KEYS,
    NOTE_CATEGORIES,
    NOTE_STATUSES,
    NOTE_TYPES,
    Document,
    NoteMetadata,
    to_json_value,
)

EXCERPT_LENGTH = 200

# Input is cut to this multiple of the excerpt length before the regex
# pipeline runs, so huge notes cost the same as moderately sized ones.
EXCERPT_PRETRUNCATE_FACTOR = 10

_FRONTMATTER_RE = re.compile(
    r'\A---[ \t]*\r?\n(?P<yaml>.*?)^(?:---|\.\.\.)[ \t]*(?:\r?\n|\Z)',
    re.DOTALL | re.MULTILINE,
)


class _FrontmatterLoader(yaml.SafeLoader):
    """SafeLoader that keeps impossible dates (``2025-02-30``) as strings."""

    def construct_yaml_timestamp(self, node):
        try:
            return super().construct_yaml_timestamp(node)
        except ValueError:
            return self.construct_scalar(node)


_FrontmatterLoader.add_constructor(
    'tag:yaml.org,2002:timestamp', _FrontmatterLoader.construct_yaml_timestamp,
)

# Excerpt pipeline, applied in order
_FENCED_CODE_RE = re.compile(r'^[ \t]*(```|~~~).*?^[ \t]*\1[^\n]*$', re.DOTALL | re.MULTILINE)
_INLINE_CODE_RE = re.compile(r'`[^`\n]*`')
_IMAGE_RE = re.compile(r'!\[[^\]]*\]\([^)]*\)')
_EMBED_RE = re.compile(r'!\[\[[^\]]*\]\]')
_LINK_RE = re.compile(r'\[([^\]]*)\]\([^)]*\)')
_WIKILINK_RE = re.compile(r'\[\[([^\]|]*)(?:\|[^\]]*)?\]\]')
_HEADING_RE = re.compile(r'^[ \t]*#{1,6}[ \t]+', re.MULTILINE)
_EMPHASIS_RES = (
    re.compile(r'\*\*(?=\S)(.+?)(?<=\S)\*\*'),
    re.compile(r'(?<!\w)__(?=\S)(.+?)(?<=\S)__(?!\w)'),
    re.compile(r'\*(?=[^\s*])(.+?)(?<=[^\s*])\*'),
    re.compile(r'(?<!\w)_(?=[^\s_])(.+?)(?<=[^\s_])_(?!\w)'),
    re.compile(r'~~(?=\S)(.+?)(?<=\S)~~'),
)
_BLOCKQUOTE_RE = re.compile(r'^[ \t]*(?:>[ \t]?)+', re.MULTILINE)
_HRULE_RE = re.compile(r'^[ \t]*([-*_])(?:[ \t]*\1){2,}[ \t]*$', re.MULTILINE)
_LIST_MARKER_RE = re.compile(r'^[ \t]*(?:[-*+]|\d+[.)])[ \t]+(?:\[[ xX]\][ \t]+)?', re.MULTILINE)
_BLANK_LINES_RE = re.compile(r'\n[ \t]*(?:\n[ \t]*)+')
_SPACES_RE = re.compile(r'[ \t]+')


def create_excerpt(body: str, length: int = EXCERPT_LENGTH) -> str:
    """
    Plain-text preview of a Markdown body.

    Deterministic: the same input always yields the same output. An
    ellipsis is appended only when the cleaned text was truncated.
    """
    text = body[:length * EXCERPT_PRETRUNCATE_FACTOR]
    text = _FENCED_CODE_RE.sub('', text)
    text = _INLINE_CODE_RE.sub('', text)
    text = _IMAGE_RE.sub('', text)
    text = _EMBED_RE.sub('', text)
    text = _LINK_RE.sub(r'\1', text)
    text = _WIKILINK_RE.sub(r'\1', text)
    text = _HEADING_RE.sub('', text)
    for pattern in _EMPHASIS_RES:
        text = pattern.sub(r'\1', text)
    text = _BLOCKQUOTE_RE.sub('', text)
    text = _HRULE_RE.sub('', text)
    text = _LIST_MARKER_RE.sub('', text)
    text = _BLANK_LINES_RE.sub('\n\n', text)
    text = _SPACES_RE.sub(' ', text)
    text = text.strip()

    if len(text) > length:
        return text[:length].rstrip() + '...'
    return text


def split_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    """
    Separate YAML frontmatter from the Markdown body.

    Returns:
        (frontmatter, body). Frontmatter is empty when the text has none.

    Raises:
        ValueError: If the frontmatter is not valid YAML or not a mapping
    """
    if text.startswith('\ufeff'):
        text = text[1:]

    match = _FRONTMATTER_RE.match(text)
    if not match:
        return {}, text

    try:
        data = yaml.load(match.group('yaml'), Loader=_FrontmatterLoader)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid frontmatter: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError("Invalid frontmatter: expected a mapping of keys to values")
    return data, text[match.end():]


def _date_string(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    text = str(value).strip()
    return text or None


def _choice(value: Any, choices: tuple[str, ...], default: str) -> str:
    if isinstance(value, str) and value.strip().lower() in choices:
        return value.strip().lower()
    return default


def normalize_tags(value: Any) -> list[str]:
    """Tags from a YAML list or a comma/space separated string.

    Leading ``#`` is dropped, order is kept, exact duplicates are removed.
    """
    if value is None:
        return []
    if isinstance(value, str):
        raw = re.split(r'[,\s]+', value)
    elif isinstance(value, (list, tuple, set)):
        raw = [str(v) for v in value if v is not None]
    else:
        raw = [str(value)]

    tags: list[str] = []
    for tag in raw:
        tag = tag.strip().lstrip('#').strip()
        if tag and tag not in tags:
            tags.append(tag)
    return tags


def normalize_metadata(frontmatter: dict[str, Any]) -> NoteMetadata:
    """Build NoteMetadata from raw frontmatter, applying defaults."""
    extra = {
        str(k): to_json_value(v)
        for k, v in frontmatter.items()
        if str(k) not in KNOWN_KEYS
    }
    return NoteMetadata(
        created=_date_string(frontmatter.get('created')),
        modified=_date_string(frontmatter.get('modified')),
        tags=normalize_tags(frontmatter.get('tags')),
        type=_choice(frontmatter.get('type'), NOTE_TYPES, DEFAULT_TYPE),
        status=_choice(frontmatter.get('status'), NOTE_STATUSES, DEFAULT_STATUS),
        category=_choice(frontmatter.get('category'), NOTE_CATEGORIES, DEFAULT_CATEGORY),
        extra=extra,
    )


def title_from_path(rel_path: str) -> str:
    """Note title: the file name without a trailing ``.md``."""
    name = rel_path.rsplit('/', 1)[-1]
    return name[:-3] if name.endswith('.md') else name


def parse_note(text: str, rel_path: str) -> Document:
    """
    Parse the raw text of a note into a Document.

    Args:
        text: File contents
        rel_path: Vault-relative path with ``/`` separators

    Raises:
        IndexationError: If the frontmatter cannot be parsed
    """
    try:
        frontmatter, body = split_frontmatter(text)
    except ValueError as e:
        raise IndexationError(rel_path, str(e)) from e

    return Document(
        path=rel_path,
        title=title_from_path(rel_path),
        body=body,
        excerpt=create_excerpt(body),
        metadata=normalize_metadata(frontmatter),
    )
