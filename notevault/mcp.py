"""
MCP stdio server for notevault: read-only note search tools for AI agents.

Usage:
    notevault --vault ~/Notes mcp                        # stdio server (via CLI)
    claude mcp add notevault -- notevault --vault ~/Notes mcp

All Vault calls are serialized through a single asyncio.Lock. Results
are JSON text; failures come back as ``Error: <message>`` strings.
"""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Annotated, Any, Literal, Optional

from mcp.server.fastmcp import FastMCP
from mcp.types import ToolAnnotations
from pydantic import Field

from .api import DEFAULT_RECENT_LIMIT, Vault
from .errors import NotevaultError
from .types import DEFAULT_LIMIT, SearchFilters

logger = logging.getLogger(__name__)

VAULT_ENV = "NOTEVAULT_VAULT"

# ---------------------------------------------------------------------------
# Server setup
# ---------------------------------------------------------------------------

mcp = FastMCP(
    "notevault",
    instructions=(
        "Search a vault of Markdown notes. "
        "Filter by hierarchical tags, folder, type, status, category and "
        "modification date; read full notes by path."
    ),
)

_vault: Optional[Vault] = None
_lock = asyncio.Lock()


def set_vault(vault: Optional[Vault]) -> None:
    """Install an already-initialized Vault for the tools to use."""
    global _vault
    _vault = vault


def _get_vault() -> Vault:
    """Lazy-init the Vault from NOTEVAULT_VAULT.

    Must be called inside ``async with _lock``.
    """
    global _vault
    if _vault is None:
        vault_path = os.environ.get(VAULT_ENV)
        if not vault_path:
            raise NotevaultError(
                f"No vault configured. Set {VAULT_ENV} or run: notevault --vault PATH mcp"
            )
        vault = Vault(Path(vault_path).expanduser())
        vault.initialize()
        _vault = vault
    return _vault


def _json(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False)


def _error(e: Exception) -> str:
    return f"Error: {e}"


# ---------------------------------------------------------------------------
# Tool annotations
# ---------------------------------------------------------------------------

_READ_ONLY = ToolAnnotations(readOnlyHint=True, destructiveHint=False, idempotentHint=True)

NoteType = Literal["note", "project", "task", "daily", "meeting"]
NoteStatus = Literal["active", "archived", "idea", "completed"]
NoteCategory = Literal["work", "personal", "knowledge", "life", "dailies"]


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


@mcp.tool(
    description=(
        "Search notes in the vault with optional filters. "
        "Leave the query empty to list notes matching the filters, most recent first."
    ),
    annotations=_READ_ONLY,
)
async def search_notes(
    query: Annotated[str, Field(
        description="Search text. Optional: empty lists all notes matching the filters.",
    )] = "",
    tags: Annotated[Optional[list[str]], Field(
        description='Filter by tags; a parent tag matches nested tags (e.g. ["work/puppet", "golang"]).',
    )] = None,
    type: Annotated[Optional[NoteType], Field(description="Filter by note type.")] = None,
    status: Annotated[Optional[NoteStatus], Field(description="Filter by status.")] = None,
    category: Annotated[Optional[NoteCategory], Field(description="Filter by category.")] = None,
    date_from: Annotated[Optional[str], Field(
        description="Only notes modified on or after this date (YYYY-MM-DD).",
    )] = None,
    date_to: Annotated[Optional[str], Field(
        description="Only notes modified on or before this date (YYYY-MM-DD).",
    )] = None,
    path: Annotated[Optional[str], Field(
        description='Path filter: "Folder/**" for a folder, anything else matches as a substring.',
    )] = None,
    include_archive: Annotated[bool, Field(
        description="Include notes from the archive folder.",
    )] = False,
    limit: Annotated[int, Field(
        description=f"Maximum number of results (default: {DEFAULT_LIMIT}).",
    )] = DEFAULT_LIMIT,
) -> str:
    """Search notes."""
    filters = SearchFilters(
        tags=tags,
        type=type,
        status=status,
        category=category,
        date_from=date_from,
        date_to=date_to,
        path_pattern=path,
        include_archive=include_archive,
        limit=limit,
    )
    async with _lock:
        try:
            notes = _get_vault().search(query, filters)
        except NotevaultError as e:
            return _error(e)
    return _json([n.to_summary() for n in notes])


@mcp.tool(
    description="Retrieve the full content and metadata of a note by its vault-relative path.",
    annotations=_READ_ONLY,
)
async def get_note(
    path: Annotated[str, Field(
        description='Path to the note (e.g. "Work/Puppet/Meeting Notes.md").',
    )],
) -> str:
    """Retrieve a note."""
    async with _lock:
        try:
            note = _get_vault().get_note(path)
        except NotevaultError as e:
            return _error(e)
    if note is None:
        return f"Error: Note not found: {path}"
    return _json(note.to_dict())


@mcp.tool(
    description="Get all notes with a tag, including notes with tags nested under it.",
    annotations=_READ_ONLY,
)
async def get_notes_by_tag(
    tag: Annotated[str, Field(
        description='Tag to look up (e.g. "work/puppet", "coffee").',
    )],
) -> str:
    """Notes by tag."""
    async with _lock:
        try:
            notes = _get_vault().get_notes_by_tag(tag)
        except NotevaultError as e:
            return _error(e)
    return _json([n.to_summary() for n in notes])


@mcp.tool(
    description="Get the most recently modified notes.",
    annotations=_READ_ONLY,
)
async def get_recent_notes(
    limit: Annotated[int, Field(
        description=f"Number of notes to return (default: {DEFAULT_RECENT_LIMIT}).",
    )] = DEFAULT_RECENT_LIMIT,
) -> str:
    """Recent notes."""
    async with _lock:
        try:
            notes = _get_vault().get_recent_notes(limit)
        except NotevaultError as e:
            return _error(e)
    return _json([n.to_summary() for n in notes])


@mcp.tool(
    description="List all unique tags used across the vault.",
    annotations=_READ_ONLY,
)
async def list_tags() -> str:
    """All tags."""
    async with _lock:
        try:
            tags = _get_vault().list_tags()
        except NotevaultError as e:
            return _error(e)
    return _json(tags)


@mcp.tool(
    description=(
        "Summarize the notes matching the filters: totals by type, status and "
        "category, plus the most recently modified."
    ),
    annotations=_READ_ONLY,
)
async def summarize_notes(
    tags: Annotated[Optional[list[str]], Field(description="Filter by tags.")] = None,
    type: Annotated[Optional[NoteType], Field(description="Filter by note type.")] = None,
    status: Annotated[Optional[NoteStatus], Field(description="Filter by status.")] = None,
    category: Annotated[Optional[NoteCategory], Field(description="Filter by category.")] = None,
) -> str:
    """Summarize notes."""
    filters = SearchFilters(tags=tags, type=type, status=status, category=category)
    async with _lock:
        try:
            summary = _get_vault().summarize(filters)
        except NotevaultError as e:
            return _error(e)
    return _json(summary)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main(vault: Optional[Vault] = None):
    """Run the MCP stdio server."""
    import signal
    # anyio's stdin reader ignores task cancellation, so exit directly on Ctrl+C
    signal.signal(signal.SIGINT, lambda *_: os._exit(130))

    if vault is not None:
        set_vault(vault)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
