"""
CLI interface for notevault.

Usage:
    notevault --vault ~/Notes search "roadmap" -t work
    notevault --vault ~/Notes get "Work/Plan.md"
    notevault --vault ~/Notes mcp
"""

import json
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import typer
from typing_extensions import Annotated

from .api import DEFAULT_RECENT_LIMIT, Vault
from .config import VaultConfig, load_config, save_config
from .errors import NotevaultError
from .logging_config import configure_quiet_mode, enable_debug_mode
from .types import DEFAULT_LIMIT, Document, SearchFilters


# Quiet by default; NOTEVAULT_VERBOSE=1 enables debug output
if os.environ.get("NOTEVAULT_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        print(f"notevault {version('notevault')}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_json_output = False
_memory_backend = False
_vault_override: Optional[Path] = None
_config_override: Optional[Path] = None


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _memory_callback(value: bool):
    global _memory_backend
    _memory_backend = value


def _vault_callback(value: Optional[Path]):
    global _vault_override
    _vault_override = value


def _config_callback(value: Optional[Path]):
    global _config_override
    _config_override = value


app = typer.Typer(
    name="notevault",
    help="Search a vault of Markdown notes.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output as JSON",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    memory: Annotated[bool, typer.Option(
        "--memory",
        help="Use the in-memory backend instead of SQLite",
        callback=_memory_callback,
        is_eager=True,
    )] = False,
    vault: Annotated[Optional[Path], typer.Option(
        "--vault",
        envvar="NOTEVAULT_VAULT",
        help="Path to the vault directory (default: current directory)",
        callback=_vault_callback,
        is_eager=True,
    )] = None,
    config: Annotated[Optional[Path], typer.Option(
        "--config", "-c",
        help="Path to notevault.toml (default: <vault>/notevault.toml)",
        callback=_config_callback,
        is_eager=True,
    )] = None,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
):
    """Search a vault of Markdown notes."""


# -----------------------------------------------------------------------------
# Common Options
# -----------------------------------------------------------------------------

TagOption = Annotated[
    Optional[list[str]],
    typer.Option(
        "--tag", "-t",
        help="Filter by tag; parent tags match nested tags (repeatable)"
    )
]

TypeOption = Annotated[
    Optional[str],
    typer.Option("--type", help="Filter by type (note, project, task, daily, meeting)")
]

StatusOption = Annotated[
    Optional[str],
    typer.Option("--status", help="Filter by status (active, archived, idea, completed)")
]

CategoryOption = Annotated[
    Optional[str],
    typer.Option("--category", help="Filter by category (work, personal, knowledge, life, dailies)")
]


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

@contextmanager
def _user_errors() -> Iterator[None]:
    """Turn notevault errors into a clean message and exit status 1."""
    try:
        yield
    except NotevaultError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


def _vault_path() -> Path:
    return (_vault_override or Path.cwd()).expanduser()


def _load_config() -> VaultConfig:
    config = load_config(_vault_path(), _config_override)
    if _memory_backend:
        config.backend = "memory"
    return config


def _open_vault() -> Vault:
    """Load config, open storage and index the vault."""
    import atexit

    root = _vault_path()
    if not root.is_dir():
        typer.echo(f"Error: Vault path is not a directory: {root}", err=True)
        raise typer.Exit(1)
    with _user_errors():
        vault = Vault(config=_load_config())
        atexit.register(vault.close)
        result = vault.initialize()
    for error in result.errors:
        typer.echo(f"Skipped {error.path}: {error.reason}", err=True)
    return vault


def _format_note_line(note: Document) -> str:
    meta = note.metadata
    parts = [note.path, f"[{meta.type}/{meta.status}]"]
    if meta.modified:
        parts.append(meta.modified)
    if meta.tags:
        parts.append(" ".join(f"#{t}" for t in meta.tags))
    return "  ".join(parts)


def _echo_notes(notes: list[Document]) -> None:
    if _json_output:
        typer.echo(json.dumps([n.to_summary() for n in notes], indent=2, ensure_ascii=False))
        return
    if not notes:
        typer.echo("No notes found.")
        return
    for note in notes:
        typer.echo(_format_note_line(note))


def _render_note(note: Document) -> str:
    """Note as YAML-style header plus body."""
    import yaml

    meta = note.metadata
    header = {
        "path": note.path,
        "title": note.title,
        "type": meta.type,
        "status": meta.status,
        "category": meta.category,
    }
    if meta.created:
        header["created"] = meta.created
    if meta.modified:
        header["modified"] = meta.modified
    if meta.tags:
        header["tags"] = list(meta.tags)
    # Custom keys never shadow the note's own fields
    for key, value in meta.extra.items():
        header.setdefault(key, value)
    front = yaml.safe_dump(header, sort_keys=False, allow_unicode=True).rstrip()
    return f"---\n{front}\n---\n{note.body}"


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

@app.command()
def index():
    """
    Index the vault and report what was found.
    """
    vault = _open_vault()
    result = vault.last_index
    if _json_output:
        typer.echo(json.dumps({
            "notes": len(result.documents),
            "errors": [{"path": e.path, "reason": e.reason} for e in result.errors],
        }, indent=2))
        return
    typer.echo(f"Indexed {len(result.documents)} notes ({len(result.errors)} errors)")


@app.command()
def search(
    query: Annotated[Optional[str], typer.Argument(help="Search text (optional)")] = None,
    tag: TagOption = None,
    type: TypeOption = None,
    status: StatusOption = None,
    category: CategoryOption = None,
    date_from: Annotated[Optional[str], typer.Option(
        "--from", help="Only notes modified on or after (YYYY-MM-DD)"
    )] = None,
    date_to: Annotated[Optional[str], typer.Option(
        "--to", help="Only notes modified on or before (YYYY-MM-DD)"
    )] = None,
    path: Annotated[Optional[str], typer.Option(
        "--path", "-p", help='Path filter: "Folder/**" for a folder, else substring'
    )] = None,
    include_archive: Annotated[bool, typer.Option(
        "--archive", help="Include archived notes"
    )] = False,
    limit: Annotated[int, typer.Option(
        "--limit", "-n", help="Maximum results to return"
    )] = DEFAULT_LIMIT,
):
    """
    Search notes by text and/or filters.

    \b
    Examples:
        notevault search "quarterly plan"
        notevault search -t work/puppet --type meeting
        notevault search --path "Projects/**" --from 2025-01-01
    """
    vault = _open_vault()
    filters = SearchFilters(
        tags=tag or None,
        type=type,
        status=status,
        category=category,
        date_from=date_from,
        date_to=date_to,
        path_pattern=path,
        include_archive=include_archive,
        limit=limit,
    )
    with _user_errors():
        notes = vault.search(query or "", filters)
    _echo_notes(notes)


@app.command()
def get(
    path: Annotated[str, typer.Argument(help="Vault-relative path of the note")],
):
    """
    Show a note with its metadata.
    """
    vault = _open_vault()
    with _user_errors():
        note = vault.get_note(path)
    if note is None:
        typer.echo(f"Error: Note not found: {path}", err=True)
        raise typer.Exit(1)
    if _json_output:
        typer.echo(json.dumps(note.to_dict(), indent=2, ensure_ascii=False))
    else:
        typer.echo(_render_note(note))


@app.command()
def tag(
    name: Annotated[str, typer.Argument(help="Tag to look up (nested tags included)")],
):
    """
    List notes carrying a tag.
    """
    vault = _open_vault()
    with _user_errors():
        notes = vault.get_notes_by_tag(name)
    _echo_notes(notes)


@app.command()
def recent(
    limit: Annotated[int, typer.Option(
        "--limit", "-n", help="Number of notes to show"
    )] = DEFAULT_RECENT_LIMIT,
):
    """
    List the most recently modified notes.
    """
    vault = _open_vault()
    with _user_errors():
        notes = vault.get_recent_notes(limit)
    _echo_notes(notes)


@app.command()
def tags():
    """
    List every tag in the vault.
    """
    vault = _open_vault()
    all_tags = vault.list_tags()
    if _json_output:
        typer.echo(json.dumps(all_tags, indent=2, ensure_ascii=False))
        return
    for t in all_tags:
        typer.echo(t)


@app.command()
def summary(
    tag: TagOption = None,
    type: TypeOption = None,
    status: StatusOption = None,
    category: CategoryOption = None,
):
    """
    Count notes by type, status and category.
    """
    vault = _open_vault()
    filters = SearchFilters(tags=tag or None, type=type, status=status, category=category)
    with _user_errors():
        result = vault.summarize(filters)
    if _json_output:
        typer.echo(json.dumps(result, indent=2, ensure_ascii=False))
        return

    typer.echo(f"Total: {result['total']}")
    for heading, key in (("Type", "by_type"), ("Status", "by_status"), ("Category", "by_category")):
        counts = ", ".join(f"{k}={v}" for k, v in result[key].items())
        typer.echo(f"{heading}: {counts or '-'}")
    if result["recently_modified"]:
        typer.echo("Recently modified:")
        for item in result["recently_modified"]:
            typer.echo(f"  {item['path']}  {item['modified'] or ''}".rstrip())


@app.command()
def init(
    force: Annotated[bool, typer.Option(
        "--force", "-f", help="Overwrite an existing config file"
    )] = False,
):
    """
    Write a default notevault.toml for the vault.
    """
    root = _vault_path()
    config = VaultConfig(vault_path=root)
    target = _config_override or config.config_path
    if target.exists() and not force:
        typer.echo(f"Error: Config already exists: {target} (use --force to overwrite)", err=True)
        raise typer.Exit(1)
    written = save_config(config, target)
    typer.echo(f"Wrote {written}")


@app.command()
def mcp():
    """
    Serve the vault over MCP on stdio.
    """
    vault = _open_vault()
    from .mcp import main as mcp_main
    mcp_main(vault)


def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        from .errors import log_exception
        log_path = log_exception(e, context="notevault CLI")
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
