"""
Shared pytest fixtures for notevault tests.

The ``store`` fixture is parametrized over both storage backends so every
structural query test runs against SQLite and the in-memory store alike.
"""

from pathlib import Path
from typing import Callable, Optional

import pytest

from notevault.config import VaultConfig
from notevault.document_store import DocumentStore
from notevault.memory_store import MemoryStore
from notevault.types import Document, NoteMetadata


def make_doc(
    path: str,
    *,
    tags: Optional[list[str]] = None,
    modified: Optional[str] = None,
    created: Optional[str] = None,
    type: str = "note",
    status: str = "active",
    category: str = "personal",
    body: str = "",
    title: Optional[str] = None,
    extra: Optional[dict] = None,
) -> Document:
    """Build a Document directly, bypassing the parser."""
    if title is None:
        title = path.rsplit("/", 1)[-1].removesuffix(".md")
    return Document(
        path=path,
        title=title,
        body=body,
        excerpt=body[:200],
        metadata=NoteMetadata(
            created=created,
            modified=modified,
            tags=list(tags or []),
            type=type,
            status=status,
            category=category,
            extra=dict(extra or {}),
        ),
    )


@pytest.fixture
def doc_factory() -> Callable[..., Document]:
    return make_doc


@pytest.fixture(params=["sqlite", "memory"])
def store(request, tmp_path):
    """An initialized, empty storage backend (both kinds)."""
    if request.param == "sqlite":
        backend = DocumentStore(tmp_path / "notes.db")
    else:
        backend = MemoryStore()
    backend.initialize()
    yield backend
    backend.close()


@pytest.fixture
def sample_docs() -> list[Document]:
    """
    A(work/puppet, 2025-01-15), B(work, 2025-01-10), C(personal, archived path)
    plus a few notes for filter tests.
    """
    return [
        make_doc("Work/Puppet/A.md", tags=["work/puppet"], modified="2025-01-15",
                 type="meeting", category="work", body="Discussed the puppet release plan."),
        make_doc("Work/B.md", tags=["work"], modified="2025-01-10",
                 type="project", category="work", body="Quarterly roadmap and budget."),
        make_doc("Archive/x.md", tags=["personal"], modified="2024-12-01",
                 status="archived", body="Old archived thoughts."),
        make_doc("Projects/Work-plan.md", tags=["homework"], modified="2025-01-05",
                 type="task", status="idea", category="knowledge", body="Plan for homework."),
        make_doc("Life/Coffee.md", tags=["coffee", "Life/Hobbies"], created="2025-01-12",
                 category="life", body="Pour-over recipes."),
    ]


@pytest.fixture
def make_vault(tmp_path) -> Callable[[dict[str, str]], Path]:
    """Create a vault directory from a {relative path: file content} map."""
    root = tmp_path / "vault"

    def _make(files: dict[str, str]) -> Path:
        root.mkdir(exist_ok=True)
        for rel, content in files.items():
            path = root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        return root

    return _make


@pytest.fixture
def vault_files() -> dict[str, str]:
    """A small vault exercising frontmatter, tags, dates and the archive folder."""
    return {
        "Work/Puppet/Meeting.md": (
            "---\n"
            "tags: [work/puppet, meetings]\n"
            "type: meeting\n"
            "status: active\n"
            "category: work\n"
            "created: 2025-01-14\n"
            "modified: 2025-01-15\n"
            "attendees: [alice, bob]\n"
            "---\n"
            "# Release sync\n\n"
            "Agreed on the **puppet** release date.\n"
        ),
        "Work/Roadmap.md": (
            "---\n"
            "tags: work\n"
            "type: project\n"
            "category: work\n"
            "modified: 2025-01-10\n"
            "---\n"
            "Quarterly roadmap for the platform team.\n"
        ),
        "Projects/Garden.md": (
            "---\n"
            "tags: [garden, '#outdoors']\n"
            "type: bogus\n"
            "status: idea\n"
            "modified: 2025-02-01\n"
            "---\n"
            "Plant tomatoes in spring.\n"
        ),
        "Knowledge/Plain.md": "No frontmatter here, just text about golang.\n",
        "Archive/Old.md": (
            "---\n"
            "tags: [work]\n"
            "modified: 2024-06-01\n"
            "---\n"
            "Archived roadmap.\n"
        ),
        "Dailies/2025-01-20.md": (
            "---\n"
            "type: daily\n"
            "category: dailies\n"
            "created: 2025-01-20\n"
            "---\n"
            "- [x] write tests\n- [ ] review\n"
        ),
        "Life/Broken.md": "---\ntags: [unclosed\n---\nBody\n",
    }


@pytest.fixture
def vault_config(make_vault, vault_files, tmp_path) -> VaultConfig:
    """Config for a populated vault; indexes the archive folder too."""
    root = make_vault(vault_files)
    return VaultConfig(
        vault_path=root,
        index_patterns=["**/*.md"],
        exclude_patterns=[".notevault/**"],
        storage_path=tmp_path / "index" / "notes.db",
    )
