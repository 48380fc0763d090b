"""Tests for the Vault API over a real vault directory, on both backends."""

import dataclasses

import pytest

from notevault.api import Vault
from notevault.document_store import DocumentStore
from notevault.errors import PathSecurityError, QueryError
from notevault.logging_config import OPS_LOG_FILENAME
from notevault.memory_store import MemoryStore
from notevault.types import SearchFilters


@pytest.fixture(params=["sqlite", "memory"])
def vault(request, vault_config):
    config = dataclasses.replace(vault_config, backend=request.param)
    v = Vault(config=config)
    v.initialize()
    yield v
    v.close()


def _paths(docs):
    return [d.path for d in docs]


class TestInitialize:

    def test_backend_selection(self, vault_config):
        with Vault(config=vault_config) as v:
            assert isinstance(v.storage, DocumentStore)
        memory = dataclasses.replace(vault_config, backend="memory")
        with Vault(config=memory) as v:
            assert isinstance(v.storage, MemoryStore)

    def test_index_result(self, vault):
        result = vault.last_index
        assert len(result.documents) == 6
        assert [e.path for e in result.errors] == ["Life/Broken.md"]
        assert vault.count() == 6

    def test_reinitialize_drops_deleted_notes(self, vault):
        (vault.root / "Work" / "Roadmap.md").unlink()
        (vault.root / "Work" / "New.md").write_text("Fresh note", encoding="utf-8")
        vault.initialize()
        assert vault.get_note("Work/Roadmap.md") is None
        assert vault.get_note("Work/New.md") is not None
        assert vault.count() == 6

    def test_reinitialize_picks_up_edits(self, vault):
        path = vault.root / "Knowledge" / "Plain.md"
        path.write_text("---\ntags: [rust]\n---\nNow about rust.\n", encoding="utf-8")
        vault.initialize()
        assert vault.get_note("Knowledge/Plain.md").metadata.tags == ["rust"]
        assert "rust" in vault.list_tags()

    def test_reinitialize_swaps_contents_in_one_step(self, vault, monkeypatch):
        calls = []
        real = vault.storage.replace_all
        monkeypatch.setattr(vault.storage, "replace_all", lambda docs: calls.append(len(docs)) or real(docs))
        monkeypatch.setattr(vault.storage, "clear", lambda: pytest.fail("store emptied separately"))
        monkeypatch.setattr(vault.storage, "upsert_batch", lambda docs: pytest.fail("store loaded separately"))
        vault.initialize()
        assert calls == [6]
        assert vault.count() == 6

    def test_vault_path_loads_config_file(self, make_vault, vault_files, monkeypatch):
        monkeypatch.delenv("NOTEVAULT_CONFIG", raising=False)
        monkeypatch.setenv("NOTEVAULT_MEMORY", "1")
        root = make_vault(vault_files)
        (root / "notevault.toml").write_text(
            '[vault]\nindex_patterns = ["Work/**/*.md"]\nexclude_patterns = []\n',
            encoding="utf-8",
        )
        with Vault(root) as v:
            v.initialize()
            assert sorted(_paths(v.storage.get_all())) == [
                "Work/Puppet/Meeting.md", "Work/Roadmap.md",
            ]

    def test_requires_path_or_config(self):
        with pytest.raises(ValueError):
            Vault()

    def test_sqlite_writes_ops_log(self, vault_config):
        with Vault(config=vault_config) as v:
            v.initialize()
        log = vault_config.db_path.parent / OPS_LOG_FILENAME
        assert log.exists()
        assert "Vault ready" in log.read_text()


class TestSearch:

    def test_filters_only_recency_ordered(self, vault):
        assert _paths(vault.search()) == [
            "Projects/Garden.md",
            "Dailies/2025-01-20.md",
            "Work/Puppet/Meeting.md",
            "Work/Roadmap.md",
            "Knowledge/Plain.md",
        ]

    def test_archive_hidden_unless_requested(self, vault):
        assert "Archive/Old.md" not in _paths(vault.search("roadmap"))
        assert "Archive/Old.md" in _paths(vault.search("roadmap", include_archive=True))

    def test_text_and_tag(self, vault):
        assert _paths(vault.search("puppet", tags=["work"])) == ["Work/Puppet/Meeting.md"]

    def test_kwargs_override_filters(self, vault):
        base = SearchFilters(tags=["garden"])
        assert _paths(vault.search("", base)) == ["Projects/Garden.md"]
        assert _paths(vault.search("", base, tags=["meetings"])) == ["Work/Puppet/Meeting.md"]

    def test_unknown_filter_keyword(self, vault):
        with pytest.raises(QueryError):
            vault.search("", colour="red")

    def test_limit_bounds(self, vault):
        assert len(vault.search("", limit=vault.config.max_search_results)) == 5
        with pytest.raises(QueryError, match="Limit must be between 1 and 100"):
            vault.search("", limit=101)
        with pytest.raises(QueryError):
            vault.search("", limit=0)

    def test_invalid_enum(self, vault):
        with pytest.raises(QueryError, match="Invalid type"):
            vault.search("", type="bogus")

    def test_invalid_date(self, vault):
        with pytest.raises(QueryError, match="YYYY-MM-DD"):
            vault.search("", date_from="2025/01/01")

    def test_date_range(self, vault):
        assert _paths(vault.search("", date_from="2025-01-10", date_to="2025-01-31")) == [
            "Work/Puppet/Meeting.md", "Work/Roadmap.md",
        ]


class TestGetNote:

    def test_found(self, vault):
        note = vault.get_note("Work/Puppet/Meeting.md")
        assert note.title == "Meeting"
        assert note.metadata.type == "meeting"
        assert "puppet release date" in note.excerpt

    def test_normalized_path(self, vault):
        assert vault.get_note("Work/./Puppet/../Roadmap.md").path == "Work/Roadmap.md"

    def test_missing(self, vault):
        assert vault.get_note("Work/Nope.md") is None

    def test_archived_note_reachable_by_path(self, vault):
        assert vault.get_note("Archive/Old.md") is not None

    @pytest.mark.parametrize("path", ["../../etc/passwd", "../outside.md", "/etc/passwd"])
    def test_escape_rejected(self, vault, path):
        with pytest.raises(PathSecurityError):
            vault.get_note(path)

    def test_empty_path(self, vault):
        with pytest.raises(QueryError):
            vault.get_note("  ")


class TestTagsAndRecent:

    def test_notes_by_tag_hierarchical(self, vault):
        assert _paths(vault.get_notes_by_tag("work")) == [
            "Work/Puppet/Meeting.md", "Work/Roadmap.md", "Archive/Old.md",
        ]

    def test_notes_by_tag_requires_tag(self, vault):
        with pytest.raises(QueryError):
            vault.get_notes_by_tag("")

    def test_list_tags(self, vault):
        assert vault.list_tags() == ["garden", "meetings", "outdoors", "work", "work/puppet"]

    def test_recent(self, vault):
        assert _paths(vault.get_recent_notes(2)) == ["Projects/Garden.md", "Dailies/2025-01-20.md"]
        assert len(vault.get_recent_notes()) == 6

    def test_recent_limit_bounds(self, vault):
        with pytest.raises(QueryError, match="Limit must be between 1 and 100"):
            vault.get_recent_notes(101)
        with pytest.raises(QueryError):
            vault.get_recent_notes(0)


class TestSummarize:

    def test_counts_exclude_archive(self, vault):
        summary = vault.summarize()
        assert summary["total"] == 5
        assert summary["by_type"] == {"daily": 1, "meeting": 1, "note": 2, "project": 1}
        assert summary["by_status"] == {"active": 4, "idea": 1}
        assert summary["by_category"] == {"dailies": 1, "personal": 2, "work": 2}

    def test_recently_modified(self, vault):
        recent = vault.summarize()["recently_modified"]
        assert len(recent) == 5
        assert recent[0] == {
            "title": "Garden", "path": "Projects/Garden.md", "modified": "2025-02-01",
        }

    def test_filtered(self, vault):
        summary = vault.summarize(tags=["work"], include_archive=True)
        assert summary["total"] == 3
        assert summary["by_category"] == {"personal": 1, "work": 2}

    def test_counts_ignore_limit(self, vault):
        assert vault.summarize(limit=1)["total"] == 5

    def test_empty(self, vault):
        summary = vault.summarize(tags=["nothing"])
        assert summary == {
            "total": 0, "by_type": {}, "by_status": {}, "by_category": {},
            "recently_modified": [],
        }
