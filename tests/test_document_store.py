"""Tests specific to the SQLite document store."""

import sqlite3
import threading
from pathlib import Path

import pytest

from notevault.document_store import SCHEMA_VERSION, DocumentStore, build_fts_query
from notevault.errors import StorageInitializationError
from notevault.types import SearchFilters

from conftest import make_doc


@pytest.fixture
def db(tmp_path):
    store = DocumentStore(tmp_path / "notes.db")
    store.initialize()
    yield store
    store.close()


class TestPersistence:

    def test_reopen_keeps_records(self, tmp_path):
        path = tmp_path / "notes.db"
        with DocumentStore(path) as store:
            store.upsert(make_doc("Work/a.md", tags=["work"], modified="2025-01-15",
                                  extra={"owner": "me"}))

        with DocumentStore(path) as reopened:
            got = reopened.get("Work/a.md")
            assert got is not None
            assert got.metadata.tags == ["work"]
            assert got.metadata.extra == {"owner": "me"}
            assert reopened.search("", SearchFilters(tags=["work"]))[0].path == "Work/a.md"

    def test_creates_parent_directory(self, tmp_path):
        path = tmp_path / "deep" / "dir" / "notes.db"
        with DocumentStore(path) as store:
            assert store.count() == 0
        assert path.exists()

    def test_schema_version_recorded(self, db):
        version = sqlite3.connect(str(db.path)).execute("PRAGMA user_version").fetchone()[0]
        assert version == SCHEMA_VERSION

    def test_other_schema_version_is_rebuilt(self, tmp_path):
        path = tmp_path / "notes.db"
        conn = sqlite3.connect(str(path))
        conn.execute("CREATE TABLE notes (path TEXT PRIMARY KEY, junk TEXT)")
        conn.execute("INSERT INTO notes VALUES ('old.md', 'x')")
        conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION + 1}")
        conn.commit()
        conn.close()

        with DocumentStore(path) as store:
            assert store.count() == 0
            store.upsert(make_doc("new.md"))
            assert store.get("new.md") is not None

    def test_unopenable_path_raises(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        store = DocumentStore(blocker / "notes.db")
        with pytest.raises(StorageInitializationError):
            store.initialize()

    def test_use_before_initialize(self, tmp_path):
        store = DocumentStore(tmp_path / "notes.db")
        with pytest.raises(RuntimeError):
            store.count()


class TestSchema:

    def test_one_row_per_table_after_double_upsert(self, db):
        doc = make_doc("Work/a.md", tags=["a", "b"], extra={"k": 1})
        db.upsert(doc)
        db.upsert(doc)
        conn = sqlite3.connect(str(db.path))
        assert conn.execute("SELECT COUNT(*) FROM notes").fetchone()[0] == 1
        assert conn.execute("SELECT COUNT(*) FROM note_tags").fetchone()[0] == 2
        assert conn.execute("SELECT COUNT(*) FROM note_metadata").fetchone()[0] == 1
        assert conn.execute("SELECT COUNT(*) FROM notes_fts").fetchone()[0] == 1

    def test_metadata_values_are_json(self, db):
        db.upsert(make_doc("a.md", extra={"refs": [1, "two"], "flag": True}))
        conn = sqlite3.connect(str(db.path))
        rows = dict(conn.execute("SELECT key, value FROM note_metadata").fetchall())
        assert rows == {"refs": '[1, "two"]', "flag": "true"}

    def test_failed_batch_rolls_back(self, db):
        db.upsert(make_doc("keep.md"))
        bad = make_doc("bad.md")
        bad.metadata.extra = {"x": object()}
        with pytest.raises(TypeError):
            db.upsert_batch([make_doc("first.md"), bad])
        assert db.count() == 1
        assert db.get("first.md") is None

    def test_failed_replace_all_keeps_old_contents(self, db):
        db.upsert(make_doc("keep.md", tags=["old"]))
        bad = make_doc("bad.md")
        bad.metadata.extra = {"x": object()}
        with pytest.raises(TypeError):
            db.replace_all([make_doc("first.md"), bad])
        assert [d.path for d in db.get_all()] == ["keep.md"]
        assert db.list_tags() == ["old"]
        assert [d.path for d in db.search("keep")] == ["keep.md"]


class TestFullText:

    def test_stemming(self, db):
        db.upsert(make_doc("a.md", body="We were running experiments."))
        assert [d.path for d in db.search("run")] == ["a.md"]

    def test_title_outranks_body(self, db):
        db.upsert_batch([
            make_doc("Body.md", body="A note that mentions kubernetes once.", modified="2025-02-01"),
            make_doc("Kubernetes.md", body="Cluster notes.", modified="2025-01-01"),
        ])
        assert [d.path for d in db.search("kubernetes")][0] == "Kubernetes.md"

    def test_tags_and_properties_searchable(self, db):
        db.upsert_batch([
            make_doc("a.md", tags=["golang"]),
            make_doc("b.md", extra={"project": "Zephyr"}),
        ])
        assert [d.path for d in db.search("golang")] == ["a.md"]
        assert [d.path for d in db.search("zephyr")] == ["b.md"]

    def test_any_term_matches(self, db):
        db.upsert_batch([
            make_doc("a.md", body="apples"),
            make_doc("b.md", body="oranges"),
        ])
        assert sorted(d.path for d in db.search("apples oranges")) == ["a.md", "b.md"]

    def test_stale_fts_row_removed_on_replace(self, db):
        db.upsert(make_doc("a.md", body="zebra"))
        db.upsert(make_doc("a.md", body="giraffe"))
        assert db.search("zebra") == []
        assert [d.path for d in db.search("giraffe")] == ["a.md"]

    def test_build_fts_query_quotes_terms(self):
        assert build_fts_query(["say", 'he"llo']) == '"say" OR "he""llo"'


class TestConcurrency:

    def test_parallel_readers_and_writer(self, db):
        db.upsert_batch([make_doc(f"n{i}.md", tags=["t"]) for i in range(50)])
        errors = []

        def reader():
            try:
                for _ in range(20):
                    assert len(db.get_by_tag("t")) == 50
            except Exception as e:  # collected for the main thread
                errors.append(e)

        def writer():
            try:
                for i in range(20):
                    db.upsert(make_doc(f"n{i}.md", tags=["t"], body=f"v{i}"))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=reader) for _ in range(4)]
        threads.append(threading.Thread(target=writer))
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert errors == []
