"""Tests specific to the in-memory fuzzy store."""

from notevault.memory_store import MemoryStore
from notevault.types import SearchFilters

from conftest import make_doc


class TestIndexRebuild:

    def test_batch_rebuilds_once(self, sample_docs):
        store = MemoryStore()
        before = store.rebuild_count
        store.upsert_batch(sample_docs)
        assert store.rebuild_count == before + 1

    def test_each_upsert_rebuilds(self):
        store = MemoryStore()
        before = store.rebuild_count
        store.upsert(make_doc("a.md"))
        store.upsert(make_doc("b.md"))
        assert store.rebuild_count == before + 2

    def test_empty_batch_does_not_rebuild(self):
        store = MemoryStore()
        before = store.rebuild_count
        store.upsert_batch([])
        assert store.rebuild_count == before

    def test_replace_all_rebuilds_once(self, sample_docs):
        store = MemoryStore()
        store.upsert(make_doc("old.md"))
        before = store.rebuild_count
        store.replace_all(sample_docs)
        assert store.rebuild_count == before + 1
        assert store.get("old.md") is None

    def test_index_reflects_replacement(self):
        store = MemoryStore()
        store.upsert(make_doc("a.md", body="zebra crossing"))
        store.upsert(make_doc("a.md", body="giraffe neck"))
        assert store.search("zebra") == []
        assert [d.path for d in store.search("giraffe")] == ["a.md"]


class TestFuzzyMatching:

    def test_tolerates_typos(self):
        store = MemoryStore()
        store.upsert(make_doc("Work/Kubernetes.md", body="Cluster upgrade notes."))
        assert [d.path for d in store.search("kubernets")] == ["Work/Kubernetes.md"]

    def test_short_titles_do_not_match_everything(self):
        store = MemoryStore()
        store.upsert_batch([
            make_doc("a.md", title="a", body="nothing relevant"),
            make_doc("Roadmap.md", body="plans"),
        ])
        assert [d.path for d in store.search("roadmap")] == ["Roadmap.md"]

    def test_strict_cutoff(self):
        store = MemoryStore(score_cutoff=100)
        store.upsert(make_doc("Work/Kubernetes.md"))
        assert store.search("kubernets") == []
        assert len(store.search("kubernetes")) == 1

    def test_ordered_by_recency_then_relevance(self):
        store = MemoryStore()
        store.upsert_batch([
            make_doc("old.md", title="Budget", modified="2024-01-01"),
            make_doc("new.md", body="notes on the budget", modified="2025-01-01"),
            make_doc("same-day-title.md", title="Budget review", modified="2025-01-01"),
        ])
        paths = [d.path for d in store.search("budget")]
        assert paths[-1] == "old.md"
        assert paths[0] == "same-day-title.md"

    def test_limit_applies_after_filters(self):
        store = MemoryStore()
        store.upsert_batch([
            make_doc(f"Archive/{i}.md", body="budget", modified=f"2025-01-{i + 10}")
            for i in range(5)
        ] + [make_doc("Work/a.md", body="budget", modified="2024-01-01")])
        assert [d.path for d in store.search("budget", SearchFilters(limit=1))] == ["Work/a.md"]


class TestLifecycle:

    def test_context_manager_clears(self, sample_docs):
        with MemoryStore() as store:
            store.upsert_batch(sample_docs)
            assert store.count() == len(sample_docs)
        assert store.count() == 0

    def test_custom_archive_prefix(self):
        store = MemoryStore(archive_prefix="Old/")
        store.upsert_batch([make_doc("Old/a.md"), make_doc("Archive/b.md")])
        assert [d.path for d in store.search("")] == ["Archive/b.md"]
