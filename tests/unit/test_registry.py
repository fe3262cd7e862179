"""Unit tests for EntryRegistry."""

from __future__ import annotations

import pytest

from transcript_uploader.models.entry import Operation
from transcript_uploader.models.service import ServerVocabulary
from transcript_uploader.pipeline.registry import EntryRegistry
from transcript_uploader.utils.errors import EntryBusyError


class TestGetOrCreate:
    def test_creates_with_vocabulary_defaults(
        self, registry: EntryRegistry, vocabulary: ServerVocabulary
    ) -> None:
        entry, created = registry.get_or_create("file1", vocabulary)
        assert created is True
        assert entry.corpus == "CorpusX"
        assert entry.transcript_type == "interview"
        assert entry.episode == "file1"

    def test_returns_existing_entry(self, registry: EntryRegistry) -> None:
        first, _ = registry.get_or_create("file1")
        second, created = registry.get_or_create("file1")
        assert second is first
        assert created is False
        assert len(registry) == 1

    def test_iteration_is_insertion_order(self, registry: EntryRegistry) -> None:
        for name in ("b", "a", "c"):
            registry.get_or_create(name)
        assert [e.id for e in registry] == ["b", "a", "c"]
        assert "a" in registry
        assert "z" not in registry

    def test_iteration_tolerates_removal(self, registry: EntryRegistry) -> None:
        for name in ("a", "b"):
            registry.get_or_create(name)
        for entry in registry:
            registry.remove(entry.id)
        assert len(registry) == 0


class TestRemoveAndClear:
    def test_remove_unknown_raises(self, registry: EntryRegistry) -> None:
        with pytest.raises(KeyError):
            registry.remove("missing")

    def test_remove_busy_entry_refused(self, registry: EntryRegistry) -> None:
        entry, _ = registry.get_or_create("a")
        entry.begin_operation(Operation.UPLOAD)
        with pytest.raises(EntryBusyError):
            registry.remove("a")
        assert "a" in registry

    def test_clear_existing_only(self, registry: EntryRegistry) -> None:
        old, _ = registry.get_or_create("old")
        old.exists = True
        registry.get_or_create("new")
        unknown, _ = registry.get_or_create("unknown")
        assert registry.has_existing and registry.has_new

        removed = registry.clear(existing=True, new=False)

        assert removed == 1
        assert [e.id for e in registry] == ["new", "unknown"]
        assert not registry.has_existing

    def test_clear_new_only(self, registry: EntryRegistry) -> None:
        old, _ = registry.get_or_create("old")
        old.exists = True
        registry.get_or_create("new")
        assert registry.clear(existing=False, new=True) == 1
        assert [e.id for e in registry] == ["old"]
        assert not registry.has_new

    def test_clear_keeps_busy_entries(self, registry: EntryRegistry) -> None:
        busy, _ = registry.get_or_create("busy")
        busy.begin_operation(Operation.DELETE)
        registry.get_or_create("idle")
        assert registry.clear() == 1
        assert [e.id for e in registry] == ["busy"]


class TestUpdateMetadata:
    def test_updates_given_fields_only(self, registry: EntryRegistry) -> None:
        registry.get_or_create("a")
        entry = registry.update_metadata("a", corpus="Other")
        assert entry.corpus == "Other"
        assert entry.episode == "a"

    def test_refused_while_busy(self, registry: EntryRegistry) -> None:
        entry, _ = registry.get_or_create("a")
        entry.begin_operation(Operation.UPLOAD)
        with pytest.raises(EntryBusyError):
            registry.update_metadata("a", corpus="Other")

    def test_refused_once_uploaded(self, registry: EntryRegistry) -> None:
        entry, _ = registry.get_or_create("a")
        entry.upload_id = "u1"
        with pytest.raises(EntryBusyError):
            registry.update_metadata("a", episode="ep9")
        assert entry.episode == "a"
