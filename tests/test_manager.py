"""Tests for IndexManager and QuerySession."""

from __future__ import annotations

import logging
import os
import sqlite3
import threading
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from locksearch.config import AppConfig
from locksearch.index.manager import IndexManager, QuerySession
from locksearch.index.storage import IndexCache
from locksearch.ingestion.icons import IconResolver
from locksearch.models import Origin, ScanRoot


def _manager(tree, tmp_path: Path, resolver, **config) -> IndexManager:
    config.setdefault("cache_path", tmp_path / "cache" / "index_cache.db")
    return IndexManager(
        AppConfig(**config),
        roots=[
            ScanRoot(tree["start_menu"], Origin.START_MENU),
            ScanRoot(tree["program_files"], Origin.PROGRAM_FILES),
        ],
        resolver=resolver,
        icon_resolver=IconResolver(),
    )


class TestIndexManager:
    """Test index building and publishing."""

    def test_starts_empty(self, program_tree, tmp_path, fake_resolver) -> None:
        manager = _manager(program_tree, tmp_path, fake_resolver)

        assert len(manager.current) == 0
        assert manager.search("code") == []
        assert manager.is_indexing is False

    def test_cold_start_discovers_and_caches(self, program_tree, tmp_path, fake_resolver) -> None:
        manager = _manager(program_tree, tmp_path, fake_resolver)

        index = manager.load_or_build()

        assert index.source == "discovery"
        assert len(index) == 3
        assert manager.current is index
        assert manager.cache.cache_path.is_file()
        assert manager.last_stats is not None and manager.last_stats.duplicates == 2

    def test_warm_start_uses_cache(self, program_tree, tmp_path, fake_resolver) -> None:
        """A second start with unchanged roots never walks the filesystem."""
        _manager(program_tree, tmp_path, fake_resolver).load_or_build()
        resolver = MagicMock(wraps=fake_resolver)
        resolver.suffixes = fake_resolver.suffixes
        manager = _manager(program_tree, tmp_path, resolver)

        index = manager.load_or_build()

        assert index.source == "cache"
        assert len(index) == 3
        resolver.resolve.assert_not_called()

    def test_stale_cache_rediscovers(self, program_tree, tmp_path, fake_resolver) -> None:
        _manager(program_tree, tmp_path, fake_resolver).load_or_build()

        new_tool = program_tree["program_files"] / "Tools" / "paint.exe"
        new_tool.parent.mkdir()
        new_tool.write_text("binary")
        root = program_tree["program_files"]
        stat = root.stat()
        os.utime(root, ns=(stat.st_atime_ns, stat.st_mtime_ns + 5_000_000_000))

        index = _manager(program_tree, tmp_path, fake_resolver).load_or_build()

        assert index.source == "discovery"
        assert "paint" in index.names

    def test_cache_disabled(self, program_tree, tmp_path, fake_resolver) -> None:
        """With the cache disabled nothing is read or written."""
        manager = _manager(program_tree, tmp_path, fake_resolver, enable_cache=False)
        manager.cache = MagicMock(spec=IndexCache)

        index = manager.load_or_build()

        assert index.source == "discovery"
        manager.cache.load.assert_not_called()
        manager.cache.save.assert_not_called()

    def test_cache_write_failure_is_logged(self, program_tree, tmp_path, fake_resolver, caplog) -> None:
        manager = _manager(program_tree, tmp_path, fake_resolver)
        manager.cache = MagicMock(spec=IndexCache)
        manager.cache.cache_path = tmp_path / "readonly" / "index_cache.db"
        manager.cache.load.return_value = None
        manager.cache.save.side_effect = sqlite3.OperationalError("database is locked")

        with caplog.at_level(logging.WARNING):
            index = manager.load_or_build()

        assert len(index) == 3
        assert manager.current is index
        assert "Could not write index cache" in caplog.text

    def test_search_and_list(self, program_tree, tmp_path, fake_resolver) -> None:
        manager = _manager(program_tree, tmp_path, fake_resolver, max_results=2)
        manager.load_or_build()

        assert manager.search("vsc")[0].display_name == "Visual Studio Code"
        assert [result.display_name for result in manager.list_all()] == ["calc", "Notepad"]

    def test_rebuild_replaces_snapshot(self, program_tree, tmp_path, fake_resolver) -> None:
        """Readers holding the old snapshot keep a consistent view."""
        manager = _manager(program_tree, tmp_path, fake_resolver)
        old = manager.load_or_build()

        program_tree["calc"].unlink()
        new = manager.rebuild()

        assert manager.current is new
        assert len(old) == 3
        assert len(new) == 2

    def test_background_rebuild(self, program_tree, tmp_path, fake_resolver) -> None:
        manager = _manager(program_tree, tmp_path, fake_resolver)
        first = manager.load_or_build()

        future = manager.start_background_rebuild()
        rebuilt = future.result(timeout=10)
        manager.close()

        assert rebuilt is not first
        assert manager.current is rebuilt
        assert manager.is_indexing is False

    def test_background_rebuild_reuses_pending(self, program_tree, tmp_path, fake_resolver) -> None:
        manager = _manager(program_tree, tmp_path, fake_resolver)
        release = threading.Event()
        original = manager.rebuild

        def slow_rebuild():
            release.wait(timeout=10)
            return original()

        manager.rebuild = slow_rebuild  # type: ignore[method-assign]
        try:
            first = manager.start_background_rebuild()
            second = manager.start_background_rebuild()
            assert first is second
            assert manager.is_indexing is True
        finally:
            release.set()
            manager.close()

        assert len(first.result(timeout=10)) == 3

    def test_queries_served_during_rebuild(self, program_tree, tmp_path, fake_resolver) -> None:
        manager = _manager(program_tree, tmp_path, fake_resolver)
        manager.load_or_build()
        release = threading.Event()
        original = manager.rebuild

        def slow_rebuild():
            release.wait(timeout=10)
            return original()

        manager.rebuild = slow_rebuild  # type: ignore[method-assign]
        try:
            manager.start_background_rebuild()
            assert manager.search("notepad")[0].display_name == "Notepad"
        finally:
            release.set()
            manager.close()


class TestQuerySession:
    """Test stale result rejection."""

    def test_latest_result_accepted(self) -> None:
        session: QuerySession[str] = QuerySession()

        generation = session.submit()

        assert session.is_current(generation)
        assert session.publish(generation, "results") is True
        assert session.result == "results"

    def test_superseded_result_dropped(self) -> None:
        """A slow result for an older keystroke never overwrites a newer one."""
        session: QuerySession[str] = QuerySession()
        old = session.submit()
        new = session.submit()

        assert session.publish(new, "new") is True
        assert session.publish(old, "old") is False
        assert session.result == "new"
        assert not session.is_current(old)

    def test_older_result_dropped_before_newer_arrives(self) -> None:
        session: QuerySession[str] = QuerySession()
        old = session.submit()
        session.submit()

        assert session.publish(old, "old") is False
        assert session.result is None

    def test_generations_increase(self) -> None:
        session: QuerySession[int] = QuerySession()

        generations = [session.submit() for _ in range(5)]

        assert generations == sorted(generations)
        assert len(set(generations)) == 5

    def test_same_generation_published_once(self) -> None:
        session: QuerySession[str] = QuerySession()
        generation = session.submit()

        assert session.publish(generation, "first") is True
        assert session.publish(generation, "second") is False
        assert session.result == "first"


@pytest.mark.parametrize("sort", ["alphabetical", "random"])
def test_initial_sort_applied(program_tree, tmp_path, fake_resolver, sort) -> None:
    manager = _manager(program_tree, tmp_path, fake_resolver, initial_sort=sort)

    assert manager.load_or_build().sort == sort
