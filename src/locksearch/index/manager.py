"""Owns the published index: cache-or-discover builds, background rebuilds, queries."""

from __future__ import annotations

import itertools
import logging
import sqlite3
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Generic, List, Sequence, TypeVar

from locksearch.config import AppConfig
from locksearch.index.catalog import ProgramIndex
from locksearch.index.indexer import DiscoveryStats, Indexer, default_scan_roots
from locksearch.index.search import Searcher, SearchResult
from locksearch.index.storage import IndexCache, compute_fingerprint
from locksearch.ingestion.icons import IconResolver, default_icon_extractor
from locksearch.ingestion.shortcuts import ShortcutResolver, default_resolver
from locksearch.models import ScanRoot

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class IndexManager:
    """Holds the single swappable reference to the current `ProgramIndex`.

    Builds run outside the query path and publish a complete snapshot in one
    assignment; queries always read whichever snapshot is current.
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        roots: Sequence[ScanRoot] | None = None,
        resolver: ShortcutResolver | None = None,
        icon_resolver: IconResolver | None = None,
        cache: IndexCache | None = None,
        searcher: Searcher | None = None,
    ) -> None:
        self.config = config
        self.roots = list(roots) if roots is not None else default_scan_roots(config)
        self._resolver = resolver
        self.icon_resolver = (
            icon_resolver
            if icon_resolver is not None
            else IconResolver(default_icon_extractor(), size=config.icon_size)
        )
        self.cache = cache or IndexCache(config.resolve_cache_path())
        self.searcher = searcher or Searcher(max_results=config.max_results)
        self.last_stats: DiscoveryStats | None = None

        self._index = ProgramIndex.empty(sort=config.initial_sort)
        self._publish_lock = threading.Lock()
        self._build_lock = threading.Lock()
        self._executor: ThreadPoolExecutor | None = None
        self._pending: Future[ProgramIndex] | None = None

    @property
    def resolver(self) -> ShortcutResolver:
        if self._resolver is None:
            self._resolver = default_resolver()
        return self._resolver

    @property
    def current(self) -> ProgramIndex:
        return self._index

    @property
    def is_indexing(self) -> bool:
        pending = self._pending
        return pending is not None and not pending.done()

    def publish(self, index: ProgramIndex) -> None:
        with self._publish_lock:
            self._index = index
        LOGGER.debug("Published index with %d programs (%s)", len(index), index.source)

    def load_or_build(self) -> ProgramIndex:
        """Publish the cached index when it is still valid, otherwise discover."""
        if self.config.enable_cache:
            record = self.cache.load(self.roots, self.config, self.icon_resolver)
            if record is not None:
                index = ProgramIndex.build(
                    record.entries, sort=self.config.initial_sort, source="cache"
                )
                self.publish(index)
                return index
        return self.rebuild()

    def rebuild(self) -> ProgramIndex:
        """Run a full discovery, publish it and refresh the cache."""
        with self._build_lock:
            # Fingerprint first: changes that land mid-scan must invalidate the next load.
            fingerprint = (
                compute_fingerprint(self.roots, self.config) if self.config.enable_cache else None
            )
            indexer = Indexer(
                self.resolver,
                self.icon_resolver,
                exclude_paths=self.config.exclude_paths,
                ignore_name_keywords=self.config.ignore_name_keywords,
            )
            entries = indexer.discover(self.roots)
            self.last_stats = indexer.last_stats

            index = ProgramIndex.build(entries, sort=self.config.initial_sort, source="discovery")
            self.publish(index)
            self.icon_resolver.retain(index.identities)

            if fingerprint is not None:
                try:
                    self.cache.save(entries, fingerprint)
                except (OSError, sqlite3.Error) as exc:
                    LOGGER.warning("Could not write index cache %s: %s", self.cache.cache_path, exc)
            return index

    def start_background_rebuild(self) -> Future[ProgramIndex]:
        """Rebuild on the worker thread; a rebuild already in flight is reused."""
        with self._publish_lock:
            if self._pending is not None and not self._pending.done():
                return self._pending
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=1, thread_name_prefix="locksearch-index"
                )
            self._pending = self._executor.submit(self.rebuild)
            return self._pending

    def search(self, query: str) -> List[SearchResult]:
        return self.searcher.search(self.current, query)

    def list_all(self) -> List[SearchResult]:
        return self.searcher.list_all(self.current)

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None


class QuerySession(Generic[T]):
    """Drop results of keystrokes that a newer keystroke has superseded.

    `submit` hands out a generation number for each query; `publish` accepts
    a result only while its generation is still the newest one.

    Meant for the presentation layer that owns the search box: it runs one
    search per keystroke off the UI thread and shows `result`. The CLI and
    the HTTP service answer one query per call and have no keystrokes to
    drop, so they do not use it.
    """

    def __init__(self) -> None:
        self._counter = itertools.count(1)
        self._latest = 0
        self._shown = 0
        self._result: T | None = None
        self._lock = threading.Lock()

    def submit(self) -> int:
        with self._lock:
            self._latest = next(self._counter)
            return self._latest

    def is_current(self, generation: int) -> bool:
        return generation == self._latest

    def publish(self, generation: int, result: T) -> bool:
        with self._lock:
            if generation != self._latest or generation <= self._shown:
                return False
            self._shown = generation
            self._result = result
            return True

    @property
    def result(self) -> T | None:
        return self._result
