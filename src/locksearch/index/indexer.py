"""Program discovery: walk scan roots and build entries."""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Sequence

from locksearch.config import DEFAULT_IGNORE_KEYWORDS, AppConfig
from locksearch.ingestion.icons import IconResolver
from locksearch.ingestion.shortcuts import ShortcutResolver
from locksearch.models import Entry, Origin, ScanRoot, path_identity
from locksearch.utils.files import canonical_path, normalize_prefixes, walk_files
from locksearch.utils.text import contains_keyword, normalize_name

LOGGER = logging.getLogger(__name__)

EXECUTABLE_SUFFIXES = frozenset({".exe"})
POSIX_EXECUTABLE_SUFFIXES = frozenset({"", ".appimage"})


def default_scan_roots(config: AppConfig) -> list[ScanRoot]:
    """Start Menu and Program Files roots for this platform, then the extra paths."""
    roots: list[ScanRoot] = []
    if sys.platform == "win32":
        program_data = os.environ.get("PROGRAMDATA", r"C:\ProgramData")
        app_data = os.environ.get("APPDATA", str(Path.home() / "AppData" / "Roaming"))
        start_menu = Path("Microsoft") / "Windows" / "Start Menu" / "Programs"
        roots.append(ScanRoot(Path(program_data) / start_menu, Origin.START_MENU))
        roots.append(ScanRoot(Path(app_data) / start_menu, Origin.START_MENU))
        for variable, fallback in (
            ("ProgramFiles", r"C:\Program Files"),
            ("ProgramFiles(x86)", r"C:\Program Files (x86)"),
        ):
            roots.append(ScanRoot(Path(os.environ.get(variable, fallback)), Origin.PROGRAM_FILES))
    else:
        data_home = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share"))
        data_dirs = os.environ.get("XDG_DATA_DIRS", "/usr/local/share:/usr/share").split(":")
        for base in [data_home, *(Path(item) for item in data_dirs if item)]:
            roots.append(ScanRoot(base / "applications", Origin.START_MENU))
        roots.append(ScanRoot(Path("/opt"), Origin.PROGRAM_FILES))

    for extra in config.extra_index_paths:
        roots.append(ScanRoot(Path(extra), Origin.EXTRA_PATH))
    return unique_roots(roots)


def unique_roots(roots: Iterable[ScanRoot]) -> list[ScanRoot]:
    """Drop roots that point at an already listed directory, keeping the first."""
    seen: set[str] = set()
    result: list[ScanRoot] = []
    for root in roots:
        key = path_identity(canonical_path(root.path))
        if key in seen:
            continue
        seen.add(key)
        result.append(root)
    return result


@dataclass(slots=True)
class DiscoveryStats:
    found: int = 0
    shortcuts: int = 0
    executables: int = 0
    skipped: int = 0
    duplicates: int = 0
    warnings: list[str] = field(default_factory=list)

    def warn(self, message: str) -> None:
        LOGGER.warning(message)
        self.warnings.append(message)


@dataclass(slots=True)
class _Hit:
    name: str
    target: Path
    origin: Origin
    source: Path


class Indexer:
    """Coordinates discovery of launchable programs under a set of roots."""

    def __init__(
        self,
        resolver: ShortcutResolver,
        icon_resolver: IconResolver | None = None,
        *,
        exclude_paths: Sequence[Path | str] = (),
        ignore_name_keywords: Sequence[str] = DEFAULT_IGNORE_KEYWORDS,
    ) -> None:
        self.resolver = resolver
        self.icon_resolver = icon_resolver if icon_resolver is not None else IconResolver()
        self.exclude_prefixes = normalize_prefixes(exclude_paths)
        self.ignore_name_keywords = tuple(ignore_name_keywords)
        self.last_stats = DiscoveryStats()

    def discover(self, roots: Sequence[ScanRoot]) -> list[Entry]:
        """Walk every root and return one entry per distinct launch target."""
        stats = DiscoveryStats()
        hits: list[_Hit] = []

        for root in roots:
            if not root.path.is_dir():
                LOGGER.debug("Scan root %s does not exist, nothing to index", root.path)
                continue
            LOGGER.info("Scanning %s (%s)", root.path, root.origin.value)
            hits.extend(self._scan_root(root, stats))

        entries = self._build_entries(self._deduplicate(hits, stats))
        stats.found = len(entries)
        self.last_stats = stats
        LOGGER.info(
            "Discovered %d programs (%d duplicates, %d skipped, %d warnings)",
            stats.found,
            stats.duplicates,
            stats.skipped,
            len(stats.warnings),
        )
        return entries

    def _scan_root(self, root: ScanRoot, stats: DiscoveryStats) -> list[_Hit]:
        def on_error(path: Path, exc: OSError) -> None:
            stats.warn(f"Skipping unreadable {path}: {exc}")

        hits: list[_Hit] = []
        for path in walk_files(root.path, excluded=self.exclude_prefixes, on_error=on_error):
            suffix = path.suffix.lower()
            if suffix in self.resolver.suffixes:
                kind = "shortcut"
            elif self._is_executable(path, suffix):
                kind = "executable"
            else:
                continue

            if contains_keyword(path.stem, self.ignore_name_keywords):
                LOGGER.debug("Ignoring %s by name", path)
                stats.skipped += 1
                continue

            name = path.stem
            if kind == "shortcut":
                try:
                    resolved = self.resolver.resolve(path)
                except Exception as exc:
                    stats.warn(f"Cannot resolve shortcut {path}: {exc}")
                    continue
                if resolved is None:
                    stats.skipped += 1
                    continue
                if resolved.name and resolved.name != name:
                    if contains_keyword(resolved.name, self.ignore_name_keywords):
                        LOGGER.debug("Ignoring %s by display name", path)
                        stats.skipped += 1
                        continue
                    name = resolved.name
                target = resolved.target
                stats.shortcuts += 1
            else:
                target = canonical_path(path)
                stats.executables += 1

            hits.append(_Hit(name=name, target=target, origin=root.origin, source=path))
        return hits

    @staticmethod
    def _is_executable(path: Path, suffix: str) -> bool:
        if suffix in EXECUTABLE_SUFFIXES:
            return True
        if os.name == "posix" and suffix in POSIX_EXECUTABLE_SUFFIXES:
            return os.access(path, os.X_OK)
        return False

    @staticmethod
    def _deduplicate(hits: Sequence[_Hit], stats: DiscoveryStats) -> list[_Hit]:
        """Collapse hits sharing a launch target; the best origin wins, then the lowest name."""
        best: dict[str, _Hit] = {}
        for hit in hits:
            key = path_identity(hit.target)
            current = best.get(key)
            if current is None:
                best[key] = hit
                continue
            stats.duplicates += 1
            if _hit_rank(hit) < _hit_rank(current):
                best[key] = hit
        return [best[key] for key in sorted(best)]

    def _build_entries(self, hits: Sequence[_Hit]) -> list[Entry]:
        entries = []
        for hit in hits:
            icon = self.icon_resolver.resolve(hit.name, hit.target, hit.source)
            entries.append(
                Entry(
                    name=hit.name,
                    launch_target=hit.target,
                    origin=hit.origin,
                    icon=icon,
                    source_path=hit.source,
                )
            )
        return entries


def _hit_rank(hit: _Hit) -> tuple[int, str, str]:
    return (hit.origin.priority, normalize_name(hit.name), str(hit.source))
