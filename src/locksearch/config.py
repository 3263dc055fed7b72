"""Application configuration defaults."""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Literal, Mapping

LOGGER = logging.getLogger(__name__)

SortOrder = Literal["alphabetical", "random"]

SORT_ORDERS = ("alphabetical", "random")
DEFAULT_IGNORE_KEYWORDS = ("uninstall", "uninst", "update", "updater", "setup")


def _get_default_cache_path() -> Path:
    """Get the default index cache path based on platform."""
    if sys.platform == "win32":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
    elif sys.platform == "darwin":
        base = Path.home() / "Library" / "Caches"
    else:
        base = Path(os.environ.get("XDG_CACHE_HOME", Path.home() / ".cache"))
    return base / "locksearch" / "index_cache.db"


@dataclass(slots=True)
class AppConfig:
    search_icon_size: int = 18
    program_icon_size: int = 42
    max_results: int = 10
    extra_index_paths: list[Path] = field(default_factory=list)
    exclude_paths: list[Path] = field(default_factory=list)
    initial_sort: SortOrder = "alphabetical"
    enable_cache: bool = True
    cache_path: Path | None = None
    icon_size: int = 48
    ignore_name_keywords: tuple[str, ...] = DEFAULT_IGNORE_KEYWORDS

    def __post_init__(self) -> None:
        if self.cache_path is None:
            self.cache_path = _get_default_cache_path()
        self.cache_path = Path(self.cache_path)
        self.extra_index_paths = [Path(p) for p in self.extra_index_paths]
        self.exclude_paths = [Path(p) for p in self.exclude_paths]
        self.ignore_name_keywords = tuple(self.ignore_name_keywords)

        if self.max_results < 1:
            LOGGER.warning("max_results must be at least 1, got %s; using 1", self.max_results)
            self.max_results = 1
        if self.initial_sort not in SORT_ORDERS:
            LOGGER.warning("Unknown initial_sort %r; using alphabetical", self.initial_sort)
            self.initial_sort = "alphabetical"

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "AppConfig":
        """Build a config from an already parsed config file.

        Keys the core does not know about (window size, theme colors) are ignored.
        """
        known = {item.name for item in fields(cls)}
        kwargs = {key: value for key, value in data.items() if key in known}
        return cls(**kwargs)

    def resolve_cache_path(self, base_dir: Path | None = None) -> Path:
        if self.cache_path is None:
            self.cache_path = _get_default_cache_path()
        if Path(self.cache_path).is_absolute() or base_dir is None:
            return Path(self.cache_path)
        return base_dir / self.cache_path
