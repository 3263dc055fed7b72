"""Utility helpers for walking and fingerprinting directories."""

from __future__ import annotations

import hashlib
import logging
import os
from pathlib import Path
from typing import Callable, Iterable, Iterator, Sequence

LOGGER = logging.getLogger(__name__)

ErrorHandler = Callable[[Path, OSError], None]


def canonical_path(path: Path | str) -> Path:
    """Absolute path with symlinks and `..` resolved, without requiring existence."""
    return Path(os.path.realpath(os.path.abspath(os.path.expanduser(str(path)))))


def normalize_prefixes(paths: Iterable[Path | str]) -> list[str]:
    """Turn user supplied exclude paths into comparable prefixes."""
    prefixes = []
    for raw in paths:
        text = str(raw).strip()
        if not text:
            continue
        absolute = os.path.abspath(os.path.expanduser(text))
        prefixes.append(os.path.normcase(absolute).rstrip("\\/") or os.sep)
    return prefixes


def is_excluded(path: Path | str, prefixes: Sequence[str]) -> bool:
    """Component-wise prefix match of `path` against normalized exclude prefixes."""
    if not prefixes:
        return False
    candidates = {os.path.normcase(os.path.abspath(str(path)))}
    candidates.add(os.path.normcase(os.path.realpath(str(path))))
    for candidate in candidates:
        for prefix in prefixes:
            if candidate == prefix or candidate.startswith(prefix.rstrip(os.sep) + os.sep):
                return True
    return False


def walk_files(
    root: Path,
    *,
    excluded: Sequence[str] = (),
    on_error: ErrorHandler | None = None,
) -> Iterator[Path]:
    """Yield regular files below `root`, depth first, in name order.

    Directory symlinks are followed. Every directory is entered at most once,
    keyed by ``(st_dev, st_ino)``, which also breaks symlink loops. Excluded
    subtrees are never entered.
    """
    stack = [Path(root)]
    visited: set[tuple[int, int]] = set()

    while stack:
        directory = stack.pop()
        if is_excluded(directory, excluded):
            LOGGER.debug("Pruning excluded directory %s", directory)
            continue

        try:
            stat = directory.stat()
        except OSError as exc:
            _report(directory, exc, on_error)
            continue

        key = (stat.st_dev, stat.st_ino)
        if key in visited:
            LOGGER.debug("Already visited %s, skipping", directory)
            continue
        visited.add(key)

        try:
            with os.scandir(directory) as iterator:
                children = sorted(iterator, key=lambda item: item.name)
        except OSError as exc:
            _report(directory, exc, on_error)
            continue

        subdirs: list[Path] = []
        for child in children:
            path = Path(child.path)
            try:
                if child.is_dir():
                    subdirs.append(path)
                elif child.is_file():
                    if not is_excluded(path, excluded):
                        yield path
            except OSError as exc:
                _report(path, exc, on_error)

        stack.extend(reversed(subdirs))


def _report(path: Path, exc: OSError, on_error: ErrorHandler | None) -> None:
    if on_error is not None:
        on_error(path, exc)
    else:
        LOGGER.warning("Cannot read %s: %s", path, exc)


def directory_signature(root: Path) -> list[str]:
    """Describe the state of `root` cheaply: its mtime and its child directories' mtimes.

    Installing or removing a program adds or removes a file or folder directly
    under one of the scan roots, which bumps the root's mtime; a program that
    drops files into an existing vendor folder bumps that folder's mtime.
    """
    try:
        stat = root.stat()
    except OSError:
        return [f"{root}|missing"]

    lines = [f"{root}|{stat.st_mtime_ns}"]
    try:
        with os.scandir(root) as iterator:
            children = sorted(iterator, key=lambda item: item.name)
    except OSError as exc:
        lines.append(f"{root}|unreadable|{exc.errno}")
        return lines

    for child in children:
        try:
            if child.is_dir():
                lines.append(f"{child.name}|{child.stat().st_mtime_ns}")
        except OSError:
            lines.append(f"{child.name}|unreadable")
    return lines


def compute_sha256(parts: Iterable[str]) -> str:
    """SHA256 over newline separated text parts."""
    sha = hashlib.sha256()
    for part in parts:
        sha.update(part.encode("utf-8", "surrogateescape"))
        sha.update(b"\n")
    return sha.hexdigest()
