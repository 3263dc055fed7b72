"""SQLite backed index cache."""

from __future__ import annotations

import logging
import os
import sqlite3
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, Iterator, List, Sequence

from locksearch.config import AppConfig
from locksearch.ingestion.icons import IconResolver, placeholder_for
from locksearch.models import Entry, ExtractedIcon, Origin, ScanRoot
from locksearch.utils.files import compute_sha256, directory_signature, normalize_prefixes

LOGGER = logging.getLogger(__name__)

SCHEMA_VERSION = 3


def compute_fingerprint(roots: Sequence[ScanRoot], config: AppConfig) -> str:
    """Summarize the scan roots' state and the settings that shape discovery."""
    parts = [f"schema|{SCHEMA_VERSION}"]
    parts.extend(f"root|{root.origin.value}|{root.path}" for root in roots)
    parts.extend(f"exclude|{prefix}" for prefix in sorted(normalize_prefixes(config.exclude_paths)))
    parts.extend(f"ignore|{keyword.lower()}" for keyword in sorted(config.ignore_name_keywords))
    for root in roots:
        parts.extend(directory_signature(root.path))
    return compute_sha256(parts)


@dataclass(slots=True)
class CacheRecord:
    """Entries plus the fingerprint they were discovered under."""

    entries: List[Entry]
    fingerprint: str
    icons: Dict[str, ExtractedIcon] = field(default_factory=dict)


class IndexCache:
    """Persistence layer for the discovered program set.

    Reads fail closed: anything unexpected is a cache miss. Writes build a
    complete database next to the target and rename it into place.
    """

    def __init__(self, cache_path: Path) -> None:
        self.cache_path = Path(cache_path)

    def load(
        self,
        roots: Sequence[ScanRoot],
        config: AppConfig,
        icon_resolver: IconResolver | None = None,
    ) -> CacheRecord | None:
        if not self.cache_path.is_file():
            LOGGER.debug("No index cache at %s", self.cache_path)
            return None

        try:
            record = self._read()
        except (sqlite3.Error, OSError, ValueError, KeyError, TypeError) as exc:
            LOGGER.info("Ignoring unreadable index cache %s: %s", self.cache_path, exc)
            return None
        if record is None:
            return None

        expected = compute_fingerprint(roots, config)
        if record.fingerprint != expected:
            LOGGER.info("Index cache is stale, rebuilding")
            return None

        if icon_resolver is not None:
            adopted = {key: icon_resolver.adopt(key, icon) for key, icon in record.icons.items()}
            record.entries = [
                _with_icon(entry, adopted.get(entry.identity)) for entry in record.entries
            ]
            record.icons = adopted
        LOGGER.info("Loaded %d programs from index cache", len(record.entries))
        return record

    def _read(self) -> CacheRecord | None:
        uri = self.cache_path.resolve().as_uri() + "?mode=ro"
        conn = sqlite3.connect(uri, uri=True)
        conn.row_factory = sqlite3.Row
        try:
            meta = {row["key"]: row["value"] for row in conn.execute("SELECT key, value FROM meta")}
            version = int(meta.get("schema_version", "0"))
            if version != SCHEMA_VERSION:
                LOGGER.info("Index cache schema %s != %s, rebuilding", version, SCHEMA_VERSION)
                return None
            fingerprint = meta["fingerprint"]

            icons = {
                row["identity"]: ExtractedIcon(
                    png=bytes(row["png"]), width=int(row["width"]), height=int(row["height"])
                )
                for row in conn.execute("SELECT identity, png, width, height FROM icons")
            }

            entries = []
            for row in conn.execute(
                "SELECT identity, name, launch_target, origin, source_path FROM entries ORDER BY identity"
            ):
                name = row["name"]
                source = row["source_path"]
                entries.append(
                    Entry(
                        name=name,
                        launch_target=Path(row["launch_target"]),
                        origin=Origin(row["origin"]),
                        icon=icons.get(row["identity"]) or placeholder_for(name),
                        source_path=Path(source) if source else None,
                    )
                )
        finally:
            conn.close()
        return CacheRecord(entries=entries, fingerprint=fingerprint, icons=icons)

    def save(self, entries: Sequence[Entry], fingerprint: str) -> None:
        """Atomically replace the cache with `entries`."""
        self.cache_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=".index_cache-", suffix=".tmp", dir=self.cache_path.parent
        )
        os.close(fd)
        tmp_path = Path(tmp_name)
        try:
            conn = sqlite3.connect(tmp_path)
            try:
                with _transaction(conn):
                    _create_schema(conn)
                    _write_entries(conn, entries, fingerprint)
            finally:
                conn.close()
            os.replace(tmp_path, self.cache_path)
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise
        LOGGER.debug("Saved %d programs to %s", len(entries), self.cache_path)

    def clear(self) -> bool:
        """Remove the cache file. Returns whether there was one."""
        try:
            self.cache_path.unlink()
        except FileNotFoundError:
            return False
        return True


@contextmanager
def _transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise


def _create_schema(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE meta (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE entries (
            identity TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            launch_target TEXT NOT NULL,
            origin TEXT NOT NULL,
            source_path TEXT
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE icons (
            identity TEXT PRIMARY KEY,
            png BLOB NOT NULL,
            width INTEGER NOT NULL,
            height INTEGER NOT NULL
        )
        """
    )


def _write_entries(conn: sqlite3.Connection, entries: Sequence[Entry], fingerprint: str) -> None:
    conn.executemany(
        "INSERT INTO meta(key, value) VALUES (?, ?)",
        [("schema_version", str(SCHEMA_VERSION)), ("fingerprint", fingerprint)],
    )
    for entry in entries:
        conn.execute(
            """
            INSERT OR REPLACE INTO entries(identity, name, launch_target, origin, source_path)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                entry.identity,
                entry.name,
                str(entry.launch_target),
                entry.origin.value,
                str(entry.source_path) if entry.source_path is not None else None,
            ),
        )
        if isinstance(entry.icon, ExtractedIcon):
            conn.execute(
                "INSERT OR REPLACE INTO icons(identity, png, width, height) VALUES (?, ?, ?, ?)",
                (
                    entry.identity,
                    sqlite3.Binary(entry.icon.png),
                    entry.icon.width,
                    entry.icon.height,
                ),
            )


def _with_icon(entry: Entry, icon: ExtractedIcon | None) -> Entry:
    if icon is None or icon is entry.icon:
        return entry
    return replace(entry, icon=icon)
