"""Shortcut resolution behind a narrow `resolve(path) -> ResolvedShortcut` interface.

Discovery only ever asks a resolver two things: which file suffixes it
understands and what a given shortcut launches (plus the name it advertises,
when it has one). Tests plug in fakes; real runs use the Windows Shell
(``.lnk``) or freedesktop entries (``.desktop``).
"""

from __future__ import annotations

import configparser
import logging
import shlex
import shutil
import sys
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from locksearch.utils.files import canonical_path

LOGGER = logging.getLogger(__name__)

# Desktop entry Exec field codes, expanded by the launcher rather than the program.
FIELD_CODES = frozenset({"%f", "%F", "%u", "%U", "%d", "%D", "%n", "%N", "%i", "%c", "%k", "%v", "%m"})


@dataclass(frozen=True, slots=True)
class ResolvedShortcut:
    """What a shortcut launches. `name` is None when the shortcut carries no display name."""

    target: Path
    name: str | None = None


class ShortcutResolver(Protocol):
    suffixes: frozenset[str]

    def resolve(self, path: Path) -> ResolvedShortcut | None:
        """Return what `path` launches, or None when it cannot be launched."""
        ...


class ShellLinkResolver:
    """Resolve Windows ``.lnk`` files through ``WScript.Shell``.

    COM objects are apartment bound, so every thread gets its own shell.
    """

    suffixes = frozenset({".lnk"})

    def __init__(self) -> None:
        import pythoncom
        import win32com.client

        self._pythoncom = pythoncom
        self._client = win32com.client
        self._local = threading.local()

    def _shell(self):
        shell = getattr(self._local, "shell", None)
        if shell is None:
            self._pythoncom.CoInitialize()
            shell = self._client.Dispatch("WScript.Shell")
            self._local.shell = shell
        return shell

    def resolve(self, path: Path) -> ResolvedShortcut | None:
        shortcut = self._shell().CreateShortcut(str(path))
        target = (shortcut.TargetPath or "").strip()
        if not target:
            LOGGER.debug("Shortcut %s has no file target", path)
            return None
        target_path = Path(target)
        if not target_path.is_file():
            LOGGER.debug("Shortcut %s points to missing %s", path, target_path)
            return None
        # A .lnk file's display name is its file name.
        return ResolvedShortcut(canonical_path(target_path))


class DesktopEntryResolver:
    """Resolve freedesktop ``.desktop`` files.

    An entry whose ``Exec`` line is a bare program resolves to that binary.
    When the program is handed arguments (``flatpak run <app-id>``,
    ``sh -c ...``) the binary alone says nothing about which app starts, so
    the entry file itself becomes the launch target. The display name comes
    from the unlocalized ``Name`` key.
    """

    suffixes = frozenset({".desktop"})
    section = "Desktop Entry"

    def resolve(self, path: Path) -> ResolvedShortcut | None:
        parser = configparser.ConfigParser(interpolation=None, strict=False)
        parser.optionxform = str  # keys are case sensitive
        with path.open(encoding="utf-8", errors="replace") as handle:
            parser.read_file(handle)

        if not parser.has_section(self.section):
            return None
        entry = parser[self.section]
        if entry.get("Type", "Application") != "Application":
            return None
        if entry.get("NoDisplay", "false").lower() == "true":
            return None
        if entry.get("Hidden", "false").lower() == "true":
            return None

        command = parse_exec(entry.get("Exec", ""))
        if command is None:
            return None
        program, arguments = command

        if Path(program).is_absolute():
            located = program if Path(program).is_file() else None
        else:
            located = shutil.which(program)
        if located is None:
            LOGGER.debug("Desktop entry %s points to missing %s", path, program)
            return None

        name = entry.get("Name", "").strip() or None
        target = canonical_path(path) if arguments else canonical_path(located)
        return ResolvedShortcut(target, name)


def parse_exec(command: str) -> tuple[str, list[str]] | None:
    """Split a desktop ``Exec`` line into its program and real arguments.

    A leading ``env VAR=x`` prefix is skipped and field codes are dropped.
    """
    try:
        tokens = shlex.split(command)
    except ValueError:
        return None
    if tokens and tokens[0] == "env":
        tokens = tokens[1:]
        while tokens and "=" in tokens[0] and not tokens[0].startswith("/"):
            tokens = tokens[1:]
    if not tokens:
        return None
    program, *rest = tokens
    return program, [token for token in rest if token not in FIELD_CODES]


def default_resolver() -> ShortcutResolver:
    """Pick the shortcut resolver for the running platform."""
    if sys.platform == "win32":
        return ShellLinkResolver()
    return DesktopEntryResolver()
