"""Core LockSearch data models."""

from __future__ import annotations

import enum
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Union

from locksearch.utils.text import normalize_name


class Origin(str, enum.Enum):
    """Where a program was found.

    The declaration order doubles as priority: a Start Menu hit beats a
    Program Files hit for the same target, which beats an extra path.
    """

    START_MENU = "start_menu"
    PROGRAM_FILES = "program_files"
    EXTRA_PATH = "extra_path"

    @property
    def priority(self) -> int:
        return _ORIGIN_PRIORITY[self]


_ORIGIN_PRIORITY = {
    Origin.START_MENU: 0,
    Origin.PROGRAM_FILES: 1,
    Origin.EXTRA_PATH: 2,
}


@dataclass(frozen=True, slots=True)
class ExtractedIcon:
    """PNG bitmap extracted from a program, owned by the icon resolver cache."""

    png: bytes = field(repr=False)
    width: int
    height: int


@dataclass(frozen=True, slots=True)
class PlaceholderIcon:
    """Synthesized letter icon used when nothing can be extracted."""

    letter: str
    color: str


Icon = Union[ExtractedIcon, PlaceholderIcon]


@dataclass(frozen=True, slots=True)
class ScanRoot:
    """A directory to walk and the origin assigned to everything under it."""

    path: Path
    origin: Origin


@dataclass(frozen=True, slots=True)
class Entry:
    """One discovered, launchable program."""

    name: str
    launch_target: Path
    origin: Origin
    icon: Icon = field(compare=False)
    source_path: Path | None = field(default=None, compare=False)

    @property
    def normalized_name(self) -> str:
        return normalize_name(self.name)

    @property
    def identity(self) -> str:
        return path_identity(self.launch_target)


def path_identity(path: Path | str) -> str:
    """Key two paths compare equal on (case-folded where the OS folds case)."""
    return os.path.normcase(str(path))
