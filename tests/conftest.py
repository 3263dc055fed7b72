"""Shared fixtures for the LockSearch test suite."""

from __future__ import annotations

from pathlib import Path

import pytest

from locksearch.ingestion.icons import placeholder_for
from locksearch.ingestion.shortcuts import ResolvedShortcut
from locksearch.models import Entry, Origin
from locksearch.utils.files import canonical_path


class FakeShortcutResolver:
    """Treat ``.lnk`` files as text files holding their target path."""

    suffixes = frozenset({".lnk"})

    def resolve(self, shortcut: Path) -> ResolvedShortcut | None:
        content = shortcut.read_text(encoding="utf-8").strip()
        if content == "boom":
            raise RuntimeError("corrupt shortcut")
        target = Path(content)
        return ResolvedShortcut(canonical_path(target)) if target.is_file() else None


def make_entry(name: str, target: str | Path, origin: Origin = Origin.START_MENU) -> Entry:
    return Entry(
        name=name,
        launch_target=Path(target),
        origin=origin,
        icon=placeholder_for(name),
    )


@pytest.fixture
def fake_resolver() -> FakeShortcutResolver:
    return FakeShortcutResolver()


@pytest.fixture
def program_tree(tmp_path: Path) -> dict[str, Path]:
    """A start menu with shortcuts and a program files tree with executables."""
    start_menu = tmp_path / "start_menu"
    program_files = tmp_path / "program_files"
    (program_files / "Microsoft VS Code").mkdir(parents=True)
    (program_files / "Windows").mkdir()
    start_menu.mkdir()

    code = program_files / "Microsoft VS Code" / "Code.exe"
    code.write_text("binary")
    notepad = program_files / "Windows" / "notepad.exe"
    notepad.write_text("binary")
    calc = program_files / "Windows" / "calc.exe"
    calc.write_text("binary")

    (start_menu / "Visual Studio Code.lnk").write_text(str(code))
    (start_menu / "Notepad.lnk").write_text(str(notepad))

    return {
        "root": tmp_path,
        "start_menu": start_menu,
        "program_files": program_files,
        "code": code,
        "notepad": notepad,
        "calc": calc,
    }
