"""Tests for shortcut resolvers."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

from locksearch.ingestion import shortcuts
from locksearch.ingestion.shortcuts import (
    DesktopEntryResolver,
    ResolvedShortcut,
    default_resolver,
    parse_exec,
)
from locksearch.utils.files import canonical_path


def _write_desktop(path: Path, **keys: str) -> Path:
    lines = ["[Desktop Entry]"] + [f"{key}={value}" for key, value in keys.items()]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


@pytest.mark.skipif(sys.platform == "win32", reason="freedesktop entries are POSIX only")
class TestDesktopEntryResolver:
    """Test DesktopEntryResolver."""

    @pytest.fixture
    def program(self, tmp_path: Path) -> Path:
        binary = tmp_path / "bin" / "editor"
        binary.parent.mkdir()
        binary.write_text("#!/bin/sh\n")
        return binary

    def test_suffixes(self) -> None:
        assert DesktopEntryResolver().suffixes == frozenset({".desktop"})

    def test_absolute_exec(self, tmp_path: Path, program: Path) -> None:
        """Should resolve an absolute Exec path, ignoring field codes."""
        entry = _write_desktop(tmp_path / "editor.desktop", Type="Application", Exec=f"{program} %F")

        assert DesktopEntryResolver().resolve(entry) == ResolvedShortcut(canonical_path(program))

    def test_relative_exec_uses_path_lookup(self, tmp_path: Path, program: Path, monkeypatch) -> None:
        entry = _write_desktop(tmp_path / "editor.desktop", Exec="editor %U")
        monkeypatch.setattr(shortcuts.shutil, "which", lambda name: str(program) if name == "editor" else None)

        assert DesktopEntryResolver().resolve(entry).target == canonical_path(program)

    def test_display_name_from_entry(self, tmp_path: Path, program: Path) -> None:
        entry = _write_desktop(
            tmp_path / "org.gimp.GIMP.desktop",
            Name="GNU Image Manipulation Program",
            **{"Name[de]": "GNU Bildbearbeitungsprogramm"},
            Exec=f"{program} %U",
        )

        assert DesktopEntryResolver().resolve(entry).name == "GNU Image Manipulation Program"

    def test_display_name_missing(self, tmp_path: Path, program: Path) -> None:
        entry = _write_desktop(tmp_path / "editor.desktop", Exec=str(program))

        assert DesktopEntryResolver().resolve(entry).name is None

    def test_wrapped_command_targets_entry_file(self, tmp_path: Path, program: Path) -> None:
        """A program started with arguments is launched through its entry file."""
        entry = _write_desktop(tmp_path / "org.gimp.GIMP.desktop", Exec=f"{program} run org.gimp.GIMP")

        assert DesktopEntryResolver().resolve(entry).target == canonical_path(entry)

    def test_missing_target(self, tmp_path: Path) -> None:
        """Broken shortcuts resolve to None instead of raising."""
        entry = _write_desktop(tmp_path / "gone.desktop", Exec=str(tmp_path / "missing"))

        assert DesktopEntryResolver().resolve(entry) is None

    def test_missing_wrapper_binary(self, tmp_path: Path) -> None:
        entry = _write_desktop(tmp_path / "gone.desktop", Exec=f"{tmp_path / 'missing'} run app")

        assert DesktopEntryResolver().resolve(entry) is None

    @pytest.mark.parametrize("key", ["NoDisplay", "Hidden"])
    def test_hidden_entries(self, tmp_path: Path, program: Path, key: str) -> None:
        entry = _write_desktop(tmp_path / "hidden.desktop", Exec=str(program), **{key: "true"})

        assert DesktopEntryResolver().resolve(entry) is None

    def test_non_application(self, tmp_path: Path, program: Path) -> None:
        entry = _write_desktop(tmp_path / "link.desktop", Type="Link", Exec=str(program))

        assert DesktopEntryResolver().resolve(entry) is None

    def test_missing_section(self, tmp_path: Path) -> None:
        entry = tmp_path / "odd.desktop"
        entry.write_text("[Something Else]\nExec=/bin/true\n")

        assert DesktopEntryResolver().resolve(entry) is None


class TestParseExec:
    """Test Exec line parsing."""

    @pytest.mark.parametrize(
        ("command", "expected"),
        [
            ("firefox %u", ("firefox", [])),
            ("/usr/bin/code --unity-launch %F", ("/usr/bin/code", ["--unity-launch"])),
            ("env GDK_BACKEND=x11 gimp %U", ("gimp", [])),
            ("/usr/bin/flatpak run org.gimp.GIMP %U", ("/usr/bin/flatpak", ["run", "org.gimp.GIMP"])),
            ('"/opt/My App/run" --flag', ("/opt/My App/run", ["--flag"])),
            ("sh -c 'cd /opt/tool && ./tool'", ("sh", ["-c", "cd /opt/tool && ./tool"])),
            ("env A=1", None),
            ("", None),
            ('unterminated "quote', None),
        ],
    )
    def test_parse_exec(self, command: str, expected) -> None:
        assert parse_exec(command) == expected


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX default")
def test_default_resolver_posix() -> None:
    assert isinstance(default_resolver(), DesktopEntryResolver)
