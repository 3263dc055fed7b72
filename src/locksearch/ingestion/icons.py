"""Icon extraction and letter placeholders.

Extracted bitmaps are normalized to PNG with Pillow and kept in the
resolver's cache, keyed by entry identity; entries only hold references.
Placeholders are pure values derived from the program name.
"""

from __future__ import annotations

import base64
import binascii
import configparser
import io
import logging
import subprocess
import sys
import zlib
from pathlib import Path
from typing import Dict, Iterable, Protocol

from PIL import Image, UnidentifiedImageError

from locksearch.models import ExtractedIcon, Icon, PlaceholderIcon, path_identity
from locksearch.utils.text import first_alnum

LOGGER = logging.getLogger(__name__)

DEFAULT_ICON_SIZE = 48

# Twelve well separated hues that all read against white text.
PALETTE = (
    "#7A5CCB",
    "#3F7FD6",
    "#2E9E9A",
    "#3E9B4F",
    "#8A9A2B",
    "#C9932E",
    "#D0672F",
    "#C8463D",
    "#C23E7A",
    "#8E44AD",
    "#556270",
    "#6D4C41",
)


def placeholder_for(name: str) -> PlaceholderIcon:
    """Letter + color icon; identical for identical names across runs."""
    color = PALETTE[zlib.crc32(name.encode("utf-8")) % len(PALETTE)]
    return PlaceholderIcon(letter=first_alnum(name), color=color)


class IconExtractor(Protocol):
    def extract(self, target: Path, source: Path | None) -> bytes | None:
        """Return raw image bytes for `target` (or its shortcut `source`), or None."""
        ...


class WindowsIconExtractor:
    """Ask System.Drawing for the associated icon through PowerShell."""

    script = """
$ErrorActionPreference = 'SilentlyContinue'
Add-Type -AssemblyName System.Drawing
$target = '{target}'
if (-not (Test-Path $target)) {{ exit 1 }}
$icon = [System.Drawing.Icon]::ExtractAssociatedIcon($target)
if ($null -eq $icon) {{ exit 1 }}
$ms = New-Object System.IO.MemoryStream
$icon.ToBitmap().Save($ms, [System.Drawing.Imaging.ImageFormat]::Png)
[Convert]::ToBase64String($ms.ToArray())
"""

    def __init__(self, timeout: float = 5.0) -> None:
        self.timeout = timeout

    def extract(self, target: Path, source: Path | None) -> bytes | None:
        safe = str(target).replace("'", "''")
        completed = subprocess.run(
            ["powershell", "-NoProfile", "-NonInteractive", "-Command", self.script.format(target=safe)],
            capture_output=True,
            text=True,
            timeout=self.timeout,
            creationflags=getattr(subprocess, "CREATE_NO_WINDOW", 0),
        )
        output = completed.stdout.strip()
        if completed.returncode != 0 or not output:
            return None
        try:
            return base64.b64decode(output, validate=True)
        except (binascii.Error, ValueError):
            return None


class DesktopIconExtractor:
    """Read the ``Icon=`` key of a desktop entry and find a bitmap in the icon themes."""

    size_dirs = ("256x256", "128x128", "96x96", "64x64", "48x48", "32x32")
    theme_dirs = (
        Path("/usr/share/icons/hicolor"),
        Path("/usr/local/share/icons/hicolor"),
        Path.home() / ".local" / "share" / "icons" / "hicolor",
    )
    pixmap_dirs = (Path("/usr/share/pixmaps"),)

    def extract(self, target: Path, source: Path | None) -> bytes | None:
        if source is None or source.suffix.lower() != ".desktop":
            return None
        icon_name = self._icon_name(source)
        if not icon_name:
            return None
        path = self.locate(icon_name)
        return path.read_bytes() if path is not None else None

    def _icon_name(self, desktop_file: Path) -> str | None:
        parser = configparser.ConfigParser(interpolation=None, strict=False)
        parser.optionxform = str
        with desktop_file.open(encoding="utf-8", errors="replace") as handle:
            parser.read_file(handle)
        if not parser.has_section("Desktop Entry"):
            return None
        return parser["Desktop Entry"].get("Icon", "").strip() or None

    def locate(self, icon_name: str) -> Path | None:
        direct = Path(icon_name)
        if direct.is_absolute():
            return direct if direct.is_file() else None
        for theme in self.theme_dirs:
            for size in self.size_dirs:
                candidate = theme / size / "apps" / f"{icon_name}.png"
                if candidate.is_file():
                    return candidate
        for pixmaps in self.pixmap_dirs:
            candidate = pixmaps / f"{icon_name}.png"
            if candidate.is_file():
                return candidate
        return None


def default_icon_extractor() -> IconExtractor:
    if sys.platform == "win32":
        return WindowsIconExtractor()
    return DesktopIconExtractor()


def normalize_png(data: bytes, size: int = DEFAULT_ICON_SIZE) -> ExtractedIcon:
    """Decode any Pillow readable image and re-encode it as a PNG no larger than `size`."""
    with Image.open(io.BytesIO(data)) as image:
        image.load()
        converted = image.convert("RGBA")
    converted.thumbnail((size, size))
    buffer = io.BytesIO()
    converted.save(buffer, format="PNG")
    return ExtractedIcon(png=buffer.getvalue(), width=converted.width, height=converted.height)


class IconResolver:
    """Produce icons for entries and own the extracted bitmaps."""

    def __init__(self, extractor: IconExtractor | None = None, *, size: int = DEFAULT_ICON_SIZE) -> None:
        self.extractor = extractor
        self.size = size
        self._cache: Dict[str, ExtractedIcon] = {}

    def resolve(self, name: str, target: Path, source: Path | None = None) -> Icon:
        key = path_identity(target)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        if self.extractor is None:
            return placeholder_for(name)

        try:
            data = self.extractor.extract(target, source)
            if data:
                icon = normalize_png(data, self.size)
                self._cache[key] = icon
                return icon
        except (OSError, ValueError, UnidentifiedImageError, subprocess.SubprocessError) as exc:
            LOGGER.debug("Icon extraction failed for %s: %s", target, exc)
        except Exception as exc:  # pragma: no cover - extractor bugs must not break indexing
            LOGGER.debug("Unexpected icon extractor error for %s: %s", target, exc)
        return placeholder_for(name)

    def adopt(self, identity: str, icon: ExtractedIcon) -> ExtractedIcon:
        """Take ownership of an icon loaded from the index cache."""
        return self._cache.setdefault(identity, icon)

    def icons(self) -> Dict[str, ExtractedIcon]:
        return dict(self._cache)

    def retain(self, identities: Iterable[str]) -> None:
        """Drop bitmaps of entries that are no longer indexed."""
        keep = set(identities)
        for key in list(self._cache):
            if key not in keep:
                del self._cache[key]

    def __len__(self) -> int:
        return len(self._cache)
