"""
Type-based routing for inbox files.

Maps a file extension to one of a closed set of categories. Classification is
extension-string based only; file contents are never inspected.
"""

import threading
from enum import Enum
from pathlib import Path
from typing import Dict, Mapping, Optional, Sequence, Tuple


class Category(str, Enum):
    """File groupings, each with a default destination folder."""

    DOCUMENT = "Documents"
    IMAGE = "Images"
    VIDEO = "Videos"
    MUSIC = "Music"
    ARCHIVE = "Archives"
    INSTALLER = "Installers"
    MISC = "Misc"

    @property
    def extensions(self) -> Tuple[str, ...]:
        return DEFAULT_EXTENSIONS[self]

    @property
    def folder_name(self) -> str:
        """Default destination folder, relative to the inbox."""
        if self is Category.INSTALLER:
            return "Junk Installers"
        return self.value

    @classmethod
    def parse(cls, value: str) -> "Category":
        """Look up a category by value or member name, case-insensitively."""
        lowered = value.strip().lower()
        for category in cls:
            if lowered in (category.value.lower(), category.name.lower()):
                return category
        raise ValueError(f"Unknown category: {value}")


DEFAULT_EXTENSIONS: Dict[Category, Tuple[str, ...]] = {
    Category.DOCUMENT: ("pdf", "docx", "doc", "txt", "rtf", "md", "odt", "xls", "xlsx", "ppt", "pptx"),
    Category.IMAGE: ("jpg", "jpeg", "png", "gif", "heic", "svg", "bmp", "tiff", "webp", "ico"),
    Category.VIDEO: ("mp4", "mov", "avi", "mkv", "webm", "flv", "wmv", "m4v", "mpg", "mpeg"),
    Category.MUSIC: ("mp3", "wav", "flac", "m4a", "aac", "ogg", "wma", "aiff", "alac"),
    Category.ARCHIVE: ("zip", "rar", "7z", "tar", "gz", "bz2", "xz"),
    Category.INSTALLER: ("dmg", "pkg", "app"),
    Category.MISC: (),
}


def _normalise_extension(extension: str) -> str:
    return extension.strip().lstrip('.').lower()


def classify(extension: str, table: Optional[Mapping[Category, Sequence[str]]] = None) -> Category:
    """
    Map an extension to its category.

    Args:
        extension: Extension with or without the leading dot, any case
        table: Category to extensions mapping; defaults to the built-in table

    Returns:
        First category (in enum order) listing the extension, else MISC
    """
    ext = _normalise_extension(extension)
    table = DEFAULT_EXTENSIONS if table is None else table

    for category in Category:
        if ext in table.get(category, ()):
            return category

    return Category.MISC


def classify_path(path: Path, table: Optional[Mapping[Category, Sequence[str]]] = None) -> Optional[Category]:
    """Classify ``path`` by suffix; ``None`` when it has no extension."""
    ext = _normalise_extension(path.suffix)
    if not ext:
        return None
    return classify(ext, table)


class ExtensionTable:
    """Reloadable category to extensions table."""

    def __init__(self, mapping: Optional[Mapping[Category, Sequence[str]]] = None):
        self._lock = threading.Lock()
        self._table: Dict[Category, Tuple[str, ...]] = {}
        self.reload(mapping)

    def reload(self, mapping: Optional[Mapping[Category, Sequence[str]]] = None) -> None:
        """Replace the table; categories missing from ``mapping`` keep their defaults."""
        table = dict(DEFAULT_EXTENSIONS)
        for category, extensions in (mapping or {}).items():
            table[category] = tuple(_normalise_extension(e) for e in extensions)

        with self._lock:
            self._table = table

    def current(self) -> Dict[Category, Tuple[str, ...]]:
        with self._lock:
            return self._table

    def classify(self, extension: str) -> Category:
        return classify(extension, self.current())

    def classify_path(self, path: Path) -> Optional[Category]:
        return classify_path(path, self.current())
