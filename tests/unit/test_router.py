from pathlib import Path

import pytest

from domains.file_ingest.processors.router import (
    DEFAULT_EXTENSIONS,
    Category,
    ExtensionTable,
    classify,
    classify_path,
)


@pytest.mark.parametrize(
    "extension, expected",
    [
        ("pdf", Category.DOCUMENT),
        ("PDF", Category.DOCUMENT),
        (".Docx", Category.DOCUMENT),
        ("jpeg", Category.IMAGE),
        ("HEIC", Category.IMAGE),
        ("mkv", Category.VIDEO),
        ("flac", Category.MUSIC),
        ("7z", Category.ARCHIVE),
        ("dmg", Category.INSTALLER),
        ("pkg", Category.INSTALLER),
        ("xyz", Category.MISC),
        ("", Category.MISC),
    ],
)
def test_classify(extension, expected):
    assert classify(extension) is expected


def test_default_extension_sets_are_disjoint():
    seen = {}
    for category, extensions in DEFAULT_EXTENSIONS.items():
        for ext in extensions:
            assert ext not in seen, f"{ext} listed by {seen.get(ext)} and {category}"
            seen[ext] = category


def test_classify_path_excludes_files_without_extension():
    assert classify_path(Path("README")) is None
    assert classify_path(Path("photo.JPG")) is Category.IMAGE
    assert classify_path(Path("backup.tar.gz")) is Category.ARCHIVE


def test_first_match_wins_when_tables_overlap():
    table = dict(DEFAULT_EXTENSIONS)
    table[Category.ARCHIVE] = table[Category.ARCHIVE] + ("pdf",)

    assert classify("pdf", table) is Category.DOCUMENT


def test_extension_table_reload_takes_effect_immediately():
    table = ExtensionTable()
    assert table.classify("epub") is Category.MISC

    table.reload({Category.DOCUMENT: ["pdf", ".EPUB"]})

    assert table.classify("epub") is Category.DOCUMENT
    assert table.classify("txt") is Category.MISC
    assert table.classify("png") is Category.IMAGE

    table.reload()
    assert table.classify("epub") is Category.MISC


def test_category_folders_and_parse():
    assert Category.INSTALLER.folder_name == "Junk Installers"
    assert Category.IMAGE.folder_name == "Images"
    assert Category.parse("images") is Category.IMAGE
    assert Category.parse("INSTALLER") is Category.INSTALLER

    with pytest.raises(ValueError):
        Category.parse("spreadsheets")
