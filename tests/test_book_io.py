from __future__ import annotations

import json
from pathlib import Path

import pytest

pytest.importorskip("PIL")
from PIL import Image

from chuki.book_io import BOOK_METADATA_FILENAME, SectionBook, load_book_metadata, write_book_package
from chuki.core import BookMetadata, Converter
from chuki.tables import load_tables


def _make_book(tmp_path: Path, text: str, metadata: BookMetadata, warnings: list[str]) -> SectionBook:
    book = SectionBook(tmp_path, metadata, on_warning=warnings.append)
    converter = Converter(load_tables(), book, on_warning=warnings.append)
    converter.convert(text.split("\n"), book.out, metadata)
    return book


def test_write_book_package_emits_sections_images_and_metadata(tmp_path: Path) -> None:
    Image.new("RGB", (32, 16), (200, 20, 20)).save(tmp_path / "fig.png", format="PNG")
    metadata = BookMetadata(title="試験の本", creator="著者名", image_section_lines=frozenset({1}))
    warnings: list[str] = []
    book = _make_book(
        tmp_path,
        "第一章\n［＃挿絵（fig.png）入る］\n本文\n［＃改ページ］\n第二章\n本文",
        metadata,
        warnings,
    )
    output_dir = tmp_path / "out"
    package = write_book_package(output_dir, book)

    assert warnings == []
    names = [record.path.name for record in package.section_records]
    assert names == ["001_第一章.xhtml", "002_第二章.xhtml"]
    first = package.section_records[0].path.read_text(encoding="utf-8")
    assert 'src="images/fig.png"' in first
    assert "<p>本文</p>" in first
    assert '<html xmlns="http://www.w3.org/1999/xhtml" xml:lang="ja" class="vrtl">' in first
    assert (output_dir / "images" / "fig.png").exists()

    payload = json.loads((output_dir / BOOK_METADATA_FILENAME).read_text(encoding="utf-8"))
    assert payload["title"] == "試験の本"
    assert payload["author"] == "著者名"
    assert payload["vertical"] is True
    assert [chapter["start_line"] for chapter in payload["chapters"]] == [0, 3]
    assert [chapter["image_only"] for chapter in payload["chapters"]] == [True, False]
    assert payload["images"] == [{"source": "fig.png", "file": "images/fig.png", "width": 32, "height": 16}]

    loaded = load_book_metadata(output_dir)
    assert loaded is not None
    assert loaded.title == "試験の本"
    assert loaded.author == "著者名"
    assert len(loaded.chapters) == 2


def test_missing_image_is_dropped_with_warning(tmp_path: Path) -> None:
    warnings: list[str] = []
    book = _make_book(tmp_path, "［＃挿絵（nothing.png）入る］\n本文", BookMetadata(), warnings)
    sections = book.finish()
    assert len(sections) == 1
    assert "<img" not in sections[0].text
    assert warnings == ["画像ファイルが見つかりません: nothing.png"]


def test_same_image_is_registered_once(tmp_path: Path) -> None:
    Image.new("RGB", (4, 4)).save(tmp_path / "a.png", format="PNG")
    book = SectionBook(tmp_path)
    assert book.get_image_file_path("a.png") == "images/a.png"
    assert book.get_image_file_path("a.png") == "images/a.png"
    assert len(book.images) == 1


def test_empty_sections_are_skipped(tmp_path: Path) -> None:
    book = SectionBook(tmp_path)
    book.out.write("   \n")
    book.next_section(book.out, 2)
    book.update_chapter_name("本編")
    book.out.write("<p>本編</p>\n")
    sections = book.finish()
    assert len(sections) == 1
    assert sections[0].chapter_name == "本編"
    assert sections[0].start_line == 2


def test_horizontal_book_uses_horizontal_class(tmp_path: Path) -> None:
    metadata = BookMetadata(vertical=False)
    book = _make_book(tmp_path, "本文", metadata, [])
    package = write_book_package(tmp_path / "out", book)
    text = package.section_records[0].path.read_text(encoding="utf-8")
    assert 'class="hltr"' in text
    assert load_book_metadata(tmp_path / "missing") is None
