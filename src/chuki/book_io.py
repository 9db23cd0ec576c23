from __future__ import annotations

import io
import json
import re
import shutil
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

from PIL import Image, UnidentifiedImageError

from .core import BookMetadata
from .logging_utils import WarningCallback, debug_log, emit_warning

BOOK_METADATA_FILENAME = ".chuki-book.json"
IMAGE_DIRNAME = "images"
_XHTML_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE html>
<html xmlns="http://www.w3.org/1999/xhtml" xml:lang="ja" class="{writing_class}">
<head>
<meta charset="UTF-8"/>
<title>{title}</title>
</head>
<body>
<div class="main">
{body}</div>
</body>
</html>
"""


@dataclass
class Section:
    index: int
    start_line: int
    text: str
    chapter_name: str | None = None
    image_only: bool = False


@dataclass
class ImageAsset:
    source: str
    path: Path
    href: str
    width: int | None = None
    height: int | None = None


@dataclass
class SectionFileRecord:
    section: Section
    path: Path


@dataclass
class BookPackage:
    output_dir: Path
    section_records: list[SectionFileRecord]
    image_paths: list[Path]
    metadata_path: Path
    book_title: str | None
    book_author: str | None


@dataclass
class LoadedBookMetadata:
    title: str | None
    author: str | None
    vertical: bool
    chapters: list[dict[str, object]] = field(default_factory=list)
    images: list[dict[str, object]] = field(default_factory=list)


class SectionBook:
    """Collects converter output into sections and tracks the images it references.

    The converter writes into ``self.out``; every ``next_section`` call cuts the
    text written so far into a finished section.
    """

    def __init__(
        self,
        source_dir: Path | None = None,
        metadata: BookMetadata | None = None,
        *,
        on_warning: WarningCallback | None = None,
    ) -> None:
        self.source_dir = source_dir
        self.metadata = metadata or BookMetadata()
        self.on_warning = on_warning
        self.out = io.StringIO()
        self.sections: list[Section] = []
        self.images: dict[str, ImageAsset] = {}
        self._offset = 0
        self._start_line = 0
        self._chapter_name: str | None = None

    def next_section(self, out: io.StringIO, line_number: int) -> None:
        self._cut_section(out, line_number)
        self._start_line = line_number

    def update_chapter_name(self, name: str) -> None:
        self._chapter_name = name

    def get_image_file_path(self, raw_path: str) -> str | None:
        relative = raw_path.replace("\\", "/").strip()
        asset = self.images.get(relative)
        if asset is not None:
            return asset.href
        if self.source_dir is None:
            return None
        path = self.source_dir / relative
        if not path.is_file():
            emit_warning(self.on_warning, f"画像ファイルが見つかりません: {raw_path}")
            return None
        used = {existing.href for existing in self.images.values()}
        href = _unique_image_href(PurePosixPath(relative).name, used)
        width, height = _image_size(path)
        self.images[relative] = ImageAsset(source=relative, path=path, href=href, width=width, height=height)
        debug_log(f"image {relative} -> {href} ({width}x{height})")
        return href

    def finish(self, out: io.StringIO | None = None) -> list[Section]:
        """Close the last section and return every section collected so far."""
        self._cut_section(out or self.out, None)
        return self.sections

    def _cut_section(self, out: io.StringIO, end_line: int | None) -> None:
        value = out.getvalue()
        text = value[self._offset :]
        self._offset = len(value)
        if not text.strip():
            self._chapter_name = None
            return
        image_lines = self.metadata.image_section_lines
        image_only = any(
            self._start_line <= line and (end_line is None or line < end_line) for line in image_lines
        )
        self.sections.append(
            Section(
                index=len(self.sections) + 1,
                start_line=self._start_line,
                text=text,
                chapter_name=self._chapter_name,
                image_only=image_only,
            )
        )
        self._chapter_name = None


def _unique_image_href(name: str, used: set[str]) -> str:
    stem = PurePosixPath(name).stem or "image"
    suffix = PurePosixPath(name).suffix.lower()
    candidate = f"{IMAGE_DIRNAME}/{_slugify_for_filename(stem) or 'image'}{suffix}"
    counter = 1
    while candidate in used:
        counter += 1
        candidate = f"{IMAGE_DIRNAME}/{_slugify_for_filename(stem) or 'image'}_{counter}{suffix}"
    return candidate


def _image_size(path: Path) -> tuple[int | None, int | None]:
    try:
        with Image.open(path) as img:
            width, height = img.size
    except (OSError, UnidentifiedImageError):
        return None, None
    return width, height


def _slugify_for_filename(text: str) -> str:
    cleaned_chars: list[str] = []
    for ch in text.strip():
        if ch in {"/", "\\", ":", "*", "?", '"', "<", ">", "|"}:
            cleaned_chars.append("_")
            continue
        if ord(ch) < 32:
            continue
        if ch.isspace():
            cleaned_chars.append("_")
            continue
        cleaned_chars.append(ch)
    slug = "".join(cleaned_chars)
    slug = re.sub(r"_+", "_", slug).strip("_")
    return slug[:80]


def _section_basename(section: Section, used_names: set[str]) -> str:
    prefix = f"{section.index:03d}"
    if section.chapter_name:
        slug = _slugify_for_filename(section.chapter_name)
        candidate = f"{prefix}_{slug}" if slug else prefix
    else:
        candidate = prefix
    fallback = candidate
    suffix = 1
    while candidate in used_names:
        suffix += 1
        candidate = f"{fallback}_{suffix}"
    used_names.add(candidate)
    return candidate


def _escape_text(text: str) -> str:
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def _write_sections(
    output_dir: Path,
    sections: list[Section],
    *,
    book_title: str | None,
    vertical: bool,
) -> list[SectionFileRecord]:
    output_dir.mkdir(parents=True, exist_ok=True)
    used_names: set[str] = set()
    records: list[SectionFileRecord] = []
    writing_class = "vrtl" if vertical else "hltr"
    for section in sections:
        basename = _section_basename(section, used_names)
        path = output_dir / f"{basename}.xhtml"
        title = section.chapter_name or book_title or basename
        path.write_text(
            _XHTML_TEMPLATE.format(
                writing_class=writing_class,
                title=_escape_text(title),
                body=section.text,
            ),
            encoding="utf-8",
        )
        records.append(SectionFileRecord(section=section, path=path))
    return records


def _copy_images(output_dir: Path, images: list[ImageAsset]) -> list[Path]:
    paths: list[Path] = []
    for asset in images:
        target = output_dir / asset.href
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(asset.path, target)
        paths.append(target)
    return paths


def _build_metadata_payload(
    book: SectionBook,
    records: list[SectionFileRecord],
) -> dict:
    chapters_payload = []
    for record in records:
        chapters_payload.append(
            {
                "index": record.section.index,
                "file": record.path.name,
                "title": record.section.chapter_name,
                "start_line": record.section.start_line,
                "image_only": record.section.image_only,
            }
        )
    images_payload = [
        {
            "source": asset.source,
            "file": asset.href,
            "width": asset.width,
            "height": asset.height,
        }
        for asset in book.images.values()
    ]
    payload: dict[str, object] = {
        "version": 1,
        "title": book.metadata.title,
        "vertical": book.metadata.vertical,
        "chapters": chapters_payload,
        "images": images_payload,
    }
    if book.metadata.creator:
        payload["author"] = book.metadata.creator
    if book.metadata.subtitle:
        payload["subtitle"] = book.metadata.subtitle
    return payload


def write_book_package(output_dir: Path, book: SectionBook) -> BookPackage:
    sections = book.finish()
    records = _write_sections(
        output_dir,
        sections,
        book_title=book.metadata.title,
        vertical=book.metadata.vertical,
    )
    image_paths = _copy_images(output_dir, list(book.images.values()))
    metadata_path = output_dir / BOOK_METADATA_FILENAME
    metadata_path.write_text(
        json.dumps(_build_metadata_payload(book, records), ensure_ascii=False, indent=2),
        encoding="utf-8",
    )
    return BookPackage(
        output_dir=output_dir,
        section_records=records,
        image_paths=image_paths,
        metadata_path=metadata_path,
        book_title=book.metadata.title,
        book_author=book.metadata.creator,
    )


def load_book_metadata(book_dir: Path) -> LoadedBookMetadata | None:
    metadata_path = book_dir / BOOK_METADATA_FILENAME
    if not metadata_path.exists():
        return None
    try:
        payload = json.loads(metadata_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return None
    if not isinstance(payload, dict):
        return None
    title = payload.get("title")
    author = payload.get("author")
    vertical = payload.get("vertical")
    chapters = payload.get("chapters")
    images = payload.get("images")
    return LoadedBookMetadata(
        title=title if isinstance(title, str) else None,
        author=author if isinstance(author, str) else None,
        vertical=vertical if isinstance(vertical, bool) else True,
        chapters=[entry for entry in chapters if isinstance(entry, dict)] if isinstance(chapters, list) else [],
        images=[entry for entry in images if isinstance(entry, dict)] if isinstance(images, list) else [],
    )


__all__ = [
    "BOOK_METADATA_FILENAME",
    "BookPackage",
    "ImageAsset",
    "LoadedBookMetadata",
    "Section",
    "SectionBook",
    "load_book_metadata",
    "write_book_package",
]
