from __future__ import annotations

import argparse
import sys
from dataclasses import replace
from importlib import metadata
from pathlib import Path

from rich.console import Console
from rich.markup import escape

import tomllib

from .book_io import SectionBook, write_book_package
from .config import OptionsFile, TablePaths, load_options_file
from .core import BookMetadata, Converter, ConverterOptions
from .logging_utils import set_debug_logging
from .tables import load_tables

FALLBACK_ENCODINGS = ("utf-8-sig", "cp932", "shift_jis", "euc_jp")


def _read_local_version() -> str | None:
    try:
        pyproject_path = Path(__file__).resolve().parents[2] / "pyproject.toml"
    except IndexError:  # pragma: no cover - defensive
        return None
    try:
        with pyproject_path.open("rb") as fh:
            data = tomllib.load(fh)
    except (FileNotFoundError, tomllib.TOMLDecodeError):
        return None
    return data.get("project", {}).get("version")


try:
    __version__ = metadata.version("chuki")
except metadata.PackageNotFoundError:
    __version__ = _read_local_version() or "0.0.0+unknown"


def _add_version_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"chuki {__version__}",
    )


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        description="Aozora Bunko annotated text → XHTML sections.",
    )
    _add_version_flag(ap)
    ap.add_argument("input_path", help="Path to the annotated .txt file")
    ap.add_argument(
        "-o",
        "--output-dir",
        help="Directory for the generated sections (default: next to the input, named after it)",
    )
    ap.add_argument("--config", help="TOML file with [converter] and [tables] settings")
    ap.add_argument(
        "--encoding",
        help="Input encoding. Default tries UTF-8, then cp932, shift_jis and euc_jp.",
    )
    ap.add_argument(
        "--horizontal",
        action="store_true",
        help="Emit horizontal-writing markup instead of vertical.",
    )
    ap.add_argument(
        "--no-auto-yoko",
        action="store_true",
        help="Do not rotate two-character digit or !? runs.",
    )
    ap.add_argument(
        "--mark-id",
        action="store_true",
        help='Add kobo.N.1 ids to paragraphs (<p id="kobo.N.1">).',
    )
    ap.add_argument(
        "--show-comment-block",
        action="store_true",
        help="Keep the dashed comment block that describes the notation.",
    )
    ap.add_argument(
        "--force-page-break",
        type=int,
        metavar="N",
        help="Start a new section after N lines at the next blank run (0 disables; default 500).",
    )
    ap.add_argument(
        "--force-page-break-empty",
        type=int,
        metavar="N",
        help="Blank lines needed for a forced section break (default 2).",
    )
    ap.add_argument("--title-line", type=int, default=-1, metavar="N", help="0-based line holding the title")
    ap.add_argument("--author-line", type=int, default=-1, metavar="N", help="0-based line holding the author")
    ap.add_argument("--title", help="Book title recorded in the output metadata")
    ap.add_argument("--author", help="Book author recorded in the output metadata")
    ap.add_argument("--tags", help="Annotation dictionary (chuki_tag.txt format)")
    ap.add_argument("--suffix-tags", help="Forward-reference dictionary (chuki_tag_suf.txt format)")
    ap.add_argument("--replace", help="Single-character replacement table (replace.txt format)")
    ap.add_argument("--debug", action="store_true", help="Print dispatch trace lines.")
    return ap


def _decode_input(data: bytes, encoding: str | None) -> str:
    if encoding:
        try:
            return data.decode(encoding)
        except (LookupError, UnicodeDecodeError) as exc:
            raise SystemExit(f"Could not decode input as {encoding}: {exc}") from exc
    for candidate in FALLBACK_ENCODINGS:
        try:
            return data.decode(candidate)
        except UnicodeDecodeError:
            continue
    raise SystemExit(f"Could not decode input with any of: {', '.join(FALLBACK_ENCODINGS)}")


def _resolve_options(args: argparse.Namespace, base: ConverterOptions) -> ConverterOptions:
    options = base
    overrides: dict[str, object] = {}
    if args.no_auto_yoko:
        overrides["auto_yoko"] = False
    if args.mark_id:
        overrides["with_mark_id"] = True
    if args.show_comment_block:
        overrides["hide_comment_block"] = False
    if args.force_page_break is not None:
        if args.force_page_break < 0:
            raise SystemExit("--force-page-break must be zero or positive.")
        overrides["force_page_break"] = args.force_page_break
    if args.force_page_break_empty is not None:
        if args.force_page_break_empty < 0:
            raise SystemExit("--force-page-break-empty must be zero or positive.")
        overrides["force_page_break_empty_lines"] = args.force_page_break_empty
    if overrides:
        options = replace(options, **overrides)
    return options


def _resolve_table_paths(args: argparse.Namespace, base: TablePaths) -> TablePaths:
    return TablePaths(
        tags=Path(args.tags) if args.tags else base.tags,
        suffix_tags=Path(args.suffix_tags) if args.suffix_tags else base.suffix_tags,
        replace=Path(args.replace) if args.replace else base.replace,
    )


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]

    parser = build_parser()
    if not argv:
        parser.print_help()
        return 0
    args = parser.parse_args(argv)

    inp_path = Path(args.input_path)
    if not inp_path.is_file():
        raise FileNotFoundError(f"Input path not found: {inp_path}")

    set_debug_logging(args.debug)
    console = Console(stderr=True)
    warning_count = 0

    def _on_warning(message: str) -> None:
        nonlocal warning_count
        warning_count += 1
        console.print(f"[yellow]warning[/yellow] {escape(message)}")

    config = OptionsFile(options=ConverterOptions(), tables=TablePaths())
    if args.config:
        try:
            config = load_options_file(Path(args.config))
        except ValueError as exc:
            raise SystemExit(str(exc)) from exc
    options = _resolve_options(args, config.options)
    table_paths = _resolve_table_paths(args, config.tables)
    for table_path in (table_paths.tags, table_paths.suffix_tags):
        if table_path is not None and not table_path.is_file():
            raise SystemExit(f"Table file not found: {table_path}")

    tables = load_tables(
        table_paths.tags,
        table_paths.suffix_tags,
        table_paths.replace,
        on_warning=_on_warning,
    )
    book_metadata = BookMetadata(
        title=args.title,
        title_line=args.title_line,
        creator=args.author,
        creator_line=args.author_line,
        vertical=not args.horizontal,
    )
    book = SectionBook(inp_path.parent, book_metadata, on_warning=_on_warning)
    try:
        converter = Converter(tables, book, options=options, on_warning=_on_warning)
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc

    text = _decode_input(inp_path.read_bytes(), args.encoding)
    with console.status(f"Converting {inp_path.name}…"):
        converter.convert(text.splitlines(), book.out, book_metadata)
    output_dir = Path(args.output_dir) if args.output_dir else inp_path.with_suffix("")
    package = write_book_package(output_dir, book)

    console.print(
        f"Wrote {len(package.section_records)} section(s) and {len(package.image_paths)} image(s) "
        f"to {escape(str(output_dir))}"
        + (f" with {warning_count} warning(s)" if warning_count else "")
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
