from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, Iterator, TextIO

from .forward import resolve_forward_references
from .gaiji import AccentDecomposer, CodeGaijiResolver, convert_gaiji
from .glyphs import CharacterMapper
from .logging_utils import WarningCallback, debug_log, emit_warning
from .ruby import RubyAnalyzer
from .tables import ConversionTables
from .tokens import (
    DictionaryAnnotation,
    ForwardReference,
    ImageReference,
    IndentDirective,
    Literal,
    MalformedAnnotation,
    PassthroughTag,
    ReadingNote,
    Token,
    UnknownAnnotation,
    tokenize_line,
)

__all__ = [
    "BookMetadata",
    "ConversionContext",
    "Converter",
    "ConverterOptions",
    "to_plain",
]

COMMENT_BLOCK_MARKER = "-" * 55
CHAPTER_NAME_LIMIT = 64
INDENT_SUFFIX = "字下げ"
INDENT_END_NAME = "ここで字下げ終わり"

_PLAIN_STRIP = re.compile(r"<[^>]+>|《[^》]+》|［＃.+?］|[｜※]")
_TITLE_DECORATION = "=-―─"


def to_plain(text: str) -> str:
    """Strip tags, readings, annotations and ruby/escape marks from *text*."""
    return _PLAIN_STRIP.sub("", text).strip(" 　")


@dataclass(frozen=True)
class ConverterOptions:
    auto_yoko: bool = True
    with_mark_id: bool = False
    hide_comment_block: bool = True
    force_page_break: int = 500
    force_page_break_empty_lines: int = 2


@dataclass(frozen=True)
class BookMetadata:
    """Header facts discovered before conversion; line numbers start at 0, -1 means absent."""

    title: str | None = None
    title_line: int = -1
    creator: str | None = None
    creator_line: int = -1
    subtitle: str | None = None
    subtitle_line: int = -1
    vertical: bool = True
    image_section_lines: frozenset[int] = field(default_factory=frozenset)


@dataclass
class ConversionContext:
    page_line_num: int = 0
    section_char_length: int = 0
    id_num: int = 0
    id_line_num: int = -1
    in_indent: bool = False
    chapter_started: bool = False
    vertical: bool = True


@dataclass
class _LineState:
    buffer: list[str] = field(default_factory=list)
    suffix: list[str] = field(default_factory=list)
    has_block: bool = False
    ruby_suppress_level: int = 0


class Converter:
    """Converts annotated Aozora Bunko text into XHTML, line by line.

    ``writer`` is the section sink. It must provide ``next_section(out,
    line_number)``, ``update_chapter_name(name)`` and
    ``get_image_file_path(raw_path)``; the last may return None to drop the
    image from the flow.
    """

    def __init__(
        self,
        tables: ConversionTables,
        writer,
        *,
        options: ConverterOptions | None = None,
        gaiji_resolver=None,
        latin_decomposer=None,
        on_warning: WarningCallback | None = None,
    ) -> None:
        missing = tables.annotations.missing_structural_tags()
        if missing:
            raise ValueError(f"Annotation dictionary is missing required entries: {', '.join(missing)}")
        self.tables = tables
        self.writer = writer
        self.options = options or ConverterOptions()
        self.gaiji_resolver = gaiji_resolver or CodeGaijiResolver()
        self.latin_decomposer = latin_decomposer or AccentDecomposer()
        self.on_warning = on_warning
        self._ruby = RubyAnalyzer(tables.annotations, auto_yoko=self.options.auto_yoko)
        self._mappers = {
            True: CharacterMapper(tables.replacements, vertical=True),
            False: CharacterMapper(tables.replacements, vertical=False),
        }

    def _tag(self, name: str) -> str:
        return self.tables.annotations.open_tag(name)

    def _warn(self, message: str) -> None:
        emit_warning(self.on_warning, message)

    def new_context(self, metadata: BookMetadata | None = None) -> ConversionContext:
        vertical = metadata.vertical if metadata is not None else True
        return ConversionContext(vertical=vertical)

    def convert(
        self,
        src: Iterable[str],
        out: TextIO,
        metadata: BookMetadata | None = None,
    ) -> ConversionContext:
        """Convert every line of *src* into *out* and return the final context."""
        metadata = metadata or BookMetadata()
        context = self.new_context(metadata)
        lines: Iterator[str] = iter(src)
        line_num = -1
        in_comment = False
        while True:
            raw = next(lines, None)
            if raw is None:
                break
            line = raw.rstrip("\r\n")
            line_num += 1
            context.page_line_num += 1

            if line_num == metadata.title_line:
                self._write_heading(out, line, line_num, context, "表題前", "表題後")
                continue
            if line_num == metadata.creator_line:
                self._write_heading(out, line, line_num, context, "著者前", "著者後")
                continue

            if self.options.hide_comment_block:
                if line.startswith(COMMENT_BLOCK_MARKER):
                    in_comment = not in_comment
                    continue
                if in_comment:
                    continue

            threshold = self.options.force_page_break
            if threshold > 0 and context.page_line_num > threshold:
                blank_count = 0
                while not line:
                    blank_count += 1
                    raw = next(lines, None)
                    if raw is None:
                        return context
                    line = raw.rstrip("\r\n")
                    line_num += 1
                    context.page_line_num += 1
                if blank_count >= self.options.force_page_break_empty_lines:
                    if self._starts_with_page_break(line):
                        debug_log(f"line {line_num}: explicit page break replaces forced break")
                    else:
                        debug_log(f"line {line_num}: forced page break after {blank_count} blank lines")
                        self.writer.next_section(out, line_num)
                        context.page_line_num = 0
                        context.section_char_length = 0
                        context.chapter_started = False
                else:
                    for _ in range(blank_count):
                        self.convert_line(out, "", line_num, context)
            self.convert_line(out, line, line_num, context)
        return context

    def _write_heading(
        self,
        out: TextIO,
        line: str,
        line_num: int,
        context: ConversionContext,
        open_name: str,
        close_name: str,
    ) -> None:
        out.write(self._tag(open_name))
        self.convert_line(out, line, line_num, context, has_block=True)
        out.write(self._tag(close_name))
        out.write("\n")
        context.chapter_started = False

    def _starts_with_page_break(self, line: str) -> bool:
        if not line.startswith("［＃"):
            return False
        end = line.find("］")
        rule = self.tables.annotations.get(line[2:end]) if end != -1 else None
        return rule is not None and rule.page_break

    def resolve_line(self, line: str) -> str:
        """Apply gaiji conversion and forward-reference rewriting to a raw line."""
        line = convert_gaiji(
            line,
            self.gaiji_resolver,
            self.latin_decomposer,
            escape=True,
            on_warning=self.on_warning,
        )
        return resolve_forward_references(line, self.tables.forward_references, on_warning=self.on_warning)

    def convert_line(
        self,
        out: TextIO,
        line: str,
        line_num: int,
        context: ConversionContext,
        *,
        has_block: bool = False,
    ) -> None:
        resolved = self.resolve_line(line)
        state = _LineState(has_block=has_block)
        tokens = tokenize_line(resolved, self.tables.annotations)
        for index, token in enumerate(tokens):
            at_line_end = index == len(tokens) - 1
            self._dispatch(out, token, line_num, context, state, at_line_end=at_line_end)
        state.buffer.extend(state.suffix)
        text = "".join(state.buffer)
        self._print_text_line(out, text, context, has_block=state.has_block)
        context.section_char_length += len(text)

    def _dispatch(
        self,
        out: TextIO,
        token: Token,
        line_num: int,
        context: ConversionContext,
        state: _LineState,
        *,
        at_line_end: bool,
    ) -> None:
        if isinstance(token, Literal):
            self._emit_literal(token.text, line_num, context, state)
        elif isinstance(token, DictionaryAnnotation):
            self._emit_dictionary(out, token, line_num, context, state, at_line_end=at_line_end)
        elif isinstance(token, IndentDirective):
            self._emit_indent(token, context, state)
        elif isinstance(token, ImageReference):
            self._emit_image(token, context, state)
        elif isinstance(token, ReadingNote):
            state.buffer.append(self._tag("行右小書き"))
            state.buffer.append(self._mappers[context.vertical].render(token.text))
            state.buffer.append(self._tag("行右小書き終わり"))
        elif isinstance(token, PassthroughTag):
            state.buffer.append(token.source)
        elif isinstance(token, ForwardReference):
            # the resolver already reported the missing rule
            debug_log(f"line {line_num}: dropped forward reference {token.source}")
        elif isinstance(token, UnknownAnnotation):
            self._warn(f"注記未変換 ({line_num}): {token.source}")
        elif isinstance(token, MalformedAnnotation):
            self._warn(f"注記エラー ({line_num}) {token.reason}: {token.source}")
            state.buffer.append(self._mappers[context.vertical].render(token.source))
        else:
            raise TypeError(f"Unsupported token: {token!r}")

    def _emit_literal(
        self,
        text: str,
        line_num: int,
        context: ConversionContext,
        state: _LineState,
    ) -> None:
        if line_num != context.id_line_num:
            context.id_num += 1
            context.id_line_num = line_num
        self._ruby.render(
            state.buffer,
            text,
            suppressed=state.ruby_suppress_level > 0,
            mapper=self._mappers[context.vertical],
        )
        if not context.chapter_started:
            name = to_plain(text).strip(_TITLE_DECORATION)
            if name:
                context.chapter_started = True
                self._update_chapter_name(name)

    def _update_chapter_name(self, name: str) -> None:
        name = name[:CHAPTER_NAME_LIMIT]
        debug_log(f"chapter name: {name}")
        self.writer.update_chapter_name(name)

    def _emit_dictionary(
        self,
        out: TextIO,
        token: DictionaryAnnotation,
        line_num: int,
        context: ConversionContext,
        state: _LineState,
        *,
        at_line_end: bool,
    ) -> None:
        rule = token.rule
        if rule.ruby_suppress_start:
            state.ruby_suppress_level += 1
        elif rule.ruby_suppress_end:
            state.ruby_suppress_level -= 1

        if rule.page_break:
            text = "".join(state.buffer)
            self._print_text_line(out, text, context, has_block=state.has_block, page_end=True)
            context.section_char_length += len(text)
            if context.section_char_length > 0:
                debug_log(f"line {line_num}: page break {token.source}")
                self.writer.next_section(out, line_num)
                context.page_line_num = 0
                context.section_char_length = 0
                context.chapter_started = False
                state.has_block = at_line_end
            else:
                debug_log(f"line {line_num}: skipped page break on empty section")
            state.buffer.clear()

        if rule.name.endswith(INDENT_SUFFIX):
            if context.in_indent:
                state.buffer.append(self._tag("字下げ省略"))
            context.in_indent = rule.close_tag is None
        elif rule.name == INDENT_END_NAME:
            context.in_indent = False

        state.buffer.append(rule.open_tag)
        if rule.close_tag:
            state.suffix.insert(0, rule.close_tag)
        if rule.no_break:
            state.has_block = True

    def _emit_indent(self, token: IndentDirective, context: ConversionContext, state: _LineState) -> None:
        if token.kind == "end":
            state.buffer.append(self._tag(INDENT_END_NAME))
            context.in_indent = False
            return
        if context.in_indent:
            state.buffer.append(self._tag("字下げ省略"))
        else:
            context.in_indent = True
        if token.kind == "wrap":
            indent, wrap = token.args
            state.buffer.append(f"{self._tag('折り返し1')}{wrap}")
            state.buffer.append(f"{self._tag('折り返し2')}{indent - wrap}")
            state.buffer.append(self._tag("折り返し3"))
        elif token.kind == "width":
            indent, width = token.args
            state.buffer.append(f"{self._tag('字下げ字詰め1')}{indent}")
            state.buffer.append(f"{self._tag('字下げ字詰め2')}{width}")
            state.buffer.append(self._tag("字下げ字詰め3"))
        else:
            state.buffer.append(f"{self._tag('字下げ複合1')}{token.args[0]}")
            state.buffer.append(self._tag("字下げ複合2"))
        state.has_block = True

    def _emit_image(self, token: ImageReference, context: ConversionContext, state: _LineState) -> None:
        state.has_block = True
        file_name = self.writer.get_image_file_path(token.path)
        if file_name is None:
            debug_log(f"image deferred: {token.path}")
            return
        state.buffer.append(self._tag("画像開始"))
        state.buffer.append(file_name)
        state.buffer.append(self._tag("画像終了"))
        if not context.chapter_started:
            self._update_chapter_name(token.title or token.path.rsplit("/", 1)[-1])

    def _print_text_line(
        self,
        out: TextIO,
        text: str,
        context: ConversionContext,
        *,
        has_block: bool,
        page_end: bool = False,
    ) -> None:
        if has_block:
            if text:
                out.write(text)
            return
        if not text:
            if not page_end:
                out.write(self._tag("改行"))
                out.write("\n")
            return
        if self.options.with_mark_id:
            out.write(f'<p id="kobo.{context.id_num}.1">')
        else:
            out.write("<p>")
        out.write(text)
        out.write("</p>\n")
