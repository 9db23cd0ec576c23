from __future__ import annotations

from .chars import is_ascii_digit, is_half, is_kanji
from .gaiji import ESCAPE_MARK, RESERVED_GLYPHS
from .glyphs import CharacterMapper
from .tables import AnnotationDictionary

RUBY_BASE_MARK = "｜"
READING_OPEN = "《"
READING_CLOSE = "》"
_ROTATE_MARKS = "!?"


def fold_escapes(text: str) -> tuple[list[str], set[int]]:
    """Split *text* into cells, merging each ``※`` escape with its reserved glyph.

    Returns the cells and the indices of cells holding an escaped glyph. Since
    the marker no longer occupies a cell, a base run that contains an escaped
    glyph keeps the same length as its reading.
    """
    cells: list[str] = []
    escaped: set[int] = set()
    idx = 0
    length = len(text)
    while idx < length:
        ch = text[idx]
        if ch == ESCAPE_MARK and idx + 1 < length and text[idx + 1] in RESERVED_GLYPHS:
            escaped.add(len(cells))
            cells.append(text[idx + 1])
            idx += 2
            continue
        cells.append(ch)
        idx += 1
    return cells, escaped


class RubyAnalyzer:
    """Turns literal spans with 《》 readings into ruby markup.

    A base run is either explicit (after ``｜``) or detected: consecutive
    ideographs, or a half-width run that may absorb ideographs. A run that is
    never followed by a reading is written out unchanged. Pairs of half-width
    digits or ``!?`` are wrapped in a rotation span when ``auto_yoko`` is set.
    """

    def __init__(self, annotations: AnnotationDictionary, *, auto_yoko: bool = True) -> None:
        self.auto_yoko = auto_yoko
        self._ruby_open = annotations.open_tag("ルビ前")
        self._ruby_reading = annotations.open_tag("ルビ")
        self._ruby_close = annotations.open_tag("ルビ後")
        self._rotate_open = annotations.open_tag("縦中横")
        self._rotate_close = annotations.open_tag("縦中横終わり")

    def render(
        self,
        out: list[str],
        text: str,
        *,
        suppressed: bool,
        mapper: CharacterMapper,
    ) -> None:
        cells, escaped = fold_escapes(text)
        length = len(cells)
        ruby_start = -1
        reading_start = -1
        inside = False
        alpha = False
        idx = 0
        while idx < length:
            ch = cells[idx]
            is_glyph = idx in escaped
            if not is_glyph:
                if (is_ascii_digit(ch) or ch in _ROTATE_MARKS) and self._can_rotate(
                    cells, idx, suppressed=suppressed, inside=inside
                ):
                    if ruby_start != -1:
                        mapper.emit_range(out, cells, ruby_start, idx)
                        ruby_start = -1
                    out.append(self._rotate_open)
                    mapper.emit_range(out, cells, idx, idx + 2)
                    out.append(self._rotate_close)
                    idx += 2
                    continue
                if ch == RUBY_BASE_MARK:
                    if ruby_start != -1:
                        mapper.emit_range(out, cells, ruby_start, idx)
                    ruby_start = idx + 1
                    inside = True
                    idx += 1
                    continue
                if ch == READING_OPEN:
                    reading_start = idx
                    inside = True
                    idx += 1
                    continue

            if inside:
                if ch == READING_CLOSE and not is_glyph:
                    if ruby_start != -1 and reading_start != -1:
                        self._emit_ruby(
                            out,
                            cells,
                            ruby_start,
                            reading_start,
                            idx,
                            suppressed=suppressed,
                            mapper=mapper,
                        )
                    inside = False
                    ruby_start = -1
                    reading_start = -1
                idx += 1
                continue

            prev = cells[idx - 1] if idx > 0 else None
            nxt = cells[idx + 1] if idx + 1 < length else None
            if ruby_start == -1:
                if is_glyph:
                    mapper.emit(out, cells, idx)
                elif is_kanji(prev, ch, nxt):
                    ruby_start = idx
                    alpha = False
                elif is_half(ch) or ch == " ":
                    ruby_start = idx
                    alpha = True
                else:
                    mapper.emit(out, cells, idx)
            elif is_glyph or (not is_kanji(prev, ch, nxt) and not (alpha and is_half(ch))):
                mapper.emit_range(out, cells, ruby_start, idx + 1)
                ruby_start = -1
            idx += 1

        if ruby_start != -1:
            mapper.emit_range(out, cells, ruby_start, length)
        elif reading_start != -1:
            mapper.emit_range(out, cells, reading_start, length)

    def _can_rotate(self, cells: list[str], idx: int, *, suppressed: bool, inside: bool) -> bool:
        if not self.auto_yoko or suppressed or inside:
            return False
        if idx + 1 >= len(cells):
            return False
        ch = cells[idx]
        nxt = cells[idx + 1]
        if is_ascii_digit(ch):
            if not is_ascii_digit(nxt):
                return False
        elif nxt not in _ROTATE_MARKS:
            return False
        if idx > 0 and is_half(cells[idx - 1]):
            return False
        if idx + 2 < len(cells) and is_half(cells[idx + 2]):
            return False
        return True

    def _emit_ruby(
        self,
        out: list[str],
        cells: list[str],
        base_start: int,
        reading_start: int,
        reading_end: int,
        *,
        suppressed: bool,
        mapper: CharacterMapper,
    ) -> None:
        base_len = reading_start - base_start
        reading_len = reading_end - reading_start - 1
        if suppressed or reading_len <= 0:
            mapper.emit_range(out, cells, base_start, reading_start)
            return
        if base_len <= 0:
            return
        if base_len == reading_len:
            for offset in range(base_len):
                out.append(self._ruby_open)
                mapper.emit(out, cells, base_start + offset)
                out.append(self._ruby_reading)
                mapper.emit(out, cells, reading_start + 1 + offset)
                out.append(self._ruby_close)
            return
        out.append(self._ruby_open)
        mapper.emit_range(out, cells, base_start, reading_start)
        out.append(self._ruby_reading)
        mapper.emit_range(out, cells, reading_start + 1, reading_end)
        out.append(self._ruby_close)


__all__ = ["RubyAnalyzer", "fold_escapes"]
