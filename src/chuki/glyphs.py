from __future__ import annotations

from typing import Mapping, Sequence

# Characters collapsed when they appear as an isolated pair: (replacement, escaped form).
_VERTICAL_PAIRS = {
    "<": ("《", "&lt;"),
    ">": ("》", "&gt;"),
    "＜": ("《", "＜"),
    "＞": ("》", "＞"),
}
_HORIZONTAL_PAIRS = {
    "＜": ("《", "＜"),
    "＞": ("》", "＞"),
}
_VERTICAL_GLYPHS = {
    "≪": "《",
    "≫": "》",
    "“": "〝",
    "”": "〟",
    "―": "─",
}
_ESCAPES = {
    "<": "&lt;",
    ">": "&gt;",
    "&": "&amp;",
}


def _is_isolated_pair(cells: Sequence[str], idx: int) -> bool:
    ch = cells[idx]
    if idx == 0 or cells[idx - 1] != ch:
        return False
    if idx >= 2 and cells[idx - 2] == ch:
        return False
    if idx + 1 < len(cells) and cells[idx + 1] == ch:
        return False
    return True


class CharacterMapper:
    """Writes literal characters to an output buffer with mode-dependent substitutions.

    ``out`` is a list of already-emitted pieces; a collapsing pair removes the
    piece written for its first half.
    """

    def __init__(self, replacements: Mapping[str, str] | None = None, *, vertical: bool = True) -> None:
        self.replacements = replacements
        self.vertical = vertical
        self._pairs = _VERTICAL_PAIRS if vertical else _HORIZONTAL_PAIRS

    def emit(self, out: list[str], cells: Sequence[str], idx: int) -> None:
        ch = cells[idx]
        if self.replacements is not None:
            replaced = self.replacements.get(ch)
            if replaced is not None:
                out.append(replaced)
                return
        pair = self._pairs.get(ch)
        if pair is not None and _is_isolated_pair(cells, idx):
            glyph, first_half = pair
            if out and out[-1] == first_half:
                out.pop()
                out.append(glyph)
                return
        if self.vertical:
            glyph = _VERTICAL_GLYPHS.get(ch)
            if glyph is not None:
                out.append(glyph)
                return
        out.append(_ESCAPES.get(ch, ch))

    def emit_range(self, out: list[str], cells: Sequence[str], start: int, end: int) -> None:
        for idx in range(start, end):
            self.emit(out, cells, idx)

    def render(self, text: str) -> str:
        out: list[str] = []
        self.emit_range(out, text, 0, len(text))
        return "".join(out)


__all__ = ["CharacterMapper"]
