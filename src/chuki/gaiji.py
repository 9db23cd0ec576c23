from __future__ import annotations

import re
import unicodedata
from typing import Mapping

from .chars import is_half
from .logging_utils import WarningCallback, debug_log, emit_warning

GAIJI_PATTERN = re.compile(r"※［＃.+?］|〔.+?〕|／″?＼")
# Resolved glyphs that would otherwise be read as ruby or annotation syntax.
RESERVED_GLYPHS = frozenset("《》｜＃")
ESCAPE_MARK = "※"
UNRESOLVED_GLYPH = "〓"
MAX_PAYLOAD_VARIANTS = 4

_UNICODE_CODE = re.compile(r"^(?:[Uu]\+|unicode|UNICODE)([0-9A-Fa-f]{4,6})$")
_JIS_CODE = re.compile(r"^(?:第[34]水準)?([12])-(\d{1,2})-(\d{1,2})$")

DEFAULT_GLYPH_NAMES: Mapping[str, str] = {
    "始め二重山括弧": "《",
    "終わり二重山括弧": "》",
    "始め角括弧": "［",
    "終わり角括弧": "］",
    "始めきっこう（亀甲）括弧": "〔",
    "終わりきっこう（亀甲）括弧": "〕",
    "縦線": "｜",
    "井げた": "＃",
    "米印": "※",
    "二の字点": "〻",
    "くの字点": "〳",
    "濁点付きくの字点": "〴",
    "ます記号": "〼",
}


class CodeGaijiResolver:
    """Resolve gaiji payloads written as Unicode or JIS X 0213 codes.

    Handles ``U+6DB6`` / ``unicode6DB6`` style code points, men-ku-ten codes
    such as ``1-84-77`` or ``第3水準1-84-77`` (decoded through the
    ``euc_jis_2004`` codec), and a small table of named glyphs.
    """

    def __init__(self, names: Mapping[str, str] | None = None) -> None:
        self._names = dict(DEFAULT_GLYPH_NAMES if names is None else names)

    def resolve(self, payload: str) -> str | None:
        value = payload.strip()
        if not value:
            return None
        name = value.strip("「」")
        if name in self._names:
            return self._names[name]
        match = _UNICODE_CODE.match(value)
        if match:
            try:
                return chr(int(match.group(1), 16))
            except (ValueError, OverflowError):
                return None
        match = _JIS_CODE.match(value)
        if match:
            return _decode_jis(int(match.group(1)), int(match.group(2)), int(match.group(3)))
        return None


def _decode_jis(plane: int, row: int, cell: int) -> str | None:
    if not (1 <= row <= 94 and 1 <= cell <= 94):
        return None
    raw = bytes([0xA0 + row, 0xA0 + cell])
    if plane == 2:
        raw = b"\x8f" + raw
    try:
        decoded = raw.decode("euc_jis_2004")
    except UnicodeDecodeError:
        return None
    return decoded or None


_COMBINING_MARKS = {
    "'": "\u0301",
    "`": "\u0300",
    "^": "\u0302",
    ":": "\u0308",
    "~": "\u0303",
    "&": "\u030a",
    ",": "\u0327",
    "_": "\u0304",
}
_LATIN_LIGATURES = (
    ("AE&", "Æ"),
    ("ae&", "æ"),
    ("OE&", "Œ"),
    ("oe&", "œ"),
    ("s&", "ß"),
    ("O/", "Ø"),
    ("o/", "ø"),
)


class AccentDecomposer:
    """Compose Latin letters written in the accent-decomposition notation (e'tiquette)."""

    def decompose(self, text: str) -> str:
        result: list[str] = []
        idx = 0
        length = len(text)
        while idx < length:
            ligature = _match_ligature(text, idx)
            if ligature is not None:
                sequence, glyph = ligature
                result.append(glyph)
                idx += len(sequence)
                continue
            ch = text[idx]
            mark = text[idx + 1] if idx + 1 < length else ""
            if ch.isalpha() and mark in _COMBINING_MARKS:
                composed = unicodedata.normalize("NFC", ch + _COMBINING_MARKS[mark])
                if len(composed) == 1:
                    result.append(composed)
                    idx += 2
                    continue
            result.append(ch)
            idx += 1
        return "".join(result)


def _match_ligature(text: str, idx: int) -> tuple[str, str] | None:
    for sequence, glyph in _LATIN_LIGATURES:
        if text.startswith(sequence, idx):
            return sequence, glyph
    return None


def _resolve_payload(payload: str, resolver) -> str | None:
    values = payload.split("、")
    for value in values[:MAX_PAYLOAD_VARIANTS]:
        glyph = resolver.resolve(value)
        if glyph:
            return glyph
    return None


def convert_gaiji(
    line: str,
    resolver,
    decomposer,
    *,
    escape: bool = True,
    on_warning: WarningCallback | None = None,
) -> str:
    """Replace gaiji annotations, accent notation and kunoji marks in *line*.

    Reserved glyphs produced by a gaiji annotation are prefixed with ``※`` when
    *escape* is set so the ruby scanner keeps them as literal characters.
    """
    if "※" not in line and "〔" not in line and "／" not in line:
        return line

    def _replace(match: re.Match[str]) -> str:
        notation = match.group()
        if notation[0] == "※":
            payload = notation[3:-1]
            glyph = _resolve_payload(payload, resolver)
            if glyph is None:
                name = payload.split("、")[0]
                emit_warning(on_warning, f"[外字未変換] : {notation}")
                return f"{UNRESOLVED_GLYPH}［＃行右小書き］（{name}）［＃行右小書き終わり］"
            debug_log(f"gaiji {notation} -> {glyph}")
            if escape and len(glyph) == 1 and glyph in RESERVED_GLYPHS:
                return ESCAPE_MARK + glyph
            return glyph
        if notation[0] == "〔":
            if not is_half(notation[1]):
                return notation
            return decomposer.decompose(notation[1:-1])
        if notation[1] == "″":
            return "〴〵"
        return "〳〵"

    return GAIJI_PATTERN.sub(_replace, line)


__all__ = [
    "AccentDecomposer",
    "CodeGaijiResolver",
    "ESCAPE_MARK",
    "GAIJI_PATTERN",
    "RESERVED_GLYPHS",
    "convert_gaiji",
]
