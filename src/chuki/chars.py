from __future__ import annotations

_FULLWIDTH_DIGITS = str.maketrans("０１２３４５６７８９", "0123456789")
_KANJI_MARKS = set("々〆〇仝〻〓")
_KANJI_NEIGHBOUR_MARKS = set("ヶヵ")


def _is_ideograph(ch: str | None) -> bool:
    if not ch:
        return False
    code = ord(ch)
    return (
        0x4E00 <= code <= 0x9FFF
        or 0x3400 <= code <= 0x4DBF
        or 0x20000 <= code <= 0x2A6DF
        or 0x2A700 <= code <= 0x2B73F
        or 0x2B740 <= code <= 0x2B81F
        or 0x2B820 <= code <= 0x2CEAF
        or 0x2CEB0 <= code <= 0x2EBEF
        or 0x30000 <= code <= 0x3134F
        or 0xF900 <= code <= 0xFAFF
        or 0x2F800 <= code <= 0x2FA1F
        or ch in _KANJI_MARKS
    )


def is_kanji(prev: str | None, ch: str, next_ch: str | None) -> bool:
    """Return True when *ch* can be part of a ruby base.

    ヶ and ヵ only count when they sit next to an ideograph (三ヶ月, 一ヵ所).
    """
    if _is_ideograph(ch):
        return True
    if ch in _KANJI_NEIGHBOUR_MARKS:
        return _is_ideograph(prev) or _is_ideograph(next_ch)
    return False


def is_half(ch: str | None) -> bool:
    """Half-width printable character (ASCII without space, plus Latin letters)."""
    if not ch:
        return False
    code = ord(ch)
    return 0x21 <= code <= 0x7E or 0xC0 <= code <= 0x24F


def is_ascii_digit(ch: str | None) -> bool:
    return bool(ch) and "0" <= ch <= "9"


def full_to_half(text: str) -> str:
    return text.translate(_FULLWIDTH_DIGITS)


__all__ = ["full_to_half", "is_ascii_digit", "is_half", "is_kanji"]
