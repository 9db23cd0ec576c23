from __future__ import annotations

import re
from dataclasses import dataclass

from .gaiji import ESCAPE_MARK, RESERVED_GLYPHS
from .logging_utils import WarningCallback, debug_log, emit_warning
from .ruby import fold_escapes
from .tables import ForwardReferenceDictionary

FORWARD_REFERENCE_PATTERN = re.compile(r"^［＃「([^」]+)」(.+)］$")
_ITEM_PATTERN = re.compile(r"［＃.+?］|《[^》]*》|<[^<>]+>")
_CLOSING_SUFFIX = "終わり"

CHAR = "char"
MARKER = "marker"
READING = "reading"
TAG = "tag"
PASSTHROUGH = "passthrough"


@dataclass
class _Item:
    kind: str
    text: str
    name: str = ""
    closing: bool = False


def _tag_item(text: str) -> _Item:
    payload = text[2:-1]
    if payload.endswith(_CLOSING_SUFFIX):
        return _Item(TAG, text, name=payload[: -len(_CLOSING_SUFFIX)], closing=True)
    return _Item(TAG, text, name=payload)


def _split_chars(text: str, items: list[_Item]) -> None:
    idx = 0
    length = len(text)
    while idx < length:
        ch = text[idx]
        if ch == ESCAPE_MARK and idx + 1 < length and text[idx + 1] in RESERVED_GLYPHS:
            items.append(_Item(CHAR, text[idx : idx + 2]))
            idx += 2
            continue
        items.append(_Item(MARKER if ch == "｜" else CHAR, ch))
        idx += 1


def split_items(line: str) -> list[_Item]:
    items: list[_Item] = []
    pos = 0
    for match in _ITEM_PATTERN.finditer(line):
        if match.start() > pos:
            _split_chars(line[pos : match.start()], items)
        text = match.group()
        if text.startswith("［＃"):
            items.append(_tag_item(text))
        elif text.startswith("《"):
            items.append(_Item(READING, text))
        else:
            items.append(_Item(PASSTHROUGH, text))
        pos = match.end()
    if pos < len(line):
        _split_chars(line[pos:], items)
    return items


def find_target_start(items: list[_Item], end: int, target_length: int) -> int:
    """Return the item index where the before-tag goes for a phrase ending at *end*.

    Walks backward counting plain characters. Closing tags push their name and
    opening tags pop a matching name; an opening tag that does not match ends
    the walk just after it. Once the phrase is consumed, opening tags that
    close the remaining stack and a ruby base mark are taken in as well.
    """
    stack: list[str] = []
    idx = end - 1
    remaining = target_length
    while remaining > 0 and idx >= 0:
        item = items[idx]
        if item.kind == CHAR:
            remaining -= 1
        elif item.kind == TAG:
            if item.closing:
                stack.append(item.name)
            elif stack and stack[-1] == item.name:
                stack.pop()
            else:
                return idx + 1
        idx -= 1
    while idx >= 0:
        item = items[idx]
        if item.kind == TAG and not item.closing and stack and stack[-1] == item.name:
            stack.pop()
        elif item.kind != MARKER:
            break
        idx -= 1
    return idx + 1


def locate_phrase(items: list[_Item], end: int, target: list[str]) -> int | None:
    """Return the item index just after the last occurrence of *target* before *end*.

    When the phrase directly precedes *end* (only tags or readings in between)
    *end* itself is returned. A ruby reading right after the phrase stays with
    it. None means the phrase does not occur on the line.
    """
    plain = [(idx, items[idx].text[-1]) for idx in range(end) if items[idx].kind == CHAR]
    chars = [ch for _, ch in plain]
    length = len(target)
    for stop in range(len(chars), length - 1, -1):
        if chars[stop - length : stop] != target:
            continue
        if stop == len(chars):
            return end
        anchor = plain[stop - 1][0] + 1
        if anchor < end and items[anchor].kind == READING:
            anchor += 1
        return anchor
    return None


def resolve_forward_references(
    line: str,
    table: ForwardReferenceDictionary,
    *,
    on_warning: WarningCallback | None = None,
) -> str:
    """Rewrite ``［＃「X」に傍点］`` style annotations into before/after tag pairs."""
    if "［＃「" not in line:
        return line
    items = split_items(line)
    changed = False
    idx = 0
    while idx < len(items):
        item = items[idx]
        match = FORWARD_REFERENCE_PATTERN.match(item.text) if item.kind == TAG else None
        if match is None:
            idx += 1
            continue
        target, name = match.groups()
        rule = table.get(name)
        if rule is None:
            emit_warning(on_warning, f"前方参照注記の変換先がありません: {item.text}")
            idx += 1
            continue
        target_cells = fold_escapes(target)[0]
        anchor = locate_phrase(items, idx, target_cells)
        if anchor is None:
            anchor = idx
        begin = find_target_start(items, anchor, len(target_cells))
        debug_log(f"forward reference {item.text} -> {rule.before_tag}/{rule.after_tag}")
        if anchor == idx:
            if rule.after_tag:
                items[idx] = _tag_item(f"［＃{rule.after_tag}］")
                idx += 1
            else:
                del items[idx]
        else:
            # phrase is followed by other text, e.g. a closing quote
            del items[idx]
            if rule.after_tag:
                items.insert(anchor, _tag_item(f"［＃{rule.after_tag}］"))
                idx += 1
        items.insert(begin, _tag_item(f"［＃{rule.before_tag}］"))
        # the inserted before-tag shifts everything after it by one item
        idx += 1
        changed = True
    if not changed:
        return line
    return "".join(item.text for item in items)


__all__ = [
    "FORWARD_REFERENCE_PATTERN",
    "find_target_start",
    "locate_phrase",
    "resolve_forward_references",
    "split_items",
]
