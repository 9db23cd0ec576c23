from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Union

from bs4 import BeautifulSoup

from .chars import full_to_half
from .forward import FORWARD_REFERENCE_PATTERN
from .tables import AnnotationDictionary, AnnotationRule

__all__ = [
    "DictionaryAnnotation",
    "ForwardReference",
    "ImageReference",
    "IndentDirective",
    "Literal",
    "MalformedAnnotation",
    "PassthroughTag",
    "ReadingNote",
    "Token",
    "UnknownAnnotation",
    "tokenize_line",
]

ANNOTATION_PATTERN = re.compile(r"［＃.+?］|<[^<>]+>")

_DIGITS = r"([0-9０-９]+)"
_INDENT_WRAP = re.compile(rf"^ここから{_DIGITS}字下げ、折り返して{_DIGITS}字下げ")
_INDENT_WIDTH = re.compile(rf"^ここから{_DIGITS}字下げ、{_DIGITS}字詰め")
_INDENT_COMPOUND = re.compile(rf"^ここから{_DIGITS}字下げ、")
_INDENT_END = re.compile(r"^ここで字下げ終わり、")
_CAPTION = re.compile(r"「([^」]*)」")


@dataclass(frozen=True)
class Literal:
    text: str


@dataclass(frozen=True)
class DictionaryAnnotation:
    source: str
    rule: AnnotationRule


@dataclass(frozen=True)
class ImageReference:
    """An embedded image; ``title`` is the caption or alt text when one is given."""

    source: str
    path: str
    title: str | None = None


@dataclass(frozen=True)
class ReadingNote:
    source: str
    text: str


@dataclass(frozen=True)
class IndentDirective:
    source: str
    kind: str
    args: tuple[int, ...] = ()


@dataclass(frozen=True)
class ForwardReference:
    source: str
    target: str
    name: str


@dataclass(frozen=True)
class PassthroughTag:
    source: str


@dataclass(frozen=True)
class MalformedAnnotation:
    source: str
    reason: str


@dataclass(frozen=True)
class UnknownAnnotation:
    source: str
    name: str


Token = Union[
    Literal,
    DictionaryAnnotation,
    ImageReference,
    ReadingNote,
    IndentDirective,
    ForwardReference,
    PassthroughTag,
    MalformedAnnotation,
    UnknownAnnotation,
]


def _to_int(value: str) -> int:
    return int(full_to_half(value))


def _classify_image(source: str, name: str) -> Token | None:
    open_idx = name.rfind("（")
    if open_idx == -1:
        return None
    if open_idx == 0 and name.endswith("）") and "." not in name:
        return ReadingNote(source, name[1:-1])
    close_idx = name.find("）", open_idx + 1)
    inner = name[open_idx + 1 :] if close_idx == -1 else name[open_idx + 1 : close_idx]
    if "." not in inner:
        return None
    if close_idx == -1:
        return MalformedAnnotation(source, "image path is not closed")
    path = inner.split("、", 1)[0].strip()
    if not path or "." not in path:
        return MalformedAnnotation(source, "image path is empty")
    label = name[:open_idx]
    caption = _CAPTION.search(label)
    title = caption.group(1) if caption else label.strip(" 　")
    return ImageReference(source, path, title or None)


def _classify_indent(source: str, name: str) -> IndentDirective | None:
    match = _INDENT_WRAP.match(name)
    if match:
        return IndentDirective(source, "wrap", (_to_int(match.group(1)), _to_int(match.group(2))))
    match = _INDENT_WIDTH.match(name)
    if match:
        return IndentDirective(source, "width", (_to_int(match.group(1)), _to_int(match.group(2))))
    match = _INDENT_COMPOUND.match(name)
    if match:
        return IndentDirective(source, "compound", (_to_int(match.group(1)),))
    if _INDENT_END.match(name):
        return IndentDirective(source, "end")
    return None


def _classify_annotation(source: str, dictionary: AnnotationDictionary) -> Token:
    name = source[2:-1]
    rule = dictionary.get(name)
    if rule is not None:
        return DictionaryAnnotation(source, rule)
    token = _classify_image(source, name)
    if token is not None:
        return token
    token = _classify_indent(source, name)
    if token is not None:
        return token
    match = FORWARD_REFERENCE_PATTERN.match(source)
    if match:
        return ForwardReference(source, match.group(1), match.group(2))
    return UnknownAnnotation(source, name)


def _classify_img_tag(source: str) -> Token:
    soup = BeautifulSoup(source, "html.parser")
    img = soup.find("img")
    src = img.get("src") if img is not None else None
    if not isinstance(src, str) or not src.strip():
        return MalformedAnnotation(source, "img tag has no src")
    alt = img.get("alt")
    return ImageReference(source, src.strip(), alt if isinstance(alt, str) and alt else None)


def _classify_markup(source: str) -> Token | None:
    lowered = source.lower()
    if lowered.startswith("<img "):
        return _classify_img_tag(source)
    if lowered.startswith("<a ") or lowered == "</a>":
        return PassthroughTag(source)
    return None


def tokenize_line(line: str, dictionary: AnnotationDictionary) -> list[Token]:
    """Split a resolved line into literal runs and annotation tokens.

    Angle-bracket runs other than ``<img>``, ``<a>`` and ``</a>`` stay part of
    the surrounding literal text.
    """
    tokens: list[Token] = []
    pos = 0
    for match in ANNOTATION_PATTERN.finditer(line):
        source = match.group()
        if source.startswith("<"):
            token = _classify_markup(source)
            if token is None:
                continue
        else:
            token = _classify_annotation(source, dictionary)
        if match.start() > pos:
            tokens.append(Literal(line[pos : match.start()]))
        tokens.append(token)
        pos = match.end()
    if pos < len(line):
        tokens.append(Literal(line[pos:]))
    return tokens
