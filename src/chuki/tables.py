from __future__ import annotations

from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping

from .logging_utils import WarningCallback, emit_warning

TAG_FILENAME = "chuki_tag.txt"
SUFFIX_TAG_FILENAME = "chuki_tag_suf.txt"
REPLACE_FILENAME = "replace.txt"

_FLAG_FIELDS = {
    "1": "no_break",
    "2": "ruby_suppress_start",
    "3": "ruby_suppress_end",
    "P": "page_break",
}

# Entries the converter emits on its own, independent of the source text.
STRUCTURAL_TAGS = (
    "改行",
    "ルビ前",
    "ルビ",
    "ルビ後",
    "縦中横",
    "縦中横終わり",
    "画像開始",
    "画像終了",
    "行右小書き",
    "行右小書き終わり",
    "字下げ省略",
    "折り返し1",
    "折り返し2",
    "折り返し3",
    "字下げ字詰め1",
    "字下げ字詰め2",
    "字下げ字詰め3",
    "字下げ複合1",
    "字下げ複合2",
    "ここで字下げ終わり",
    "表題前",
    "表題後",
    "著者前",
    "著者後",
)


@dataclass(frozen=True)
class AnnotationRule:
    name: str
    open_tag: str
    close_tag: str | None = None
    no_break: bool = False
    ruby_suppress_start: bool = False
    ruby_suppress_end: bool = False
    page_break: bool = False


@dataclass(frozen=True)
class ForwardReferenceRule:
    name: str
    before_tag: str
    after_tag: str | None = None
    alias: str | None = None


@dataclass(frozen=True)
class AnnotationDictionary:
    rules: Mapping[str, AnnotationRule] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "rules", MappingProxyType(dict(self.rules)))

    def __contains__(self, name: object) -> bool:
        return name in self.rules

    def __len__(self) -> int:
        return len(self.rules)

    def get(self, name: str) -> AnnotationRule | None:
        return self.rules.get(name)

    def open_tag(self, name: str) -> str:
        rule = self.rules.get(name)
        if rule is None:
            raise KeyError(f"Annotation dictionary has no entry for '{name}'.")
        return rule.open_tag

    def missing_structural_tags(self) -> list[str]:
        return [name for name in STRUCTURAL_TAGS if name not in self.rules]


@dataclass(frozen=True)
class ForwardReferenceDictionary:
    rules: Mapping[str, ForwardReferenceRule] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "rules", MappingProxyType(dict(self.rules)))

    def __contains__(self, name: object) -> bool:
        return name in self.rules

    def __len__(self) -> int:
        return len(self.rules)

    def get(self, name: str) -> ForwardReferenceRule | None:
        return self.rules.get(name)


@dataclass(frozen=True)
class ConversionTables:
    annotations: AnnotationDictionary
    forward_references: ForwardReferenceDictionary
    replacements: Mapping[str, str] | None = None

    def __post_init__(self) -> None:
        if self.replacements is not None:
            object.__setattr__(self, "replacements", MappingProxyType(dict(self.replacements)))


def _iter_table_lines(lines: Iterable[str]) -> Iterator[tuple[int, str]]:
    for line_num, raw in enumerate(lines, start=1):
        line = raw.rstrip("\r\n")
        if not line or line.startswith("#"):
            continue
        yield line_num, line


def _read_table_text(path: Path | None, default_name: str) -> tuple[str, list[str]]:
    if path is None:
        data_path = resources.files("chuki").joinpath("data").joinpath(default_name)
        return default_name, data_path.read_text("utf-8").splitlines()
    return path.name, path.read_text(encoding="utf-8").splitlines()


def parse_annotation_rules(
    lines: Iterable[str],
    *,
    source_name: str = TAG_FILENAME,
    on_warning: WarningCallback | None = None,
) -> AnnotationDictionary:
    rules: dict[str, AnnotationRule] = {}
    for line_num, line in _iter_table_lines(lines):
        values = line.split("\t")
        if len(values) < 2 or not values[0]:
            emit_warning(on_warning, f"[ERROR] {source_name} ({line_num}) : {line}")
            continue
        name = values[0]
        close_tag = values[2] if len(values) > 2 and values[2] else None
        flags: dict[str, bool] = {}
        if len(values) > 3 and values[3]:
            flag_field = _FLAG_FIELDS.get(values[3][0])
            if flag_field is None:
                emit_warning(
                    on_warning,
                    f"[ERROR] {source_name} ({line_num}) unknown flag '{values[3]}' : {line}",
                )
            else:
                flags[flag_field] = True
        rules[name] = AnnotationRule(name=name, open_tag=values[1], close_tag=close_tag, **flags)
    return AnnotationDictionary(rules)


def parse_forward_reference_rules(
    lines: Iterable[str],
    *,
    source_name: str = SUFFIX_TAG_FILENAME,
    on_warning: WarningCallback | None = None,
) -> ForwardReferenceDictionary:
    rules: dict[str, ForwardReferenceRule] = {}
    for line_num, line in _iter_table_lines(lines):
        values = line.split("\t")
        if len(values) < 2 or not values[0] or not values[1]:
            emit_warning(on_warning, f"[ERROR] {source_name} ({line_num}) : {line}")
            continue
        alias = values[3] if len(values) > 3 and values[3] else None
        rule = ForwardReferenceRule(
            name=values[0],
            before_tag=values[1],
            after_tag=values[2] if len(values) > 2 and values[2] else None,
            alias=alias,
        )
        rules[rule.name] = rule
        if alias:
            rules[alias + rule.name] = rule
    return ForwardReferenceDictionary(rules)


def parse_replacements(
    lines: Iterable[str],
    *,
    source_name: str = REPLACE_FILENAME,
    on_warning: WarningCallback | None = None,
) -> dict[str, str]:
    replacements: dict[str, str] = {}
    for line_num, line in _iter_table_lines(lines):
        values = line.split("\t")
        if len(values[0]) != 1:
            emit_warning(on_warning, f"[ERROR] {source_name} ({line_num} is no char) : {line}")
            continue
        if len(values) < 2:
            emit_warning(on_warning, f"[ERROR] {source_name} ({line_num}) : {line}")
            continue
        replacements[values[0]] = values[1]
    return replacements


def load_annotation_dictionary(
    path: Path | None = None,
    *,
    on_warning: WarningCallback | None = None,
) -> AnnotationDictionary:
    source_name, lines = _read_table_text(path, TAG_FILENAME)
    return parse_annotation_rules(lines, source_name=source_name, on_warning=on_warning)


def load_forward_reference_dictionary(
    path: Path | None = None,
    *,
    on_warning: WarningCallback | None = None,
) -> ForwardReferenceDictionary:
    source_name, lines = _read_table_text(path, SUFFIX_TAG_FILENAME)
    return parse_forward_reference_rules(lines, source_name=source_name, on_warning=on_warning)


def load_replacements(
    path: Path | None,
    *,
    on_warning: WarningCallback | None = None,
) -> dict[str, str] | None:
    """Load the single-character replacement table, or None when the file is absent."""
    if path is None or not path.exists():
        return None
    lines = path.read_text(encoding="utf-8").splitlines()
    return parse_replacements(lines, source_name=path.name, on_warning=on_warning)


def load_tables(
    tags_path: Path | None = None,
    suffix_tags_path: Path | None = None,
    replace_path: Path | None = None,
    *,
    on_warning: WarningCallback | None = None,
) -> ConversionTables:
    return ConversionTables(
        annotations=load_annotation_dictionary(tags_path, on_warning=on_warning),
        forward_references=load_forward_reference_dictionary(suffix_tags_path, on_warning=on_warning),
        replacements=load_replacements(replace_path, on_warning=on_warning),
    )


__all__ = [
    "AnnotationDictionary",
    "AnnotationRule",
    "ConversionTables",
    "ForwardReferenceDictionary",
    "ForwardReferenceRule",
    "STRUCTURAL_TAGS",
    "load_annotation_dictionary",
    "load_forward_reference_dictionary",
    "load_replacements",
    "load_tables",
    "parse_annotation_rules",
    "parse_forward_reference_rules",
    "parse_replacements",
]
