from __future__ import annotations

from chuki.forward import find_target_start, locate_phrase, resolve_forward_references, split_items
from chuki.tables import parse_forward_reference_rules

_TABLE = parse_forward_reference_rules(
    [
        "小さな文字\t小さな文字\t小さな文字終わり\tは",
        "傍点\t傍点\t傍点終わり\tに",
        "注\t注",
    ]
)


def _resolve(line: str, warnings: list[str] | None = None) -> str:
    sink = warnings if warnings is not None else []
    return resolve_forward_references(line, _TABLE, on_warning=sink.append)


def test_phrase_inside_quotes_is_bracketed_exactly() -> None:
    result = _resolve("「見出し」［＃「見出し」は小さな文字］")
    assert result == "「［＃小さな文字］見出し［＃小さな文字終わり］」"


def test_phrase_directly_before_annotation() -> None:
    assert _resolve("漢字［＃「漢字」に傍点］") == "［＃傍点］漢字［＃傍点終わり］"


def test_adjoining_balanced_tags_are_kept_inside() -> None:
    result = _resolve("［＃太字］重要［＃太字終わり］［＃「重要」に傍点］")
    assert result == "［＃傍点］［＃太字］重要［＃太字終わり］［＃傍点終わり］"


def test_unmatched_opening_tag_halts_scan() -> None:
    result = _resolve("前［＃太字］重要［＃「前重要」に傍点］")
    assert result == "前［＃太字］［＃傍点］重要［＃傍点終わり］"


def test_ruby_reading_and_marker_are_skipped() -> None:
    result = _resolve("｜漢字《かんじ》［＃「漢字」に傍点］")
    assert result == "［＃傍点］｜漢字《かんじ》［＃傍点終わり］"


def test_escaped_glyph_counts_as_one_character() -> None:
    result = _resolve("※《本［＃「※《本」に傍点］")
    assert result == "［＃傍点］※《本［＃傍点終わり］"


def test_rule_without_after_tag_removes_annotation() -> None:
    assert _resolve("語［＃「語」注］") == "［＃注］語"


def test_multiple_references_on_one_line() -> None:
    result = _resolve("甲乙［＃「甲乙」に傍点］丙［＃「丙」に傍点］")
    assert result == "［＃傍点］甲乙［＃傍点終わり］［＃傍点］丙［＃傍点終わり］"


def test_missing_rule_leaves_annotation_and_warns() -> None:
    warnings: list[str] = []
    line = "あ［＃「あ」に未知］"
    assert _resolve(line, warnings) == line
    assert len(warnings) == 1
    assert "前方参照注記" in warnings[0]


def test_line_without_forward_reference_is_untouched() -> None:
    line = "［＃改ページ］本文"
    assert _resolve(line) is line


def test_split_items_classifies_pieces() -> None:
    items = split_items("｜漢《かん》［＃太字終わり］<a href=\"x\">※＃")
    kinds = [item.kind for item in items]
    assert kinds == ["marker", "char", "reading", "tag", "passthrough", "char"]
    assert items[3].closing and items[3].name == "太字"
    assert items[5].text == "※＃"


def test_locate_phrase_and_target_start() -> None:
    items = split_items("「見出し」")
    assert locate_phrase(items, len(items), ["見", "出", "し"]) == 4
    assert locate_phrase(items, len(items), ["無"]) is None
    assert find_target_start(items, 4, 3) == 1
