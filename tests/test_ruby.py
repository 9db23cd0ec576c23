from __future__ import annotations

from bs4 import BeautifulSoup

from chuki.glyphs import CharacterMapper
from chuki.ruby import RubyAnalyzer, fold_escapes
from chuki.tables import load_annotation_dictionary


def _render(text: str, *, suppressed: bool = False, auto_yoko: bool = True, vertical: bool = True) -> str:
    analyzer = RubyAnalyzer(load_annotation_dictionary(), auto_yoko=auto_yoko)
    out: list[str] = []
    analyzer.render(out, text, suppressed=suppressed, mapper=CharacterMapper(vertical=vertical))
    return "".join(out)


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def _ruby_pairs(html: str) -> list[tuple[str, str]]:
    pairs: list[tuple[str, str]] = []
    for ruby in _soup(html).find_all("ruby"):
        rt = ruby.find("rt")
        reading = rt.get_text()
        rt.extract()
        pairs.append((ruby.get_text(), reading))
    return pairs


def test_explicit_base_produces_single_pair() -> None:
    html = _render("｜漢字《かんじ》")
    assert html == "<ruby>漢字<rt>かんじ</rt></ruby>"
    assert _ruby_pairs(html) == [("漢字", "かんじ")]


def test_equal_lengths_give_character_aligned_pairs() -> None:
    html = _render("山川《やま》")
    assert _ruby_pairs(html) == [("山", "や"), ("川", "ま")]


def test_unequal_lengths_give_one_combined_pair() -> None:
    html = _render("東京《とうきょう》へ")
    assert html == "<ruby>東京<rt>とうきょう</rt></ruby>へ"


def test_detected_base_stops_at_kana() -> None:
    html = _render("これは漢字《かんじ》です")
    assert html.startswith("これは<ruby>")
    assert _ruby_pairs(html) == [("漢字", "かんじ")]
    assert html.endswith("</ruby>です")


def test_explicit_bar_flushes_pending_base() -> None:
    html = _render("日本｜語学《ごがく》")
    assert html.startswith("日本<ruby>")
    assert _ruby_pairs(html) == [("語学", "ごがく")]


def test_ke_counts_as_kanji_next_to_ideograph() -> None:
    html = _render("三ヶ月《さんかげつ》")
    assert _ruby_pairs(html) == [("三ヶ月", "さんかげつ")]


def test_alphabetic_base() -> None:
    html = _render("Alice《アリス》")
    assert _ruby_pairs(html) == [("Alice", "アリス")]


def test_pending_run_without_reading_is_plain() -> None:
    assert _render("漢字です") == "漢字です"
    assert _render("漢字《かん") == "漢字《かん"


def test_reading_without_base_is_dropped() -> None:
    assert _render("かな《よみ》") == "かな"


def test_empty_reading_emits_base() -> None:
    assert _render("｜漢字《》") == "漢字"


def test_suppressed_span_keeps_base_only() -> None:
    assert _render("｜漢字《かんじ》", suppressed=True) == "漢字"
    assert _render("12", suppressed=True) == "12"


def test_digit_pair_is_rotated() -> None:
    assert _render("12") == '<span class="tcy">12</span>'
    assert _render("第12話") == '第<span class="tcy">12</span>話'
    assert _render("!?") == '<span class="tcy">!?</span>'


def test_rotation_skipped_next_to_half_width() -> None:
    assert _render("a12") == "a12"
    assert _render("123") == "123"
    assert _render("12", auto_yoko=False) == "12"


def test_escaped_glyphs_keep_alignment() -> None:
    html = _render("｜※＃※＃《いい》")
    assert _ruby_pairs(html) == [("＃", "い"), ("＃", "い")]


def test_escaped_glyphs_are_literal() -> None:
    assert _render("※《本※》") == "《本》"


def test_fold_escapes_marks_escaped_cells() -> None:
    cells, escaped = fold_escapes("a※《b※x")
    assert cells == ["a", "《", "b", "※", "x"]
    assert escaped == {1}


def test_literals_pass_through_mapper() -> None:
    assert _render("“話”") == "〝話〟"
    assert _render("“話”", vertical=False) == "“話”"
