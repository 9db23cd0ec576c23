from __future__ import annotations

from chuki.glyphs import CharacterMapper


def test_vertical_pairs_collapse_to_double_brackets() -> None:
    mapper = CharacterMapper(vertical=True)
    assert mapper.render("<<x>>") == "《x》"
    assert mapper.render("＜＜x＞＞") == "《x》"


def test_runs_of_three_are_not_collapsed() -> None:
    mapper = CharacterMapper(vertical=True)
    assert mapper.render("<<<") == "&lt;&lt;&lt;"
    assert mapper.render("a < b") == "a &lt; b"


def test_vertical_quote_and_dash_substitutions() -> None:
    mapper = CharacterMapper(vertical=True)
    assert mapper.render("“引用”") == "〝引用〟"
    assert mapper.render("≪題≫") == "《題》"
    assert mapper.render("――") == "──"


def test_horizontal_mode_escapes_ascii_brackets() -> None:
    mapper = CharacterMapper(vertical=False)
    assert mapper.render("<<x>>") == "&lt;&lt;x&gt;&gt;"
    assert mapper.render("＜＜x＞＞") == "《x》"
    assert mapper.render("“引用”") == "“引用”"


def test_ampersand_is_always_escaped() -> None:
    assert CharacterMapper(vertical=True).render("A&B") == "A&amp;B"
    assert CharacterMapper(vertical=False).render("A&B") == "A&amp;B"


def test_user_replacement_takes_precedence() -> None:
    mapper = CharacterMapper({"―": "—", "<": "＜"}, vertical=True)
    assert mapper.render("―") == "—"
    assert mapper.render("<<") == "＜＜"
