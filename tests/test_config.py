from __future__ import annotations

from pathlib import Path

import pytest

from chuki.config import load_options_file, parse_converter_options
from chuki.core import ConverterOptions


def test_options_file_overrides_defaults(tmp_path: Path) -> None:
    config_path = tmp_path / "chuki.toml"
    config_path.write_text(
        """
[converter]
force_page_break = 100
auto_yoko = false
with_mark_id = "yes"
force_page_break_empty_lines = -1

[tables]
tags = "tables/tags.txt"
replace = "/etc/chuki/replace.txt"
""",
        encoding="utf-8",
    )
    loaded = load_options_file(config_path)
    assert loaded.options.force_page_break == 100
    assert loaded.options.auto_yoko is False
    assert loaded.options.with_mark_id is False
    assert loaded.options.force_page_break_empty_lines == 2
    assert loaded.tables.tags == tmp_path / "tables" / "tags.txt"
    assert loaded.tables.suffix_tags is None
    assert loaded.tables.replace == Path("/etc/chuki/replace.txt")


def test_unparsable_options_file_raises(tmp_path: Path) -> None:
    config_path = tmp_path / "broken.toml"
    config_path.write_text("[converter\nforce_page_break = ", encoding="utf-8")
    with pytest.raises(ValueError):
        load_options_file(config_path)
    with pytest.raises(ValueError):
        load_options_file(tmp_path / "missing.toml")


def test_parse_converter_options_ignores_non_tables() -> None:
    base = ConverterOptions(force_page_break=10)
    assert parse_converter_options(None, base) is base
    assert parse_converter_options({"force_page_break": True}, base) is base
    assert parse_converter_options({"hide_comment_block": False}).hide_comment_block is False
