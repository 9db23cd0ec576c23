from __future__ import annotations

from dataclasses import dataclass, fields, replace
from pathlib import Path

import tomllib

from .core import ConverterOptions


@dataclass(frozen=True)
class TablePaths:
    tags: Path | None = None
    suffix_tags: Path | None = None
    replace: Path | None = None


@dataclass(frozen=True)
class OptionsFile:
    options: ConverterOptions
    tables: TablePaths


def _coerce_option(default: object, value: object) -> object | None:
    if isinstance(default, bool):
        return value if isinstance(value, bool) else None
    if isinstance(default, int):
        if isinstance(value, bool) or not isinstance(value, int):
            return None
        return value if value >= 0 else None
    return None


def parse_converter_options(payload: object, base: ConverterOptions | None = None) -> ConverterOptions:
    """Overlay the keys of a ``[converter]`` table on *base*; wrongly typed keys are skipped."""
    options = base or ConverterOptions()
    if not isinstance(payload, dict):
        return options
    updates: dict[str, object] = {}
    for option_field in fields(ConverterOptions):
        if option_field.name not in payload:
            continue
        value = _coerce_option(getattr(options, option_field.name), payload[option_field.name])
        if value is not None:
            updates[option_field.name] = value
    return replace(options, **updates) if updates else options


def _table_path(payload: dict, key: str, base_dir: Path) -> Path | None:
    value = payload.get(key)
    if not isinstance(value, str) or not value:
        return None
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = base_dir / path
    return path


def load_options_file(path: Path) -> OptionsFile:
    try:
        with path.open("rb") as fh:
            data = tomllib.load(fh)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise ValueError(f"Failed to parse options file: {path}") from exc
    options = parse_converter_options(data.get("converter"))
    tables_payload = data.get("tables")
    tables = TablePaths()
    if isinstance(tables_payload, dict):
        base_dir = path.parent
        tables = TablePaths(
            tags=_table_path(tables_payload, "tags", base_dir),
            suffix_tags=_table_path(tables_payload, "suffix_tags", base_dir),
            replace=_table_path(tables_payload, "replace", base_dir),
        )
    return OptionsFile(options=options, tables=tables)


__all__ = ["OptionsFile", "TablePaths", "load_options_file", "parse_converter_options"]
