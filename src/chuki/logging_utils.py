from __future__ import annotations

import warnings
from typing import Callable

WarningCallback = Callable[[str], None]

_DEBUG_LOG = False


class ChukiWarning(UserWarning):
    """Raised for recoverable conversion problems when no callback is installed."""


def set_debug_logging(enabled: bool) -> None:
    global _DEBUG_LOG
    _DEBUG_LOG = enabled


def debug_log(message: str) -> None:
    if _DEBUG_LOG:
        print(f"[chuki debug] {message}")


def emit_warning(on_warning: WarningCallback | None, message: str) -> None:
    """Send *message* to the callback, or raise it as a ChukiWarning."""
    if on_warning is not None:
        on_warning(message)
        return
    warnings.warn(message, ChukiWarning, stacklevel=3)


__all__ = [
    "ChukiWarning",
    "WarningCallback",
    "debug_log",
    "emit_warning",
    "set_debug_logging",
]
