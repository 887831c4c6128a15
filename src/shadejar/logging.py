# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Status lines shown to the operator while a bundle is built.

Module diagnostics go through stdlib :mod:`logging`; these helpers are for
progress and outcome messages only.
"""

from __future__ import annotations

from typing import Final

from rich.text import Text

from .console import get_console, stdout_is_tty

_INFO: Final[tuple[str, str]] = ("ℹ️ ", "cyan")
_OK: Final[tuple[str, str]] = ("✅ ", "green")
_WARN: Final[tuple[str, str]] = ("⚠️ ", "yellow")
_FAIL: Final[tuple[str, str]] = ("❌ ", "red")


def _emit(msg: str, look: tuple[str, str], *, use_emoji: bool, use_color: bool | None) -> None:
    glyph, style = look
    color = stdout_is_tty() if use_color is None else use_color
    text = Text(f"{glyph}{msg}" if use_emoji else msg)
    if color:
        text.stylize(style)
    get_console(color=color, emoji=use_emoji).print(text)


def info(msg: str, *, use_emoji: bool, use_color: bool | None = None) -> None:
    _emit(msg, _INFO, use_emoji=use_emoji, use_color=use_color)


def ok(msg: str, *, use_emoji: bool, use_color: bool | None = None) -> None:
    _emit(msg, _OK, use_emoji=use_emoji, use_color=use_color)


def warn(msg: str, *, use_emoji: bool, use_color: bool | None = None) -> None:
    _emit(msg, _WARN, use_emoji=use_emoji, use_color=use_color)


def fail(msg: str, *, use_emoji: bool, use_color: bool | None = None) -> None:
    _emit(msg, _FAIL, use_emoji=use_emoji, use_color=use_color)


__all__ = ["fail", "info", "ok", "warn"]
