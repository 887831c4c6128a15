# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Rich consoles shared by the status-line helpers."""

from __future__ import annotations

import sys
from functools import lru_cache

from rich.console import Console


def stdout_is_tty() -> bool:
    """Return ``True`` when stdout is attached to a terminal."""

    try:
        return sys.stdout.isatty()
    except (AttributeError, ValueError):
        return False


@lru_cache(maxsize=8)
def _console(color: bool, emoji: bool, tty: bool) -> Console:
    styled = color and tty
    return Console(
        color_system="auto" if styled else None,
        force_terminal=tty,
        no_color=not styled,
        emoji=emoji,
        highlight=False,
        soft_wrap=True,
    )


def get_console(*, color: bool, emoji: bool) -> Console:
    """Return the console matching the preferences and the current stdout."""

    return _console(color, emoji, stdout_is_tty())


def reset_consoles() -> None:
    """Forget cached consoles so the next lookup binds the current stdout."""

    _console.cache_clear()


__all__ = ["get_console", "reset_consoles", "stdout_is_tty"]
