# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Typer application whose command help lists options alphabetically."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

import typer
from click.core import Argument, Context, Parameter
from typer.core import TyperCommand

CommandCallback = TypeVar("CommandCallback", bound=Callable[..., Any])


def _option_sort_key(param: Parameter) -> str:
    names = [*getattr(param, "opts", ()), *getattr(param, "secondary_opts", ())]
    long_name = next((name for name in names if name.startswith("--")), None)
    return (long_name or param.name or "").lstrip("-").lower()


class SortedTyperCommand(TyperCommand):
    """Command keeping positional arguments first and options sorted by long name."""

    def get_params(self, ctx: Context) -> list[Parameter]:
        params = super().get_params(ctx)
        arguments = [param for param in params if isinstance(param, Argument)]
        options = sorted((param for param in params if not isinstance(param, Argument)), key=_option_sort_key)
        return [*arguments, *options]


class SortedTyper(typer.Typer):
    """Typer application registering :class:`SortedTyperCommand` commands."""

    def command(
        self,
        name: str | None = None,
        *,
        cls: type[TyperCommand] | None = None,
        **kwargs: Any,
    ) -> Callable[[CommandCallback], CommandCallback]:
        return super().command(name, cls=cls or SortedTyperCommand, **kwargs)


def create_typer(**kwargs: Any) -> SortedTyper:
    return SortedTyper(**kwargs)


__all__ = ["SortedTyper", "SortedTyperCommand", "create_typer"]
