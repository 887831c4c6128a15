# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""CLI application entry point wiring commands."""

from __future__ import annotations

from . import build, inspect_archive, pom
from .typer_ext import create_typer

app = create_typer(
    help="Bundle a library with relocated, shrunk copies of its dependencies.",
    no_args_is_help=True,
    add_completion=False,
)
build.register(app)
inspect_archive.register(app)
pom.register(app)

__all__ = ["app"]
