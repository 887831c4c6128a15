# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""``shadejar pom``: emit the published dependency declaration."""

from __future__ import annotations

from pathlib import Path

import typer

from ..publish import render_pom, write_pom
from .options import CONFIG_OPTION, EMOJI_OPTION, OUTPUT_OPTION, ROOT_OPTION
from .shared import CONFIG_EXIT_CODE, CLIError, build_cli_logger, resolve_config
from .typer_ext import SortedTyper


def pom_command(
    root: ROOT_OPTION = Path("."),
    config: CONFIG_OPTION = None,
    output: OUTPUT_OPTION = None,
    emoji: EMOJI_OPTION = True,
) -> None:
    """Write the POM declaring bundled dependencies with runtime scope.

    Without ``--output`` or a configured ``output.pom`` the POM is printed.
    """

    logger = build_cli_logger(emoji=emoji)
    try:
        bundle = resolve_config(config, root)
    except CLIError as exc:
        logger.fail(str(exc))
        raise typer.Exit(code=exc.exit_code) from exc
    if bundle.publication is None:
        logger.fail("No [publication] section configured")
        raise typer.Exit(code=CONFIG_EXIT_CODE)

    destination = output or bundle.output.pom
    if destination is None:
        logger.echo(render_pom(bundle.publication).rstrip("\n"))
        return
    write_pom(bundle.publication, destination)
    logger.ok(f"Wrote {destination}")


def register(app: SortedTyper) -> None:
    """Register the ``pom`` command on ``app``."""

    app.command("pom")(pom_command)


__all__ = ["pom_command", "register"]
