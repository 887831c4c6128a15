# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""``shadejar inspect``: show how an archive would be partitioned."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.table import Table

from ..archive import Archive
from ..errors import ConfigurationError
from ..partition import partition, partition_summary
from ..pipeline import build_partition_rules
from .options import CONFIG_OPTION, EMOJI_OPTION, ROOT_OPTION
from .shared import CONFIG_EXIT_CODE, CLIError, build_cli_logger, resolve_config
from .typer_ext import SortedTyper


def inspect_command(
    archive: Annotated[Path, typer.Argument(help="Jar or zip archive to classify.")],
    root: ROOT_OPTION = Path("."),
    config: CONFIG_OPTION = None,
    vendored: Annotated[
        str | None,
        typer.Option("--vendored", help="Vendored namespace; defaults to the configured one."),
    ] = None,
    exempt: Annotated[
        list[str] | None,
        typer.Option("--exempt", help="Glob of vendored entries exempt from shrinking."),
    ] = None,
    list_entries: Annotated[
        bool,
        typer.Option("--list", help="List every entry under its partition."),
    ] = False,
    emoji: EMOJI_OPTION = True,
) -> None:
    """Print the partition every entry of ARCHIVE falls into."""

    logger = build_cli_logger(emoji=emoji)
    if not archive.is_file():
        logger.fail(f"Archive not found: {archive}")
        raise typer.Exit(code=1)

    namespace = vendored
    exempt_globs = list(exempt or [])
    if namespace is None:
        try:
            bundle = resolve_config(config, root)
        except CLIError as exc:
            logger.fail(str(exc))
            raise typer.Exit(code=exc.exit_code) from exc
        namespace = bundle.partition.vendored_namespace
        if not exempt_globs:
            exempt_globs = list(bundle.partition.exempt)

    try:
        partitions = partition(Archive.read(archive), build_partition_rules(namespace, exempt_globs))
    except ConfigurationError as exc:
        logger.fail(str(exc))
        raise typer.Exit(code=CONFIG_EXIT_CODE) from exc

    table = Table(title=str(archive))
    table.add_column("Partition")
    table.add_column("Entries", justify="right")
    table.add_column("Bytes", justify="right")
    for stats in partition_summary(partitions):
        table.add_row(stats.name, str(stats.entries), str(stats.size))
    logger.console.print(table)

    if list_entries:
        for name, part in partitions.items():
            for path in part.paths:
                logger.echo(f"{name}\t{path}")


def register(app: SortedTyper) -> None:
    """Register the ``inspect`` command on ``app``."""

    app.command("inspect")(inspect_command)


__all__ = ["inspect_command", "register"]
