# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""``shadejar build``: run the bundling pipeline."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.table import Table

from ..errors import ShadejarError
from ..pipeline import PipelineResult, run_pipeline
from .options import CONFIG_OPTION, DEBUG_OPTION, EMOJI_OPTION, OUTPUT_OPTION, ROOT_OPTION
from .shared import (
    CLIError,
    CLILogger,
    build_cli_logger,
    configure_logging,
    exit_code_for,
    report_error,
    resolve_config,
)
from .typer_ext import SortedTyper


def _render_summary(result: PipelineResult, logger: CLILogger) -> None:
    table = Table(title="Partitions", show_lines=False)
    table.add_column("Partition")
    table.add_column("Entries", justify="right")
    table.add_column("Bytes", justify="right")
    for stats in result.partitions:
        table.add_row(stats.name, str(stats.entries), str(stats.size))
    logger.console.print(table)
    logger.info(f"Shrinker removed {len(result.removed_by_shrinker)} entries")
    if result.dropped_duplicates:
        logger.info(f"Dropped {len(result.dropped_duplicates)} duplicate entries (first wins)")
    logger.debug(f"Archive digest {result.digest}")


def build_command(
    root: ROOT_OPTION = Path("."),
    config: CONFIG_OPTION = None,
    output: OUTPUT_OPTION = None,
    emoji: EMOJI_OPTION = True,
    debug: DEBUG_OPTION = False,
) -> None:
    """Relocate, shrink, and reassemble the configured library archive."""

    configure_logging(debug=debug)
    logger = build_cli_logger(emoji=emoji, debug=debug)
    try:
        bundle = resolve_config(config, root)
    except CLIError as exc:
        logger.fail(str(exc))
        raise typer.Exit(code=exc.exit_code) from exc
    if output is not None:
        bundle = bundle.model_copy(
            update={"output": bundle.output.model_copy(update={"path": output.resolve()})},
        )

    try:
        result = run_pipeline(bundle, progress=True, use_emoji=emoji)
    except ShadejarError as exc:
        report_error(exc, logger)
        raise typer.Exit(code=exit_code_for(exc)) from exc

    _render_summary(result, logger)
    if result.degraded:
        logger.warn(f"Run degraded: {len(result.cleanup_errors)} intermediate(s) left behind")


def register(app: SortedTyper) -> None:
    """Register the ``build`` command on ``app``."""

    app.command("build")(build_command)


__all__ = ["build_command", "register"]
