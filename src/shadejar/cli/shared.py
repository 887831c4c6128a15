# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Shared utilities for CLI commands (logging, errors, configuration)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.text import Text

from ..config import BundleConfig
from ..config_loader import discover_config, load_config
from ..errors import ConfigurationError, ShadejarError
from ..logging import fail as core_fail
from ..logging import info as core_info
from ..logging import ok as core_ok
from ..logging import warn as core_warn

CONFIG_EXIT_CODE = 2
FAILURE_EXIT_CODE = 1


class CLIError(RuntimeError):
    """Error raised when a CLI command fails and should exit with a status code."""

    def __init__(self, message: str, *, exit_code: int = FAILURE_EXIT_CODE) -> None:
        """Initialise the error with a message and exit code.

        Args:
            message: Human-readable error message shown to the user.
            exit_code: Exit status associated with the failure.
        """

        super().__init__(message)
        self.exit_code = exit_code


@dataclass(slots=True)
class CLILogger:
    """Adapter around project logging helpers respecting CLI emoji settings."""

    console: Console
    use_emoji: bool
    debug_enabled: bool = False

    def fail(self, message: str) -> None:
        core_fail(message, use_emoji=self.use_emoji)

    def warn(self, message: str) -> None:
        core_warn(message, use_emoji=self.use_emoji)

    def ok(self, message: str) -> None:
        core_ok(message, use_emoji=self.use_emoji)

    def info(self, message: str) -> None:
        core_info(message, use_emoji=self.use_emoji)

    def echo(self, message: str) -> None:
        """Write ``message`` to stdout using Typer's echo helper."""

        typer.echo(message)

    def debug(self, message: str) -> None:
        """Emit a debug message when debug logging is enabled."""

        if self.debug_enabled:
            text = Text("[debug] ", style="bold cyan")
            text.append(message, style="dim")
            self.console.print(text)


def build_cli_logger(*, emoji: bool, debug: bool = False, no_color: bool = False) -> CLILogger:
    """Return a ``CLILogger`` configured for the provided emoji preference.

    Args:
        emoji: Whether log output may include emoji glyphs.
        debug: Whether debug logging should be enabled.
        no_color: Whether terminal colour output should be disabled.

    Returns:
        CLILogger: Logger instance bound to a dedicated Rich console.
    """

    console = Console(no_color=no_color, highlight=False)
    return CLILogger(console=console, use_emoji=emoji, debug_enabled=debug)


def configure_logging(*, debug: bool) -> None:
    """Route module loggers through Rich, verbosely when ``debug`` is set."""

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(show_time=False, show_path=debug)],
        force=True,
    )


def exit_code_for(error: ShadejarError) -> int:
    """Map a pipeline error onto the CLI exit status."""

    return CONFIG_EXIT_CODE if isinstance(error, ConfigurationError) else FAILURE_EXIT_CODE


def resolve_config(config_path: Path | None, root: Path) -> BundleConfig:
    """Load the explicit configuration file or discover one under ``root``.

    Raises:
        CLIError: If the configuration cannot be found or is invalid.
    """

    try:
        if config_path is not None:
            return load_config(config_path.resolve())
        return discover_config(root.resolve())
    except ConfigurationError as exc:
        raise CLIError(str(exc), exit_code=CONFIG_EXIT_CODE) from exc


def report_error(error: ShadejarError, logger: CLILogger) -> None:
    """Print ``error`` and any tool diagnostic it carries verbatim."""

    logger.fail(str(error))
    diagnostic = getattr(error, "diagnostic", "")
    if diagnostic:
        logger.echo(diagnostic)


__all__ = [
    "CLIError",
    "CLILogger",
    "CONFIG_EXIT_CODE",
    "FAILURE_EXIT_CODE",
    "build_cli_logger",
    "configure_logging",
    "exit_code_for",
    "report_error",
    "resolve_config",
]
