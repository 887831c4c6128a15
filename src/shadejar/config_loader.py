# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Locate and load bundling configuration from TOML documents."""

from __future__ import annotations

import os
import re
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Final

from .config import BundleConfig
from .errors import ConfigurationError

CONFIG_FILENAME: Final[str] = "shadejar.toml"
PYPROJECT_FILENAME: Final[str] = "pyproject.toml"
PYPROJECT_TOOL_KEY: Final[str] = "tool"
PYPROJECT_SECTION_KEY: Final[str] = "shadejar"

_ENV_VAR_PATTERN: Final[re.Pattern[str]] = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}|\$([A-Za-z_][A-Za-z0-9_]*)")


def _expand_env_value(value: Any, env: Mapping[str, str]) -> Any:
    if isinstance(value, str):
        return _expand_env_string(value, env)
    if isinstance(value, Mapping):
        return {key: _expand_env_value(item, env) for key, item in value.items()}
    if isinstance(value, list):
        return [_expand_env_value(item, env) for item in value]
    return value


def _expand_env_string(value: str, env: Mapping[str, str]) -> str:
    def _replace(match: re.Match[str]) -> str:
        key = match.group(1) or match.group(2)
        return env.get(key, match.group(0))

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigurationError(f"Malformed TOML in {path}: {exc}") from exc


def find_config(root: Path) -> Path | None:
    """Return the configuration file governing ``root``.

    ``shadejar.toml`` takes precedence over a ``[tool.shadejar]`` table in
    ``pyproject.toml``.
    """

    candidate = root / CONFIG_FILENAME
    if candidate.is_file():
        return candidate
    pyproject = root / PYPROJECT_FILENAME
    if pyproject.is_file() and _pyproject_section(_read_toml(pyproject)) is not None:
        return pyproject
    return None


def _pyproject_section(document: Mapping[str, Any]) -> Mapping[str, Any] | None:
    tool_section = document.get(PYPROJECT_TOOL_KEY)
    if not isinstance(tool_section, Mapping):
        return None
    section = tool_section.get(PYPROJECT_SECTION_KEY)
    return section if isinstance(section, Mapping) else None


def load_config(path: Path, *, env: Mapping[str, str] | None = None) -> BundleConfig:
    """Load ``path`` into a :class:`BundleConfig` with anchored paths.

    ``$VAR`` and ``${VAR}`` references in string values are expanded from
    ``env`` (defaults to the process environment); unknown variables are
    left untouched.

    Raises:
        ConfigurationError: If the file is missing, malformed, or invalid.
    """

    if not path.is_file():
        raise ConfigurationError(f"Configuration file not found: {path}")
    document = _read_toml(path)
    if path.name == PYPROJECT_FILENAME:
        section = _pyproject_section(document)
        if section is None:
            raise ConfigurationError(f"{path} has no [tool.{PYPROJECT_SECTION_KEY}] table")
        document = dict(section)
    expanded = _expand_env_value(document, os.environ if env is None else env)
    config = BundleConfig.from_mapping(expanded, source=str(path))
    return config.resolve_paths(path.parent.resolve())


def discover_config(root: Path, *, env: Mapping[str, str] | None = None) -> BundleConfig:
    """Find and load the configuration for ``root``.

    Raises:
        ConfigurationError: If no configuration exists under ``root``.
    """

    path = find_config(root)
    if path is None:
        raise ConfigurationError(
            f"No {CONFIG_FILENAME} or [tool.{PYPROJECT_SECTION_KEY}] table found in {root}",
        )
    return load_config(path, env=env)


__all__ = ["CONFIG_FILENAME", "discover_config", "find_config", "load_config"]
