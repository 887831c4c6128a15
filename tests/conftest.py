# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Shared pytest fixtures."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from pathlib import Path

import pytest
from helpers.bundling import JarFactory, build_archive

from shadejar.console import reset_consoles


@pytest.fixture(autouse=True)
def _fresh_consoles() -> Iterator[None]:
    """Bind Rich consoles to the stdout of the running test."""

    reset_consoles()
    yield
    reset_consoles()


@pytest.fixture
def make_jar(tmp_path: Path) -> JarFactory:
    """Return a factory writing zip archives below ``tmp_path / "inputs"``."""

    def _make(name: str, entries: Mapping[str, bytes]) -> Path:
        return build_archive(entries).write(tmp_path / "inputs" / name)

    return _make
