# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Tests for the published dependency declaration."""

from __future__ import annotations

import xml.etree.ElementTree as ET
from pathlib import Path

from shadejar.config import DependencyCoordinate, PublicationConfig
from shadejar.publish import POM_NAMESPACE, render_pom, write_pom

NS = {"m": POM_NAMESPACE}


def _publication() -> PublicationConfig:
    return PublicationConfig(
        group_id="net.example",
        artifact_id="core-all",
        version="2.1.0",
        dependencies=[
            DependencyCoordinate(group="com.google.guava", artifact="guava", version="33.0.0-jre"),
            DependencyCoordinate(group="com.dslplatform", artifact="dsl-json", version="2.0.2", scope="compile"),
        ],
    )


def test_bundled_dependencies_keep_their_coordinates() -> None:
    root = ET.fromstring(render_pom(_publication()))

    assert root.findtext("m:artifactId", namespaces=NS) == "core-all"
    dependencies = root.findall("m:dependencies/m:dependency", NS)
    assert [dep.findtext("m:artifactId", namespaces=NS) for dep in dependencies] == ["guava", "dsl-json"]
    assert [dep.findtext("m:scope", namespaces=NS) for dep in dependencies] == ["runtime", "compile"]


def test_pom_without_dependencies_omits_section() -> None:
    publication = PublicationConfig(group_id="g", artifact_id="a", version="1")

    assert "<dependencies>" not in render_pom(publication)


def test_write_pom_creates_parent_directories(tmp_path: Path) -> None:
    path = write_pom(_publication(), tmp_path / "out" / "core-all.pom")

    assert path.read_text(encoding="utf-8").startswith('<?xml version="1.0" encoding="UTF-8"?>\n<project')
