# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Dependency-declaration metadata published next to the bundled archive.

Bundled dependencies are still declared with their original coordinates and
``runtime`` scope so consumers' resolvers know bundling happened and do not
pull in a second, unrelocated copy on their own.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Final

from .config import PublicationConfig

POM_NAMESPACE: Final[str] = "http://maven.apache.org/POM/4.0.0"
POM_SCHEMA: Final[str] = "http://maven.apache.org/xsd/maven-4.0.0.xsd"
_XSI: Final[str] = "http://www.w3.org/2001/XMLSchema-instance"


def _text(parent: ET.Element, tag: str, value: str) -> ET.Element:
    element = ET.SubElement(parent, tag)
    element.text = value
    return element


def build_pom(publication: PublicationConfig) -> ET.Element:
    """Return the POM element tree for ``publication``."""

    project = ET.Element(
        "project",
        {
            "xmlns": POM_NAMESPACE,
            "xmlns:xsi": _XSI,
            "xsi:schemaLocation": f"{POM_NAMESPACE} {POM_SCHEMA}",
        },
    )
    _text(project, "modelVersion", "4.0.0")
    _text(project, "groupId", publication.group_id)
    _text(project, "artifactId", publication.artifact_id)
    _text(project, "version", publication.version)
    if publication.dependencies:
        dependencies = ET.SubElement(project, "dependencies")
        for coordinate in publication.dependencies:
            dependency = ET.SubElement(dependencies, "dependency")
            _text(dependency, "groupId", coordinate.group)
            _text(dependency, "artifactId", coordinate.artifact)
            _text(dependency, "version", coordinate.version)
            _text(dependency, "scope", coordinate.scope)
    return project


def render_pom(publication: PublicationConfig) -> str:
    """Serialise the POM for ``publication`` as indented XML."""

    tree = ET.ElementTree(build_pom(publication))
    ET.indent(tree, space="  ")
    body = ET.tostring(tree.getroot(), encoding="unicode")
    return f'<?xml version="1.0" encoding="UTF-8"?>\n{body}\n'


def write_pom(publication: PublicationConfig, path: Path) -> Path:
    """Write the rendered POM to ``path`` and return it."""

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_pom(publication), encoding="utf-8")
    return path


__all__ = ["build_pom", "render_pom", "write_pom"]
