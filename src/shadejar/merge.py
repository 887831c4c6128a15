# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Compose a final archive from entries drawn out of several sources.

The default duplicate policy is *first writer wins*: once a path has been
written, later sources offering the same path are dropped without error.
The bundling pipeline relies on this; exempt and shrunk vendor entries are
subsets of what a higher-priority source already supplied, never true
conflicts. Callers wanting conflicts surfaced use :attr:`DuplicatePolicy.STRICT`.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum

from .archive import Archive
from .errors import MergeConflictError
from .patterns import MATCH_ALL

LOGGER = logging.getLogger(__name__)


class DuplicatePolicy(StrEnum):
    """Resolution applied when two sources contribute the same path."""

    FIRST_WINS = "first-wins"
    STRICT = "strict"


@dataclass(frozen=True, slots=True)
class MergeSource:
    """One ``(archive, predicate)`` pair of a merge specification."""

    archive: Archive
    predicate: Callable[[str], bool] = MATCH_ALL
    label: str = "source"


@dataclass(frozen=True, slots=True)
class MergeSpec:
    """Ordered merge sources plus the duplicate resolution policy."""

    sources: tuple[MergeSource, ...]
    policy: DuplicatePolicy = DuplicatePolicy.FIRST_WINS

    @classmethod
    def of(cls, *sources: MergeSource, policy: DuplicatePolicy = DuplicatePolicy.FIRST_WINS) -> MergeSpec:
        return cls(sources=tuple(sources), policy=policy)


@dataclass(slots=True)
class MergeResult:
    """Outcome of :func:`reassemble`."""

    archive: Archive
    contributed: dict[str, int] = field(default_factory=dict)
    dropped: list[tuple[str, str]] = field(default_factory=list)

    @property
    def dropped_paths(self) -> list[str]:
        return [path for path, _label in self.dropped]


def reassemble(spec: MergeSpec) -> MergeResult:
    """Build a new archive following ``spec``.

    Sources are visited in order and each contributes its matching entries in
    its own order. A path already written is skipped under
    :attr:`DuplicatePolicy.FIRST_WINS`. Under :attr:`DuplicatePolicy.STRICT`
    identical duplicates are skipped and differing ones raise. Versioned
    layout entries are copied like any other path, without reinterpretation.

    Args:
        spec: Ordered sources and the duplicate policy.

    Returns:
        MergeResult: The composed archive and per-source bookkeeping.

    Raises:
        MergeConflictError: Under the strict policy when content differs.
    """

    output = Archive()
    owners: dict[str, str] = {}
    result = MergeResult(archive=output)
    for index, source in enumerate(spec.sources):
        label = _unique_label(source.label, index, result.contributed)
        taken = 0
        for entry in source.archive.select(source.predicate):
            existing = output.get(entry.path)
            if existing is None:
                output.add(entry)
                owners[entry.path] = label
                taken += 1
                continue
            if spec.policy is DuplicatePolicy.STRICT and existing.data != entry.data:
                raise MergeConflictError(entry.path, owners[entry.path], label)
            LOGGER.debug("Keeping %s from %s; dropping copy from %s", entry.path, owners[entry.path], label)
            result.dropped.append((entry.path, label))
        result.contributed[label] = taken
    return result


def _unique_label(label: str, index: int, used: Mapping[str, int]) -> str:
    return label if label not in used else f"{label}#{index}"


__all__ = [
    "DuplicatePolicy",
    "MergeResult",
    "MergeSource",
    "MergeSpec",
    "reassemble",
]
