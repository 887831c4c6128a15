# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Split an archive into disjoint named partitions by path predicates."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Final

from .archive import Archive, Entry
from .errors import ConfigurationError
from .patterns import PathPredicate

UNCLASSIFIED: Final[str] = "unclassified"


@dataclass(frozen=True, slots=True)
class PartitionRule:
    """Named predicate routing matching entries into one partition."""

    name: str
    predicate: PathPredicate

    @classmethod
    def build(cls, name: str, includes: Iterable[str], excludes: Iterable[str] = ()) -> PartitionRule:
        """Create a rule from raw include and exclude patterns."""

        return cls(name=name, predicate=PathPredicate.of(includes, excludes))


class Partition(Archive):
    """Archive subset produced by :func:`partition`."""

    def __init__(self, name: str, entries: Iterable[Entry] = ()) -> None:
        self.name = name
        super().__init__(entries)

    def __repr__(self) -> str:
        return f"Partition(name={self.name!r}, entries={len(self)})"


@dataclass(frozen=True, slots=True)
class PartitionStats:
    """Entry count and byte size of one partition."""

    name: str
    entries: int
    size: int


def validate_rules(rules: Sequence[PartitionRule]) -> None:
    """Reject duplicate or reserved partition names.

    Raises:
        ConfigurationError: If a name repeats or shadows ``unclassified``.
    """

    seen: set[str] = set()
    for rule in rules:
        if not rule.name:
            raise ConfigurationError("Partition rules require a name")
        if rule.name == UNCLASSIFIED:
            raise ConfigurationError(f"'{UNCLASSIFIED}' is reserved for unmatched entries")
        if rule.name in seen:
            raise ConfigurationError(f"Duplicate partition rule '{rule.name}'")
        seen.add(rule.name)


def classify(path: str, rules: Sequence[PartitionRule]) -> str:
    """Return the name of the first rule admitting ``path``."""

    for rule in rules:
        if rule.predicate.matches(path):
            return rule.name
    return UNCLASSIFIED


def partition(archive: Archive, rules: Sequence[PartitionRule]) -> dict[str, Partition]:
    """Assign every entry of ``archive`` to exactly one partition.

    Rules are tested in declaration order and the first rule whose includes
    match and whose excludes do not veto the path wins. Entries matching no
    rule land in the ``unclassified`` partition. Every rule name appears in
    the result, even when its partition is empty.

    Args:
        archive: Source archive to split.
        rules: Ordered partition rules.

    Returns:
        dict[str, Partition]: Partitions keyed by rule name plus
        ``unclassified``, in declaration order.

    Raises:
        ConfigurationError: If rule names are duplicated or reserved.
    """

    validate_rules(rules)
    partitions: dict[str, Partition] = {rule.name: Partition(rule.name) for rule in rules}
    partitions[UNCLASSIFIED] = Partition(UNCLASSIFIED)
    for entry in archive:
        partitions[classify(entry.path, rules)].add(entry)
    return partitions


def partition_summary(partitions: Mapping[str, Partition]) -> list[PartitionStats]:
    """Return per-partition statistics in partition order."""

    return [
        PartitionStats(name=name, entries=len(part), size=part.total_size)
        for name, part in partitions.items()
    ]


__all__ = [
    "Partition",
    "PartitionRule",
    "PartitionStats",
    "UNCLASSIFIED",
    "classify",
    "partition",
    "partition_summary",
    "validate_rules",
]
