# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Tests for archive reassembly and duplicate resolution.

Later sources silently lose to earlier ones under the default policy.
"""

from __future__ import annotations

import pytest
from helpers.bundling import build_archive

from shadejar.errors import MergeConflictError
from shadejar.merge import DuplicatePolicy, MergeSource, MergeSpec, reassemble
from shadejar.patterns import PathPredicate


def test_sources_contribute_matching_entries_in_order() -> None:
    app = build_archive({"app/X.class": b"x", "vend/Y.class": b"stale"})
    shrunk = build_archive({"vend/Y.class": b"y"})

    result = reassemble(
        MergeSpec.of(
            MergeSource(app, PathPredicate.of(["**"], ["vend/**"]), "appCode"),
            MergeSource(shrunk, PathPredicate.of(["vend/**"]), "shrinkable"),
        ),
    )

    assert result.archive.paths == ["app/X.class", "vend/Y.class"]
    assert result.archive["vend/Y.class"].data == b"y"
    assert result.contributed == {"appCode": 1, "shrinkable": 1}
    assert result.dropped == []


@pytest.mark.parametrize("exempt_first", [True, False])
def test_collision_resolves_to_first_listed_source(exempt_first: bool) -> None:
    exempt = MergeSource(build_archive({"vend/dsl/Y.class": b"exempt"}), label="exempt")
    shrunk = MergeSource(build_archive({"vend/dsl/Y.class": b"shrunk"}), label="shrinkable")
    ordered = (exempt, shrunk) if exempt_first else (shrunk, exempt)
    expected = b"exempt" if exempt_first else b"shrunk"

    outputs = {reassemble(MergeSpec.of(*ordered)).archive["vend/dsl/Y.class"].data for _ in range(3)}

    assert outputs == {expected}


def test_dropped_duplicates_are_recorded() -> None:
    first = MergeSource(build_archive({"a.txt": b"1"}), label="first")
    second = MergeSource(build_archive({"a.txt": b"2", "b.txt": b"b"}), label="second")

    result = reassemble(MergeSpec.of(first, second))

    assert result.dropped == [("a.txt", "second")]
    assert result.dropped_paths == ["a.txt"]
    assert result.archive.paths == ["a.txt", "b.txt"]


def test_strict_policy_raises_on_differing_content() -> None:
    first = MergeSource(build_archive({"a.txt": b"1"}), label="first")
    second = MergeSource(build_archive({"a.txt": b"2"}), label="second")

    with pytest.raises(MergeConflictError) as excinfo:
        reassemble(MergeSpec.of(first, second, policy=DuplicatePolicy.STRICT))

    assert excinfo.value.path == "a.txt"
    assert (excinfo.value.first, excinfo.value.second) == ("first", "second")


def test_strict_policy_accepts_identical_duplicates() -> None:
    first = MergeSource(build_archive({"a.txt": b"same"}), label="first")
    second = MergeSource(build_archive({"a.txt": b"same"}), label="second")

    result = reassemble(MergeSpec.of(first, second, policy=DuplicatePolicy.STRICT))

    assert result.archive.paths == ["a.txt"]


def test_versioned_entries_are_copied_verbatim() -> None:
    source = build_archive({"META-INF/versions/11/a/B.class": b"v11", "a/B.class": b"base"})

    result = reassemble(MergeSpec.of(MergeSource(source)))

    assert result.archive.paths == ["META-INF/versions/11/a/B.class", "a/B.class"]
    assert result.archive["META-INF/versions/11/a/B.class"].data == b"v11"


def test_repeated_labels_stay_distinct() -> None:
    result = reassemble(
        MergeSpec.of(
            MergeSource(build_archive({"a.txt": b"a"})),
            MergeSource(build_archive({"b.txt": b"b"})),
        ),
    )

    assert result.contributed == {"source": 1, "source#1": 1}
