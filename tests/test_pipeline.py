# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""End-to-end tests for the bundling pipeline controller."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
from helpers.bundling import FailingShrinker, JarFactory, PrefixRewriter, RecordingShrinker, StalledShrinker

from shadejar import pipeline
from shadejar.archive import MANIFEST_PATH, Archive
from shadejar.config import BundleConfig
from shadejar.errors import (
    CleanupError,
    ConfigurationError,
    InvalidSourceError,
    ShrinkFailedError,
    ShrinkTimeoutError,
    SourceMissingError,
)
from shadejar.pipeline import (
    APP_CODE,
    EXEMPT,
    SHRINKABLE,
    BundlePlan,
    PipelineController,
    PipelineState,
    remove_tree,
    run_pipeline,
)
from shadejar.relocation import ShadeEngine

UNUSED = "net/example/vendor/guava/Unused.class"


@pytest.fixture
def temp_root(tmp_path: Path) -> Path:
    root = tmp_path / "scratch"
    root.mkdir()
    return root


@pytest.fixture
def inputs(make_jar: JarFactory) -> dict[str, Path]:
    return {
        "library": make_jar(
            "library.jar",
            {
                "META-INF/MANIFEST.MF": b"Manifest-Version: 1.0\r\nCreated-By: test\r\n\r\n",
                "net/example/Api.class": b"calls com.google.common.Strings and com.dslplatform.json.Json",
            },
        ),
        "guava": make_jar(
            "guava.jar",
            {
                "com/google/common/Strings.class": b"strings",
                "com/google/common/Unused.class": b"unused",
                "META-INF/GUAVA.SF": b"signature",
            },
        ),
        "dsl": make_jar("dsl.jar", {"com/dslplatform/json/Json.class": b"json"}),
    }


def _config(tmp_path: Path, inputs: dict[str, Path], **sections: Any) -> BundleConfig:
    data: dict[str, Any] = {
        "sources": {"library": str(inputs["library"]), "dependencies": [str(inputs["guava"]), str(inputs["dsl"])]},
        "relocation": {
            "rules": [
                {"source": "com.google.common", "target": "net.example.vendor.guava"},
                {"source": "com.dslplatform", "target": "net.example.vendor.dslplatform"},
            ],
        },
        "partition": {
            "vendored_namespace": "net.example.vendor",
            "exempt": ["net/example/vendor/dslplatform/**"],
        },
        "shrink": {"keep": ["net.example.*"]},
        "output": {"path": str(tmp_path / "dist" / "bundle.jar")},
    }
    data.update(sections)
    return BundleConfig.from_mapping(data)


def _controller(
    config: BundleConfig,
    shrinker: Any,
    temp_root: Path,
) -> PipelineController:
    return PipelineController(
        BundlePlan.from_config(config),
        engine=ShadeEngine(PrefixRewriter()),
        shrinker=shrinker,
        temp_root=temp_root,
    )


def test_pipeline_produces_relocated_partially_shrunk_archive(
    tmp_path: Path,
    inputs: dict[str, Path],
    temp_root: Path,
) -> None:
    shrinker = RecordingShrinker(drop={UNUSED})
    controller = _controller(_config(tmp_path, inputs), shrinker, temp_root)

    result = controller.run()

    output = Archive.read(tmp_path / "dist" / "bundle.jar")
    assert output.paths == [
        MANIFEST_PATH,
        "net/example/Api.class",
        "net/example/vendor/dslplatform/json/Json.class",
        "net/example/vendor/guava/Strings.class",
    ]
    assert output["net/example/Api.class"].data == (
        b"calls net.example.vendor.guava.Strings and net.example.vendor.dslplatform.json.Json"
    )
    assert result.state is PipelineState.DONE
    assert result.history == [
        PipelineState.INIT,
        PipelineState.COMBINED,
        PipelineState.PARTITIONED,
        PipelineState.SHRUNK,
        PipelineState.REASSEMBLED,
        PipelineState.DONE,
    ]
    assert result.removed_by_shrinker == [UNUSED]
    assert result.digest == output.digest()
    assert {stats.name: stats.entries for stats in result.partitions} == {
        EXEMPT: 1,
        SHRINKABLE: 2,
        APP_CODE: 2,
        "unclassified": 0,
    }
    assert result.usage_report_path == tmp_path / "dist" / "usage.txt"
    assert result.usage_report_path.read_text(encoding="utf-8") == "removed entries\n"
    assert list(temp_root.iterdir()) == []


def test_exempt_entries_never_reach_the_shrinker(
    tmp_path: Path,
    inputs: dict[str, Path],
    temp_root: Path,
) -> None:
    shrinker = RecordingShrinker()

    _controller(_config(tmp_path, inputs), shrinker, temp_root).run()

    seen = shrinker.inputs[0]
    assert "net/example/vendor/dslplatform/json/Json.class" not in seen
    assert "net/example/Api.class" in seen
    assert "-keep class net.example.* { *; }" in shrinker.rules[0]


def test_shrink_failure_leaves_no_intermediates(
    tmp_path: Path,
    inputs: dict[str, Path],
    temp_root: Path,
) -> None:
    diagnostic = "Error: com.example.Missing\n  at line 3: unresolved reference"
    controller = _controller(_config(tmp_path, inputs), FailingShrinker(diagnostic), temp_root)

    with pytest.raises(ShrinkFailedError) as excinfo:
        controller.run()

    assert excinfo.value.diagnostic == diagnostic
    assert controller.state is PipelineState.FAILED
    assert controller.result.history[-1] is PipelineState.FAILED
    assert list(temp_root.iterdir()) == []
    assert not (tmp_path / "dist" / "bundle.jar").exists()


def test_missing_source_fails_before_combining(tmp_path: Path, inputs: dict[str, Path], temp_root: Path) -> None:
    inputs["guava"].unlink()
    controller = _controller(_config(tmp_path, inputs), RecordingShrinker(), temp_root)

    with pytest.raises(SourceMissingError) as excinfo:
        controller.run()

    assert excinfo.value.missing == (inputs["guava"],)
    assert controller.result.history == [PipelineState.INIT, PipelineState.FAILED]
    assert list(temp_root.iterdir()) == []


def test_runs_are_byte_identical(tmp_path: Path, inputs: dict[str, Path], temp_root: Path) -> None:
    first = _config(tmp_path, inputs, output={"path": str(tmp_path / "first" / "bundle.jar")})
    second = _config(tmp_path, inputs, output={"path": str(tmp_path / "second" / "bundle.jar")})

    _controller(first, RecordingShrinker(drop={UNUSED}), temp_root).run()
    _controller(second, RecordingShrinker(drop={UNUSED}), temp_root).run()

    assert (tmp_path / "first" / "bundle.jar").read_bytes() == (tmp_path / "second" / "bundle.jar").read_bytes()


def test_controller_can_run_again_after_failure(tmp_path: Path, inputs: dict[str, Path], temp_root: Path) -> None:
    config = _config(tmp_path, inputs)
    failing = _controller(config, FailingShrinker("boom"), temp_root)
    with pytest.raises(ShrinkFailedError):
        failing.run()

    result = _controller(config, RecordingShrinker(), temp_root).run()

    assert result.state is PipelineState.DONE


def test_shrinker_is_skipped_without_vendored_code(
    tmp_path: Path,
    inputs: dict[str, Path],
    temp_root: Path,
) -> None:
    config = _config(
        tmp_path,
        inputs,
        sources={"library": str(inputs["library"])},
        relocation={"rules": []},
    )
    shrinker = RecordingShrinker()

    result = PipelineController(
        BundlePlan.from_config(config),
        engine=ShadeEngine(),
        shrinker=shrinker,
        temp_root=temp_root,
    ).run()

    assert shrinker.invocations == []
    assert result.state is PipelineState.DONE
    assert result.usage_report_path is None


def test_versioned_overrides_survive(
    tmp_path: Path,
    inputs: dict[str, Path],
    make_jar: JarFactory,
    temp_root: Path,
) -> None:
    java11 = make_jar("java11.jar", {"net/example/Api.class": b"eleven"})
    config = _config(
        tmp_path,
        inputs,
        sources={
            "library": str(inputs["library"]),
            "dependencies": [str(inputs["guava"]), str(inputs["dsl"])],
            "versioned": {"11": str(java11)},
        },
    )
    shrinker = RecordingShrinker()

    _controller(config, shrinker, temp_root).run()

    output = Archive.read(tmp_path / "dist" / "bundle.jar")
    assert output["META-INF/versions/11/net/example/Api.class"].data == b"eleven"
    assert "META-INF/versions/11/net/example/Api.class" not in shrinker.inputs[0]


def test_cleanup_failure_degrades_without_failing(
    tmp_path: Path,
    inputs: dict[str, Path],
    temp_root: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(pipeline, "remove_tree", lambda root: [CleanupError(root, "device busy")])

    result = _controller(_config(tmp_path, inputs), RecordingShrinker(), temp_root).run()

    assert result.state is PipelineState.DONE
    assert result.degraded
    assert result.cleanup_errors[0].reason == "device busy"
    assert (tmp_path / "dist" / "bundle.jar").is_file()


def test_remove_tree_deletes_nested_directories(tmp_path: Path) -> None:
    root = tmp_path / "run"
    (root / "a" / "b").mkdir(parents=True)
    (root / "a" / "b" / "file.jar").write_bytes(b"x")
    (root / "top.txt").write_text("t", encoding="utf-8")

    assert remove_tree(root) == []
    assert not root.exists()


def test_run_pipeline_writes_pom(tmp_path: Path, inputs: dict[str, Path], temp_root: Path) -> None:
    config = _config(
        tmp_path,
        inputs,
        output={"path": str(tmp_path / "dist" / "bundle.jar"), "pom": str(tmp_path / "dist" / "bundle.pom")},
        publication={
            "group_id": "net.example",
            "artifact_id": "bundle",
            "version": "1.0.0",
            "dependencies": [{"group": "com.google.guava", "artifact": "guava", "version": "33.0.0-jre"}],
        },
    )

    result = run_pipeline(
        config,
        engine=ShadeEngine(PrefixRewriter()),
        shrinker=RecordingShrinker(),
        temp_root=temp_root,
    )

    assert result.state is PipelineState.DONE
    pom = (tmp_path / "dist" / "bundle.pom").read_text(encoding="utf-8")
    assert "<artifactId>guava</artifactId>" in pom
    assert "<scope>runtime</scope>" in pom


def test_run_pipeline_requires_a_shrinker(tmp_path: Path, inputs: dict[str, Path]) -> None:
    with pytest.raises(ConfigurationError):
        run_pipeline(_config(tmp_path, inputs), engine=ShadeEngine(PrefixRewriter()))


def test_default_engine_requires_rewriter_for_relocation(
    tmp_path: Path,
    inputs: dict[str, Path],
    temp_root: Path,
) -> None:
    with pytest.raises(ConfigurationError):
        run_pipeline(_config(tmp_path, inputs), shrinker=RecordingShrinker(), temp_root=temp_root)
    assert list(temp_root.iterdir()) == []


def test_shrink_timeout_fails_the_run_and_cleans_up(
    tmp_path: Path,
    inputs: dict[str, Path],
    temp_root: Path,
) -> None:
    config = _config(tmp_path, inputs, shrink={"keep": ["net.example.*"], "timeout_seconds": 5})
    controller = _controller(config, StalledShrinker(), temp_root)

    with pytest.raises(ShrinkTimeoutError) as excinfo:
        controller.run()

    assert excinfo.value.timeout == 5
    assert excinfo.value.diagnostic == "still analysing"
    assert controller.state is PipelineState.FAILED
    assert controller.workdir is not None
    assert not controller.workdir.exists()
    assert list(temp_root.iterdir()) == []


def test_failed_publish_leaves_no_usage_report(
    tmp_path: Path,
    inputs: dict[str, Path],
    temp_root: Path,
) -> None:
    blocked = tmp_path / "dist" / "bundle.jar"
    blocked.mkdir(parents=True)
    controller = _controller(_config(tmp_path, inputs), RecordingShrinker(drop={UNUSED}), temp_root)

    with pytest.raises(OSError):
        controller.run()

    assert controller.state is PipelineState.FAILED
    assert controller.result.usage_report_path is None
    assert not (tmp_path / "dist" / "usage.txt").exists()
    assert sorted(path.name for path in (tmp_path / "dist").iterdir()) == ["bundle.jar"]
    assert list(temp_root.iterdir()) == []


def test_corrupt_source_is_reported_with_its_path(
    tmp_path: Path,
    inputs: dict[str, Path],
    temp_root: Path,
) -> None:
    inputs["guava"].write_bytes(b"not a zip archive")
    controller = _controller(_config(tmp_path, inputs), RecordingShrinker(), temp_root)

    with pytest.raises(InvalidSourceError) as excinfo:
        controller.run()

    assert excinfo.value.path == inputs["guava"]
    assert str(inputs["guava"]) in str(excinfo.value)
    assert list(temp_root.iterdir()) == []


def test_missing_rewriter_is_reported_before_missing_sources(
    tmp_path: Path,
    inputs: dict[str, Path],
    temp_root: Path,
) -> None:
    inputs["guava"].unlink()

    with pytest.raises(ConfigurationError, match="rewriter_command"):
        run_pipeline(_config(tmp_path, inputs), shrinker=RecordingShrinker(), temp_root=temp_root)

    assert list(temp_root.iterdir()) == []
