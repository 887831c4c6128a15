# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Configuration models for the bundling pipeline."""

from __future__ import annotations

from pathlib import Path
from typing import Final

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigurationError
from .merge import DuplicatePolicy

# Descriptors that would register the bundled libraries' integrations in a
# consumer's runtime.
DEFAULT_EXCLUDES: Final[tuple[str, ...]] = (
    "META-INF/services/*Processor",
    "META-INF/*.SF",
    "META-INF/*.DSA",
    "META-INF/*.RSA",
    "module-info.class",
)


class _Section(BaseModel):
    model_config = ConfigDict(validate_assignment=True, extra="forbid")


class SourcesConfig(_Section):
    """Inputs merged into the combined archive."""

    library: Path
    dependencies: list[Path] = Field(default_factory=list)
    versioned: dict[str, Path] = Field(default_factory=dict)

    @field_validator("versioned")
    @classmethod
    def _check_tags(cls, value: dict[str, Path]) -> dict[str, Path]:
        for tag in value:
            if not tag.isdigit() or int(tag) <= 0:
                raise ValueError(f"runtime version tag '{tag}' must be a positive integer")
        return value


class RelocationRuleConfig(_Section):
    """Single ``source -> target`` namespace rewrite."""

    source: str
    target: str


class RelocationConfig(_Section):
    """Relocation rules and the external code rewriter."""

    rules: list[RelocationRuleConfig] = Field(default_factory=list)
    excludes: list[str] = Field(default_factory=lambda: list(DEFAULT_EXCLUDES))
    merge_service_files: bool = True
    rewriter_command: list[str] = Field(default_factory=list)
    timeout_seconds: float | None = Field(default=None, gt=0)


class PartitionConfig(_Section):
    """Where vendored code lives and which subtrees must not be shrunk."""

    vendored_namespace: str
    exempt: list[str] = Field(default_factory=list)


class ShrinkConfig(_Section):
    """Keep rules and the external shrinker invocation."""

    keep: list[str] = Field(default_factory=list)
    optimize: bool = False
    obfuscate: bool = False
    command: list[str] = Field(default_factory=list)
    r8_jar: Path | None = None
    java: str = "java"
    jdk_home: Path | None = None
    timeout_seconds: float | None = Field(default=None, gt=0)
    verify_kept_content: bool = False
    pass_app_code: bool = True

    @field_validator("optimize", "obfuscate")
    @classmethod
    def _preservation_only(cls, value: bool) -> bool:
        if value:
            raise ValueError("shrinking runs in preservation mode; optimisation and obfuscation stay disabled")
        return value


class MergeConfig(_Section):
    """Duplicate handling during reassembly."""

    duplicates: DuplicatePolicy = DuplicatePolicy.FIRST_WINS


class OutputConfig(_Section):
    """Where the final archive and side artifacts are written."""

    path: Path
    usage_report: Path | None = None
    pom: Path | None = None


class DependencyCoordinate(_Section):
    """Original identity of a bundled dependency."""

    group: str
    artifact: str
    version: str
    scope: str = "runtime"


class PublicationConfig(_Section):
    """Coordinates published alongside the archive."""

    group_id: str
    artifact_id: str
    version: str
    dependencies: list[DependencyCoordinate] = Field(default_factory=list)


class BundleConfig(_Section):
    """Complete configuration of one bundling run."""

    sources: SourcesConfig
    relocation: RelocationConfig = Field(default_factory=RelocationConfig)
    partition: PartitionConfig
    shrink: ShrinkConfig = Field(default_factory=ShrinkConfig)
    merge: MergeConfig = Field(default_factory=MergeConfig)
    output: OutputConfig
    publication: PublicationConfig | None = None

    @classmethod
    def from_mapping(cls, data: object, *, source: str = "configuration") -> BundleConfig:
        """Validate ``data`` and convert validation failures.

        Raises:
            ConfigurationError: If ``data`` does not describe a valid bundle.
        """

        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid {source}: {exc}") from exc

    def resolve_paths(self, base_dir: Path) -> BundleConfig:
        """Return a copy whose relative paths are anchored at ``base_dir``."""

        def anchor(path: Path | None) -> Path | None:
            if path is None:
                return None
            expanded = path.expanduser()
            return expanded if expanded.is_absolute() else (base_dir / expanded)

        sources = self.sources.model_copy(
            update={
                "library": anchor(self.sources.library),
                "dependencies": [anchor(path) for path in self.sources.dependencies],
                "versioned": {tag: anchor(path) for tag, path in self.sources.versioned.items()},
            },
        )
        shrink = self.shrink.model_copy(
            update={"r8_jar": anchor(self.shrink.r8_jar), "jdk_home": anchor(self.shrink.jdk_home)},
        )
        output = self.output.model_copy(
            update={
                "path": anchor(self.output.path),
                "usage_report": anchor(self.output.usage_report),
                "pom": anchor(self.output.pom),
            },
        )
        return self.model_copy(update={"sources": sources, "shrink": shrink, "output": output})


__all__ = [
    "BundleConfig",
    "DEFAULT_EXCLUDES",
    "DependencyCoordinate",
    "MergeConfig",
    "OutputConfig",
    "PartitionConfig",
    "PublicationConfig",
    "RelocationConfig",
    "RelocationRuleConfig",
    "ShrinkConfig",
    "SourcesConfig",
]
