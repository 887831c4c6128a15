# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Controller sequencing relocation, partitioning, shrinking, and reassembly.

The controller is a linear state machine::

    INIT -> COMBINED -> PARTITIONED -> SHRUNK -> REASSEMBLED -> DONE

with ``FAILED`` reachable from every non-terminal state. Each edge has one
transition method returning the next state. Intermediates live in a
run-scoped temporary directory and are removed whatever the outcome; a
failed run re-raises the original error after cleanup and is never resumed.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Final, TypeVar

from .archive import DEFAULT_LAYOUT, Archive, Entry, EntryKind
from .config import BundleConfig
from .errors import CleanupError, ConfigurationError, SourceMissingError
from .logging import info, ok, warn
from .merge import DuplicatePolicy, MergeSource, MergeSpec, reassemble
from .partition import Partition, PartitionRule, PartitionStats, partition, partition_summary
from .patterns import PathPredicate, namespace_glob
from .publish import write_pom
from .relocation import (
    CommandCodeRewriter,
    RelocationEngine,
    RelocationMap,
    RelocationRequest,
    RelocationRule,
    ShadeEngine,
)
from .shrink import CommandShrinker, KeepRuleSet, Shrinker, ShrinkMode, ShrinkResult, r8_command, shrink

LOGGER = logging.getLogger(__name__)

EXEMPT: Final[str] = "exempt"
SHRINKABLE: Final[str] = "shrinkable"
APP_CODE: Final[str] = "appCode"
RUN_DIR_PREFIX: Final[str] = "shadejar-"


class PipelineState(StrEnum):
    """States of one bundling run."""

    INIT = "init"
    COMBINED = "combined"
    PARTITIONED = "partitioned"
    SHRUNK = "shrunk"
    REASSEMBLED = "reassembled"
    DONE = "done"
    FAILED = "failed"


def build_partition_rules(vendored_namespace: str, exempt: Sequence[str]) -> tuple[PartitionRule, ...]:
    """Return the fixed ``exempt``/``shrinkable``/``appCode`` rule set.

    Args:
        vendored_namespace: Dotted namespace holding relocated dependencies.
        exempt: Globs of vendored subtrees that must not be shrunk.

    Returns:
        tuple[PartitionRule, ...]: Rules in evaluation order.
    """

    vendored = namespace_glob(vendored_namespace)
    rules: list[PartitionRule] = []
    if exempt:
        rules.append(PartitionRule.build(EXEMPT, exempt))
    rules.append(PartitionRule.build(SHRINKABLE, [vendored], exempt))
    rules.append(PartitionRule.build(APP_CODE, ["**"], [vendored]))
    return tuple(rules)


@dataclass(frozen=True, slots=True)
class BundlePlan:
    """Validated, ready-to-run form of a :class:`BundleConfig`."""

    request: RelocationRequest
    rules: tuple[PartitionRule, ...]
    vendored: PathPredicate
    keep_rules: KeepRuleSet
    output_path: Path
    usage_report_path: Path | None = None
    policy: DuplicatePolicy = DuplicatePolicy.FIRST_WINS
    shrink_timeout: float | None = None
    verify_kept_content: bool = False
    pass_app_code: bool = True

    @classmethod
    def from_config(cls, config: BundleConfig) -> BundlePlan:
        """Compile ``config`` into domain objects.

        Raises:
            ConfigurationError: If any pattern or rule is invalid.
        """

        relocation = RelocationMap(
            rules=tuple(RelocationRule(rule.source, rule.target) for rule in config.relocation.rules),
        )
        request = RelocationRequest(
            sources=(config.sources.library, *config.sources.dependencies),
            relocation=relocation,
            excludes=tuple(config.relocation.excludes),
            versioned=dict(config.sources.versioned),
            merge_service_files=config.relocation.merge_service_files,
        )
        usage_report = config.output.usage_report or config.output.path.parent / "usage.txt"
        return cls(
            request=request,
            rules=build_partition_rules(config.partition.vendored_namespace, config.partition.exempt),
            vendored=PathPredicate((namespace_glob(config.partition.vendored_namespace),)),
            keep_rules=KeepRuleSet.of(
                config.shrink.keep,
                ShrinkMode(optimize=config.shrink.optimize, obfuscate=config.shrink.obfuscate),
            ),
            output_path=config.output.path,
            usage_report_path=usage_report,
            policy=config.merge.duplicates,
            shrink_timeout=config.shrink.timeout_seconds,
            verify_kept_content=config.shrink.verify_kept_content,
            pass_app_code=config.shrink.pass_app_code,
        )

    @property
    def input_paths(self) -> list[Path]:
        return [*self.request.sources, *self.request.versioned.values()]

    def rule(self, name: str) -> PartitionRule | None:
        return next((rule for rule in self.rules if rule.name == name), None)


@dataclass(slots=True)
class PipelineResult:
    """Outcome of one pipeline run."""

    state: PipelineState = PipelineState.INIT
    output_path: Path | None = None
    usage_report_path: Path | None = None
    digest: str | None = None
    entries: int = 0
    partitions: list[PartitionStats] = field(default_factory=list)
    removed_by_shrinker: list[str] = field(default_factory=list)
    dropped_duplicates: list[str] = field(default_factory=list)
    history: list[PipelineState] = field(default_factory=lambda: [PipelineState.INIT])
    cleanup_errors: list[CleanupError] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        """Return ``True`` when some intermediates could not be removed."""

        return bool(self.cleanup_errors)


@dataclass(slots=True)
class _RunContext:
    workdir: Path
    combined: Archive | None = None
    partitions: dict[str, Partition] = field(default_factory=dict)
    shrunk: ShrinkResult | None = None
    shrunk_partition: Partition | None = None
    cleaned: bool = False


class PipelineController:
    """Drive one bundling run through its states."""

    def __init__(
        self,
        plan: BundlePlan,
        *,
        engine: RelocationEngine,
        shrinker: Shrinker,
        temp_root: Path | None = None,
        progress: bool = False,
        use_emoji: bool = True,
    ) -> None:
        self._plan = plan
        self._engine = engine
        self._shrinker = shrinker
        self._temp_root = temp_root
        self._progress = progress
        self._use_emoji = use_emoji
        self._state = PipelineState.INIT
        self._context: _RunContext | None = None
        self.result = PipelineResult()
        self._transitions: dict[PipelineState, Callable[[_RunContext], PipelineState]] = {
            PipelineState.INIT: self._combine,
            PipelineState.COMBINED: self._partition,
            PipelineState.PARTITIONED: self._shrink,
            PipelineState.SHRUNK: self._reassemble,
            PipelineState.REASSEMBLED: self._finish,
        }

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def workdir(self) -> Path | None:
        """Return the run-scoped directory of the current or last run."""

        return self._context.workdir if self._context is not None else None

    def run(self) -> PipelineResult:
        """Execute every stage from ``INIT``.

        Returns:
            PipelineResult: Description of the finished run.

        Raises:
            ShadejarError: The originating stage error, unchanged, after
                intermediates have been cleaned up.
        """

        self._state = PipelineState.INIT
        self.result = PipelineResult()
        context = _RunContext(workdir=Path(tempfile.mkdtemp(prefix=RUN_DIR_PREFIX, dir=self._temp_root)))
        self._context = context
        LOGGER.debug("Run directory %s", context.workdir)
        try:
            while self._state is not PipelineState.DONE:
                self._state = self._transitions[self._state](context)
                self.result.history.append(self._state)
        except BaseException:
            self._fail()
            raise
        finally:
            self._cleanup(context)
        self.result.state = self._state
        return self.result

    def _fail(self) -> None:
        LOGGER.debug("Run failed in state %s", self._state)
        self._state = PipelineState.FAILED
        self.result.state = PipelineState.FAILED
        self.result.history.append(PipelineState.FAILED)

    def _announce(self, message: str) -> None:
        LOGGER.info(message)
        if self._progress:
            info(message, use_emoji=self._use_emoji)

    def _combine(self, context: _RunContext) -> PipelineState:
        missing = [path for path in self._plan.input_paths if not path.exists()]
        if missing:
            raise SourceMissingError(missing)
        self._announce(f"Combining {len(self._plan.request.sources)} source archive(s)")
        combined = self._engine.combine(self._plan.request, context.workdir)
        combined.write(context.workdir / "combined.jar")
        context.combined = combined
        return PipelineState.COMBINED

    def _partition(self, context: _RunContext) -> PipelineState:
        context.partitions = partition(_require(context.combined, "combined archive"), self._plan.rules)
        self.result.partitions = partition_summary(context.partitions)
        for stats in self.result.partitions:
            LOGGER.info("Partition %s: %d entries, %d bytes", stats.name, stats.entries, stats.size)
        return PipelineState.PARTITIONED

    def _shrink(self, context: _RunContext) -> PipelineState:
        shrinkable = context.partitions[SHRINKABLE]
        if not shrinkable:
            self._announce("No shrinkable entries; skipping shrinker")
            context.shrunk_partition = shrinkable
            return PipelineState.SHRUNK
        roots: tuple[Entry, ...] = ()
        if self._plan.pass_app_code:
            roots = tuple(
                entry
                for entry in context.partitions[APP_CODE]
                if entry.kind is EntryKind.CODE and not DEFAULT_LAYOUT.is_versioned(entry.path)
            )
        self._announce(f"Shrinking {len(shrinkable)} vendored entries")
        result = shrink(
            shrinkable,
            self._plan.keep_rules,
            shrinker=self._shrinker,
            workdir=context.workdir,
            roots=roots,
            timeout=self._plan.shrink_timeout,
            verify_content=self._plan.verify_kept_content,
        )
        context.shrunk = result
        context.shrunk_partition = result.partition
        self.result.removed_by_shrinker = list(result.removed)
        return PipelineState.SHRUNK

    def _reassemble(self, context: _RunContext) -> PipelineState:
        combined = _require(context.combined, "combined archive")
        shrunk = _require(context.shrunk_partition, "shrunk partition")
        sources: list[MergeSource] = []
        for name in (APP_CODE, EXEMPT):
            rule = self._plan.rule(name)
            if rule is not None:
                sources.append(MergeSource(combined, rule.predicate, name))
        sources.append(MergeSource(shrunk, self._plan.vendored, SHRINKABLE))
        merged = reassemble(MergeSpec(sources=tuple(sources), policy=self._plan.policy))
        self.result.dropped_duplicates = merged.dropped_paths
        _publish_atomically(merged.archive, self._plan.output_path)
        self.result.output_path = self._plan.output_path
        self.result.digest = merged.archive.digest()
        self.result.entries = len(merged.archive)
        self._publish_usage_report(context)
        return PipelineState.REASSEMBLED

    def _publish_usage_report(self, context: _RunContext) -> None:
        """Copy the shrinker usage report next to the published archive."""

        usage = context.shrunk.usage_path if context.shrunk is not None else None
        destination = self._plan.usage_report_path
        if usage is None or destination is None:
            return
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(usage, destination)
        self.result.usage_report_path = destination

    def _finish(self, context: _RunContext) -> PipelineState:
        self._cleanup(context)
        if self._progress:
            ok(f"Wrote {self._plan.output_path} ({self.result.entries} entries)", use_emoji=self._use_emoji)
        return PipelineState.DONE

    def _cleanup(self, context: _RunContext) -> None:
        """Remove every intermediate created under the run directory."""

        if context.cleaned:
            return
        context.cleaned = True
        errors = remove_tree(context.workdir)
        for error in errors:
            LOGGER.warning("%s", error)
            if self._progress:
                warn(str(error), use_emoji=self._use_emoji)
        self.result.cleanup_errors.extend(errors)


_ValueT = TypeVar("_ValueT")


def _require(value: _ValueT | None, what: str) -> _ValueT:
    if value is None:
        raise RuntimeError(f"Pipeline stage ran before the {what} was produced")
    return value


def remove_tree(root: Path) -> list[CleanupError]:
    """Delete ``root`` and everything below it, collecting failures."""

    errors: list[CleanupError] = []
    for directory, subdirs, files in os.walk(root, topdown=False):
        base = Path(directory)
        for name in files:
            _try_remove(base / name, Path.unlink, errors)
        for name in subdirs:
            _try_remove(base / name, Path.rmdir, errors)
    _try_remove(root, Path.rmdir, errors)
    return errors


def _try_remove(path: Path, remover: Callable[[Path], None], errors: list[CleanupError]) -> None:
    try:
        remover(path)
    except FileNotFoundError:
        return
    except OSError as exc:
        errors.append(CleanupError(path, exc.strerror or str(exc)))


def _publish_atomically(archive: Archive, destination: Path) -> None:
    destination.parent.mkdir(parents=True, exist_ok=True)
    handle, staging = tempfile.mkstemp(prefix=f".{destination.name}.", suffix=".tmp", dir=destination.parent)
    os.close(handle)
    staging_path = Path(staging)
    try:
        archive.write(staging_path)
        os.replace(staging_path, destination)
    except BaseException:
        staging_path.unlink(missing_ok=True)
        raise


def default_engine(config: BundleConfig) -> RelocationEngine:
    """Return the relocation engine described by ``config``.

    Raises:
        ConfigurationError: If relocation rules are configured without a
            rewriter command.
    """

    command = config.relocation.rewriter_command
    if config.relocation.rules and not command:
        raise ConfigurationError("relocation.rules require relocation.rewriter_command")
    rewriter = CommandCodeRewriter(command, timeout=config.relocation.timeout_seconds) if command else None
    return ShadeEngine(rewriter)


def default_shrinker(config: BundleConfig) -> Shrinker:
    """Return the shrinker described by ``config``.

    Raises:
        ConfigurationError: If neither a command nor an R8 jar is configured.
    """

    if config.shrink.command:
        return CommandShrinker(config.shrink.command)
    if config.shrink.r8_jar is not None:
        command = r8_command(config.shrink.r8_jar, java=config.shrink.java, jdk_home=config.shrink.jdk_home)
        return CommandShrinker(command)
    raise ConfigurationError("Configure shrink.command or shrink.r8_jar")


def run_pipeline(
    config: BundleConfig,
    *,
    engine: RelocationEngine | None = None,
    shrinker: Shrinker | None = None,
    temp_root: Path | None = None,
    progress: bool = False,
    use_emoji: bool = True,
) -> PipelineResult:
    """Validate ``config`` and run the full bundling pipeline.

    Configuration problems surface as :class:`ConfigurationError` before any
    stage runs. When publication metadata and ``output.pom`` are configured
    the POM is written after the archive.
    """

    plan = BundlePlan.from_config(config)
    controller = PipelineController(
        plan,
        engine=engine or default_engine(config),
        shrinker=shrinker or default_shrinker(config),
        temp_root=temp_root,
        progress=progress,
        use_emoji=use_emoji,
    )
    result = controller.run()
    if config.publication is not None and config.output.pom is not None:
        write_pom(config.publication, config.output.pom)
    return result


__all__ = [
    "APP_CODE",
    "BundlePlan",
    "EXEMPT",
    "PipelineController",
    "PipelineResult",
    "PipelineState",
    "SHRINKABLE",
    "build_partition_rules",
    "default_engine",
    "default_shrinker",
    "remove_tree",
    "run_pipeline",
]
