"""Image -> archive -> rootfs tarball -> ext2 -> machine snapshot.

The build is a straight line of states. Any failure after validation still
passes through `finalizing`, which removes every intermediate artifact; only a
build that reached `succeeded` leaves a snapshot behind.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from .commands import ext2_command, rootfs_tar_command, snapshot_command
from .config import BuildSettings
from .errors import ExecutionFailed
from .image_config import ImageConfiguration, load_image_config
from .image_store import DockerImageStore, ImageStore
from .sandbox import ContainerEngine, DockerEngine, OneShotRunner
from .snapshot import read_machine_hash
from .stage import (
    ExportArchiveStage,
    Stage,
    StageContext,
    StageResult,
    ToolsetStage,
    WorkingArea,
    remove_path,
    timed_stage,
)

logger = logging.getLogger(__name__)

BuildState = Literal[
    "initializing",
    "validating",
    "exporting_archive",
    "building_filesystem_image",
    "building_snapshot",
    "finalizing",
    "succeeded",
    "failed",
]

# Exit status of a stage stopped by SIGINT; treated as an operator shutdown.
OPERATOR_SHUTDOWN_EXIT_CODE = 130

_TRANSITIONS: dict[BuildState, frozenset[BuildState]] = {
    "initializing": frozenset({"validating", "failed"}),
    "validating": frozenset({"exporting_archive", "failed"}),
    "exporting_archive": frozenset({"building_filesystem_image", "finalizing"}),
    "building_filesystem_image": frozenset({"building_snapshot", "finalizing"}),
    "building_snapshot": frozenset({"finalizing"}),
    "finalizing": frozenset({"succeeded", "failed"}),
    "succeeded": frozenset(),
    "failed": frozenset(),
}

ROOTFS_STAGE = ToolsetStage(
    name="rootfs",
    command=lambda ctx: rootfs_tar_command(),
    source=lambda work: work.archive,
    target=lambda work: work.rootfs_tar,
)
EXT2_STAGE = ToolsetStage(
    name="ext2",
    command=lambda ctx: ext2_command(ctx.config.data_size_bytes),
    source=lambda work: work.rootfs_tar,
    target=lambda work: work.block_image,
)
SNAPSHOT_STAGE = ToolsetStage(
    name="snapshot",
    command=lambda ctx: snapshot_command(
        ctx.config, drive_label=ctx.settings.drive_label
    ),
    source=lambda work: work.block_image,
    target=lambda work: work.snapshot,
)

_STAGES_BY_STATE: dict[BuildState, tuple[Stage, ...]] = {
    "exporting_archive": (ExportArchiveStage(),),
    "building_filesystem_image": (ROOTFS_STAGE, EXT2_STAGE),
    "building_snapshot": (SNAPSHOT_STAGE,),
}


class InvalidTransition(RuntimeError):
    pass


@dataclass(frozen=True)
class BuildReport:
    image_ref: str
    work_dir: Path
    state: BuildState
    stage_results: list[StageResult]
    config: ImageConfiguration | None = None
    snapshot_path: Path | None = None
    machine_hash: str | None = None
    interrupted: bool = False

    @property
    def succeeded(self) -> bool:
        return self.state == "succeeded"


@dataclass
class SnapshotBuild:
    image_ref: str
    work: WorkingArea
    store: ImageStore
    runner: OneShotRunner
    settings: BuildSettings = field(default_factory=BuildSettings)
    state: BuildState = "initializing"
    config: ImageConfiguration | None = None
    stage_results: list[StageResult] = field(default_factory=list)

    def _enter(self, new_state: BuildState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise InvalidTransition(f"{self.state} -> {new_state}")
        logger.debug("build %s: %s -> %s", self.image_ref, self.state, new_state)
        self.state = new_state

    def _context(self) -> StageContext:
        if self.config is None:
            raise RuntimeError("stage context requested before validation")
        return StageContext(
            image_ref=self.image_ref,
            work=self.work,
            config=self.config,
            store=self.store,
            runner=self.runner,
            settings=self.settings,
        )

    def _initialize(self) -> None:
        with timed_stage("initialize", self.stage_results):
            self.work.reset()

    def _validate(self) -> None:
        with timed_stage("validate", self.stage_results):
            self.config = load_image_config(
                self.image_ref, store=self.store, settings=self.settings
            )

    def _run_stages(self) -> None:
        ctx = self._context()
        for stage in _STAGES_BY_STATE[self.state]:
            with timed_stage(stage.name, self.stage_results):
                stage.run(ctx)

    def _finalize(self, *, success: bool) -> None:
        with timed_stage("finalize", self.stage_results):
            for path in self.work.intermediates():
                if remove_path(path):
                    logger.debug("removed intermediate %s", path)
            if success:
                self.work.snapshot.chmod(self.settings.output_mode)
            elif remove_path(self.work.snapshot):
                logger.info("removed partial snapshot %s", self.work.snapshot)

    def _discard_snapshot(self) -> None:
        # finalize is already failing; its error is the one that propagates
        try:
            _ = remove_path(self.work.snapshot)
        except OSError as e:
            logger.warning("could not remove snapshot %s: %s", self.work.snapshot, e)

    def run(self) -> BuildReport:
        steps: list[tuple[BuildState, Callable[[], None]]] = [
            ("validating", self._validate),
            ("exporting_archive", self._run_stages),
            ("building_filesystem_image", self._run_stages),
            ("building_snapshot", self._run_stages),
        ]
        success = False
        interrupted = False
        try:
            self._initialize()
            for state, step in steps:
                self._enter(state)
                step()
            success = True
        except ExecutionFailed as e:
            if e.exit_code != OPERATOR_SHUTDOWN_EXIT_CODE:
                raise
            interrupted = True
            logger.warning("build %s: stage stopped by operator", self.image_ref)
        finally:
            if self.state in ("initializing", "validating"):
                self._enter("failed")
            else:
                self._enter("finalizing")
                finalized = False
                try:
                    self._finalize(success=success)
                    finalized = True
                finally:
                    self._enter("succeeded" if success and finalized else "failed")
                    if success and not finalized:
                        self._discard_snapshot()

        return BuildReport(
            image_ref=self.image_ref,
            work_dir=self.work.root,
            state=self.state,
            stage_results=list(self.stage_results),
            config=self.config,
            snapshot_path=self.work.snapshot if success else None,
            machine_hash=read_machine_hash(self.work.snapshot) if success else None,
            interrupted=interrupted,
        )


def build_snapshot(
    image_ref: str,
    work_dir: Path,
    *,
    settings: BuildSettings | None = None,
    store: ImageStore | None = None,
    engine: ContainerEngine | None = None,
) -> BuildReport:
    s = settings if settings is not None else BuildSettings()
    build = SnapshotBuild(
        image_ref=image_ref,
        work=WorkingArea(work_dir),
        store=store if store is not None else DockerImageStore(docker_bin=s.docker_bin),
        runner=OneShotRunner(
            engine=engine if engine is not None else DockerEngine(docker_bin=s.docker_bin),
            timeout_s=s.stage_timeout_s,
        ),
        settings=s,
    )
    report = build.run()
    if report.succeeded:
        logger.info("snapshot written to %s", report.snapshot_path)
    return report
