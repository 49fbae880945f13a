"""Stage primitives.

A stage turns exactly one artifact in the working area into exactly one new
artifact. Stages raise on failure; `timed_stage` records the outcome either way.
"""

from __future__ import annotations

import logging
import shutil
import time
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal, Protocol

from .config import BuildSettings
from .errors import UnsafeWorkingArea
from .image_config import ImageConfiguration
from .image_store import ImageStore
from .sandbox import OneShotRunner

logger = logging.getLogger(__name__)

StageStatus = Literal["ok", "failed"]


def _iso_utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class WorkingArea:
    root: Path

    @property
    def snapshot(self) -> Path:
        return self.root / "image"

    @property
    def archive(self) -> Path:
        return self.root / "image.tar"

    @property
    def rootfs_tar(self) -> Path:
        return self.root / "image.gnutar"

    @property
    def block_image(self) -> Path:
        return self.root / "image.ext2"

    def intermediates(self) -> tuple[Path, ...]:
        return (self.archive, self.rootfs_tar, self.block_image)

    def check_safe(self) -> None:
        """Reject roots whose deletion would take the user's files with it."""
        resolved = self.root.resolve()
        cwd = Path.cwd().resolve()
        if resolved == cwd or resolved in cwd.parents:
            raise UnsafeWorkingArea(str(self.root), "contains the current directory")
        home = Path.home().resolve()
        if resolved == home or resolved in home.parents:
            raise UnsafeWorkingArea(str(self.root), "contains the home directory")

    def reset(self) -> None:
        self.check_safe()
        if self.root.exists():
            shutil.rmtree(self.root)
        self.root.mkdir(parents=True)


def remove_path(path: Path) -> bool:
    """Delete a file or directory; an absent path is not an error."""
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
        return True
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    return True


@dataclass(frozen=True)
class StageContext:
    image_ref: str
    work: WorkingArea
    config: ImageConfiguration
    store: ImageStore
    runner: OneShotRunner
    settings: BuildSettings


@dataclass(frozen=True)
class StageResult:
    stage: str
    status: StageStatus
    started_at: str
    finished_at: str
    duration_s: float
    error: str | None


class Stage(Protocol):
    @property
    def name(self) -> str: ...

    def run(self, ctx: StageContext) -> None: ...


@dataclass(frozen=True)
class ExportArchiveStage:
    """Save the source image straight from the image store; no container involved."""

    name: str = "archive"

    def run(self, ctx: StageContext) -> None:
        ctx.store.save(ctx.image_ref, ctx.work.archive)


@dataclass(frozen=True)
class ToolsetStage:
    name: str
    command: Callable[[StageContext], Sequence[str]]
    source: Callable[[WorkingArea], Path]
    target: Callable[[WorkingArea], Path]
    read_only: bool = True

    def run(self, ctx: StageContext) -> None:
        ctx.runner.run(
            ctx.config.toolset_image,
            list(self.command(ctx)),
            self.source(ctx.work),
            self.target(ctx.work),
            read_only=self.read_only,
        )


@contextmanager
def timed_stage(name: str, results: list[StageResult]) -> Iterator[None]:
    started_at = _iso_utc_now()
    t0 = time.monotonic()
    status: StageStatus = "failed"
    error: str | None = None
    logger.info("stage %s: started", name)
    try:
        yield
        status = "ok"
    except BaseException as e:
        error = f"{type(e).__name__}: {e}"
        raise
    finally:
        duration_s = max(0.0, time.monotonic() - t0)
        results.append(
            StageResult(
                stage=name,
                status=status,
                started_at=started_at,
                finished_at=_iso_utc_now(),
                duration_s=duration_s,
                error=error,
            )
        )
        logger.info("stage %s: %s in %.2fs", name, status, duration_s)
