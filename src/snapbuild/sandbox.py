"""One-shot toolset containers.

A stage gets a fresh container with its input mounted at `/tmp/input`, runs
to completion, and its `/tmp/output` is copied back to the host. The container
is stopped and removed on every exit path.
"""

from __future__ import annotations

import logging
import subprocess
import threading
from collections import deque
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from .commands import INPUT_PATH, OUTPUT_PATH
from .errors import ArtifactCopyFailed, ExecutionFailed, ExecutionTimedOut
from .image_store import resolve_docker_bin

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Mount:
    host_path: Path
    container_path: str = INPUT_PATH
    read_only: bool = True

    def volume_arg(self) -> str:
        arg = f"{self.host_path.resolve()}:{self.container_path}"
        return f"{arg}:ro" if self.read_only else arg


@dataclass(frozen=True)
class StartResult:
    exit_code: int
    diagnostics: str


class ContainerEngine(Protocol):
    def create(self, image: str, command: Sequence[str], *, mounts: Sequence[Mount]) -> str: ...

    def start(self, container_id: str, *, timeout_s: float | None) -> StartResult: ...

    def copy_out(self, container_id: str, source: str, dest: Path) -> None: ...

    def stop(self, container_id: str) -> bool: ...

    def remove(self, container_id: str) -> bool: ...


def _stream_lines(stream: Iterable[str], tail: deque[str], label: str) -> None:
    for line in stream:
        text = line.rstrip("\n")
        tail.append(text)
        logger.info("[%s] %s", label, text)


@dataclass(frozen=True)
class DockerEngine:
    docker_bin: str = "docker"
    stop_timeout_s: int = 10
    tail_lines: int = 200

    def _cmd(self, *args: str) -> list[str]:
        return [resolve_docker_bin(self.docker_bin), *args]

    def create(self, image: str, command: Sequence[str], *, mounts: Sequence[Mount]) -> str:
        argv = self._cmd("container", "create")
        for m in mounts:
            argv.extend(["--volume", m.volume_arg()])
        argv.append(image)
        argv.extend(command)
        logger.debug("create: %s", " ".join(argv))
        res = subprocess.run(argv, text=True, capture_output=True, check=False)
        if res.returncode != 0:
            raise ExecutionFailed(res.returncode, (res.stderr or "").strip(), image=image)
        return (res.stdout or "").strip()

    def start(self, container_id: str, *, timeout_s: float | None) -> StartResult:
        argv = self._cmd("container", "start", "--attach", container_id)
        tail: deque[str] = deque(maxlen=self.tail_lines)
        proc = subprocess.Popen(
            argv,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
        )
        assert proc.stdout is not None
        reader = threading.Thread(
            target=_stream_lines,
            args=(proc.stdout, tail, container_id[:12]),
            daemon=True,
        )
        reader.start()
        try:
            exit_code = proc.wait(timeout=timeout_s)
        except subprocess.TimeoutExpired as e:
            proc.kill()
            _ = proc.wait()
            reader.join(timeout=1.0)
            raise ExecutionTimedOut(float(timeout_s or 0.0), "\n".join(tail)) from e
        except BaseException:
            proc.kill()
            _ = proc.wait()
            raise
        reader.join()
        return StartResult(exit_code=int(exit_code), diagnostics="\n".join(tail))

    def copy_out(self, container_id: str, source: str, dest: Path) -> None:
        src = f"{container_id}:{source}"
        res = subprocess.run(
            self._cmd("container", "cp", src, str(dest)),
            text=True,
            capture_output=True,
            check=False,
        )
        if res.returncode != 0:
            raise ArtifactCopyFailed(src, str(dest), (res.stderr or "").strip())

    def stop(self, container_id: str) -> bool:
        res = subprocess.run(
            self._cmd("container", "stop", "--time", str(self.stop_timeout_s), container_id),
            text=True,
            capture_output=True,
            check=False,
        )
        if res.returncode != 0:
            logger.warning(
                "docker container stop %s exited with %d: %s",
                container_id,
                res.returncode,
                (res.stderr or "").strip(),
            )
        return res.returncode == 0

    def remove(self, container_id: str) -> bool:
        res = subprocess.run(
            self._cmd("container", "rm", "--force", container_id),
            text=True,
            capture_output=True,
            check=False,
        )
        if res.returncode != 0:
            logger.warning(
                "docker container rm %s exited with %d: %s",
                container_id,
                res.returncode,
                (res.stderr or "").strip(),
            )
        return res.returncode == 0


@contextmanager
def ephemeral_container(
    engine: ContainerEngine,
    image: str,
    command: Sequence[str],
    *,
    mounts: Sequence[Mount],
) -> Iterator[str]:
    container_id = engine.create(image, command, mounts=mounts)
    logger.debug("created container %s from %s", container_id, image)
    try:
        yield container_id
    finally:
        # stop and remove are each attempted even if the other fails
        try:
            _ = engine.stop(container_id)
        finally:
            _ = engine.remove(container_id)
        logger.debug("removed container %s", container_id)


@dataclass(frozen=True)
class OneShotRunner:
    engine: ContainerEngine
    timeout_s: float | None = None

    def run(
        self,
        image: str,
        command: Sequence[str],
        input_path: Path,
        output_path: Path,
        *,
        read_only: bool = True,
    ) -> None:
        mount = Mount(host_path=input_path, read_only=read_only)
        with ephemeral_container(self.engine, image, command, mounts=[mount]) as cid:
            result = self.engine.start(cid, timeout_s=self.timeout_s)
            if result.exit_code != 0:
                raise ExecutionFailed(result.exit_code, result.diagnostics, image=image)
            self.engine.copy_out(cid, OUTPUT_PATH, output_path)
