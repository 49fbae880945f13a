from __future__ import annotations

import json
import logging
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, cast

from .errors import ImageStoreError, ToolNotFound

logger = logging.getLogger(__name__)


class ImageStore(Protocol):
    def inspect(self, image_ref: str) -> dict[str, object]: ...

    def save(self, image_ref: str, dest: Path) -> None: ...


def resolve_docker_bin(docker_bin: str) -> str:
    resolved = shutil.which(docker_bin)
    if not resolved:
        raise ToolNotFound(f"{docker_bin} is not installed or not in PATH")
    return resolved


def _truncate_text(s: str, *, max_chars: int) -> str:
    if len(s) <= max_chars:
        return s
    if max_chars <= 3:
        return s[:max_chars]
    return s[: max_chars - 3] + "..."


@dataclass(frozen=True)
class DockerImageStore:
    docker_bin: str = "docker"
    max_error_chars: int = 4096

    def _run(self, argv: list[str]) -> subprocess.CompletedProcess[str]:
        cmd = [resolve_docker_bin(self.docker_bin), *argv]
        logger.debug("image store: %s", " ".join(cmd))
        try:
            return subprocess.run(
                cmd,
                text=True,
                capture_output=True,
                check=False,
            )
        except OSError as e:
            raise ImageStoreError(f"{' '.join(cmd)} failed: {e}") from e

    def inspect(self, image_ref: str) -> dict[str, object]:
        res = self._run(["image", "inspect", image_ref])
        if res.returncode != 0:
            stderr = _truncate_text(
                (res.stderr or "").strip(), max_chars=self.max_error_chars
            )
            raise ImageStoreError(
                f"docker image inspect {image_ref} exited with {res.returncode}: {stderr}"
            )
        try:
            payload = cast(object, json.loads(res.stdout or ""))
        except json.JSONDecodeError as e:
            raise ImageStoreError(f"docker image inspect returned invalid JSON: {e}") from e
        if not isinstance(payload, list) or not payload:
            raise ImageStoreError(f"docker image inspect returned no image for {image_ref}")
        first = cast(list[object], payload)[0]
        if not isinstance(first, dict):
            raise ImageStoreError("docker image inspect returned a non-object entry")
        return cast(dict[str, object], first)

    def save(self, image_ref: str, dest: Path) -> None:
        res = self._run(["image", "save", image_ref, "-o", str(dest)])
        if res.returncode != 0:
            stderr = _truncate_text(
                (res.stderr or "").strip(), max_chars=self.max_error_chars
            )
            raise ImageStoreError(
                f"docker image save {image_ref} exited with {res.returncode}: {stderr}"
            )
