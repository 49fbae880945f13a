from __future__ import annotations

import json
import subprocess
from pathlib import Path

import pytest

from snapbuild.errors import ImageStoreError, ToolNotFound
from snapbuild.image_store import DockerImageStore


def _patch_run(
    monkeypatch: pytest.MonkeyPatch, *, returncode: int, stdout: str = "", stderr: str = ""
) -> list[list[str]]:
    seen: list[list[str]] = []

    def fake_run(args: list[str], **kwargs: object) -> subprocess.CompletedProcess[str]:
        _ = kwargs
        seen.append(list(args))
        return subprocess.CompletedProcess(
            args=args, returncode=returncode, stdout=stdout, stderr=stderr
        )

    monkeypatch.setattr("snapbuild.image_store.shutil.which", lambda _name: "/usr/bin/docker")
    monkeypatch.setattr("snapbuild.image_store.subprocess.run", fake_run)
    return seen


def test_inspect_returns_first_image_object(monkeypatch: pytest.MonkeyPatch) -> None:
    payload = [{"Architecture": "riscv64", "Config": {"Cmd": ["/app"]}}]
    seen = _patch_run(monkeypatch, returncode=0, stdout=json.dumps(payload))

    info = DockerImageStore().inspect("myapp:1")

    assert info["Architecture"] == "riscv64"
    assert seen == [["/usr/bin/docker", "image", "inspect", "myapp:1"]]


@pytest.mark.parametrize("stdout", ["not json", "[]", "{}", "[1]"])
def test_inspect_rejects_malformed_output(
    monkeypatch: pytest.MonkeyPatch, stdout: str
) -> None:
    _ = _patch_run(monkeypatch, returncode=0, stdout=stdout)
    with pytest.raises(ImageStoreError):
        _ = DockerImageStore().inspect("myapp:1")


def test_inspect_nonzero_exit_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    _ = _patch_run(monkeypatch, returncode=1, stderr="No such image: myapp:1")
    with pytest.raises(ImageStoreError, match="No such image"):
        _ = DockerImageStore().inspect("myapp:1")


def test_save_writes_archive_to_destination(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    seen = _patch_run(monkeypatch, returncode=0)
    dest = tmp_path / "image.tar"

    DockerImageStore().save("myapp:1", dest)

    assert seen == [["/usr/bin/docker", "image", "save", "myapp:1", "-o", str(dest)]]


def test_save_nonzero_exit_raises(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _ = _patch_run(monkeypatch, returncode=1, stderr="disk full")
    with pytest.raises(ImageStoreError) as exc:
        DockerImageStore().save("myapp:1", tmp_path / "image.tar")
    assert exc.value.token == "IMAGE_STORE_FAILED"


def test_missing_docker_binary(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("snapbuild.image_store.shutil.which", lambda _name: None)
    with pytest.raises(ToolNotFound):
        _ = DockerImageStore().inspect("myapp:1")
