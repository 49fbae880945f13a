from __future__ import annotations

import pytest

from snapbuild.commands import (
    ext2_command,
    extra_blocks,
    rootfs_tar_command,
    shell_pipeline,
    snapshot_command,
)
from snapbuild.image_config import ImageConfiguration


def _config(**overrides: object) -> ImageConfiguration:
    base: dict[str, object] = {
        "architecture": "riscv64",
        "cmd": ("--port", "8080"),
        "entrypoint": ("/usr/local/bin/app",),
        "env": ("PATH=/usr/bin:/bin", "MODE=prod"),
        "workdir": "/opt/app",
        "ram_size": "256Mi",
        "data_size": "20Mb",
        "data_size_bytes": 20 * 1024 * 1024,
        "sdk_name": "cartesi/sdk",
        "sdk_version": "0.9.0",
    }
    base.update(overrides)
    return ImageConfiguration(**base)  # type: ignore[arg-type]


def test_rootfs_command_is_a_pipefail_bash_pipeline() -> None:
    cmd = rootfs_tar_command()
    assert cmd[:3] == ["/usr/bin/env", "bash", "-c"]
    assert len(cmd) == 4
    assert cmd[3] == (
        "set -o pipefail; cat /tmp/input | crane export - - | "
        "bsdtar -cf /tmp/output --format=gnutar @/dev/stdin"
    )


def test_shell_pipeline_quotes_each_argument() -> None:
    cmd = shell_pipeline([["echo", "two words"], ["tr", "a-z", "A-Z"]])
    assert cmd[3] == "set -o pipefail; echo 'two words' | tr a-z A-Z"


def test_shell_pipeline_rejects_empty() -> None:
    with pytest.raises(ValueError):
        _ = shell_pipeline([])


@pytest.mark.parametrize(
    ("extra", "blocks"),
    [(0, 0), (1, 1), (4096, 1), (4097, 2), (10 * 1024 * 1024, 2560)],
)
def test_extra_blocks_rounds_up_to_whole_blocks(extra: int, blocks: int) -> None:
    assert extra_blocks(extra) == blocks


def test_extra_blocks_rejects_negative() -> None:
    with pytest.raises(ValueError):
        _ = extra_blocks(-1)


def test_ext2_command_uses_fixed_block_size_and_faketime() -> None:
    assert ext2_command(20 * 1024 * 1024) == [
        "xgenext2fs",
        "--tarball",
        "/tmp/input",
        "--block-size",
        "4096",
        "--faketime",
        "-r",
        "+5120",
        "/tmp/output",
    ]


def test_snapshot_command_full() -> None:
    assert snapshot_command(_config()) == [
        "create_machine_snapshot",
        "--ram-length=256Mi",
        "--drive-label=root",
        "--drive-filename=/tmp/input",
        "--output=/tmp/output",
        "--workdir=/opt/app",
        "--env=PATH=/usr/bin:/bin",
        "--env=MODE=prod",
        "--entrypoint=/usr/local/bin/app --port 8080",
    ]


def test_snapshot_command_omits_workdir_and_env_when_unset() -> None:
    cmd = snapshot_command(_config(workdir=None, env=(), cmd=()))
    assert cmd == [
        "create_machine_snapshot",
        "--ram-length=256Mi",
        "--drive-label=root",
        "--drive-filename=/tmp/input",
        "--output=/tmp/output",
        "--entrypoint=/usr/local/bin/app",
    ]
    assert "" not in cmd


def test_snapshot_command_custom_drive_label() -> None:
    cmd = snapshot_command(_config(), drive_label="data")
    assert "--drive-label=data" in cmd


def test_builders_are_deterministic() -> None:
    cfg = _config()
    assert snapshot_command(cfg) == snapshot_command(cfg)
    assert rootfs_tar_command() == rootfs_tar_command()
    assert ext2_command(123) == ext2_command(123)
