"""Command lines for the toolset-container stages.

Every builder is a pure function of its arguments. Commands read their single
input from `INPUT_PATH` and write their single output to `OUTPUT_PATH`.
"""

from __future__ import annotations

import shlex
from collections.abc import Sequence

from .image_config import ImageConfiguration

INPUT_PATH = "/tmp/input"
OUTPUT_PATH = "/tmp/output"

BLOCK_SIZE = 4096
DEFAULT_DRIVE_LABEL = "root"


def shell_pipeline(segments: Sequence[Sequence[str]]) -> list[str]:
    """Join argv segments into one `bash -c` pipeline that fails if any segment fails."""
    if not segments:
        raise ValueError("pipeline needs at least one command")
    joined = " | ".join(shlex.join(list(seg)) for seg in segments)
    return ["/usr/bin/env", "bash", "-c", f"set -o pipefail; {joined}"]


def rootfs_tar_command() -> list[str]:
    return shell_pipeline(
        [
            ["cat", INPUT_PATH],
            # OCI image on stdin, flattened rootfs tarball on stdout
            ["crane", "export", "-", "-"],
            ["bsdtar", "-cf", OUTPUT_PATH, "--format=gnutar", "@/dev/stdin"],
        ]
    )


def extra_blocks(extra_bytes: int, *, block_size: int = BLOCK_SIZE) -> int:
    if extra_bytes < 0:
        raise ValueError(f"extra_bytes must be >= 0, got {extra_bytes}")
    return -(-extra_bytes // block_size)


def ext2_command(extra_bytes: int) -> list[str]:
    return [
        "xgenext2fs",
        "--tarball",
        INPUT_PATH,
        "--block-size",
        str(BLOCK_SIZE),
        "--faketime",
        "-r",
        f"+{extra_blocks(extra_bytes)}",
        OUTPUT_PATH,
    ]


def snapshot_command(
    config: ImageConfiguration, *, drive_label: str = DEFAULT_DRIVE_LABEL
) -> list[str]:
    cmd = [
        "create_machine_snapshot",
        f"--ram-length={config.ram_size}",
        f"--drive-label={drive_label}",
        f"--drive-filename={INPUT_PATH}",
        f"--output={OUTPUT_PATH}",
    ]
    if config.workdir:
        cmd.append(f"--workdir={config.workdir}")
    cmd.extend(f"--env={variable}" for variable in config.env)
    cmd.append(f"--entrypoint={config.boot_command}")
    return cmd
