from __future__ import annotations

import hashlib
import os
from dataclasses import dataclass, replace
from pathlib import Path

LABEL_PREFIX = "io.cartesi.rollups"
LABEL_RAM_SIZE = f"{LABEL_PREFIX}.ram_size"
LABEL_DATA_SIZE = f"{LABEL_PREFIX}.data_size"
LABEL_SDK_NAME = f"{LABEL_PREFIX}.sdk_name"
LABEL_SDK_VERSION = f"{LABEL_PREFIX}.sdk_version"

DEFAULT_WORK_DIR = ".snapbuild"


@dataclass(frozen=True)
class BuildSettings:
    docker_bin: str = "docker"
    stage_timeout_s: float | None = None
    target_architecture: str = "riscv64"
    default_sdk_name: str = "cartesi/sdk"
    min_sdk_version: str = "0.9.0"
    default_ram_size: str = "128Mi"
    default_data_size: str = "10Mb"
    drive_label: str = "root"
    output_mode: int = 0o755


def _parse_positive_float_env(name: str, default: float | None) -> float | None:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        parsed = float(raw)
    except ValueError:
        return default
    if parsed <= 0.0:
        return default
    return parsed


def settings_from_env(base: BuildSettings | None = None) -> BuildSettings:
    settings = base if base is not None else BuildSettings()
    docker_bin = os.environ.get("SNAPBUILD_DOCKER_BIN", "").strip()
    return replace(
        settings,
        docker_bin=docker_bin or settings.docker_bin,
        stage_timeout_s=_parse_positive_float_env(
            "SNAPBUILD_STAGE_TIMEOUT_S", settings.stage_timeout_s
        ),
    )


_UNSAFE_PATH_CHARS = str.maketrans({c: "_" for c in "/:@\\ "})


def work_dir_for_image(image_ref: str, root: Path | None = None) -> Path:
    """Working area keyed by image reference, so builds of different images never share one."""
    env_root = os.environ.get("SNAPBUILD_WORK_DIR", "").strip()
    base = root if root is not None else Path(env_root or DEFAULT_WORK_DIR)
    ref = image_ref.strip()
    readable = ref.translate(_UNSAFE_PATH_CHARS).strip("._") or "image"
    # sanitizing is lossy; the digest keeps distinct refs apart
    digest = hashlib.sha256(ref.encode("utf-8")).hexdigest()[:12]
    return base / f"{readable}-{digest}"
