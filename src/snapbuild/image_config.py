from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import cast

from . import versions
from .config import (
    LABEL_DATA_SIZE,
    LABEL_RAM_SIZE,
    LABEL_SDK_NAME,
    LABEL_SDK_VERSION,
    BuildSettings,
)
from .errors import (
    InvalidSizeValue,
    MissingBootCommand,
    UnsupportedArchitecture,
    UnsupportedToolsetVersion,
)
from .image_store import ImageStore
from .sizes import parse_size

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageConfiguration:
    architecture: str
    cmd: tuple[str, ...]
    entrypoint: tuple[str, ...]
    env: tuple[str, ...]
    workdir: str | None
    ram_size: str
    data_size: str
    data_size_bytes: int
    sdk_name: str
    sdk_version: str
    warnings: tuple[str, ...] = ()

    @property
    def toolset_image(self) -> str:
        return f"{self.sdk_name}:{self.sdk_version}"

    @property
    def boot_command(self) -> str:
        return " ".join([*self.entrypoint, *self.cmd])


def _str_list(value: object) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(str(v) for v in cast(list[object], value))


def _labels(config: dict[str, object]) -> dict[str, str]:
    labels_any = config.get("Labels")
    if not isinstance(labels_any, dict):
        return {}
    out: dict[str, str] = {}
    for k, v in cast(dict[object, object], labels_any).items():
        if isinstance(k, str) and isinstance(v, str):
            out[k] = v
    return out


def image_config_from_inspect(
    info: dict[str, object], settings: BuildSettings | None = None
) -> ImageConfiguration:
    """Validate one `docker image inspect` object and fill label defaults.

    Checks run in a fixed order: architecture, boot command, toolset version,
    data size. The first failing check raises; a version that is not valid
    semver is only a warning.
    """
    s = settings if settings is not None else BuildSettings()
    warnings: list[str] = []

    architecture_any = info.get("Architecture")
    architecture = architecture_any if isinstance(architecture_any, str) else None
    if architecture != s.target_architecture:
        raise UnsupportedArchitecture(architecture, s.target_architecture)

    config_any = info.get("Config")
    config = cast(dict[str, object], config_any) if isinstance(config_any, dict) else {}
    labels = _labels(config)

    cmd = _str_list(config.get("Cmd"))
    entrypoint = _str_list(config.get("Entrypoint"))
    if not cmd and not entrypoint:
        raise MissingBootCommand()

    sdk_name = labels.get(LABEL_SDK_NAME, s.default_sdk_name)
    if not sdk_name:
        warnings.append(f"Empty {LABEL_SDK_NAME} label, using {s.default_sdk_name}")
        sdk_name = s.default_sdk_name
    sdk_version = labels.get(LABEL_SDK_VERSION)
    if not sdk_version:
        warnings.append(
            f"Undefined {LABEL_SDK_VERSION} label, defaulting to {s.min_sdk_version}"
        )
        sdk_version = s.min_sdk_version

    # TODO: confirm with the product owner whether an unparseable sdk version
    # should be fatal like an outdated one.
    if not versions.is_valid(sdk_version):
        warnings.append(f"sdk version is not a valid semver: {sdk_version}")
    elif sdk_name == s.default_sdk_name and versions.less_than(
        sdk_version, s.min_sdk_version
    ):
        raise UnsupportedToolsetVersion(sdk_version, s.min_sdk_version)

    ram_size = labels.get(LABEL_RAM_SIZE)
    if not ram_size:
        warnings.append(
            f"Undefined {LABEL_RAM_SIZE} label, defaulting to {s.default_ram_size}"
        )
        ram_size = s.default_ram_size
    elif parse_size(ram_size) is None:
        warnings.append(f"{LABEL_RAM_SIZE} value is not a recognized size: {ram_size}")

    # an explicit empty label is rejected below, not defaulted
    data_size = labels.get(LABEL_DATA_SIZE, s.default_data_size)
    data_size_bytes = parse_size(data_size)
    if data_size_bytes is None:
        raise InvalidSizeValue(LABEL_DATA_SIZE, data_size)

    workdir_any = config.get("WorkingDir")
    workdir = workdir_any if isinstance(workdir_any, str) and workdir_any else None

    for w in warnings:
        logger.warning("%s", w)

    return ImageConfiguration(
        architecture=s.target_architecture,
        cmd=cmd,
        entrypoint=entrypoint,
        env=_str_list(config.get("Env")),
        workdir=workdir,
        ram_size=ram_size,
        data_size=data_size,
        data_size_bytes=data_size_bytes,
        sdk_name=sdk_name,
        sdk_version=sdk_version,
        warnings=tuple(warnings),
    )


def load_image_config(
    image_ref: str, *, store: ImageStore, settings: BuildSettings | None = None
) -> ImageConfiguration:
    info = store.inspect(image_ref)
    config = image_config_from_inspect(info, settings)
    logger.info(
        "image %s: toolset=%s ram=%s data=%s (%d bytes)",
        image_ref,
        config.toolset_image,
        config.ram_size,
        config.data_size,
        config.data_size_bytes,
    )
    return config
