from __future__ import annotations

import logging

import pytest

from fakes import FakeStore, image_info
from snapbuild.config import BuildSettings
from snapbuild.errors import (
    InvalidSizeValue,
    MissingBootCommand,
    UnsupportedArchitecture,
    UnsupportedToolsetVersion,
)
from snapbuild.image_config import image_config_from_inspect, load_image_config


def _labels(**kwargs: str) -> dict[str, str]:
    return {f"io.cartesi.rollups.{k}": v for k, v in kwargs.items()}


def test_defaults_applied_when_labels_absent() -> None:
    cfg = image_config_from_inspect(image_info(entrypoint=["/app"]))

    assert cfg.architecture == "riscv64"
    assert cfg.ram_size == "128Mi"
    assert cfg.data_size == "10Mb"
    assert cfg.data_size_bytes == 10 * 1024 * 1024
    assert cfg.toolset_image == "cartesi/sdk:0.9.0"
    assert cfg.workdir is None
    assert cfg.cmd == ()
    assert any("sdk_version" in w for w in cfg.warnings)
    assert any("ram_size" in w for w in cfg.warnings)


def test_labels_override_defaults_and_fields_pass_through() -> None:
    info = image_info(
        entrypoint=["/bin/sh", "-c"],
        cmd=["exec /app --port 8080"],
        env=["A=1", "B=two words"],
        workdir="/opt/app",
        labels=_labels(
            ram_size="256Mi", data_size="20Mb", sdk_name="acme/sdk", sdk_version="1.2.3"
        ),
    )
    cfg = image_config_from_inspect(info)

    assert cfg.ram_size == "256Mi"
    assert cfg.data_size_bytes == 20 * 1024 * 1024
    assert cfg.toolset_image == "acme/sdk:1.2.3"
    assert cfg.env == ("A=1", "B=two words")
    assert cfg.workdir == "/opt/app"
    assert cfg.boot_command == "/bin/sh -c exec /app --port 8080"
    assert cfg.warnings == ()


@pytest.mark.parametrize("arch", ["amd64", "arm64", ""])
def test_rejects_wrong_architecture(arch: str) -> None:
    with pytest.raises(UnsupportedArchitecture) as exc:
        _ = image_config_from_inspect(image_info(architecture=arch, entrypoint=["/app"]))
    assert exc.value.token == "UNSUPPORTED_ARCHITECTURE"
    assert "Expected riscv64" in str(exc.value)


def test_architecture_checked_before_boot_command() -> None:
    with pytest.raises(UnsupportedArchitecture):
        _ = image_config_from_inspect(image_info(architecture="amd64"))


def test_target_architecture_comes_from_settings() -> None:
    settings = BuildSettings(target_architecture="amd64")
    cfg = image_config_from_inspect(
        image_info(architecture="amd64", cmd=["/app"]), settings
    )
    assert cfg.architecture == "amd64"


@pytest.mark.parametrize(
    ("cmd", "entrypoint"), [(None, None), ([], []), (None, []), ([], None)]
)
def test_rejects_missing_boot_command(
    cmd: list[str] | None, entrypoint: list[str] | None
) -> None:
    with pytest.raises(MissingBootCommand) as exc:
        _ = image_config_from_inspect(image_info(cmd=cmd, entrypoint=entrypoint))
    assert exc.value.token == "MISSING_BOOT_COMMAND"


def test_accepts_minimum_toolset_version_exactly() -> None:
    cfg = image_config_from_inspect(
        image_info(cmd=["/app"], labels=_labels(sdk_version="0.9.0"))
    )
    assert cfg.sdk_version == "0.9.0"
    assert not any("sdk" in w for w in cfg.warnings)


def test_rejects_toolset_version_one_patch_below_minimum() -> None:
    settings = BuildSettings(min_sdk_version="0.9.1")
    with pytest.raises(UnsupportedToolsetVersion) as exc:
        _ = image_config_from_inspect(
            image_info(cmd=["/app"], labels=_labels(sdk_version="0.9.0")), settings
        )
    assert exc.value.version == "0.9.0"
    assert exc.value.minimum == "0.9.1"


def test_rejects_old_default_toolset() -> None:
    with pytest.raises(UnsupportedToolsetVersion):
        _ = image_config_from_inspect(
            image_info(cmd=["/app"], labels=_labels(sdk_version="0.8.9"))
        )


def test_old_version_allowed_for_custom_toolset() -> None:
    cfg = image_config_from_inspect(
        image_info(cmd=["/app"], labels=_labels(sdk_name="acme/sdk", sdk_version="0.1.0"))
    )
    assert cfg.toolset_image == "acme/sdk:0.1.0"


def test_invalid_toolset_version_only_warns(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="snapbuild.image_config"):
        cfg = image_config_from_inspect(
            image_info(cmd=["/app"], labels=_labels(sdk_version="latest"))
        )
    assert cfg.toolset_image == "cartesi/sdk:latest"
    assert any("not a valid semver" in w for w in cfg.warnings)
    assert "not a valid semver" in caplog.text


@pytest.mark.parametrize("value", ["12XB", "-5Mi", "lots", ""])
def test_rejects_unparseable_data_size(value: str) -> None:
    with pytest.raises(InvalidSizeValue) as exc:
        _ = image_config_from_inspect(
            image_info(cmd=["/app"], labels=_labels(data_size=value))
        )
    assert exc.value.value == value
    assert "io.cartesi.rollups.data_size" in str(exc.value)


def test_unparseable_ram_size_is_passed_through_with_warning() -> None:
    cfg = image_config_from_inspect(
        image_info(cmd=["/app"], labels=_labels(ram_size="huge"))
    )
    assert cfg.ram_size == "huge"
    assert any("ram_size" in w for w in cfg.warnings)


def test_empty_sdk_name_label_falls_back_with_warning() -> None:
    cfg = image_config_from_inspect(
        image_info(cmd=["/app"], labels=_labels(sdk_name="", sdk_version="0.9.1"))
    )
    assert cfg.toolset_image == "cartesi/sdk:0.9.1"
    assert any("sdk_name" in w for w in cfg.warnings)


def test_load_image_config_inspects_through_store() -> None:
    store = FakeStore(image_info(cmd=["/app"]))
    cfg = load_image_config("myapp:latest", store=store)
    assert store.inspected == ["myapp:latest"]
    assert store.saved == []
    assert cfg.cmd == ("/app",)
