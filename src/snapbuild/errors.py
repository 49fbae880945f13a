from __future__ import annotations


class SnapshotBuildError(Exception):
    token: str = "SNAPSHOT_BUILD_FAILED"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message: str = message


class ImageValidationError(SnapshotBuildError):
    """Image metadata rejected before any stage ran."""


class UnsupportedArchitecture(ImageValidationError):
    token = "UNSUPPORTED_ARCHITECTURE"

    def __init__(self, architecture: str | None, expected: str) -> None:
        super().__init__(
            f"Invalid image Architecture: {architecture}. Expected {expected}"
        )
        self.architecture: str | None = architecture
        self.expected: str = expected


class MissingBootCommand(ImageValidationError):
    token = "MISSING_BOOT_COMMAND"

    def __init__(self) -> None:
        super().__init__("Undefined image ENTRYPOINT or CMD")


class UnsupportedToolsetVersion(ImageValidationError):
    token = "UNSUPPORTED_TOOLSET_VERSION"

    def __init__(self, version: str, minimum: str) -> None:
        super().__init__(
            f"Unsupported sdk version: {version} (used) < {minimum} (minimum)."
        )
        self.version: str = version
        self.minimum: str = minimum


class InvalidSizeValue(ImageValidationError):
    token = "INVALID_SIZE_VALUE"

    def __init__(self, label: str, value: str) -> None:
        super().__init__(f"Invalid {label} value: {value}")
        self.label: str = label
        self.value: str = value


class ImageStoreError(SnapshotBuildError):
    token = "IMAGE_STORE_FAILED"


class ToolNotFound(SnapshotBuildError):
    token = "TOOL_NOT_FOUND"


class ExecutionFailed(SnapshotBuildError):
    token = "EXECUTION_FAILED"

    def __init__(self, exit_code: int, diagnostics: str = "", *, image: str = "") -> None:
        label = f" in {image}" if image else ""
        super().__init__(f"Stage command{label} exited with code {exit_code}")
        self.exit_code: int = exit_code
        self.diagnostics: str = diagnostics
        self.image: str = image


class ExecutionTimedOut(SnapshotBuildError):
    token = "EXECUTION_TIMED_OUT"

    def __init__(self, timeout_s: float, diagnostics: str = "") -> None:
        super().__init__(f"Stage command timed out after {timeout_s}s")
        self.timeout_s: float = timeout_s
        self.diagnostics: str = diagnostics


class ArtifactCopyFailed(SnapshotBuildError):
    token = "ARTIFACT_COPY_FAILED"

    def __init__(self, source: str, dest: str, detail: str = "") -> None:
        msg = f"Failed to copy {source} to {dest}"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)
        self.source: str = source
        self.dest: str = dest


class UnsafeWorkingArea(SnapshotBuildError):
    token = "UNSAFE_WORKING_AREA"

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Refusing to use {path} as working area: {reason}")
        self.path: str = path
