"""Module entrypoint.

Allows: python -m snapbuild
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import replace
from pathlib import Path
from typing import cast

from . import __version__
from .config import settings_from_env, work_dir_for_image
from .errors import ImageValidationError, SnapshotBuildError
from .pipeline import build_snapshot
from .snapshot import read_machine_hash
from .stage import WorkingArea

EXIT_OK = 0
EXIT_INVALID_IMAGE = 10
EXIT_BUILD_FAILED = 20
EXIT_INTERRUPTED = 130

_LOG_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"


def _setup_logging(*, verbose: bool, quiet: bool) -> None:
    level = logging.INFO
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    root = logging.getLogger("snapbuild")
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)


def _raise_interrupt(signum: int, frame: object) -> None:
    raise KeyboardInterrupt(f"received signal {signum}")


@contextmanager
def _sigterm_as_interrupt() -> Iterator[None]:
    """Route SIGTERM through the same teardown path as Ctrl-C while building."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return
    previous = signal.signal(signal.SIGTERM, _raise_interrupt)
    try:
        yield
    finally:
        _ = signal.signal(signal.SIGTERM, previous)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="snapbuild",
        description="Build a bootable machine snapshot from a RISC-V container image.",
    )
    _ = parser.add_argument(
        "--version",
        action="version",
        version=f"snapbuild {__version__}",
        help="Print version and exit.",
    )
    sub = parser.add_subparsers(dest="command")

    build = sub.add_parser(
        "build",
        help="Convert an image into a machine snapshot in the working area.",
    )
    _ = build.add_argument("image", help="Image reference or id to convert.")
    _ = build.add_argument(
        "--work-dir",
        default=None,
        metavar="DIR",
        help="Working area (default: .snapbuild/<image>). Emptied before the build.",
    )
    _ = build.add_argument(
        "--timeout-s",
        type=float,
        default=None,
        metavar="SECONDS",
        help="Per-stage timeout for toolset containers (default: none).",
    )
    verbosity = build.add_mutually_exclusive_group()
    _ = verbosity.add_argument("-v", "--verbose", action="store_true")
    _ = verbosity.add_argument("-q", "--quiet", action="store_true")

    hash_cmd = sub.add_parser(
        "hash",
        help="Print the machine hash of a previously built snapshot.",
    )
    _ = hash_cmd.add_argument("--work-dir", required=True, metavar="DIR")

    return parser


def _cmd_build(args: argparse.Namespace) -> int:
    image = cast(str, args.image)
    _setup_logging(verbose=bool(args.verbose), quiet=bool(args.quiet))

    settings = settings_from_env()
    timeout_s = cast(float | None, args.timeout_s)
    if timeout_s is not None:
        if timeout_s <= 0:
            print("Invalid --timeout-s value: must be > 0", file=sys.stderr)
            return EXIT_BUILD_FAILED
        settings = replace(settings, stage_timeout_s=timeout_s)

    work_dir_raw = cast(str | None, args.work_dir)
    work_dir = Path(work_dir_raw) if work_dir_raw else work_dir_for_image(image)

    try:
        with _sigterm_as_interrupt():
            report = build_snapshot(image, work_dir, settings=settings)
    except ImageValidationError as e:
        print(f"{e.token}: {e}", file=sys.stderr)
        return EXIT_INVALID_IMAGE
    except SnapshotBuildError as e:
        print(f"{e.token}: {e}", file=sys.stderr)
        return EXIT_BUILD_FAILED
    except KeyboardInterrupt:
        print("Interrupted; working area cleaned up.", file=sys.stderr)
        return EXIT_INTERRUPTED

    if report.interrupted:
        return EXIT_INTERRUPTED
    if report.machine_hash:
        print(report.machine_hash)
    return EXIT_OK


def _cmd_hash(args: argparse.Namespace) -> int:
    work = WorkingArea(Path(cast(str, args.work_dir)))
    machine_hash = read_machine_hash(work.snapshot)
    if machine_hash is None:
        print(
            f"Machine snapshot not found in {work.snapshot}, run 'snapbuild build'",
            file=sys.stderr,
        )
        return EXIT_BUILD_FAILED
    print(machine_hash)
    return EXIT_OK


def main(argv: Sequence[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]

    parser = _build_parser()
    try:
        args = parser.parse_args(list(argv))
    except SystemExit as e:
        return int(e.code) if isinstance(e.code, int) else EXIT_BUILD_FAILED

    command = cast(str | None, getattr(args, "command", None))
    if command is None:
        parser.print_help()
        return EXIT_OK
    if command == "build":
        return _cmd_build(args)
    if command == "hash":
        return _cmd_hash(args)

    print(f"Unknown command: {command}", file=sys.stderr)
    return EXIT_BUILD_FAILED


if __name__ == "__main__":
    raise SystemExit(main())
