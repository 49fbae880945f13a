from __future__ import annotations

import hashlib
from pathlib import Path

MACHINE_HASH_FILE = "hash"
MACHINE_HASH_BYTES = 32


def read_machine_hash(snapshot_dir: Path) -> str | None:
    hash_path = snapshot_dir / MACHINE_HASH_FILE
    if not hash_path.is_file():
        return None
    raw = hash_path.read_bytes()
    if len(raw) != MACHINE_HASH_BYTES:
        return None
    return "0x" + raw.hex()


def _sha256_file(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(chunk)
    return h.hexdigest()


def tree_digest(root: Path) -> str:
    """sha256 over every file's relative path and content, in sorted path order.

    Two snapshots with the same digest are byte-identical.
    """
    if root.is_file():
        return _sha256_file(root)
    h = hashlib.sha256()
    for path in sorted(p for p in root.rglob("*") if p.is_file()):
        rel = path.relative_to(root).as_posix()
        h.update(rel.encode("utf-8"))
        h.update(b"\0")
        h.update(_sha256_file(path).encode("ascii"))
        h.update(b"\n")
    return h.hexdigest()
