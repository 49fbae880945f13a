from __future__ import annotations

import re
from dataclasses import dataclass

_SEMVER_RE = re.compile(
    r"^v?(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-((?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)"
    r"(?:\.(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*))*))?"
    r"(?:\+([0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?$",
    re.ASCII,
)


@dataclass(frozen=True)
class SemVer:
    major: int
    minor: int
    patch: int
    prerelease: tuple[str, ...] = ()
    build: tuple[str, ...] = ()

    def __str__(self) -> str:
        out = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            out += "-" + ".".join(self.prerelease)
        if self.build:
            out += "+" + ".".join(self.build)
        return out


def parse_version(text: object) -> SemVer | None:
    if not isinstance(text, str):
        return None
    m = _SEMVER_RE.match(text.strip())
    if m is None:
        return None
    pre = m.group(4)
    build = m.group(5)
    return SemVer(
        major=int(m.group(1)),
        minor=int(m.group(2)),
        patch=int(m.group(3)),
        prerelease=tuple(pre.split(".")) if pre else (),
        build=tuple(build.split(".")) if build else (),
    )


def is_valid(text: object) -> bool:
    return parse_version(text) is not None


def _compare_identifiers(a: str, b: str) -> int:
    a_num = a.isdigit()
    b_num = b.isdigit()
    if a_num and b_num:
        ai, bi = int(a), int(b)
        return (ai > bi) - (ai < bi)
    if a_num:
        return -1
    if b_num:
        return 1
    return (a > b) - (a < b)


def _compare_prerelease(a: tuple[str, ...], b: tuple[str, ...]) -> int:
    if not a and not b:
        return 0
    # a release outranks any pre-release of the same core version
    if not a:
        return 1
    if not b:
        return -1
    for x, y in zip(a, b):
        c = _compare_identifiers(x, y)
        if c:
            return c
    return (len(a) > len(b)) - (len(a) < len(b))


def compare(a: str, b: str) -> int:
    """Semver precedence of `a` relative to `b`: -1, 0 or 1.

    Build metadata does not take part in precedence.
    """
    va = parse_version(a)
    vb = parse_version(b)
    if va is None:
        raise ValueError(f"Invalid version: {a!r}")
    if vb is None:
        raise ValueError(f"Invalid version: {b!r}")
    core_a = (va.major, va.minor, va.patch)
    core_b = (vb.major, vb.minor, vb.patch)
    if core_a != core_b:
        return -1 if core_a < core_b else 1
    return _compare_prerelease(va.prerelease, vb.prerelease)


def less_than(a: str, b: str) -> bool:
    return compare(a, b) < 0
