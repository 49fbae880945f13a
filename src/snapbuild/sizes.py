"""Human-readable byte sizes.

`parse_size` never raises; callers decide whether `None` is fatal.
"""

from __future__ import annotations

import re
from fractions import Fraction

_SIZE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([A-Za-z]*)\s*$", re.ASCII)

# Exact-case suffixes: SI multiples and IEC binary multiples.
_UNITS: dict[str, int] = {
    "": 1,
    "b": 1,
    "B": 1,
    "k": 1000,
    "K": 1000,
    "M": 1000**2,
    "G": 1000**3,
    "T": 1000**4,
    "Ki": 1024,
    "KiB": 1024,
    "Mi": 1024**2,
    "MiB": 1024**2,
    "Gi": 1024**3,
    "GiB": 1024**3,
    "Ti": 1024**4,
    "TiB": 1024**4,
}

# Two-letter "xb" suffixes, any case, binary multiples ("10Mb" == 10 MiB).
_LOOSE_UNITS: dict[str, int] = {
    "kb": 1024,
    "mb": 1024**2,
    "gb": 1024**3,
    "tb": 1024**4,
    "pb": 1024**5,
}


def unit_factor(unit: str) -> int | None:
    if unit in _UNITS:
        return _UNITS[unit]
    return _LOOSE_UNITS.get(unit.lower())


def parse_size(text: object) -> int | None:
    if not isinstance(text, str):
        return None
    m = _SIZE_RE.match(text)
    if m is None:
        return None
    factor = unit_factor(m.group(2))
    if factor is None:
        return None
    # whole bytes, fractional remainder floored
    return int(Fraction(m.group(1)) * factor)


def format_size(n_bytes: int, unit: str) -> str:
    """Render `n_bytes` under `unit`, exactly enough that `parse_size` returns it."""
    if n_bytes < 0:
        raise ValueError(f"byte count must be >= 0, got {n_bytes}")
    factor = unit_factor(unit)
    if factor is None:
        raise ValueError(f"unknown size unit: {unit!r}")
    whole, rem = divmod(n_bytes, factor)
    digits: list[str] = []
    # every factor is 2**a * 5**b, so the expansion terminates
    while rem:
        rem *= 10
        digit, rem = divmod(rem, factor)
        digits.append(str(digit))
    text = f"{whole}.{''.join(digits)}" if digits else str(whole)
    return f"{text}{unit}"
