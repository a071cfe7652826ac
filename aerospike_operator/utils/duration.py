"""Parsing of duration literals such as ``30d``, ``1.5d`` or ``1h30m``."""

import re
from datetime import timedelta

# seconds per unit
_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1,
    "m": 60,
    "h": 60 * 60,
    "d": 24 * 60 * 60,
}

_COMPONENT_PATTERN = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h|d)")


class DurationError(ValueError):
    """Raised when a duration literal cannot be parsed."""

    def __init__(self, value: str):
        super().__init__(f"invalid duration {value!r}")
        self.value = value


def parse_duration(value: str) -> timedelta:
    """Parse a duration literal.

    Accepts a sequence of decimal numbers each followed by a unit
    (``ns``, ``us``, ``ms``, ``s``, ``m``, ``h`` or ``d``) and an optional
    leading sign. A bare ``0`` is a zero duration.
    """
    if not isinstance(value, str):
        raise DurationError(str(value))
    s = value.strip()
    sign = 1
    if s[:1] in ("+", "-"):
        sign = -1 if s[0] == "-" else 1
        s = s[1:]
    if s == "0":
        return timedelta(0)
    if not s:
        raise DurationError(value)

    seconds = 0.0
    pos = 0
    while pos < len(s):
        match = _COMPONENT_PATTERN.match(s, pos)
        if match is None:
            raise DurationError(value)
        number, unit = match.groups()
        seconds += float(number) * _UNITS[unit]
        pos = match.end()
    return timedelta(seconds=sign * seconds)
