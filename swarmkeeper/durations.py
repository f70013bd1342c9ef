"""Duration strings in the format used by the Docker CLI (``1m30s``, ``500ms``)."""

import re
from datetime import timedelta

_UNITS_IN_MICROSECONDS = {
    "ns": 0.001,
    "us": 1,
    "µs": 1,
    "μs": 1,
    "ms": 1_000,
    "s": 1_000_000,
    "m": 60_000_000,
    "h": 3_600_000_000,
}

_COMPONENT = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def parse_duration(value: str) -> timedelta:
    """Parse a duration string such as ``7s``, ``1m30s`` or ``1.5h``.

    A bare ``0`` is accepted, any other number needs a unit.

    Args:
        value: Duration string

    Returns:
        Parsed duration

    Raises:
        ValueError: If the string is not a valid duration
    """
    text = value.strip()
    sign = 1
    if text[:1] in ("-", "+"):
        sign = -1 if text[0] == "-" else 1
        text = text[1:]

    if text == "0":
        return timedelta(0)
    if not text:
        raise ValueError(f"invalid duration {value!r}")

    position = 0
    microseconds = 0.0
    while position < len(text):
        match = _COMPONENT.match(text, position)
        if match is None:
            raise ValueError(f"invalid duration {value!r}")
        number, unit = match.groups()
        microseconds += float(number) * _UNITS_IN_MICROSECONDS[unit]
        position = match.end()

    return timedelta(microseconds=sign * round(microseconds))


def _fraction(value: int, unit: int) -> str:
    whole, rest = divmod(value, unit)
    if not rest:
        return str(whole)
    digits = len(str(unit)) - 1
    return f"{whole}.{str(rest).zfill(digits).rstrip('0')}"


def format_duration(value: timedelta) -> str:
    """Render a duration the way the Docker CLI prints it (``3m0s``, ``1h0m0s``)."""
    total = (value.days * 86_400 + value.seconds) * 1_000_000 + value.microseconds
    if total == 0:
        return "0s"

    sign = "-" if total < 0 else ""
    total = abs(total)

    if total < 1_000:
        return f"{sign}{total}µs"
    if total < 1_000_000:
        return f"{sign}{_fraction(total, 1_000)}ms"

    hours, rest = divmod(total, 3_600_000_000)
    minutes, rest = divmod(rest, 60_000_000)

    out = sign
    if hours:
        out += f"{hours}h"
    if hours or minutes:
        out += f"{minutes}m"
    return out + f"{_fraction(rest, 1_000_000)}s"


def to_nanoseconds(value: timedelta) -> int:
    """Convert a duration to the integer nanoseconds the daemon uses in specs."""
    return ((value.days * 86_400 + value.seconds) * 1_000_000 + value.microseconds) * 1_000


def from_nanoseconds(value: int | None) -> timedelta:
    """Convert daemon nanoseconds into a duration (``None`` means zero)."""
    return timedelta(microseconds=(value or 0) // 1_000)
