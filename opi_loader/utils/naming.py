"""
Naming and formatting helpers shared by the registry and the CLI.
"""

import re

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def to_snake_case(value: str) -> str:
    """
    Convert a human-readable file name into a table name.

    Every run of non-alphanumeric characters becomes one underscore, and
    leading/trailing underscores are dropped.

    Examples:
        >>> to_snake_case("Offender Profile")
        'offender_profile'
        >>> to_snake_case("Special Conditions and Sanctions")
        'special_conditions_and_sanctions'
        >>> to_snake_case("__test__")
        'test'
    """
    return _NON_ALNUM.sub("_", value.lower()).strip("_")


def format_count(n: int) -> str:
    """Format an integer with thousands separators (1234567 -> '1,234,567')."""
    return f"{n:,}"


def format_duration(seconds: float) -> str:
    """
    Format a duration as '1h 2m 3s', omitting leading zero units.

    Minutes are always shown once hours are present.
    """
    if seconds < 0:
        raise ValueError(f"Duration cannot be negative: {seconds}")

    total = int(seconds)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)

    parts = []
    if hours:
        parts.append(f"{hours}h")
    if minutes or hours:
        parts.append(f"{minutes}m")
    parts.append(f"{secs}s")
    return " ".join(parts)
