"""Utility functions."""
from typing import Iterable, Set

from .clock import MILLIS_PER_MINUTE


def format_duration(millis: int) -> str:
    """Format a duration in milliseconds to a human-readable string."""
    seconds = millis // 1000
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)

    if hours > 0:
        return f"{hours}h {minutes}m"
    elif minutes > 0:
        return f"{minutes}m {secs}s"
    else:
        return f"{secs}s"


def minutes_to_millis(minutes: int) -> int:
    return int(minutes) * MILLIS_PER_MINUTE


def normalize_packages(packages: Iterable[str]) -> Set[str]:
    """Strip package ids and drop blanks; ids stay case-sensitive.

    A single id passed as a plain string is treated as a one-item list.
    """
    if isinstance(packages, str):
        packages = (packages,)
    return {p.strip() for p in packages if p and p.strip()}
