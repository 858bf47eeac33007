"""
BPM helpers for library values.

Library BPMs are stored as decimal strings ("128.00"). Anything that does not
parse to a finite positive number is treated as absent.
"""

import math
from typing import Optional


def parse_bpm(value) -> Optional[float]:
    """
    Parse a BPM value leniently.

    Args:
        value: BPM as string, number, or None

    Returns:
        BPM as float, or None if missing, unparseable, or not positive
    """
    if value is None:
        return None
    try:
        bpm = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(bpm) or math.isinf(bpm) or bpm <= 0:
        return None
    return bpm


def format_bpm(value) -> str:
    """Format a BPM with 2-decimal precision; unparseable values become "0.00"."""
    try:
        bpm = float(value)
    except (TypeError, ValueError):
        return "0.00"
    if math.isnan(bpm) or math.isinf(bpm):
        return "0.00"
    return f"{bpm:.2f}"


def bpm_distance(bpm1, bpm2) -> Optional[float]:
    """Absolute BPM distance, or None if either side is missing."""
    a, b = parse_bpm(bpm1), parse_bpm(bpm2)
    if a is None or b is None:
        return None
    return abs(a - b)


def bpm_gap_percent(bpm_from, bpm_to) -> Optional[float]:
    """Gap between two tempos as a percentage of the first one."""
    a, b = parse_bpm(bpm_from), parse_bpm(bpm_to)
    if a is None or b is None:
        return None
    return abs(a - b) / a * 100.0

