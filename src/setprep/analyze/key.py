"""
Camelot wheel compatibility and key notation.

The compatibility table is an immutable resource: it is built once from the
wheel rule, frozen, and handed to whoever needs it (the clash detector, the
planner). Each key maps to:

- perfect: itself, its relative (same number, other letter), and its two
  neighbours on the same letter
- good: the two neighbours' opposite-letter counterparts
"""

import logging
import re
from functools import lru_cache
from types import MappingProxyType
from typing import Dict, FrozenSet, Mapping, NamedTuple, Optional

from ..models import NO_KEY

logger = logging.getLogger(__name__)

# Mapping from standard key notation to Camelot notation
STANDARD_TO_CAMELOT_MAJOR = {
    "C": "8B",
    "C#": "3B",
    "Db": "3B",
    "D": "10B",
    "D#": "5B",
    "Eb": "5B",
    "E": "12B",
    "F": "7B",
    "F#": "2B",
    "Gb": "2B",
    "G": "9B",
    "G#": "4B",
    "Ab": "4B",
    "A": "11B",
    "A#": "6B",
    "Bb": "6B",
    "B": "1B",
}

STANDARD_TO_CAMELOT_MINOR = {
    "C": "5A",
    "C#": "12A",
    "Db": "12A",
    "D": "7A",
    "D#": "2A",
    "Eb": "2A",
    "E": "9A",
    "F": "4A",
    "F#": "11A",
    "Gb": "11A",
    "G": "6A",
    "G#": "1A",
    "Ab": "1A",
    "A": "8A",
    "A#": "3A",
    "Bb": "3A",
    "B": "10A",
}

_CAMELOT_RE = re.compile(r"^(1[0-2]|[1-9])([AB])$")
_STANDARD_RE = re.compile(r"^([A-G])([#b]?)\s*(m|min|minor|maj|major)?$", re.IGNORECASE)


class KeyCompatibility(NamedTuple):
    perfect: FrozenSet[str]
    good: FrozenSet[str]


def parse_camelot(key: Optional[str]) -> Optional[tuple]:
    """
    Split a Camelot key into (number, letter).

    Args:
        key: Camelot key such as "8A" (case-insensitive)

    Returns:
        Tuple (number, letter), or None if the key is not valid Camelot
    """
    if not key:
        return None
    match = _CAMELOT_RE.match(key.strip().upper())
    if not match:
        return None
    return int(match.group(1)), match.group(2)


def is_valid_key(key: Optional[str]) -> bool:
    """True when a key should take part in harmonic checks."""
    return bool(key) and key.strip().upper() != NO_KEY


def to_camelot(notation: Optional[str]) -> str:
    """
    Convert a key in any common notation to Camelot.

    Accepts Camelot ("8a"), short standard ("Am", "F#m", "Bb") and long
    standard ("A minor", "C major").

    Args:
        notation: Key as exported by the DJ software

    Returns:
        Camelot key, or "N/A" if the notation is not recognised
    """
    if not notation:
        return NO_KEY

    text = notation.strip()
    if parse_camelot(text):
        return text.upper()

    match = _STANDARD_RE.match(text)
    if not match:
        logger.debug(f"Unrecognised key notation: {notation!r}")
        return NO_KEY

    note = match.group(1).upper() + match.group(2)
    mode = (match.group(3) or "").lower()
    mapping = STANDARD_TO_CAMELOT_MINOR if mode in ("m", "min", "minor") else STANDARD_TO_CAMELOT_MAJOR
    return mapping.get(note, NO_KEY)


def _wrap(number: int) -> int:
    return (number - 1) % 12 + 1


class CamelotTable:
    """Read-only Camelot compatibility table."""

    def __init__(self, entries: Mapping[str, KeyCompatibility]):
        self._entries = MappingProxyType(dict(entries))

    @classmethod
    def from_wheel(cls) -> "CamelotTable":
        """Build the 24-key table from the wheel rule."""
        entries: Dict[str, KeyCompatibility] = {}
        for number in range(1, 13):
            prev_num, next_num = _wrap(number - 1), _wrap(number + 1)
            for letter, other in (("A", "B"), ("B", "A")):
                key = f"{number}{letter}"
                perfect = frozenset({key, f"{number}{other}", f"{prev_num}{letter}", f"{next_num}{letter}"})
                good = frozenset({f"{prev_num}{other}", f"{next_num}{other}"})
                entries[key] = KeyCompatibility(perfect=perfect, good=good)
        return cls(entries)

    @staticmethod
    @lru_cache(maxsize=1)
    def default() -> "CamelotTable":
        """Process-wide table, built on first use."""
        table = CamelotTable.from_wheel()
        logger.debug(f"Camelot table loaded ({len(table)} keys)")
        return table

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def keys(self):
        return self._entries.keys()

    def compatibility(self, key: Optional[str]) -> Optional[KeyCompatibility]:
        """Compatibility sets for a key, or None if the key is not in the table."""
        if not key:
            return None
        return self._entries.get(key.strip().upper())

    def relation(self, key1: Optional[str], key2: Optional[str]) -> Optional[str]:
        """
        Classify the harmonic relation between two keys.

        Returns:
            "perfect", "good", "clash", or None when either key is unknown
        """
        compat = self.compatibility(key1)
        if compat is None or self.compatibility(key2) is None:
            return None
        other = key2.strip().upper()
        if other in compat.perfect:
            return "perfect"
        if other in compat.good:
            return "good"
        return "clash"

    def is_symmetric(self) -> bool:
        """Check that every perfect/good relation holds in both directions."""
        for key, compat in self._entries.items():
            for other in compat.perfect:
                if key not in self._entries[other].perfect:
                    return False
            for other in compat.good:
                if key not in self._entries[other].good:
                    return False
        return True
