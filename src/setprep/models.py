"""
Core data model for SetPrep.

Tracks are immutable records; enrichment and cue-point merges build new
instances with dataclasses.replace instead of mutating shared objects.

Ratings and match scores arrive on two scales depending on where they come
from (Rekordbox stores ratings 0-255 or 0-100, hand-edited libraries use 0-5
stars; providers return scores either as fractions or percentages). Nothing
upstream documents which source uses which scale, so the value is tagged once
at ingestion by range-sniffing and every consumer reads the normalized view.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, List, Optional, Tuple

NO_KEY = "N/A"


class Severity(str, Enum):
    """Clash severity, ordered from harmless to critical."""

    NONE = "none"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.NONE: 0, Severity.WARNING: 1, Severity.CRITICAL: 2}


class Progression(str, Enum):
    """Energy shape requested for a planned set."""

    LINEAR = "Linear"
    RISING = "Rising"
    CHAOS = "Chaos"

    @classmethod
    def parse(cls, value: str) -> "Progression":
        if isinstance(value, cls):
            return value
        for member in cls:
            if member.value.lower() == str(value).strip().lower():
                return member
        raise ValueError(f"Unknown progression: {value!r}")


class ScoreScale(str, Enum):
    FRACTION = "fraction"
    PERCENT = "percent"


class RatingScale(str, Enum):
    STARS = "stars"
    PERCENT = "percent"


@dataclass(frozen=True)
class Score:
    """Match score tagged with the scale it arrived on."""

    value: float
    scale: ScoreScale

    @classmethod
    def from_raw(cls, value: float) -> "Score":
        """
        Tag a raw score: values <= 1 are fractions, anything above is a percentage.

        Raises:
            TypeError, ValueError: If the value is not a finite number
        """
        value = float(value)
        if not math.isfinite(value):
            raise ValueError(f"Score must be finite, got {value}")
        if value <= 1:
            return cls(value, ScoreScale.FRACTION)
        return cls(value, ScoreScale.PERCENT)

    @property
    def fraction(self) -> float:
        if self.scale is ScoreScale.FRACTION:
            return self.value
        return self.value / 100.0

    @property
    def percent(self) -> int:
        """Rounded percentage, as shown next to a suggestion."""
        if self.scale is ScoreScale.FRACTION:
            return round(self.value * 100)
        return round(self.value)


@dataclass(frozen=True)
class Rating:
    """Track rating tagged with the scale it arrived on."""

    value: int
    scale: RatingScale

    @classmethod
    def from_raw(cls, value: int) -> "Rating":
        """Tag a raw rating: values > 5 are percentages, otherwise stars."""
        value = int(value or 0)
        if value > 5:
            return cls(value, RatingScale.PERCENT)
        return cls(value, RatingScale.STARS)

    @property
    def stars(self) -> int:
        if self.scale is RatingScale.PERCENT:
            return min(5, round(self.value / 20))
        return max(0, self.value)


@dataclass(frozen=True)
class Track:
    """A library track, as imported from the collection export."""

    id: str
    name: str
    artist: str
    bpm: str
    key: str
    genre: str = "N/A"
    album: str = "N/A"
    play_count: int = 0
    rating: int = 0
    duration: str = "0:00"
    location: str = NO_KEY
    color: Optional[str] = None
    energy: Optional[int] = None
    subgenre: Optional[str] = None
    cue_points: Tuple[str, ...] = ()
    is_sample: bool = False

    @property
    def stars(self) -> int:
        return Rating.from_raw(self.rating).stars


@dataclass(frozen=True)
class Suggestion:
    """A suggested next track with the reason it was picked."""

    track: Track
    reason: str
    match_score: Score

    @property
    def id(self) -> str:
        return self.track.id


@dataclass
class SuggestionResult:
    """Suggestions for a track plus the cue points returned alongside them."""

    suggestions: List[Suggestion] = field(default_factory=list)
    cue_points: List[str] = field(default_factory=list)


@dataclass
class ClashResult:
    has_clash: bool = False
    reasons: List[str] = field(default_factory=list)
    severity: Severity = Severity.NONE


@dataclass(frozen=True)
class BpmRange:
    min: float
    max: float

    def __post_init__(self):
        if self.min > self.max:
            raise ValueError(f"Invalid BPM range: {self.min} > {self.max}")

    def __contains__(self, bpm: float) -> bool:
        return self.min <= bpm <= self.max


@dataclass(frozen=True)
class PlannerParams:
    """
    Parameters for automatic set planning.

    Args:
        progression: Energy shape of the set
        length: Target number of tracks
        is_strict: Apply filters as hard cuts (True) or pass them as hints
        min_rating: Minimum rating, on either scale
        target_playlists: Location labels to draw from (empty = all)
        bpm_range: Optional inclusive BPM window
        min_energy: Minimum energy 1-5, or 0 for no constraint
    """

    progression: Progression = Progression.LINEAR
    length: int = 10
    is_strict: bool = True
    min_rating: int = 0
    target_playlists: FrozenSet[str] = frozenset()
    bpm_range: Optional[BpmRange] = None
    min_energy: int = 0

    def __post_init__(self):
        if self.length < 1:
            raise ValueError(f"Set length must be positive, got {self.length}")
        if not 0 <= self.min_energy <= 5:
            raise ValueError(f"min_energy must be 0-5, got {self.min_energy}")
        # Accept any iterable of labels
        if not isinstance(self.target_playlists, frozenset):
            object.__setattr__(self, "target_playlists", frozenset(self.target_playlists))
