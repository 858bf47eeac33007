"""
Clash Detection: flag transitions that will sound bad.

Two axes are checked, always in this order:
1. Tempo: gap above the threshold (percent of the outgoing BPM) -> warning
2. Harmony: incoming key outside the outgoing key's Camelot neighbourhood ->
   warning, or critical when a tempo warning is already present

An axis with missing or malformed data is skipped, never reported.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from ..models import ClashResult, Severity, Track
from .bpm import bpm_gap_percent, parse_bpm
from .key import CamelotTable, is_valid_key

logger = logging.getLogger(__name__)

DEFAULT_BPM_CLASH_PERCENT = 6.0


class ClashDetector:
    """Pairwise key/tempo clash detector."""

    def __init__(self, table: Optional[CamelotTable] = None, bpm_threshold_percent: float = DEFAULT_BPM_CLASH_PERCENT):
        """
        Args:
            table: Camelot compatibility table (defaults to the shared table)
            bpm_threshold_percent: Tempo gap above which a transition is flagged
        """
        self.table = table if table is not None else CamelotTable.default()
        self.bpm_threshold = bpm_threshold_percent

    def detect(self, key_a: Optional[str], bpm_a, key_b: Optional[str], bpm_b) -> ClashResult:
        """
        Compare an outgoing track (A) with an incoming track (B).

        Args:
            key_a: Camelot key of track A
            bpm_a: BPM of track A (string or number)
            key_b: Camelot key of track B
            bpm_b: BPM of track B

        Returns:
            ClashResult with ordered reasons and severity
        """
        result = ClashResult()

        gap = bpm_gap_percent(bpm_a, bpm_b)
        if gap is not None and gap > self.bpm_threshold:
            result.has_clash = True
            result.reasons.append(f"BPM Gap: {gap:.1f}% (Too fast/slow)")
            result.severity = Severity.WARNING

        if is_valid_key(key_a) and is_valid_key(key_b):
            upper_a, upper_b = key_a.strip().upper(), key_b.strip().upper()
            if upper_a != upper_b:
                compat = self.table.compatibility(upper_a)
                if compat is not None and upper_b not in compat.perfect and upper_b not in compat.good:
                    result.has_clash = True
                    result.reasons.append(f"Harmonic Clash: {upper_a} vs {upper_b}")
                    result.severity = Severity.CRITICAL if result.severity is Severity.WARNING else Severity.WARNING

        return result

    def detect_tracks(self, track_a: Track, track_b: Track) -> ClashResult:
        return self.detect(track_a.key, track_a.bpm, track_b.key, track_b.bpm)


_default_detector: Optional[ClashDetector] = None


def _detector() -> ClashDetector:
    global _default_detector
    if _default_detector is None:
        _default_detector = ClashDetector()
    return _default_detector


def detect_clash(key_a: Optional[str], bpm_a, key_b: Optional[str], bpm_b) -> ClashResult:
    """Detect a clash with the shared table and the default 6% tempo threshold."""
    return _detector().detect(key_a, bpm_a, key_b, bpm_b)


def detect_transition_clash(track_a: Track, track_b: Track) -> ClashResult:
    return _detector().detect_tracks(track_a, track_b)


@dataclass
class TransitionReport:
    """Clash verdict for one transition in an ordered set."""

    from_track: Track
    to_track: Track
    clash: ClashResult
    bpm_delta: Optional[float]


def annotate_transitions(tracks: List[Track], detector: Optional[ClashDetector] = None) -> List[TransitionReport]:
    """
    Check every consecutive pair of an ordered set.

    Args:
        tracks: Tracks in play order
        detector: Detector to use (defaults to the shared one)

    Returns:
        One TransitionReport per transition (len(tracks) - 1 entries)
    """
    detector = detector or _detector()
    reports = []

    for current, following in zip(tracks, tracks[1:]):
        bpm_a, bpm_b = parse_bpm(current.bpm), parse_bpm(following.bpm)
        delta = round(bpm_b - bpm_a, 2) if bpm_a is not None and bpm_b is not None else None
        clash = detector.detect_tracks(current, following)
        if clash.has_clash:
            logger.debug(f"Transition {current.id} -> {following.id}: {clash.severity.value} ({'; '.join(clash.reasons)})")
        reports.append(TransitionReport(current, following, clash, delta))

    return reports
