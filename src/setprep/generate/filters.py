"""
Candidate Filtering and Ranking.

Filters narrow the library before a set is planned. They are applied
conjunctively, with two escapes:
- Mandatory tracks always pass
- If the filtered pool is smaller than the requested set length, the
  filters are dropped and the whole library is returned, so filtering never
  blocks generation
"""

import logging
from typing import Iterable, List, Optional

from ..analyze.bpm import parse_bpm
from ..models import PlannerParams, Rating, Track

logger = logging.getLogger(__name__)


def passes_filters(track: Track, params: PlannerParams) -> bool:
    """
    Check a single track against the planner filters.

    Args:
        track: Track to check
        params: Planner parameters carrying the filters

    Returns:
        True if the track satisfies every active filter
    """
    if track.stars < Rating.from_raw(params.min_rating).stars:
        return False

    if params.target_playlists and track.location not in params.target_playlists:
        return False

    if params.bpm_range is not None:
        bpm = parse_bpm(track.bpm)
        if bpm is None or bpm not in params.bpm_range:
            return False

    if params.min_energy > 0:
        if track.energy is None or track.energy < params.min_energy:
            return False

    return True


def filter_pool(
    tracks: List[Track],
    params: PlannerParams,
    mandatory_ids: Iterable[str] = (),
) -> List[Track]:
    """
    Filter a track pool by rating, playlist, BPM range, and energy.

    Args:
        tracks: Library tracks
        params: Planner parameters
        mandatory_ids: Ids that bypass every filter

    Returns:
        Filtered tracks in library order, or the unfiltered list when the
        filtered pool is smaller than params.length
    """
    mandatory = set(mandatory_ids)
    filtered = [t for t in tracks if t.id in mandatory or passes_filters(t, params)]

    if len(filtered) < params.length:
        logger.warning(
            f"Filters left {len(filtered)} tracks for a {params.length}-track set; "
            f"using the full library ({len(tracks)} tracks)"
        )
        return list(tracks)

    logger.debug(f"Filtered pool: {len(filtered)}/{len(tracks)} tracks")
    return filtered


def rank_by_bpm_proximity(tracks: List[Track], reference_bpm) -> List[Track]:
    """
    Rank tracks by closeness to a reference tempo (closest first).

    The sort is stable: equal distances keep their input order. Tracks with
    no usable BPM go last; an unusable reference leaves the order unchanged.

    Args:
        tracks: Tracks to rank
        reference_bpm: Reference BPM (string or number)

    Returns:
        New list sorted by ascending BPM distance
    """
    reference = parse_bpm(reference_bpm)
    if reference is None:
        return list(tracks)

    def distance(track: Track) -> float:
        bpm = parse_bpm(track.bpm)
        return abs(bpm - reference) if bpm is not None else float("inf")

    return sorted(tracks, key=distance)


def exclude_tracks(tracks: List[Track], exclude_ids: Iterable[str], current: Optional[Track] = None) -> List[Track]:
    """Drop the current track and any excluded ids, keeping order."""
    excluded = set(exclude_ids)
    if current is not None:
        excluded.add(current.id)
    return [t for t in tracks if t.id not in excluded]
