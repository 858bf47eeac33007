"""
Energy Estimation: map tracks and set positions onto a 0.0-1.0 energy scale.

Library energy is an optional 1-5 rating added by enrichment. When it is
missing, tempo is used as a rough proxy, then a neutral 0.5.
"""

import logging
from typing import Optional

from ..analyze.bpm import parse_bpm
from ..models import Progression, Track

logger = logging.getLogger(__name__)


def estimate_track_energy(track: Track) -> float:
    """
    Estimate energy level of a track (0.0-1.0).

    Energy is estimated as:
    1. Primary: enriched energy rating (1-5)
    2. Fallback: BPM as a proxy (80-180 BPM range)
    3. Final fallback: Neutral 0.5 (no data)

    Args:
        track: Track to estimate

    Returns:
        Energy estimate, clamped to [0.0, 1.0]
    """
    if track.energy is not None:
        return max(0.0, min(1.0, (track.energy - 1) / 4.0))

    bpm = parse_bpm(track.bpm)
    if bpm is not None:
        normalized = (bpm - 80.0) / 100.0
        return max(0.0, min(1.0, normalized))

    logger.debug(f"No energy data for track {track.id}; using neutral 0.5")
    return 0.5


def compute_energy_distance(energy1: float, energy2: float) -> float:
    """Energy distance between two tracks (0.0=same, 1.0=opposite)."""
    return abs(energy1 - energy2)


def target_energy(progression: Progression, position: int, length: int, seed_energy: Optional[float] = None) -> float:
    """
    Ideal energy for a slot in the set.

    - Linear: hold the seed's energy (neutral 0.5 without a seed)
    - Rising: ramp from 0.3 at the opener to 1.0 at the closer
    - Chaos: alternate low/high contrast (0.2 on even slots, 0.9 on odd)

    Args:
        progression: Requested energy shape
        position: 0-based slot index
        length: Total slots in the set
        seed_energy: Energy of the opening track, if any

    Returns:
        Target energy (0.0-1.0)
    """
    if progression is Progression.RISING:
        progress = position / (length - 1) if length > 1 else 1.0
        return 0.3 + min(1.0, progress) * 0.7

    if progression is Progression.CHAOS:
        return 0.2 if position % 2 == 0 else 0.9

    return seed_energy if seed_energy is not None else 0.5
