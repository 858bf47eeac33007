"""
Set Planner: build an ordered set from a library.

Pipeline:
1. Candidate pool: filtered library in strict mode, full library otherwise
   (filters then travel to the provider as soft hints)
2. Sequence: ask the sequence provider; on failure or an empty answer, run
   the local greedy traversal (no backtracking) seeded with the start track
3. Dedupe by id, keep every mandatory track exactly once, trim to length

The greedy step picks, at each slot, the pool track with the lowest
(clash severity vs. the current tail, distance to the progression's target
energy, BPM distance to the tail). When the remaining slots are only enough
for the mandatory tracks still missing, only those are eligible.
"""

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..analyze.bpm import bpm_distance
from ..analyze.clash import ClashDetector, annotate_transitions
from ..models import PlannerParams, Severity, Track
from ..providers import Ok, SequencePayload, SequenceProvider, call_provider
from .energy import compute_energy_distance, estimate_track_energy, target_energy
from .filters import filter_pool

logger = logging.getLogger(__name__)


def dedupe_tracks(tracks: Iterable[Track]) -> List[Track]:
    """Drop repeated ids, keeping the first occurrence."""
    seen = set()
    result = []
    for track in tracks:
        if track.id in seen:
            continue
        seen.add(track.id)
        result.append(track)
    return result


def trim_to_length(tracks: List[Track], length: int, protected_ids: Iterable[str] = ()) -> List[Track]:
    """
    Trim a sequence to length by dropping unprotected tracks from the end.

    Protected tracks are never dropped, so the result can stay longer than
    length when they alone exceed it.
    """
    protected = set(protected_ids)
    result = list(tracks)
    index = len(result) - 1
    while len(result) > length and index >= 0:
        if result[index].id not in protected:
            del result[index]
        index -= 1
    return result


class SetPlanner:
    """Set planner with provider-first sequencing and a greedy local fallback."""

    def __init__(
        self,
        sequence_provider: Optional[SequenceProvider] = None,
        detector: Optional[ClashDetector] = None,
    ):
        """
        Args:
            sequence_provider: External sequencing service (None = local only)
            detector: Clash detector used to score transitions
        """
        self.sequence_provider = sequence_provider
        self.detector = detector or ClashDetector()

    def build_pool(
        self,
        library: List[Track],
        start_track: Optional[Track],
        mandatory_tracks: Sequence[Track],
        params: PlannerParams,
    ) -> List[Track]:
        """
        Build the candidate pool for a set.

        The start track and mandatory tracks are always part of the pool,
        even when they are missing from the library.
        """
        mandatory_ids = [t.id for t in mandatory_tracks]
        if params.is_strict:
            pool = filter_pool(library, params, mandatory_ids=mandatory_ids)
        else:
            pool = list(library)

        extras = ([start_track] if start_track is not None else []) + list(mandatory_tracks)
        pool_ids = {t.id for t in pool}
        for track in extras:
            if track.id not in pool_ids:
                pool.append(track)
                pool_ids.add(track.id)

        return pool

    def _transition_cost(self, tail: Optional[Track], candidate: Track, target: float) -> Tuple[int, float, float]:
        energy_gap = compute_energy_distance(target, estimate_track_energy(candidate))
        if tail is None:
            return (Severity.NONE.rank, energy_gap, 0.0)

        clash = self.detector.detect_tracks(tail, candidate)
        distance = bpm_distance(tail.bpm, candidate.bpm)
        return (clash.severity.rank, energy_gap, distance if distance is not None else float("inf"))

    def extend_greedy(
        self,
        sequence: List[Track],
        pool: List[Track],
        mandatory_tracks: Sequence[Track],
        params: PlannerParams,
    ) -> List[Track]:
        """
        Greedily append pool tracks until the sequence reaches params.length.

        Args:
            sequence: Tracks already placed (may be empty)
            pool: Candidate pool
            mandatory_tracks: Tracks that must end up in the set
            params: Planner parameters (length, progression)

        Returns:
            New sequence; mandatory tracks that did not fit are appended last
        """
        sequence = list(sequence)
        used = {t.id for t in sequence}
        missing = [t for t in mandatory_tracks if t.id not in used]
        candidates = [t for t in pool if t.id not in used]
        seed_energy = estimate_track_energy(sequence[0]) if sequence else None

        while len(sequence) < params.length and candidates:
            slots_left = params.length - len(sequence)
            eligible = missing if missing and len(missing) >= slots_left else candidates

            target = target_energy(params.progression, len(sequence), params.length, seed_energy)
            tail = sequence[-1] if sequence else None
            # min() keeps the first of equal costs, so pool order breaks ties
            chosen = min(eligible, key=lambda t: self._transition_cost(tail, t, target))

            sequence.append(chosen)
            used.add(chosen.id)
            candidates = [t for t in candidates if t.id != chosen.id]
            missing = [t for t in missing if t.id != chosen.id]
            if seed_energy is None:
                seed_energy = estimate_track_energy(chosen)

            logger.debug(f"Slot {len(sequence)}: {chosen.id} ({chosen.bpm} BPM, {chosen.key}, target energy {target:.2f})")

        if missing:
            logger.warning(f"Appending {len(missing)} mandatory track(s) beyond the requested length")
            sequence.extend(missing)

        return sequence

    def _join_ids(self, ids: List[str], library: List[Track], pool: List[Track]) -> List[Track]:
        if not isinstance(ids, (list, tuple)):
            logger.warning(f"Provider sequence is not a list: {type(ids).__name__}")
            return []
        lookup: Dict[str, Track] = {t.id: t for t in pool}
        lookup.update({t.id: t for t in library})
        # Non-string ids never match a track
        joined = [lookup[i] for i in ids if isinstance(i, str) and i in lookup]
        dropped = len(ids) - len(joined)
        if dropped:
            logger.debug(f"Dropped {dropped} unknown id(s) from provider sequence")
        return joined

    async def plan_set(
        self,
        library: List[Track],
        start_track: Optional[Track] = None,
        mandatory_tracks: Sequence[Track] = (),
        params: Optional[PlannerParams] = None,
    ) -> List[Track]:
        """
        Plan an ordered set.

        Args:
            library: Library tracks (read-only)
            start_track: Opening track, if any
            mandatory_tracks: Tracks that must appear exactly once
            params: Planner parameters (defaults to PlannerParams())

        Returns:
            Ordered tracks, params.length long when the pool allows it; empty
            when the library is empty
        """
        params = params or PlannerParams()
        mandatory = dedupe_tracks(mandatory_tracks)
        mandatory_ids = [t.id for t in mandatory]

        if not library:
            logger.warning("Empty library; nothing to plan")
            return []

        pool = self.build_pool(library, start_track, mandatory, params)

        logger.info(
            f"Planning {params.length}-track {params.progression.value} set "
            f"(pool: {len(pool)}, mandatory: {len(mandatory)}, strict: {params.is_strict})"
        )

        sequence: List[Track] = []
        if self.sequence_provider is not None:
            provider = self.sequence_provider
            result = await call_provider(
                lambda: provider.request_sequence(pool, start_track, mandatory_ids, params),
                "plan_set",
                expected=SequencePayload,
            )
            if isinstance(result, Ok):
                sequence = dedupe_tracks(self._join_ids(result.value.ids, library, pool))
                if not sequence:
                    logger.warning("Provider returned no usable tracks; using local planner")
            else:
                logger.info(f"Sequence provider unavailable ({result.kind.value}); using local planner")

        if not sequence and start_track is not None:
            sequence = [start_track]

        sequence = self.extend_greedy(sequence, pool, mandatory, params)
        sequence = dedupe_tracks(sequence)

        protected = set(mandatory_ids)
        if start_track is not None:
            protected.add(start_track.id)
        sequence = trim_to_length(sequence, params.length, protected)

        clashes = sum(1 for r in annotate_transitions(sequence, self.detector) if r.clash.has_clash)
        logger.info(f"✅ Set planned: {len(sequence)} tracks, {clashes} flagged transition(s)")
        return sequence


async def plan_set(
    library: List[Track],
    start_track: Optional[Track] = None,
    mandatory_tracks: Sequence[Track] = (),
    params: Optional[PlannerParams] = None,
    provider: Optional[SequenceProvider] = None,
) -> List[Track]:
    """Plan a set with a one-off SetPlanner."""
    planner = SetPlanner(sequence_provider=provider)
    return await planner.plan_set(library, start_track, mandatory_tracks, params)
