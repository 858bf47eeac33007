"""
Suggestion Engine: recommend the next track for the one playing now.

The provider path returns richer reasons and scores; its ids are joined back
against the candidate list and anything unknown is dropped. If the provider
fails or nothing survives the join, the local fallback ranks candidates by
BPM proximity, so a request with candidates left never comes back empty.

SuggestionSession wraps the engine for an interactive deck: only the latest
request's response is applied, and provider cue points are kept per track id
in the session rather than written into the Track.
"""

import logging
from typing import Dict, Iterable, List, Optional

from ..models import Score, Suggestion, SuggestionResult, Track
from ..providers import Ok, SuggestionPayload, SuggestionProvider, call_provider
from .filters import exclude_tracks, rank_by_bpm_proximity

logger = logging.getLogger(__name__)

FALLBACK_REASON = "Algorithmic match (offline): closest BPM"
FALLBACK_MATCH_SCORE = 0.75


class SuggestionEngine:
    """Next-track recommender with a provider path and a local fallback."""

    def __init__(
        self,
        provider: Optional[SuggestionProvider] = None,
        candidate_limit: int = 80,
        fallback_score: float = FALLBACK_MATCH_SCORE,
    ):
        """
        Args:
            provider: External suggestion service (None = local only)
            candidate_limit: Max candidates sent to the provider
            fallback_score: Match score given to fallback suggestions
        """
        self.provider = provider
        self.candidate_limit = candidate_limit
        self.fallback_score = fallback_score

    def fallback(self, current_track: Track, candidates: List[Track], count: int) -> List[Suggestion]:
        """Rank candidates by BPM proximity and wrap the first `count`."""
        ranked = rank_by_bpm_proximity(candidates, current_track.bpm)[:count]
        score = Score.from_raw(self.fallback_score)
        return [Suggestion(track=t, reason=FALLBACK_REASON, match_score=score) for t in ranked]

    async def suggest_next(
        self,
        current_track: Track,
        library: List[Track],
        exclude_ids: Iterable[str] = (),
        count: int = 5,
    ) -> SuggestionResult:
        """
        Suggest follow-ups for the current track.

        Args:
            current_track: Track playing now
            library: Library tracks (read-only)
            exclude_ids: Ids already suggested or otherwise unwanted
            count: Maximum number of suggestions

        Returns:
            SuggestionResult; empty only when no candidates remain
        """
        exclude_ids = list(exclude_ids)
        candidates = exclude_tracks(library, exclude_ids, current=current_track)
        if not candidates or count <= 0:
            logger.debug(f"No candidates left for {current_track.id}")
            return SuggestionResult()

        if self.provider is not None:
            provider = self.provider
            pool = rank_by_bpm_proximity(candidates, current_track.bpm)[: self.candidate_limit]
            result = await call_provider(
                lambda: provider.request_suggestions(current_track, pool, exclude_ids),
                "suggest_next",
                expected=SuggestionPayload,
            )
            if isinstance(result, Ok):
                suggestions = self._join(result.value.suggestions, candidates, count)
                if suggestions:
                    logger.info(f"✅ {len(suggestions)} suggestion(s) for {current_track.id} from provider")
                    return SuggestionResult(suggestions=suggestions, cue_points=_cue_point_list(result.value.cue_points))
                logger.warning(f"Provider returned no usable suggestions for {current_track.id}; using fallback")
            else:
                logger.info(f"Suggestion provider unavailable ({result.kind.value}); using fallback")

        suggestions = self.fallback(current_track, candidates, count)
        logger.info(f"{len(suggestions)} fallback suggestion(s) for {current_track.id}")
        return SuggestionResult(suggestions=suggestions)

    @staticmethod
    def _join(picks, candidates: List[Track], count: int) -> List[Suggestion]:
        """Keep picks whose id is a candidate and whose score is a usable number."""
        if not isinstance(picks, (list, tuple)):
            return []
        lookup: Dict[str, Track] = {t.id: t for t in candidates}
        seen = set()
        suggestions = []
        for pick in picks:
            track_id = getattr(pick, "id", None)
            track = lookup.get(track_id) if isinstance(track_id, str) else None
            if track is None or track_id in seen:
                continue
            raw_score = getattr(pick, "match_score", None)
            try:
                score = Score.from_raw(raw_score)
            except (TypeError, ValueError):
                logger.debug(f"Skipping pick {track_id} with unusable score {raw_score!r}")
                continue
            seen.add(track_id)
            reason = getattr(pick, "reason", "")
            if not isinstance(reason, str):
                reason = ""
            suggestions.append(Suggestion(track=track, reason=reason, match_score=score))
            if len(suggestions) >= count:
                break
        return suggestions


def _cue_point_list(cue_points) -> List[str]:
    if not isinstance(cue_points, (list, tuple)):
        return []
    return [str(c) for c in cue_points]


async def suggest_next(
    current_track: Track,
    library: List[Track],
    exclude_ids: Iterable[str] = (),
    count: int = 5,
    provider: Optional[SuggestionProvider] = None,
) -> List[Suggestion]:
    """Suggest follow-ups with a one-off SuggestionEngine."""
    result = await SuggestionEngine(provider=provider).suggest_next(current_track, library, exclude_ids, count)
    return result.suggestions


class SuggestionSession:
    """
    Suggestion state for one deck.

    Every refresh gets a request number; a response is applied only if no
    newer request was started while it was in flight.
    """

    def __init__(self, engine: SuggestionEngine, count: int = 5):
        self.engine = engine
        self.count = count
        self.current_track: Optional[Track] = None
        self.suggestions: List[Suggestion] = []
        self.cue_points: Dict[str, List[str]] = {}
        self.exclude_ids: List[str] = []
        self._request_id = 0

    def is_current(self, request_id: int) -> bool:
        return request_id == self._request_id

    async def refresh(
        self,
        current_track: Track,
        library: List[Track],
        exclude_ids: Iterable[str] = (),
    ) -> Optional[SuggestionResult]:
        """
        Fetch fresh suggestions for a track, replacing the current ones.

        Returns:
            The applied result, or None if a newer request superseded this one
        """
        self._request_id += 1
        request_id = self._request_id
        if self.current_track is None or self.current_track.id != current_track.id:
            self.suggestions = []
        self.current_track = current_track
        self.exclude_ids = list(exclude_ids)

        result = await self.engine.suggest_next(current_track, library, self.exclude_ids, self.count)
        if not self.is_current(request_id):
            logger.debug(f"Discarding stale suggestions for {current_track.id} (request {request_id})")
            return None

        self.suggestions = list(result.suggestions)
        self._merge_cue_points(current_track.id, result.cue_points)
        return result

    async def load_more(self, library: List[Track]) -> Optional[SuggestionResult]:
        """Append suggestions, excluding everything already shown or excluded by refresh()."""
        if self.current_track is None:
            return None

        self._request_id += 1
        request_id = self._request_id
        track = self.current_track
        excluded = self.exclude_ids + [s.id for s in self.suggestions]

        result = await self.engine.suggest_next(track, library, excluded, self.count)
        if not self.is_current(request_id):
            logger.debug(f"Discarding stale 'load more' for {track.id} (request {request_id})")
            return None

        self.suggestions.extend(result.suggestions)
        self._merge_cue_points(track.id, result.cue_points)
        return result

    def _merge_cue_points(self, track_id: str, cue_points: List[str]) -> None:
        if cue_points:
            self.cue_points[track_id] = list(cue_points)
