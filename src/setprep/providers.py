"""
Provider Boundary: external suggestion and sequencing services.

Providers are async and may fail for any reason (network, auth, quota, bad
replies). Their exceptions stop here: call_provider() turns every outcome
into either Ok(payload) or ProviderError(kind, message), and callers branch
on that value to pick their fallback.

PromptedProvider adapts any async text-completion callable into both
provider protocols by building a prompt and parsing the JSON reply. The
completion callable (and its transport, retries, timeouts) is opaque here.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Iterable, List, Optional, Protocol, TypeVar, Union

from .models import PlannerParams, Track

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class SuggestionPick:
    """One provider suggestion: a track id with its raw score and reason."""

    id: str
    match_score: float
    reason: str = ""


@dataclass
class SuggestionPayload:
    suggestions: List[SuggestionPick] = field(default_factory=list)
    cue_points: List[str] = field(default_factory=list)


@dataclass
class SequencePayload:
    ids: List[str] = field(default_factory=list)


class ProviderErrorKind(str, Enum):
    AUTH = "auth"
    QUOTA = "quota"
    NETWORK = "network"
    INVALID_RESPONSE = "invalid_response"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class ProviderError:
    kind: ProviderErrorKind
    message: str


ProviderResult = Union[Ok, ProviderError]


class SuggestionProvider(Protocol):
    async def request_suggestions(
        self, current_track: Track, candidate_pool: List[Track], exclude_ids: List[str]
    ) -> SuggestionPayload:
        ...


class SequenceProvider(Protocol):
    async def request_sequence(
        self,
        pool: List[Track],
        start_track: Optional[Track],
        mandatory_ids: List[str],
        params: PlannerParams,
    ) -> SequencePayload:
        ...


def classify_error(error: Exception) -> ProviderErrorKind:
    """
    Map a provider exception onto an error kind.

    Args:
        error: Exception raised by the provider

    Returns:
        ProviderErrorKind for the failure
    """
    status = getattr(error, "status", None) or getattr(error, "status_code", None)
    message = str(error)

    if status == 401 or "401" in message or "API key" in message:
        return ProviderErrorKind.AUTH
    if status == 429 or "429" in message:
        return ProviderErrorKind.QUOTA
    if isinstance(error, (asyncio.TimeoutError, ConnectionError, OSError)):
        return ProviderErrorKind.NETWORK
    if isinstance(error, (ValueError, KeyError, TypeError)):
        return ProviderErrorKind.INVALID_RESPONSE
    return ProviderErrorKind.UNAVAILABLE


async def call_provider(
    request: Callable[[], Awaitable[T]],
    context: str,
    expected: Optional[type] = None,
) -> ProviderResult:
    """
    Await a provider request and capture its outcome.

    Args:
        request: Zero-argument callable returning the provider coroutine
        context: Operation name for logging
        expected: Payload type the caller needs (None = accept anything)

    Returns:
        Ok(payload) on success, ProviderError on any exception or on a
        payload of the wrong type
    """
    try:
        payload = await request()
    except Exception as e:
        kind = classify_error(e)
        logger.warning(f"Provider failed in {context} ({kind.value}): {e}")
        return ProviderError(kind, str(e) or type(e).__name__)

    if expected is not None and not isinstance(payload, expected):
        message = f"Expected {expected.__name__}, got {type(payload).__name__}"
        logger.warning(f"Provider failed in {context} (invalid_response): {message}")
        return ProviderError(ProviderErrorKind.INVALID_RESPONSE, message)
    return Ok(payload)


def format_track_line(track: Track) -> str:
    return f'ID: {track.id}, "{track.name}" ({track.bpm} BPM, Key: {track.key})'


def _extract_json(text: str) -> Any:
    """Parse a JSON reply, tolerating a surrounding markdown code fence."""
    body = (text or "").strip()
    if body.startswith("```"):
        body = body.strip("`")
        if body.lower().startswith("json"):
            body = body[4:]
    if not body:
        raise ValueError("Empty provider reply")
    return json.loads(body)


def parse_suggestion_reply(text: str) -> SuggestionPayload:
    """
    Parse a suggestion reply of the form
    {"suggestions": [{"id", "matchScore", "reason"}], "cuePoints": [...]}.

    Raises:
        ValueError: If the reply is not valid JSON or has the wrong shape
    """
    data = _extract_json(text)
    if not isinstance(data, dict):
        raise ValueError("Suggestion reply must be a JSON object")

    picks = []
    for item in data.get("suggestions") or []:
        if not isinstance(item, dict) or "id" not in item:
            raise ValueError(f"Malformed suggestion entry: {item!r}")
        picks.append(
            SuggestionPick(
                id=str(item["id"]),
                match_score=float(item.get("matchScore", 0) or 0),
                reason=str(item.get("reason") or ""),
            )
        )

    cue_points = [str(c) for c in data.get("cuePoints") or []]
    return SuggestionPayload(suggestions=picks, cue_points=cue_points)


def parse_sequence_reply(text: str) -> SequencePayload:
    """
    Parse a sequence reply of the form {"ids": [...]}.

    Raises:
        ValueError: If the reply is not valid JSON or has the wrong shape
    """
    data = _extract_json(text)
    if not isinstance(data, dict) or not isinstance(data.get("ids", []), list):
        raise ValueError("Sequence reply must be a JSON object with an 'ids' list")
    return SequencePayload(ids=[str(i) for i in data.get("ids", [])])


class PromptedProvider:
    """Suggestion and sequence provider backed by a text-completion callable."""

    def __init__(self, complete: Callable[[str], Awaitable[str]], suggestion_count: int = 5, language: str = "English"):
        """
        Args:
            complete: Async callable sending a prompt and returning the reply text
            suggestion_count: Number of suggestions to ask for
            language: Language for the reasons written by the model
        """
        self.complete = complete
        self.suggestion_count = suggestion_count
        self.language = language

    def build_suggestion_prompt(self, current_track: Track, candidate_pool: Iterable[Track]) -> str:
        tracks_text = "\n".join(format_track_line(t) for t in candidate_pool)
        return (
            f'Current track: "{current_track.name}" ({current_track.bpm} BPM, Key {current_track.key}). '
            f"Analyze the available tracks and suggest the {self.suggestion_count} best follow-ups "
            f"(ordered by matchScore, descending), considering Camelot compatibility and energy flow. "
            f'Return JSON with "suggestions" (id, matchScore, reason in {self.language} explaining the '
            f'musical connection) and "cuePoints" (strings).\n\n{tracks_text}'
        )

    def build_sequence_prompt(
        self,
        pool: Iterable[Track],
        start_track: Optional[Track],
        mandatory_ids: List[str],
        params: PlannerParams,
    ) -> str:
        lines = [
            f"Build a DJ set of {params.length} tracks with a {params.progression.value} energy progression.",
            "Keep transitions harmonically compatible on the Camelot wheel and avoid BPM jumps above 6%.",
        ]
        if start_track is not None:
            lines.append(f"Start with ID {start_track.id}.")
        if mandatory_ids:
            lines.append(f"Include each of these IDs exactly once: {', '.join(mandatory_ids)}.")
        if not params.is_strict:
            hints = []
            if params.min_rating:
                hints.append(f"rating >= {params.min_rating}")
            if params.target_playlists:
                hints.append(f"playlists {', '.join(sorted(params.target_playlists))}")
            if params.bpm_range is not None:
                hints.append(f"BPM {params.bpm_range.min:g}-{params.bpm_range.max:g}")
            if params.min_energy:
                hints.append(f"energy >= {params.min_energy}")
            if hints:
                lines.append(f"Prefer (soft preferences): {'; '.join(hints)}.")
        lines.append('Return JSON with an "ids" array in play order.')
        tracks_text = "\n".join(format_track_line(t) for t in pool)
        return "\n".join(lines) + f"\n\n{tracks_text}"

    async def request_suggestions(
        self, current_track: Track, candidate_pool: List[Track], exclude_ids: List[str]
    ) -> SuggestionPayload:
        excluded = set(exclude_ids)
        pool = [t for t in candidate_pool if t.id not in excluded and t.id != current_track.id]
        if not pool:
            return SuggestionPayload()
        reply = await self.complete(self.build_suggestion_prompt(current_track, pool))
        return parse_suggestion_reply(reply)

    async def request_sequence(
        self,
        pool: List[Track],
        start_track: Optional[Track],
        mandatory_ids: List[str],
        params: PlannerParams,
    ) -> SequencePayload:
        reply = await self.complete(self.build_sequence_prompt(pool, start_track, mandatory_ids, params))
        return parse_sequence_reply(reply)
