"""
Unit tests for the SetPlanner.

Tests pool building, greedy fallback, mandatory inclusion, provider joins,
dedupe, and failure handling.
"""

import pytest
from unittest.mock import AsyncMock, Mock
from setprep.generate.planner import (
    SetPlanner,
    dedupe_tracks,
    plan_set,
    trim_to_length,
)
from setprep.models import PlannerParams, Progression, Track
from setprep.providers import SequencePayload


def make_track(track_id, bpm="128.00", key="8A", location="House", energy=None, rating=0):
    return Track(
        id=track_id,
        name=f"Track {track_id}",
        artist="Artist",
        bpm=bpm,
        key=key,
        location=location,
        energy=energy,
        rating=rating,
    )


@pytest.fixture
def library():
    """Twelve compatible house tracks around 128 BPM plus two off-key disco tracks."""
    keys = ["8A", "9A", "8B", "9B", "10A", "10B", "11A", "11B", "12A", "12B", "1A", "1B"]
    tracks = [make_track(f"h{i}", bpm=f"{126 + i % 4}.00", key=keys[i]) for i in range(12)]
    tracks.append(make_track("x", bpm="100.00", key="3A", location="Disco"))
    tracks.append(make_track("y", bpm="104.00", key="4B", location="Disco"))
    return tracks


@pytest.fixture
def failing_provider():
    provider = Mock()
    provider.request_sequence = AsyncMock(side_effect=ConnectionError("network down"))
    return provider


def ids(tracks):
    return [t.id for t in tracks]


class TestHelpers:
    def test_dedupe_keeps_first(self):
        a, b = make_track("a"), make_track("b")
        assert ids(dedupe_tracks([a, b, a, b, a])) == ["a", "b"]

    def test_trim_drops_unprotected_from_end(self):
        tracks = [make_track(i) for i in "abcde"]
        assert ids(trim_to_length(tracks, 3)) == ["a", "b", "c"]
        assert ids(trim_to_length(tracks, 3, protected_ids={"e"})) == ["a", "b", "e"]

    def test_trim_keeps_protected_over_length(self):
        tracks = [make_track(i) for i in "abc"]
        assert ids(trim_to_length(tracks, 1, protected_ids={"a", "b", "c"})) == ["a", "b", "c"]


class TestBuildPool:
    """Test candidate pool construction."""

    def test_strict_applies_filters(self, library):
        planner = SetPlanner()
        params = PlannerParams(target_playlists={"House"}, length=5)
        pool = planner.build_pool(library, None, [], params)
        assert "x" not in ids(pool)
        assert len(pool) == 12

    def test_non_strict_uses_full_library(self, library):
        planner = SetPlanner()
        params = PlannerParams(target_playlists={"Nowhere"}, length=5, is_strict=False)
        assert planner.build_pool(library, None, [], params) == library

    def test_start_and_mandatory_always_in_pool(self, library):
        planner = SetPlanner()
        outsider = make_track("outsider", location="Elsewhere")
        params = PlannerParams(target_playlists={"House"}, length=5)
        pool = planner.build_pool(library, outsider, [library[12]], params)
        assert "outsider" in ids(pool)
        assert "x" in ids(pool)


class TestFallbackPlanning:
    """Test the local greedy planner."""

    @pytest.mark.asyncio
    async def test_length_and_start(self, library):
        params = PlannerParams(length=6)
        result = await SetPlanner().plan_set(library, library[0], [], params)

        assert len(result) == 6
        assert result[0].id == "h0"
        assert len(set(ids(result))) == 6

    @pytest.mark.asyncio
    async def test_mandatory_tracks_included_once(self, library):
        """Mandatory tracks outside the filters appear exactly once."""
        x, y = library[12], library[13]
        params = PlannerParams(target_playlists={"House"}, length=6)

        result = await SetPlanner().plan_set(library, library[0], [x, y, x], params)

        assert len(result) == 6
        assert ids(result).count("x") == 1
        assert ids(result).count("y") == 1

    @pytest.mark.asyncio
    async def test_mandatory_wins_over_length(self, library):
        mandatory = [library[12], library[13], library[5]]
        params = PlannerParams(length=2)

        result = await SetPlanner().plan_set(library, library[0], mandatory, params)

        assert result[0].id == "h0"
        assert {"x", "y", "h5"} <= set(ids(result))
        assert len(result) == 4

    @pytest.mark.asyncio
    async def test_prefers_clash_free_transition(self):
        start = make_track("start", bpm="128.00", key="8A")
        clashing = make_track("clash", bpm="128.00", key="2A")
        smooth = make_track("smooth", bpm="129.00", key="9A")
        params = PlannerParams(length=2)

        result = await SetPlanner().plan_set([start, clashing, smooth], start, [], params)

        assert ids(result) == ["start", "smooth"]

    @pytest.mark.asyncio
    async def test_rising_progression_builds_energy(self):
        library = [make_track(f"e{e}", energy=e) for e in (5, 1, 4, 2, 3)]
        params = PlannerParams(length=5, progression=Progression.RISING)

        result = await SetPlanner().plan_set(library, None, [], params)

        energies = [t.energy for t in result]
        assert energies[:4] == [2, 3, 4, 5]

    @pytest.mark.asyncio
    async def test_short_library(self, library):
        params = PlannerParams(length=50)
        result = await SetPlanner().plan_set(library, None, [], params)
        assert len(result) == len(library)

    @pytest.mark.asyncio
    async def test_deterministic(self, library):
        params = PlannerParams(length=8)
        first = await SetPlanner().plan_set(library, library[3], [], params)
        second = await SetPlanner().plan_set(library, library[3], [], params)
        assert ids(first) == ids(second)


class TestProviderPlanning:
    """Test the provider path and its failure handling."""

    @pytest.mark.asyncio
    async def test_uses_provider_sequence(self, library):
        provider = Mock()
        provider.request_sequence = AsyncMock(return_value=SequencePayload(ids=["h3", "h2", "h1"]))
        params = PlannerParams(length=3)

        result = await SetPlanner(sequence_provider=provider).plan_set(library, None, [], params)

        assert ids(result) == ["h3", "h2", "h1"]
        provider.request_sequence.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_provider_duplicates_and_unknown_ids(self, library):
        provider = Mock()
        provider.request_sequence = AsyncMock(
            return_value=SequencePayload(ids=["h1", "ghost", "h1", "h2", "h2", "h3"])
        )
        params = PlannerParams(length=3)

        result = await SetPlanner(sequence_provider=provider).plan_set(library, None, [], params)

        assert ids(result) == ["h1", "h2", "h3"]

    @pytest.mark.asyncio
    async def test_short_provider_sequence_is_extended(self, library):
        provider = Mock()
        provider.request_sequence = AsyncMock(return_value=SequencePayload(ids=["h1", "h1", "nope"]))
        params = PlannerParams(length=5)

        result = await SetPlanner(sequence_provider=provider).plan_set(library, None, [], params)

        assert len(result) == 5
        assert result[0].id == "h1"
        assert len(set(ids(result))) == 5

    @pytest.mark.asyncio
    async def test_provider_missing_mandatory_is_added(self, library):
        provider = Mock()
        provider.request_sequence = AsyncMock(return_value=SequencePayload(ids=["h0", "h1", "h2"]))
        params = PlannerParams(length=3)

        result = await SetPlanner(sequence_provider=provider).plan_set(library, None, [library[12]], params)

        assert len(result) == 3
        assert "x" in ids(result)

    @pytest.mark.asyncio
    async def test_provider_receives_pool_and_params(self, library):
        provider = Mock()
        provider.request_sequence = AsyncMock(return_value=SequencePayload(ids=[]))
        params = PlannerParams(length=4, target_playlists={"House"})

        await SetPlanner(sequence_provider=provider).plan_set(library, library[0], [library[12]], params)

        pool, start, mandatory_ids, sent_params = provider.request_sequence.await_args.args
        assert start.id == "h0"
        assert mandatory_ids == ["x"]
        assert sent_params is params
        assert "y" not in ids(pool)

    @pytest.mark.asyncio
    async def test_provider_failure_falls_back(self, library, failing_provider):
        params = PlannerParams(length=4)

        result = await SetPlanner(sequence_provider=failing_provider).plan_set(library, library[0], [], params)

        assert len(result) == 4
        assert result[0].id == "h0"

    @pytest.mark.asyncio
    async def test_empty_library_with_failing_provider(self, failing_provider):
        result = await SetPlanner(sequence_provider=failing_provider).plan_set([], None, [], PlannerParams())
        assert result == []
        failing_provider.request_sequence.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_library_with_start_track(self, failing_provider):
        start = make_track("s")
        params = PlannerParams(length=3)

        result = await SetPlanner(sequence_provider=failing_provider).plan_set([], start, [start], params)

        assert result == []
        failing_provider.request_sequence.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_none_payload_falls_back(self, library):
        provider = Mock()
        provider.request_sequence = AsyncMock(return_value=None)
        params = PlannerParams(length=4)

        result = await SetPlanner(sequence_provider=provider).plan_set(library, library[0], [], params)

        assert len(result) == 4
        assert result[0].id == "h0"

    @pytest.mark.asyncio
    async def test_non_string_ids_skipped(self, library):
        provider = Mock()
        provider.request_sequence = AsyncMock(return_value=SequencePayload(ids=[["h1"], {"id": "h2"}, None, "h3"]))
        params = PlannerParams(length=1)

        result = await SetPlanner(sequence_provider=provider).plan_set(library, None, [], params)

        assert ids(result) == ["h3"]

    @pytest.mark.asyncio
    async def test_ids_not_a_list_falls_back(self, library):
        provider = Mock()
        provider.request_sequence = AsyncMock(return_value=SequencePayload(ids=None))
        params = PlannerParams(length=3)

        result = await SetPlanner(sequence_provider=provider).plan_set(library, library[2], [], params)

        assert len(result) == 3
        assert result[0].id == "h2"

    @pytest.mark.asyncio
    async def test_module_function(self, library, failing_provider):
        result = await plan_set(library, None, [], PlannerParams(length=3), provider=failing_provider)
        assert len(result) == 3
