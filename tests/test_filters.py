"""
Unit tests for candidate filtering and BPM ranking.
"""

import pytest
from setprep.generate.filters import (
    exclude_tracks,
    filter_pool,
    passes_filters,
    rank_by_bpm_proximity,
)
from setprep.models import BpmRange, PlannerParams, Track


def make_track(track_id, bpm="128.00", key="8A", rating=0, location="House", energy=None):
    return Track(
        id=track_id,
        name=f"Track {track_id}",
        artist="Artist",
        bpm=bpm,
        key=key,
        rating=rating,
        location=location,
        energy=energy,
    )


@pytest.fixture
def library():
    return [
        make_track("t1", bpm="120.00", rating=5, location="House", energy=2),
        make_track("t2", bpm="124.00", rating=3, location="Techno", energy=4),
        make_track("t3", bpm="128.00", rating=80, location="House", energy=5),
        make_track("t4", bpm="132.00", rating=0, location="Disco"),
        make_track("t5", bpm="N/A", rating=4, location="House", energy=3),
    ]


class TestPassesFilters:
    """Test individual filter rules."""

    def test_min_rating_stars(self, library):
        params = PlannerParams(min_rating=4, length=1)
        assert [t.id for t in library if passes_filters(t, params)] == ["t1", "t3", "t5"]

    def test_min_rating_percent_scale(self, library):
        """A 0-100 threshold is normalized to stars before comparing."""
        params = PlannerParams(min_rating=80, length=1)
        assert [t.id for t in library if passes_filters(t, params)] == ["t1", "t3", "t5"]

    def test_target_playlists(self, library):
        params = PlannerParams(target_playlists={"House"}, length=1)
        assert [t.id for t in library if passes_filters(t, params)] == ["t1", "t3", "t5"]

    def test_empty_playlists_is_no_op(self, library):
        params = PlannerParams(length=1)
        assert all(passes_filters(t, params) for t in library)

    def test_bpm_range_inclusive(self, library):
        params = PlannerParams(bpm_range=BpmRange(124, 128), length=1)
        assert [t.id for t in library if passes_filters(t, params)] == ["t2", "t3"]

    def test_min_energy(self, library):
        params = PlannerParams(min_energy=3, length=1)
        assert [t.id for t in library if passes_filters(t, params)] == ["t2", "t3", "t5"]

    def test_filters_are_conjunctive(self, library):
        params = PlannerParams(min_rating=3, target_playlists={"House"}, min_energy=4, length=1)
        assert [t.id for t in library if passes_filters(t, params)] == ["t3"]


class TestFilterPool:
    """Test pool filtering with mandatory escape and degenerate fallback."""

    def test_filtered_pool(self, library):
        params = PlannerParams(target_playlists={"House"}, length=2)
        assert [t.id for t in filter_pool(library, params)] == ["t1", "t3", "t5"]

    def test_mandatory_bypass(self, library):
        params = PlannerParams(target_playlists={"House"}, length=2)
        pool = filter_pool(library, params, mandatory_ids=["t4"])
        assert [t.id for t in pool] == ["t1", "t3", "t4", "t5"]

    def test_small_pool_falls_back_to_library(self, library):
        params = PlannerParams(target_playlists={"House"}, length=4)
        assert filter_pool(library, params) == library

    def test_everything_excluded_returns_full_library(self):
        """Constraints excluding all 50 tracks for a 10-track set give back all 50."""
        big_library = [make_track(f"t{i}", rating=1, location="House") for i in range(50)]
        params = PlannerParams(min_rating=5, target_playlists={"Nowhere"}, length=10)

        pool = filter_pool(big_library, params)

        assert len(pool) == 50
        assert pool == big_library

    def test_returns_new_list(self, library):
        params = PlannerParams(length=1)
        pool = filter_pool(library, params)
        assert pool == library
        assert pool is not library


class TestRankByBpmProximity:
    """Test BPM proximity ranking."""

    def test_sorted_by_distance(self, library):
        ranked = rank_by_bpm_proximity(library, "127")
        assert [t.id for t in ranked] == ["t3", "t2", "t4", "t1", "t5"]

    def test_ties_keep_input_order(self):
        tracks = [
            make_track("a", bpm="126.00"),
            make_track("b", bpm="130.00"),
            make_track("c", bpm="126.00"),
            make_track("d", bpm="128.00"),
        ]
        ranked = rank_by_bpm_proximity(tracks, 128)
        assert [t.id for t in ranked] == ["d", "a", "b", "c"]

    def test_idempotent(self, library):
        once = rank_by_bpm_proximity(library, "125.5")
        twice = rank_by_bpm_proximity(once, "125.5")
        assert once == twice

    def test_invalid_reference_keeps_order(self, library):
        assert rank_by_bpm_proximity(library, "N/A") == library
        assert rank_by_bpm_proximity(library, 0) == library

    def test_does_not_modify_input(self, library):
        original = list(library)
        rank_by_bpm_proximity(library, 130)
        assert library == original


class TestExcludeTracks:
    def test_excludes_current_and_ids(self, library):
        remaining = exclude_tracks(library, ["t2"], current=library[0])
        assert [t.id for t in remaining] == ["t3", "t4", "t5"]
