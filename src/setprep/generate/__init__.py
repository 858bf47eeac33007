"""
Set Generation Module: filter candidates, suggest next tracks, plan sets.

- Greedy traversal (no backtracking) for the local planner
- Provider-first, with local fallback on any provider failure
- Filtering never blocks generation (degenerate pools widen to the library)
"""

__all__ = ["filters", "energy", "planner", "suggest"]
