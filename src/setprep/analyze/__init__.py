"""
Track Analysis Module: BPM parsing, Camelot keys, and clash detection.

- Library values are parsed leniently (bad data skips a check)
- Camelot table is built once and shared read-only
- Clash verdicts are pure functions of two tracks' key and tempo
"""

__all__ = ["bpm", "key", "clash"]
