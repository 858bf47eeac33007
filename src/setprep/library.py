"""
Library Source: import a Rekordbox XML collection as Track records.

Only the COLLECTION section is read. Keys are normalized to Camelot, BPMs to
2-decimal strings, durations to m:ss, and locations to the name of the
folder holding the file (used as the playlist/grouping label).

Enrichment results (subgenre, 1-5 energy) and provider cue points are merged
by building new Track values; the input list is never modified.
library_stats() summarizes a track list for display.
"""

import logging
import xml.etree.ElementTree as ET
from collections import Counter
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union
from urllib.parse import unquote

from .analyze.bpm import format_bpm, parse_bpm
from .analyze.key import to_camelot
from .models import NO_KEY, Track

logger = logging.getLogger(__name__)

DEFAULT_MAX_XML_MB = 20
SAMPLE_MAX_SECONDS = 60


class LibraryError(Exception):
    """Raised when a library file cannot be loaded."""
    pass


def format_duration(seconds) -> str:
    """Format seconds as m:ss ("0:00" for missing or negative values)."""
    try:
        total = float(seconds)
    except (TypeError, ValueError):
        return "0:00"
    if total != total or total < 0:
        return "0:00"
    return f"{int(total // 60)}:{int(total % 60):02d}"


def folder_label(location: Optional[str]) -> str:
    """
    Name of the folder that holds a track.

    Args:
        location: Rekordbox Location URI (file://localhost/...)

    Returns:
        Last folder name, or "N/A" if there is none
    """
    if not location:
        return NO_KEY
    path = unquote(location)
    if path.startswith("file://localhost"):
        path = path[len("file://localhost"):]
    elif path.startswith("file://"):
        path = path[len("file://"):]

    cut = max(path.rfind("/"), path.rfind("\\"))
    if cut == -1:
        return NO_KEY
    parts = path[:cut].replace("\\", "/").split("/")
    return parts[-1] or NO_KEY


def parse_color(value: Optional[str]) -> Optional[str]:
    """Convert Rekordbox "0xRRGGBB" colours to "#RRGGBB"."""
    if value and value.lower().startswith("0x"):
        return "#" + value[2:]
    return None


def _is_sample(seconds: float, genre: str, album: str) -> bool:
    genre, album = genre.lower(), album.lower()
    return seconds < SAMPLE_MAX_SECONDS or "sample" in genre or "sample" in album or "loop" in genre


def _int_attr(node: ET.Element, name: str) -> int:
    try:
        return int(node.get(name) or 0)
    except ValueError:
        return 0


def _float_attr(node: ET.Element, name: str) -> float:
    try:
        return float(node.get(name) or 0)
    except ValueError:
        return 0.0


def _track_from_node(node: ET.Element, index: int) -> Track:
    seconds = _float_attr(node, "TotalTime")
    genre = node.get("Genre") or NO_KEY
    album = node.get("Album") or NO_KEY

    return Track(
        id=node.get("TrackID") or f"track-{index}",
        name=node.get("Name") or "Unknown Track",
        artist=node.get("Artist") or "Unknown Artist",
        bpm=format_bpm(node.get("AverageBpm") or 0),
        key=to_camelot(node.get("Tonality")),
        genre=genre,
        album=album,
        play_count=_int_attr(node, "PlayCount"),
        rating=_int_attr(node, "Rating"),
        duration=format_duration(seconds),
        location=folder_label(node.get("Location")),
        color=parse_color(node.get("Colour")),
        is_sample=_is_sample(seconds, genre, album),
    )


def _tracks_from_root(root: ET.Element) -> List[Track]:
    return [_track_from_node(node, idx) for idx, node in enumerate(root.findall("./COLLECTION/TRACK"))]


def parse_rekordbox_xml(xml_text: Union[str, bytes]) -> List[Track]:
    """
    Parse a Rekordbox XML export.

    Args:
        xml_text: XML document

    Returns:
        Tracks in collection order; empty list if the XML is malformed
    """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        logger.error(f"Rekordbox XML parsing error: {e}")
        return []

    tracks = _tracks_from_root(root)
    logger.info(f"Parsed {len(tracks)} tracks from Rekordbox XML")
    return tracks


def load_library(path: Union[str, Path], max_xml_mb: int = DEFAULT_MAX_XML_MB) -> List[Track]:
    """
    Load a Rekordbox XML file.

    Args:
        path: Path to the XML export
        max_xml_mb: Size limit in MiB

    Returns:
        Parsed tracks

    Raises:
        FileNotFoundError: XML file not found
        LibraryError: File too large or not valid XML
    """
    path = Path(path).expanduser()
    if not path.exists():
        raise FileNotFoundError(f"Rekordbox XML not found: {path}")

    size = path.stat().st_size
    limit = max_xml_mb * 1024 * 1024
    if size > limit:
        raise LibraryError(f"Rekordbox XML exceeds {max_xml_mb}MB limit ({size / (1024 * 1024):.1f}MB)")

    try:
        root = ET.parse(path).getroot()
    except ET.ParseError as e:
        raise LibraryError(f"Invalid Rekordbox XML {path}: {e}")

    tracks = _tracks_from_root(root)
    logger.info(f"Loaded {len(tracks)} tracks from {path}")
    return tracks


def apply_enrichments(tracks: List[Track], enrichments: Iterable[Dict[str, Any]]) -> List[Track]:
    """
    Merge enrichment records ({id, subgenre, energy}) into tracks.

    Energy outside 1-5 or not numeric is ignored; unknown ids are skipped.

    Args:
        tracks: Library tracks
        enrichments: Enrichment records

    Returns:
        New list with enriched copies where records matched
    """
    by_id: Dict[str, Dict[str, Any]] = {}
    for record in enrichments:
        if isinstance(record, dict) and record.get("id") is not None:
            by_id[str(record["id"])] = record

    result = []
    enriched = 0
    for track in tracks:
        record = by_id.get(track.id)
        if record is None:
            result.append(track)
            continue

        changes: Dict[str, Any] = {}
        if record.get("subgenre"):
            changes["subgenre"] = str(record["subgenre"])
        try:
            energy = int(round(float(record.get("energy"))))
        except (TypeError, ValueError, OverflowError):
            energy = None
        if energy is not None and 1 <= energy <= 5:
            changes["energy"] = energy

        if changes:
            enriched += 1
            result.append(replace(track, **changes))
        else:
            result.append(track)

    logger.info(f"Enriched {enriched}/{len(tracks)} tracks")
    return result


def merge_cue_points(track: Track, cue_points: Iterable[str]) -> Track:
    """Return a copy of the track carrying the given cue points."""
    return replace(track, cue_points=tuple(cue_points))


@dataclass
class LibraryStats:
    """Summary of a track list: average tempo, most common keys and genres."""

    track_count: int = 0
    avg_bpm: str = "0.00"
    common_keys: List[str] = field(default_factory=list)
    genre_distribution: List[Tuple[str, int]] = field(default_factory=list)


def library_stats(tracks: List[Track], top_keys: int = 3, top_genres: int = 5) -> LibraryStats:
    """
    Summarize a library or playlist.

    Tracks without a usable BPM are left out of the average; missing keys
    and genres are not counted.

    Args:
        tracks: Tracks to summarize
        top_keys: Number of most common keys to report
        top_genres: Number of genres in the distribution

    Returns:
        LibraryStats with genre shares as whole percentages of all tracks
    """
    if not tracks:
        return LibraryStats()

    bpms = [b for b in (parse_bpm(t.bpm) for t in tracks) if b is not None]
    avg_bpm = format_bpm(sum(bpms) / len(bpms)) if bpms else "0.00"

    # most_common() keeps first-seen order among equal counts
    keys = Counter(t.key for t in tracks if t.key and t.key != NO_KEY)
    genres = Counter(t.genre for t in tracks if t.genre and t.genre != NO_KEY)

    return LibraryStats(
        track_count=len(tracks),
        avg_bpm=avg_bpm,
        common_keys=[key for key, _ in keys.most_common(top_keys)],
        genre_distribution=[
            (genre, round(count / len(tracks) * 100)) for genre, count in genres.most_common(top_genres)
        ],
    )
