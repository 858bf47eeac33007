#!/usr/bin/env python3
"""
Plan a DJ Set Script

Usage: plan_set.py <rekordbox.xml> [start_track_id] [mandatory_id ...]

Loads the library, plans a set with the local planner using the configured
defaults, and logs the running order with a clash report per transition.
"""

import asyncio
import sys
import logging
from pathlib import Path

# Add src/ to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from setprep.analyze.clash import annotate_transitions
from setprep.config import Config
from setprep.generate.planner import SetPlanner
from setprep.library import library_stats, load_library

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


def main():
    """Main planning entrypoint."""
    try:
        config = Config.load()
        logger.info(f"Config loaded: {config}")

        xml_path = sys.argv[1] if len(sys.argv) > 1 else config.get("library", "xml_path")
        if not xml_path:
            logger.error("No library given (argument or library.xml_path)")
            return 2

        library = load_library(xml_path, max_xml_mb=config.get("library", "max_xml_mb"))
        stats = library_stats(library)
        logger.info(f"Library: {stats.track_count} tracks, avg {stats.avg_bpm} BPM, top keys {', '.join(stats.common_keys) or 'none'}")
        by_id = {t.id: t for t in library}

        start_track = None
        if len(sys.argv) > 2:
            start_track = by_id.get(sys.argv[2])
            if start_track is None:
                logger.warning(f"Start track {sys.argv[2]} not in library; planning without one")

        mandatory = []
        for track_id in sys.argv[3:]:
            if track_id in by_id:
                mandatory.append(by_id[track_id])
            else:
                logger.warning(f"Mandatory track {track_id} not in library; skipping")

        detector = config.detector()
        planner = SetPlanner(detector=detector)
        params = config.planner_params()
        tracks = asyncio.run(planner.plan_set(library, start_track, mandatory, params))

        if not tracks:
            logger.warning("No set could be planned (empty library)")
            return 1

        logger.info("")
        logger.info("=" * 60)
        logger.info(f"🎵 {params.progression.value} set, {len(tracks)} tracks")
        logger.info("=" * 60)
        logger.info(f"  1. {tracks[0].artist} - {tracks[0].name} ({tracks[0].bpm} BPM, {tracks[0].key})")
        for position, report in enumerate(annotate_transitions(tracks, detector), start=2):
            track = report.to_track
            marker = ""
            if report.clash.has_clash:
                marker = f"  ⚠ {report.clash.severity.value}: {'; '.join(report.clash.reasons)}"
            logger.info(f"{position:>3}. {track.artist} - {track.name} ({track.bpm} BPM, {track.key}){marker}")
        logger.info("=" * 60)
        return 0

    except KeyboardInterrupt:
        logger.warning("Planning interrupted by user")
        return 130
    except Exception as e:
        logger.error(f"Planning failed: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
