# SetPrep: DJ set preparation (clash detection, suggestions, set planning)
# Package: src.setprep

__version__ = "1.0.0-dev"
__author__ = "SetPrep Contributors"
__description__ = "Harmonic clash detection and set planning for DJ libraries"

# Module structure:
#   - setprep.analyze    : BPM parsing, Camelot table, clash detection
#   - setprep.generate   : Candidate filtering, suggestions, set planning
#   - setprep.providers  : Suggestion/sequence provider boundary
#   - setprep.library    : Rekordbox XML import and enrichment merge
#   - setprep.config     : Configuration management
