"""Transcript Merger: join partial transcripts of a split recording.

WHY: Long recordings are split into segments before transcription, and
every segment's transcript restarts its clock at zero. This package puts
the pieces back together into one time-continuous transcript.

HOW: Four-stage pipeline: ingest (read + decode + parse each file), order
(sequence detection from filenames), place (durations and offsets onto one
timeline, then repair), format (pluggable output grammars). Each stage is
independently testable.

RULES:
- All times are integer milliseconds
- Problems that do not prevent a trustworthy result are warnings on the
  MergedDocument; only ambiguity, unreadable input and cancellation raise
- Adding an output grammar = one new formatter module, no core changes
"""

from transcript_merger.core.engine import detect_and_merge
from transcript_merger.core.options import MergeOptions
from transcript_merger.formatters import format_document

__version__ = "0.1.0"

__all__ = ["MergeOptions", "detect_and_merge", "format_document", "__version__"]
