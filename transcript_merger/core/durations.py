"""Per-file duration resolution.

WHY: A file's duration decides where the next file starts on the global
timeline. The media segmenter usually knows the exact segment length; when
it does not, the transcript itself is the best evidence.

HOW: Apply the priority chain from strongest to weakest evidence and
return the first value found.

RULES:
- (a) An external hint always wins when present
- (b) Otherwise the maximum token end time
- (c) Otherwise the maximum token start time
- (d) Otherwise zero, with a ZERO_DURATION warning
- Hints must be non-negative integers (validated by MergeOptions)
"""

from __future__ import annotations

from typing import Iterable, Optional, Tuple

from transcript_merger.core.ir import MergeWarning, SourceFile, TimestampToken, WarningKind


def timestamp_extent_ms(tokens: Iterable[TimestampToken]) -> Optional[int]:
    """Largest end time among tokens, else largest start time, else None."""
    max_end: Optional[int] = None
    max_start: Optional[int] = None
    for token in tokens:
        if token.end_ms is not None and (max_end is None or token.end_ms > max_end):
            max_end = token.end_ms
        if max_start is None or token.start_ms > max_start:
            max_start = token.start_ms
    return max_end if max_end is not None else max_start


def resolve_duration(
    source: SourceFile,
    hint_ms: Optional[int] = None,
) -> Tuple[int, Optional[MergeWarning]]:
    """Determine one file's duration.

    Args:
        source: Parsed SourceFile (tokens filled in).
        hint_ms: Duration supplied by the media segmenter, if any.

    Returns:
        Tuple of (duration_ms, warning or None).
    """
    if hint_ms is not None:
        return hint_ms, None

    extent = timestamp_extent_ms(source.tokens)
    if extent is not None:
        return extent, None

    return 0, MergeWarning(
        kind=WarningKind.ZERO_DURATION,
        detail="No duration hint and no timestamps; duration set to 0, offsets of "
               "all following files may be inaccurate",
        source=source.identifier,
    )
