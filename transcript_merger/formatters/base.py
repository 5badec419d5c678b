"""Abstract base formatter, output container and shared rendering helpers.

WHY: Every output grammar consumes the same MergedDocument but writes
different text. This base class enforces one interface so the CLI and
format_document() can drive any formatter generically, and keeps the
rules every writer shares (cue end filling, marker filtering, line
endings) in one place.

HOW: BaseFormatter is an ABC with two requirements: a ``name`` property
and a ``format()`` method. FormatterOutput bundles a file suffix with its
content, MIME type and any grammar-mismatch warnings. FormatFlags carries
the rendering switches. apply_line_ending() runs once over the finished
text.

RULES:
- Subclasses MUST implement ``name`` (human-readable) and ``format()``
- Formatters build text with "\\n" only; line endings are applied last
- ``suffix`` is appended to the output name, e.g. ``".srt"`` -> ``"merged.srt"``
- A formatter never modifies the document
"""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from transcript_merger.config import DEFAULT_CUE_DURATION_MS
from transcript_merger.core.ir import BlockKind, ContentBlock, MergedDocument, MergeWarning, WarningKind


class LineEnding(str, enum.Enum):
    """Line terminator of the rendered output."""

    LF = "lf"
    CRLF = "crlf"

    @property
    def chars(self) -> str:
        return "\r\n" if self is LineEnding.CRLF else "\n"


def apply_line_ending(text: str, line_ending: LineEnding) -> str:
    """Convert "\\n"-terminated text to the requested line ending."""
    if line_ending is LineEnding.LF:
        return text
    return text.replace("\n", line_ending.chars)


@dataclass
class FormatFlags:
    """Rendering switches shared by all formatters.

    Attributes:
        include_markers: Render part-marker and speaker-label pseudo-blocks.
        include_timestamps: Write timing in text grammars (bracketed,
            Markdown). SRT and WebVTT always carry timing.
        title: Markdown document title.
        generated_at: Markdown "Generated on" timestamp; omitted when None.
        filler_text: Text of filler blocks; empty fillers are not rendered.
    """

    include_markers: bool = True
    include_timestamps: bool = True
    title: str = "Merged Transcription"
    generated_at: Optional[datetime] = None
    filler_text: str = ""


@dataclass
class FormatterOutput:
    """One rendered document.

    Attributes:
        suffix: File suffix appended to the output name, e.g. ``".srt"``.
        content: The rendered text.
        media_type: MIME type, e.g. ``"application/x-subrip"``.
        warnings: GRAMMAR_MISMATCH_ON_OUTPUT diagnostics for this rendering.
    """

    suffix: str
    content: str
    media_type: str
    warnings: List[MergeWarning] = field(default_factory=list)


def mismatch_warning(grammar_name: str, lost: str) -> MergeWarning:
    return MergeWarning(
        kind=WarningKind.GRAMMAR_MISMATCH_ON_OUTPUT,
        detail="{} output cannot represent {}; that information was dropped".format(grammar_name, lost),
    )


def renderable_blocks(document: MergedDocument, flags: FormatFlags) -> List[ContentBlock]:
    """Blocks a formatter should write, in document order.

    Pseudo-blocks are dropped unless include_markers is set; filler blocks
    are dropped when there is no filler text to show.
    """
    result: List[ContentBlock] = []
    for block in document.blocks:
        if block.is_pseudo and not flags.include_markers:
            continue
        if block.kind is BlockKind.FILLER and not flags.filler_text:
            continue
        result.append(block)
    return result


def block_lines(block: ContentBlock, flags: FormatFlags) -> List[str]:
    """Text lines of a content or filler block."""
    if block.kind is BlockKind.FILLER:
        return flags.filler_text.split("\n")
    return list(block.lines)


def cue_end_ms(blocks: List[ContentBlock], index: int) -> int:
    """End time for a cue-based grammar.

    RULES:
    - The block's own end when present
    - Otherwise the start of the next non-pseudo block that starts later
    - Otherwise start + DEFAULT_CUE_DURATION_MS
    """
    block = blocks[index]
    start = block.start_ms or 0
    if block.end_ms is not None:
        return block.end_ms
    for following in blocks[index + 1:]:
        if following.is_pseudo or following.start_ms is None:
            continue
        if following.start_ms > start:
            return following.start_ms
    return start + DEFAULT_CUE_DURATION_MS


def has_timing(document: MergedDocument) -> bool:
    return any(b.start_ms is not None for b in document.blocks if not b.is_pseudo)


def has_end_times(document: MergedDocument) -> bool:
    return any(b.end_ms is not None for b in document.blocks if not b.is_pseudo)


class BaseFormatter(ABC):
    """Abstract base for all output formatters.

    To add a new output grammar:
    1. Create a new file in formatters/
    2. Subclass BaseFormatter
    3. Implement format() and name
    4. Register in FORMATTERS dict in formatters/__init__.py
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable format name, e.g. 'SubRip (SRT)'."""

    @abstractmethod
    def format(self, document: MergedDocument, flags: FormatFlags) -> FormatterOutput:
        """Render the merged document.

        Args:
            document: Repaired MergedDocument with absolute timestamps.
            flags: Rendering switches.

        Returns:
            FormatterOutput with "\\n" line endings.
        """
