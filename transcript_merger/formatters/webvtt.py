"""WebVTT formatter.

WHY: Browsers and most web players only load WebVTT, and its voice tags
keep speaker attribution inside the cue.

HOW: A ``WEBVTT`` header, then one cue per block. Part markers become
``NOTE`` comment blocks (players ignore them, editors still see them).
Speakers are written as a ``<v Name>`` tag on the first cue line, so the
speaker-label pseudo-block itself is not rendered.

RULES:
- Timestamps are HH:MM:SS.mmm
- Missing end times are filled by cue_end_ms()
- Blocks are separated by one blank line; the file ends with a newline
- Media type: "text/vtt"
"""

from __future__ import annotations

from typing import List

from transcript_merger.core.grammar import format_timestamp
from transcript_merger.core.ir import BlockKind, GrammarKind, MergedDocument
from transcript_merger.formatters.base import (
    BaseFormatter,
    FormatFlags,
    FormatterOutput,
    block_lines,
    cue_end_ms,
    renderable_blocks,
)


class WebVTTFormatter(BaseFormatter):
    """Formatter that writes a WebVTT file with NOTE markers and voice tags."""

    @property
    def name(self) -> str:
        return "WebVTT"

    def format(self, document: MergedDocument, flags: FormatFlags) -> FormatterOutput:
        blocks = renderable_blocks(document, flags)
        parts: List[str] = ["WEBVTT"]

        for index, block in enumerate(blocks):
            if block.kind is BlockKind.SPEAKER_LABEL:
                continue
            if block.kind is BlockKind.PART_MARKER:
                # NOTE text must not contain "-->"
                parts.append("NOTE {}".format(block.text.replace("-->", "->")))
                continue

            lines = block_lines(block, flags)
            if block.speaker and lines:
                lines[0] = "<v {}>{}".format(block.speaker, lines[0])
            parts.append("{start} --> {end}\n{text}".format(
                start=format_timestamp(block.start_ms or 0, GrammarKind.WEBVTT),
                end=format_timestamp(cue_end_ms(blocks, index), GrammarKind.WEBVTT),
                text="\n".join(lines),
            ))

        return FormatterOutput(
            suffix=".vtt",
            content="\n\n".join(parts) + "\n",
            media_type="text/vtt",
        )
