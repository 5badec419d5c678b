"""SubRip (SRT) formatter.

WHY: SRT is what editing suites and video players accept most widely, so
it is the default target for a merged transcript.

HOW: One numbered cue per renderable block. A missing end time is filled
by cue_end_ms(). Part markers and speaker labels become zero-duration
cues with their text in square brackets, which survives a re-parse as a
normal cue.

RULES:
- Cue numbers start at 1 and are consecutive
- Timestamps are HH:MM:SS,mmm
- Cues are separated by one blank line; the file ends with a newline
- Media type: "application/x-subrip"
"""

from __future__ import annotations

from typing import List

from transcript_merger.core.grammar import format_timestamp
from transcript_merger.core.ir import GrammarKind, MergedDocument
from transcript_merger.formatters.base import (
    BaseFormatter,
    FormatFlags,
    FormatterOutput,
    block_lines,
    cue_end_ms,
    renderable_blocks,
)


class SRTFormatter(BaseFormatter):
    """Formatter that writes numbered SubRip cues."""

    @property
    def name(self) -> str:
        return "SubRip (SRT)"

    def format(self, document: MergedDocument, flags: FormatFlags) -> FormatterOutput:
        blocks = renderable_blocks(document, flags)
        cues: List[str] = []

        for index, block in enumerate(blocks):
            start = block.start_ms or 0
            if block.is_pseudo:
                end = start
                lines = ["[{}]".format(block.text)]
            else:
                end = cue_end_ms(blocks, index)
                lines = block_lines(block, flags)
            cues.append("{number}\n{start} --> {end}\n{text}".format(
                number=len(cues) + 1,
                start=format_timestamp(start, GrammarKind.SRT),
                end=format_timestamp(end, GrammarKind.SRT),
                text="\n".join(lines),
            ))

        content = "\n\n".join(cues)
        if content:
            content += "\n"

        return FormatterOutput(
            suffix=".srt",
            content=content,
            media_type="application/x-subrip",
        )
