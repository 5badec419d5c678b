"""Bracketed-timestamp text formatter.

WHY: Plain ``[HH:MM:SS] text`` lines are what transcription tools and
note-taking workflows exchange most often; they stay readable without any
player.

HOW: Each block's first line is prefixed with its start, or with a
``[start-end]`` range when the block has an end. Continuation lines follow
unprefixed. Part markers are written as ``[start] [Part N: name]`` and
speaker labels as a ``Name:`` line.

RULES:
- Timestamps are HH:MM:SS, plus .mmm when the milliseconds are non-zero
- include_timestamps=False writes the text only (mismatch warning)
- One line per text line; the file ends with a newline
- Media type: "text/plain"
"""

from __future__ import annotations

from typing import List

from transcript_merger.core.grammar import format_timestamp
from transcript_merger.core.ir import BlockKind, ContentBlock, GrammarKind, MergedDocument
from transcript_merger.formatters.base import (
    BaseFormatter,
    FormatFlags,
    FormatterOutput,
    block_lines,
    has_timing,
    mismatch_warning,
    renderable_blocks,
)


def _stamp(block: ContentBlock) -> str:
    start = format_timestamp(block.start_ms or 0, GrammarKind.BRACKETED)
    if block.end_ms is None or block.is_pseudo:
        return "[{}]".format(start)
    return "[{}-{}]".format(start, format_timestamp(block.end_ms, GrammarKind.BRACKETED))


class BracketedFormatter(BaseFormatter):
    """Formatter that writes ``[HH:MM:SS] text`` lines."""

    @property
    def name(self) -> str:
        return "Bracketed text"

    def format(self, document: MergedDocument, flags: FormatFlags) -> FormatterOutput:
        out: List[str] = []
        for block in renderable_blocks(document, flags):
            if block.kind is BlockKind.SPEAKER_LABEL:
                out.append("{}:".format(block.text))
                continue
            lines = ["[{}]".format(block.text)] if block.is_pseudo else block_lines(block, flags)
            if flags.include_timestamps:
                first = lines[0] if lines else ""
                out.append("{} {}".format(_stamp(block), first).rstrip())
                out.extend(lines[1:])
            else:
                out.extend(lines)

        warnings = []
        if not flags.include_timestamps and has_timing(document):
            warnings.append(mismatch_warning(self.name, "timestamps (disabled by request)"))

        content = "\n".join(out)
        if content:
            content += "\n"
        return FormatterOutput(
            suffix=".txt",
            content=content,
            media_type="text/plain",
            warnings=warnings,
        )
