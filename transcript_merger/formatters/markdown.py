"""Markdown transcript formatter.

WHY: A Markdown transcript reads well in any notes app or repository
viewer, with one section per source file and bold timestamps that the
parser can read back.

HOW: A ``# title`` header and an optional ``*Generated on: ...*`` line,
then one paragraph per block written as ``**HH:MM:SS** text``. Part
markers open ``## `` sections; speaker labels become ``### `` headings.

RULES:
- Markdown timestamps are start-only: end times are dropped with a
  GRAMMAR_MISMATCH_ON_OUTPUT warning
- include_timestamps=False writes paragraphs without timestamps (warning)
- Paragraphs are separated by one blank line; the file ends with a newline
- Media type: "text/markdown"
"""

from __future__ import annotations

from typing import List

from transcript_merger.core.grammar import format_timestamp
from transcript_merger.core.ir import BlockKind, GrammarKind, MergedDocument, MergeWarning
from transcript_merger.formatters.base import (
    BaseFormatter,
    FormatFlags,
    FormatterOutput,
    block_lines,
    has_end_times,
    has_timing,
    mismatch_warning,
    renderable_blocks,
)


class MarkdownFormatter(BaseFormatter):
    """Formatter that writes a sectioned Markdown transcript."""

    @property
    def name(self) -> str:
        return "Markdown"

    def format(self, document: MergedDocument, flags: FormatFlags) -> FormatterOutput:
        paragraphs: List[str] = ["# {}".format(flags.title)]
        if flags.generated_at is not None:
            paragraphs.append("*Generated on: {}*".format(
                flags.generated_at.strftime("%Y-%m-%d %H:%M:%S UTC"),
            ))

        for block in renderable_blocks(document, flags):
            if block.kind is BlockKind.PART_MARKER:
                paragraphs.append("## {}".format(block.text))
                continue
            if block.kind is BlockKind.SPEAKER_LABEL:
                paragraphs.append("### {}".format(block.text))
                continue
            text = "\n".join(block_lines(block, flags))
            if flags.include_timestamps:
                stamp = "**{}**".format(format_timestamp(block.start_ms or 0, GrammarKind.MARKDOWN))
                paragraphs.append("{} {}".format(stamp, text).rstrip())
            elif text:
                paragraphs.append(text)

        warnings: List[MergeWarning] = []
        if not flags.include_timestamps:
            if has_timing(document):
                warnings.append(mismatch_warning(self.name, "timestamps (disabled by request)"))
        elif has_end_times(document):
            warnings.append(mismatch_warning(self.name, "end times"))

        return FormatterOutput(
            suffix=".md",
            content="\n\n".join(paragraphs) + "\n",
            media_type="text/markdown",
            warnings=warnings,
        )
