"""Plain text transcript formatter.

WHY: For review and archival a transcript without any timecodes is often
all that is needed: the merged text, grouped the way it was spoken.

HOW: Consecutive blocks of the same speaker are joined into one
paragraph, with a ``Speaker:`` header line whenever the speaker changes.
Part markers become a ``[Part N: name]`` line of their own. A blank line
separates paragraphs.

RULES:
- No timing is written; when the document has timing a
  GRAMMAR_MISMATCH_ON_OUTPUT warning is returned
- Speaker-label pseudo-blocks are not written (the header covers them)
- No trailing whitespace on any line; the file ends with a newline
- Output suffix: "-plain.txt"
- Media type: "text/plain"
"""

from __future__ import annotations

from typing import List, Optional

from transcript_merger.core.ir import BlockKind, MergedDocument
from transcript_merger.formatters.base import (
    BaseFormatter,
    FormatFlags,
    FormatterOutput,
    block_lines,
    has_timing,
    mismatch_warning,
    renderable_blocks,
)


class PlainTextFormatter(BaseFormatter):
    """Formatter that produces speaker-grouped plain text paragraphs."""

    @property
    def name(self) -> str:
        return "Plain Text"

    def format(self, document: MergedDocument, flags: FormatFlags) -> FormatterOutput:
        paragraphs: List[str] = []
        current_speaker: Optional[str] = None
        current_lines: List[str] = []

        def flush() -> None:
            if current_lines:
                text = "\n".join(line.rstrip() for line in current_lines)
                if current_speaker:
                    text = "{}:\n{}".format(current_speaker, text)
                paragraphs.append(text)
            del current_lines[:]

        for block in renderable_blocks(document, flags):
            if block.kind is BlockKind.SPEAKER_LABEL:
                continue
            if block.kind is BlockKind.PART_MARKER:
                flush()
                paragraphs.append("[{}]".format(block.text))
                current_speaker = None
                continue
            if block.speaker != current_speaker:
                flush()
                current_speaker = block.speaker
            current_lines.extend(line for line in block_lines(block, flags) if line.strip())

        flush()

        warnings = []
        if has_timing(document):
            warnings.append(mismatch_warning(self.name, "timestamps"))

        content = "\n\n".join(paragraphs)
        if content:
            content += "\n"
        return FormatterOutput(
            suffix="-plain.txt",
            content=content,
            media_type="text/plain",
            warnings=warnings,
        )
