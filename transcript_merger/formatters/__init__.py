"""Output formatter registry and the format_document() entry point.

WHY: The CLI and embedding applications need a single lookup to find the
right writer for a target grammar. A central dict makes it trivial to add
new formats: create the formatter class, import it here, add one line.

HOW: FORMATTERS maps string keys to formatter *classes* (not instances).
format_document() resolves the target (a key or a GrammarKind),
instantiates the formatter, renders, logs any grammar-mismatch warnings
and applies the requested line ending as the final pass.

RULES:
- Keys are snake_case identifiers (used in CLI flags and config)
- Keys for grammars equal the GrammarKind values
- Values are BaseFormatter subclasses (not instances)
- The custom grammar has no writer; asking for it raises ValueError
"""

from __future__ import annotations

import logging
from typing import Dict, Optional, Type, Union

from transcript_merger.core.ir import GrammarKind, MergedDocument
from transcript_merger.formatters.base import (
    BaseFormatter,
    FormatFlags,
    FormatterOutput,
    LineEnding,
    apply_line_ending,
)
from transcript_merger.formatters.bracketed import BracketedFormatter
from transcript_merger.formatters.markdown import MarkdownFormatter
from transcript_merger.formatters.plain_text import PlainTextFormatter
from transcript_merger.formatters.srt import SRTFormatter
from transcript_merger.formatters.webvtt import WebVTTFormatter

logger = logging.getLogger(__name__)

FORMATTERS: Dict[str, Type[BaseFormatter]] = {
    "srt": SRTFormatter,
    "webvtt": WebVTTFormatter,
    "bracketed": BracketedFormatter,
    "markdown": MarkdownFormatter,
    "plain_text": PlainTextFormatter,
}


def get_formatter(target: Union[str, GrammarKind]) -> BaseFormatter:
    """Instantiate the formatter for a registry key or GrammarKind.

    Raises:
        ValueError: No formatter writes ``target``.
    """
    key = target.value if isinstance(target, GrammarKind) else str(target)
    try:
        return FORMATTERS[key]()
    except KeyError:
        raise ValueError(
            "No formatter for {!r}; available: {}".format(key, ", ".join(sorted(FORMATTERS)))
        )


def format_document(
    document: MergedDocument,
    target_grammar: Union[str, GrammarKind],
    line_ending: LineEnding = LineEnding.LF,
    flags: Optional[FormatFlags] = None,
) -> FormatterOutput:
    """Render a merged document in the target grammar.

    Args:
        document: Output of detect_and_merge().
        target_grammar: FORMATTERS key or GrammarKind.
        line_ending: LineEnding.LF or LineEnding.CRLF.
        flags: Rendering switches; defaults when omitted.

    Returns:
        FormatterOutput whose content uses the requested line ending.

    Raises:
        ValueError: Unknown target grammar.
    """
    formatter = get_formatter(target_grammar)
    output = formatter.format(document, flags or FormatFlags())
    for warning in output.warnings:
        logger.info("%s", warning.detail)
    output.content = apply_line_ending(output.content, LineEnding(line_ending))
    return output
