"""Timestamp grammar detection, parsing and writing.

WHY: Partial transcripts come out of different tools in different
timestamp syntaxes. Everything downstream (durations, offsets, assembly)
needs plain integer milliseconds and the text that belongs to each
timestamp, regardless of the syntax a file was written in.

HOW: Each GrammarKind has exactly one line matcher. A matcher looks at one
stripped line and returns a _Hit (start, optional end, remaining text, span)
or None. detect_grammar() picks the first grammar, in GrammarKind order,
that matches at least one line of the file; parse_text() then walks the
file once with that single matcher, opening a ContentBlock at every
timestamp and attaching non-matching lines to the open block.
format_timestamp() is the writing side used by the output formatters.

RULES:
- One grammar per file; non-matching lines are continuation text
- Text before the first timestamp is dropped with a DROPPED_LINE warning
- A token whose end precedes its start is discarded (INVALID_TOKEN) and its
  block is kept as untimed text
- A file without any valid token becomes one untimed block
  (NO_PARSABLE_TIMESTAMPS)
- SRT/WebVTT cue identifiers (the line right above a timing line) are not text
- WebVTT header, NOTE/STYLE/REGION blocks and Markdown headings are skipped
- Minutes and seconds of HH:MM:SS forms must be below 60, otherwise the line
  is plain text
- A bare clock (HH:MM:SS or MM:SS) counts only at line start and only when
  followed by whitespace or the end of the line; plain numbers stay text
- All arithmetic is integer milliseconds
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional, Tuple

from transcript_merger.core.ir import (
    ContentBlock,
    GrammarKind,
    MergeWarning,
    SourceFile,
    TimestampToken,
    WarningKind,
)

_NEWLINE_RE = re.compile(r"\r\n|\r|\n")
_HAS_DIGIT_RE = re.compile(r"\d")


def _clock(prefix: str) -> str:
    """Build a named-group ``[HH:]MM:SS[.fff]`` pattern for one side of a timestamp."""
    return (
        r"(?:(?P<{p}_h>\d{{1,3}}):)?"
        r"(?P<{p}_m>\d{{1,2}}):(?P<{p}_s>\d{{2}})"
        r"(?:[.,](?P<{p}_f>\d{{1,3}}))?"
    ).format(p=prefix)


_SRT_RE = re.compile(
    r"^(?P<h>\d+):(?P<m>\d{2}):(?P<s>\d{2}),(?P<f>\d{3})\s*-->\s*"
    r"(?P<e_h>\d+):(?P<e_m>\d{2}):(?P<e_s>\d{2}),(?P<e_f>\d{3})(?:\s.*)?$"
)

_WEBVTT_RE = re.compile(
    r"^(?:(?P<h>\d+):)?(?P<m>\d{2}):(?P<s>\d{2})\.(?P<f>\d{3})\s*-->\s*"
    r"(?:(?P<e_h>\d+):)?(?P<e_m>\d{2}):(?P<e_s>\d{2})\.(?P<e_f>\d{3})(?:\s.*)?$"
)

_BRACKETED_RE = re.compile(
    r"^\[\s*" + _clock("b") + r"(?:\s*(?:-->|-|–)\s*" + _clock("e") + r")?\s*\]\s*(?P<rest>.*)$"
)

# Bare bracketed seconds, e.g. "[120] text"
_BRACKETED_SECONDS_RE = re.compile(r"^\[(?P<secs>\d+)\]\s*(?P<rest>.*)$")

# Unbracketed clock at line start, e.g. "01:45 text"; needs whitespace or end of line after it
_BARE_CLOCK_RE = re.compile(r"^" + _clock("b") + r"(?:\s+(?P<rest>.*))?$")

_MARKDOWN_RE = re.compile(
    r"^(?P<d>\*\*|__)\[?\s*" + _clock("b") + r"\s*\]?(?P=d)\s*(?P<rest>.*)$"
)

_VOICE_TAG_RE = re.compile(r"^<v(?:\.[^\s>]+)*\s+(?P<name>[^>]+)>\s*")
_VOICE_CLOSE_RE = re.compile(r"\s*</v>\s*$")

_WEBVTT_BLOCK_KEYWORDS = ("NOTE", "STYLE", "REGION")


@dataclass(frozen=True)
class _Hit:
    """Result of matching one line: timing, trailing text and match span."""

    start_ms: int
    end_ms: Optional[int]
    rest: str
    span: Tuple[int, int]


@dataclass(frozen=True)
class CustomGrammar:
    """A user-supplied timestamp pattern.

    RULES:
    - Unnamed groups: two (minutes, seconds) or four (hours, minutes,
      seconds, milliseconds)
    - Named groups h/m/s/ms describe the start; end_h/end_m/end_s/end_ms
      (any subset containing end_s) describe an optional end
    - The pattern is searched anywhere in a line; the match is removed
      from the block text
    """

    pattern: "re.Pattern[str]"

    @property
    def has_names(self) -> bool:
        return "s" in self.pattern.groupindex


def compile_custom_grammar(pattern: str) -> CustomGrammar:
    """Validate and compile a custom timestamp pattern.

    Raises:
        ValueError: If the pattern does not compile or has an unsupported
            group layout.
    """
    try:
        compiled = re.compile(pattern)
    except re.error as exc:
        raise ValueError("Invalid custom timestamp pattern {!r}: {}".format(pattern, exc))

    if "s" in compiled.groupindex:
        return CustomGrammar(pattern=compiled)
    if compiled.groupindex:
        raise ValueError(
            "Custom timestamp pattern uses named groups but has no 's' (seconds) group"
        )
    if compiled.groups not in (2, 4):
        raise ValueError(
            "Custom timestamp pattern must have 2 (m, s) or 4 (h, m, s, ms) "
            "capture groups, got {}".format(compiled.groups)
        )
    return CustomGrammar(pattern=compiled)


# ---------------------------------------------------------------------------
# Numeric helpers
# ---------------------------------------------------------------------------


def _fraction_ms(fraction: Optional[str]) -> int:
    """Convert a decimal fraction of a second ("5", "50", "500") to ms."""
    if not fraction:
        return 0
    return int(fraction[:3].ljust(3, "0"))


def _clock_ms(
    hours: Optional[str],
    minutes: Optional[str],
    seconds: Optional[str],
    fraction: Optional[str],
) -> Optional[int]:
    """Combine clock fields into milliseconds, or None if out of range."""
    h = int(hours) if hours else 0
    m = int(minutes) if minutes else 0
    s = int(seconds) if seconds else 0
    if s >= 60:
        return None
    if hours and m >= 60:
        return None
    return ((h * 60 + m) * 60 + s) * 1000 + _fraction_ms(fraction)


def _side_ms(match: "re.Match[str]", prefix: str) -> Optional[int]:
    return _clock_ms(
        match.group(prefix + "_h"),
        match.group(prefix + "_m"),
        match.group(prefix + "_s"),
        match.group(prefix + "_f"),
    )


# ---------------------------------------------------------------------------
# One matcher per grammar kind
# ---------------------------------------------------------------------------


def _match_cue_timing(regex: "re.Pattern[str]", line: str) -> Optional[_Hit]:
    match = regex.match(line)
    if match is None:
        return None
    start = _clock_ms(match.group("h"), match.group("m"), match.group("s"), match.group("f"))
    end = _side_ms(match, "e")
    if start is None or end is None:
        return None
    arrow_end = match.end("e_f")
    return _Hit(start_ms=start, end_ms=end, rest="", span=(0, arrow_end))


def _match_srt(line: str) -> Optional[_Hit]:
    return _match_cue_timing(_SRT_RE, line)


def _match_webvtt(line: str) -> Optional[_Hit]:
    return _match_cue_timing(_WEBVTT_RE, line)


def _match_bracketed(line: str) -> Optional[_Hit]:
    match = _BRACKETED_RE.match(line)
    if match is not None:
        start = _side_ms(match, "b")
        end = _side_ms(match, "e") if match.group("e_s") else None
        if start is None or (match.group("e_s") and end is None):
            return None
        return _Hit(start, end, match.group("rest").strip(), (0, match.start("rest")))

    match = _BRACKETED_SECONDS_RE.match(line)
    if match is not None:
        start = int(match.group("secs")) * 1000
        return _Hit(start, None, match.group("rest").strip(), (0, match.start("rest")))

    match = _BARE_CLOCK_RE.match(line)
    if match is not None:
        start = _side_ms(match, "b")
        if start is None:
            return None
        if match.group("rest") is None:
            return _Hit(start, None, "", (0, len(line)))
        return _Hit(start, None, match.group("rest").strip(), (0, match.start("rest")))
    return None


def _match_markdown(line: str) -> Optional[_Hit]:
    match = _MARKDOWN_RE.match(line)
    if match is None:
        return None
    start = _side_ms(match, "b")
    if start is None:
        return None
    return _Hit(start, None, match.group("rest").strip(), (0, match.start("rest")))


def _custom_matcher(grammar: CustomGrammar) -> Callable[[str], Optional[_Hit]]:
    pattern = grammar.pattern

    def _named(match: "re.Match[str]", prefix: str) -> Optional[int]:
        def group(name: str) -> Optional[str]:
            key = prefix + name
            return match.group(key) if key in pattern.groupindex else None

        if group("s") is None:
            return None
        return _clock_ms(group("h"), group("m"), group("s"), group("ms"))

    def _match(line: str) -> Optional[_Hit]:
        match = pattern.search(line)
        if match is None:
            return None
        if grammar.has_names:
            start = _named(match, "")
            end = _named(match, "end_")
        elif pattern.groups == 2:
            start = _clock_ms(None, match.group(1), match.group(2), None)
            end = None
        else:
            start = _clock_ms(match.group(1), match.group(2), match.group(3), match.group(4))
            end = None
        if start is None:
            return None
        rest = (line[:match.start()] + line[match.end():]).strip()
        return _Hit(start, end, rest, match.span())

    return _match


def matcher_for(
    kind: GrammarKind,
    custom: Optional[CustomGrammar] = None,
) -> Callable[[str], Optional[_Hit]]:
    """Return the single line matcher for ``kind``.

    Raises:
        ValueError: If ``kind`` is CUSTOM and no custom grammar is given.
    """
    if kind is GrammarKind.SRT:
        return _match_srt
    if kind is GrammarKind.WEBVTT:
        return _match_webvtt
    if kind is GrammarKind.BRACKETED:
        return _match_bracketed
    if kind is GrammarKind.MARKDOWN:
        return _match_markdown
    if custom is None:
        raise ValueError("The custom grammar requires a custom timestamp pattern")
    return _custom_matcher(custom)


# ---------------------------------------------------------------------------
# Line scanning
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class _Line:
    number: int  # 1-based
    offset: int  # character offset of the stripped text in the file
    text: str  # stripped
    hit: Optional[_Hit]


def _iter_lines(text: str) -> Iterator[Tuple[int, str]]:
    """Yield (offset, line) pairs without line terminators."""
    pos = 0
    for match in _NEWLINE_RE.finditer(text):
        yield pos, text[pos:match.start()]
        pos = match.end()
    if pos < len(text):
        yield pos, text[pos:]


def _scan(
    text: str,
    matcher: Callable[[str], Optional[_Hit]],
) -> Iterator[Tuple[_Line, Optional[_Line]]]:
    """Yield each line together with the line right after it (lookahead)."""
    previous: Optional[_Line] = None
    for number, (offset, raw) in enumerate(_iter_lines(text), start=1):
        stripped = raw.strip()
        lead = len(raw) - len(raw.lstrip())
        line = _Line(
            number=number,
            offset=offset + lead,
            text=stripped,
            hit=matcher(stripped) if stripped else None,
        )
        if previous is not None:
            yield previous, line
        previous = line
    if previous is not None:
        yield previous, None


def _token_for(line: _Line, kind: GrammarKind) -> TimestampToken:
    hit = line.hit
    assert hit is not None
    return TimestampToken(
        span=(line.offset + hit.span[0], line.offset + hit.span[1]),
        start_ms=hit.start_ms,
        end_ms=hit.end_ms,
        grammar=kind,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def detect_grammar(text: str, custom: Optional[CustomGrammar] = None) -> Optional[GrammarKind]:
    """Pick the grammar for a whole file.

    WHY: Files carry no declaration of their timestamp syntax, and the same
    extension (.txt) is used for several of them.

    HOW: Collect lines that contain digits, then try every grammar in
    GrammarKind order (CUSTOM only when a custom pattern is configured).
    The first grammar that matches at least one of those lines wins.

    Returns:
        The adopted GrammarKind, or None if nothing matched.
    """
    candidates = [
        raw.strip() for _, raw in _iter_lines(text) if _HAS_DIGIT_RE.search(raw)
    ]
    if not candidates:
        return None

    for kind in GrammarKind:
        if kind is GrammarKind.CUSTOM and custom is None:
            continue
        matcher = matcher_for(kind, custom)
        if any(matcher(line) is not None for line in candidates):
            return kind
    return None


def iter_tokens(
    text: str,
    grammar: Optional[GrammarKind] = None,
    custom: Optional[CustomGrammar] = None,
) -> Iterator[TimestampToken]:
    """Lazily yield the valid timestamp tokens of ``text``.

    Each call starts a fresh scan, so the sequence can be restarted by
    calling again. Tokens whose end precedes their start are skipped.
    """
    kind = grammar or detect_grammar(text, custom)
    if kind is None:
        return
    matcher = matcher_for(kind, custom)
    for line, _ in _scan(text, matcher):
        hit = line.hit
        if hit is None:
            continue
        if hit.end_ms is not None and hit.end_ms < hit.start_ms:
            continue
        yield _token_for(line, kind)


@dataclass
class ParseResult:
    """Everything parse_text() learned about one file."""

    grammar: Optional[GrammarKind]
    tokens: List[TimestampToken]
    blocks: List[ContentBlock]
    warnings: List[MergeWarning]


def parse_text(
    text: str,
    grammar: Optional[GrammarKind] = None,
    custom: Optional[CustomGrammar] = None,
    source_index: Optional[int] = None,
    identifier: Optional[str] = None,
) -> ParseResult:
    """Parse one file's text into tokens and ContentBlocks.

    WHY: The assembler works on blocks (timing + text lines), not on raw
    text. This is the only place where raw text turns into blocks.

    HOW: Select the grammar (given or detected) and its matcher once. Walk
    the lines with one line of lookahead: a matching line opens a new
    block, a non-matching line is appended to the open block. Structural
    lines (cue identifiers, WebVTT header and NOTE blocks, Markdown
    headings) are skipped.

    RULES:
    - Blocks keep file order; decreasing starts produce NON_MONOTONIC
    - end < start: token discarded, block kept untimed (start_ms None)
    - No valid token at all: NO_PARSABLE_TIMESTAMPS; if no block was
      produced, the whole text becomes one untimed block
    - Never raises on malformed content

    Args:
        text: Decoded file content.
        grammar: Force a grammar instead of auto-detecting.
        custom: Custom grammar, required when grammar is CUSTOM.
        source_index: Stored on every produced block.
        identifier: File identifier attached to warnings.

    Returns:
        ParseResult with grammar, tokens, blocks and warnings.
    """
    kind = grammar or detect_grammar(text, custom)
    tokens: List[TimestampToken] = []
    blocks: List[ContentBlock] = []
    warnings: List[MergeWarning] = []

    if kind is not None:
        _parse_lines(text, kind, matcher_for(kind, custom), source_index, identifier,
                     tokens, blocks, warnings)
        if kind is GrammarKind.WEBVTT:
            _apply_voice_tags(blocks)

    if not tokens:
        if not blocks:
            # Whole file becomes one untimed block; dropped-line noise is moot.
            warnings = [w for w in warnings if w.kind is not WarningKind.DROPPED_LINE]
            lines = [raw.strip() for _, raw in _iter_lines(text) if raw.strip()]
            if lines:
                blocks.append(ContentBlock(start_ms=None, lines=lines, source_index=source_index))
        warnings.append(MergeWarning(
            kind=WarningKind.NO_PARSABLE_TIMESTAMPS,
            detail="No recognizable timestamps; content kept as untimed text"
            if blocks else "File contains no text",
            source=identifier,
        ))

    return ParseResult(grammar=kind, tokens=tokens, blocks=blocks, warnings=warnings)


def _parse_lines(
    text: str,
    kind: GrammarKind,
    matcher: Callable[[str], Optional[_Hit]],
    source_index: Optional[int],
    identifier: Optional[str],
    tokens: List[TimestampToken],
    blocks: List[ContentBlock],
    warnings: List[MergeWarning],
) -> None:
    cue_grammar = kind in (GrammarKind.SRT, GrammarKind.WEBVTT)
    current: Optional[ContentBlock] = None
    last_start: Optional[int] = None
    # WebVTT header and NOTE/STYLE/REGION blocks run until the next blank line
    in_vtt_block = False
    after_blank = True

    for line, following in _scan(text, matcher):
        if not line.text:
            in_vtt_block = False
            after_blank = True
            continue
        starts_block = after_blank
        after_blank = False

        if kind is GrammarKind.WEBVTT and line.hit is None:
            if in_vtt_block:
                continue
            first_word = line.text.split(" ", 1)[0]
            if starts_block and (first_word == "WEBVTT" or first_word in _WEBVTT_BLOCK_KEYWORDS):
                in_vtt_block = True
                continue

        if cue_grammar and line.hit is None and following is not None and following.hit is not None:
            # Cue identifier
            continue

        if kind is GrammarKind.MARKDOWN and line.hit is None and line.text.startswith("#"):
            continue

        hit = line.hit
        if hit is None:
            if current is None:
                warnings.append(MergeWarning(
                    kind=WarningKind.DROPPED_LINE,
                    detail="Line {}: text before the first timestamp dropped: {!r}".format(
                        line.number, line.text[:60],
                    ),
                    source=identifier,
                ))
                continue
            current.lines.append(line.text)
            continue

        in_vtt_block = False
        lines = [hit.rest] if hit.rest else []
        if hit.end_ms is not None and hit.end_ms < hit.start_ms:
            warnings.append(MergeWarning(
                kind=WarningKind.INVALID_TOKEN,
                detail="Line {}: end {} precedes start {}; timestamp discarded".format(
                    line.number,
                    format_timestamp(hit.end_ms, GrammarKind.SRT),
                    format_timestamp(hit.start_ms, GrammarKind.SRT),
                ),
                source=identifier,
            ))
            current = ContentBlock(start_ms=None, lines=lines, source_index=source_index)
            blocks.append(current)
            continue

        tokens.append(_token_for(line, kind))
        if last_start is not None and hit.start_ms < last_start:
            warnings.append(MergeWarning(
                kind=WarningKind.NON_MONOTONIC,
                detail="Line {}: timestamp {} is earlier than the previous one".format(
                    line.number, format_timestamp(hit.start_ms, GrammarKind.SRT),
                ),
                source=identifier,
            ))
        last_start = hit.start_ms
        current = ContentBlock(
            start_ms=hit.start_ms,
            end_ms=hit.end_ms,
            lines=lines,
            source_index=source_index,
        )
        blocks.append(current)


def _apply_voice_tags(blocks: List[ContentBlock]) -> None:
    """Move a leading WebVTT ``<v Name>`` tag into ContentBlock.speaker."""
    for block in blocks:
        if not block.lines:
            continue
        match = _VOICE_TAG_RE.match(block.lines[0])
        if match is None:
            continue
        block.speaker = match.group("name").strip()
        block.lines[0] = _VOICE_CLOSE_RE.sub("", block.lines[0][match.end():])


# ---------------------------------------------------------------------------
# Writing
# ---------------------------------------------------------------------------


def format_timestamp(ms: int, kind: GrammarKind) -> str:
    """Write ``ms`` in the syntax of ``kind``.

    RULES:
    - SRT: HH:MM:SS,mmm
    - WebVTT: HH:MM:SS.mmm
    - Bracketed / Markdown: HH:MM:SS, plus .mmm only when non-zero
    - Hours are zero-padded to at least two digits

    Raises:
        ValueError: For negative values or the CUSTOM grammar.
    """
    if ms < 0:
        raise ValueError("Cannot format negative timestamp {} ms".format(ms))
    total_seconds, millis = divmod(ms, 1000)
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    clock = "{:02d}:{:02d}:{:02d}".format(hours, minutes, seconds)

    if kind is GrammarKind.SRT:
        return "{},{:03d}".format(clock, millis)
    if kind is GrammarKind.WEBVTT:
        return "{}.{:03d}".format(clock, millis)
    if kind in (GrammarKind.BRACKETED, GrammarKind.MARKDOWN):
        return "{}.{:03d}".format(clock, millis) if millis else clock
    raise ValueError("Timestamps cannot be written in the {} grammar".format(kind.value))


def parse_source(
    source: SourceFile,
    grammar: Optional[GrammarKind] = None,
    custom: Optional[CustomGrammar] = None,
) -> SourceFile:
    """Parse ``source.content`` and store grammar, tokens, blocks and warnings on it."""
    result = parse_text(
        source.content,
        grammar=grammar,
        custom=custom,
        source_index=source.sequence_index,
        identifier=source.identifier,
    )
    source.grammar = result.grammar
    source.tokens = result.tokens
    source.blocks = result.blocks
    source.warnings.extend(result.warnings)
    return source
