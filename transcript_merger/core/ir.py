"""Intermediate representation dataclasses for merged transcripts.

WHY: Partial transcripts arrive in several timestamp grammars (SRT, WebVTT,
bracketed, Markdown, custom). The sequence detector, duration resolver,
assembler and every output formatter need one well-typed form to pass
between them, so grammar details stay inside the parser and the writers.

HOW: The hierarchy, leaves first:
  TimestampToken -- one recognized timestamp expression in a file
  ContentBlock   -- one transcript unit (timing + text lines)
  SourceFile     -- one input file with its tokens, blocks and warnings
  MergeWarning   -- one non-fatal diagnostic
  MergedDocument -- the final ordered blocks plus the diagnostic trail

RULES:
- All times are integer milliseconds (no floats anywhere in the IR)
- ContentBlock.source_index is an index into MergedDocument.sources,
  never an object reference
- Block times are local to the file before assembly, absolute after
- A block's end_ms, when set, is never smaller than its start_ms
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import List, Optional, Tuple


class GrammarKind(str, enum.Enum):
    """Closed set of timestamp grammars the parser understands.

    Declaration order is the auto-detection order.
    """

    SRT = "srt"
    WEBVTT = "webvtt"
    BRACKETED = "bracketed"
    MARKDOWN = "markdown"
    CUSTOM = "custom"


class BlockKind(str, enum.Enum):
    """What a ContentBlock represents in the merged document.

    RULES:
    - content: transcript text parsed from a source file
    - part_marker: zero-duration pseudo-block announcing a new source file
    - speaker_label: zero-duration pseudo-block carrying a per-file speaker
    - filler: synthetic empty block spanning a detected gap
    """

    CONTENT = "content"
    PART_MARKER = "part_marker"
    SPEAKER_LABEL = "speaker_label"
    FILLER = "filler"


class Confidence(str, enum.Enum):
    """How sure the sequence detector is about the file order."""

    HIGH = "high"
    LOW = "low"


class WarningKind(str, enum.Enum):
    """Non-fatal diagnostics accumulated during a merge run."""

    ORDER_LOW_CONFIDENCE = "order_low_confidence"
    ORDER_MISMATCH = "order_mismatch"
    DROPPED_LINE = "dropped_line"
    INVALID_TOKEN = "invalid_token"
    NON_MONOTONIC = "non_monotonic"
    NO_PARSABLE_TIMESTAMPS = "no_parsable_timestamps"
    ZERO_DURATION = "zero_duration"
    ENCODING_FALLBACK = "encoding_fallback"
    UNREADABLE_FILE = "unreadable_file"
    ORDER_REPAIRED = "order_repaired"
    OVERLAP = "overlap"
    GAP = "gap"
    DUPLICATE_COLLAPSED = "duplicate_collapsed"
    GRAMMAR_MISMATCH_ON_OUTPUT = "grammar_mismatch_on_output"


@dataclass(frozen=True)
class TimestampToken:
    """A single timestamp expression recognized inside a file's text.

    RULES:
    - span: (start, end) character offsets of the match in the decoded text
    - start_ms / end_ms: parsed values; end_ms is None for start-only grammars
    - grammar: the grammar that produced the match
    """

    span: Tuple[int, int]
    start_ms: int
    end_ms: Optional[int]
    grammar: GrammarKind


@dataclass
class ContentBlock:
    """The atomic unit carried through merging.

    WHY: Every grammar reduces to "a point or range in time plus some text".
    Keeping that as one dataclass lets the assembler and formatters stay
    grammar-agnostic.

    RULES:
    - start_ms is None only for untimed text before assembly
    - timing_inferred is True when the assembler anchored an untimed block
    - lines keeps the original line structure (no joining)
    - source_index is None for synthetic filler blocks
    """

    start_ms: Optional[int]
    end_ms: Optional[int] = None
    lines: List[str] = field(default_factory=list)
    source_index: Optional[int] = None
    speaker: Optional[str] = None
    kind: BlockKind = BlockKind.CONTENT
    timing_inferred: bool = False

    @property
    def text(self) -> str:
        return "\n".join(self.lines)

    @property
    def is_pseudo(self) -> bool:
        """True for zero-duration marker blocks that carry no transcript."""
        return self.kind in (BlockKind.PART_MARKER, BlockKind.SPEAKER_LABEL)


@dataclass
class MergeWarning:
    """One non-fatal diagnostic.

    RULES:
    - block_indices refer to MergedDocument.blocks (empty for file-level issues)
    - source is the file identifier the warning belongs to, if any
    """

    kind: WarningKind
    detail: str
    block_indices: List[int] = field(default_factory=list)
    source: Optional[str] = None


@dataclass
class SourceFile:
    """One partial transcript taking part in a merge run.

    WHY: The merge run owns every SourceFile it creates. Parsing fills in
    grammar, tokens and blocks; sequencing and duration resolution fill in
    sequence_index and duration_ms afterwards.

    RULES:
    - identifier: original path or caller-supplied name
    - content: decoded text
    - encoding: codec name that decoded the content
    - sequence_index: zero-based position assigned by the sequence detector
    - duration_ms: resolved span of this file, None until resolved
    """

    identifier: str
    content: str
    encoding: str
    sequence_index: Optional[int] = None
    duration_ms: Optional[int] = None
    grammar: Optional[GrammarKind] = None
    tokens: List[TimestampToken] = field(default_factory=list)
    blocks: List[ContentBlock] = field(default_factory=list)
    warnings: List[MergeWarning] = field(default_factory=list)

    @property
    def name(self) -> str:
        """Basename of the identifier (works for both / and \\ separators)."""
        return self.identifier.replace("\\", "/").rsplit("/", 1)[-1]


@dataclass
class MergedDocument:
    """The product of one merge run.

    RULES:
    - blocks: absolute timestamps, non-decreasing start_ms after repair
    - warnings: every diagnostic from parsing, sequencing and assembly
    - sources: SourceFiles in sequence order (source_index points here)
    - offsets_ms: absolute offset applied to each source, same order
    - confidence / sequence_rule: how the order was determined
    """

    blocks: List[ContentBlock]
    warnings: List[MergeWarning] = field(default_factory=list)
    sources: List[SourceFile] = field(default_factory=list)
    offsets_ms: List[int] = field(default_factory=list)
    confidence: Confidence = Confidence.HIGH
    sequence_rule: str = ""

    @property
    def content_blocks(self) -> List[ContentBlock]:
        return [b for b in self.blocks if b.kind is BlockKind.CONTENT]

    def warnings_of(self, kind: WarningKind) -> List[MergeWarning]:
        return [w for w in self.warnings if w.kind is kind]
