"""Merge run configuration.

WHY: The CLI and any embedding application configure a merge through the
same set of fields. Validating them once, up front, keeps the parser and
assembler free of repeated checks.

HOW: MergeOptions is a dataclass whose __post_init__ validates ranges and
compiles user-supplied patterns eagerly so a bad regex fails before any
file is read. Per-file maps are keyed by full identifier or by basename;
per_file() resolves either.

RULES:
- Millisecond values are non-negative integers
- Invalid values raise ValueError
- gap_threshold_ms == 0 disables gap detection
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, TypeVar

from transcript_merger.config import DEFAULT_GAP_THRESHOLD_MS, DEFAULT_MAX_WORKERS
from transcript_merger.core.grammar import CustomGrammar, compile_custom_grammar
from transcript_merger.core.ir import GrammarKind
from transcript_merger.core.sequence import basename, custom_rule

T = TypeVar("T")


def per_file(mapping: Mapping[str, T], identifier: str) -> Optional[T]:
    """Look up ``identifier`` by full identifier first, then by basename."""
    if identifier in mapping:
        return mapping[identifier]
    return mapping.get(basename(identifier))


def _check_ms(name: str, value: object) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError("{} must be an integer number of milliseconds, got {!r}".format(name, value))
    if value < 0:
        raise ValueError("{} must not be negative, got {}".format(name, value))


@dataclass
class MergeOptions:
    """Configuration recognized by detect_and_merge().

    RULES:
    - custom_sequence_pattern: regex with one capturing group (order key)
    - manual_offsets: file -> absolute offset in ms (point fix)
    - gap_threshold_ms: gaps above this are reported; 0 disables
    - fill_gaps: insert an empty filler block spanning each reported gap
    - dedupe_identical_timestamps: collapse adjacent identical-timing blocks
    - insert_part_markers: zero-duration "Part N" pseudo-block per file
    - speaker_labels: file -> speaker label (pseudo-block + block.speaker)
    - duration_hints: file -> duration in ms from the media segmenter
    - segment_indices: file -> zero-based position reported by the segmenter;
      disagreement with the detected order is warned, never reordered
    - custom_timestamp_pattern: regex for the custom grammar
    - grammar: force one grammar for every file instead of auto-detection
    - start_offset_ms: offset of the first file
    - skip_unreadable: drop unreadable files with a warning instead of failing
    - max_workers: parse pool size (None = os.cpu_count())
    """

    custom_sequence_pattern: Optional[str] = None
    manual_offsets: Dict[str, int] = field(default_factory=dict)
    gap_threshold_ms: int = DEFAULT_GAP_THRESHOLD_MS
    fill_gaps: bool = False
    dedupe_identical_timestamps: bool = False
    insert_part_markers: bool = False
    speaker_labels: Dict[str, str] = field(default_factory=dict)
    duration_hints: Dict[str, int] = field(default_factory=dict)
    segment_indices: Dict[str, int] = field(default_factory=dict)
    custom_timestamp_pattern: Optional[str] = None
    grammar: Optional[GrammarKind] = None
    start_offset_ms: int = 0
    skip_unreadable: bool = False
    max_workers: Optional[int] = DEFAULT_MAX_WORKERS

    def __post_init__(self) -> None:
        _check_ms("gap_threshold_ms", self.gap_threshold_ms)
        _check_ms("start_offset_ms", self.start_offset_ms)
        for name, value in self.manual_offsets.items():
            _check_ms("manual offset for {}".format(name), value)
        for name, value in self.duration_hints.items():
            _check_ms("duration hint for {}".format(name), value)
        for name, value in self.segment_indices.items():
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValueError("segment index for {} must be a non-negative integer, got {!r}".format(name, value))
        if self.max_workers is not None and self.max_workers < 1:
            raise ValueError("max_workers must be at least 1, got {}".format(self.max_workers))
        if self.grammar is not None:
            self.grammar = GrammarKind(self.grammar)
        if self.grammar is GrammarKind.CUSTOM and not self.custom_timestamp_pattern:
            raise ValueError("grammar 'custom' requires custom_timestamp_pattern")
        if self.custom_sequence_pattern:
            custom_rule(self.custom_sequence_pattern)
        self._custom_grammar = (
            compile_custom_grammar(self.custom_timestamp_pattern)
            if self.custom_timestamp_pattern else None
        )

    @property
    def custom_grammar(self) -> Optional[CustomGrammar]:
        return self._custom_grammar
