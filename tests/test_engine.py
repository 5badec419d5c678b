"""End-to-end tests for detect_and_merge().

WHY: The engine ties reading, parsing, ordering, offsets and repair
together. These tests pin down the observable result of whole merge runs:
block timing, applied offsets and the diagnostics a caller sees.

HOW: Inputs are written to tmp_path or passed as (name, bytes) pairs and
merged with various MergeOptions. Assertions look at the MergedDocument.

RULES:
- Block comparisons use (start_ms, end_ms, text) tuples
- Files are passed in scrambled order wherever ordering matters
"""

import codecs
import threading

import pytest

from transcript_merger import MergeOptions, detect_and_merge
from transcript_merger.core.errors import MergeCancelled, SequenceAmbiguous, UnreadableFile
from transcript_merger.core.ir import BlockKind, Confidence, GrammarKind, WarningKind

from conftest import srt


def _timeline(doc):
    return [(b.start_ms, b.end_ms, b.text) for b in doc.blocks]


def _kinds(doc):
    return [w.kind for w in doc.warnings]


def _named(name, text, encoding="utf-8"):
    return (name, text.encode(encoding))


class TestBasicMerge:
    """Two files in scrambled order become one timeline."""

    def test_hello_world(self, hello_world_files):
        doc = detect_and_merge(hello_world_files)

        assert _timeline(doc) == [(0, 4000, "Hello"), (4000, 7000, "World")]
        assert doc.offsets_ms == [0, 4000]
        assert doc.sequence_rule == "numeric_suffix"
        assert doc.confidence is Confidence.HIGH
        assert doc.warnings == []
        assert [s.name for s in doc.sources] == ["a_1.srt", "a_2.srt"]
        assert [b.source_index for b in doc.blocks] == [0, 1]

    def test_sources_carry_grammar_and_duration(self, hello_world_files):
        doc = detect_and_merge(hello_world_files)
        assert [s.grammar for s in doc.sources] == [GrammarKind.SRT, GrammarKind.SRT]
        assert [s.duration_ms for s in doc.sources] == [4000, 3000]
        assert [s.sequence_index for s in doc.sources] == [0, 1]

    def test_single_worker_same_result(self, hello_world_files):
        parallel = detect_and_merge(hello_world_files)
        serial = detect_and_merge(hello_world_files, MergeOptions(max_workers=1))
        assert _timeline(serial) == _timeline(parallel)
        assert serial.offsets_ms == parallel.offsets_ms

    def test_mixed_grammars(self):
        doc = detect_and_merge([
            _named("part2.txt", "[00:00:02] second\n"),
            _named("part1.vtt", "WEBVTT\n\n00:00:00.000 --> 00:00:05.000\n<v Ann>first\n"),
        ])
        assert _timeline(doc) == [(0, 5000, "first"), (7000, None, "second")]
        assert doc.blocks[0].speaker == "Ann"
        assert doc.sequence_rule == "part_keyword"

    def test_empty_input(self):
        doc = detect_and_merge([])
        assert doc.blocks == []
        assert doc.warnings == []


class TestInputs:
    """Paths, raw bytes and (name, bytes) pairs."""

    def test_raw_bytes(self):
        doc = detect_and_merge([
            srt(("00:00:00,000", "00:00:01,000", "one")).encode("utf-8"),
            srt(("00:00:00,000", "00:00:02,000", "two")).encode("utf-8"),
        ])
        assert [s.identifier for s in doc.sources] == ["input_1", "input_2"]
        assert _timeline(doc) == [(0, 1000, "one"), (1000, 3000, "two")]

    def test_utf16(self):
        doc = detect_and_merge([_named("a_1.txt", "[00:00:01] Hallå", "utf-16")])
        assert doc.sources[0].encoding == "utf-16"
        assert doc.blocks[0].text == "Hallå"

    def test_utf8_bom(self):
        doc = detect_and_merge([("a_1.srt", codecs.BOM_UTF8 + srt(("00:00:00,000", "00:00:01,000", "x")).encode("utf-8"))])
        assert doc.sources[0].encoding == "utf-8-sig"
        assert _timeline(doc) == [(0, 1000, "x")]

    def test_cp1251_fallback(self):
        doc = detect_and_merge([_named("a_1.txt", "[00:00:01] Привет", "cp1251")])
        assert doc.blocks[0].text == "Привет"
        assert _kinds(doc) == [WarningKind.ENCODING_FALLBACK]
        assert doc.warnings[0].source == "a_1.txt"


class TestOrdering:
    """Sequence detection outcomes surfaced by the engine."""

    def test_low_confidence_warning(self):
        doc = detect_and_merge([_named("y.txt", "[00:00:00] y"), _named("x.txt", "[00:00:00] x")])
        assert [b.text for b in doc.blocks] == ["x", "y"]
        assert doc.confidence is Confidence.LOW
        assert _kinds(doc) == [WarningKind.ORDER_LOW_CONFIDENCE]
        assert "x.txt, y.txt" in doc.warnings[0].detail

    def test_ambiguous_order_aborts(self):
        with pytest.raises(SequenceAmbiguous):
            detect_and_merge([_named("a_1.srt", ""), _named("b_1.srt", "")])

    def test_custom_sequence_pattern(self):
        options = MergeOptions(custom_sequence_pattern=r"take-(\w)")
        doc = detect_and_merge([_named("take-b.txt", "[00:00:00] b"), _named("take-a.txt", "[00:00:03] a")], options)
        assert doc.sequence_rule == "custom"
        assert _timeline(doc) == [(3000, None, "a"), (3000, None, "b")]


class TestOffsets:
    """Durations, hints and manual overrides."""

    def _files(self):
        return [
            _named("a_2.srt", srt(("00:00:00,000", "00:00:03,000", "World"))),
            _named("a_1.srt", srt(("00:00:00,000", "00:00:04,000", "Hello"))),
        ]

    def test_start_offset(self):
        doc = detect_and_merge(self._files(), MergeOptions(start_offset_ms=1000))
        assert doc.offsets_ms == [1000, 5000]
        assert _timeline(doc)[1] == (5000, 8000, "World")

    def test_manual_offset_by_basename(self):
        doc = detect_and_merge(self._files(), MergeOptions(manual_offsets={"a_2.srt": 10000}))
        assert doc.offsets_ms == [0, 10000]

    def test_duration_hint(self):
        doc = detect_and_merge(self._files(), MergeOptions(duration_hints={"a_1.srt": 60000}))
        assert doc.offsets_ms == [0, 60000]
        assert doc.sources[0].duration_ms == 60000

    def test_duration_hint_by_stem(self):
        doc = detect_and_merge(self._files(), MergeOptions(duration_hints={"a_1": 30000}))
        assert doc.offsets_ms == [0, 30000]

    def test_empty_file_has_zero_duration(self):
        doc = detect_and_merge([_named("a_1.srt", ""), _named("a_2.srt", srt(("00:00:01,000", "00:00:02,000", "x")))])
        assert doc.offsets_ms == [0, 0]
        assert _kinds(doc) == [WarningKind.NO_PARSABLE_TIMESTAMPS, WarningKind.ZERO_DURATION]
        assert doc.warnings[1].source == "a_1.srt"


class TestRepairThroughEngine:
    """Assembly options reach the repair pass."""

    def _gap_files(self):
        return [
            _named("a_1.srt", srt(("00:00:00,000", "00:00:01,000", "a"))),
            _named("a_2.srt", srt(("00:00:00,000", "00:00:01,000", "b"))),
        ]

    def test_gap_reported(self):
        options = MergeOptions(gap_threshold_ms=2000, duration_hints={"a_1.srt": 5000})
        doc = detect_and_merge(self._gap_files(), options)
        assert _kinds(doc) == [WarningKind.GAP]
        assert doc.warnings[0].block_indices == [0, 1]

    def test_gap_filled(self):
        options = MergeOptions(gap_threshold_ms=2000, fill_gaps=True, duration_hints={"a_1.srt": 5000})
        doc = detect_and_merge(self._gap_files(), options)
        assert [b.kind for b in doc.blocks] == [BlockKind.CONTENT, BlockKind.FILLER, BlockKind.CONTENT]
        assert (doc.blocks[1].start_ms, doc.blocks[1].end_ms) == (1000, 5000)

    def test_invalid_token_kept_as_text(self):
        text = srt(
            ("00:00:00,000", "00:00:02,000", "ok"),
            ("00:00:05,000", "00:00:03,000", "bad"),
        )
        doc = detect_and_merge([_named("a_1.srt", text)])
        assert _kinds(doc) == [WarningKind.INVALID_TOKEN]
        bad = [b for b in doc.blocks if b.text == "bad"][0]
        assert bad.start_ms == 2000
        assert bad.timing_inferred is True

    def test_part_markers_and_speakers(self, hello_world_files):
        options = MergeOptions(insert_part_markers=True, speaker_labels={"a_2.srt": "Bob"})
        doc = detect_and_merge(hello_world_files, options)
        assert [(b.kind, b.text) for b in doc.blocks] == [
            (BlockKind.PART_MARKER, "Part 1: a_1.srt"),
            (BlockKind.CONTENT, "Hello"),
            (BlockKind.PART_MARKER, "Part 2: a_2.srt"),
            (BlockKind.SPEAKER_LABEL, "Bob"),
            (BlockKind.CONTENT, "World"),
        ]
        assert doc.blocks[-1].speaker == "Bob"
        assert doc.warnings == []

    def test_forced_grammar(self):
        doc = detect_and_merge([_named("a_1.txt", "[00:00:01] x")], MergeOptions(grammar=GrammarKind.MARKDOWN))
        assert doc.blocks[0].start_ms == 0
        assert doc.blocks[0].timing_inferred is True
        assert WarningKind.NO_PARSABLE_TIMESTAMPS in _kinds(doc)

    def test_custom_timestamp_pattern(self):
        options = MergeOptions(custom_timestamp_pattern=r"<(\d+):(\d{2})>")
        doc = detect_and_merge([_named("a_1.txt", "<01:30> hi\n<02:00> there")], options)
        assert doc.sources[0].grammar is GrammarKind.CUSTOM
        assert _timeline(doc) == [(90000, None, "hi"), (120000, None, "there")]


class TestFailures:
    """Unreadable files and cancellation."""

    def test_missing_file_aborts(self, tmp_path, write_files):
        (present,) = write_files({"a_2.srt": srt(("00:00:00,000", "00:00:01,000", "x"))})
        with pytest.raises(UnreadableFile) as exc_info:
            detect_and_merge([tmp_path / "a_1.srt", present])
        assert exc_info.value.identifier == str(tmp_path / "a_1.srt")

    def test_skip_unreadable(self, tmp_path, write_files):
        (present,) = write_files({"a_2.srt": srt(("00:00:00,000", "00:00:01,000", "x"))})
        doc = detect_and_merge([tmp_path / "a_1.srt", present], MergeOptions(skip_unreadable=True))
        assert _timeline(doc) == [(0, 1000, "x")]
        assert _kinds(doc) == [WarningKind.UNREADABLE_FILE]
        assert doc.warnings[0].source == str(tmp_path / "a_1.srt")

    def test_cancelled_before_start(self, hello_world_files):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(MergeCancelled):
            detect_and_merge(hello_world_files, cancel_event=cancel)


class TestMergeOptionsValidation:
    """Bad configuration fails before any file is read."""

    @pytest.mark.parametrize("kwargs", [
        {"gap_threshold_ms": -1},
        {"start_offset_ms": 1.5},
        {"manual_offsets": {"a.srt": -5}},
        {"duration_hints": {"a.srt": True}},
        {"max_workers": 0},
        {"custom_sequence_pattern": "no-group"},
        {"custom_timestamp_pattern": "("},
        {"grammar": GrammarKind.CUSTOM},
        {"grammar": "nonsense"},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            MergeOptions(**kwargs)

    def test_grammar_string_coerced(self):
        assert MergeOptions(grammar="srt").grammar is GrammarKind.SRT


class TestSegmentIndices:
    """Manifest indices are checked against the detected order."""

    def test_agreeing_indices_are_silent(self, hello_world_files):
        options = MergeOptions(segment_indices={"a_1": 0, "a_2": 1})
        assert detect_and_merge(hello_world_files, options).warnings == []

    def test_disagreement_is_warned_and_order_kept(self, hello_world_files):
        options = MergeOptions(segment_indices={"a_1": 1, "a_2": 0})
        doc = detect_and_merge(hello_world_files, options)

        assert [b.text for b in doc.blocks] == ["Hello", "World"]
        assert _kinds(doc) == [WarningKind.ORDER_MISMATCH, WarningKind.ORDER_MISMATCH]
        assert doc.warnings[0].source.endswith("a_1.srt")
        assert "at index 1" in doc.warnings[0].detail

    @pytest.mark.parametrize("value", [-1, True, "0"])
    def test_invalid_index(self, value):
        with pytest.raises(ValueError):
            MergeOptions(segment_indices={"a_1": value})
