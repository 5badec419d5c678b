"""Merge run orchestration: the detect_and_merge() entry point.

WHY: Callers want one call that turns a pile of partial transcripts into
one continuous document. The steps have a fixed order (read, parse, order,
measure, offset, assemble) and only the first two are per-file work that
benefits from running in parallel.

HOW:
  1. Read, decode and parse every input on a ThreadPoolExecutor. Results
     land in a dict keyed by input index, so completion order is irrelevant.
  2. Detect the sequence from the identifiers of the readable files.
  3. Resolve durations, accumulate offsets (manual overrides as point fixes).
  4. Assemble and repair via build_document().
A threading.Event cancels cooperatively: workers check it before starting,
and the run checks it again before assembly.

RULES:
- Output never depends on thread scheduling or input order
- An unreadable file aborts the run unless skip_unreadable is set
- Cancellation raises MergeCancelled; no partial document is returned
- Warning order: unreadable files, sequence, then per file (decode, parse,
  segment index, duration) in sequence order, then assembly
"""

from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from typing import Dict, List, Optional, Sequence

from transcript_merger.core.assembler import build_document
from transcript_merger.core.durations import resolve_duration
from transcript_merger.core.errors import MergeCancelled, UnreadableFile
from transcript_merger.core.grammar import parse_source
from transcript_merger.core.ingest import SourceInput, load_source
from transcript_merger.core.ir import Confidence, MergedDocument, MergeWarning, SourceFile, WarningKind
from transcript_merger.core.offsets import accumulate_offsets
from transcript_merger.core.options import MergeOptions, per_file
from transcript_merger.core.sequence import basename, detect_sequence

logger = logging.getLogger(__name__)


def _check_cancelled(cancel_event: Optional[threading.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise MergeCancelled("Merge cancelled")


def _prepare_source(
    item: SourceInput,
    index: int,
    options: MergeOptions,
    cancel_event: Optional[threading.Event],
) -> SourceFile:
    """Worker task: read, decode and parse one input."""
    _check_cancelled(cancel_event)
    source = load_source(item, index)
    return parse_source(source, grammar=options.grammar, custom=options.custom_grammar)


def _load_all(
    files: Sequence[SourceInput],
    options: MergeOptions,
    cancel_event: Optional[threading.Event],
) -> Dict[int, object]:
    """Run _prepare_source for every input; values are SourceFile or UnreadableFile."""
    workers = options.max_workers or os.cpu_count() or 1
    results: Dict[int, object] = {}

    with ThreadPoolExecutor(max_workers=min(workers, max(len(files), 1))) as executor:
        futures: Dict[Future, int] = {
            executor.submit(_prepare_source, item, index, options, cancel_event): index
            for index, item in enumerate(files)
        }
        try:
            for future in as_completed(futures):
                index = futures[future]
                try:
                    results[index] = future.result()
                except UnreadableFile as exc:
                    if not options.skip_unreadable:
                        raise
                    exc.position = index
                    results[index] = exc
        except BaseException:
            for future in futures:
                future.cancel()
            raise

    return results


def _segment_value(mapping: Dict[str, int], identifier: str) -> Optional[int]:
    """per_file() lookup that also tries the basename without extension."""
    value = per_file(mapping, identifier)
    if value is None:
        name = basename(identifier)
        if "." in name:
            value = mapping.get(name.rsplit(".", 1)[0])
    return value


def detect_and_merge(
    files: Sequence[SourceInput],
    options: Optional[MergeOptions] = None,
    cancel_event: Optional[threading.Event] = None,
) -> MergedDocument:
    """Merge partial transcripts into one continuous document.

    WHY: The single boundary operation of the engine. Everything a caller
    needs (the ordered blocks, the applied offsets, and every diagnostic)
    comes back in one MergedDocument.

    HOW: See the module docstring for the pipeline.

    RULES:
    - ``files`` items: path (str or Path), raw bytes (named input_1, ...),
      or (name, bytes) pairs
    - Per-file option maps are keyed by identifier or basename; duration
      hints and segment indices also match the basename without extension
    - A segment index that disagrees with the detected order adds an
      ORDER_MISMATCH warning; the detected order is kept

    Args:
        files: Inputs in any discovery order.
        options: Merge configuration; defaults when omitted.
        cancel_event: Set from another thread to stop the run.

    Returns:
        The merged, repaired document.

    Raises:
        SequenceAmbiguous: Two files resolve to the same order key.
        UnreadableFile: A file cannot be read (unless skip_unreadable).
        MergeCancelled: cancel_event was set before the run finished.
    """
    options = options or MergeOptions()
    files = list(files)
    logger.info("Merging %d file(s)", len(files))

    results = _load_all(files, options, cancel_event)
    _check_cancelled(cancel_event)

    warnings: List[MergeWarning] = []
    readable: List[SourceFile] = []
    for index in range(len(files)):
        outcome = results[index]
        if isinstance(outcome, UnreadableFile):
            logger.warning("Skipping unreadable file %s: %s", outcome.identifier, outcome.reason)
            warnings.append(MergeWarning(
                kind=WarningKind.UNREADABLE_FILE,
                detail=str(outcome),
                source=outcome.identifier,
            ))
        else:
            readable.append(outcome)  # type: ignore[arg-type]

    sequence = detect_sequence(
        [source.identifier for source in readable],
        custom_pattern=options.custom_sequence_pattern,
    )
    logger.info("File order detected by rule %s (%s confidence)", sequence.rule, sequence.confidence.value)
    if sequence.confidence is Confidence.LOW:
        warnings.append(MergeWarning(
            kind=WarningKind.ORDER_LOW_CONFIDENCE,
            detail="No numbering rule matched every filename; files ordered by natural sort: {}".format(
                ", ".join(readable[i].name for i in sequence.order),
            ),
        ))

    ordered = [readable[i] for i in sequence.order]
    durations: List[int] = []
    overrides: Dict[int, int] = {}
    for position, source in enumerate(ordered):
        source.sequence_index = position
        for block in source.blocks:
            block.source_index = position
        warnings.extend(source.warnings)

        expected = _segment_value(options.segment_indices, source.identifier)
        if expected is not None and expected != position:
            logger.warning("%s: segment index %d, detected position %d", source.identifier, expected, position)
            warnings.append(MergeWarning(
                kind=WarningKind.ORDER_MISMATCH,
                detail="Segment manifest puts {} at index {}, detected order puts it at {}".format(
                    source.name, expected, position,
                ),
                source=source.identifier,
            ))

        hint = _segment_value(options.duration_hints, source.identifier)
        duration, duration_warning = resolve_duration(source, hint)
        source.duration_ms = duration
        durations.append(duration)
        if duration_warning is not None:
            warnings.append(duration_warning)

        override = per_file(options.manual_offsets, source.identifier)
        if override is not None:
            overrides[position] = override

    offsets = accumulate_offsets(durations, overrides, start_ms=options.start_offset_ms)
    for source, offset in zip(ordered, offsets):
        logger.debug("%s: duration %d ms, offset %d ms", source.identifier, source.duration_ms, offset)

    _check_cancelled(cancel_event)
    return build_document(
        ordered,
        offsets,
        options,
        warnings=warnings,
        confidence=sequence.confidence,
        sequence_rule=sequence.rule,
    )

