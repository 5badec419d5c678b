"""Block assembly onto the global timeline, repair pass, and MergedDocument construction.

WHY: Each SourceFile holds blocks on its own local clock. Downstream
formatters need one list of blocks on a single absolute timeline, in a
guaranteed order, with every timing anomaly reported but no information
destroyed.

HOW: assemble_blocks() shifts every block by its file's offset and emits
them in file-then-local order, prefixed by optional part-marker and
speaker pseudo-blocks. repair() then restores ascending start order with a
stable sort, optionally collapses duplicate timings, and walks adjacent
content blocks once to report overlaps and gaps (inserting fillers on
request). build_document() wires both together into a MergedDocument.

RULES:
- absolute = local + file offset, for start and end alike
- Untimed blocks are anchored where the previous block in the same file
  ends (or the file offset) and flagged timing_inferred; inferred timings
  never produce overlap or gap warnings
- Pseudo-blocks are zero-duration and sit right before their file's
  earliest block
- Overlaps are reported, never trimmed
- Repair never mutates its input; running it on its own output yields the
  same blocks and the same overlap and gap warnings
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Dict, List, Optional, Sequence, Tuple

from transcript_merger.core.grammar import format_timestamp
from transcript_merger.core.ir import (
    BlockKind,
    Confidence,
    ContentBlock,
    GrammarKind,
    MergedDocument,
    MergeWarning,
    SourceFile,
    WarningKind,
)
from transcript_merger.core.options import MergeOptions, per_file

logger = logging.getLogger(__name__)

# (kind, detail, blocks involved); indices are resolved once the final list exists
_PendingWarning = Tuple[WarningKind, str, List[ContentBlock]]


def _ts(ms: int) -> str:
    return format_timestamp(ms, GrammarKind.SRT)


def _end_or_start(block: ContentBlock) -> int:
    assert block.start_ms is not None
    return block.end_ms if block.end_ms is not None else block.start_ms


def part_marker_text(position: int, source: SourceFile) -> str:
    return "Part {}: {}".format(position + 1, source.name)


def assemble_blocks(
    sources: Sequence[SourceFile],
    offsets_ms: Sequence[int],
    options: Optional[MergeOptions] = None,
) -> List[ContentBlock]:
    """Place every file's blocks on the absolute timeline.

    WHY: Offsets are only meaningful once applied; after this step every
    block can be compared with every other block.

    HOW: For each file in sequence order, shift its blocks by the file
    offset. Untimed blocks take the previous block's end (its start when it
    has none). When enabled,
    a part marker and/or speaker label pseudo-block is emitted before the
    file's blocks, timed at the file's earliest absolute start.

    RULES:
    - Output order is file order, then appearance order within the file
    - source_index is the file's sequence position
    - Per-file speaker labels fill ContentBlock.speaker when it is unset
    - Files without blocks emit no pseudo-blocks

    Args:
        sources: SourceFiles in sequence order.
        offsets_ms: Absolute offset per source, same order.
        options: Merge options (markers, speaker labels).

    Returns:
        New ContentBlocks with absolute times, not yet repaired.
    """
    options = options or MergeOptions()
    blocks: List[ContentBlock] = []

    for position, (source, offset) in enumerate(zip(sources, offsets_ms)):
        label = per_file(options.speaker_labels, source.identifier)
        anchor = offset
        file_blocks: List[ContentBlock] = []

        for block in source.blocks:
            if block.start_ms is None:
                start, end, inferred = anchor, None, True
            else:
                start = block.start_ms + offset
                end = block.end_ms + offset if block.end_ms is not None else None
                inferred = False
            anchor = end if end is not None else start
            file_blocks.append(ContentBlock(
                start_ms=start,
                end_ms=end,
                lines=list(block.lines),
                source_index=position,
                speaker=block.speaker or label,
                kind=BlockKind.CONTENT,
                timing_inferred=inferred,
            ))

        if not file_blocks:
            logger.debug("Source %s contributed no blocks", source.identifier)
            continue

        earliest = min(b.start_ms for b in file_blocks if b.start_ms is not None)
        if options.insert_part_markers:
            blocks.append(ContentBlock(
                start_ms=earliest,
                end_ms=earliest,
                lines=[part_marker_text(position, source)],
                source_index=position,
                kind=BlockKind.PART_MARKER,
            ))
        if label:
            blocks.append(ContentBlock(
                start_ms=earliest,
                end_ms=earliest,
                lines=[label],
                source_index=position,
                speaker=label,
                kind=BlockKind.SPEAKER_LABEL,
            ))
        blocks.extend(file_blocks)

    return blocks


def _collapse_duplicates(
    blocks: List[ContentBlock],
    pending: List[_PendingWarning],
) -> List[ContentBlock]:
    """Merge adjacent content blocks that share an identical (start, end)."""
    result: List[ContentBlock] = []
    kept: Optional[ContentBlock] = None
    for block in blocks:
        if block.kind is not BlockKind.CONTENT:
            result.append(block)
            if not block.is_pseudo:
                kept = None
            continue
        if kept is not None and (kept.start_ms, kept.end_ms) == (block.start_ms, block.end_ms):
            for line in block.lines:
                if line not in kept.lines:
                    kept.lines.append(line)
            pending.append((
                WarningKind.DUPLICATE_COLLAPSED,
                "Block at {} duplicated the previous block's timing and was merged into it".format(
                    _ts(block.start_ms or 0),
                ),
                [kept],
            ))
            continue
        result.append(block)
        kept = block
    return result


def repair(
    blocks: Sequence[ContentBlock],
    gap_threshold_ms: int = 0,
    fill_gaps: bool = False,
    dedupe: bool = False,
) -> Tuple[List[ContentBlock], List[MergeWarning]]:
    """Restore ascending order and report overlaps, gaps and duplicates.

    WHY: Chunked transcription routinely produces overlapping or
    out-of-order cues at file boundaries. The document must end up in
    ascending order, but the caller decides whether to trim overlaps, so
    timings are never altered.

    HOW:
      1. Copy the blocks and stable-sort them by absolute start.
      2. Optionally collapse adjacent identical-timing content blocks.
      3. Walk content and filler blocks in order (pseudo-blocks and blocks
         with inferred timing skipped) comparing each start with the
         previous block's end.

    RULES:
    - start(i+1) >= start(i) holds for the returned list
    - Overlap: start < previous end (or previous start when end is absent)
    - Gap: start - previous end > gap_threshold_ms, only when threshold > 0
    - fill_gaps inserts one FILLER block spanning each unfilled gap
    - An existing filler inside a gap is reported again, never duplicated

    Returns:
        Tuple of (repaired blocks, warnings with indices into those blocks).
    """
    pending: List[_PendingWarning] = []
    copies = [replace(b, lines=list(b.lines)) for b in blocks]

    ordered = sorted(copies, key=lambda b: b.start_ms if b.start_ms is not None else 0)
    moved = sum(1 for a, b in zip(ordered, copies) if a is not b)
    if moved:
        pending.append((
            WarningKind.ORDER_REPAIRED,
            "{} block(s) were out of order and have been re-sorted by start time".format(moved),
            [],
        ))

    if dedupe:
        ordered = _collapse_duplicates(ordered, pending)

    result: List[ContentBlock] = []
    previous: Optional[ContentBlock] = None
    previous_pos = -1
    filler: Optional[ContentBlock] = None

    for block in ordered:
        if block.is_pseudo or block.timing_inferred:
            result.append(block)
            continue
        if block.kind is BlockKind.FILLER:
            result.append(block)
            filler = block
            continue

        if previous is not None:
            assert block.start_ms is not None
            previous_end = _end_or_start(previous)
            if block.start_ms < previous_end:
                pending.append((
                    WarningKind.OVERLAP,
                    "Block starting {} overlaps previous block ending {}".format(
                        _ts(block.start_ms), _ts(previous_end),
                    ),
                    [previous, block],
                ))
            elif gap_threshold_ms > 0 and block.start_ms - previous_end > gap_threshold_ms:
                if filler is None and fill_gaps:
                    filler = ContentBlock(
                        start_ms=previous_end,
                        end_ms=block.start_ms,
                        kind=BlockKind.FILLER,
                    )
                    result.insert(previous_pos + 1, filler)
                involved = [previous] + ([filler] if filler is not None else []) + [block]
                pending.append((
                    WarningKind.GAP,
                    "Gap of {} ms between {} and {}".format(
                        block.start_ms - previous_end, _ts(previous_end), _ts(block.start_ms),
                    ),
                    involved,
                ))

        result.append(block)
        previous = block
        previous_pos = len(result) - 1
        filler = None

    positions: Dict[int, int] = {id(b): i for i, b in enumerate(result)}
    warnings = [
        MergeWarning(kind=kind, detail=detail, block_indices=[positions[id(b)] for b in involved])
        for kind, detail, involved in pending
    ]
    return result, warnings


def build_document(
    sources: Sequence[SourceFile],
    offsets_ms: Sequence[int],
    options: Optional[MergeOptions] = None,
    warnings: Optional[List[MergeWarning]] = None,
    confidence: Confidence = Confidence.HIGH,
    sequence_rule: str = "",
) -> MergedDocument:
    """Build the final MergedDocument from ordered, parsed sources.

    Args:
        sources: SourceFiles in sequence order, durations resolved.
        offsets_ms: Absolute offset per source.
        options: Merge options.
        warnings: Diagnostics collected before assembly (kept first).
        confidence: Sequence detection confidence.
        sequence_rule: Name of the ordering rule that was applied.

    Returns:
        The repaired MergedDocument.
    """
    options = options or MergeOptions()
    blocks = assemble_blocks(sources, offsets_ms, options)
    repaired, repair_warnings = repair(
        blocks,
        gap_threshold_ms=options.gap_threshold_ms,
        fill_gaps=options.fill_gaps,
        dedupe=options.dedupe_identical_timestamps,
    )
    logger.info(
        "Assembled %d blocks from %d sources (%d repair warnings)",
        len(repaired), len(sources), len(repair_warnings),
    )
    return MergedDocument(
        blocks=repaired,
        warnings=list(warnings or []) + repair_warnings,
        sources=list(sources),
        offsets_ms=list(offsets_ms),
        confidence=confidence,
        sequence_rule=sequence_rule,
    )
