"""Command-line interface for the transcript merger.

WHY: Users need a simple way to merge the partial transcripts of a split
recording from the terminal. The CLI wires together the full pipeline
(input validation, detect_and_merge(), format_document() and file saving)
behind a single command.

HOW: Uses argparse to accept input files or directories, ordering and
timing options, and the output format. Status messages and merge warnings
go to stderr; the merged file is saved next to the first input (or to
--output-dir), or printed to stdout with --stdout.

RULES:
- Positional arguments: transcript files and/or directories (directories
  contribute their files with a supported extension)
- Validates file extensions against SUPPORTED_EXTENSIONS before reading
- Repeatable NAME=VALUE options: --offset, --duration, --speaker
- Output naming: {name}{suffix}, numeric suffix for conflicts (merged-2.srt)
- Status output goes to stderr (not stdout)
- Exit codes: 0 success, 1 error, 130 interrupted
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional, TypeVar

from transcript_merger.config import (
    DEFAULT_GAP_THRESHOLD_MS,
    DEFAULT_OUTPUT_FORMAT,
    DEFAULT_OUTPUT_NAME,
    LOG_LEVEL,
    SUPPORTED_EXTENSIONS,
)
from transcript_merger.core.engine import detect_and_merge
from transcript_merger.core.errors import MergeError
from transcript_merger.core.hints import duration_hints, load_segment_manifest, segment_indices
from transcript_merger.core.ir import GrammarKind, MergedDocument
from transcript_merger.core.options import MergeOptions
from transcript_merger.formatters import FORMATTERS, format_document
from transcript_merger.formatters.base import FormatFlags, FormatterOutput, LineEnding

T = TypeVar("T")


def _status(msg: str) -> None:
    """Print a status message to stderr.

    WHY: Status output must not pollute stdout so --stdout can be piped.

    RULES:
    - All status messages go to stderr
    - Always flush after writing
    """
    print(msg, file=sys.stderr, flush=True)


def _fail(msg: str) -> None:
    print("Error: {}".format(msg), file=sys.stderr)
    sys.exit(1)


def _parse_pairs(
    values: Optional[List[str]],
    flag: str,
    convert: Callable[[str], T],
) -> Dict[str, T]:
    """Turn repeated ``NAME=VALUE`` arguments into a dict.

    Raises:
        ValueError: An entry has no ``=`` or its value does not convert.
    """
    result: Dict[str, T] = {}
    for raw in values or []:
        name, sep, value = raw.partition("=")
        if not sep or not name.strip():
            raise ValueError("{} expects NAME=VALUE, got {!r}".format(flag, raw))
        try:
            result[name.strip()] = convert(value.strip())
        except ValueError:
            raise ValueError("{} has an invalid value in {!r}".format(flag, raw))
    return result


def _collect_inputs(paths: List[str]) -> List[Path]:
    """Expand directories and validate every input path.

    RULES:
    - Files are kept in the order given
    - A directory contributes its supported files in name order
    - Missing files and unsupported extensions are errors
    """
    collected: List[Path] = []
    for raw in paths:
        path = Path(raw)
        if path.is_dir():
            found = sorted(
                p for p in path.iterdir()
                if p.is_file() and p.suffix.lower() in SUPPORTED_EXTENSIONS
            )
            if not found:
                raise ValueError("No transcript files found in directory: {}".format(path))
            collected.extend(found)
            continue
        if not path.is_file():
            raise ValueError("File not found: {}".format(path))
        if path.suffix.lower() not in SUPPORTED_EXTENSIONS:
            raise ValueError("Unsupported file type '{}'. Supported formats: {}".format(
                path.suffix.lower(), ", ".join(sorted(SUPPORTED_EXTENSIONS)),
            ))
        collected.append(path)
    return collected


def _resolve_output_path(name: str, suffix: str, output_dir: Path) -> Path:
    """Resolve the output file path, adding numeric suffix on conflict.

    WHY: Users may merge the same set several times while tuning options.
    Overwriting a previous result would lose work.

    RULES:
    - First attempt: {name}{suffix} (e.g. merged.srt)
    - Conflict: counter inserted before the extension (merged-2.srt)
    - Counter starts at 2 and increments
    """
    base_path = output_dir / "{}{}".format(name, suffix)
    if not base_path.exists():
        return base_path

    dot_idx = suffix.rfind(".")
    if dot_idx >= 0:
        suffix_name = suffix[:dot_idx]
        suffix_ext = suffix[dot_idx:]
    else:
        suffix_name = suffix
        suffix_ext = ""

    counter = 2
    while True:
        candidate = output_dir / "{}{}-{}{}".format(name, suffix_name, counter, suffix_ext)
        if not candidate.exists():
            return candidate
        counter += 1


def _save_output(output: FormatterOutput, name: str, output_dir: Path) -> Path:
    path = _resolve_output_path(name, output.suffix, output_dir)
    # newline="" keeps the formatter's line endings untouched
    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(output.content)
    return path


def _build_options(args: argparse.Namespace) -> MergeOptions:
    hints: Dict[str, int] = {}
    indices: Dict[str, int] = {}
    if args.manifest:
        segments = load_segment_manifest(args.manifest)
        hints.update(duration_hints(segments))
        indices = segment_indices(segments)
    hints.update(_parse_pairs(args.duration, "--duration", int))

    return MergeOptions(
        custom_sequence_pattern=args.sequence_pattern,
        manual_offsets=_parse_pairs(args.offset, "--offset", int),
        gap_threshold_ms=args.gap_threshold_ms,
        fill_gaps=args.fill_gaps,
        dedupe_identical_timestamps=args.dedupe,
        insert_part_markers=args.part_markers,
        speaker_labels=_parse_pairs(args.speaker, "--speaker", str),
        duration_hints=hints,
        segment_indices=indices,
        custom_timestamp_pattern=args.timestamp_pattern,
        grammar=GrammarKind(args.grammar) if args.grammar else None,
        start_offset_ms=args.start_offset_ms,
        skip_unreadable=args.skip_unreadable,
        max_workers=args.workers,
    )


def _report(document: MergedDocument) -> None:
    _status("  Order ({}, {} confidence):".format(document.sequence_rule, document.confidence.value))
    for source, offset in zip(document.sources, document.offsets_ms):
        _status("    {:>3}. {} (+{} ms, {})".format(
            source.sequence_index + 1 if source.sequence_index is not None else 0,
            source.name,
            offset,
            source.grammar.value if source.grammar else "untimed",
        ))
    for warning in document.warnings:
        prefix = "{}: ".format(warning.source) if warning.source else ""
        _status("  Warning [{}] {}{}".format(warning.kind.value, prefix, warning.detail))


def _run(args: argparse.Namespace) -> None:
    """Execute the merge pipeline.

    RULES:
    - Validate inputs and options before reading any transcript
    - Merge warnings are reported, never fatal
    - Exactly one output document per run
    """
    inputs = _collect_inputs(args.inputs)
    options = _build_options(args)

    output_dir = Path(args.output_dir).resolve() if args.output_dir else inputs[0].resolve().parent
    if not args.stdout and not output_dir.is_dir():
        raise ValueError("Output directory does not exist: {}".format(output_dir))

    _status("Merging {} file(s)...".format(len(inputs)))
    document = detect_and_merge(inputs, options)
    _report(document)

    flags = FormatFlags(
        include_markers=True,
        include_timestamps=not args.no_timestamps,
        generated_at=datetime.now(timezone.utc),
    )
    output = format_document(document, args.format, LineEnding(args.line_ending), flags)
    for warning in output.warnings:
        _status("  Warning [{}] {}".format(warning.kind.value, warning.detail))

    if args.stdout:
        sys.stdout.write(output.content)
        sys.stdout.flush()
        return

    saved = _save_output(output, args.name, output_dir)
    _status("")
    _status("Done! {} blocks from {} file(s) saved to {}".format(
        len(document.content_blocks), len(document.sources), saved,
    ))


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the CLI.

    WHY: Separating parser construction from main() makes the CLI
    testable; tests can inspect the parser without running a merge.
    """
    parser = argparse.ArgumentParser(
        prog="transcript_merger",
        description="Merge partial transcripts of a split recording into one "
                    "continuous transcript (SRT, WebVTT, bracketed text, Markdown, plain text).",
    )

    parser.add_argument(
        "inputs",
        nargs="+",
        help="Transcript files or directories, in any order.",
    )

    output = parser.add_argument_group("output")
    output.add_argument(
        "--format",
        choices=sorted(FORMATTERS.keys()),
        default=DEFAULT_OUTPUT_FORMAT,
        help="Output grammar (default: %(default)s).",
    )
    output.add_argument(
        "--line-ending",
        choices=[e.value for e in LineEnding],
        default=LineEnding.LF.value,
        help="Line ending of the output (default: %(default)s).",
    )
    output.add_argument(
        "--output-dir",
        default=None,
        help="Directory to save the merged file (default: same as the first input).",
    )
    output.add_argument(
        "--name",
        default=DEFAULT_OUTPUT_NAME,
        help="Output file name without extension (default: %(default)s).",
    )
    output.add_argument(
        "--stdout",
        action="store_true",
        help="Write the merged transcript to stdout instead of a file.",
    )
    output.add_argument(
        "--no-timestamps",
        action="store_true",
        help="Omit timestamps in text outputs (bracketed, markdown).",
    )

    parsing = parser.add_argument_group("ordering and parsing")
    parsing.add_argument(
        "--sequence-pattern",
        default=None,
        help="Regex with one capturing group that yields each file's order key.",
    )
    parsing.add_argument(
        "--timestamp-pattern",
        default=None,
        help="Regex for a custom timestamp grammar: (m)(s), (h)(m)(s)(ms), or named groups.",
    )
    parsing.add_argument(
        "--grammar",
        choices=[k.value for k in GrammarKind],
        default=None,
        help="Force one input grammar instead of auto-detecting per file.",
    )
    parsing.add_argument(
        "--skip-unreadable",
        action="store_true",
        help="Skip files that cannot be read or decoded instead of failing.",
    )
    parsing.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of parallel parse workers (default: CPU count).",
    )

    timing = parser.add_argument_group("timing")
    timing.add_argument(
        "--offset",
        action="append",
        metavar="NAME=MS",
        help="Absolute offset for one file, in ms. Can be specified multiple times.",
    )
    timing.add_argument(
        "--duration",
        action="append",
        metavar="NAME=MS",
        help="Duration hint for one file, in ms. Can be specified multiple times.",
    )
    timing.add_argument(
        "--manifest",
        default=None,
        help="Segment manifest JSON with {path, duration_ms[, index]} entries from the media splitter.",
    )
    timing.add_argument(
        "--start-offset-ms",
        type=int,
        default=0,
        help="Offset of the first file, in ms (default: %(default)s).",
    )
    timing.add_argument(
        "--gap-threshold-ms",
        type=int,
        default=DEFAULT_GAP_THRESHOLD_MS,
        help="Report gaps longer than this many ms; 0 disables (default: %(default)s).",
    )
    timing.add_argument(
        "--fill-gaps",
        action="store_true",
        help="Insert an empty filler block over each reported gap.",
    )
    timing.add_argument(
        "--dedupe",
        action="store_true",
        help="Collapse adjacent blocks with identical start and end times.",
    )

    labels = parser.add_argument_group("labels")
    labels.add_argument(
        "--part-markers",
        action="store_true",
        help="Insert a 'Part N: filename' marker before each file's content.",
    )
    labels.add_argument(
        "--speaker",
        action="append",
        metavar="NAME=LABEL",
        help="Speaker label for all blocks of one file. Can be specified multiple times.",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the CLI.

    RULES:
    - argv=None means use sys.argv (normal CLI invocation)
    - Explicit argv is for testing
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else LOG_LEVEL,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    try:
        _run(args)
    except KeyboardInterrupt:
        _status("\nCancelled by user.")
        sys.exit(130)
    except (MergeError, ValueError, OSError) as e:
        _fail(str(e))


if __name__ == "__main__":
    main()
