"""Segment manifest loading (duration hints from the media splitter).

WHY: The tool that splits the media knows every segment's exact length.
Those lengths are better offsets than anything read off the transcripts,
whose last cue usually ends before the segment does. The splitter hands
them over as a small JSON manifest.

HOW: The manifest is validated against SEGMENT_MANIFEST_SCHEMA with
jsonschema, then turned into SegmentHint records. duration_hints() maps
them onto the per-file ``duration_hints`` option and segment_indices()
onto ``segment_indices``, both keyed by basename so the manifest can use
paths relative to wherever the splitter ran.

RULES:
- Accepted shapes: a list of segments, or {"segments": [...]}
- Each segment: path (string), duration_ms (integer >= 0), optional index
- index is the zero-based position of the segment in the recording
- Schema violations and malformed JSON raise ValueError with the location
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import jsonschema

from transcript_merger.core.sequence import basename

_SEGMENT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "path": {"type": "string", "minLength": 1},
        "duration_ms": {"type": "integer", "minimum": 0},
        "index": {"type": "integer", "minimum": 0},
    },
    "required": ["path", "duration_ms"],
}

SEGMENT_MANIFEST_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "Segment manifest",
    "definitions": {
        "segment": _SEGMENT_SCHEMA,
        "segments": {"type": "array", "items": {"$ref": "#/definitions/segment"}},
    },
    "oneOf": [
        {"$ref": "#/definitions/segments"},
        {
            "type": "object",
            "properties": {"segments": {"$ref": "#/definitions/segments"}},
            "required": ["segments"],
        },
    ],
}


@dataclass
class SegmentHint:
    """One media segment as reported by the splitter."""

    path: str
    duration_ms: int
    index: Optional[int] = None


def parse_segment_manifest(data: Any) -> List[SegmentHint]:
    """Validate decoded manifest JSON and return its segments.

    Raises:
        ValueError: The data does not match SEGMENT_MANIFEST_SCHEMA.
    """
    try:
        jsonschema.validate(instance=data, schema=SEGMENT_MANIFEST_SCHEMA)
    except jsonschema.ValidationError as exc:
        location = "/".join(str(p) for p in exc.absolute_path) or "<root>"
        raise ValueError("Invalid segment manifest at {}: {}".format(location, exc.message))

    segments = data["segments"] if isinstance(data, dict) else data
    return [
        SegmentHint(
            path=item["path"],
            duration_ms=item["duration_ms"],
            index=item.get("index"),
        )
        for item in segments
    ]


def load_segment_manifest(path: Union[str, Path]) -> List[SegmentHint]:
    """Read and validate a segment manifest file.

    Args:
        path: Path to the manifest JSON.

    Returns:
        SegmentHint records in file order.

    Raises:
        ValueError: Malformed JSON or a schema violation.
        OSError: The file cannot be read.
    """
    with open(path, encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as exc:
            raise ValueError("Segment manifest {} is not valid JSON: {}".format(path, exc))
    return parse_segment_manifest(data)


def _register(result: Dict[str, int], path: str, value: int) -> None:
    # The splitter names segments after the media chunk (clip_1.wav) while
    # transcripts use another extension (clip_1.srt)
    name = basename(path)
    result[name] = value
    stem = name.rsplit(".", 1)[0] if "." in name else name
    result.setdefault(stem, value)


def duration_hints(hints: Sequence[SegmentHint]) -> Dict[str, int]:
    """Map each segment's transcript basename to its duration.

    Both the full basename and the basename without extension are
    registered.
    """
    result: Dict[str, int] = {}
    for hint in hints:
        _register(result, hint.path, hint.duration_ms)
    return result


def segment_indices(hints: Sequence[SegmentHint]) -> Dict[str, int]:
    """Map basename and stem to the manifest index, for segments that have one."""
    result: Dict[str, int] = {}
    for hint in hints:
        if hint.index is not None:
            _register(result, hint.path, hint.index)
    return result
