"""Shared test fixtures for the transcript_merger test suite.

WHY: Most test modules need small transcript files in the various
grammars, or hand-built IR objects. Centralizing them here keeps the
sample data identical across modules.

HOW: Plain helper functions build SRT text and ContentBlocks; pytest
fixtures write sample files into tmp_path and return their paths.

RULES:
- Every file fixture writes into tmp_path (no shared state between tests)
- Sample text uses "\\n" line endings unless a test says otherwise
"""

from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import pytest

from transcript_merger.core.ir import BlockKind, ContentBlock, MergedDocument, SourceFile


def srt(*cues: Tuple[str, str, str]) -> str:
    """Build SRT text from (start, end, text) triples."""
    parts = []
    for number, (start, end, text) in enumerate(cues, start=1):
        parts.append("{}\n{} --> {}\n{}".format(number, start, end, text))
    return "\n\n".join(parts) + "\n"


def block(
    start: Optional[int],
    end: Optional[int] = None,
    *lines: str,
    source_index: Optional[int] = 0,
    speaker: Optional[str] = None,
    kind: BlockKind = BlockKind.CONTENT,
) -> ContentBlock:
    return ContentBlock(
        start_ms=start,
        end_ms=end,
        lines=list(lines),
        source_index=source_index,
        speaker=speaker,
        kind=kind,
    )


def document(*blocks: ContentBlock, sources: Optional[List[SourceFile]] = None) -> MergedDocument:
    return MergedDocument(blocks=list(blocks), sources=sources or [])


@pytest.fixture
def write_files(tmp_path: Path) -> Callable[[Dict[str, str]], List[Path]]:
    """Write {name: text} into tmp_path (UTF-8) and return the paths in dict order."""

    def _write(files: Dict[str, str]) -> List[Path]:
        paths = []
        for name, text in files.items():
            path = tmp_path / name
            path.write_text(text, encoding="utf-8")
            paths.append(path)
        return paths

    return _write


@pytest.fixture
def hello_world_files(write_files):
    """a_1.srt (0-4 s "Hello") and a_2.srt (0-3 s "World"), returned reversed."""
    paths = write_files({
        "a_1.srt": srt(("00:00:00,000", "00:00:04,000", "Hello")),
        "a_2.srt": srt(("00:00:00,000", "00:00:03,000", "World")),
    })
    return list(reversed(paths))
