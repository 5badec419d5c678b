"""Reading and decoding transcript sources.

WHY: Transcripts reach the engine as paths on disk, as raw bytes handed
over by an embedding application, or as (name, bytes) pairs. They come
from tools that disagree about encodings: UTF-8 with or without BOM,
UTF-16 from Windows editors, and legacy Windows-1251 exports. Parsing
needs one decoded str per file, and the caller needs to know when a
fallback codec was used.

HOW: read_bytes() reads a file in READ_CHUNK_BYTES pieces and returns all of
them, so the whole file is held in memory. decode_bytes() picks the codec
from the BOM (UTF-16/UTF-8-sig) or tries strict UTF-8, feeding the chunks
through an incremental decoder; if UTF-8 fails the same bytes are decoded
with FALLBACK_ENCODING and an ENCODING_FALLBACK warning is recorded.
load_source() combines both and returns a SourceFile.

RULES:
- The UTF-8 BOM is stripped; UTF-16 is only recognized by its BOM
- ASCII is valid UTF-8 and needs no special case
- I/O and decoding failures raise UnreadableFile
- Bytes inputs are named input_1, input_2, ... in the order given
"""

from __future__ import annotations

import codecs
import logging
from pathlib import Path
from typing import Iterable, Iterator, List, Tuple, Union

from transcript_merger.config import FALLBACK_ENCODING, READ_CHUNK_BYTES
from transcript_merger.core.errors import UnreadableFile
from transcript_merger.core.ir import MergeWarning, SourceFile, WarningKind

logger = logging.getLogger(__name__)

SourceInput = Union[str, Path, bytes, Tuple[str, bytes]]
"""Anything detect_and_merge() accepts as one file."""

_BOMS: Tuple[Tuple[bytes, str], ...] = (
    (codecs.BOM_UTF8, "utf-8-sig"),
    (codecs.BOM_UTF16_LE, "utf-16"),
    (codecs.BOM_UTF16_BE, "utf-16"),
)


def input_identifier(item: SourceInput, index: int) -> str:
    """Return the identifier used for ordering and warnings.

    Args:
        item: One entry of the caller's file list.
        index: Zero-based position of the entry in that list.
    """
    if isinstance(item, bytes):
        return "input_{}".format(index + 1)
    if isinstance(item, tuple):
        return item[0]
    return str(item)


def _iter_chunks(data: bytes, size: int) -> Iterator[bytes]:
    for start in range(0, len(data), size):
        yield data[start:start + size]


def read_bytes(path: Union[str, Path], chunk_size: int = READ_CHUNK_BYTES) -> List[bytes]:
    """Read a whole file into memory as a list of chunks.

    Each read call is bounded by ``chunk_size``, but every chunk is kept:
    memory use grows with the file size. Transcripts are small text files.

    Raises:
        UnreadableFile: The file is missing or cannot be read.
    """
    chunks: List[bytes] = []
    try:
        with open(path, "rb") as fh:
            while True:
                chunk = fh.read(chunk_size)
                if not chunk:
                    break
                chunks.append(chunk)
    except OSError as exc:
        raise UnreadableFile(str(path), exc.strerror or str(exc))
    return chunks


def sniff_encoding(head: bytes) -> str:
    """Pick the codec implied by a byte-order mark, defaulting to strict UTF-8."""
    for bom, encoding in _BOMS:
        if head.startswith(bom):
            return encoding
    return "utf-8"


def _decode_chunks(chunks: Iterable[bytes], encoding: str) -> str:
    decoder = codecs.getincrementaldecoder(encoding)(errors="strict")
    parts = [decoder.decode(chunk) for chunk in chunks]
    parts.append(decoder.decode(b"", final=True))
    return "".join(parts)


def decode_bytes(
    chunks: List[bytes],
    identifier: str,
) -> Tuple[str, str, List[MergeWarning]]:
    """Decode raw file bytes.

    WHY: A file that is not valid UTF-8 is far more often a legacy
    Windows-1251 export than garbage, so falling back keeps it in the merge
    while the warning tells the user to double-check it.

    HOW: Sniff the BOM from the first bytes, decode incrementally with the
    chosen codec. Only the plain UTF-8 path has a fallback: a file with a
    BOM that fails to decode is broken.

    RULES:
    - Returned text never starts with a BOM
    - The fallback produces exactly one ENCODING_FALLBACK warning

    Returns:
        Tuple of (text, encoding name, warnings).

    Raises:
        UnreadableFile: Neither the detected codec nor the fallback decodes.
    """
    head = b""
    for chunk in chunks:
        head += chunk
        if len(head) >= 4:
            break
    encoding = sniff_encoding(head[:4])

    try:
        text = _decode_chunks(chunks, encoding)
    except UnicodeDecodeError as exc:
        if encoding != "utf-8":
            raise UnreadableFile(identifier, "invalid {} data: {}".format(encoding, exc.reason))
        logger.debug("UTF-8 decoding failed for %s, trying %s", identifier, FALLBACK_ENCODING)
        try:
            text = _decode_chunks(chunks, FALLBACK_ENCODING)
        except (UnicodeDecodeError, LookupError) as fallback_exc:
            raise UnreadableFile(
                identifier,
                "not valid UTF-8 ({}) nor {} ({})".format(exc.reason, FALLBACK_ENCODING, fallback_exc),
            )
        warning = MergeWarning(
            kind=WarningKind.ENCODING_FALLBACK,
            detail="Not valid UTF-8 at byte {}; decoded as {}".format(exc.start, FALLBACK_ENCODING),
            source=identifier,
        )
        return text, FALLBACK_ENCODING, [warning]

    if text.startswith("\ufeff"):
        text = text[1:]
    return text, encoding, []


def load_source(item: SourceInput, index: int) -> SourceFile:
    """Read and decode one input into an unparsed SourceFile.

    Args:
        item: Path, raw bytes, or (name, bytes) pair.
        index: Position of the item in the caller's list.

    Returns:
        SourceFile with identifier, content, encoding and decode warnings.

    Raises:
        UnreadableFile: The input cannot be read or decoded.
    """
    identifier = input_identifier(item, index)
    if isinstance(item, bytes):
        chunks = list(_iter_chunks(item, READ_CHUNK_BYTES))
    elif isinstance(item, tuple):
        chunks = list(_iter_chunks(item[1], READ_CHUNK_BYTES))
    else:
        chunks = read_bytes(item)

    text, encoding, warnings = decode_bytes(chunks, identifier)
    logger.debug("Loaded %s (%s, %d chars)", identifier, encoding, len(text))
    return SourceFile(identifier=identifier, content=text, encoding=encoding, warnings=warnings)
