"""Configuration constants, supported file types and .env loading.

WHY: Centralizes every tunable value of the merge engine so it is easy to
find, update and override. Defaults live here as plain module constants
rather than being buried in the parser or assembler.

HOW: python-dotenv loads the .env file on import. Each constant reads an
optional TRANSCRIPT_MERGER_* environment variable and falls back to the
documented default.

RULES:
- All defaults can be overridden via environment variables
- Integer settings that fail to parse raise ValueError naming the variable
- SUPPORTED_EXTENSIONS lists transcript file types accepted by the CLI
"""

from __future__ import annotations

import os
from typing import Optional

from dotenv import load_dotenv

# Load .env from the project root (where the script is run from)
load_dotenv()


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    """Read an integer environment variable, keeping ``default`` when unset."""
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(
            "Environment variable {} must be an integer, got {!r}".format(name, raw)
        )


# ---------------------------------------------------------------------------
# Supported transcript file extensions
# ---------------------------------------------------------------------------

SUPPORTED_EXTENSIONS: set[str] = {".srt", ".vtt", ".txt", ".md", ".markdown"}
"""Transcript file extensions accepted by the CLI (lowercase, with dot)."""

# ---------------------------------------------------------------------------
# Merge defaults
# ---------------------------------------------------------------------------

DEFAULT_GAP_THRESHOLD_MS = _env_int("TRANSCRIPT_MERGER_GAP_THRESHOLD_MS", 0)
"""Gaps longer than this produce a warning; 0 disables gap detection."""

DEFAULT_CUE_DURATION_MS = _env_int("TRANSCRIPT_MERGER_DEFAULT_CUE_MS", 5000)
"""Duration given to a final SRT/WebVTT cue that has no end time."""

DEFAULT_MAX_WORKERS = _env_int("TRANSCRIPT_MERGER_MAX_WORKERS", None)
"""Parse worker pool size; None means os.cpu_count()."""

READ_CHUNK_BYTES = _env_int("TRANSCRIPT_MERGER_READ_CHUNK_BYTES", 1024 * 1024)
"""Size of each bounded read when loading a transcript file."""

FALLBACK_ENCODING = os.getenv("TRANSCRIPT_MERGER_FALLBACK_ENCODING", "cp1251")
"""Codec tried when strict UTF-8 decoding fails (Windows-1251 by default)."""

# ---------------------------------------------------------------------------
# CLI defaults
# ---------------------------------------------------------------------------

DEFAULT_OUTPUT_FORMAT = os.getenv("TRANSCRIPT_MERGER_DEFAULT_FORMAT", "srt")
DEFAULT_OUTPUT_NAME = os.getenv("TRANSCRIPT_MERGER_OUTPUT_NAME", "merged")
LOG_LEVEL = os.getenv("TRANSCRIPT_MERGER_LOG_LEVEL", "WARNING").upper()
