"""Offset accumulation across ordered files.

WHY: Every partial transcript starts its clock at zero. To place file i on
the global timeline, its local times are shifted by the total duration of
all files before it.

HOW: A running integer sum over durations in sequence order. Manual
overrides replace the offset of their own file only.

RULES:
- offset(0) = start_ms; offset(i) = computed(i-1) + duration(i-1)
- Integer milliseconds only, so long chains never drift
- An override is a point fix: later files keep the computed chain
"""

from __future__ import annotations

from typing import List, Mapping, Optional, Sequence


def accumulate_offsets(
    durations_ms: Sequence[int],
    overrides_ms: Optional[Mapping[int, int]] = None,
    start_ms: int = 0,
) -> List[int]:
    """Compute the absolute offset of every file.

    Args:
        durations_ms: Resolved durations in sequence order.
        overrides_ms: Sequence position -> manual offset.
        start_ms: Offset of the first file before overrides.

    Returns:
        One offset per file, in sequence order.
    """
    overrides_ms = overrides_ms or {}
    offsets: List[int] = []
    running = start_ms
    for position, duration in enumerate(durations_ms):
        offsets.append(overrides_ms.get(position, running))
        running += duration
    return offsets
