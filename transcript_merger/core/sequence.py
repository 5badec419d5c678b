"""File order detection from filenames.

WHY: Files arrive in discovery order (directory listing, drag-and-drop),
which rarely matches the order of the media segments they transcribe.
Lexicographic sorting is wrong as soon as there are ten or more parts
("part10" sorts before "part2"), so the order is inferred from the
numbering conventions segmenters and users actually produce.

HOW: SEQUENCE_RULES is an ordered table of SequenceRule entries, each a
compiled pattern plus a key extractor. Rules are tried in priority order;
the first rule whose pattern matches *every* filename provides the order
keys. A user-supplied pattern is appended as the last rule. When no rule
matches all files the detector falls back to natural sorting and reports
low confidence.

RULES:
- Rules 1-4 match the basename without extension; the custom rule matches
  the full basename
- Numeric keys compare numerically ("10" after "2")
- Duplicate keys under the winning rule raise SequenceAmbiguous
- The fallback never raises for distinct identifiers
- The result does not depend on the input order of the filenames
"""

from __future__ import annotations

import locale
import os
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from transcript_merger.core.errors import SequenceAmbiguous
from transcript_merger.core.ir import Confidence

_NATURAL_SPLIT_RE = re.compile(r"(\d+)")


def basename(identifier: str) -> str:
    """Return the last path component for both / and \\ separators."""
    return identifier.replace("\\", "/").rsplit("/", 1)[-1]


def _stem(identifier: str) -> str:
    return os.path.splitext(basename(identifier))[0]


@dataclass(frozen=True)
class SequenceRule:
    """One row of the ordering table.

    Attributes:
        name: Short rule identifier reported back to the caller.
        pattern: Compiled regex tried against ``subject(identifier)``.
        key: Extracts the order key from a successful match.
        subject: Picks the part of the identifier to match against.
    """

    name: str
    pattern: "re.Pattern[str]"
    key: Callable[["re.Match[str]"], object]
    subject: Callable[[str], str] = _stem


def _int_group(name: str) -> Callable[["re.Match[str]"], object]:
    return lambda match: int(match.group(name))


def _lead_or_trail(match: "re.Match[str]") -> object:
    return int(match.group("lead") if match.group("lead") is not None else match.group("trail"))


# Non-padded integer: "0" or a number without leading zeros
_PLAIN_INT = r"(?:0|[1-9]\d*)"

SEQUENCE_RULES: Tuple[SequenceRule, ...] = (
    SequenceRule(
        name="numeric_suffix",
        pattern=re.compile(r"^.+[_\-\s](?P<key>" + _PLAIN_INT + r")$"),
        key=_int_group("key"),
    ),
    SequenceRule(
        name="part_keyword",
        pattern=re.compile(r"part[\s_\-.]*(?P<key>\d+)", re.IGNORECASE),
        key=_int_group("key"),
    ),
    SequenceRule(
        name="bare_integer",
        pattern=re.compile(
            r"^(?:(?P<lead>" + _PLAIN_INT + r")(?:\D.*)?|(?:.*\D)?(?P<trail>" + _PLAIN_INT + r"))$"
        ),
        key=_lead_or_trail,
    ),
    SequenceRule(
        name="zero_padded_suffix",
        pattern=re.compile(r"(?:^|\D)(?P<key>\d+)$"),
        key=_int_group("key"),
    ),
)


@dataclass
class SequenceResult:
    """Outcome of sequence detection.

    RULES:
    - order: input indices in detected order (a permutation of 0..N-1)
    - confidence: HIGH when a rule matched every file, LOW for the fallback
    - rule: name of the winning rule, or "natural_sort"
    - keys: order key per input index
    """

    order: List[int]
    confidence: Confidence
    rule: str
    keys: Dict[int, object] = field(default_factory=dict)

    def positions(self) -> Dict[int, int]:
        """Map input index -> zero-based sequence index."""
        return {input_index: position for position, input_index in enumerate(self.order)}


def custom_rule(pattern: str) -> SequenceRule:
    """Build the user-supplied rule from a regex with one capturing group.

    Raises:
        ValueError: If the regex is invalid or has no capturing group.
    """
    try:
        compiled = re.compile(pattern)
    except re.error as exc:
        raise ValueError("Invalid custom sequence pattern {!r}: {}".format(pattern, exc))
    if compiled.groups < 1:
        raise ValueError(
            "Custom sequence pattern {!r} needs one capturing group for the order key".format(pattern)
        )
    return SequenceRule(
        name="custom",
        pattern=compiled,
        key=lambda match: match.group(1),
        subject=basename,
    )


def natural_key(text: str) -> Tuple[Tuple[int, object], ...]:
    """Sort key that orders digit runs numerically and text locale-aware.

    Each segment becomes a (type, value) pair so numbers and text never get
    compared with each other.
    """
    parts: List[Tuple[int, object]] = []
    for chunk in _NATURAL_SPLIT_RE.split(text):
        if not chunk:
            continue
        if chunk.isdigit():
            parts.append((0, int(chunk)))
        else:
            parts.append((1, locale.strxfrm(chunk.casefold())))
    return tuple(parts)


def _normalize_custom_keys(keys: Dict[int, object]) -> Dict[int, object]:
    """Numeric comparison when every captured key is all digits."""
    values = [str(v) for v in keys.values()]
    if values and all(v.isdigit() for v in values):
        return {i: int(str(v)) for i, v in keys.items()}
    return {i: natural_key(str(v)) for i, v in keys.items()}


def _apply_rule(rule: SequenceRule, identifiers: Sequence[str]) -> Optional[Dict[int, object]]:
    keys: Dict[int, object] = {}
    for index, identifier in enumerate(identifiers):
        match = rule.pattern.search(rule.subject(identifier))
        if match is None:
            return None
        keys[index] = rule.key(match)
    return keys


def _check_unique(rule_name: str, keys: Dict[int, object], identifiers: Sequence[str]) -> None:
    seen: Dict[object, List[int]] = {}
    for index, key in keys.items():
        seen.setdefault(key, []).append(index)
    for key, indices in seen.items():
        if len(indices) > 1:
            raise SequenceAmbiguous(
                [basename(identifiers[i]) for i in sorted(indices)], key, rule_name,
            )


def detect_sequence(
    identifiers: Sequence[str],
    custom_pattern: Optional[str] = None,
) -> SequenceResult:
    """Order files by the numbering in their names.

    WHY: The merge needs a strict total order before offsets can be
    accumulated, and it must be the same whatever order files were found in.

    HOW: Try each rule of SEQUENCE_RULES (plus the custom rule, last). The
    first rule that matches every filename supplies the keys; files are
    sorted by key. Without a matching rule, sort by natural_key of the
    basename, then of the full identifier, then by the raw identifier.

    RULES:
    - Duplicate keys under the winning rule raise SequenceAmbiguous
    - The fallback only raises for identical identifiers
    - An empty input returns an empty order with HIGH confidence

    Args:
        identifiers: File paths or names, in discovery order.
        custom_pattern: Optional regex with one capturing group.

    Returns:
        SequenceResult with the order and confidence.

    Raises:
        SequenceAmbiguous: Two files share an order key.
        ValueError: custom_pattern is not a valid regex with a group.
    """
    rules = list(SEQUENCE_RULES)
    if custom_pattern:
        rules.append(custom_rule(custom_pattern))

    if not identifiers:
        return SequenceResult(order=[], confidence=Confidence.HIGH, rule="empty")

    for rule in rules:
        keys = _apply_rule(rule, identifiers)
        if keys is None:
            continue
        if rule.name == "custom":
            keys = _normalize_custom_keys(keys)
        _check_unique(rule.name, keys, identifiers)
        order = sorted(keys, key=lambda i: keys[i])
        return SequenceResult(order=order, confidence=Confidence.HIGH, rule=rule.name, keys=keys)

    # Raw identifier last so names differing only in case still get an order
    fallback = {
        i: (natural_key(basename(identifier)), natural_key(identifier), identifier)
        for i, identifier in enumerate(identifiers)
    }
    _check_unique("natural_sort", fallback, identifiers)
    order = sorted(fallback, key=lambda i: fallback[i])
    return SequenceResult(order=order, confidence=Confidence.LOW, rule="natural_sort", keys=fallback)
