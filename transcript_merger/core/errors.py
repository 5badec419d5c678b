"""Exception taxonomy for fatal merge conditions.

WHY: Most problems in a merge run are recoverable and become MergeWarnings
on the document. A few are not: an ambiguous file order, a file that cannot
be read, or a caller-requested cancellation. These need distinct exception
types so the CLI and other callers can react to each one.

RULES:
- Every engine exception derives from MergeError
- SequenceAmbiguous is the only fatal condition of the detection phase
- Configuration mistakes (bad regex, negative thresholds) raise ValueError
"""

from __future__ import annotations

from typing import List, Optional


class MergeError(Exception):
    """Base class for all fatal merge-engine errors."""


class MergeAborted(MergeError):
    """The run cannot produce a trustworthy result and was stopped."""


class SequenceAmbiguous(MergeAborted):
    """Two or more files resolved to the same order key.

    Attributes:
        filenames: The conflicting filenames, in input order.
        key: The shared order key.
    """

    def __init__(self, filenames: List[str], key: object, rule: str) -> None:
        self.filenames = list(filenames)
        self.key = key
        self.rule = rule
        super().__init__(
            "Ambiguous file order: {} all resolve to key {!r} (rule: {})".format(
                ", ".join(self.filenames), key, rule,
            )
        )


class UnreadableFile(MergeError):
    """A source file could not be read or decoded.

    Attributes:
        identifier: Path or name of the failing file.
        reason: Underlying error message.
    """

    def __init__(self, identifier: str, reason: str, position: Optional[int] = None) -> None:
        self.identifier = identifier
        self.reason = reason
        self.position = position
        super().__init__("Cannot read {}: {}".format(identifier, reason))


class MergeCancelled(MergeError):
    """The caller set the cancellation flag before the run finished."""
