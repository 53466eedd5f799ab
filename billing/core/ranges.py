"""
Overlap checks for closed ranges of dates or volumes.

Both bounds of a range are inclusive. An end of None means the range is
open-ended. Ranges that merely touch (one ends where the other starts)
overlap.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Hashable, Iterable, Optional


@dataclass(frozen=True, slots=True)
class Span:
    """An existing range owned by some record, identified by id."""

    id: Hashable
    start: Any
    end: Optional[Any] = None

    def __post_init__(self) -> None:
        if self.end is not None and self.end < self.start:
            raise ValueError("end must not be earlier than start")

    def __str__(self) -> str:
        end = "open-ended" if self.end is None else str(self.end)
        return f"[{self.start}, {end}]"


def spans_overlap(
    start_a: Any,
    end_a: Optional[Any],
    start_b: Any,
    end_b: Optional[Any],
) -> bool:
    """
    Return True if [start_a, end_a] and [start_b, end_b] share at least one point.

    Examples:
        >>> spans_overlap(0, 100, 50, 150)
        True
        >>> spans_overlap(0, 100, 100, 200)
        True
        >>> spans_overlap(0, 100, 101, None)
        False
    """
    starts_before_b_ends = end_b is None or start_a <= end_b
    ends_after_b_starts = end_a is None or end_a >= start_b
    return starts_before_b_ends and ends_after_b_starts


def find_overlaps(
    existing: Iterable[Span],
    start: Any,
    end: Optional[Any] = None,
    exclude_id: Optional[Hashable] = None,
) -> list[Span]:
    """
    Find the existing spans that conflict with a candidate range.

    Callers pass only the active spans of one owner (tariff or property).

    Args:
        existing: spans already stored for the owner
        start: candidate start (inclusive)
        end: candidate end (inclusive), None for open-ended
        exclude_id: id of the record being updated, ignored when comparing

    Returns:
        Conflicting spans, in the order given

    Raises:
        ValueError: If the candidate end is earlier than its start
    """
    if end is not None and end < start:
        raise ValueError("end must not be earlier than start")

    return [
        span
        for span in existing
        if not (exclude_id is not None and span.id == exclude_id)
        and spans_overlap(span.start, span.end, start, end)
    ]


def has_overlap(
    existing: Iterable[Span],
    start: Any,
    end: Optional[Any] = None,
    exclude_id: Optional[Hashable] = None,
) -> bool:
    """Return True if the candidate range conflicts with any existing span."""
    return bool(find_overlaps(existing, start, end, exclude_id))
