"""
Tests for inclusive range overlap checks.
"""

from datetime import date

import pytest

from billing.core.ranges import Span, find_overlaps, has_overlap, spans_overlap


@pytest.fixture
def volume_spans():
    return [Span(id=1, start=0, end=100)]


@pytest.mark.parametrize(
    "start,end,expected",
    [
        (50, 150, True),  # partial overlap
        (100, 200, True),  # shared boundary point
        (101, 200, False),
        (20, 30, True),  # contained
        (-10, 500, True),  # containing
        (-10, -1, False),
        (-10, 0, True),  # touches the start
        (150, None, False),
        (100, None, True),  # open-ended from the boundary
        (-5, None, True),
    ],
)
def test_candidate_against_bounded_span(volume_spans, start, end, expected):
    assert has_overlap(volume_spans, start, end) is expected


@pytest.mark.parametrize(
    "start,end,expected",
    [
        (0, 49, False),
        (0, 50, True),
        (60, 70, True),
        (60, None, True),
    ],
)
def test_candidate_against_open_ended_span(start, end, expected):
    existing = [Span(id=1, start=50, end=None)]
    assert has_overlap(existing, start, end) is expected


def test_overlap_is_symmetric():
    cases = [(0, 100, 100, 200), (0, None, 5, 10), (0, 10, 11, 20), (3, 3, 3, None)]
    for a_start, a_end, b_start, b_end in cases:
        assert spans_overlap(a_start, a_end, b_start, b_end) == spans_overlap(
            b_start, b_end, a_start, a_end
        )


def test_excluded_record_is_ignored(volume_spans):
    """Updating a record must not conflict with its own stored range."""
    assert not has_overlap(volume_spans, 0, 120, exclude_id=1)
    assert has_overlap(volume_spans, 0, 120, exclude_id=2)


def test_find_overlaps_returns_conflicts_in_order():
    existing = [
        Span(id="a", start=date(2024, 1, 1), end=date(2024, 3, 31)),
        Span(id="b", start=date(2024, 4, 1), end=date(2024, 6, 30)),
        Span(id="c", start=date(2024, 7, 1), end=None),
    ]
    conflicts = find_overlaps(existing, date(2024, 3, 31), date(2024, 7, 1))
    assert [span.id for span in conflicts] == ["a", "b", "c"]


def test_date_ranges_touching_on_a_day_overlap():
    existing = [Span(id=1, start=date(2024, 6, 1), end=date(2024, 8, 31))]
    assert has_overlap(existing, date(2024, 8, 31), date(2024, 9, 30))
    assert not has_overlap(existing, date(2024, 9, 1), date(2024, 9, 30))


def test_no_existing_spans():
    assert find_overlaps([], 0, None) == []


def test_inverted_candidate_rejected(volume_spans):
    with pytest.raises(ValueError):
        has_overlap(volume_spans, 200, 150)


def test_inverted_span_rejected():
    with pytest.raises(ValueError):
        Span(id=1, start=10, end=5)
