"""Transcript anchor markers (``§58``, ``§127-§129``)."""

from __future__ import annotations

import re

ANCHOR_RE = re.compile(r"§(\d+)(?:[-–]§?(\d+)|\s*[-–]\s*§(\d+))?")


def anchor_spans(text: str) -> list[tuple[int, int]]:
    """Cited ``(start, end)`` spans in order of appearance; single anchors have start == end.

    Ranges are ``§3-5`` or ``§3-§5``; once spaces surround the dash the end
    needs its own ``§``, so "§5 - 10 samples" cites §5 alone.
    """
    spans: list[tuple[int, int]] = []
    for match in ANCHOR_RE.finditer(text or ""):
        start = int(match.group(1))
        tail = match.group(2) or match.group(3)
        end = int(tail) if tail else start
        spans.append((min(start, end), max(start, end)))
    return spans


def extract_anchors(text: str) -> list[int]:
    """Every section number cited in ``text`` with ranges expanded."""
    return [n for start, end in anchor_spans(text) for n in range(start, end + 1)]


def out_of_range_anchors(text: str, section_count: int) -> list[int]:
    """Cited span endpoints outside ``1..section_count``.

    Callers report these as warnings, never as failures.
    """
    found: list[int] = []
    for start, end in anchor_spans(text):
        for number in (start, end):
            if (number < 1 or number > section_count) and number not in found:
                found.append(number)
    return found
