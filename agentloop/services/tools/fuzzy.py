"""Locate ``old_string`` in a file, tolerating small differences.

Strategies, in order:

1. exact substring,
2. line-based match ignoring line endings and trailing whitespace,
3. best line window by ``difflib.SequenceMatcher`` ratio, accepted at
   ``min_similarity`` or above.
"""

from __future__ import annotations

import difflib
from dataclasses import dataclass

EXACT = "exact"
NORMALIZED = "normalized"
FUZZY = "fuzzy"


@dataclass(frozen=True)
class Match:
    """Character span of ``content`` that should be replaced."""

    start: int
    end: int
    strategy: str
    similarity: float = 1.0

    @property
    def is_exact(self) -> bool:
        return self.strategy == EXACT

    def apply(self, content: str, replacement: str) -> str:
        return content[: self.start] + replacement + content[self.end :]


def _needle_lines(needle: str) -> list[str]:
    return [line.rstrip() for line in needle.replace("\r\n", "\n").rstrip("\n").split("\n")]


def _line_offsets(lines: list[str]) -> list[int]:
    offsets = []
    pos = 0
    for line in lines:
        offsets.append(pos)
        pos += len(line)
    return offsets


def _span(lines: list[str], offsets: list[int], first: int, count: int) -> tuple[int, int]:
    last = first + count - 1
    end = offsets[last] + len(lines[last].rstrip("\r\n"))
    return offsets[first], end


def find_match(content: str, needle: str, min_similarity: float = 0.85) -> Match | None:
    """Find the span of ``content`` best matching ``needle``, or None."""
    if not needle:
        return None

    idx = content.find(needle)
    if idx >= 0:
        return Match(idx, idx + len(needle), EXACT)

    wanted = _needle_lines(needle)
    lines = content.splitlines(keepends=True)
    n = len(wanted)
    if n == 0 or n > len(lines):
        return None
    offsets = _line_offsets(lines)
    stripped = [line.rstrip() for line in lines]

    for i in range(len(lines) - n + 1):
        if stripped[i : i + n] == wanted:
            start, end = _span(lines, offsets, i, n)
            return Match(start, end, NORMALIZED)

    target = "\n".join(wanted)
    best_ratio = 0.0
    best_index = -1
    matcher = difflib.SequenceMatcher(autojunk=False)
    matcher.set_seq2(target)
    for i in range(len(lines) - n + 1):
        matcher.set_seq1("\n".join(stripped[i : i + n]))
        # quick_ratio is an upper bound; skip windows that cannot win
        if matcher.quick_ratio() <= best_ratio:
            continue
        ratio = matcher.ratio()
        if ratio > best_ratio:
            best_ratio, best_index = ratio, i

    if best_index >= 0 and best_ratio >= min_similarity:
        start, end = _span(lines, offsets, best_index, n)
        return Match(start, end, FUZZY, round(best_ratio, 4))
    return None


def count_exact(content: str, needle: str) -> int:
    return content.count(needle) if needle else 0
