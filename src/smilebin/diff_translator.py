"""
Line translation tables derived from unified diffs.

Given `git diff <revision> -- <file>`, the table answers "which line in the
working tree does line N of the file as of <revision> correspond to?".
Lines that were removed map to None.
"""

import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass

from .errors import DiffParseError

_HUNK_HEADER_RE = re.compile(
    r"^@@ -(?P<old_start>\d+)(?:,(?P<old_count>\d+))?"
    r" \+(?P<new_start>\d+)(?:,(?P<new_count>\d+))?"
    r" @@"
)


@dataclass
class DiffHunk:
    """A single hunk in a diff."""

    old_start: int
    old_count: int
    new_start: int
    new_count: int
    lines: list[str]


class LineTranslation(Mapping):
    """Historical line number -> current line number (or None if deleted)."""

    def __init__(self, table: dict[int, int | None]):
        self._table = table
        self._inverse: dict[int, int] | None = None

    def __getitem__(self, line: int) -> int | None:
        return self._table[line]

    def __iter__(self) -> Iterator[int]:
        return iter(self._table)

    def __len__(self) -> int:
        return len(self._table)

    def forward(self, historical_line: int) -> int | None:
        """Current line for a historical one, None if it no longer exists."""
        return self._table.get(historical_line)

    def invert(self, current_line: int) -> int | None:
        """Historical line that ended up at `current_line`, None if it is new."""
        if self._inverse is None:
            self._inverse = {
                new: old for old, new in self._table.items() if new is not None
            }
        return self._inverse.get(current_line)


def parse_hunks(diff_text: str) -> list[DiffHunk]:
    """Parse the hunks of a single-file unified diff."""
    hunks: list[DiffHunk] = []
    current: DiffHunk | None = None

    for line in diff_text.split("\n"):
        if line.startswith("@@"):
            match = _HUNK_HEADER_RE.match(line)
            if not match:
                raise DiffParseError(f"Malformed hunk header: {line}")
            current = DiffHunk(
                old_start=int(match.group("old_start")),
                old_count=_count(match.group("old_count")),
                new_start=int(match.group("new_start")),
                new_count=_count(match.group("new_count")),
                lines=[],
            )
            hunks.append(current)
        elif current is not None:
            if line.startswith("diff --git "):
                # Only the first file is of interest
                break
            if line.startswith("\\"):
                # "\ No newline at end of file"
                continue
            current.lines.append(line)

    return hunks


def _count(value: str | None) -> int:
    return 1 if value is None else int(value)


def translate_diff(diff_text: str, total_lines: int) -> LineTranslation:
    """
    Build the translation table for a whole file.

    `total_lines` is the current length of the file; it is needed because
    the diff only describes the lines around each change, while the table
    has to cover every line after the last hunk as well.
    """
    table: dict[int, int | None] = {}
    old_line = 1
    new_line = 1

    for hunk in parse_hunks(diff_text):
        # With a zero count the start refers to the line before the change
        first_old = hunk.old_start if hunk.old_count else hunk.old_start + 1

        # Unchanged lines between the previous hunk and this one
        while old_line < first_old:
            table[old_line] = new_line
            old_line += 1
            new_line += 1

        remaining_old = hunk.old_count
        remaining_new = hunk.new_count
        for line in hunk.lines:
            if remaining_old <= 0 and remaining_new <= 0:
                break
            tag = line[:1]
            if tag == "-":
                table[old_line] = None
                old_line += 1
                remaining_old -= 1
            elif tag == "+":
                new_line += 1
                remaining_new -= 1
            else:
                # Context line (an empty string is a blank context line)
                table[old_line] = new_line
                old_line += 1
                new_line += 1
                remaining_old -= 1
                remaining_new -= 1

        # Context trimmed from the end of the diff text
        while remaining_old > 0 and remaining_new > 0:
            table[old_line] = new_line
            old_line += 1
            new_line += 1
            remaining_old -= 1
            remaining_new -= 1

    # Everything after the last hunk is unchanged
    while new_line <= total_lines:
        table[old_line] = new_line
        old_line += 1
        new_line += 1

    return LineTranslation(table)
