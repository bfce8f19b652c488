import re
from dataclasses import dataclass, field
from enum import Enum


class LineType(str, Enum):
    CONTEXT = "context"
    ADDITION = "addition"
    DELETION = "deletion"


@dataclass
class DiffLine:
    """A single line in a diff."""

    type: LineType
    content: str
    old_line_no: int | None = None
    new_line_no: int | None = None


@dataclass
class Hunk:
    """A hunk (section) of changes in a diff."""

    old_start: int
    old_count: int
    new_start: int
    new_count: int
    section: str = ""  # Text after the closing @@, usually the enclosing function
    lines: list[DiffLine] = field(default_factory=list)

    @property
    def additions(self) -> list[DiffLine]:
        return [line for line in self.lines if line.type == LineType.ADDITION]

    @property
    def deletions(self) -> list[DiffLine]:
        return [line for line in self.lines if line.type == LineType.DELETION]


@dataclass(frozen=True)
class ChangedLine:
    """An added line plus the surrounding lines sent to the reviewer."""

    new_line_no: int
    content: str
    context: str


class DiffParser:
    """
    Parser for the hunks of a single file's unified diff.

    GitHub returns one patch per changed file, so file headers are not
    interpreted; anything outside a hunk is skipped.
    """

    HUNK_HEADER_PATTERN = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@(.*)$")

    def parse(self, patch: str) -> list[Hunk]:
        """Parse a unified diff into hunks. Never raises on malformed input."""
        if not patch or not patch.strip():
            return []

        hunks: list[Hunk] = []
        current_hunk: Hunk | None = None
        old_line_no = 0
        new_line_no = 0

        for line in patch.split("\n"):
            hunk_match = self.HUNK_HEADER_PATTERN.match(line)
            if hunk_match:
                old_start = int(hunk_match.group(1))
                new_start = int(hunk_match.group(3))

                current_hunk = Hunk(
                    old_start=old_start,
                    old_count=int(hunk_match.group(2) or 1),
                    new_start=new_start,
                    new_count=int(hunk_match.group(4) or 1),
                    section=hunk_match.group(5).strip(),
                )
                hunks.append(current_hunk)

                # Counters restart at every header
                old_line_no = old_start
                new_line_no = new_start
                continue

            if current_hunk is None or not line:
                continue

            if line.startswith("+") and not line.startswith("+++"):
                current_hunk.lines.append(
                    DiffLine(
                        type=LineType.ADDITION,
                        content=line[1:],
                        new_line_no=new_line_no,
                    )
                )
                new_line_no += 1
            elif line.startswith("-") and not line.startswith("---"):
                current_hunk.lines.append(
                    DiffLine(
                        type=LineType.DELETION,
                        content=line[1:],
                        old_line_no=old_line_no,
                    )
                )
                old_line_no += 1
            elif line.startswith(" "):
                current_hunk.lines.append(
                    DiffLine(
                        type=LineType.CONTEXT,
                        content=line[1:],
                        old_line_no=old_line_no,
                        new_line_no=new_line_no,
                    )
                )
                old_line_no += 1
                new_line_no += 1
            # "\ No newline at end of file" and anything else: skip

        return hunks


def parse_unified_diff(patch: str) -> list[Hunk]:
    """Parse a single file's patch into hunks."""
    return DiffParser().parse(patch)


def select_changed_lines(hunks: list[Hunk], context_window: int = 3) -> list[ChangedLine]:
    """
    Extract every added line with up to ``context_window`` lines on each side.

    The window is clamped to the line's own hunk and includes the added line
    itself, so context never mixes two hunks.
    """
    changed: list[ChangedLine] = []

    for hunk in hunks:
        for index, line in enumerate(hunk.lines):
            if line.type != LineType.ADDITION or line.new_line_no is None:
                continue

            start = max(0, index - context_window)
            end = min(len(hunk.lines), index + context_window + 1)
            context = "\n".join(neighbour.content for neighbour in hunk.lines[start:end])

            changed.append(
                ChangedLine(
                    new_line_no=line.new_line_no,
                    content=line.content,
                    context=context,
                )
            )

    return changed
