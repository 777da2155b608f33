"""
Unified Diff Parser

Parses raw unified diff text into an exact, line-addressable ParsedDiff.
Handles git headers, headerless diffs, hunk headers and line numbering.
"""

import re
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..models.diff import DiffFile, DiffHunk, DiffLine, DiffStats, ParsedDiff, get_hunk_id


logger = logging.getLogger(__name__)

NO_NEWLINE_MARKER = "\\ No newline at end of file"
LINE_MARKERS = {"add": "+", "del": "-", "context": " "}


@dataclass
class _ParseState:
    """Cursor state for a single pass over the diff lines."""
    files: List[DiffFile] = field(default_factory=list)
    file: Optional[DiffFile] = None
    hunk: Optional[DiffHunk] = None
    old_line: int = 0
    new_line: int = 0
    old_remaining: int = 0
    new_remaining: int = 0

    @property
    def expecting_body(self) -> bool:
        """True while the open hunk has not yet seen all lines its header declares."""
        return self.hunk is not None and (self.old_remaining > 0 or self.new_remaining > 0)

    @property
    def file_has_hunks(self) -> bool:
        return self.file is not None and (self.hunk is not None or bool(self.file.hunks))

    def flush_hunk(self) -> None:
        if self.file is not None and self.hunk is not None:
            self.file.hunks.append(self.hunk)
        self.hunk = None
        self.old_remaining = 0
        self.new_remaining = 0

    def flush_file(self) -> None:
        self.flush_hunk()
        if self.file is not None:
            self.files.append(self.file)
        self.file = None


class UnifiedDiffParser:
    """
    Parser for unified diff text.

    Never raises: malformed or partial input produces a best-effort tree,
    and lines outside any file or hunk context are dropped.
    """

    def __init__(self):
        """Initialize unified diff parser."""
        self.git_header_pattern = re.compile(r'^diff --git a/(.+) b/(.+)$')
        self.diff_header_pattern = re.compile(r'^@@\s+-(\d+)(?:,(\d+))?\s+\+(\d+)(?:,(\d+))?\s+@@\s*(.*)$')
        self.binary_file_pattern = re.compile(r'^Binary files? .* differ')

    def parse(self, diff_text: str, default_path: Optional[str] = None) -> ParsedDiff:
        """
        Parse unified diff text into a ParsedDiff.

        Args:
            diff_text: Raw unified diff
            default_path: File path for bare hunks that arrive without any
                file header (e.g. a single-file patch body)

        Returns:
            ParsedDiff with files, hunks and numbered lines
        """
        state = _ParseState()

        for raw_line in (diff_text or "").split("\n"):
            line = raw_line[:-1] if raw_line.endswith("\r") else raw_line
            self._consume(state, line, default_path)

        state.flush_file()

        hunk_count = sum(len(f.hunks) for f in state.files)
        logger.debug(f"Parsed diff: {len(state.files)} files, {hunk_count} hunks")
        return ParsedDiff(files=state.files)

    def _consume(self, state: _ParseState, line: str, default_path: Optional[str]) -> None:
        # Body lines win while the hunk still expects them, so deleted "-- x"
        # or added "++ x" content is never read as a file header.
        if state.expecting_body and not line.startswith(("diff --git ", "@@", "\\")):
            self._append_body_line(state, line)
            return

        if line.startswith("diff --git "):
            state.flush_file()
            self._start_git_file(state, line)
            return

        if line.startswith("--- "):
            self._handle_old_path(state, self._clean_path(line[4:], "a/"))
            return

        if line.startswith("+++ "):
            self._handle_new_path(state, self._clean_path(line[4:], "b/"))
            return

        if line.startswith("@@"):
            if state.file is None and default_path is not None:
                state.file = DiffFile(file_path=default_path, old_path=default_path, new_path=default_path)
            if state.file is None:
                return
            state.flush_hunk()
            self._start_hunk(state, line)
            return

        if state.hunk is None:
            self._handle_file_metadata(state, line)
            return

        if line.startswith(NO_NEWLINE_MARKER):
            return

        # Tolerate bodies longer than their header declares.
        if line[:1] in ("+", "-", " "):
            self._append_body_line(state, line)

    def _start_git_file(self, state: _ParseState, line: str) -> None:
        match = self.git_header_pattern.match(line.strip())
        old_path = match.group(1) if match else None
        new_path = match.group(2) if match else None
        state.file = DiffFile(
            file_path=new_path or old_path or "",
            old_path=old_path,
            new_path=new_path,
        )

    def _handle_old_path(self, state: _ParseState, path: Optional[str]) -> None:
        if state.file is None or state.file_has_hunks:
            # Headerless diff: the path markers open the next file.
            state.flush_file()
            state.file = DiffFile(file_path=path or "", old_path=path)
            return

        state.file.old_path = path
        if not state.file.file_path and path:
            state.file.file_path = path

    def _handle_new_path(self, state: _ParseState, path: Optional[str]) -> None:
        if state.file is None or state.file_has_hunks:
            state.flush_file()
            state.file = DiffFile(file_path=path or "", new_path=path)
            return

        state.file.new_path = path
        state.file.file_path = path or state.file.old_path or state.file.file_path

    def _handle_file_metadata(self, state: _ParseState, line: str) -> None:
        """Extended git headers between the file header and its first hunk."""
        if state.file is None:
            return

        if line.startswith("rename from "):
            state.file.old_path = line[len("rename from "):].strip()
        elif line.startswith("rename to "):
            state.file.new_path = line[len("rename to "):].strip()
            state.file.file_path = state.file.new_path
        elif self.binary_file_pattern.match(line):
            state.file.is_binary = True
            logger.debug(f"Binary file diff: {state.file.file_path}")

    def _start_hunk(self, state: _ParseState, line: str) -> None:
        header_match = self.diff_header_pattern.match(line)
        if not header_match:
            logger.debug(f"Skipping malformed hunk header: {line!r}")
            return

        old_start = int(header_match.group(1))
        old_lines = int(header_match.group(2) or 1)
        new_start = int(header_match.group(3))
        new_lines = int(header_match.group(4) or 1)
        header = header_match.group(5).strip()

        state.hunk = DiffHunk(
            id=get_hunk_id(state.file.file_path, old_start, old_lines, new_start, new_lines),
            old_start=old_start,
            old_lines=old_lines,
            new_start=new_start,
            new_lines=new_lines,
            header=header or None,
        )
        state.old_line = old_start
        state.new_line = new_start
        state.old_remaining = old_lines
        state.new_remaining = new_lines

    def _append_body_line(self, state: _ParseState, line: str) -> None:
        marker = line[:1]

        if marker == "+":
            diff_line = DiffLine(type="add", content=line[1:], new_line_number=state.new_line)
            state.new_line += 1
            state.new_remaining -= 1
        elif marker == "-":
            diff_line = DiffLine(type="del", content=line[1:], old_line_number=state.old_line)
            state.old_line += 1
            state.old_remaining -= 1
        else:
            diff_line = DiffLine(
                type="context",
                content=line[1:] if marker == " " else line,
                old_line_number=state.old_line,
                new_line_number=state.new_line,
            )
            state.old_line += 1
            state.new_line += 1
            state.old_remaining -= 1
            state.new_remaining -= 1

        state.hunk.lines.append(diff_line)

    def _clean_path(self, raw: str, prefix: str) -> Optional[str]:
        """Strip the a/ or b/ prefix and any tab-separated timestamp."""
        path = raw.split("\t", 1)[0].strip()
        if len(path) >= 2 and path.startswith('"') and path.endswith('"'):
            path = path[1:-1]
        if path == "/dev/null":
            return None
        if path.startswith(prefix):
            path = path[len(prefix):]
        return path or None


def parse_unified_diff(diff_text: str, default_path: Optional[str] = None) -> ParsedDiff:
    """Parse unified diff text with a fresh parser."""
    return UnifiedDiffParser().parse(diff_text, default_path=default_path)


def compute_diff_stats(parsed: ParsedDiff) -> DiffStats:
    """Count files, inserted and deleted lines."""
    insertions = 0
    deletions = 0

    for file in parsed.files:
        for hunk in file.hunks:
            for line in hunk.lines:
                if line.type == "add":
                    insertions += 1
                elif line.type == "del":
                    deletions += 1

    return DiffStats(
        files_changed=len(parsed.files),
        insertions=insertions,
        deletions=deletions,
    )


def render_unified_diff(parsed: ParsedDiff) -> str:
    """Serialize a ParsedDiff back to git-style unified diff text."""
    out: List[str] = []

    for file in parsed.files:
        old = file.old_path or file.file_path
        new = file.new_path or file.file_path
        out.append(f"diff --git a/{old} b/{new}")
        out.append(f"--- a/{file.old_path}" if file.old_path else "--- /dev/null")
        out.append(f"+++ b/{file.new_path}" if file.new_path else "+++ /dev/null")
        if file.is_binary:
            out.append(f"Binary files a/{old} and b/{new} differ")

        for hunk in file.hunks:
            header = f"@@ -{hunk.old_start},{hunk.old_lines} +{hunk.new_start},{hunk.new_lines} @@"
            if hunk.header:
                header += f" {hunk.header}"
            out.append(header)
            out.extend(LINE_MARKERS[line.type] + line.content for line in hunk.lines)

    return "\n".join(out) + "\n" if out else ""
