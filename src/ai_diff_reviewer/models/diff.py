"""
Diff Data Models

Line-addressable model of a unified diff: files, hunks and lines.
"""

from typing import Dict, List, Literal, Optional

from pydantic import Field, field_validator, model_validator

from .base import ReviewModel


LineType = Literal["context", "add", "del"]


def get_hunk_id(
    file_path: str,
    old_start: int,
    old_lines: int,
    new_start: int,
    new_lines: int,
) -> str:
    """Composite hunk key, reproducible from the file path and hunk header."""
    return f"{file_path}:{old_start},{old_lines}:{new_start},{new_lines}"


class DiffLine(ReviewModel):
    """Single line inside a hunk"""
    type: LineType
    content: str
    old_line_number: Optional[int] = None
    new_line_number: Optional[int] = None

    @model_validator(mode="after")
    def validate_line_numbers(self):
        if self.type == "add" and self.old_line_number is not None:
            raise ValueError("add lines carry only a new line number")
        if self.type == "del" and self.new_line_number is not None:
            raise ValueError("del lines carry only an old line number")
        return self


class DiffHunk(ReviewModel):
    """Contiguous changed region of one file"""
    id: str
    old_start: int
    old_lines: int
    new_start: int
    new_lines: int
    header: Optional[str] = None
    lines: List[DiffLine] = Field(default_factory=list)

    @field_validator("old_start", "new_start", "old_lines", "new_lines")
    @classmethod
    def validate_non_negative(cls, v):
        if v < 0:
            raise ValueError("Line numbers and counts must be non-negative")
        return v

    @property
    def old_count(self) -> int:
        """Number of lines present on the old side (del + context)."""
        return sum(1 for line in self.lines if line.type != "add")

    @property
    def new_count(self) -> int:
        """Number of lines present on the new side (add + context)."""
        return sum(1 for line in self.lines if line.type != "del")


class DiffFile(ReviewModel):
    """All hunks touching one file"""
    file_path: str
    old_path: Optional[str] = None
    new_path: Optional[str] = None
    hunks: List[DiffHunk] = Field(default_factory=list)
    is_binary: bool = False

    @property
    def change_type(self) -> str:
        if self.old_path is None and self.new_path is not None:
            return "added"
        if self.new_path is None and self.old_path is not None:
            return "deleted"
        if self.old_path and self.new_path and self.old_path != self.new_path:
            return "renamed"
        return "modified"


class ParsedDiff(ReviewModel):
    """Root artifact of a parse; read by every downstream component."""
    files: List[DiffFile] = Field(default_factory=list)

    def hunk_ids(self) -> List[str]:
        return [hunk.id for file in self.files for hunk in file.hunks]

    def hunk_index(self) -> Dict[str, DiffHunk]:
        index: Dict[str, DiffHunk] = {}
        for file in self.files:
            for hunk in file.hunks:
                index.setdefault(hunk.id, hunk)
        return index

    def file_paths(self) -> List[str]:
        return [file.file_path for file in self.files]


class DiffStats(ReviewModel):
    files_changed: int = 0
    insertions: int = 0
    deletions: int = 0
