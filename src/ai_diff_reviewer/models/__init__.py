"""
Data Models

Diff tree, review artifacts and engine payload schemas.
"""

from .base import ReviewModel
from .diff import DiffLine, DiffHunk, DiffFile, ParsedDiff, DiffStats, get_hunk_id
from .review import (
    ChangeUnit,
    ReviewGroup,
    ContextNote,
    Evidence,
    Finding,
    Annotation,
    AnnotationAnchor,
    GroupingPayload,
    ReviewPayload,
    AnnotationsPayload,
    DiffSource,
    RepoInfo,
    AIInfo,
    ReviewDocument,
    RunMeta,
)

__all__ = [
    "ReviewModel",
    "DiffLine",
    "DiffHunk",
    "DiffFile",
    "ParsedDiff",
    "DiffStats",
    "get_hunk_id",
    "ChangeUnit",
    "ReviewGroup",
    "ContextNote",
    "Evidence",
    "Finding",
    "Annotation",
    "AnnotationAnchor",
    "GroupingPayload",
    "ReviewPayload",
    "AnnotationsPayload",
    "DiffSource",
    "RepoInfo",
    "AIInfo",
    "ReviewDocument",
    "RunMeta",
]
