"""
Review Data Models

Change units, review groups, context notes, findings and annotations, the
engine payloads built from them, and the persisted review document.
"""

from typing import Dict, List, Literal, Optional, Tuple

from pydantic import Field, PositiveInt, field_validator

from .base import ReviewModel
from .diff import DiffStats, ParsedDiff


RiskLevel = Literal["low", "medium", "high"]


class ChangeUnit(ReviewModel):
    """One file's hunks plus derived category tags"""
    id: str
    file_path: str
    hunk_ids: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v):
        # Ordered set: JSON has no set type.
        return list(dict.fromkeys(v))


class ReviewGroup(ReviewModel):
    """Ordered, narratable bucket of hunks"""
    id: str
    title: str
    rationale: str
    review_focus: Optional[List[str]] = None
    risk: RiskLevel
    hunk_ids: List[str]
    suggested_tests: Optional[List[str]] = None


class ContextNote(ReviewModel):
    """Explanatory note tied to a group"""
    id: str
    title: str
    body_markdown: str
    confidence: float = Field(ge=0.0, le=1.0)
    group_id: str
    hunk_ids: List[str]


class Evidence(ReviewModel):
    file_path: str
    side: Optional[Literal["old", "new"]] = None
    line_range: Optional[Tuple[PositiveInt, PositiveInt]] = None
    hunk_id: Optional[str] = None
    excerpt: Optional[str] = None

    @property
    def signature(self) -> str:
        """Stable identity used for finding deduplication."""
        line_range = "-".join(str(n) for n in self.line_range) if self.line_range else ""
        parts = [self.file_path, self.side or "", self.hunk_id or "", line_range]
        return ":".join(part for part in parts if part)


class Finding(ReviewModel):
    """Concrete bug or flagged risk tied to diff evidence"""
    id: str
    kind: Literal["bug", "flag"]
    severity: Optional[Literal["severe", "normal"]] = None
    flag_class: Optional[Literal["investigate", "informational"]] = None
    confidence: float = Field(ge=0.0, le=1.0)
    title: str
    detail_markdown: str
    evidence: List[Evidence]
    status: Literal["open", "resolved", "dismissed"] = "open"

    @property
    def signature(self) -> str:
        first_file = self.evidence[0].file_path if self.evidence else "unknown"
        evidence_sig = "|".join(sorted(e.signature for e in self.evidence))
        return f"{self.kind}:{self.title}:{first_file}:{evidence_sig}"


class AnnotationAnchor(ReviewModel):
    file_path: str
    side: Literal["old", "new"]
    line: PositiveInt
    hunk_id: Optional[str] = None


class Annotation(ReviewModel):
    """Inline, line-anchored remark"""
    id: str
    kind: Literal["explain", "risk", "question", "test", "nit"]
    confidence: float = Field(ge=0.0, le=1.0)
    title: str
    body_markdown: str
    anchor: AnnotationAnchor


# Engine payloads: one schema per task kind
class GroupingPayload(ReviewModel):
    groups: List[ReviewGroup]


class ReviewPayload(ReviewModel):
    findings: List[Finding]
    context_notes: List[ContextNote]


class AnnotationsPayload(ReviewModel):
    annotations: List[Annotation]


class DiffSource(ReviewModel):
    kind: Literal["staged", "uncommitted", "range", "commit", "since", "diff-file", "diff-stdin", "text"]
    spec: str


class RepoInfo(ReviewModel):
    root: str
    head_sha: str = "unknown"
    branch: str = "unknown"
    dirty: bool = False


class AIInfo(ReviewModel):
    """How the engine stages went; always explains any fallback"""
    used_engine: bool = False
    heuristic_only: bool = True
    model: Optional[str] = None
    reasoning_effort: Optional[str] = None
    fallback_reason: Optional[str] = None
    stage_errors: Dict[str, str] = Field(default_factory=dict)
    second_pass: bool = False


class ReviewDocument(ReviewModel):
    """Unit of persistence for one run"""
    version: Literal["1.0"] = "1.0"
    run_id: str
    created_at: str
    ai: AIInfo = Field(default_factory=AIInfo)
    repo: RepoInfo
    diff_source: DiffSource
    stats: DiffStats
    diff: ParsedDiff
    groups: List[ReviewGroup] = Field(default_factory=list)
    context_notes: List[ContextNote] = Field(default_factory=list)
    annotations: List[Annotation] = Field(default_factory=list)
    findings: List[Finding] = Field(default_factory=list)

    @property
    def bug_count(self) -> int:
        return sum(1 for f in self.findings if f.kind == "bug")

    @property
    def flag_count(self) -> int:
        return sum(1 for f in self.findings if f.kind == "flag")


class RunMeta(ReviewModel):
    """Listing entry for a persisted run"""
    run_id: str
    created_at: str
    repo_root: str
    branch: str
    head_sha: str
    dirty: bool
    diff_source: DiffSource
    stats: DiffStats
    groups_count: int
    findings_count: int
    flags_count: int

    @classmethod
    def from_document(cls, document: ReviewDocument) -> "RunMeta":
        return cls(
            run_id=document.run_id,
            created_at=document.created_at,
            repo_root=document.repo.root,
            branch=document.repo.branch,
            head_sha=document.repo.head_sha,
            dirty=document.repo.dirty,
            diff_source=document.diff_source,
            stats=document.stats,
            groups_count=len(document.groups),
            findings_count=document.bug_count,
            flags_count=document.flag_count,
        )
