"""
Result Normalizer

Reconciles engine output with the parsed diff: prunes dangling hunk
references, filters low-signal context notes and merges findings across
review passes.
"""

import logging
import math
import re
from dataclasses import dataclass
from typing import Dict, List, Optional

from ..config import ReviewConfig
from ..models.diff import DiffStats, ParsedDiff
from ..models.review import (
    Annotation,
    ChangeUnit,
    ContextNote,
    Finding,
    ReviewGroup,
)


logger = logging.getLogger(__name__)

REMAINING_GROUP_ID = "remaining-changes"


@dataclass
class ReviewTargets:
    """How many context notes the review pass should aim for."""
    min_notes: int
    max_notes: int
    files_changed: int
    hunk_count: int
    groups_count: int
    pass_number: int = 1

    def for_second_pass(self) -> "ReviewTargets":
        return ReviewTargets(
            min_notes=min(self.max_notes, self.min_notes + 2),
            max_notes=self.max_notes,
            files_changed=self.files_changed,
            hunk_count=self.hunk_count,
            groups_count=self.groups_count,
            pass_number=2,
        )

    def to_dict(self) -> Dict[str, int]:
        return {
            "minNotes": self.min_notes,
            "maxNotes": self.max_notes,
            "filesChanged": self.files_changed,
            "hunkCount": self.hunk_count,
            "groupsCount": self.groups_count,
            "pass": self.pass_number,
        }


def compute_review_targets(
    stats: DiffStats,
    units: List[ChangeUnit],
    groups: List[ReviewGroup],
    max_notes_cap: int = 12,
) -> ReviewTargets:
    """Scale the note budget with the size of the diff."""
    hunk_count = sum(len(unit.hunk_ids) for unit in units)

    min_notes = 2
    if stats.files_changed >= 6 or hunk_count >= 14:
        min_notes = 6
    elif stats.files_changed >= 3 or hunk_count >= 7:
        min_notes = 4

    max_notes = min(max_notes_cap, max(min_notes, math.ceil(len(groups) * 1.5)))

    return ReviewTargets(
        min_notes=min_notes,
        max_notes=max_notes,
        files_changed=stats.files_changed,
        hunk_count=hunk_count,
        groups_count=len(groups),
    )


class ResultNormalizer:
    """
    Normalizes engine results against the diff and known groups.

    Every hunk id that survives normalization exists in the diff the
    review was built from.
    """

    def __init__(self, config: Optional[ReviewConfig] = None):
        """
        Initialize result normalizer.

        Args:
            config: Review settings (word minimum, result caps)
        """
        self.config = config or ReviewConfig()

        # Generic titles that carry no reviewer value
        self.boilerplate_title_patterns = [
            r'change note',
            r'update',
        ]

        # Prose that only restates the diff mechanics
        self.mechanical_pattern = re.compile(
            r'\b(line|lines|added|removed|inserted|deleted|renamed)\b', re.IGNORECASE
        )

        # Prose that carries reasoning about consequences
        self.reasoning_pattern = re.compile(
            r'\b(because|impact|affect|invariant|contract|risk|compatibility|migration|'
            r'performance|latency|security|behavior|edge case|regression|downstream|'
            r'caller|api|protocol)\b',
            re.IGNORECASE,
        )

        self.identifier_pattern = re.compile(r'`[^`]+`')
        self.paragraph_pattern = re.compile(r'\n\s*\n')

    def normalize_notes(
        self,
        notes: List[ContextNote],
        groups: List[ReviewGroup],
        max_count: int,
    ) -> List[ContextNote]:
        """
        Validate context notes against the known groups.

        Args:
            notes: Candidate notes in engine priority order
            groups: Groups the notes must attach to
            max_count: Maximum number of notes to keep

        Returns:
            Surviving notes, order preserved, truncated to max_count
        """
        group_index = {group.id: group for group in groups}
        valid_hunk_ids = {hunk_id for group in groups for hunk_id in group.hunk_ids}
        normalized = []

        for note in notes or []:
            pruned = [hunk_id for hunk_id in note.hunk_ids if hunk_id in valid_hunk_ids]
            if not pruned:
                logger.debug(f"Dropping note {note.id!r}: no known hunk ids")
                continue

            # The resolved group must own at least one surviving hunk.
            group = group_index.get(note.group_id)
            if group is None or not any(hunk_id in group.hunk_ids for hunk_id in pruned):
                group = next(
                    (g for g in groups if any(hunk_id in g.hunk_ids for hunk_id in pruned)),
                    None,
                )
            if group is None:
                logger.debug(f"Dropping note {note.id!r}: no matching group")
                continue

            candidate = note.model_copy(update={"group_id": group.id, "hunk_ids": pruned})

            issues = self.note_issues(candidate)
            if issues:
                logger.debug(f"Dropping low-signal note {note.id!r}: {issues}")
                continue

            normalized.append(candidate)

        return normalized[:max(0, max_count)]

    def note_issues(self, note: ContextNote) -> List[str]:
        """Reasons a note fails the high-signal filter (empty if it passes)."""
        text = note.body_markdown.strip()
        if not text:
            return ["Empty body"]

        issues = []
        title = note.title.lower()
        for pattern in self.boilerplate_title_patterns:
            if re.search(pattern, title):
                issues.append(f"Boilerplate title: {pattern}")

        word_count = len(text.split())
        if word_count < self.config.min_note_words:
            issues.append(f"Too short: {word_count} words")

        paragraphs = [p for p in self.paragraph_pattern.split(text) if p.strip()]
        if len(paragraphs) < 2:
            issues.append("Fewer than two paragraphs")

        if not self.identifier_pattern.search(text):
            issues.append("No inline identifier")

        if self.mechanical_pattern.search(text) and not self.reasoning_pattern.search(text):
            issues.append("Restates edits without reasoning")

        return issues

    def is_high_signal(self, note: ContextNote) -> bool:
        return not self.note_issues(note)

    def merge_findings(self, primary: List[Finding], secondary: List[Finding]) -> List[Finding]:
        """
        Merge findings from two passes.

        Deduplicates by signature; the first occurrence wins, so primary
        findings take precedence and secondary-only ones are appended.
        """
        merged: Dict[str, Finding] = {}

        for finding in list(primary) + list(secondary):
            merged.setdefault(finding.signature, finding)

        return list(merged.values())[:self.config.max_findings]

    def normalize_groups(self, groups: List[ReviewGroup], parsed: ParsedDiff) -> List[ReviewGroup]:
        """
        Restrict engine groups to real hunks.

        Unknown hunk ids are removed, groups left empty are dropped and any
        hunk no group covers is collected into a trailing group.
        """
        known = parsed.hunk_ids()
        known_set = set(known)
        normalized = []
        covered = set()

        for group in groups:
            hunk_ids = [hunk_id for hunk_id in dict.fromkeys(group.hunk_ids) if hunk_id in known_set]
            dropped = len(group.hunk_ids) - len(hunk_ids)
            if dropped:
                logger.warning(f"Group {group.id!r} referenced {dropped} unknown hunk ids")
            if not hunk_ids:
                continue
            covered.update(hunk_ids)
            normalized.append(group.model_copy(update={"hunk_ids": hunk_ids}))

        uncovered = [hunk_id for hunk_id in dict.fromkeys(known) if hunk_id not in covered]
        if normalized and uncovered:
            normalized.append(ReviewGroup(
                id=REMAINING_GROUP_ID,
                title="Remaining changes",
                rationale="Hunks the engine grouping did not place in any group.",
                review_focus=["Scan for unexpected behavior changes."],
                risk="low",
                hunk_ids=uncovered,
            ))

        return normalized

    def sanitize_findings(self, findings: List[Finding], parsed: ParsedDiff) -> List[Finding]:
        """Clear evidence hunk ids that do not exist in the diff."""
        known = set(parsed.hunk_ids())
        sanitized = []

        for finding in findings:
            evidence = [
                e if e.hunk_id is None or e.hunk_id in known else e.model_copy(update={"hunk_id": None})
                for e in finding.evidence
            ]
            sanitized.append(finding.model_copy(update={"evidence": evidence}))

        return sanitized

    def normalize_annotations(self, annotations: List[Annotation], parsed: ParsedDiff) -> List[Annotation]:
        """Drop annotations anchored outside the diff; clear unknown hunk ids."""
        known_files = set(parsed.file_paths())
        known_hunks = set(parsed.hunk_ids())
        normalized = []

        for annotation in annotations:
            anchor = annotation.anchor
            if anchor.file_path not in known_files:
                logger.debug(f"Dropping annotation {annotation.id!r}: unknown file {anchor.file_path}")
                continue
            if anchor.hunk_id is not None and anchor.hunk_id not in known_hunks:
                annotation = annotation.model_copy(
                    update={"anchor": anchor.model_copy(update={"hunk_id": None})}
                )
            normalized.append(annotation)

        return normalized[:self.config.max_annotations]


def normalize_context_notes(
    notes: List[ContextNote],
    groups: List[ReviewGroup],
    max_count: int,
) -> List[ContextNote]:
    return ResultNormalizer().normalize_notes(notes, groups, max_count)


def merge_findings(primary: List[Finding], secondary: List[Finding]) -> List[Finding]:
    return ResultNormalizer().merge_findings(primary, secondary)
