"""
Prompt Builder

Builds the prompts sent to the external reasoning engine for grouping,
review, annotation and repair tasks.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from ..models.diff import ParsedDiff
from ..models.review import ChangeUnit, ReviewGroup


logger = logging.getLogger(__name__)


class PromptBuilder:
    """
    Builds structured prompts for engine tasks.

    Each prompt is a block of instructions followed by a JSON payload
    describing the diff and the results of earlier stages.
    """

    def __init__(self):
        """Initialize prompt builder."""
        self.templates = self._load_templates()

    def build_grouping_prompt(
        self,
        parsed: ParsedDiff,
        units: List[ChangeUnit],
        fallback_groups: List[ReviewGroup],
        repo_context: Optional[str] = None,
    ) -> str:
        payload = {
            "diff": parsed.to_dict(),
            "changeUnits": [unit.to_dict() for unit in units],
            "fallbackGroups": [group.to_dict() for group in fallback_groups],
            "repoContext": repo_context,
        }
        return self._compose(self.templates["grouping"], payload)

    def build_review_prompt(
        self,
        parsed: ParsedDiff,
        units: List[ChangeUnit],
        groups: List[ReviewGroup],
        targets: Dict[str, int],
        repo_context: Optional[str] = None,
    ) -> str:
        """
        Build the review prompt (findings + context notes).

        Args:
            parsed: Parsed diff
            units: Change units
            groups: Groups the notes must anchor to
            targets: Note budget ({minNotes, maxNotes, pass, ...})
            repo_context: Optional repository context
        """
        instructions = list(self.templates["review"])
        instructions.append(
            f"Provide {targets['minNotes']}-{targets['maxNotes']} notes for non-trivial diffs; "
            f"fewer if low-signal; max {targets['maxNotes']}."
        )
        if targets.get("pass") == 2:
            instructions.append("This is a second pass; push for deeper, more contextual notes.")
        else:
            instructions.append("Prefer deeper notes over broad coverage.")
        instructions.extend(self.templates["json_only"])

        payload = {
            "diff": parsed.to_dict(),
            "changeUnits": [unit.to_dict() for unit in units],
            "groups": [group.to_dict() for group in groups],
            "targets": targets,
            "repoContext": repo_context,
        }
        return self._compose(instructions, payload, add_json_only=False)

    def build_annotations_prompt(self, parsed: ParsedDiff, groups: List[ReviewGroup], max_annotations: int) -> str:
        instructions = list(self.templates["annotations"])
        instructions.append(f"Keep it sparse: max {max_annotations} annotations.")
        payload = {
            "diff": parsed.to_dict(),
            "groups": [group.to_dict() for group in groups],
        }
        return self._compose(instructions, payload)

    def build_repair_prompt(self, raw_output: str, schema_text: str, diagnostic: str) -> str:
        """Ask the engine to fix output that failed parsing or validation."""
        return "\n".join([
            "You returned invalid JSON for the schema.",
            "Fix the JSON to match the schema exactly. Return JSON only.",
            "---",
            "Problems:",
            diagnostic,
            "---",
            "Schema:",
            schema_text,
            "---",
            "Invalid JSON:",
            raw_output,
        ])

    def _compose(self, instructions: List[str], payload: Dict[str, Any], add_json_only: bool = True) -> str:
        sections = list(instructions)
        if add_json_only:
            sections.extend(self.templates["json_only"])
        sections.append("---")
        sections.append(json.dumps(payload, indent=2))
        return "\n".join(sections)

    def _load_templates(self) -> Dict[str, List[str]]:
        return {
            "grouping": [
                "You are preparing a review story for a code diff.",
                "Group hunks into at most 12 ordered groups with titles, rationale, review focus, and risk.",
                "Aim for 4-10 groups for non-trivial diffs; avoid generic buckets unless truly uniform.",
                "Order groups to form a narrative flow a reviewer can follow.",
                "Titles must be specific and action-oriented.",
                "Rationale should explain intent and cross-file connections in 1-3 sentences.",
                "Use only hunk ids that appear in the diff payload.",
            ],
            "review": [
                "You are a senior reviewer performing a deep code review.",
                "Return findings (bugs/flags) and contextNotes.",
                "Findings must include concrete evidence (filePath + lineRange or hunkId).",
                "Context notes must be non-obvious and high-signal; skip trivial changes.",
                "Each context note must be 2-3 paragraphs explaining intent, impact, and cross-file relationships.",
                "Do not restate line edits.",
                "Each context note must include at least one concrete identifier wrapped in backticks.",
                "Anchor each note to a groupId and 1-5 hunkIds from the diff.",
            ],
            "annotations": [
                "You are generating inline review annotations for a diff.",
                "Anchor each annotation to a file, side and line present in the diff.",
                "Prioritize non-obvious behavior, risks, and cross-file connections.",
            ],
            "json_only": [
                "Return JSON matching the provided schema. No extra keys. No prose.",
            ],
        }
