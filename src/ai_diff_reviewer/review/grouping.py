"""
Heuristic Grouper

Deterministic fallback that buckets change units into ordered review
groups without any external engine.
"""

import logging
from typing import Dict, List, Optional, Set

from ..models.review import ChangeUnit, ReviewGroup


logger = logging.getLogger(__name__)

PRIORITY_ORDER = ["feature", "api", "ui", "data", "refactor", "tests", "docs", "config"]
MISC_GROUP_ID = "heuristic-misc"

TAG_TITLES = {
    "feature": "Feature work",
    "api": "API changes",
    "ui": "UI updates",
    "data": "Data layer",
    "refactor": "Refactors",
    "tests": "Tests",
    "docs": "Documentation",
    "config": "Configuration",
}

TAG_DESCRIPTIONS = {
    "feature": "Product changes",
    "api": "API-facing updates",
    "ui": "UI-facing updates",
    "data": "Data layer updates",
    "refactor": "Refactor-focused updates",
    "tests": "Test updates",
    "docs": "Documentation or README updates",
    "config": "Configuration or metadata updates",
}

TAG_REVIEW_FOCUS = {
    "feature": ["New behavior and edge cases.", "Backward compatibility risks."],
    "api": ["Request/response contracts.", "Auth and validation paths."],
    "ui": ["User flow and state changes.", "Visual regressions."],
    "data": ["Query correctness and migrations.", "Performance regressions."],
    "refactor": ["Behavior parity vs. prior logic.", "Potential hidden side effects."],
    "tests": ["Coverage gaps vs. new behavior."],
    "docs": ["Accuracy vs. code changes."],
    "config": ["Runtime defaults and environment impact."],
}


class HeuristicGrouper:
    """
    Buckets change units by a primary tag.

    The output order is a pure function of tag priority, so identical
    inputs always produce the same narrative sequence.
    """

    def __init__(self, priority_order: Optional[List[str]] = None):
        self.priority_order = list(priority_order or PRIORITY_ORDER)

    def group(self, units: List[ChangeUnit]) -> List[ReviewGroup]:
        """
        Group change units into review groups.

        Args:
            units: Change units to bucket

        Returns:
            Ordered review groups partitioning all unit hunk ids
        """
        buckets: Dict[str, List[ChangeUnit]] = {}
        leftover: List[ChangeUnit] = []

        for unit in units:
            primary = self.pick_primary_tag(unit.tags)
            if primary is None:
                leftover.append(unit)
            else:
                buckets.setdefault(primary, []).append(unit)

        # A hunk id can repeat when a diff lists the same file twice.
        seen: Set[str] = set()
        groups = []

        for tag in self.priority_order:
            items = buckets.get(tag)
            if not items:
                continue
            groups.append(ReviewGroup(
                id=f"heuristic-{tag}",
                title=TAG_TITLES.get(tag, tag.title()),
                rationale=self._build_rationale(tag, items),
                review_focus=list(TAG_REVIEW_FOCUS.get(tag, ["Scan for unexpected behavior changes."])),
                risk="medium" if tag == "feature" else "low",
                hunk_ids=self._collect_hunk_ids(items, seen),
                suggested_tests=["Run updated tests"] if tag == "tests" else None,
            ))

        if leftover:
            groups.append(ReviewGroup(
                id=MISC_GROUP_ID,
                title="Miscellaneous updates",
                rationale="Files that do not match common buckets.",
                review_focus=["Scan for unexpected behavior changes."],
                risk="low",
                hunk_ids=self._collect_hunk_ids(leftover, seen),
            ))

        logger.debug(f"Heuristic grouping produced {len(groups)} groups")
        return groups

    def pick_primary_tag(self, tags: List[str]) -> Optional[str]:
        for tag in self.priority_order:
            if tag in tags:
                return tag
        return None

    def _collect_hunk_ids(self, items: List[ChangeUnit], seen: Set[str]) -> List[str]:
        hunk_ids = []
        for unit in items:
            for hunk_id in unit.hunk_ids:
                if hunk_id not in seen:
                    seen.add(hunk_id)
                    hunk_ids.append(hunk_id)
        return hunk_ids

    def _build_rationale(self, tag: str, items: List[ChangeUnit]) -> str:
        description = TAG_DESCRIPTIONS.get(tag, "Related updates")
        return f"{description} in {summarize_locations(items)} across {len(items)} file(s)."


def summarize_locations(items: List[ChangeUnit]) -> str:
    """Human list of up to three leading path prefixes."""
    candidates: List[str] = []
    for item in items:
        parts = item.file_path.split("/")
        location = "/".join(parts[:2]) if len(parts) >= 2 else parts[0]
        if location and location not in candidates:
            candidates.append(location)

    locations = candidates[:3]
    if not locations:
        return "multiple areas"
    if len(locations) == 1:
        return locations[0]
    return f"{', '.join(locations[:-1])} and {locations[-1]}"
