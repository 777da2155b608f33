"""
Change Unit Builder

Derives one change unit per diff file and tags it by category using
path heuristics.
"""

import re
import logging
from typing import Dict, List

from ..models.diff import ParsedDiff
from ..models.review import ChangeUnit


logger = logging.getLogger(__name__)

DEFAULT_TAG = "feature"


class ChangeUnitBuilder:
    """
    Builds change units from a parsed diff.

    Tags are non-exclusive labels derived purely from the file path;
    every unit receives at least one tag.
    """

    def __init__(self):
        """Initialize change unit builder."""
        # Evaluated in order; all matching tags are kept
        self.tag_patterns: Dict[str, List[str]] = {
            'tests': [
                r'(^|/)(tests?|__tests__|specs?)/',
                r'\.(spec|test)\.[^/]+$',
                r'(^|/)test_[^/]+$',
                r'_test\.[^/]+$',
            ],
            'ui': [r'\.(tsx|jsx|css|scss|sass|less|vue|svelte)$', r'(^|/)(ui|frontend)/'],
            'api': [r'(^|/)(api|routes)/', r'controller'],
            'data': [r'(^|/)(db|data)/', r'migration'],
            'docs': [r'\.(md|rst|adoc)$', r'(^|/)docs?/'],
            'config': [
                r'\.(json|ya?ml|toml|ini|cfg|env)$',
                r'(^|/)\.env',
                r'config',
            ],
            'refactor': [r'refactor'],
        }
        self._compiled = {
            tag: [re.compile(p) for p in patterns]
            for tag, patterns in self.tag_patterns.items()
        }

    def build(self, parsed: ParsedDiff) -> List[ChangeUnit]:
        """
        Build one change unit per file.

        Args:
            parsed: ParsedDiff to derive units from

        Returns:
            List of ChangeUnit objects in diff order
        """
        units = []
        seen_ids: Dict[str, int] = {}

        for file in parsed.files:
            unit_id = file.file_path
            occurrences = seen_ids.get(unit_id, 0)
            seen_ids[unit_id] = occurrences + 1
            if occurrences:
                unit_id = f"{unit_id}#{occurrences + 1}"

            units.append(ChangeUnit(
                id=unit_id,
                file_path=file.file_path,
                hunk_ids=[hunk.id for hunk in file.hunks],
                tags=self.derive_tags(file.file_path),
            ))

        logger.debug(f"Built {len(units)} change units")
        return units

    def derive_tags(self, file_path: str) -> List[str]:
        """Category tags for a path; falls back to 'feature'."""
        lower = file_path.lower()
        tags = [
            tag for tag, patterns in self._compiled.items()
            if any(p.search(lower) for p in patterns)
        ]
        return tags or [DEFAULT_TAG]
