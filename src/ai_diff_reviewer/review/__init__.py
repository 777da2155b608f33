"""
Review Building

Change units, heuristic grouping, repository context and result
normalization.
"""

from .context import RepoContextLoader
from .grouping import HeuristicGrouper
from .normalizer import (
    ResultNormalizer,
    ReviewTargets,
    compute_review_targets,
    merge_findings,
    normalize_context_notes,
)
from .units import ChangeUnitBuilder

__all__ = [
    'ChangeUnitBuilder',
    'HeuristicGrouper',
    'RepoContextLoader',
    'ResultNormalizer',
    'ReviewTargets',
    'compute_review_targets',
    'merge_findings',
    'normalize_context_notes',
]
