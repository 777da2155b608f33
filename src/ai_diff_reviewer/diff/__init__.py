"""
Diff Parsing

Unified diff parsing, statistics and re-serialization.
"""

from .parser import UnifiedDiffParser, parse_unified_diff, compute_diff_stats, render_unified_diff

__all__ = ['UnifiedDiffParser', 'parse_unified_diff', 'compute_diff_stats', 'render_unified_diff']
