"""
Git integration
"""

from .client import DiffOptions, DiffResult, GitClient, GitCommandError

__all__ = ["DiffOptions", "DiffResult", "GitClient", "GitCommandError"]
