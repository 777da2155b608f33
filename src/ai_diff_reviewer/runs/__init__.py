"""
Run persistence
"""

from .store import RunNotFoundError, RunPaths, RunStore, generate_run_id

__all__ = ["RunNotFoundError", "RunPaths", "RunStore", "generate_run_id"]
