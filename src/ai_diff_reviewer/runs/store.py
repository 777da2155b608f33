"""
Run Store

Persists review runs as directories of JSON artifacts under the
repository (`<runs_dir>/<run_id>/`).
"""

import json
import logging
import secrets
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from pydantic import ValidationError

from ..models.review import ReviewDocument, RunMeta


logger = logging.getLogger(__name__)

DEFAULT_RUNS_DIR = ".ai-diff-reviewer/runs"
DEFAULT_STATE = {"dismissed": [], "resolved": [], "view": {"type": "unified"}}


class RunNotFoundError(Exception):
    """Run directory or its artifacts do not exist"""
    def __init__(self, run_id: str):
        super().__init__(f"Run not found: {run_id}")
        self.run_id = run_id


def generate_run_id() -> str:
    """
    Generate a time-sortable run id.

    12 hex digits of milliseconds since the epoch followed by 10 random hex
    digits, so lexical order follows creation time.
    """
    millis = int(time.time() * 1000)
    return f"{millis:012x}{secrets.token_hex(5)}"


@dataclass
class RunPaths:
    run_id: str
    run_dir: Path
    meta: Path
    diff: Path
    review: Path
    state: Path
    engine_dir: Path

    @classmethod
    def for_run(cls, runs_root: Path, run_id: str) -> "RunPaths":
        run_dir = runs_root / run_id
        return cls(
            run_id=run_id,
            run_dir=run_dir,
            meta=run_dir / "meta.json",
            diff=run_dir / "diff.patch",
            review=run_dir / "review.json",
            state=run_dir / "state.json",
            engine_dir=run_dir / "engine",
        )


class RunStore:
    """
    File-system store for review runs.

    Each run gets a fresh directory; a run id is never reused, even when
    two runs start in the same millisecond.
    """

    def __init__(self, repo_root: str, runs_dir: str = DEFAULT_RUNS_DIR):
        """
        Initialize run store.

        Args:
            repo_root: Repository root the runs belong to
            runs_dir: Runs directory relative to the repository root
        """
        self.repo_root = Path(repo_root)
        self.runs_root = self.repo_root / runs_dir

    def create_run(self) -> RunPaths:
        self.runs_root.mkdir(parents=True, exist_ok=True)
        while True:
            paths = RunPaths.for_run(self.runs_root, generate_run_id())
            try:
                paths.run_dir.mkdir()
            except FileExistsError:
                logger.debug(f"Run id collision: {paths.run_id}")
                continue
            paths.engine_dir.mkdir()
            logger.info(f"Created run {paths.run_id} at {paths.run_dir}")
            return paths

    def write(self, paths: RunPaths, document: ReviewDocument, diff_text: str) -> None:
        """Write review.json, diff.patch, state.json and meta.json for a run."""
        self._write_json(paths.review, document.to_dict())
        paths.diff.write_text(diff_text, encoding="utf-8")
        self._write_json(paths.state, DEFAULT_STATE)
        self._write_json(paths.meta, RunMeta.from_document(document).to_dict())

    def read(self, run_id: str) -> Tuple[ReviewDocument, str]:
        """
        Load a stored run.

        Raises:
            RunNotFoundError: No such run, or its artifacts are missing
        """
        paths = self._paths(run_id)
        try:
            review_raw = paths.review.read_text(encoding="utf-8")
            diff_text = paths.diff.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise RunNotFoundError(run_id) from e

        return ReviewDocument.model_validate_json(review_raw), diff_text

    def read_raw(self, run_id: str) -> str:
        """Stored review.json text, unparsed."""
        try:
            return self._paths(run_id).review.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise RunNotFoundError(run_id) from e

    def read_diff(self, run_id: str) -> str:
        try:
            return self._paths(run_id).diff.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise RunNotFoundError(run_id) from e

    def list(self, limit: Optional[int] = None) -> List[RunMeta]:
        """Stored runs, newest first. Unreadable run directories are skipped."""
        if not self.runs_root.is_dir():
            return []

        metas = []
        for entry in self.runs_root.iterdir():
            if not entry.is_dir():
                continue
            meta_path = entry / "meta.json"
            try:
                metas.append(RunMeta.model_validate_json(meta_path.read_text(encoding="utf-8")))
            except FileNotFoundError:
                continue
            except ValidationError as e:
                logger.warning(f"Skipping run with invalid metadata {entry.name}: {e.error_count()} errors")

        metas.sort(key=lambda meta: (meta.created_at, meta.run_id), reverse=True)
        return metas[:limit] if limit is not None else metas

    def latest(self) -> Optional[RunMeta]:
        runs = self.list(limit=1)
        return runs[0] if runs else None

    def clear(self) -> int:
        """Delete every stored run. Returns the number of runs removed."""
        if not self.runs_root.is_dir():
            return 0

        removed = 0
        for entry in self.runs_root.iterdir():
            if entry.is_dir():
                shutil.rmtree(entry)
                removed += 1
        logger.info(f"Removed {removed} runs from {self.runs_root}")
        return removed

    def _paths(self, run_id: str) -> RunPaths:
        # Run ids are single path components
        if not run_id or "/" in run_id or "\\" in run_id or run_id in (".", ".."):
            raise RunNotFoundError(run_id)
        return RunPaths.for_run(self.runs_root, run_id)

    def _write_json(self, path: Path, payload) -> None:
        path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
