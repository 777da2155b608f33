"""
Repository Context Loader

Collects short free-form repository context handed to the engine along
with the diff.
"""

import json
import logging
import tomllib
from pathlib import Path
from typing import List, Optional


logger = logging.getLogger(__name__)

CONTEXT_FILE_NAMES = ["context.md", "context.txt"]


class RepoContextLoader:
    """
    Loads repository context for review prompts.

    Lookup order: an explicit path, then context files in the tool
    directory, then the project name and description from package metadata.
    """

    def __init__(self, repo_root: str, tool_dir: str = ".ai-diff-reviewer", max_chars: int = 4000):
        """
        Initialize context loader.

        Args:
            repo_root: Repository root directory
            tool_dir: Directory (relative to the root) holding context files
            max_chars: Maximum context length before truncation
        """
        self.repo_root = Path(repo_root)
        self.tool_dir = self.repo_root / tool_dir
        self.max_chars = max_chars

    def load(self, explicit_path: Optional[str] = None) -> Optional[str]:
        candidates: List[Path] = []
        if explicit_path:
            candidates.append(Path(explicit_path).resolve())
        candidates.extend(self.tool_dir / name for name in CONTEXT_FILE_NAMES)

        for candidate in candidates:
            try:
                raw = candidate.read_text(encoding="utf-8")
            except FileNotFoundError:
                continue
            except (OSError, UnicodeDecodeError) as e:
                logger.debug(f"Skipping unreadable repo context {candidate}: {e}")
                continue
            if raw.strip():
                logger.debug(f"Loaded repo context from {candidate}")
                return self._truncate(raw)

        summary = self._package_summary()
        return self._truncate(summary) if summary else None

    def _package_summary(self) -> Optional[str]:
        """Project name/description from package.json or pyproject.toml."""
        name, description = self._read_package_json()
        if not (name or description):
            name, description = self._read_pyproject()
        if not (name or description):
            return None

        lines = []
        if name:
            lines.append(f"Project: {name}")
        if description:
            lines.append(description)
        return "\n".join(lines)

    def _read_package_json(self):
        try:
            data = json.loads((self.repo_root / "package.json").read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return None, None
        if not isinstance(data, dict):
            return None, None
        return data.get("name"), data.get("description")

    def _read_pyproject(self):
        try:
            data = tomllib.loads((self.repo_root / "pyproject.toml").read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return None, None
        project = data.get("project", {})
        return project.get("name"), project.get("description")

    def _truncate(self, text: str) -> str:
        trimmed = text.strip()
        if len(trimmed) <= self.max_chars:
            return trimmed
        return f"{trimmed[:self.max_chars]}\n\n[Truncated repo context]"
