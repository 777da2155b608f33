"""
Git Client

Reads diffs and repository metadata through the git command line.
"""

import asyncio
import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from ..engine.executor import AsyncSubprocessExecutor, EngineExecutionError, ProcessExecutor
from ..models.review import DiffSource, RepoInfo


logger = logging.getLogger(__name__)

REPO_ROOT_ENV = "REPO_ROOT"
GIT_TIMEOUT_SECONDS = 60.0


class GitCommandError(Exception):
    """Git command failed"""
    def __init__(self, message: str, command: Optional[List[str]] = None,
                 exit_code: Optional[int] = None, stderr: str = ""):
        super().__init__(message)
        self.command = list(command or [])
        self.exit_code = exit_code
        self.stderr = stderr


@dataclass
class DiffOptions:
    """Diff selector. With no selector set, uncommitted changes are used."""
    staged: bool = False
    uncommitted: bool = False
    range: Optional[str] = None
    commit: Optional[str] = None
    since: Optional[str] = None
    diff_file: Optional[str] = None
    diff_stdin: bool = False
    paths: List[str] = field(default_factory=list)


@dataclass
class DiffResult:
    diff_text: str
    diff_source: DiffSource


class GitClient:
    """
    Async git command line client.

    All commands run in `cwd`; failures raise GitCommandError with the
    command, exit code and stderr.
    """

    def __init__(self, cwd: Optional[str] = None, executor: Optional[ProcessExecutor] = None):
        """
        Initialize git client.

        Args:
            cwd: Working directory for git commands (default: current directory)
            executor: Process executor (subprocess by default)
        """
        self.cwd = str(Path(cwd or os.getcwd()))
        self.executor = executor or AsyncSubprocessExecutor()

    async def run(self, *args: str) -> str:
        command = ["git", *args]
        try:
            result = await self.executor.execute(command, cwd=self.cwd, timeout=GIT_TIMEOUT_SECONDS)
        except EngineExecutionError as e:
            raise GitCommandError(f"Failed to run git: {e.message}", command=command) from e

        if result.exit_code != 0:
            raise GitCommandError(
                f"git {' '.join(args)} exited with code {result.exit_code}",
                command=command,
                exit_code=result.exit_code,
                stderr=result.stderr.strip(),
            )
        return result.stdout

    async def repo_root(self) -> str:
        override = os.getenv(REPO_ROOT_ENV)
        if override:
            return override
        return (await self.run("rev-parse", "--show-toplevel")).strip()

    async def head_sha(self) -> str:
        return (await self.run("rev-parse", "HEAD")).strip()

    async def branch_name(self) -> str:
        return (await self.run("rev-parse", "--abbrev-ref", "HEAD")).strip()

    async def is_dirty(self) -> bool:
        return bool((await self.run("status", "--porcelain")).strip())

    async def repo_info(self) -> RepoInfo:
        """
        Collect repository metadata.

        Outside a git repository (or without commits) the root falls back to
        the working directory and the remaining fields to 'unknown'.
        """
        try:
            root = await self.repo_root()
        except GitCommandError as e:
            logger.info(f"Not a git repository ({e}); using {self.cwd}")
            return RepoInfo(root=self.cwd)

        head, branch, dirty = await asyncio.gather(
            self.head_sha(), self.branch_name(), self.is_dirty(), return_exceptions=True
        )
        for value in (head, branch, dirty):
            if isinstance(value, BaseException) and not isinstance(value, GitCommandError):
                raise value

        return RepoInfo(
            root=root,
            head_sha=head if isinstance(head, str) else "unknown",
            branch=branch if isinstance(branch, str) else "unknown",
            dirty=dirty if isinstance(dirty, bool) else False,
        )

    async def get_diff(self, options: DiffOptions) -> DiffResult:
        """
        Read a diff for the selected source.

        Args:
            options: Diff selector

        Returns:
            Diff text with a description of where it came from
        """
        pathspecs = list(options.paths)

        if options.diff_file:
            diff_text = Path(options.diff_file).read_text(encoding="utf-8")
            return DiffResult(diff_text, DiffSource(kind="diff-file", spec=options.diff_file))

        if options.diff_stdin:
            diff_text = await asyncio.to_thread(sys.stdin.read)
            return DiffResult(diff_text, DiffSource(kind="diff-stdin", spec="stdin"))

        if options.staged:
            diff_text = await self._diff(["--cached"], pathspecs)
            return DiffResult(diff_text, DiffSource(kind="staged", spec="--staged"))

        if options.range:
            diff_text = await self._diff([options.range], pathspecs)
            return DiffResult(diff_text, DiffSource(kind="range", spec=options.range))

        if options.commit:
            diff_text = await self.run("show", "--format=", "-M", "-C", options.commit, "--", *pathspecs)
            return DiffResult(diff_text, DiffSource(kind="commit", spec=options.commit))

        if options.since:
            diff_text = await self._diff([f"{options.since}..HEAD"], pathspecs)
            return DiffResult(diff_text, DiffSource(kind="since", spec=options.since))

        diff_text = await self._diff([], pathspecs)
        return DiffResult(diff_text, DiffSource(kind="uncommitted", spec="--uncommitted"))

    async def _diff(self, revisions: List[str], pathspecs: List[str]) -> str:
        command = ["diff", "-M", "-C", *revisions]
        if pathspecs:
            command.extend(["--", *pathspecs])
        return await self.run(*command)
