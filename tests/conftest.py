"""
Shared test fixtures: sample diffs, engine outputs and a scripted executor
that stands in for the engine process.
"""

import json
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from ai_diff_reviewer.diff.parser import compute_diff_stats, parse_unified_diff
from ai_diff_reviewer.engine.executor import EngineExecutionError, ExecutionResult
from ai_diff_reviewer.models.review import (
    AIInfo,
    ContextNote,
    DiffSource,
    Finding,
    GroupingPayload,
    RepoInfo,
    ReviewDocument,
)


SAMPLE_DIFF = "\n".join([
    "diff --git a/src/app.py b/src/app.py",
    "index 1111111..2222222 100644",
    "--- a/src/app.py",
    "+++ b/src/app.py",
    "@@ -1,3 +1,4 @@ import os",
    " import os",
    "-import sys",
    "+import json",
    "+import logging",
    " ",
    "@@ -10,2 +11,2 @@ def main():",
    "-    run()",
    "+    run(config)",
    "     return 0",
    "diff --git a/tests/test_app.py b/tests/test_app.py",
    "new file mode 100644",
    "index 0000000..3333333",
    "--- /dev/null",
    "+++ b/tests/test_app.py",
    "@@ -0,0 +1,2 @@",
    "+def test_main():",
    "+    assert main() == 0",
    "diff --git a/README.md b/README.md",
    "--- a/README.md",
    "+++ b/README.md",
    "@@ -1 +1 @@",
    "-Old title",
    "+New title",
    "",
])

APP_HUNK_1 = "src/app.py:1,3:1,4"
APP_HUNK_2 = "src/app.py:10,2:11,2"
TEST_HUNK = "tests/test_app.py:0,0:1,2"
README_HUNK = "README.md:1,1:1,1"
SAMPLE_HUNK_IDS = [APP_HUNK_1, APP_HUNK_2, TEST_HUNK, README_HUNK]

NOTE_BODY = (
    "The new `run(config)` call threads configuration into the runner instead of relying on "
    "module globals, which changes the contract for every caller that previously invoked the "
    "runner without arguments. Because the entry point now owns configuration, misconfigured "
    "environments fail at startup rather than on the first request.\n\n"
    "Downstream scripts that import `main` directly keep working, but any caller that patched "
    "the global configuration in tests will silently lose that behavior. Reviewers should "
    "confirm the compatibility of existing callers and that the regression tests cover both "
    "entry points."
)


def make_note(note_id: str = "note-1", group_id: str = "core", hunk_ids: Optional[List[str]] = None,
              title: str = "Runner now receives explicit configuration", body: str = NOTE_BODY) -> Dict:
    return {
        "id": note_id,
        "title": title,
        "bodyMarkdown": body,
        "confidence": 0.8,
        "groupId": group_id,
        "hunkIds": hunk_ids if hunk_ids is not None else [APP_HUNK_2],
    }


def make_finding(finding_id: str = "f-1", title: str = "Runner ignores missing config",
                 kind: str = "bug", hunk_id: Optional[str] = APP_HUNK_2) -> Dict:
    evidence = {"filePath": "src/app.py", "side": "new", "lineRange": [11, 11]}
    if hunk_id is not None:
        evidence["hunkId"] = hunk_id
    finding = {
        "id": finding_id,
        "kind": kind,
        "confidence": 0.7,
        "title": title,
        "detailMarkdown": "`run` is called with `config` even when it is None.",
        "evidence": [evidence],
    }
    if kind == "bug":
        finding["severity"] = "normal"
    else:
        finding["flagClass"] = "investigate"
    return finding


def grouping_output(extra_hunk_ids: Optional[List[str]] = None) -> str:
    return json.dumps({
        "groups": [
            {
                "id": "core",
                "title": "Thread configuration through the runner",
                "rationale": "The entry point now passes configuration explicitly.",
                "reviewFocus": ["Callers of run()"],
                "risk": "medium",
                "hunkIds": [APP_HUNK_1, APP_HUNK_2] + list(extra_hunk_ids or []),
            },
            {
                "id": "tests",
                "title": "Cover the new entry point",
                "rationale": "Adds a smoke test for main().",
                "risk": "low",
                "hunkIds": [TEST_HUNK],
            },
        ]
    })


def review_output(notes: Optional[List[Dict]] = None, findings: Optional[List[Dict]] = None) -> str:
    return json.dumps({
        "findings": findings if findings is not None else [make_finding()],
        "contextNotes": notes if notes is not None else [make_note()],
    })


def annotations_output() -> str:
    return json.dumps({
        "annotations": [
            {
                "id": "a-1",
                "kind": "risk",
                "confidence": 0.6,
                "title": "Config may be None",
                "bodyMarkdown": "`config` is not validated here.",
                "anchor": {"filePath": "src/app.py", "side": "new", "line": 11, "hunkId": APP_HUNK_2},
            },
            {
                "id": "a-2",
                "kind": "nit",
                "confidence": 0.3,
                "title": "Unknown file",
                "bodyMarkdown": "Anchored outside the diff.",
                "anchor": {"filePath": "src/missing.py", "side": "new", "line": 1},
            },
        ]
    })


class ScriptedExecutor:
    """
    Process executor that replays scripted engine outputs.

    Scripts are keyed by task name (the prefix of the --output-last-message
    file). Each step is a raw output string (or bytes) written to the output
    file, None for "exit 0 without output", an ExecutionResult returned
    as-is, or an exception to raise.
    """

    def __init__(self, scripts: Optional[Dict[str, List]] = None, available: bool = True):
        self.scripts = {name: list(steps) for name, steps in (scripts or {}).items()}
        self.available = available
        self.calls: List[Dict] = []

    async def execute(self, command, stdin=None, *, cwd=None, timeout=None, cancel_event=None):
        self.calls.append({"command": list(command), "stdin": stdin, "cwd": cwd, "timeout": timeout})

        if "--version" in command:
            if not self.available:
                raise EngineExecutionError(f"Failed to start {command[0]}: not found", command=command)
            return ExecutionResult(exit_code=0, stdout="engine 1.0.0\n", stderr="")

        output_path = Path(command[command.index("--output-last-message") + 1])
        task_name = output_path.name.split(".", 1)[0]
        steps = self.scripts.get(task_name, [])
        step = steps.pop(0) if steps else None

        if isinstance(step, BaseException):
            raise step
        if isinstance(step, ExecutionResult):
            return step
        if isinstance(step, bytes):
            output_path.write_bytes(step)
        elif step is not None:
            output_path.write_text(step, encoding="utf-8")
        return ExecutionResult(exit_code=0, stdout="", stderr="")

    def task_calls(self, task_name: str) -> List[Dict]:
        return [
            call for call in self.calls
            if "--output-last-message" in call["command"]
            and Path(call["command"][call["command"].index("--output-last-message") + 1]).name.startswith(
                f"{task_name}.")
        ]


@pytest.fixture
def sample_diff() -> str:
    return SAMPLE_DIFF


@pytest.fixture
def scripted_executor():
    """Factory for ScriptedExecutor instances."""
    return ScriptedExecutor


def make_document(run_id: str = "run-1", created_at: str = "2026-01-01T00:00:00.000Z",
                  fallback_reason: Optional[str] = None) -> ReviewDocument:
    """A small stored-review document built from SAMPLE_DIFF."""
    parsed = parse_unified_diff(SAMPLE_DIFF)
    stage_errors = {"engine": fallback_reason} if fallback_reason else {}
    return ReviewDocument(
        run_id=run_id,
        created_at=created_at,
        ai=AIInfo(fallback_reason=fallback_reason, stage_errors=stage_errors),
        repo=RepoInfo(root="/repo", head_sha="abc123", branch="main"),
        diff_source=DiffSource(kind="staged", spec="--staged"),
        stats=compute_diff_stats(parsed),
        diff=parsed,
        groups=GroupingPayload.model_validate_json(grouping_output()).groups,
        context_notes=[ContextNote.model_validate(make_note())],
        findings=[Finding.model_validate(make_finding()),
                  Finding.model_validate(make_finding("f-2", "Check <script> escaping", kind="flag"))],
    )
