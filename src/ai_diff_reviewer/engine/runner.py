"""
Engine Task Runner

Runs one schema-constrained task through the external reasoning engine and
validates its JSON output, with exactly one repair attempt.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional, Type, Union

from pydantic import BaseModel, ValidationError

from ..config import EngineConfig
from .executor import AsyncSubprocessExecutor, EngineExecutionError, ProcessExecutor
from .prompts import PromptBuilder


logger = logging.getLogger(__name__)


@dataclass
class TaskSpec:
    """One engine task: a name (artifact prefix), its prompt and where to keep artifacts."""
    name: str
    prompt: str
    task_dir: Path


@dataclass
class TaskPaths:
    prompt: Path
    schema: Path
    result: Path
    first_raw: Path
    repair_prompt: Path
    second_raw: Path
    output: Path

    @classmethod
    def for_task(cls, task_dir: Path, name: str) -> "TaskPaths":
        return cls(
            prompt=task_dir / f"{name}.prompt.txt",
            schema=task_dir / f"{name}.schema.json",
            result=task_dir / f"{name}.result.json",
            first_raw=task_dir / f"{name}.attempt1.raw.txt",
            repair_prompt=task_dir / f"{name}.repair.prompt.txt",
            second_raw=task_dir / f"{name}.attempt2.raw.txt",
            output=task_dir / f"{name}.output.json",
        )


@dataclass
class TaskSuccess:
    data: Any
    raw: str


@dataclass
class TaskFailure:
    kind: str  # 'json' or 'schema'
    message: str
    issues: List[str] = field(default_factory=list)
    output_path: Optional[str] = None
    raw: str = ""

    @property
    def diagnostic(self) -> str:
        if not self.issues:
            return self.message
        return self.message + "\n" + "\n".join(f"- {issue}" for issue in self.issues)


TaskResult = Union[TaskSuccess, TaskFailure]


def format_validation_issues(error: ValidationError) -> List[str]:
    issues = []
    for detail in error.errors():
        location = ".".join(str(part) for part in detail.get("loc", ())) or "<root>"
        issues.append(f"{location}: {detail.get('msg', 'invalid value')}")
    return issues


class TaskRunner:
    """
    External engine task runner.

    A task writes its prompt and schema next to the engine output, runs the
    engine once and validates the result. JSON and schema failures trigger
    a single repair attempt; execution failures raise EngineExecutionError.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        executor: Optional[ProcessExecutor] = None,
        prompt_builder: Optional[PromptBuilder] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ):
        """
        Initialize task runner.

        Args:
            config: Engine settings (command, model, timeout)
            executor: Process executor (subprocess by default)
            prompt_builder: Builds repair prompts
            cancel_event: Setting this event cancels running engine processes
        """
        self.config = config or EngineConfig()
        self.executor = executor or AsyncSubprocessExecutor()
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.cancel_event = cancel_event

    async def is_available(self) -> bool:
        """Check whether the engine command runs (`<command> --version`)."""
        try:
            result = await self.executor.execute([self.config.command, "--version"], timeout=30)
        except EngineExecutionError as e:
            logger.info(f"Engine not available: {e.diagnostics()}")
            return False

        if result.exit_code != 0:
            logger.info(f"Engine version check exited with code {result.exit_code}")
            return False
        return True

    def build_command(self, schema_path: Path, output_path: Path) -> List[str]:
        command = [
            self.config.command,
            "exec",
            "--sandbox", self.config.sandbox,
            "--output-schema", str(schema_path),
            "--output-last-message", str(output_path),
        ]
        if self.config.model:
            command.extend(["--model", self.config.model])
        if self.config.reasoning_effort:
            command.extend(["--config", f"model_reasoning_effort={self.config.reasoning_effort}"])
        if self.config.profile:
            command.extend(["--profile", self.config.profile])
        if self.config.oss:
            command.append("--oss")
        if self.config.cd:
            command.extend(["--cd", self.config.cd])
        command.append("-")
        return command

    async def run_task(self, spec: TaskSpec, schema: Type[BaseModel]) -> TaskResult:
        """
        Run a task and validate its output against a payload model.

        Args:
            spec: Task name, prompt and artifact directory
            schema: Pydantic model describing the expected JSON output

        Returns:
            TaskSuccess with the validated model, or the final TaskFailure

        Raises:
            EngineExecutionError: The engine failed to run or its output was missing or unreadable
        """
        task_dir = Path(spec.task_dir)
        task_dir.mkdir(parents=True, exist_ok=True)
        paths = TaskPaths.for_task(task_dir, spec.name)

        schema_text = json.dumps(schema.model_json_schema(by_alias=True), indent=2)
        paths.prompt.write_text(spec.prompt, encoding="utf-8")
        paths.schema.write_text(schema_text, encoding="utf-8")

        logger.info(f"Running engine task {spec.name!r}")
        raw = await self._attempt(spec.prompt, paths)
        result = self._validate(raw, schema, paths.result)
        if isinstance(result, TaskSuccess):
            self._record_success(result, paths)
            return result

        logger.warning(f"Task {spec.name!r} returned invalid output ({result.kind}); attempting repair")
        paths.first_raw.write_text(raw, encoding="utf-8")
        repair_prompt = self.prompt_builder.build_repair_prompt(raw, schema_text, result.diagnostic)
        paths.repair_prompt.write_text(repair_prompt, encoding="utf-8")

        raw = await self._attempt(repair_prompt, paths)
        result = self._validate(raw, schema, paths.result)
        if isinstance(result, TaskSuccess):
            logger.info(f"Task {spec.name!r} repaired on second attempt")
            self._record_success(result, paths)
            return result

        paths.second_raw.write_text(raw, encoding="utf-8")
        logger.error(f"Task {spec.name!r} failed after repair: {result.diagnostic}")
        return result

    async def _attempt(self, prompt: str, paths: TaskPaths) -> str:
        paths.result.unlink(missing_ok=True)
        command = self.build_command(paths.schema, paths.result)

        result = await self.executor.execute(
            command,
            prompt,
            timeout=self.config.timeout_seconds,
            cancel_event=self.cancel_event,
        )
        if result.exit_code != 0:
            raise EngineExecutionError(
                f"Engine exited with code {result.exit_code}",
                command=command,
                exit_code=result.exit_code,
                stdout=result.stdout,
                stderr=result.stderr,
                output_path=str(paths.result),
            )

        try:
            return paths.result.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise EngineExecutionError(
                "Engine produced no output",
                command=command,
                exit_code=result.exit_code,
                stdout=result.stdout,
                stderr=result.stderr,
                output_path=str(paths.result),
            ) from e
        except (OSError, UnicodeDecodeError) as e:
            raise EngineExecutionError(
                f"Engine output unreadable: {e}",
                command=command,
                exit_code=result.exit_code,
                stdout=result.stdout,
                stderr=result.stderr,
                output_path=str(paths.result),
            ) from e

    def _validate(self, raw: str, schema: Type[BaseModel], output_path: Path) -> TaskResult:
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as e:
            return TaskFailure(
                kind="json",
                message=f"Output is not valid JSON: {e}",
                output_path=str(output_path),
                raw=raw,
            )

        try:
            data = schema.model_validate(payload)
        except ValidationError as e:
            return TaskFailure(
                kind="schema",
                message=f"Output does not match {schema.__name__}",
                issues=format_validation_issues(e),
                output_path=str(output_path),
                raw=raw,
            )

        return TaskSuccess(data=data, raw=raw)

    def _record_success(self, result: TaskSuccess, paths: TaskPaths) -> None:
        payload = result.data.model_dump(by_alias=True, exclude_none=True, mode="json")
        paths.output.write_text(json.dumps(payload, indent=2), encoding="utf-8")
