"""
External reasoning engine integration
"""

from .executor import (
    AsyncSubprocessExecutor,
    EngineCancelledError,
    EngineExecutionError,
    EngineTimeoutError,
    ExecutionResult,
    ProcessExecutor,
)
from .prompts import PromptBuilder
from .runner import TaskFailure, TaskResult, TaskRunner, TaskSpec, TaskSuccess

__all__ = [
    "AsyncSubprocessExecutor",
    "EngineCancelledError",
    "EngineExecutionError",
    "EngineTimeoutError",
    "ExecutionResult",
    "ProcessExecutor",
    "PromptBuilder",
    "TaskFailure",
    "TaskResult",
    "TaskRunner",
    "TaskSpec",
    "TaskSuccess",
]
