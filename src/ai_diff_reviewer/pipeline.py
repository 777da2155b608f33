"""
Review Pipeline

Orchestrates one review run: parse the diff, build change units and
heuristic groups, refine them with the external engine when it is
available, and persist the resulting review document.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional, Type

from pydantic import BaseModel

from .config import AppConfig, get_config
from .diff.parser import UnifiedDiffParser, compute_diff_stats
from .engine.executor import EngineExecutionError
from .engine.prompts import PromptBuilder
from .engine.runner import TaskFailure, TaskRunner, TaskSpec
from .models.diff import ParsedDiff
from .models.review import (
    AIInfo,
    AnnotationsPayload,
    ChangeUnit,
    ContextNote,
    DiffSource,
    Finding,
    GroupingPayload,
    RepoInfo,
    ReviewDocument,
    ReviewGroup,
    ReviewPayload,
)
from .review.context import RepoContextLoader
from .review.grouping import HeuristicGrouper
from .review.normalizer import ResultNormalizer, ReviewTargets, compute_review_targets
from .review.units import ChangeUnitBuilder
from .runs.store import RunPaths, RunStore


logger = logging.getLogger(__name__)

ENGINE_UNAVAILABLE_REASON = "Engine is not available; used heuristic grouping."


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ReviewPipeline:
    """
    Review run orchestrator.

    Stages run strictly in order; each engine stage depends on the output
    of the one before it. A failing stage is recorded in the document's
    `ai.stage_errors` and never aborts the run.
    """

    def __init__(
        self,
        store: RunStore,
        config: Optional[AppConfig] = None,
        runner: Optional[TaskRunner] = None,
    ):
        """
        Initialize review pipeline.

        Args:
            store: Run store the finished run is written to
            config: Application configuration
            runner: Engine task runner (built from config.engine by default)
        """
        self.config = config or get_config()
        self.store = store
        self.prompt_builder = PromptBuilder()
        self.runner = runner or TaskRunner(self.config.engine, prompt_builder=self.prompt_builder)

        self.parser = UnifiedDiffParser()
        self.unit_builder = ChangeUnitBuilder()
        self.grouper = HeuristicGrouper()
        self.normalizer = ResultNormalizer(self.config.review)

    async def review(
        self,
        diff_text: str,
        diff_source: DiffSource,
        repo: RepoInfo,
        context_path: Optional[str] = None,
    ) -> ReviewDocument:
        """
        Run a complete review and persist it.

        Args:
            diff_text: Raw unified diff
            diff_source: Where the diff came from
            repo: Repository metadata
            context_path: Optional explicit repository context file

        Returns:
            The persisted review document
        """
        start_time = datetime.now()

        if not diff_text.strip():
            logger.warning("Diff is empty; nothing to review")

        parsed = self.parser.parse(diff_text)
        stats = compute_diff_stats(parsed)
        units = self.unit_builder.build(parsed)
        groups = self.grouper.group(units)

        paths = self.store.create_run()
        logger.info(
            f"Starting review {paths.run_id}: {stats.files_changed} files, "
            f"{len(units)} change units, {len(groups)} heuristic groups"
        )

        ai = AIInfo(model=self.config.engine.model, reasoning_effort=self.config.engine.reasoning_effort)
        context_notes: List[ContextNote] = []
        findings: List[Finding] = []
        annotations = []

        if await self.runner.is_available():
            repo_context = RepoContextLoader(
                repo.root, max_chars=self.config.review.context_max_chars
            ).load(context_path)

            groups = await self._group(ai, paths, parsed, units, groups, repo_context)
            context_notes, findings = await self._review(
                ai, paths, parsed, stats, units, groups, repo_context
            )
            if self.config.review.annotations_enabled:
                annotations = await self._annotate(ai, paths, parsed, groups)
        else:
            ai.stage_errors["engine"] = ENGINE_UNAVAILABLE_REASON
            logger.warning(ENGINE_UNAVAILABLE_REASON)

        if ai.stage_errors:
            ai.fallback_reason = next(iter(ai.stage_errors.values()))

        document = ReviewDocument(
            run_id=paths.run_id,
            created_at=utc_timestamp(),
            ai=ai,
            repo=repo,
            diff_source=diff_source,
            stats=stats,
            diff=parsed,
            groups=groups,
            context_notes=context_notes,
            annotations=annotations,
            findings=findings,
        )
        self.store.write(paths, document, diff_text)

        processing_time = (datetime.now() - start_time).total_seconds()
        logger.info(
            f"Review {paths.run_id} completed ({processing_time:.2f}s): {len(groups)} groups, "
            f"{len(context_notes)} notes, {document.bug_count} bugs, {document.flag_count} flags"
        )
        return document

    async def _group(
        self,
        ai: AIInfo,
        paths: RunPaths,
        parsed: ParsedDiff,
        units: List[ChangeUnit],
        fallback_groups: List[ReviewGroup],
        repo_context: Optional[str],
    ) -> List[ReviewGroup]:
        prompt = self.prompt_builder.build_grouping_prompt(parsed, units, fallback_groups, repo_context)
        data = await self._run_stage(ai, "grouping", prompt, paths, GroupingPayload)
        if data is None:
            return fallback_groups

        groups = self.normalizer.normalize_groups(data.groups, parsed)
        if not groups and parsed.hunk_ids():
            self._record_error(ai, "grouping", "Engine grouping referenced no known hunks.")
            return fallback_groups

        ai.heuristic_only = False
        return groups

    async def _review(
        self,
        ai: AIInfo,
        paths: RunPaths,
        parsed: ParsedDiff,
        stats,
        units: List[ChangeUnit],
        groups: List[ReviewGroup],
        repo_context: Optional[str],
    ):
        """First review pass plus the optional second pass."""
        targets = compute_review_targets(stats, units, groups, self.config.review.max_notes_cap)

        prompt = self.prompt_builder.build_review_prompt(parsed, units, groups, targets.to_dict(), repo_context)
        data = await self._run_stage(ai, "review", prompt, paths, ReviewPayload)
        if data is None:
            return [], []

        notes = self.normalizer.normalize_notes(data.context_notes, groups, targets.max_notes)
        findings = self.normalizer.merge_findings(self.normalizer.sanitize_findings(data.findings, parsed), [])

        if not self._should_refine(len(notes), targets):
            return notes, findings

        logger.info(f"Running second review pass ({len(notes)} notes, target {targets.min_notes})")
        ai.second_pass = True
        refine_targets = targets.for_second_pass()
        prompt = self.prompt_builder.build_review_prompt(
            parsed, units, groups, refine_targets.to_dict(), repo_context
        )
        refined = await self._run_stage(ai, "review-refine", prompt, paths, ReviewPayload)
        if refined is None:
            return notes, findings

        refined_notes = self.normalizer.normalize_notes(refined.context_notes, groups, targets.max_notes)
        if len(refined_notes) >= len(notes):
            notes = refined_notes
        findings = self.normalizer.merge_findings(
            findings, self.normalizer.sanitize_findings(refined.findings, parsed)
        )
        return notes, findings

    async def _annotate(self, ai: AIInfo, paths: RunPaths, parsed: ParsedDiff, groups: List[ReviewGroup]):
        prompt = self.prompt_builder.build_annotations_prompt(parsed, groups, self.config.review.max_annotations)
        data = await self._run_stage(ai, "annotations", prompt, paths, AnnotationsPayload)
        if data is None:
            return []
        return self.normalizer.normalize_annotations(data.annotations, parsed)

    def _should_refine(self, note_count: int, targets: ReviewTargets) -> bool:
        policy = self.config.review.second_pass
        if policy == "never":
            return False
        if policy == "always":
            return True
        threshold = self.config.review.refine_min_notes
        if threshold is None:
            threshold = targets.min_notes
        return note_count < threshold

    async def _run_stage(
        self,
        ai: AIInfo,
        stage: str,
        prompt: str,
        paths: RunPaths,
        schema: Type[BaseModel],
    ) -> Optional[BaseModel]:
        """Run one engine task; failures are recorded and yield None."""
        cancel_event = self.runner.cancel_event
        if cancel_event is not None and cancel_event.is_set():
            self._record_error(ai, stage, "Run was cancelled before this stage started.")
            return None

        try:
            result = await self.runner.run_task(TaskSpec(stage, prompt, paths.engine_dir), schema)
        except EngineExecutionError as e:
            self._record_error(ai, stage, f"Engine {stage} failed to run: {e.diagnostics()}")
            return None

        if isinstance(result, TaskFailure):
            reason = f"Engine {stage} failed {result.kind} validation: {result.diagnostic}"
            if result.output_path:
                reason += f"\noutput: {result.output_path}"
            self._record_error(ai, stage, reason)
            return None

        ai.used_engine = True
        return result.data

    def _record_error(self, ai: AIInfo, stage: str, reason: str) -> None:
        logger.error(f"Stage {stage!r} fell back: {reason}")
        ai.stage_errors[stage] = reason
