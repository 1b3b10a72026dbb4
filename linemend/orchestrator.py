"""Cooperative batch analysis and processing of text blocks."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum, auto
from typing import Callable, Dict, List, Optional, Sequence

from .analyzer import IssueDetector
from .changes import ChangeSynthesizer
from .errors import BatchFailure, ErrorCategory
from .fonts import FontManager
from .policy import ErrorPolicy
from .structures import (
    AnalysisResult,
    BatchJob,
    BatchStatistics,
    ChangeSet,
    Issue,
    ProcessingConfig,
    ProcessingOptions,
    ProcessingResult,
    ProgressUpdate,
    TextBlock,
)
from .widths import CharacterWidthEstimator

logger = logging.getLogger(__name__)

ANALYSIS_CHUNK_SIZE = 50
# Applying may wait on font loading, so it works in smaller steps.
PROCESSING_CHUNK_SIZE = 10

ProgressCallback = Callable[[ProgressUpdate], None]
ChangeBuilder = Callable[[TextBlock], ChangeSet]


class OrchestratorState(Enum):
    IDLE = auto()
    ANALYZING = auto()
    PROCESSING = auto()
    CANCELLED = auto()


class BatchOrchestrator:
    """Runs detection and change application over many blocks in chunks."""

    def __init__(
        self,
        config: ProcessingConfig,
        *,
        font_manager: Optional[FontManager] = None,
        analysis_chunk_size: int = ANALYSIS_CHUNK_SIZE,
        processing_chunk_size: int = PROCESSING_CHUNK_SIZE,
    ) -> None:
        self.config = config
        estimator = CharacterWidthEstimator(
            config.font_width_multiplier, refined=config.refined_widths
        )
        self.detector = IssueDetector(config, estimator)
        self.synthesizer = ChangeSynthesizer(config, estimator)
        self.font_manager = font_manager or FontManager()
        self.analysis_chunk_size = max(1, analysis_chunk_size)
        self.processing_chunk_size = max(1, processing_chunk_size)
        self.error_policy = ErrorPolicy()
        self.state = OrchestratorState.IDLE
        self._job: Optional[BatchJob] = None

    @property
    def is_running(self) -> bool:
        return self.state in (OrchestratorState.ANALYZING, OrchestratorState.PROCESSING)

    def cancel(self) -> None:
        """Stop the running batch after the block currently being handled."""

        if self._job is not None:
            self._job.cancel()

    async def analyze(
        self,
        job: BatchJob,
        on_progress: Optional[ProgressCallback] = None,
    ) -> List[AnalysisResult]:
        self._begin(job, OrchestratorState.ANALYZING)
        results: List[AnalysisResult] = []
        total = len(job.blocks)
        try:
            for start in range(0, total, self.analysis_chunk_size):
                if job.cancelled:
                    break
                for offset, block in enumerate(
                    job.blocks[start:start + self.analysis_chunk_size]
                ):
                    if job.cancelled:
                        break
                    results.append(self._analyze_block(block))
                    _report(on_progress, start + offset + 1, total, block, "Analyzing")
                    await asyncio.sleep(0)
        except Exception as exc:
            raise self._batch_failure(f"Batch analysis failed: {exc}", exc) from exc
        finally:
            self._finish(job)
        return results

    async def process(
        self,
        analysis_results: Sequence[AnalysisResult],
        on_progress: Optional[ProgressCallback] = None,
    ) -> List[ProcessingResult]:
        """Apply changes to every analysed block that has at least one issue."""

        if not all(isinstance(result, AnalysisResult) for result in analysis_results):
            raise self._batch_failure(
                "Batch input is malformed: expected analysis results."
            )
        flagged = [result for result in analysis_results if result.issues]
        issues_by_block: Dict[int, List[Issue]] = {
            id(result.block): result.issues for result in flagged
        }
        job = BatchJob(blocks=[result.block for result in flagged])

        def build(block: TextBlock) -> ChangeSet:
            return self.synthesizer.synthesize(block, issues_by_block[id(block)])

        return await self._run_processing(job, build, on_progress)

    async def process_selected(
        self,
        blocks: Sequence[TextBlock],
        options: ProcessingOptions,
        on_progress: Optional[ProgressCallback] = None,
    ) -> List[ProcessingResult]:
        """Apply manual rewrites to the given blocks without issue detection."""

        job = BatchJob(blocks=list(blocks))

        def build(block: TextBlock) -> ChangeSet:
            return self.synthesizer.synthesize_direct(block, options)

        return await self._run_processing(job, build, on_progress)

    def statistics(self, results: Sequence[ProcessingResult]) -> BatchStatistics:
        summary: Dict[str, int] = {}
        failed = 0
        for result in results:
            if result.success:
                continue
            failed += 1
            key = result.error.value if result.error else "Unknown error"
            summary[key] = summary.get(key, 0) + 1
        return BatchStatistics(
            total=len(results),
            successful=len(results) - failed,
            failed=failed,
            error_summary=summary,
        )

    # --- Internal helpers -------------------------------------------------

    async def _run_processing(
        self,
        job: BatchJob,
        build: ChangeBuilder,
        on_progress: Optional[ProgressCallback],
    ) -> List[ProcessingResult]:
        self._begin(job, OrchestratorState.PROCESSING)
        results: List[ProcessingResult] = []
        try:
            processable, rejected = self.font_manager.validate(job.blocks)
            for block, reason in rejected:
                self.error_policy.handle_error(
                    reason, f"{block.display_name}: {reason.label}"
                )
                results.append(
                    ProcessingResult(
                        block=block, success=False, error=reason, message=reason.label
                    )
                )

            total = len(processable)
            for start in range(0, total, self.processing_chunk_size):
                if job.cancelled:
                    break
                for offset, block in enumerate(
                    processable[start:start + self.processing_chunk_size]
                ):
                    if job.cancelled:
                        break
                    results.append(await self._process_block(block, build))
                    _report(on_progress, start + offset + 1, total, block, "Processing")
                    await asyncio.sleep(0)
        except Exception as exc:
            raise self._batch_failure(f"Batch processing failed: {exc}", exc) from exc
        finally:
            self._finish(job)
        return results

    def _analyze_block(self, block: TextBlock) -> AnalysisResult:
        try:
            result = self.detector.analyze(block)
        except Exception as exc:
            message = f"Analysis error: {exc}"
            self.error_policy.handle_error(
                ErrorCategory.ANALYSIS_FAILURE, f"{block.display_name}: {exc}"
            )
            return AnalysisResult(
                block=block,
                issues=[],
                estimated_changes=message,
                original_text=block.content or "",
                error=ErrorCategory.ANALYSIS_FAILURE,
            )
        self.error_policy.record_success()
        return result

    async def _process_block(
        self,
        block: TextBlock,
        build: ChangeBuilder,
    ) -> ProcessingResult:
        try:
            changes = build(block)
            if not changes.is_empty:
                await self.font_manager.apply(block, changes)
        except Exception as exc:
            self.error_policy.handle_error(
                ErrorCategory.APPLY_FAILURE, f"{block.display_name}: {exc}"
            )
            return ProcessingResult(
                block=block,
                success=False,
                error=ErrorCategory.APPLY_FAILURE,
                message=str(exc),
            )
        self.error_policy.record_success()
        logger.debug("Processed %s: %s", block.display_name, changes)
        return ProcessingResult(block=block, success=True, changes=changes)

    def _begin(self, job: BatchJob, state: OrchestratorState) -> None:
        if self.is_running:
            raise self._batch_failure("Another batch is already running.")
        if not isinstance(job, BatchJob) or not all(
            isinstance(item, TextBlock) for item in job.blocks
        ):
            raise self._batch_failure("Batch input is malformed: expected text blocks.")
        self._job = job
        self.state = state

    def _batch_failure(
        self, message: str, cause: Optional[BaseException] = None
    ) -> BatchFailure:
        self.error_policy.handle_error(ErrorCategory.BATCH_FAILURE, message)
        return BatchFailure(message, cause=cause)

    def _finish(self, job: BatchJob) -> None:
        self.state = (
            OrchestratorState.CANCELLED if job.cancelled else OrchestratorState.IDLE
        )
        self._job = None


def _report(
    on_progress: Optional[ProgressCallback],
    current: int,
    total: int,
    block: TextBlock,
    verb: str,
) -> None:
    if on_progress is None:
        return
    on_progress(
        ProgressUpdate(
            current=current,
            total=total,
            block_name=block.display_name,
            progress=round(current / total * 100) if total else 100,
            message=f"{verb}: {block.display_name}",
        )
    )

