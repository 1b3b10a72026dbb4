"""Command-driven control surface around one open document."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Union

from .configuration import JsonConfigStore, save_processing_config
from .documents import BaseDocumentHandler
from .errors import LinemendError, NoTextBlocksError
from .fonts import FontManager
from .orchestrator import BatchOrchestrator, OrchestratorState
from .structures import (
    AnalysisResult,
    BatchJob,
    BatchStatistics,
    ProcessingConfig,
    ProcessingOptions,
    ProcessingResult,
    ProgressUpdate,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanCommand:
    config: ProcessingConfig


@dataclass(frozen=True)
class ApplyAllCommand:
    pass


@dataclass(frozen=True)
class ApplySelectedCommand:
    config: ProcessingConfig
    options: ProcessingOptions
    block_ids: Sequence[str] = ()


@dataclass(frozen=True)
class CancelCommand:
    pass


Command = Union[ScanCommand, ApplyAllCommand, ApplySelectedCommand, CancelCommand]


@dataclass
class ProgressMessage:
    update: ProgressUpdate


@dataclass
class ScanComplete:
    results: List[AnalysisResult]


@dataclass
class ProcessingComplete:
    results: List[ProcessingResult]
    statistics: BatchStatistics


@dataclass
class Cancelled:
    message: str = "Operation cancelled."


@dataclass
class WarningMessage:
    message: str


@dataclass
class ErrorMessage:
    message: str
    details: Optional[str] = None


Response = Union[
    ProgressMessage,
    ScanComplete,
    ProcessingComplete,
    Cancelled,
    WarningMessage,
    ErrorMessage,
]
Emitter = Callable[[Response], None]


@dataclass
class Session:
    """Owns the document, its last scan and the active orchestrator."""

    handler: BaseDocumentHandler
    emit: Emitter
    store: Optional[JsonConfigStore] = None
    font_manager: FontManager = field(default_factory=FontManager)
    orchestrator: Optional[BatchOrchestrator] = None
    last_results: List[AnalysisResult] = field(default_factory=list)
    busy: bool = False

    async def handle(self, command: Command) -> None:
        """Dispatch one command; failures are reported, never raised."""

        if isinstance(command, CancelCommand):
            self._cancel()
            return
        if self.busy:
            self.emit(WarningMessage("Another operation is already in progress."))
            return

        self.busy = True
        try:
            if isinstance(command, ScanCommand):
                await self._scan(command)
            elif isinstance(command, ApplyAllCommand):
                await self._apply_all()
            elif isinstance(command, ApplySelectedCommand):
                await self._apply_selected(command)
            else:
                self.emit(ErrorMessage(f"Unknown command: {command!r}"))
        except LinemendError as exc:
            logger.debug("Command %r failed", command, exc_info=True)
            self.emit(ErrorMessage(str(exc)))
        except Exception as exc:
            logger.exception("Unexpected failure while handling %r", command)
            self.emit(ErrorMessage("An unexpected error occurred.", details=str(exc)))
        finally:
            self.busy = False

    async def _scan(self, command: ScanCommand) -> None:
        self._persist(command.config)
        blocks = self.handler.extract_text_blocks()
        if not blocks:
            raise NoTextBlocksError("No text blocks were found in this document.")

        self.orchestrator = self._build_orchestrator(command.config)
        job = BatchJob(blocks=blocks)
        results = await self.orchestrator.analyze(job, self._progress)
        if job.cancelled:
            self.emit(Cancelled())
        self.last_results = results
        self.emit(ScanComplete(results))

    async def _apply_all(self) -> None:
        if self.orchestrator is None or not self.last_results:
            self.emit(WarningMessage("Scan the document before applying changes."))
            return
        if not any(result.issues for result in self.last_results):
            self.emit(WarningMessage("No issues to fix."))
            return
        results = await self.orchestrator.process(self.last_results, self._progress)
        self._complete(self.orchestrator, results)

    async def _apply_selected(self, command: ApplySelectedCommand) -> None:
        if not command.block_ids:
            self.emit(WarningMessage("Select at least one text block."))
            return
        blocks = self.handler.find_blocks(command.block_ids)
        if not blocks:
            self.emit(WarningMessage("None of the selected text blocks were found."))
            return
        missing = len(command.block_ids) - len(blocks)
        if missing:
            self.emit(WarningMessage(f"{missing} selected block(s) could not be found."))

        self.orchestrator = self._build_orchestrator(command.config)
        results = await self.orchestrator.process_selected(
            blocks, command.options, self._progress
        )
        self._complete(self.orchestrator, results)

    def _complete(
        self,
        orchestrator: BatchOrchestrator,
        results: List[ProcessingResult],
    ) -> None:
        if orchestrator.state is OrchestratorState.CANCELLED:
            self.emit(Cancelled())
        statistics = orchestrator.statistics(results)
        self.last_results = []
        self.emit(ProcessingComplete(results, statistics))

    def _cancel(self) -> None:
        if self.orchestrator is not None and self.orchestrator.is_running:
            self.orchestrator.cancel()
        else:
            self.emit(Cancelled("Nothing to cancel."))

    def _persist(self, config: ProcessingConfig) -> None:
        if self.store is None:
            return
        try:
            save_processing_config(self.store, config)
        except OSError as exc:
            self.emit(WarningMessage(f"Settings could not be saved: {exc}"))

    def _build_orchestrator(self, config: ProcessingConfig) -> BatchOrchestrator:
        return BatchOrchestrator(config, font_manager=self.font_manager)

    def _progress(self, update: ProgressUpdate) -> None:
        self.emit(ProgressMessage(update))
