"""High-level orchestration for cleaning one presentation."""

from __future__ import annotations

import asyncio
import logging
import pathlib
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .configuration import JsonConfigStore
from .documents import BaseDocumentHandler, detect_handler
from .errors import LinemendError, OverwriteRefusedError
from .session import (
    ApplyAllCommand,
    ApplySelectedCommand,
    Cancelled,
    Command,
    ErrorMessage,
    ProcessingComplete,
    ProgressMessage,
    Response,
    ScanCommand,
    ScanComplete,
    Session,
    WarningMessage,
)
from .structures import (
    AnalysisResult,
    BatchStatistics,
    ProcessingConfig,
    ProcessingOptions,
    ProcessingResult,
)

logger = logging.getLogger(__name__)


@dataclass
class CleanupSummary:
    """Report returned after processing a document."""

    input_path: pathlib.Path
    output_path: Optional[pathlib.Path]
    document_type: str
    total_blocks: int
    flagged_blocks: int
    skipped_blocks: int
    analysis: List[AnalysisResult] = field(default_factory=list)
    processing: List[ProcessingResult] = field(default_factory=list)
    statistics: Optional[BatchStatistics] = None
    skip_breakdown: Dict[str, int] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    cancelled: bool = False
    elapsed_seconds: float = 0.0

    @property
    def saved(self) -> bool:
        return self.output_path is not None


class CleanupRunner:
    """Scans a deck and optionally applies fixes, then saves the result."""

    def __init__(
        self,
        *,
        input_path: pathlib.Path,
        output_path: Optional[pathlib.Path],
        config: ProcessingConfig,
        available_fonts: Sequence[str] = (),
        store: Optional[JsonConfigStore] = None,
        apply: bool = False,
        selected_ids: Sequence[str] = (),
        options: Optional[ProcessingOptions] = None,
        verbose: bool = False,
    ) -> None:
        self.input_path = input_path
        self.output_path = output_path
        self.config = config
        self.available_fonts = list(available_fonts)
        self.store = store
        self.apply = apply
        self.selected_ids = list(selected_ids)
        self.options = options or ProcessingOptions()
        self.verbose = verbose

    @property
    def modifies(self) -> bool:
        return self.apply or bool(self.selected_ids)

    def run(self) -> CleanupSummary:
        start_time = time.time()

        document_type, handler = detect_handler(
            self.input_path, available_fonts=self.available_fonts
        )
        summary = CleanupSummary(
            input_path=self.input_path,
            output_path=None,
            document_type=document_type,
            total_blocks=0,
            flagged_blocks=0,
            skipped_blocks=0,
        )

        asyncio.run(self._drive(handler, summary))

        if summary.errors and not summary.analysis and not summary.processing:
            raise LinemendError(summary.errors[0])

        if self.modifies and self.output_path is not None and summary.processing:
            handler.save(self.output_path)
            summary.output_path = self.output_path
            logger.debug("Saved cleaned deck to %s", self.output_path)

        summary.elapsed_seconds = time.time() - start_time
        return summary

    async def _drive(self, handler: BaseDocumentHandler, summary: CleanupSummary) -> None:
        def collect(response: Response) -> None:
            self._record(response, summary)

        session = Session(handler=handler, emit=collect, store=self.store)

        commands: List[Command] = []
        if self.selected_ids:
            commands.append(
                ApplySelectedCommand(self.config, self.options, tuple(self.selected_ids))
            )
        else:
            commands.append(ScanCommand(self.config))
            if self.apply:
                commands.append(ApplyAllCommand())

        for command in commands:
            await session.handle(command)
            if summary.cancelled or summary.errors:
                break

    def _record(self, response: Response, summary: CleanupSummary) -> None:
        if isinstance(response, ProgressMessage):
            if self.verbose:
                update = response.update
                print(f"[{update.progress:3d}%] {update.message}")
        elif isinstance(response, ScanComplete):
            summary.analysis = response.results
            summary.total_blocks = len(response.results)
            summary.flagged_blocks = sum(1 for item in response.results if item.issues)
            breakdown: Dict[str, int] = {}
            for item in response.results:
                if item.skip_reason is not None:
                    label = item.skip_reason.label
                    breakdown[label] = breakdown.get(label, 0) + 1
            summary.skip_breakdown = breakdown
            summary.skipped_blocks = sum(breakdown.values())
        elif isinstance(response, ProcessingComplete):
            summary.processing = response.results
            summary.statistics = response.statistics
            if not summary.total_blocks:
                summary.total_blocks = len(response.results)
        elif isinstance(response, Cancelled):
            summary.cancelled = True
        elif isinstance(response, WarningMessage):
            summary.warnings.append(response.message)
        elif isinstance(response, ErrorMessage):
            message = response.message
            if response.details:
                message = f"{message} ({response.details})"
            summary.errors.append(message)


def validate_paths(
    input_path: pathlib.Path,
    output_path: Optional[pathlib.Path],
    force_overwrite: bool,
) -> None:
    """Validate input/output path combinations and overwrite policy."""

    if not input_path.exists():
        raise FileNotFoundError(
            "Input file not found. Please provide a readable .pptx file."
        )
    if not input_path.is_file():
        raise LinemendError("Input path must be a file.")

    if output_path is None:
        return

    if input_path.resolve() == output_path.resolve():
        raise OverwriteRefusedError(
            "The output path matches the input document. Refusing to overwrite the source file."
        )

    if output_path.exists() and not force_overwrite:
        raise OverwriteRefusedError(
            "The output file already exists. Rename it or use the overwrite flag."
        )
