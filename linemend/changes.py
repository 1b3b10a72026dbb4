"""Turns detected issues into a single change set per block."""

from __future__ import annotations

from typing import Optional, Sequence

from .breaks import SoftBreakConverter
from .joiner import LineJoinPolicy
from .structures import (
    ChangeSet,
    DetectionType,
    Issue,
    ProcessingConfig,
    ProcessingOptions,
    ResizeMode,
    TextBlock,
)
from .widths import CharacterWidthEstimator


class ChangeSynthesizer:
    """Composes rejoin and soft-break conversion into one change set."""

    def __init__(
        self,
        config: ProcessingConfig,
        estimator: Optional[CharacterWidthEstimator] = None,
    ) -> None:
        self.config = config
        self.policy = LineJoinPolicy(config, estimator)
        self.converter = SoftBreakConverter(config.soft_break_chars)

    def synthesize(self, block: TextBlock, issues: Sequence[Issue]) -> ChangeSet:
        text = block.content
        resize_mode: Optional[ResizeMode] = None

        if block.resize_mode is ResizeMode.AUTO_WIDTH_AND_HEIGHT:
            resize_mode = ResizeMode.AUTO_HEIGHT
            text = self._rejoin(block, text)
        else:
            # Stable sort keeps detection order between equal confidences.
            for issue in sorted(issues, key=lambda item: item.confidence, reverse=True):
                if issue.kind is DetectionType.AUTO_WIDTH:
                    resize_mode = ResizeMode.AUTO_HEIGHT
                    text = self._rejoin(block, text)
                elif issue.kind is DetectionType.EDGE_BREAK:
                    text = self._rejoin(block, text)
                elif issue.kind is DetectionType.SOFT_BREAK:
                    text = self.converter.convert(text)

        return self._diff(block, text, resize_mode)

    def synthesize_direct(self, block: TextBlock, options: ProcessingOptions) -> ChangeSet:
        """Build changes for a manual run, skipping issue detection."""

        text = self.policy.process_directly(
            block.content, block.container_width, block.font_size, options
        )
        resize_mode: Optional[ResizeMode] = None
        if options.convert_to_auto_height or (
            options.remove_breaks
            and block.resize_mode is ResizeMode.AUTO_WIDTH_AND_HEIGHT
        ):
            resize_mode = ResizeMode.AUTO_HEIGHT
        return self._diff(block, text, resize_mode)

    def _rejoin(self, block: TextBlock, text: str) -> str:
        return self.policy.rejoin(text, block.container_width, block.font_size)

    @staticmethod
    def _diff(
        block: TextBlock,
        text: str,
        resize_mode: Optional[ResizeMode],
    ) -> ChangeSet:
        changes = ChangeSet()
        if text != block.content:
            changes.new_text = text
        if resize_mode is not None and resize_mode is not block.resize_mode:
            changes.new_resize_mode = resize_mode
        return changes
