"""Issue detection for text blocks."""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from .breaks import SoftBreakConverter
from .errors import AnalysisFailure, ErrorCategory
from .segmenter import WordWrapSimulator
from .structures import (
    HARD_BREAK,
    AnalysisResult,
    DetectionType,
    Issue,
    ProcessingConfig,
    ResizeMode,
    TextBlock,
)
from .widths import CharacterWidthEstimator

logger = logging.getLogger(__name__)

AUTO_WIDTH_CONFIDENCE = 0.9
SOFT_BREAK_CONFIDENCE = 0.8
EDGE_BREAK_CONFIDENCE = 0.75

_CHANGE_DESCRIPTIONS = {
    DetectionType.AUTO_WIDTH: "Convert to auto-height and remove line breaks",
    DetectionType.EDGE_BREAK: "Remove edge-breaking line breaks",
    DetectionType.SOFT_BREAK: "Convert soft breaks to hard breaks",
}


def skip_reason(block: TextBlock, config: ProcessingConfig) -> Optional[ErrorCategory]:
    """Return why a block must not be analysed, or None when it may be."""

    if block.has_missing_font:
        return ErrorCategory.MISSING_FONT
    if block.locked:
        return ErrorCategory.LOCKED_BLOCK
    if not block.visible:
        return ErrorCategory.HIDDEN_BLOCK
    if len(block.content) < config.min_characters:
        return ErrorCategory.TOO_SHORT
    return None


def describe_changes(issues: Sequence[Issue]) -> str:
    if not issues:
        return "No changes needed"
    return ", ".join(_CHANGE_DESCRIPTIONS[issue.kind] for issue in issues)


class IssueDetector:
    """Classifies a block's current line breaks into typed issues."""

    def __init__(
        self,
        config: ProcessingConfig,
        estimator: Optional[CharacterWidthEstimator] = None,
    ) -> None:
        self.config = config
        self.estimator = estimator or CharacterWidthEstimator(
            config.font_width_multiplier, refined=config.refined_widths
        )
        self.simulator = WordWrapSimulator(self.estimator, config.soft_break_chars)
        self.converter = SoftBreakConverter(config.soft_break_chars)

    def detect(self, block: TextBlock) -> List[Issue]:
        if skip_reason(block, self.config) is not None:
            return []

        issues: List[Issue] = []
        if self.config.detects(DetectionType.AUTO_WIDTH):
            issues.extend(self._detect_auto_width(block))
        if self.config.detects(DetectionType.EDGE_BREAK):
            issues.extend(self._detect_edge_breaks(block))
        if self.config.detects(DetectionType.SOFT_BREAK):
            issues.extend(self._detect_soft_breaks(block))
        return issues

    def analyze(self, block: TextBlock) -> AnalysisResult:
        """Detect issues and wrap them, or the skip reason, in a result."""

        reason = skip_reason(block, self.config)
        if reason is not None:
            logger.debug("Skipping %s: %s", block.display_name, reason.label)
            return AnalysisResult(
                block=block,
                issues=[],
                estimated_changes=f"Skipped ({reason.label.lower()})",
                original_text=block.content,
                skip_reason=reason,
            )

        try:
            issues = self.detect(block)
        except (ValueError, TypeError, ZeroDivisionError) as exc:
            raise AnalysisFailure(f"detection failed: {exc}") from exc
        return AnalysisResult(
            block=block,
            issues=issues,
            estimated_changes=describe_changes(issues),
            original_text=block.content,
        )

    def _detect_auto_width(self, block: TextBlock) -> List[Issue]:
        if block.resize_mode is not ResizeMode.AUTO_WIDTH_AND_HEIGHT:
            return []
        if HARD_BREAK not in block.content:
            return []
        line_count = block.content.count(HARD_BREAK) + 1
        return [
            Issue(
                kind=DetectionType.AUTO_WIDTH,
                confidence=AUTO_WIDTH_CONFIDENCE,
                affected_lines=tuple(range(line_count - 1)),
                description=(
                    "Auto-width text with line breaks can be converted to auto-height"
                ),
            )
        ]

    def _detect_edge_breaks(self, block: TextBlock) -> List[Issue]:
        if block.resize_mode not in (ResizeMode.FIXED, ResizeMode.AUTO_HEIGHT):
            return []
        if block.container_width <= 0:
            logger.debug("No usable width for %s; edge check skipped", block.display_name)
            return []

        suspicious: List[int] = []
        for line in self.simulator.simulate(
            block.content, block.container_width, block.font_size
        ):
            trimmed = line.text.strip()
            if not trimmed:
                continue
            width = self.estimator.estimate_width(trimmed, block.font_size)
            ratio = width / block.container_width
            if ratio >= self.config.line_break_threshold:
                suspicious.append(line.index)

        if not suspicious:
            return []
        return [
            Issue(
                kind=DetectionType.EDGE_BREAK,
                confidence=EDGE_BREAK_CONFIDENCE,
                affected_lines=tuple(suspicious),
                description=f"{len(suspicious)} lines appear to break at container edge",
            )
        ]

    def _detect_soft_breaks(self, block: TextBlock) -> List[Issue]:
        if block.paragraph_spacing != 0:
            return []
        count = self.converter.count(block.content)
        if count == 0:
            return []
        return [
            Issue(
                kind=DetectionType.SOFT_BREAK,
                confidence=SOFT_BREAK_CONFIDENCE,
                affected_lines=tuple(self.converter.affected_lines(block.content)),
                description=f"{count} soft breaks can be converted to hard breaks",
                occurrences=count,
            )
        ]
