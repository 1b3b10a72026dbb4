"""Script-aware rejoining of hard-broken lines."""

from __future__ import annotations

import logging
import re
from typing import List, Optional

from .breaks import SoftBreakConverter
from .structures import HARD_BREAK, ProcessingConfig, ProcessingOptions
from .widths import CharacterWidthEstimator, is_full_width

logger = logging.getLogger(__name__)

SENTENCE_FINAL = frozenset("。．！？.!?")

BULLET_PATTERNS = (
    re.compile(r"^[•·※]"),
    re.compile(r"^\d+[.)]"),
    re.compile(r"^[a-zA-Z][.)]"),
    re.compile(r"^[-*+]"),
    re.compile(r"^[①-⑳]"),
)
CAPITAL_START = re.compile(r"^[A-Z]")

TRAILING_SPACES = re.compile(r"[ \t]+$", re.MULTILINE)
SPACE_RUNS = re.compile(r"[ \t]+")
JAPANESE_PUNCTUATION_SPACING = re.compile(r"[ \t]*([。．、，！？])[ \t]*")


def combine_lines(first: str, second: str) -> str:
    """Join two lines, inserting a space unless both sides are full-width."""

    left = first.rstrip()
    right = second.lstrip()
    if not left or not right:
        return left + right
    if is_full_width(left[-1]) and is_full_width(right[0]):
        return left + right
    return f"{left} {right}"


def is_bullet_point(line: str) -> bool:
    return any(pattern.match(line) for pattern in BULLET_PATTERNS)


def normalize_spaces(text: str) -> str:
    """Collapse space runs and drop spaces around Japanese punctuation."""

    result = TRAILING_SPACES.sub("", text)
    result = SPACE_RUNS.sub(" ", result)
    return JAPANESE_PUNCTUATION_SPACING.sub(r"\1", result)


class LineJoinPolicy:
    """Decides which hard breaks are incidental and joins across them."""

    def __init__(
        self,
        config: ProcessingConfig,
        estimator: Optional[CharacterWidthEstimator] = None,
    ) -> None:
        self.config = config
        self.estimator = estimator or CharacterWidthEstimator(
            config.font_width_multiplier, refined=config.refined_widths
        )
        self.converter = SoftBreakConverter(config.soft_break_chars)
        self._exclusions = [re.compile(pattern) for pattern in config.exclude_patterns]

    def rejoin(
        self,
        text: str,
        container_width: float,
        font_size: float,
        ignore_min_characters: bool = False,
    ) -> str:
        if not ignore_min_characters and len(text) < self.config.min_characters:
            logger.debug(
                "Text too short (%d < %d characters); leaving it unchanged",
                len(text),
                self.config.min_characters,
            )
            return text

        lines = text.split(HARD_BREAK)
        break_after = [
            self.should_break_after(lines, index, container_width, font_size)
            for index in range(len(lines))
        ]

        output: List[str] = []
        combined: Optional[str] = None
        for index, line in enumerate(lines):
            combined = line if combined is None else combine_lines(combined, line)
            if break_after[index]:
                output.append(combined)
                combined = None
        return HARD_BREAK.join(output)

    def should_break_after(
        self,
        lines: List[str],
        index: int,
        container_width: float,
        font_size: float,
    ) -> bool:
        """Return True when the break after ``lines[index]`` is structural."""

        if index == len(lines) - 1:
            return True

        current = lines[index].strip()
        following = lines[index + 1].strip()

        if not following:
            return True
        if current and current[-1] in SENTENCE_FINAL:
            logger.debug("Keep break after %r: sentence end", current[:20])
            return True
        if any(
            pattern.search(current) or pattern.search(following)
            for pattern in self._exclusions
        ):
            return True
        if self.config.strict_join and (
            is_bullet_point(following) or CAPITAL_START.match(following)
        ):
            return True
        if container_width <= 0:
            return True

        ratio = self.estimator.estimate_width(current, font_size) / container_width
        keep = ratio < self.config.line_break_threshold
        logger.debug(
            "Line %d %r: ratio %.2f threshold %.2f -> %s",
            index,
            current[:20],
            ratio,
            self.config.line_break_threshold,
            "keep" if keep else "join",
        )
        return keep

    def process_directly(
        self,
        text: str,
        container_width: float,
        font_size: float,
        options: ProcessingOptions,
    ) -> str:
        """Apply the requested rewrites regardless of the minimum length."""

        result = text
        if options.convert_soft_breaks:
            result = self.converter.convert(result)
        if options.remove_breaks:
            result = self.rejoin(
                result, container_width, font_size, ignore_min_characters=True
            )
        if options.normalize_spaces:
            result = normalize_spaces(result)
        return result
