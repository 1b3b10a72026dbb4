"""Word-wrap simulation reproducing where a layout engine breaks lines."""

from __future__ import annotations

import re
from typing import List, Sequence

from .breaks import split_paragraphs
from .structures import DEFAULT_SOFT_BREAK_CHARS, VisualLine
from .widths import CharacterWidthEstimator

# Whitespace runs, single CJK characters (a break opportunity sits between any
# two of them) and runs of everything else.
TOKEN_PATTERN = re.compile(
    r"\s+"
    r"|[\u3040-\u30ff\u3400-\u4dbf\u4e00-\u9faf]"
    r"|[^\s\u3040-\u30ff\u3400-\u4dbf\u4e00-\u9faf]+"
)


def tokenise_preserving_whitespace(text: str) -> List[str]:
    """Tokenise text into alternating word and whitespace tokens."""

    return TOKEN_PATTERN.findall(text)


class WordWrapSimulator:
    """Greedily wraps paragraphs into visual lines for a container width."""

    def __init__(
        self,
        estimator: CharacterWidthEstimator,
        soft_break_chars: Sequence[str] = DEFAULT_SOFT_BREAK_CHARS,
    ) -> None:
        self.estimator = estimator
        self.soft_break_chars = tuple(soft_break_chars)

    def simulate(
        self,
        text: str,
        container_width: float,
        font_size: float,
    ) -> List[VisualLine]:
        lines: List[VisualLine] = []
        for p_idx, paragraph in enumerate(split_paragraphs(text, self.soft_break_chars)):
            if not paragraph:
                lines.append(VisualLine(index=len(lines), text="", paragraph=p_idx))
                continue
            for content in self.wrap_paragraph(paragraph, container_width, font_size):
                lines.append(VisualLine(index=len(lines), text=content, paragraph=p_idx))
        return lines

    def wrap_paragraph(
        self,
        paragraph: str,
        container_width: float,
        font_size: float,
    ) -> List[str]:
        wrapped: List[str] = []
        current = ""
        for token in tokenise_preserving_whitespace(paragraph):
            candidate = current + token
            if not current or (
                self.estimator.estimate_width(candidate, font_size) <= container_width
            ):
                current = candidate
                continue
            wrapped.append(current)
            current = token
        if current:
            wrapped.append(current)
        return wrapped
