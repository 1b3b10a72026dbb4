"""Core data structures for the Linemend cleaner."""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Dict, FrozenSet, List, Optional, Tuple

from .errors import ErrorCategory

if TYPE_CHECKING:
    from .documents import BlockHandle


HARD_BREAK = "\n"

DEFAULT_SOFT_BREAK_CHARS: Tuple[str, ...] = ("\u200b", "\u2028", "\v")


class ResizeMode(Enum):
    """How a text block sizes itself relative to its container."""

    FIXED = "fixed"
    AUTO_HEIGHT = "auto-height"
    AUTO_WIDTH_AND_HEIGHT = "auto-width-and-height"


class DetectionType(Enum):
    """Kinds of incidental line breaks the detector reports."""

    AUTO_WIDTH = "auto-width"
    EDGE_BREAK = "edge-break"
    SOFT_BREAK = "soft-break"


ALL_DETECTIONS: FrozenSet[DetectionType] = frozenset(DetectionType)


@dataclass
class TextBlock:
    """Snapshot of a host text element plus the handle used to mutate it."""

    block_id: str
    content: str
    container_width: float
    font_size: float
    resize_mode: ResizeMode = ResizeMode.FIXED
    locked: bool = False
    visible: bool = True
    has_missing_font: bool = False
    paragraph_spacing: float = 0.0
    name: str = ""
    location: str = ""
    font_names: Tuple[str, ...] = ()
    handle: Optional["BlockHandle"] = field(default=None, repr=False, compare=False)

    @property
    def display_name(self) -> str:
        return self.name or self.block_id


@dataclass(frozen=True)
class ProcessingConfig:
    """Immutable settings for a single analysis or processing run."""

    min_characters: int = 20
    line_break_threshold: float = 0.4
    soft_break_chars: Tuple[str, ...] = DEFAULT_SOFT_BREAK_CHARS
    font_width_multiplier: float = 1.0
    enabled_detections: FrozenSet[DetectionType] = ALL_DETECTIONS
    exclude_patterns: Tuple[str, ...] = ()
    strict_join: bool = False
    refined_widths: bool = True

    def detects(self, kind: DetectionType) -> bool:
        return kind in self.enabled_detections


@dataclass(frozen=True)
class Issue:
    """A single problem found in a text block."""

    kind: DetectionType
    confidence: float
    affected_lines: Tuple[int, ...] = ()
    description: str = ""
    occurrences: int = 0


@dataclass(frozen=True)
class VisualLine:
    """One line produced by the word-wrap simulation."""

    index: int
    text: str
    paragraph: int


@dataclass
class ChangeSet:
    """Proposed replacement values for a block; unset fields stay untouched."""

    new_text: Optional[str] = None
    new_resize_mode: Optional[ResizeMode] = None

    @property
    def is_empty(self) -> bool:
        return self.new_text is None and self.new_resize_mode is None


@dataclass(frozen=True)
class ProcessingOptions:
    """Manual processing switches for selected blocks."""

    remove_breaks: bool = True
    convert_soft_breaks: bool = False
    normalize_spaces: bool = False
    convert_to_auto_height: bool = False


@dataclass
class AnalysisResult:
    """Outcome of analysing one block."""

    block: TextBlock
    issues: List[Issue]
    estimated_changes: str
    original_text: str
    skip_reason: Optional[ErrorCategory] = None
    error: Optional[ErrorCategory] = None

    @property
    def has_issues(self) -> bool:
        return bool(self.issues)


@dataclass
class ProcessingResult:
    """Outcome of applying (or refusing to apply) changes to one block."""

    block: TextBlock
    success: bool
    error: Optional[ErrorCategory] = None
    message: Optional[str] = None
    changes: ChangeSet = field(default_factory=ChangeSet)


@dataclass
class ProgressUpdate:
    """Progress report emitted while a batch runs."""

    current: int
    total: int
    block_name: str
    progress: int
    message: str


@dataclass
class BatchStatistics:
    """Aggregate counts for a processing run."""

    total: int
    successful: int
    failed: int
    error_summary: Dict[str, int] = field(default_factory=dict)


_job_ids = itertools.count(1)


@dataclass
class BatchJob:
    """Ordered blocks submitted for one scan or apply action."""

    blocks: List[TextBlock]
    job_id: int = field(default_factory=lambda: next(_job_ids))
    _cancelled: bool = field(default=False, repr=False)

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled
