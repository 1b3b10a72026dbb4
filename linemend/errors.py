"""Error definitions and policy helpers for the Linemend cleaner."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ErrorCategory(Enum):
    """Categorises skipped and failed blocks for reporting."""

    MISSING_FONT = "MissingFont"
    LOCKED_BLOCK = "LockedBlock"
    HIDDEN_BLOCK = "HiddenBlock"
    TOO_SHORT = "TooShort"
    ANALYSIS_FAILURE = "AnalysisFailure"
    APPLY_FAILURE = "ApplyFailure"
    BATCH_FAILURE = "BatchFailure"

    @property
    def label(self) -> str:
        return _LABELS[self]

    @property
    def is_skip(self) -> bool:
        """Whether the category describes a skipped block rather than a failure."""

        return self in {
            ErrorCategory.MISSING_FONT,
            ErrorCategory.LOCKED_BLOCK,
            ErrorCategory.HIDDEN_BLOCK,
            ErrorCategory.TOO_SHORT,
        }


_LABELS = {
    ErrorCategory.MISSING_FONT: "Missing font - cannot process",
    ErrorCategory.LOCKED_BLOCK: "Block is locked",
    ErrorCategory.HIDDEN_BLOCK: "Block is hidden",
    ErrorCategory.TOO_SHORT: "Too short",
    ErrorCategory.ANALYSIS_FAILURE: "Analysis error",
    ErrorCategory.APPLY_FAILURE: "Could not apply changes",
    ErrorCategory.BATCH_FAILURE: "Batch failed",
}


class LinemendError(Exception):
    """Base exception for all custom errors."""


class ConfigurationError(LinemendError):
    """Raised when settings cannot be loaded or validated."""


class UnsupportedFileTypeError(LinemendError):
    """Raised when a given file extension is not supported."""


class OverwriteRefusedError(LinemendError):
    """Raised when attempting to overwrite an output without consent."""


class NoTextBlocksError(LinemendError):
    """Raised when a document or selection holds no text blocks."""


class AnalysisFailure(LinemendError):
    """Raised when a single block cannot be analysed."""


class ApplyFailure(LinemendError):
    """Raised when fonts cannot be loaded or a block cannot be mutated."""


class BatchFailure(LinemendError):
    """Raised when a batch fails outside any per-block boundary."""

    def __init__(self, message: str, *, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.cause = cause


@dataclass
class ErrorRecord:
    """Stores context for a handled error."""

    category: ErrorCategory
    message: str
    details: Optional[str] = None


class ErrorTracker:
    """Tracks consecutive and aggregate errors to flag unhealthy batches."""

    CONSECUTIVE_LIMIT = 3
    TOTAL_LIMIT = 10

    def __init__(self) -> None:
        self.last_category: Optional[ErrorCategory] = None
        self.consecutive: int = 0
        self.total: int = 0

    def register(self, category: ErrorCategory) -> tuple[int, int, bool]:
        """Register a new error and return counters."""

        if self.last_category == category:
            self.consecutive += 1
        else:
            self.last_category = category
            self.consecutive = 1

        self.total += 1

        threshold_reached = (
            self.consecutive >= self.CONSECUTIVE_LIMIT
            or self.total >= self.TOTAL_LIMIT
        )

        return self.consecutive, self.total, threshold_reached

    def reset_consecutive(self) -> None:
        """Reset the consecutive counter after successful work."""

        self.consecutive = 0
        self.last_category = None
