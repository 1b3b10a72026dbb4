"""Error handling policy implementation."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from .errors import ErrorCategory, ErrorRecord, ErrorTracker

logger = logging.getLogger(__name__)


class ErrorPolicy:
    """Records per-block failures without ever aborting the batch."""

    def __init__(self) -> None:
        self.records: List[ErrorRecord] = []
        self.tracker = ErrorTracker()
        self._warned = False

    def record_success(self) -> None:
        """Reset consecutive counters after successful work."""

        self.tracker.reset_consecutive()

    def handle_error(
        self,
        category: ErrorCategory,
        message: str,
        details: Optional[str] = None,
    ) -> ErrorRecord:
        """Record an error and warn once when failures start piling up."""

        record = ErrorRecord(category=category, message=message, details=details)
        self.records.append(record)
        consecutive, total, threshold = self.tracker.register(category)

        if category.is_skip:
            logger.info("Skipped (%s): %s", category.value, message)
        else:
            logger.warning("%s: %s", category.value, message)

        if threshold and not self._warned:
            self._warned = True
            if consecutive >= self.tracker.CONSECUTIVE_LIMIT:
                logger.warning(
                    "Repeated %s errors detected (%d in a row); continuing with the batch.",
                    category.value,
                    consecutive,
                )
            else:
                logger.warning(
                    "%d errors encountered so far; continuing with the batch.", total
                )
        return record

    def breakdown(self) -> Dict[str, int]:
        """Return failure counts keyed by category name."""

        counts: Dict[str, int] = {}
        for record in self.records:
            key = record.category.value
            counts[key] = counts.get(key, 0) + 1
        return counts
