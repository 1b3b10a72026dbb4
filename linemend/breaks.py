"""Hard/soft line-break matching and soft-break conversion."""

from __future__ import annotations

import re
from typing import Dict, List, Sequence, Tuple

from .structures import HARD_BREAK

MAX_PATTERNS = 10


class BreakPatternCache:
    """Builds and caches regexes matching the hard break plus soft breaks."""

    def __init__(self, max_entries: int = MAX_PATTERNS) -> None:
        self.max_entries = max(1, max_entries)
        self._patterns: Dict[Tuple[str, ...], re.Pattern[str]] = {}

    def pattern_for(self, soft_break_chars: Sequence[str]) -> re.Pattern[str]:
        key = tuple(soft_break_chars)
        pattern = self._patterns.get(key)
        if pattern is not None:
            return pattern

        pattern = _compile_break_pattern(soft_break_chars)
        if len(self._patterns) >= self.max_entries:
            del self._patterns[next(iter(self._patterns))]
        self._patterns[key] = pattern
        return pattern

    def __len__(self) -> int:
        return len(self._patterns)


def _compile_break_pattern(soft_break_chars: Sequence[str]) -> re.Pattern[str]:
    breaks = {HARD_BREAK}
    breaks.update(char for char in soft_break_chars if char)
    # Longest first so multi-character entries win over their prefixes.
    ordered = sorted(breaks, key=lambda value: (-len(value), value))
    return re.compile("|".join(re.escape(value) for value in ordered))


_shared_cache = BreakPatternCache()


def break_pattern(soft_break_chars: Sequence[str]) -> re.Pattern[str]:
    """Return the shared cached matcher for the given soft-break set."""

    return _shared_cache.pattern_for(soft_break_chars)


def split_paragraphs(text: str, soft_break_chars: Sequence[str]) -> List[str]:
    """Split text on hard and soft breaks alike."""

    return break_pattern(soft_break_chars).split(text)


class SoftBreakConverter:
    """Replaces configured soft-break characters with hard breaks."""

    def __init__(self, soft_break_chars: Sequence[str]) -> None:
        unique = {char for char in soft_break_chars if char and char != HARD_BREAK}
        self.soft_break_chars: Tuple[str, ...] = tuple(
            sorted(unique, key=lambda value: (-len(value), value))
        )

    def convert(self, text: str) -> str:
        result = text
        for char in self.soft_break_chars:
            result = result.replace(char, HARD_BREAK)
        return result

    def count(self, text: str) -> int:
        """Count soft-break occurrences across all configured characters."""

        return sum(text.count(char) for char in self.soft_break_chars)

    def affected_lines(self, text: str) -> List[int]:
        """Return indices of hard-break lines holding at least one soft break."""

        return [
            index
            for index, line in enumerate(text.split(HARD_BREAK))
            if any(char in line for char in self.soft_break_chars)
        ]
