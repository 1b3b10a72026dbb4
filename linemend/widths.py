"""Character classification and rendered-width estimation."""

from __future__ import annotations

from typing import Dict, Tuple

FULL_WIDTH = 1.0
HALF_WIDTH = 0.5
DEFAULT_WIDTH = 0.8

# Glyph widths as a fraction of the font size, calibrated against common UI
# sans-serif faces.
NARROW_GLYPHS: Dict[str, float] = {
    "i": 0.27,
    "l": 0.27,
    "j": 0.27,
    "'": 0.27,
    "|": 0.27,
    ".": 0.3,
    ",": 0.3,
    ":": 0.3,
    ";": 0.3,
    "!": 0.3,
    "`": 0.3,
    " ": 0.3,
    "I": 0.33,
    "f": 0.33,
    "t": 0.35,
    "r": 0.37,
    "(": 0.37,
    ")": 0.37,
    "[": 0.37,
    "]": 0.37,
}

WIDE_GLYPHS: Dict[str, float] = {
    "M": 0.85,
    "W": 0.85,
    "m": 0.8,
    "@": 0.82,
    "w": 0.75,
    "%": 0.75,
    "O": 0.72,
    "Q": 0.72,
    "&": 0.68,
}

SYMBOL_GLYPHS: Dict[str, float] = {
    "€": 0.56,  # euro
    "£": 0.56,  # pound
    "¥": 0.56,  # yen
    "\u2014": 1.0,  # em dash
    "\u2013": 0.5,  # en dash
    "‘": 0.27,
    "’": 0.27,
    "“": 0.43,
    "”": 0.43,
    "…": 1.0,  # ellipsis
    "•": 0.35,  # bullet
}

MAX_CACHE_ENTRIES = 500
MAX_CACHED_LENGTH = 100


def is_cjk(char: str) -> bool:
    """Detect whether a single character is Japanese kana or a CJK ideograph."""

    if not char:
        return False
    code = ord(char[0])
    return (
        0x3040 <= code <= 0x309F  # Hiragana
        or 0x30A0 <= code <= 0x30FF  # Katakana
        or 0x4E00 <= code <= 0x9FAF  # CJK Unified Ideographs
        or 0x3400 <= code <= 0x4DBF  # Extension A
    )


def is_half_width(char: str) -> bool:
    code = ord(char)
    return (
        0x0020 <= code <= 0x007E  # Basic Latin
        or 0xFF61 <= code <= 0xFF9F  # Half-width Katakana
    )


def is_full_width(char: str) -> bool:
    # Half-width katakana sits inside the fullwidth forms block.
    if is_half_width(char):
        return False
    code = ord(char)
    return (
        is_cjk(char)
        or 0xFF00 <= code <= 0xFFEF  # Fullwidth forms
        or 0x3000 <= code <= 0x303F  # CJK symbols and punctuation
    )


def char_weight(char: str, *, refined: bool = True) -> float:
    """Return the width of one character as a fraction of the font size."""

    if refined:
        for table in (SYMBOL_GLYPHS, NARROW_GLYPHS, WIDE_GLYPHS):
            weight = table.get(char)
            if weight is not None:
                return weight
    if is_full_width(char):
        return FULL_WIDTH
    if is_half_width(char):
        return HALF_WIDTH
    return DEFAULT_WIDTH


class CharacterWidthEstimator:
    """Estimates rendered text width from per-character width classes."""

    def __init__(self, multiplier: float = 1.0, *, refined: bool = True) -> None:
        self.multiplier = multiplier
        self.refined = refined
        self._cache: Dict[Tuple[str, float], float] = {}

    def estimate_width(self, text: str, font_size: float) -> float:
        if len(text) > MAX_CACHED_LENGTH:
            return self._measure(text, font_size)

        key = (text, font_size)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        width = self._measure(text, font_size)
        if len(self._cache) >= MAX_CACHE_ENTRIES:
            # Dicts keep insertion order, so the first key is the oldest.
            del self._cache[next(iter(self._cache))]
        self._cache[key] = width
        return width

    def clear_cache(self) -> None:
        self._cache.clear()

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def _measure(self, text: str, font_size: float) -> float:
        total = 0.0
        for char in text:
            total += char_weight(char, refined=self.refined)
        return total * font_size * self.multiplier
