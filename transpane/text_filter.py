from typing import Iterable, List

import regex

from .models import TextRegion

NUMERIC_CHARS = frozenset("0123456789.,+-% ")

# Basic Latin letters and Latin Extended-A/B
LATIN_RANGES = (
    (0x0041, 0x005A),
    (0x0061, 0x007A),
    (0x0100, 0x024F),
)

LATIN_RATIO_THRESHOLD = 0.7


def is_numbers_only(text: str) -> bool:
    """True for digits mixed only with common numeric punctuation"""
    if not text or not set(text) <= NUMERIC_CHARS:
        return False
    return any(ch.isdigit() for ch in text)


def glyph_count(text: str) -> int:
    """Number of user-perceived characters (extended grapheme clusters)"""
    return len(regex.findall(r"\X", text))


def _is_latin(ch: str) -> bool:
    code = ord(ch)
    return any(lo <= code <= hi for lo, hi in LATIN_RANGES)


def latin_ratio(text: str) -> float:
    """Share of alphabetic characters that are Latin script; 0.0 with no letters"""
    latin = 0
    total = 0
    for ch in text:
        if not ch.isalpha():
            continue
        total += 1
        if _is_latin(ch):
            latin += 1
    if total == 0:
        return 0.0
    return latin / total


def is_primarily_latin(text: str) -> bool:
    return latin_ratio(text) > LATIN_RATIO_THRESHOLD


class TextFilter:
    """Decides which detected regions are worth translating.

    Rules, first match wins:
      1. empty text after trimming
      2. a single glyph, however many code points it spans
      3. confidence below ``minimum_confidence``
      4. numbers with numeric punctuation only
      5. more than 70% of the letters are Latin script (already English)
    Everything else is translated.
    """

    def __init__(self, minimum_confidence: float = 0.5):
        self.minimum_confidence = minimum_confidence

    def should_translate(self, region: TextRegion) -> bool:
        text = region.text.strip()
        if not text:
            return False
        if glyph_count(text) == 1:
            return False
        if region.confidence < self.minimum_confidence:
            return False
        if is_numbers_only(text):
            return False
        if is_primarily_latin(text):
            return False
        return True

    def filter(self, regions: Iterable[TextRegion]) -> List[TextRegion]:
        return [r for r in regions if self.should_translate(r)]
