"""Fuzzy verification of expected field values against OCR text."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, List, Mapping, Optional

from rapidfuzz.distance import Levenshtein

from ..exceptions import VerificationInputError

logger = logging.getLogger(__name__)

# A field counts as present above this confidence. Tunable but not
# configurable: results must be comparable across runs.
MATCH_THRESHOLD = 0.7

# Longest word window compared against an expected value
MAX_PHRASE_WORDS = 3

# The fixed set of label fields, in form order
FIELD_NAMES = (
    "brandName",
    "productClass",
    "alcoholContent",
    "netContents",
    "manufacturerName",
    "manufacturerAddress",
)


@dataclass(frozen=True)
class MatchResult:
    """Closest word or phrase found for an expected value."""
    distance: Optional[int]
    excerpt: Optional[str]
    confidence: float


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of verifying one field."""
    field: str
    expected: str
    matched: bool
    confidence: float
    excerpt: Optional[str]


def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance with unit cost for insertion, deletion and substitution."""
    return Levenshtein.distance(a, b)


def find_best_match(expected: str, text: str) -> MatchResult:
    """
    Find the word or short phrase in text closest to the expected value.

    An exact substring hit short-circuits with confidence 1.0. Otherwise
    every single word and every 2- and 3-word phrase is scored by edit
    distance; the first minimum wins.

    Both arguments are compared as given, so callers lower-case them for
    case-insensitive matching.
    """
    if expected in text:
        return MatchResult(distance=0, excerpt=expected, confidence=1.0)

    words = text.split()
    best_distance: Optional[int] = None
    best_excerpt: Optional[str] = None

    for i in range(len(words)):
        for size in range(1, MAX_PHRASE_WORDS + 1):
            if i + size > len(words):
                break
            candidate = " ".join(words[i:i + size])
            distance = levenshtein_distance(expected, candidate)
            if best_distance is None or distance < best_distance:
                best_distance = distance
                best_excerpt = candidate

    if best_excerpt is None:
        return MatchResult(distance=None, excerpt=None, confidence=0.0)

    max_length = max(len(expected), len(best_excerpt))
    confidence = max(0.0, 1 - best_distance / max_length) if max_length > 0 else 0.0
    return MatchResult(distance=best_distance, excerpt=best_excerpt, confidence=confidence)


def verify_field(field: str, expected: str, text: str) -> VerificationResult:
    """Verify one expected value against OCR text, ignoring case."""
    match = find_best_match(str(expected).lower(), text.lower())
    return VerificationResult(
        field=field,
        expected=expected,
        matched=match.confidence > MATCH_THRESHOLD,
        confidence=match.confidence,
        excerpt=match.excerpt,
    )


class VerificationService:
    """Verifies a set of label fields against one normalized OCR text."""

    def __init__(self, yield_seconds: float = 0.0):
        self.yield_seconds = yield_seconds

    async def verify_all(
        self,
        fields: Mapping[str, Optional[str]],
        text: str,
        on_progress: Optional[Callable[[int], None]] = None,
    ) -> List[VerificationResult]:
        """
        Verify every non-empty field, in the order given.

        Empty values produce no result at all. Progress is reported after
        each field and control returns to the event loop between fields.

        Raises:
            VerificationInputError: If there is no OCR text
        """
        if not text:
            raise VerificationInputError("No text extracted from image")

        entries = [(name, value) for name, value in fields.items() if value]
        total = len(entries)
        results = []

        for index, (name, value) in enumerate(entries):
            result = verify_field(name, value, text)
            results.append(result)
            logger.debug(
                f"Verified {name}: confidence={result.confidence:.2f}, "
                f"matched={result.matched}, excerpt={result.excerpt!r}"
            )

            if on_progress:
                on_progress(int((index + 1) * 100 / total + 0.5))

            await asyncio.sleep(self.yield_seconds)

        matched = sum(1 for r in results if r.matched)
        logger.info(f"Verified {total} fields: {matched} matched, {total - matched} not found")
        return results
