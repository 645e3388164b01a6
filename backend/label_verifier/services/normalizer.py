"""OCR text normalization.

Cleans recognizer output before any matching happens. Rules run in a fixed
order; later rules see the output of earlier ones.
"""

import re
import unicodedata
from typing import Optional

# Digit misread inside a word: B0X -> BOX, W1N -> WIN, WHI5KY -> WHISKY
_DIGIT_IN_WORD = {"0": "O", "1": "I", "5": "S"}
_DIGIT_IN_WORD_PATTERN = re.compile(r"(?<=[A-Za-z])[015](?=[A-Za-z])")

# "40 o/o", "40 0/0", "4O o/o" -> "40%"
_PERCENT_PATTERN = re.compile(r"(\d[\dOo]*)\s*[o0]/[o0]", re.IGNORECASE)

# Spirit and strength vocabulary with their common OCR confusions
# (0/o, 1/i, 3/e, 8/b)
_VOCABULARY = [
    (re.compile(r"pr[o0]{2}f", re.IGNORECASE), "proof"),
    (re.compile(r"pr[o0]of", re.IGNORECASE), "proof"),
    (re.compile(r"wh[i1]sky", re.IGNORECASE), "whisky"),
    (re.compile(r"wh[i1]sk[e3]y", re.IGNORECASE), "whiskey"),
    (re.compile(r"v[o0]dka", re.IGNORECASE), "vodka"),
    (re.compile(r"t[e3]qu[i1]la", re.IGNORECASE), "tequila"),
    (re.compile(r"[b8][o0]urb[o0]n", re.IGNORECASE), "bourbon"),
    (re.compile(r"c[o0]gnac", re.IGNORECASE), "cognac"),
    (re.compile(r"[b8]randy", re.IGNORECASE), "brandy"),
]

# Units only when they stand alone, so FAMILY or OZARK are left alone
_ML_PATTERN = re.compile(r"(?<![a-z])m[li1](?![a-z])", re.IGNORECASE)
_OZ_PATTERN = re.compile(r"(?<![a-z])[o0]z(?![a-z])", re.IGNORECASE)

_WHITESPACE_PATTERN = re.compile(r"\s+")
_REPEAT_PATTERN = re.compile(r"(.)\1{3,}")


def _match_case(source: str, word: str) -> str:
    """Render the canonical word in the casing style of the OCR'd text."""
    letters = [c for c in source if c.isalpha()]
    if letters and all(c.isupper() for c in letters):
        return word.upper()
    if letters and letters[0].isupper():
        return word.capitalize()
    return word


def fix_digits_in_words(text: str) -> str:
    """Replace 0, 1 and 5 with O, I and S when letters flank them."""
    return _DIGIT_IN_WORD_PATTERN.sub(lambda m: _DIGIT_IN_WORD[m.group(0)], text)


def fix_percent_signs(text: str) -> str:
    """Turn a number followed by o/o or 0/0 into a percentage."""
    def repl(match: re.Match) -> str:
        number = match.group(1).replace("O", "0").replace("o", "0")
        return f"{number}%"

    return _PERCENT_PATTERN.sub(repl, text)


def canonicalize_vocabulary(text: str) -> str:
    """Repair misread spirit names and 'proof'."""
    for pattern, word in _VOCABULARY:
        text = pattern.sub(lambda m, w=word: _match_case(m.group(0), w), text)
    return text


def canonicalize_units(text: str) -> str:
    """Canonicalize ml and oz volume units."""
    text = _ML_PATTERN.sub("ml", text)
    return _OZ_PATTERN.sub("oz", text)


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE_PATTERN.sub(" ", text).strip()


def collapse_repeats(text: str) -> str:
    """Collapse any character repeated more than 3 times down to 2."""
    return _REPEAT_PATTERN.sub(r"\1\1", text)


def normalize_text(text: Optional[str]) -> str:
    """
    Normalize raw OCR text.

    Steps, in order:
    - Unicode NFKC (ligatures, full-width characters)
    - Digit -> letter fixes inside words
    - Percent sign repair
    - Spirit vocabulary
    - Volume units
    - Whitespace collapse
    - Repeated character collapse

    Args:
        text: Raw OCR text; None or empty gives ""

    Returns:
        Cleaned text
    """
    if not text:
        return ""

    normalized = unicodedata.normalize("NFKC", text)
    normalized = fix_digits_in_words(normalized)
    normalized = fix_percent_signs(normalized)
    normalized = canonicalize_vocabulary(normalized)
    normalized = canonicalize_units(normalized)
    normalized = collapse_whitespace(normalized)
    normalized = collapse_repeats(normalized)
    return normalized
