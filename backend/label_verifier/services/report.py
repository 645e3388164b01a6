"""Plain-text rendering of verification results."""

import re
from typing import Sequence

from .verification import VerificationResult

# More failures than this suggests a bad image rather than bad values
RECOMMENDATION_FAILURES = 2

RECOMMENDATION = """Recommendation: Multiple fields failed verification. Please consider:
  - Upload a higher quality or higher resolution image
  - Ensure the label is clearly visible and well-lit
  - Verify the form values match exactly what appears on the label"""


def field_label(field: str) -> str:
    """brandName -> Brand Name"""
    spaced = re.sub(r"([A-Z])", r" \1", field).strip()
    return spaced[:1].upper() + spaced[1:]


def format_percent(confidence: float) -> str:
    return f"{confidence * 100:.0f}%"


def render_report(results: Sequence[VerificationResult]) -> str:
    """
    Render results as text: one line per field, with an explanation for
    every field that was not found.
    """
    lines = ["Verification Results"]
    for result in results:
        status = "Match" if result.matched else "Not Found"
        lines.append(
            f"  {field_label(result.field):<22} {format_percent(result.confidence):>5}  {status}"
        )
        if not result.matched:
            found = (
                f'"{result.excerpt}" ({format_percent(result.confidence)} match)'
                if result.excerpt else "Not detected"
            )
            lines.append(f'      Expected: "{result.expected}"')
            lines.append(f"      Found in OCR: {found}")

    failed = sum(1 for r in results if not r.matched)
    if failed > RECOMMENDATION_FAILURES:
        lines.append("")
        lines.append(RECOMMENDATION)
    return "\n".join(lines)
