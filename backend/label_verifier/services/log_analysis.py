"""Summaries of the verification log, per image."""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Sequence

OCR_TEXT_PREVIEW = 500

_ALCOHOL_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*%\s*(?:ALC|ALCOHOL|VOL|ABV)", re.IGNORECASE)
_VOLUME_PATTERN = re.compile(r"(\d+)\s*(mL|ml|ML|L|oz|OZ)", re.IGNORECASE)


@dataclass
class ImageSummary:
    """Latest verification of one image, with suggested form values."""
    image_name: str
    runs: int
    ocr_text: str
    truncated: bool
    results: List[Dict[str, Any]]
    suggestions: Dict[str, str] = field(default_factory=dict)


def suggest_values(ocr_text: str, results: Sequence[Mapping[str, Any]]) -> Dict[str, str]:
    """Suggest form values that the OCR text actually supports."""
    suggestions = {}

    for result in results:
        if result.get("found") and result.get("bestMatch"):
            suggestions[result["field"]] = result["bestMatch"]

    alcohol = _ALCOHOL_PATTERN.search(ocr_text)
    if alcohol and "alcoholContent" not in suggestions:
        suggestions["alcoholContent"] = f"{alcohol.group(1)}%"

    volume = _VOLUME_PATTERN.search(ocr_text)
    if volume and "netContents" not in suggestions:
        suggestions["netContents"] = f"{volume.group(1)} {volume.group(2)}"

    return suggestions


def analyze_logs(records: Sequence[Mapping[str, Any]]) -> List[ImageSummary]:
    """Group records by image name and summarize the most recent run of each."""
    groups: Dict[str, List[Mapping[str, Any]]] = {}
    for record in records:
        groups.setdefault(record.get("imageName", ""), []).append(record)

    summaries = []
    for image_name in sorted(groups):
        latest = groups[image_name][-1]
        ocr_text = latest.get("ocrText") or ""
        results = list(latest.get("results") or [])
        summaries.append(ImageSummary(
            image_name=image_name,
            runs=len(groups[image_name]),
            ocr_text=ocr_text[:OCR_TEXT_PREVIEW],
            truncated=len(ocr_text) > OCR_TEXT_PREVIEW,
            results=results,
            suggestions=suggest_values(ocr_text, results),
        ))
    return summaries


def format_summary(summary: ImageSummary) -> str:
    lines = [f"IMAGE: {summary.image_name} ({summary.runs} runs)", "-" * 80, "", "OCR EXTRACTED TEXT:"]
    lines.append(summary.ocr_text)
    if summary.truncated:
        lines.append("... (truncated)")

    lines += ["", "VERIFICATION RESULTS:"]
    for result in summary.results:
        status = "+" if result.get("found") else "x"
        confidence = result.get("confidence")
        percent = f" ({confidence * 100:.1f}% match)" if confidence else ""
        lines.append(f'  {status} {result.get("field")}: "{result.get("input") or "N/A"}"{percent}')
        if result.get("found") and result.get("bestMatch"):
            lines.append(f'      Found in OCR: "{result["bestMatch"]}"')

    lines += ["", "SUGGESTED VALUES:"]
    for name, value in summary.suggestions.items():
        lines.append(f'  {name}: "{value}"')
    return "\n".join(lines)
