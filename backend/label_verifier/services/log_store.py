"""JSON file store for verification records.

The file is a single JSON array with 2-space indentation. Record keys are
parsed by name by external analysis tooling, so their names and order are
fixed: timestamp, imageName, fields, ocrText, results.
"""

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .verification import VerificationResult

logger = logging.getLogger(__name__)


def iso_timestamp(moment: Optional[datetime] = None) -> str:
    """UTC timestamp with millisecond precision, e.g. 2024-05-01T12:30:00.123Z."""
    moment = (moment or datetime.now(timezone.utc)).astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def _json_number(value: float) -> float | int:
    # Whole numbers are written without a trailing .0
    if float(value).is_integer():
        return int(value)
    return value


def result_to_record(result: VerificationResult) -> Dict[str, Any]:
    return {
        "field": result.field,
        "input": result.expected,
        "found": result.matched,
        "confidence": _json_number(result.confidence),
        "bestMatch": result.excerpt,
    }


def build_record(
    image_name: str,
    fields: Mapping[str, str],
    ocr_text: str,
    results: Sequence[VerificationResult],
    timestamp: Optional[str] = None,
) -> Dict[str, Any]:
    """Build a log record from a finished verification run."""
    return {
        "timestamp": timestamp or iso_timestamp(),
        "imageName": image_name,
        "fields": dict(fields),
        "ocrText": ocr_text,
        "results": [result_to_record(r) for r in results],
    }


class VerificationLogStore:
    """Appends verification records to a JSON array file."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def read_all(self) -> List[Dict[str, Any]]:
        """All records, oldest first. A missing file reads as no records."""
        with self._lock:
            return self._read()

    def append(self, record: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Append a record, stamping it with the current time.

        A timestamp already present in the record wins over the stamp, but
        the key stays first.
        """
        entry = {"timestamp": iso_timestamp(), **record}
        with self._lock:
            logs = self._read()
            logs.append(entry)
            self._write(logs)
        logger.info(f"Logged verification for {entry.get('imageName')!r} ({len(logs)} records)")
        return entry

    def clear(self) -> None:
        with self._lock:
            if self.path.exists():
                self.path.unlink()
        logger.info("Verification logs cleared")

    def _read(self) -> List[Dict[str, Any]]:
        if not self.path.exists():
            return []
        with open(self.path, encoding="utf-8") as f:
            return json.load(f)

    def _write(self, logs: List[Dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            f.write(json.dumps(logs, indent=2, ensure_ascii=False))
