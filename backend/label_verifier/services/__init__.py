"""Services for preprocessing, OCR, normalization, verification and logging."""

from .preprocessing import ImagePreprocessor, PreprocessedVariant, decode_image
from .normalizer import normalize_text
from .ocr import (
    OCRService,
    OCRConfiguration,
    OCRRecognition,
    OCRRun,
    AttemptStatus,
    RawRecognition,
    TesseractRecognizer,
    EasyOCRRecognizer,
    DEFAULT_CONFIGURATIONS,
    create_recognizer,
)
from .verification import (
    VerificationService,
    VerificationResult,
    MatchResult,
    MATCH_THRESHOLD,
    FIELD_NAMES,
    levenshtein_distance,
    find_best_match,
    verify_field,
)
from .fields import collect_fields, validate_fields
from .log_store import VerificationLogStore, build_record
from .report import render_report
from .log_analysis import analyze_logs, ImageSummary
from .pipeline import VerificationPipeline, PipelineResult

__all__ = [
    "ImagePreprocessor",
    "PreprocessedVariant",
    "decode_image",
    "normalize_text",
    "OCRService",
    "OCRConfiguration",
    "OCRRecognition",
    "OCRRun",
    "AttemptStatus",
    "RawRecognition",
    "TesseractRecognizer",
    "EasyOCRRecognizer",
    "DEFAULT_CONFIGURATIONS",
    "create_recognizer",
    "VerificationService",
    "VerificationResult",
    "MatchResult",
    "MATCH_THRESHOLD",
    "FIELD_NAMES",
    "levenshtein_distance",
    "find_best_match",
    "verify_field",
    "collect_fields",
    "validate_fields",
    "VerificationLogStore",
    "build_record",
    "render_report",
    "analyze_logs",
    "ImageSummary",
    "VerificationPipeline",
    "PipelineResult",
]
