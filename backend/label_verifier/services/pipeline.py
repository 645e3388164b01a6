"""Verification orchestrator: preprocess -> OCR -> per-field matching -> log."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional

from ..config import Settings, get_settings
from ..exceptions import InputError
from .fields import collect_fields, validate_fields
from .log_store import VerificationLogStore, build_record
from .ocr import OCRRecognition, OCRService, create_recognizer, round_half_up
from .preprocessing import ImagePreprocessor, decode_image
from .verification import VerificationResult, VerificationService

logger = logging.getLogger(__name__)

# Overall progress milestones
PROGRESS_START = 10
PROGRESS_OCR = 40
PROGRESS_VERIFY = 70
PROGRESS_DONE = 100
STAGE_SPAN = 0.3


@dataclass
class PipelineResult:
    """Outcome of a verification run."""
    image_name: str
    fields: Dict[str, str]
    results: List[VerificationResult]
    ocr_text: str
    ocr_confidence: float
    configuration: str
    variants: List[str] = field(default_factory=list)
    timing_ms: Dict[str, int] = field(default_factory=dict)

    @property
    def matched_count(self) -> int:
        return sum(1 for r in self.results if r.matched)

    @property
    def all_matched(self) -> bool:
        return all(r.matched for r in self.results)


class VerificationPipeline:
    """Runs one label image through the whole verification pipeline."""

    def __init__(
        self,
        preprocessor: ImagePreprocessor,
        ocr_service: OCRService,
        verifier: VerificationService,
        log_store: Optional[VerificationLogStore] = None,
        ocr_source: str = "composite",
    ):
        if ocr_source not in ("composite", "original"):
            raise ValueError(f"Unknown OCR source: {ocr_source}")
        self.preprocessor = preprocessor
        self.ocr_service = ocr_service
        self.verifier = verifier
        self.log_store = log_store
        self.ocr_source = ocr_source

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "VerificationPipeline":
        """Wire the pipeline from application settings."""
        settings = settings or get_settings()
        return cls(
            preprocessor=ImagePreprocessor(settings),
            ocr_service=OCRService(create_recognizer(settings)),
            verifier=VerificationService(yield_seconds=settings.verification_yield_seconds),
            log_store=VerificationLogStore(settings.log_file),
            ocr_source=settings.ocr_source,
        )

    def _prepare(self, image_bytes: bytes) -> tuple:
        image = decode_image(image_bytes)
        variants = self.preprocessor.produce_variants(image)
        target = self.preprocessor.composite(variants) if self.ocr_source == "composite" else image
        return target, [v.name for v in variants]

    async def run(
        self,
        image_bytes: Optional[bytes],
        image_name: str,
        fields: Mapping[str, Optional[str]],
        on_progress: Optional[Callable[[int], None]] = None,
    ) -> PipelineResult:
        """
        Verify expected field values against a label image.

        Args:
            image_bytes: Uploaded image
            image_name: Original file name, used for logging
            fields: Expected values keyed by field name; empty values are skipped
            on_progress: Receives overall percent done

        Raises:
            InputError: No image, no expected values, or malformed values
            PreprocessingError, RecognitionError, VerificationInputError: Fatal stage failures
        """
        def report(percent: int) -> None:
            if on_progress:
                on_progress(percent)

        if not image_bytes:
            raise InputError("Please select an image to verify")
        entries = collect_fields(fields)
        errors = validate_fields(entries)
        if errors:
            raise InputError("; ".join(errors))

        start = time.time()
        report(PROGRESS_START)

        target, variant_names = await asyncio.to_thread(self._prepare, image_bytes)
        preprocess_ms = int((time.time() - start) * 1000)

        report(PROGRESS_OCR)
        ocr_start = time.time()
        recognition: OCRRecognition = await self.ocr_service.recognize(
            target,
            lambda p: report(PROGRESS_OCR + round_half_up(p * STAGE_SPAN)),
        )
        del target
        ocr_ms = int((time.time() - ocr_start) * 1000)

        report(PROGRESS_VERIFY)
        verify_start = time.time()
        results = await self.verifier.verify_all(
            entries,
            recognition.text,
            lambda p: report(PROGRESS_VERIFY + round_half_up(p * STAGE_SPAN)),
        )
        verify_ms = int((time.time() - verify_start) * 1000)
        report(PROGRESS_DONE)

        total_ms = int((time.time() - start) * 1000)
        logger.info(
            f"Timing breakdown: preprocess={preprocess_ms}ms, ocr={ocr_ms}ms, "
            f"verify={verify_ms}ms, total={total_ms}ms"
        )

        result = PipelineResult(
            image_name=image_name,
            fields=entries,
            results=results,
            ocr_text=recognition.text,
            ocr_confidence=recognition.confidence,
            configuration=recognition.configuration,
            variants=variant_names,
            timing_ms={
                "preprocess_ms": preprocess_ms,
                "ocr_ms": ocr_ms,
                "verify_ms": verify_ms,
                "total_ms": total_ms,
            },
        )
        await self._log(result)
        return result

    async def _log(self, result: PipelineResult) -> None:
        # Logging must never fail an otherwise successful run
        if self.log_store is None:
            return
        try:
            record = build_record(result.image_name, result.fields, result.ocr_text, result.results)
            await asyncio.to_thread(self.log_store.append, record)
        except Exception as e:
            logger.error(f"Logging failed: {e}")
