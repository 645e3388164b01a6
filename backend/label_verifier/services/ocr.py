"""OCR service: best-of-N recognition over segmentation configurations.

Enhanced with:
- Ordered configuration priority (sparse text first, raw line last)
- Score = confidence * ln(text length + 1) to prefer substantive extractions
- Early exit once a configuration is confident and long enough
- Per-configuration failure isolation
- Pluggable recognizer backends (Tesseract, EasyOCR)
"""

import asyncio
import logging
import math
import os
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol

import numpy as np
import pytesseract
from PIL import Image

from ..config import Settings
from ..exceptions import RecognitionError
from .normalizer import normalize_text

logger = logging.getLogger(__name__)

# Early exit: a configuration this confident with this much text wins outright
EARLY_EXIT_CONFIDENCE = 80.0
EARLY_EXIT_TEXT_LENGTH = 50

ProgressCallback = Callable[[int], None]
FractionCallback = Callable[[float], None]


class Segmentation(str, Enum):
    """How the recognizer decomposes the image into text regions."""
    SPARSE_TEXT = "sparse_text"
    AUTO = "auto"
    SINGLE_BLOCK = "single_block"
    RAW_LINE = "raw_line"


@dataclass(frozen=True)
class OCRConfiguration:
    """A single recognizer configuration attempt."""
    name: str
    segmentation: Segmentation
    psm: int  # Tesseract page segmentation mode
    oem: int  # Tesseract engine: 1 = LSTM, 2 = legacy + LSTM
    preserve_interword_spaces: bool = True

    @property
    def tesseract_config(self) -> str:
        config = f"--psm {self.psm} --oem {self.oem}"
        if self.preserve_interword_spaces:
            config += " -c preserve_interword_spaces=1"
        return config


# Ordered by effectiveness for label text; generic fallback last
DEFAULT_CONFIGURATIONS: List[OCRConfiguration] = [
    OCRConfiguration("Sparse Text", Segmentation.SPARSE_TEXT, psm=11, oem=1),
    OCRConfiguration("Auto Detection", Segmentation.AUTO, psm=3, oem=1),
    OCRConfiguration("Single Block", Segmentation.SINGLE_BLOCK, psm=6, oem=1),
    OCRConfiguration("Raw Line", Segmentation.RAW_LINE, psm=13, oem=2),
]


@dataclass
class RawRecognition:
    """Output of one recognizer call, before normalization."""
    text: str
    confidence: float  # 0-100


class Recognizer(Protocol):
    """A text recognition backend."""

    @property
    def is_ready(self) -> bool: ...

    def initialize(self) -> bool: ...

    def recognize(
        self,
        image: np.ndarray,
        configuration: OCRConfiguration,
        on_progress: Optional[FractionCallback] = None,
    ) -> RawRecognition: ...


class TesseractRecognizer:
    """Tesseract backend via pytesseract."""

    def __init__(self, tesseract_cmd: Optional[str] = None, lang: str = "eng"):
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd
        self.lang = lang
        self._ready = False

    @property
    def is_ready(self) -> bool:
        return self._ready

    def initialize(self) -> bool:
        """Check that the tesseract binary can be found."""
        try:
            version = pytesseract.get_tesseract_version()
        except pytesseract.TesseractNotFoundError as e:
            logger.error(f"Tesseract not available: {e}")
            self._ready = False
            return False
        logger.info(f"Tesseract {version} ready")
        self._ready = True
        return True

    def recognize(
        self,
        image: np.ndarray,
        configuration: OCRConfiguration,
        on_progress: Optional[FractionCallback] = None,
    ) -> RawRecognition:
        pil_image = Image.fromarray(image)
        config = configuration.tesseract_config

        text = pytesseract.image_to_string(pil_image, lang=self.lang, config=config)
        if on_progress:
            on_progress(0.5)

        data = pytesseract.image_to_data(
            pil_image,
            lang=self.lang,
            config=config,
            output_type=pytesseract.Output.DICT,
        )

        # Page-level confidence is the mean over recognized words
        confidences = [
            float(conf)
            for conf, word in zip(data["conf"], data["text"])
            if float(conf) >= 0 and str(word).strip()
        ]
        confidence = sum(confidences) / len(confidences) if confidences else 0.0

        if on_progress:
            on_progress(1.0)
        return RawRecognition(text=text, confidence=confidence)


# EasyOCR has no page segmentation modes; each configuration maps to
# readtext options that merge detections more or less aggressively
EASYOCR_OPTIONS: Dict[Segmentation, Dict[str, Any]] = {
    Segmentation.SPARSE_TEXT: {"decoder": "greedy", "width_ths": 0.5},
    Segmentation.AUTO: {"decoder": "greedy"},
    Segmentation.SINGLE_BLOCK: {"decoder": "greedy", "width_ths": 1.5, "height_ths": 1.0},
    Segmentation.RAW_LINE: {"decoder": "beamsearch", "width_ths": 5.0, "ycenter_ths": 1.0},
}


class EasyOCRRecognizer:
    """EasyOCR backend (PyTorch-based). The model loads on first use."""

    _lock = threading.Lock()

    def __init__(self, lang: str = "en", model_dir: Optional[str] = None):
        self.lang = lang
        self.model_dir = model_dir
        self._reader = None

    @property
    def is_ready(self) -> bool:
        return self._reader is not None

    def initialize(self) -> bool:
        """
        Load the EasyOCR reader. Thread-safe.

        Returns:
            True if initialization successful
        """
        with self._lock:
            if self._reader is not None:
                return True

            try:
                import easyocr
                import torch

                # Use available CPUs, but cap at reasonable limit
                num_threads = int(os.environ.get('TORCH_NUM_THREADS', min(4, os.cpu_count() or 2)))
                torch.set_num_threads(num_threads)

                logger.info(f"Initializing EasyOCR engine with {num_threads} threads...")
                self._reader = easyocr.Reader(
                    [self.lang],
                    gpu=False,
                    model_storage_directory=self.model_dir,
                    verbose=False
                )
                logger.info("EasyOCR initialized successfully")
                return True

            except Exception as e:
                logger.error(f"Failed to initialize EasyOCR: {e}")
                return False

    def recognize(
        self,
        image: np.ndarray,
        configuration: OCRConfiguration,
        on_progress: Optional[FractionCallback] = None,
    ) -> RawRecognition:
        if not self.is_ready and not self.initialize():
            raise RecognitionError("EasyOCR engine is not available")

        options = EASYOCR_OPTIONS[configuration.segmentation]
        detections = self._reader.readtext(image, paragraph=False, batch_size=1, **options)
        if on_progress:
            on_progress(1.0)

        boxes = [
            (bbox, text, float(conf))
            for bbox, text, conf in detections
            if text.strip()
        ]
        if not boxes:
            return RawRecognition(text="", confidence=0.0)

        # Reading order: line bands by median box height, then left to right
        heights = [max(p[1] for p in b) - min(p[1] for p in b) for b, _, _ in boxes]
        line_h = max(12, min(int(np.median(heights)), 60))
        boxes.sort(key=lambda d: (min(p[1] for p in d[0]) // line_h, min(p[0] for p in d[0])))

        text = " ".join(t for _, t, _ in boxes)
        confidence = sum(c for _, _, c in boxes) / len(boxes) * 100.0
        return RawRecognition(text=text, confidence=confidence)


def create_recognizer(settings: Settings) -> Recognizer:
    """Build the recognizer backend named in settings."""
    backend = settings.ocr_backend.lower()
    if backend == "tesseract":
        return TesseractRecognizer(tesseract_cmd=settings.tesseract_cmd, lang=settings.tesseract_lang)
    if backend == "easyocr":
        return EasyOCRRecognizer(lang=settings.easyocr_lang, model_dir=settings.easyocr_model_dir)
    raise ValueError(f"Unknown OCR backend: {settings.ocr_backend}")


class AttemptStatus(str, Enum):
    """Lifecycle of one configuration attempt."""
    PENDING = "pending"
    ATTEMPTED = "attempted"
    SELECTED = "selected"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class OCRAttempt:
    """One configuration's attempt within a recognition run."""
    configuration: OCRConfiguration
    status: AttemptStatus = AttemptStatus.PENDING
    text: str = ""
    confidence: float = 0.0
    score: float = 0.0
    error: Optional[str] = None

    @property
    def meets_early_exit(self) -> bool:
        return (
            self.status in (AttemptStatus.ATTEMPTED, AttemptStatus.SELECTED)
            and self.confidence > EARLY_EXIT_CONFIDENCE
            and len(self.text) > EARLY_EXIT_TEXT_LENGTH
        )


def score_text(confidence: float, text: str) -> float:
    """Reward both recognizer confidence and the amount of text recovered."""
    return confidence * math.log(len(text) + 1)


@dataclass
class OCRRun:
    """
    Attempt record for one recognition run.

    Attempts move PENDING -> ATTEMPTED -> SELECTED, or to FAILED, or are
    SKIPPED once an earlier attempt triggers the early exit. At most one
    attempt is SELECTED.
    """
    attempts: List[OCRAttempt]

    @classmethod
    def start(cls, configurations: List[OCRConfiguration]) -> "OCRRun":
        return cls(attempts=[OCRAttempt(configuration=c) for c in configurations])

    @property
    def selected(self) -> Optional[OCRAttempt]:
        return next((a for a in self.attempts if a.status == AttemptStatus.SELECTED), None)

    def record_success(self, index: int, text: str, confidence: float) -> OCRAttempt:
        attempt = self.attempts[index]
        attempt.text = text
        attempt.confidence = confidence
        attempt.score = score_text(confidence, text)

        best = self.selected
        if best is None or attempt.score > best.score:
            if best is not None:
                best.status = AttemptStatus.ATTEMPTED
            attempt.status = AttemptStatus.SELECTED
        else:
            attempt.status = AttemptStatus.ATTEMPTED
        return attempt

    def record_failure(self, index: int, error: Exception) -> None:
        attempt = self.attempts[index]
        attempt.status = AttemptStatus.FAILED
        attempt.error = str(error)

    def skip_remaining(self, after: int) -> None:
        for attempt in self.attempts[after + 1:]:
            attempt.status = AttemptStatus.SKIPPED

    @property
    def attempted_count(self) -> int:
        return sum(
            1 for a in self.attempts
            if a.status not in (AttemptStatus.PENDING, AttemptStatus.SKIPPED)
        )


@dataclass
class OCRRecognition:
    """Best normalized text from a recognition run."""
    text: str
    confidence: float
    configuration: str
    run: OCRRun = field(repr=False)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class _ProgressReporter:
    """Maps per-configuration fractions onto an overall 0-100 scale, never going backwards."""

    def __init__(self, total: int, on_progress: Optional[ProgressCallback]):
        self.total = total
        self.on_progress = on_progress
        self.last = -1

    def report(self, index: int, fraction: float) -> None:
        if not self.on_progress:
            return
        fraction = min(max(fraction, 0.0), 1.0)
        percent = round_half_up(((index / self.total) + (fraction / self.total)) * 100)
        if percent < self.last:
            return
        self.last = percent
        self.on_progress(percent)


class OCRService:
    """Runs configurations in priority order and keeps the best-scoring text."""

    def __init__(
        self,
        recognizer: Recognizer,
        configurations: Optional[List[OCRConfiguration]] = None,
    ):
        self.recognizer = recognizer
        self.configurations = list(configurations or DEFAULT_CONFIGURATIONS)
        # Recognizer state is not shared across in-flight attempts
        self._lock = asyncio.Lock()

    def initialize(self) -> bool:
        return self.recognizer.initialize()

    @property
    def is_ready(self) -> bool:
        return self.recognizer.is_ready

    async def recognize(
        self,
        image: np.ndarray,
        on_progress: Optional[ProgressCallback] = None,
    ) -> OCRRecognition:
        """
        Extract the most reliable text from an image.

        Args:
            image: Image to recognize (usually a preprocessed variant grid)
            on_progress: Receives overall percent done, non-decreasing

        Returns:
            OCRRecognition with the selected normalized text

        Raises:
            RecognitionError: If every configuration failed
        """
        run = OCRRun.start(self.configurations)
        reporter = _ProgressReporter(len(self.configurations), on_progress)
        loop = asyncio.get_running_loop()

        for index, configuration in enumerate(self.configurations):
            def forward(fraction: float, i: int = index) -> None:
                loop.call_soon_threadsafe(reporter.report, i, fraction)

            reporter.report(index, 0.0)
            try:
                async with self._lock:
                    raw = await asyncio.to_thread(
                        self.recognizer.recognize, image, configuration, forward
                    )
            except Exception as e:
                logger.warning(f"OCR failed with {configuration.name}: {e}")
                run.record_failure(index, e)
                continue

            text = normalize_text(raw.text)
            attempt = run.record_success(index, text, raw.confidence)
            reporter.report(index, 1.0)
            logger.info(
                f"OCR {configuration.name}: confidence={attempt.confidence:.1f}, "
                f"length={len(text)}, score={attempt.score:.1f}"
            )

            if attempt.meets_early_exit:
                logger.info(f"Early exit after {configuration.name}")
                run.skip_remaining(index)
                break

        best = run.selected
        if best is None:
            raise RecognitionError("All OCR attempts failed")

        return OCRRecognition(
            text=best.text,
            confidence=best.confidence,
            configuration=best.configuration.name,
            run=run,
        )
