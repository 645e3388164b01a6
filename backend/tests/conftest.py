"""Shared test fixtures for the label verification test suite."""

import asyncio
import io

import numpy as np
import pytest
from PIL import Image, ImageDraw

from label_verifier.config import Settings
from label_verifier.services.log_store import VerificationLogStore
from label_verifier.services.ocr import RawRecognition


class FakeRecognizer:
    """Recognizer returning scripted outcomes, one per call.

    Each script entry is a RawRecognition or an exception to raise. The last
    entry repeats once the script runs out.
    """

    def __init__(self, *script):
        self.script = list(script)
        self.calls = []
        self.images = []

    @property
    def is_ready(self) -> bool:
        return True

    def initialize(self) -> bool:
        return True

    def recognize(self, image, configuration, on_progress=None):
        self.calls.append(configuration.name)
        self.images.append(image)
        outcome = self.script[min(len(self.calls), len(self.script)) - 1]
        if on_progress:
            on_progress(0.5)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class LoopCheckingLogStore(VerificationLogStore):
    """Log store that records, per call, whether it ran on the event loop thread."""

    def __init__(self, path):
        super().__init__(path)
        self.calls = []

    def _record_call(self, name: str) -> None:
        try:
            asyncio.get_running_loop()
            on_loop = True
        except RuntimeError:
            on_loop = False
        self.calls.append((name, on_loop))

    def read_all(self):
        self._record_call("read_all")
        return super().read_all()

    def append(self, record):
        self._record_call("append")
        return super().append(record)

    def clear(self):
        self._record_call("clear")
        super().clear()


LABEL_TEXT = (
    "OLD TOM DISTILLERY Kentucky Straight Bourbon Whiskey 45% ALC/VOL "
    "750 ML Bottled by Old Tom Distilling Co. Bardstown, Kentucky"
)

LABEL_FIELDS = {
    "brandName": "OLD TOM DISTILLERY",
    "productClass": "Kentucky Straight Bourbon Whiskey",
    "alcoholContent": "45%",
    "netContents": "750 ML",
    "manufacturerName": "Old Tom Distilling Co.",
    "manufacturerAddress": "Bardstown, Kentucky",
}


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings with the log file under a temporary directory."""
    return Settings(log_file=tmp_path / "logs" / "verification-log.json", verification_yield_seconds=0.0)


@pytest.fixture
def label_recognizer() -> FakeRecognizer:
    """Recognizer that reads the sample label confidently on the first try."""
    return FakeRecognizer(RawRecognition(text=LABEL_TEXT, confidence=91.0))


@pytest.fixture
def sample_image() -> np.ndarray:
    """Synthetic BGR label: dark text-like bars on a light background."""
    image = np.full((120, 200, 3), 230, dtype=np.uint8)
    image[20:35, 20:180] = (30, 30, 30)
    image[50:60, 20:120] = (40, 40, 40)
    image[80:95, 40:160] = (20, 20, 20)
    return image


@pytest.fixture
def sample_image_bytes() -> bytes:
    """PNG bytes of a small label with some text."""
    img = Image.new("RGB", (300, 200), color="white")
    draw = ImageDraw.Draw(img)
    draw.text((20, 30), "OLD TOM DISTILLERY", fill="black")
    draw.text((20, 80), "45% ALC/VOL 750 ML", fill="black")
    draw.rectangle([20, 130, 280, 150], fill="black")
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()
