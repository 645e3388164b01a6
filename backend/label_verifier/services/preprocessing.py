"""Image preprocessing bank for OCR.

Every variant is derived independently from a grayscale copy of the source,
each one aimed at a different class of label defect:
- Otsu global threshold (clean, evenly lit labels)
- Adaptive Gaussian threshold (uneven lighting)
- Histogram equalization + adaptive mean threshold (extreme lighting)
- Sharpening (soft focus)
- Median denoise + morphological open (speckle)
- Bilateral filter (noise with edge preservation)
- CLAHE + adaptive threshold + morphological close (uneven illumination)
- Contrast stretching (washed out labels)
"""

import io
import logging
import math
from dataclasses import dataclass
from typing import Callable, List, Tuple

import cv2
import numpy as np
from PIL import Image, UnidentifiedImageError

from ..config import Settings, get_settings
from ..exceptions import ImageDecodeError, PreprocessingError

logger = logging.getLogger(__name__)

# Grid layout for the inspection composite
COMPOSITE_COLUMNS = 2


@dataclass(frozen=True)
class PreprocessedVariant:
    """A binarized image produced by one named technique."""
    name: str
    image: np.ndarray


def decode_image(image_bytes: bytes) -> np.ndarray:
    """
    Decode uploaded bytes into a BGR image.

    Uses PIL to handle the various upload formats, then converts to the
    OpenCV channel order.

    Raises:
        ImageDecodeError: If the bytes are empty or not a readable image
    """
    if not image_bytes:
        raise ImageDecodeError("No image data provided")

    try:
        pil_image = Image.open(io.BytesIO(image_bytes))
        pil_image.load()
    except (UnidentifiedImageError, OSError) as e:
        raise ImageDecodeError(f"Unable to read image: {e}") from e

    if pil_image.mode != "RGB":
        pil_image = pil_image.convert("RGB")

    image = np.array(pil_image)
    return cv2.cvtColor(image, cv2.COLOR_RGB2BGR)


def to_grayscale(image: np.ndarray) -> np.ndarray:
    """Grayscale copy of a gray, BGR or BGRA image. The input is never modified."""
    if image.ndim == 2:
        return image.copy()
    channels = image.shape[2]
    if channels == 1:
        return image[:, :, 0].copy()
    if channels == 3:
        return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
    if channels == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
    raise PreprocessingError(f"Unsupported channel count: {channels}")


def _otsu(gray: np.ndarray) -> np.ndarray:
    _, binary = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
    return binary


def otsu_threshold(gray: np.ndarray) -> np.ndarray:
    """Global binarization with an automatically selected threshold."""
    return _otsu(gray)


def adaptive_gaussian(gray: np.ndarray) -> np.ndarray:
    """Light blur, then threshold each pixel against its neighbourhood."""
    blurred = cv2.GaussianBlur(gray, (3, 3), 0)
    return cv2.adaptiveThreshold(
        blurred, 255, cv2.ADAPTIVE_THRESH_GAUSSIAN_C, cv2.THRESH_BINARY, 11, 2
    )


def equalized_adaptive(gray: np.ndarray) -> np.ndarray:
    """Global histogram equalization for extreme lighting variance."""
    equalized = cv2.equalizeHist(gray)
    return cv2.adaptiveThreshold(
        equalized, 255, cv2.ADAPTIVE_THRESH_MEAN_C, cv2.THRESH_BINARY, 15, 5
    )


SHARPEN_KERNEL = np.array(
    [[-1, -1, -1],
     [-1, 9, -1],
     [-1, -1, -1]],
    dtype=np.float32,
)


def sharpen(gray: np.ndarray) -> np.ndarray:
    """Convolution sharpening followed by Otsu."""
    sharpened = cv2.filter2D(gray, -1, SHARPEN_KERNEL)
    return _otsu(sharpened)


def median_denoise(gray: np.ndarray) -> np.ndarray:
    """Median blur + Otsu, then an open pass to drop isolated speckle."""
    denoised = cv2.medianBlur(gray, 3)
    binary = _otsu(denoised)
    kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (2, 2))
    return cv2.morphologyEx(binary, cv2.MORPH_OPEN, kernel)


def bilateral(gray: np.ndarray) -> np.ndarray:
    """Edge-preserving smoothing + Otsu."""
    filtered = cv2.bilateralFilter(gray, 9, 75, 75)
    return _otsu(filtered)


def clahe_morph(gray: np.ndarray) -> np.ndarray:
    """
    CLAHE + adaptive threshold + close pass.

    Best for labels with lighting that varies across the surface; the close
    pass bridges broken character strokes horizontally.
    """
    clahe = cv2.createCLAHE(clipLimit=2.0, tileGridSize=(8, 8))
    enhanced = clahe.apply(gray)
    binary = cv2.adaptiveThreshold(
        enhanced, 255, cv2.ADAPTIVE_THRESH_GAUSSIAN_C, cv2.THRESH_BINARY, 11, 2
    )
    # cv2 sizes are (width, height)
    kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (2, 1))
    return cv2.morphologyEx(binary, cv2.MORPH_CLOSE, kernel)


def contrast_stretch(gray: np.ndarray) -> np.ndarray:
    """Stretch intensities to the full [0, 255] range, then Otsu."""
    stretched = cv2.normalize(gray, None, 0, 255, cv2.NORM_MINMAX)
    return _otsu(stretched)


# Order is part of the contract: variants come back in this order
TECHNIQUES: List[Tuple[str, Callable[[np.ndarray], np.ndarray]]] = [
    ("otsu", otsu_threshold),
    ("adaptive_gaussian", adaptive_gaussian),
    ("equalized_adaptive", equalized_adaptive),
    ("sharpen", sharpen),
    ("median_denoise", median_denoise),
    ("bilateral", bilateral),
    ("clahe_morph", clahe_morph),
    ("contrast_stretch", contrast_stretch),
]


class ImagePreprocessor:
    """Produces the fixed set of binarized variants for a label image."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    @property
    def technique_names(self) -> List[str]:
        return [name for name, _ in TECHNIQUES]

    def produce_variants(self, image: np.ndarray) -> List[PreprocessedVariant]:
        """
        Apply every technique to a grayscale copy of the image.

        Args:
            image: Source image (gray, BGR or BGRA); left untouched

        Returns:
            Variants in technique order

        Raises:
            PreprocessingError: If the image is empty or any filter fails.
                No partial variant set is returned.
        """
        if image is None or image.size == 0:
            raise PreprocessingError("Cannot preprocess an empty image")
        if image.dtype != np.uint8:
            raise PreprocessingError(f"Expected 8-bit image, got {image.dtype}")

        variants = []
        for name, technique in TECHNIQUES:
            gray = to_grayscale(image)
            try:
                binary = technique(gray)
            except cv2.error as e:
                raise PreprocessingError(f"Preprocessing technique '{name}' failed: {e}") from e
            logger.debug(f"Processed variant {len(variants) + 1}: {name}")
            variants.append(PreprocessedVariant(name=name, image=binary))

        logger.info(
            f"Produced {len(variants)} preprocessing variants "
            f"for {image.shape[1]}x{image.shape[0]} image"
        )
        return variants

    def composite(self, variants: List[PreprocessedVariant]) -> np.ndarray:
        """
        Tile variants into a two-column grid on a white background.

        All variants share the source dimensions; cells are filled left to
        right, top to bottom.
        """
        if not variants:
            raise PreprocessingError("No variants to composite")

        cell_h, cell_w = variants[0].image.shape[:2]
        rows = math.ceil(len(variants) / COMPOSITE_COLUMNS)
        grid = np.full((rows * cell_h, COMPOSITE_COLUMNS * cell_w), 255, dtype=np.uint8)

        for index, variant in enumerate(variants):
            if variant.image.shape[:2] != (cell_h, cell_w):
                raise PreprocessingError(
                    f"Variant '{variant.name}' has shape {variant.image.shape[:2]}, "
                    f"expected {(cell_h, cell_w)}"
                )
            x = (index % COMPOSITE_COLUMNS) * cell_w
            y = (index // COMPOSITE_COLUMNS) * cell_h
            grid[y:y + cell_h, x:x + cell_w] = variant.image

        return grid

    def encode_png(self, image: np.ndarray) -> bytes:
        """Encode an image as PNG bytes for display."""
        ok, buffer = cv2.imencode(".png", image)
        if not ok:
            raise PreprocessingError("Failed to encode image as PNG")
        return buffer.tobytes()

    def get_image_info(self, image_bytes: bytes) -> dict:
        """Get basic image information without full preprocessing."""
        pil_image = Image.open(io.BytesIO(image_bytes))
        return {
            "format": pil_image.format,
            "mode": pil_image.mode,
            "width": pil_image.width,
            "height": pil_image.height,
            "size_bytes": len(image_bytes),
            "size_mb": len(image_bytes) / (1024 * 1024)
        }

    def validate_image(self, image_bytes: bytes, filename: str) -> Tuple[bool, str]:
        """
        Validate an upload before decoding.

        Returns:
            Tuple of (is_valid, error_message)
        """
        if not image_bytes:
            return False, "No image selected. Please select an image to verify."

        ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
        if ext not in self.settings.allowed_extensions:
            allowed = ", ".join(sorted(self.settings.allowed_extensions)).upper()
            return False, f"Invalid file type. Allowed formats: {allowed}"

        size_mb = len(image_bytes) / (1024 * 1024)
        if size_mb > self.settings.max_upload_size_mb:
            return False, f"Image exceeds {self.settings.max_upload_size_mb}MB upload limit. Please resize or compress."

        try:
            info = self.get_image_info(image_bytes)
        except Exception as e:
            return False, f"Unable to read image: {str(e)}"

        min_dim = self.settings.min_image_dimension
        if info["width"] < min_dim or info["height"] < min_dim:
            return False, f"Image too small. Minimum dimensions: {min_dim}x{min_dim} pixels."

        return True, ""
