"""Error types raised by the verification pipeline."""


class LabelVerificationError(Exception):
    """Base class for all pipeline failures."""


class InputError(LabelVerificationError, ValueError):
    """Missing image, missing expected values or malformed field input."""


class ImageDecodeError(InputError):
    """The uploaded bytes could not be decoded as an image."""


class PreprocessingError(LabelVerificationError):
    """A preprocessing filter failed; the whole stage is aborted."""


class RecognitionError(LabelVerificationError):
    """Every OCR configuration failed."""


class VerificationInputError(LabelVerificationError):
    """There is no OCR text to verify against."""
