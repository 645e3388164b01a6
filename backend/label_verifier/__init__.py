"""Beverage label verification: preprocessing, OCR and fuzzy field matching."""

__version__ = "1.0.0"
