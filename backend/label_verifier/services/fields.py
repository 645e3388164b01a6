"""Label field entries and their format checks."""

import re
from typing import Dict, List, Mapping, Optional

from ..exceptions import InputError
from .verification import FIELD_NAMES

# Field-specific formats checked before a run
VALIDATION_RULES = {
    "alcoholContent": (
        re.compile(r"^[0-9]+(\.[0-9]+)?\s*(%|proof)?$", re.IGNORECASE),
        "Enter a valid number with optional % or proof (e.g., 40%, 80 proof, or 45)",
    ),
    "netContents": (
        # Loose on purpose: OCR'd reference values like "7 50 ML" or "2 1 PINTL"
        re.compile(
            r"[0-9]+.*?(ml|l|liter|liters|oz|fl oz|fl\. oz\.|ounce|ounces|gal|gallon|gallons"
            r"|pt|pint|pints|qt|quart|quarts|pintl)",
            re.IGNORECASE,
        ),
        "Enter a valid volume (e.g., 750 mL, 25.4 oz)",
    ),
}


def collect_fields(values: Mapping[str, Optional[str]]) -> Dict[str, str]:
    """
    Build the ordered field set from raw values.

    Unknown keys are rejected, missing ones become empty strings and values
    are stripped.
    """
    unknown = set(values) - set(FIELD_NAMES)
    if unknown:
        raise InputError(f"Unknown fields: {', '.join(sorted(unknown))}")
    return {name: (values.get(name) or "").strip() for name in FIELD_NAMES}


def validate_fields(fields: Mapping[str, str]) -> List[str]:
    """
    Check field formats.

    Returns:
        Human-readable errors; empty when the fields are usable
    """
    errors = []
    if not any(value for value in fields.values()):
        errors.append("Please enter at least one expected label value")
        return errors

    for name, (pattern, message) in VALIDATION_RULES.items():
        value = fields.get(name)
        if value and not pattern.search(value):
            errors.append(f"{name}: {message}")
    return errors
