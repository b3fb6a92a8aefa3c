"""
==============================================================================
Validation Utilities Module
==============================================================================

Validation for barcodes typed in by hand.

Validation Rules:
----------------
- Length: 8-20 characters (same minimum as the camera decoder)
- Allowed: letters and digits, hyphens and inner spaces are stripped
- No checksum verification; the product database decides existence

==============================================================================
"""

from __future__ import annotations

import re
from typing import Optional, Tuple


class BarcodeValidator:
    """
    Validator for manually entered barcodes.

    Example:
        >>> validator = BarcodeValidator()
        >>> is_valid, normalized, error = validator.validate(" 5901234-123457 ")
        >>> print(normalized)
        '5901234123457'
    """

    PATTERN = re.compile(r"^[A-Za-z0-9]+$")

    MIN_LENGTH = 8
    MAX_LENGTH = 20

    def __init__(self, min_length: Optional[int] = None) -> None:
        self._min_length = min_length or self.MIN_LENGTH

    def validate(self, barcode: str) -> Tuple[bool, Optional[str], Optional[str]]:
        """
        Validate and normalize a barcode.

        Args:
            barcode: Raw user input

        Returns:
            Tuple of (is_valid, normalized_barcode, error_message)
        """
        if not barcode or not barcode.strip():
            return False, None, "Please enter a barcode number"

        normalized = re.sub(r"[\s-]", "", barcode)

        if not self.PATTERN.match(normalized):
            return False, None, "Barcode can only contain letters and digits"

        if len(normalized) < self._min_length:
            return False, None, f"Barcode must be at least {self._min_length} characters"

        if len(normalized) > self.MAX_LENGTH:
            return False, None, f"Barcode must be at most {self.MAX_LENGTH} characters"

        return True, normalized, None

    def is_valid(self, barcode: str) -> bool:
        """Quick validation check."""
        is_valid, _, _ = self.validate(barcode)
        return is_valid
