"""
==============================================================================
Utilities Package
==============================================================================

Utility classes and functions for the application.

Modules:
--------
- validators: Manual barcode validation

==============================================================================
"""

from .validators import BarcodeValidator

__all__ = [
    "BarcodeValidator",
]
