"""
==============================================================================
Schemas Package - Pydantic Models
==============================================================================

Request and response schemas using Pydantic for validation.

This package provides:
- Scan: Scan requests/responses and product lookup responses

==============================================================================
"""

from .scan import ManualBarcodeRequest, ProductResponse, ScanResponse

__all__ = [
    "ManualBarcodeRequest",
    "ProductResponse",
    "ScanResponse",
]
