"""
==============================================================================
Scan Schemas Module
==============================================================================

Request and response schemas for barcode scanning endpoints.

==============================================================================
"""

from typing import Optional
from pydantic import BaseModel, Field, field_validator

from foodscan.products.models import ProductInfo


class ManualBarcodeRequest(BaseModel):
    """Barcode typed in by the user."""
    barcode: str = Field(..., min_length=1, max_length=64)

    @field_validator("barcode")
    @classmethod
    def strip_barcode(cls, value: str) -> str:
        return value.strip()


class ScanResponse(BaseModel):
    """
    Result of a scan.

    The product is attached only when lookup was requested and succeeded;
    `product_error` carries the lookup failure code otherwise.
    """
    success: bool = Field(default=True)
    barcode: str
    symbology: Optional[str] = None
    source: str = Field(..., description="still_image, live_stream or manual")
    product: Optional[ProductInfo] = None
    product_error: Optional[str] = None


class ProductResponse(BaseModel):
    """Product lookup response."""
    success: bool = Field(default=True)
    product: ProductInfo
