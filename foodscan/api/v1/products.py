"""
==============================================================================
Product Endpoints
==============================================================================

Product lookup by barcode.

==============================================================================
"""

from fastapi import APIRouter, Depends

from foodscan.config import get_settings
from foodscan.core import exceptions
from foodscan.products import ProductClient, get_product_client
from foodscan.schemas import ProductResponse
from foodscan.utils import BarcodeValidator


router = APIRouter(prefix="/products", tags=["Products"])


@router.get("/{barcode}", response_model=ProductResponse)
async def get_product(
    barcode: str,
    products: ProductClient = Depends(get_product_client)
):
    """Get product by barcode."""
    validator = BarcodeValidator(min_length=get_settings().scan_min_code_length)
    is_valid, normalized, error = validator.validate(barcode)

    if not is_valid:
        raise exceptions.invalid_barcode(barcode, error)

    product = await products.fetch_product(normalized)
    return ProductResponse(product=product)
