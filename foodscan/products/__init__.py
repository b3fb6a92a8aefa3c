"""
==============================================================================
Products Package - Product Data Lookup
==============================================================================

Open Food Facts lookup keyed by the scanned barcode.

==============================================================================
"""

from .client import ProductClient, get_product_client
from .models import Nutriments, ProductInfo

__all__ = ["Nutriments", "ProductClient", "ProductInfo", "get_product_client"]
