"""
==============================================================================
Product Lookup Client
==============================================================================

Fetches product data for a scanned barcode from Open Food Facts.

    GET {base}/api/v0/product/{barcode}.json

Response `status` is 1 when the product exists. Transport failures and
non-200 answers are reported as PRODUCT_SERVICE_UNAVAILABLE.

==============================================================================
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional
from urllib.parse import quote

import httpx

from foodscan.config import get_settings
from foodscan.core import exceptions

from .models import ProductInfo


# Module logger
logger = logging.getLogger(__name__)


class ProductClient:
    """
    Async Open Food Facts client.

    Example:
        >>> client = ProductClient()
        >>> product = await client.fetch_product("5901234123457")
    """

    PRODUCT_PATH = "/api/v0/product/{barcode}.json"

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> None:
        settings = get_settings()
        self._base_url = (base_url or settings.product_api_base_url).rstrip("/")
        self._timeout = timeout or settings.product_api_timeout
        self._transport = transport

    async def fetch_product(self, barcode: str) -> ProductInfo:
        """
        Look a barcode up.

        Raises:
            AppException: PRODUCT_NOT_FOUND or PRODUCT_SERVICE_UNAVAILABLE
        """
        # Code128/Code39 payloads may contain "/", "?" or "#"
        url = self._base_url + self.PRODUCT_PATH.format(barcode=quote(barcode, safe=""))

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.get(url)
        except httpx.HTTPError as e:
            logger.error(f"Product lookup failed for {barcode}: {e}")
            raise exceptions.product_service_unavailable(str(e)) from e

        if response.status_code == 404:
            raise exceptions.product_not_found(barcode)

        if response.status_code != 200:
            logger.error(f"Product API returned {response.status_code} for {barcode}")
            raise exceptions.product_service_unavailable(f"HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise exceptions.product_service_unavailable("invalid JSON") from e

        product = data.get("product")
        if data.get("status") != 1 or not product:
            logger.info(f"Product not found: {barcode}")
            raise exceptions.product_not_found(barcode)

        logger.info(f"🛒 Product found: {barcode}")
        return ProductInfo.from_payload(barcode, product)


@lru_cache(maxsize=1)
def get_product_client() -> ProductClient:
    """Process-wide product client."""
    return ProductClient()
