"""
==============================================================================
Scan Endpoints
==============================================================================

Still-image barcode scanning and manual barcode entry.

Product lookup is optional (`lookup=true`) and best-effort: a failing
product database never fails the scan itself.

==============================================================================
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile

from foodscan.capture import (
    AcceptedBarcode,
    CaptureManager,
    DecodeFailure,
    SourceKind,
    get_capture_manager,
)
from foodscan.config import get_settings
from foodscan.core import exceptions
from foodscan.core.exceptions import AppException
from foodscan.products import ProductClient, get_product_client
from foodscan.schemas import ManualBarcodeRequest, ScanResponse
from foodscan.utils import BarcodeValidator


# Module logger
logger = logging.getLogger(__name__)

router = APIRouter(prefix="/scan", tags=["Scan"])


FAILURE_STATUS = {
    exceptions.INVALID_INPUT_KIND: 415,
    exceptions.SOURCE_READ_FAILED: 400,
    exceptions.DECODE_NOT_FOUND: 422,
}


class ScanController:
    """Controller for scan operations."""

    def __init__(self, manager: CaptureManager, products: ProductClient):
        self._manager = manager
        self._products = products

    async def _build_response(
        self,
        barcode: str,
        symbology: Optional[str],
        source: SourceKind | str,
        lookup: bool
    ) -> ScanResponse:
        response = ScanResponse(
            barcode=barcode,
            symbology=symbology,
            source=source.value if isinstance(source, SourceKind) else source
        )

        if not lookup:
            return response

        try:
            response.product = await self._products.fetch_product(barcode)
        except AppException as e:
            response.product_error = e.code

        return response

    async def scan_image(self, upload: UploadFile, lookup: bool) -> ScanResponse:
        """Decode a barcode from an uploaded image."""
        outcome = await self._manager.open_still_image_capture(upload)

        if isinstance(outcome, DecodeFailure):
            raise AppException(
                outcome.message,
                outcome.code,
                FAILURE_STATUS.get(outcome.code, 400),
                {"filename": upload.filename} if upload.filename else None
            )

        accepted: AcceptedBarcode = outcome
        return await self._build_response(
            accepted.code, accepted.symbology, SourceKind.STILL_IMAGE, lookup
        )

    async def scan_manual(self, request: ManualBarcodeRequest, lookup: bool) -> ScanResponse:
        """Accept a barcode typed in by the user."""
        validator = BarcodeValidator(min_length=get_settings().scan_min_code_length)
        is_valid, barcode, error = validator.validate(request.barcode)

        if not is_valid:
            raise exceptions.invalid_barcode(request.barcode, error)

        return await self._build_response(barcode, None, "manual", lookup)


@router.post("/image", response_model=ScanResponse)
async def scan_image(
    file: UploadFile = File(...),
    lookup: bool = Query(False),
    manager: CaptureManager = Depends(get_capture_manager),
    products: ProductClient = Depends(get_product_client)
):
    """Scan a barcode from an uploaded image."""
    controller = ScanController(manager, products)
    return await controller.scan_image(file, lookup)


@router.post("/manual", response_model=ScanResponse)
async def scan_manual(
    request: ManualBarcodeRequest,
    lookup: bool = Query(False),
    manager: CaptureManager = Depends(get_capture_manager),
    products: ProductClient = Depends(get_product_client)
):
    """Submit a barcode entered by hand."""
    controller = ScanController(manager, products)
    return await controller.scan_manual(request, lookup)
