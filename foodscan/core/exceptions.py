"""
Application Exception Handling

Single AppException class for all application errors with FastAPI integration.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


# ============================================
# ERROR CODES
# ============================================

INVALID_INPUT_KIND = "INVALID_INPUT_KIND"
SOURCE_READ_FAILED = "SOURCE_READ_FAILED"
HARDWARE_UNAVAILABLE = "HARDWARE_UNAVAILABLE"
DECODE_NOT_FOUND = "DECODE_NOT_FOUND"
SESSION_STATE_INVALID = "SESSION_STATE_INVALID"
INVALID_BARCODE = "INVALID_BARCODE"
PRODUCT_NOT_FOUND = "PRODUCT_NOT_FOUND"
PRODUCT_SERVICE_UNAVAILABLE = "PRODUCT_SERVICE_UNAVAILABLE"
INTERNAL_ERROR = "INTERNAL_ERROR"

# Hardware failure reasons
PERMISSION_DENIED = "permission_denied"
DEVICE_BUSY = "device_busy"
NO_DEVICE = "no_device"

HARDWARE_MESSAGES = {
    PERMISSION_DENIED: "Camera access was denied. Allow camera permissions and try again.",
    DEVICE_BUSY: "The camera is in use. Close other apps using the camera and retry.",
    NO_DEVICE: "No camera was found. Connect a camera or upload an image instead.",
}

DECODE_NOT_FOUND_MESSAGE = (
    "No barcode detected. Try another image, adjust the angle, or enter manually."
)


class AppException(Exception):
    """
    Unified application exception for all error scenarios.

    Provides consistent error response format across the entire API.

    Usage:
        raise AppException("Unsupported file type", "INVALID_INPUT_KIND", 415)
        raise AppException("Camera unavailable", "HARDWARE_UNAVAILABLE", 503, {"reason": "device_busy"})

    Error Codes:
        Capture:
            - INVALID_INPUT_KIND (415)
            - SOURCE_READ_FAILED (400)
            - HARDWARE_UNAVAILABLE (503)
            - DECODE_NOT_FOUND (422)
            - SESSION_STATE_INVALID (409)

        Product:
            - INVALID_BARCODE (400)
            - PRODUCT_NOT_FOUND (404)
            - PRODUCT_SERVICE_UNAVAILABLE (502)

        General:
            - INTERNAL_ERROR (500)
    """

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int = 400,
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize application exception.

        Args:
            message: Human-readable error message
            code: Machine-readable error code (e.g., "DECODE_NOT_FOUND")
            status_code: HTTP status code (default: 400)
            details: Additional error context (optional)
        """
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response."""
        error_dict = {
            "success": False,
            "error": {
                "code": self.code,
                "message": self.message,
                "timestamp": self.timestamp
            }
        }

        if self.details:
            error_dict["error"]["details"] = self.details

        return error_dict


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    FastAPI exception handler for AppException.

    Converts AppException to consistent JSON error response.
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register all exception handlers with FastAPI app.

    Args:
        app: FastAPI application instance
    """
    app.add_exception_handler(AppException, app_exception_handler)


# ============================================
# CONVENIENCE FACTORY FUNCTIONS
# ============================================

def invalid_input_kind(content_type: Optional[str]) -> AppException:
    """Create exception for a non-image upload."""
    return AppException(
        "Please upload a valid image file",
        INVALID_INPUT_KIND,
        415,
        {"content_type": content_type or ""}
    )


def source_read_failed(reason: str) -> AppException:
    """Create exception for an unreadable image file."""
    return AppException(
        "Error reading image file",
        SOURCE_READ_FAILED,
        400,
        {"reason": reason}
    )


def hardware_unavailable(reason: str, device: Optional[str] = None) -> AppException:
    """Create exception for a camera that cannot be opened."""
    details = {"reason": reason}
    if device is not None:
        details["device"] = device
    return AppException(
        HARDWARE_MESSAGES.get(reason, "Failed to start camera."),
        HARDWARE_UNAVAILABLE,
        503,
        details
    )


def decode_not_found() -> AppException:
    """Create exception for an image without a readable barcode."""
    return AppException(DECODE_NOT_FOUND_MESSAGE, DECODE_NOT_FOUND, 422)


def session_state_invalid(current: str, expected: str) -> AppException:
    """Create exception for an operation in the wrong session state."""
    return AppException(
        f"Invalid session state. Current: {current}, Expected: {expected}",
        SESSION_STATE_INVALID,
        409,
        {"current_state": current, "expected_state": expected}
    )


def invalid_barcode(barcode: str, reason: str) -> AppException:
    """Create invalid barcode exception."""
    return AppException(
        f"Invalid barcode: {reason}",
        INVALID_BARCODE,
        400,
        {"barcode": barcode, "reason": reason}
    )


def product_not_found(barcode: str) -> AppException:
    """Create product not found exception."""
    return AppException(
        "Product not found in database",
        PRODUCT_NOT_FOUND,
        404,
        {"barcode": barcode}
    )


def product_service_unavailable(reason: str) -> AppException:
    """Create exception for a failing product database."""
    return AppException(
        "Product database unavailable",
        PRODUCT_SERVICE_UNAVAILABLE,
        502,
        {"reason": reason}
    )


def internal_error(message: str = "Internal server error") -> AppException:
    """Create internal server error exception."""
    return AppException(message, INTERNAL_ERROR, 500)
