"""
==============================================================================
WebSocket Package
==============================================================================

Real-time WebSocket handlers for barcode scanning.

Handlers:
---------
- scanner: Live scanning with frames pushed from the browser camera

==============================================================================
"""

from .scanner import router as scanner_router

__all__ = ["scanner_router"]
