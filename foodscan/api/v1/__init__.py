"""
==============================================================================
API v1 Endpoints
==============================================================================

Version 1 of the REST API.

Routers:
--------
- health: Health check endpoints
- scan: Still-image scanning and manual entry
- products: Product lookup

==============================================================================
"""

from . import health, scan, products

__all__ = ["health", "scan", "products"]
