"""
==============================================================================
API Router
==============================================================================

Mounts the versioned REST routers:

    /api/v1/health     service and decoder status
    /api/v1/scan       still-image and manual scans
    /api/v1/products   product lookup

==============================================================================
"""

from typing import Iterable

from fastapi import APIRouter

from foodscan.api.v1 import health, products, scan


V1_ROUTERS = (health.router, scan.router, products.router)


def build_api_router(prefix: str = "/api/v1", routers: Iterable[APIRouter] = V1_ROUTERS) -> APIRouter:
    """Combine `routers` under one versioned prefix."""
    api = APIRouter(prefix=prefix)
    for router in routers:
        api.include_router(router)
    return api


api_router = build_api_router()
