"""
==============================================================================
Health Check Endpoints
==============================================================================

System health status endpoints for monitoring and orchestration.

==============================================================================
"""

import logging

from fastapi import APIRouter, Depends

from foodscan.capture import CaptureManager, get_capture_manager, live_session_count


# Module logger
logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])


class HealthController:
    """Controller for health check operations."""

    def __init__(self, manager: CaptureManager):
        self._manager = manager

    def check_decoder(self) -> dict:
        """Run ZBar once to prove the native library loads and accepts the symbologies."""
        decoder = self._manager.create_decoder()
        try:
            decoder.self_test()
        except Exception as e:
            logger.error(f"Decoder health check failed: {e}")
            return {"status": "unhealthy", "symbologies": decoder.symbologies, "error": str(e)}
        return {"status": "healthy", "symbologies": decoder.symbologies}

    def get_health(self) -> dict:
        """Get full health status."""
        decoder_info = self.check_decoder()

        overall = "healthy" if decoder_info["status"] == "healthy" else "degraded"

        details = {
            "symbologies": decoder_info["symbologies"],
            "live_sessions": live_session_count()
        }
        if "error" in decoder_info:
            details["decoder_error"] = decoder_info["error"]

        return {
            "status": overall,
            "components": {
                "api": "healthy",
                "decoder": decoder_info["status"]
            },
            "details": details
        }


@router.get("")
async def health_check(manager: CaptureManager = Depends(get_capture_manager)):
    """
    Health check endpoint.

    Returns system status including API and decoder.
    """
    controller = HealthController(manager)
    return controller.get_health()


@router.get("/ready")
async def readiness_check():
    """Readiness probe for container orchestration."""
    return {"ready": True}


@router.get("/live")
async def liveness_check():
    """Liveness probe for container orchestration."""
    return {"alive": True}
