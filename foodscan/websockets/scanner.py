"""
==============================================================================
Scanner WebSocket Module
==============================================================================

Live barcode scanning with the browser's camera.

Protocol:
---------
1. Client sends {"type": "init", "torch": bool, "width": int, "height": int}
2. Server replies {"type": "ready", "session_id": ..., "torch_supported": ...}
3. Client sends {"type": "frame", "frame": "<base64 image>"} repeatedly
4. Client may send {"type": "torch"}; the server answers with a
   {"type": "torch", "enabled": bool} command for the client to apply,
   then {"type": "torch_state", "enabled": bool}
5. Server sends {"type": "result", "barcode": ..., "symbology": ...} once a
   code is read in enough consecutive frames
6. Client sends {"type": "stop"} to cancel
7. Server ends with {"type": "closed", "reason": ...}:
   "succeeded"  a result was sent
   "stopped"    the client sent stop
   "closed"     the session ended without a result (e.g. server shutdown)

Each connection owns its own capture manager: the camera belongs to the
client, and its session is closed whenever the socket goes away.

==============================================================================
"""

import asyncio
import base64
import binascii
import logging
from typing import List, Optional

import cv2
import numpy as np
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from foodscan.capture import (
    AcceptedBarcode,
    CaptureManager,
    CaptureSessionHandle,
    PushedFrameStream,
    StreamConstraints,
    VideoStream,
)
from foodscan.core.exceptions import AppException


# Module logger
logger = logging.getLogger(__name__)

router = APIRouter()


class ScannerWebSocketHandler:
    """
    Handler for live barcode scanning WebSocket connections.

    Manages the lifecycle of a scanning session including:
    - Stream negotiation (resolution, torch capability)
    - Frame intake
    - Result delivery and teardown
    """

    def __init__(self, websocket: WebSocket, manager: Optional[CaptureManager] = None):
        self._websocket = websocket
        self._manager = manager or CaptureManager()
        self._stream: Optional[PushedFrameStream] = None
        self._handle: Optional[CaptureSessionHandle] = None
        self._warnings: List[str] = []
        self._frame_count = 0

    async def send_error(self, message: str, code: str = "ERROR") -> None:
        """Send error message to client."""
        await self._websocket.send_json({
            "type": "error",
            "code": code,
            "message": message
        })

    async def _send_torch(self, enabled: bool) -> None:
        await self._websocket.send_json({"type": "torch", "enabled": enabled})

    async def _open_stream(self, constraints: StreamConstraints) -> VideoStream:
        return self._stream

    async def handle_init(self, data: dict) -> bool:
        """Handle init message from client."""
        defaults = self._manager.default_constraints()

        try:
            width = int(data.get("width") or defaults.width)
            height = int(data.get("height") or defaults.height)
        except (TypeError, ValueError):
            await self.send_error("width and height must be integers", "PROTOCOL_ERROR")
            return False

        constraints = StreamConstraints(
            facing_mode=str(data.get("facing_mode") or defaults.facing_mode),
            width=width,
            height=height,
            decode_area=defaults.decode_area if data.get("crop", True) else None
        )

        self._stream = PushedFrameStream(
            torch_supported=bool(data.get("torch", False)),
            torch_callback=self._send_torch
        )

        logger.info(f"Init: {width}x{height}, torch={self._stream.capabilities()['torch']}")

        try:
            self._handle = await self._manager.open_live_capture(
                constraints,
                opener=self._open_stream,
                on_warning=self._warnings.append
            )
        except AppException as e:
            await self.send_error(e.message, e.code)
            return False

        await self._websocket.send_json({
            "type": "ready",
            "session_id": self._handle.session_id,
            "torch_supported": self._stream.capabilities()["torch"]
        })

        return True

    def handle_frame(self, data: dict) -> None:
        """Handle frame message from client."""
        try:
            img_data = base64.b64decode(data["frame"])
        except (KeyError, TypeError, binascii.Error) as e:
            logger.error(f"Frame payload error: {e}")
            return

        if not img_data:
            return

        nparr = np.frombuffer(img_data, np.uint8)
        frame = cv2.imdecode(nparr, cv2.IMREAD_COLOR)

        if frame is None:
            return

        self._stream.push(frame)

    async def handle_torch(self) -> None:
        """Handle torch toggle request from client."""
        enabled = await self._handle.toggle_torch()

        for message in self._warnings:
            await self._websocket.send_json({"type": "warning", "message": message})
        self._warnings.clear()

        await self._websocket.send_json({"type": "torch_state", "enabled": enabled})

    async def _receive_loop(self) -> None:
        while True:
            data = await self._websocket.receive_json()
            kind = data.get("type")

            if kind == "frame":
                self._frame_count += 1
                self.handle_frame(data)

            elif kind == "torch":
                await self.handle_torch()

            elif kind == "stop":
                logger.info("🛑 Client requested stop")
                return

    async def run(self) -> None:
        """Main handler loop."""
        await self._websocket.accept()
        logger.info("📱 Scanner WebSocket connected")

        receiver: Optional[asyncio.Task] = None

        try:
            init_data = await self._websocket.receive_json()
            if init_data.get("type") != "init":
                await self.send_error("Expected init message", "PROTOCOL_ERROR")
                await self._websocket.close()
                return

            if not await self.handle_init(init_data):
                await self._websocket.close()
                return

            receiver = asyncio.create_task(self._receive_loop())
            waiter = asyncio.create_task(self._handle.wait_for_result())

            done, _ = await asyncio.wait(
                {receiver, waiter},
                return_when=asyncio.FIRST_COMPLETED
            )

            if waiter in done:
                outcome = waiter.result()
                if isinstance(outcome, AcceptedBarcode):
                    await self._websocket.send_json({"type": "result", **outcome.to_dict()})
                    reason = "succeeded"
                else:
                    reason = "closed"
            else:
                waiter.cancel()
                # Re-raises WebSocketDisconnect from the receiver
                receiver.result()
                reason = "stopped"

            self._handle.close()
            await self._websocket.send_json({"type": "closed", "reason": reason})
            await self._websocket.close()

        except WebSocketDisconnect:
            logger.info("📱 Client disconnected")
        except Exception as e:
            logger.error(f"WebSocket error: {e}")
            try:
                await self.send_error(str(e))
            except Exception:
                pass
        finally:
            if receiver is not None and not receiver.done():
                receiver.cancel()
            if self._handle is not None:
                self._handle.close()
            logger.info(f"✅ Scanner WebSocket closed ({self._frame_count} frames)")


@router.websocket("/ws/scan")
async def websocket_scan(websocket: WebSocket):
    """Real-time barcode scanning via WebSocket."""
    handler = ScannerWebSocketHandler(websocket)
    await handler.run()
