"""
==============================================================================
Image Source Module
==============================================================================

Normalizes the three capture origins into decodable frame sources.

Origins:
--------
- File upload / drag-drop  -> StillImage (data URL preview + BGR frame)
- Local camera             -> CameraStream (OpenCV VideoCapture)
- Remote browser camera    -> PushedFrameStream (frames pushed over WebSocket)

Every live stream implements VideoStream. Whoever receives a stream from
ImageSourceAdapter.from_live_stream owns it and must call stop().

==============================================================================
"""

from __future__ import annotations

import asyncio
import base64
import logging
import mimetypes
import os
import sys
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, Dict, Optional

import cv2
import numpy as np

from foodscan.core import exceptions


# Module logger
logger = logging.getLogger(__name__)


# =============================================================================
# CONSTRAINTS
# =============================================================================

@dataclass(frozen=True)
class DecodeArea:
    """
    Decode region expressed as fractions trimmed from each frame edge.

    Example:
        >>> DecodeArea(top=0.2, right=0.1, bottom=0.2, left=0.1).crop(frame)
    """
    top: float = 0.0
    right: float = 0.0
    bottom: float = 0.0
    left: float = 0.0

    def crop(self, frame: np.ndarray) -> np.ndarray:
        """Return the region of `frame` inside the area."""
        height, width = frame.shape[:2]
        y0 = int(height * self.top)
        y1 = height - int(height * self.bottom)
        x0 = int(width * self.left)
        x1 = width - int(width * self.right)
        if y1 <= y0 or x1 <= x0:
            return frame
        return frame[y0:y1, x0:x1]


@dataclass(frozen=True)
class StreamConstraints:
    """Camera request preferences."""
    facing_mode: str = "environment"
    width: int = 1280
    height: int = 720
    decode_area: Optional[DecodeArea] = None


# =============================================================================
# STILL IMAGES
# =============================================================================

class ImageUpload:
    """
    In-memory upload with the same surface as FastAPI's UploadFile.

    Example:
        >>> upload = ImageUpload.from_path(Path("label.jpg"))
        >>> still = await ImageSourceAdapter().from_file(upload)
    """

    def __init__(self, data: bytes, content_type: str, filename: str = "upload") -> None:
        self._data = data
        self.content_type = content_type
        self.filename = filename

    @classmethod
    def from_path(cls, path: Path) -> "ImageUpload":
        content_type, _ = mimetypes.guess_type(str(path))
        return cls(path.read_bytes(), content_type or "application/octet-stream", path.name)

    async def read(self) -> bytes:
        return self._data


@dataclass
class StillImage:
    """
    A user-selected image ready for decoding and preview.

    The preview data URL is only encoded when someone asks for it.
    """
    data: bytes = field(repr=False)
    frame: np.ndarray = field(repr=False)
    content_type: str
    filename: Optional[str] = None

    @property
    def data_url(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.content_type};base64,{encoded}"


# =============================================================================
# LIVE STREAMS
# =============================================================================

class VideoStream(ABC):
    """
    Exclusive handle on a live frame source.

    stop() releases the underlying hardware (all tracks). It is safe to call
    more than once; only the first call has an effect.
    """

    @abstractmethod
    async def read_frame(self) -> Optional[np.ndarray]:
        """Next frame, or None if none is available or the stream stopped."""

    @abstractmethod
    def stop(self) -> None:
        """Stop all tracks."""

    @property
    @abstractmethod
    def stopped(self) -> bool:
        """True once stop() has run."""

    def capabilities(self) -> Dict[str, bool]:
        """Hardware capabilities of the video track."""
        return {"torch": False}

    async def set_torch(self, enabled: bool) -> None:
        """Switch the torch on or off."""
        raise NotImplementedError("Torch is not supported by this stream")


class CameraStream(VideoStream):
    """Local camera opened through OpenCV."""

    def __init__(self, capture: "cv2.VideoCapture", camera_index: int = 0) -> None:
        self._cap = capture
        self._camera_index = camera_index
        self._lock = threading.Lock()
        self._stopped = False

    @property
    def stopped(self) -> bool:
        return self._stopped

    def _read_locked(self) -> Optional[np.ndarray]:
        with self._lock:
            if self._stopped:
                return None
            ok, frame = self._cap.read()
        return frame if ok else None

    async def read_frame(self) -> Optional[np.ndarray]:
        if self._stopped:
            return None
        return await asyncio.to_thread(self._read_locked)

    def stop(self) -> None:
        with self._lock:
            if self._stopped:
                return
            self._stopped = True
            self._cap.release()
        logger.info(f"📷 Camera {self._camera_index} released")


class PushedFrameStream(VideoStream):
    """
    Frames pushed by a remote client (browser camera over WebSocket).

    Only the newest `max_pending` frames are kept; older ones are dropped so
    decoding always works on fresh video. Torch is applied client-side: the
    client declares the capability and `torch_callback` forwards commands.
    """

    def __init__(
        self,
        torch_supported: bool = False,
        torch_callback: Optional[Callable[[bool], Awaitable[None]]] = None,
        max_pending: int = 2
    ) -> None:
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max(1, max_pending))
        self._torch_supported = torch_supported and torch_callback is not None
        self._torch_callback = torch_callback
        self._stopped = False

    @property
    def stopped(self) -> bool:
        return self._stopped

    def push(self, frame: np.ndarray) -> None:
        """Queue a frame, dropping the oldest when full."""
        if self._stopped:
            return
        if self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(frame)

    async def read_frame(self) -> Optional[np.ndarray]:
        if self._stopped:
            return None
        return await self._queue.get()

    def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        while not self._queue.empty():
            self._queue.get_nowait()
        # Wake a reader blocked in read_frame()
        self._queue.put_nowait(None)

    def capabilities(self) -> Dict[str, bool]:
        return {"torch": self._torch_supported}

    async def set_torch(self, enabled: bool) -> None:
        if not self._torch_supported:
            raise NotImplementedError("Client did not report torch support")
        await self._torch_callback(enabled)


def _device_failure_reason(camera_index: int) -> str:
    """Best-effort distinction between a missing and a forbidden device."""
    if sys.platform.startswith("linux"):
        device = f"/dev/video{camera_index}"
        if not os.path.exists(device):
            return exceptions.NO_DEVICE
        if not os.access(device, os.R_OK | os.W_OK):
            return exceptions.PERMISSION_DENIED
        return exceptions.DEVICE_BUSY
    return exceptions.NO_DEVICE


def _open_capture(constraints: StreamConstraints, camera_index: int) -> CameraStream:
    cap = cv2.VideoCapture(camera_index)

    if not cap.isOpened():
        cap.release()
        raise exceptions.hardware_unavailable(
            _device_failure_reason(camera_index), device=str(camera_index)
        )

    cap.set(cv2.CAP_PROP_FRAME_WIDTH, constraints.width)
    cap.set(cv2.CAP_PROP_FRAME_HEIGHT, constraints.height)

    # An opened device that cannot deliver a frame is held by someone else
    ok, _ = cap.read()
    if not ok:
        cap.release()
        raise exceptions.hardware_unavailable(exceptions.DEVICE_BUSY, device=str(camera_index))

    return CameraStream(cap, camera_index)


def camera_opener(camera_index: int = 0) -> Callable[[StreamConstraints], Awaitable[VideoStream]]:
    """
    Build an opener for a local OpenCV camera.

    OpenCV has no facing-mode selection; the device index stands in for it.
    """
    async def open_camera(constraints: StreamConstraints) -> VideoStream:
        logger.info(
            f"📷 Opening camera {camera_index} "
            f"({constraints.width}x{constraints.height}, {constraints.facing_mode})"
        )
        return await asyncio.to_thread(_open_capture, constraints, camera_index)

    return open_camera


# =============================================================================
# ADAPTER
# =============================================================================

class ImageSourceAdapter:
    """
    Produces decodable sources from uploads and camera requests.

    Attributes:
        opener: Coroutine function that acquires a VideoStream
        max_upload_bytes: Largest accepted image payload
    """

    def __init__(
        self,
        opener: Optional[Callable[[StreamConstraints], Awaitable[VideoStream]]] = None,
        max_upload_bytes: Optional[int] = None
    ) -> None:
        self._opener = opener or camera_opener()
        self._max_upload_bytes = max_upload_bytes

    @staticmethod
    def check_kind(upload) -> str:
        """
        Validate the upload's MIME type.

        Raises:
            AppException: INVALID_INPUT_KIND for non-image content
        """
        content_type = (getattr(upload, "content_type", None) or "").lower()
        if not content_type.startswith("image/"):
            raise exceptions.invalid_input_kind(content_type)
        return content_type

    async def from_file(self, upload) -> StillImage:
        """
        Read an uploaded image into a preview data URL and a BGR frame.

        Args:
            upload: Object with `content_type` and async `read()`

        Returns:
            StillImage

        Raises:
            AppException: INVALID_INPUT_KIND or SOURCE_READ_FAILED
        """
        content_type = self.check_kind(upload)

        try:
            data = await upload.read()
        except OSError as e:
            logger.error(f"Image read error: {e}")
            raise exceptions.source_read_failed(str(e)) from e

        if not data:
            raise exceptions.source_read_failed("empty file")

        if self._max_upload_bytes and len(data) > self._max_upload_bytes:
            raise exceptions.source_read_failed(
                f"file exceeds {self._max_upload_bytes} bytes"
            )

        frame = cv2.imdecode(np.frombuffer(data, np.uint8), cv2.IMREAD_COLOR)
        if frame is None:
            raise exceptions.source_read_failed("unsupported or corrupt image data")

        return StillImage(
            data=data,
            frame=frame,
            content_type=content_type,
            filename=getattr(upload, "filename", None)
        )

    async def from_live_stream(self, constraints: StreamConstraints) -> VideoStream:
        """
        Acquire a live stream. The caller owns the result.

        Raises:
            AppException: HARDWARE_UNAVAILABLE
        """
        try:
            return await self._opener(constraints)
        except exceptions.AppException:
            raise
        except PermissionError as e:
            raise exceptions.hardware_unavailable(exceptions.PERMISSION_DENIED) from e
        except OSError as e:
            raise exceptions.hardware_unavailable(exceptions.DEVICE_BUSY) from e
