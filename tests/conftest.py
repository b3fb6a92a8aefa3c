"""
==============================================================================
Pytest Configuration and Fixtures
==============================================================================

Provides fake ZBar reads, fake video streams, synthetic barcode images and
an API test client.

==============================================================================
"""

import asyncio
from typing import Callable, Generator, List, Optional

import cv2
import numpy as np
import pytest
from fastapi.testclient import TestClient

from foodscan.capture import decoder as decoder_module
from foodscan.capture import (
    CaptureSession,
    DecoderEngine,
    ImageSourceAdapter,
    ImageUpload,
    VideoStream,
)
from foodscan.main import app


# ============================================================================
# FAKE ZBAR
# ============================================================================

class FakeRect:
    def __init__(self, size: int = 10):
        self.left = 0
        self.top = 0
        self.width = size
        self.height = size


class FakeBarcode:
    """Stand-in for pyzbar's Decoded tuple."""

    def __init__(self, code: str, symbology: str = "EAN13", size: int = 10):
        self.data = code.encode("utf-8")
        self.type = symbology
        self.rect = FakeRect(size)


class FakeZBar:
    """
    Scripted replacement for pyzbar's decode().

    Each call pops one entry from `reads` (a list of codes found in that
    frame; an entry may be a (code, size) pair to set the symbol size);
    once exhausted, `default` is returned.
    """

    def __init__(self):
        self.reads: List[List[str]] = []
        self.default: List[str] = []
        self.error: Optional[Exception] = None
        self.calls = 0
        self.shapes = []

    def script(self, *frames: List[str]) -> "FakeZBar":
        self.reads = [list(codes) for codes in frames]
        return self

    def __call__(self, image, symbols=None):
        self.calls += 1
        self.shapes.append(image.shape)
        if self.error is not None:
            raise self.error
        codes = self.reads.pop(0) if self.reads else self.default
        return [
            FakeBarcode(code[0], size=code[1]) if isinstance(code, tuple) else FakeBarcode(code)
            for code in codes
        ]


@pytest.fixture
def fake_zbar(monkeypatch) -> FakeZBar:
    """Replace the decoder's ZBar binding with a scripted fake."""
    fake = FakeZBar()
    monkeypatch.setattr(decoder_module, "decode", fake)
    return fake


# ============================================================================
# FAKE STREAMS
# ============================================================================

class FakeStream(VideoStream):
    """Video stream serving preloaded frames and recording stop() calls."""

    def __init__(
        self,
        frames: int = 0,
        torch: bool = False,
        torch_error: Optional[Exception] = None
    ):
        self.frames = [np.zeros((40, 60, 3), dtype=np.uint8) for _ in range(frames)]
        self.stop_calls = 0
        self.torch_calls: List[bool] = []
        self._torch = torch
        self._torch_error = torch_error
        self._stopped = False

    @property
    def stopped(self) -> bool:
        return self._stopped

    async def read_frame(self):
        if self._stopped:
            return None
        if self.frames:
            return self.frames.pop(0)
        await asyncio.sleep(0.005)
        return None

    def stop(self) -> None:
        self.stop_calls += 1
        self._stopped = True

    def capabilities(self):
        return {"torch": self._torch}

    async def set_torch(self, enabled: bool) -> None:
        self.torch_calls.append(enabled)
        if self._torch_error is not None:
            raise self._torch_error


class RecordingOpener:
    """Opener returning a fixed stream (or raising) and recording calls."""

    def __init__(self, stream: Optional[VideoStream] = None, error: Optional[Exception] = None):
        self.stream = stream
        self.error = error
        self.calls = []

    async def __call__(self, constraints):
        self.calls.append(constraints)
        if self.error is not None:
            raise self.error
        return self.stream


def make_session(
    opener: Optional[Callable] = None,
    accept_threshold: int = 3,
    **callbacks
) -> CaptureSession:
    """Session with a fast decoder."""
    return CaptureSession(
        DecoderEngine(frequency=200),
        ImageSourceAdapter(opener=opener),
        accept_threshold=accept_threshold,
        **callbacks
    )


# ============================================================================
# IMAGES
# ============================================================================

_EAN_L = ["0001101", "0011001", "0010011", "0111101", "0100011",
          "0110001", "0101111", "0111011", "0110111", "0001011"]
_EAN_G = ["0100111", "0110011", "0011011", "0100001", "0011101",
          "0111001", "0000101", "0010001", "0001001", "0010111"]
_EAN_R = ["1110010", "1100110", "1101100", "1000010", "1011100",
          "1001110", "1010000", "1000100", "1001000", "1110100"]
_EAN_PARITY = ["LLLLLL", "LLGLGG", "LLGGLG", "LLGGGL", "LGLLGG",
               "LGGLLG", "LGGGLL", "LGLGLG", "LGLGGL", "LGGLGL"]


def render_ean13(code: str, module: int = 3, height: int = 120) -> np.ndarray:
    """Draw an EAN-13 symbol as a BGR image with quiet zones."""
    digits = [int(c) for c in code]
    parity = _EAN_PARITY[digits[0]]

    bits = "101"
    for digit, kind in zip(digits[1:7], parity):
        bits += (_EAN_L if kind == "L" else _EAN_G)[digit]
    bits += "01010"
    for digit in digits[7:]:
        bits += _EAN_R[digit]
    bits += "101"

    quiet = "0" * 12
    row = np.array([0 if b == "1" else 255 for b in quiet + bits + quiet], dtype=np.uint8)
    row = np.repeat(row, module)

    image = np.full((height + 40, row.size), 255, dtype=np.uint8)
    image[20:20 + height, :] = row
    return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)


def encode_png(image: np.ndarray) -> bytes:
    ok, buffer = cv2.imencode(".png", image)
    assert ok
    return buffer.tobytes()


@pytest.fixture
def ean13_png() -> bytes:
    return encode_png(render_ean13("5901234123457"))


@pytest.fixture
def blank_png() -> bytes:
    return encode_png(np.full((120, 200, 3), 255, dtype=np.uint8))


@pytest.fixture
def ean13_upload(ean13_png) -> ImageUpload:
    return ImageUpload(ean13_png, "image/png", "label.png")


@pytest.fixture
def blank_upload(blank_png) -> ImageUpload:
    return ImageUpload(blank_png, "image/png", "blank.png")


# ============================================================================
# API CLIENT
# ============================================================================

@pytest.fixture(scope="function")
def client() -> Generator[TestClient, None, None]:
    """Test client; dependency overrides are cleared afterwards."""
    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
