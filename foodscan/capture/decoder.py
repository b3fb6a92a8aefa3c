"""
==============================================================================
Decoder Engine Module
==============================================================================

Barcode recognition with OpenCV and pyzbar.

Features:
---------
- Fixed symbology set per engine (EAN-13, EAN-8, UPC-A, UPC-E, Code128, Code39)
- Minimum code length filter applied before any consumer sees a read
- Still-image decoding with preprocessing fallbacks (CLAHE, Otsu threshold)
- Continuous live decoding at a bounded frame rate, one detection per frame
  (the largest symbol in view)

==============================================================================
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Iterable, List, Optional, Union

import cv2
import numpy as np
from pyzbar.pyzbar import ZBarSymbol, decode

from .models import DEFAULT_SYMBOLOGIES, DecodeCandidate, Symbology
from .sources import DecodeArea, StillImage, VideoStream


# Module logger
logger = logging.getLogger(__name__)


CandidateCallback = Callable[[DecodeCandidate], None]


def _symbol_area(barcode) -> int:
    rect = barcode.rect
    return rect.width * rect.height


class DecoderEngine:
    """
    Symbol recognition over still images and live streams.

    Attributes:
        symbologies: Accepted symbologies
        min_code_length: Shorter reads are discarded
        frequency: Live decode rate in frames per second

    Example:
        >>> engine = DecoderEngine()
        >>> candidate = engine.decode_once(still_image)
        >>> engine.start_continuous_decode(stream, on_candidate)
        >>> engine.stop_continuous_decode()
    """

    def __init__(
        self,
        symbologies: Iterable[Union[Symbology, str]] = DEFAULT_SYMBOLOGIES,
        min_code_length: int = 8,
        frequency: float = 10.0
    ) -> None:
        self._symbologies = [Symbology(s).value if isinstance(s, Symbology) else str(s).upper()
                             for s in symbologies]
        self._symbols = [ZBarSymbol[name] for name in self._symbologies]
        self._min_code_length = min_code_length
        self._interval = 1.0 / frequency
        self._task: Optional[asyncio.Task] = None
        self._running = False

        logger.debug(f"Decoder configured: {', '.join(self._symbologies)}")

    @property
    def symbologies(self) -> List[str]:
        return list(self._symbologies)

    @property
    def min_code_length(self) -> int:
        return self._min_code_length

    @property
    def is_running(self) -> bool:
        return self._running

    # =========================================================================
    # FRAME DECODING
    # =========================================================================

    @staticmethod
    def _to_gray(frame: np.ndarray) -> np.ndarray:
        if frame.ndim == 2:
            return frame
        return cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)

    def _scan(self, image: np.ndarray) -> List[DecodeCandidate]:
        try:
            barcodes = decode(image, symbols=self._symbols)
        except Exception as e:
            logger.error(f"Decode error: {e}")
            return []

        # Largest symbol first; continuous mode only votes with that one
        barcodes = sorted(barcodes, key=_symbol_area, reverse=True)

        timestamp = time.monotonic()
        candidates = []
        seen = set()

        for barcode in barcodes:
            try:
                code = barcode.data.decode("utf-8").strip()
            except UnicodeDecodeError as e:
                logger.error(f"Barcode payload error: {e}")
                continue

            if len(code) < self._min_code_length:
                logger.debug(f"Discarded short read: {code!r}")
                continue

            # One vote per code per frame
            if code in seen:
                continue
            seen.add(code)

            candidates.append(DecodeCandidate(
                code=code,
                symbology=str(barcode.type),
                frame_timestamp=timestamp
            ))

        return candidates

    def self_test(self) -> None:
        """
        Run ZBar once on a blank image.

        Raises:
            Exception: Whatever the ZBar binding raises (missing library, bad symbols)
        """
        decode(np.zeros((16, 16), dtype=np.uint8), symbols=self._symbols)

    def decode_frame(
        self,
        frame: np.ndarray,
        area: Optional[DecodeArea] = None
    ) -> List[DecodeCandidate]:
        """
        Decode one frame.

        Args:
            frame: BGR or grayscale image
            area: Optional decode region

        Returns:
            Candidates at least min_code_length long
        """
        if frame is None or frame.size == 0:
            return []

        region = area.crop(frame) if area else frame
        return self._scan(self._to_gray(region))

    def decode_once(self, source: Union[StillImage, np.ndarray]) -> Optional[DecodeCandidate]:
        """
        Single-shot decode of a still image.

        Tries the plain grayscale image first, then contrast-equalized and
        binarized variants.

        Returns:
            First candidate found, or None
        """
        frame = source.frame if isinstance(source, StillImage) else source
        if frame is None or frame.size == 0:
            return None

        gray = self._to_gray(frame)

        for name, prepare in (
            ("gray", lambda img: img),
            ("clahe", self._equalize),
            ("otsu", self._binarize),
        ):
            candidates = self._scan(prepare(gray))
            if candidates:
                logger.debug(f"Still image decoded on '{name}' pass")
                return candidates[0]

        return None

    @staticmethod
    def _equalize(gray: np.ndarray) -> np.ndarray:
        clahe = cv2.createCLAHE(clipLimit=2.0, tileGridSize=(8, 8))
        return clahe.apply(gray)

    @staticmethod
    def _binarize(gray: np.ndarray) -> np.ndarray:
        blurred = cv2.GaussianBlur(gray, (5, 5), 0)
        _, thresh = cv2.threshold(blurred, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
        return thresh

    # =========================================================================
    # CONTINUOUS DECODING
    # =========================================================================

    def start_continuous_decode(
        self,
        stream: VideoStream,
        on_candidate: CandidateCallback,
        area: Optional[DecodeArea] = None
    ) -> None:
        """
        Start decoding frames from `stream` in a background task.

        `on_candidate` receives at most one candidate per frame.

        Must be called from a running event loop. A second call while running
        restarts the loop on the new stream.
        """
        self.stop_continuous_decode()
        self._running = True
        self._task = asyncio.get_running_loop().create_task(
            self._decode_loop(stream, on_candidate, area)
        )
        logger.debug("Continuous decode started")

    def stop_continuous_decode(self) -> None:
        """Stop continuous decoding. Safe to call at any time, any number of times."""
        task, self._task = self._task, None
        was_running = self._running
        self._running = False

        if task is None:
            return

        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None

        # The loop notices _running on its own when stopped from a callback
        if task is not current and not task.done():
            task.cancel()

        if was_running:
            logger.debug("Continuous decode stopped")

    async def _decode_loop(
        self,
        stream: VideoStream,
        on_candidate: CandidateCallback,
        area: Optional[DecodeArea]
    ) -> None:
        loop = asyncio.get_running_loop()

        while self._running:
            started = loop.time()

            frame = await stream.read_frame()
            if frame is None:
                if stream.stopped:
                    break
                await asyncio.sleep(self._interval)
                continue

            candidates = await asyncio.to_thread(self.decode_frame, frame, area)
            if not self._running:
                return

            # One detection per frame, so a second symbol in view cannot
            # interrupt the run of the first
            if candidates:
                try:
                    on_candidate(candidates[0])
                except Exception as e:
                    logger.error(f"Candidate handler error: {e}")

            elapsed = loop.time() - started
            await asyncio.sleep(max(0.0, self._interval - elapsed))

        self._running = False
