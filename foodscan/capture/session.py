"""
==============================================================================
Capture Session Module
==============================================================================

State machine owning one scan attempt and its hardware resources.

States:
-------
    IDLE -> ACQUIRING -> ACTIVE -> (DECODING) -> SUCCEEDED | FAILED -> CLOSED

- DECODING is the live-mode sub-state entered on the first read.
- FAILED after "no barcode" on a still image is retryable: capture_still()
  may be called again with another file.
- close() is reachable from every state. It stops continuous decoding and
  the hardware stream (exactly once) before the state becomes CLOSED.

Every decode callback is bound to the session generation current when
decoding started. close() bumps the generation, so late frame callbacks
cannot mutate a closed session or emit a second result.

==============================================================================
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from functools import partial
from typing import Callable, Optional, Union

from foodscan.core import exceptions
from foodscan.core.exceptions import AppException

from .consensus import DEFAULT_ACCEPT_THRESHOLD, ConsensusValidator
from .decoder import DecoderEngine
from .emitter import ResultCallback, ResultEmitter
from .models import (
    AcceptedBarcode,
    CaptureState,
    DecodeCandidate,
    DecodeFailure,
    SourceKind,
)
from .sources import ImageSourceAdapter, StillImage, StreamConstraints, VideoStream


# Module logger
logger = logging.getLogger(__name__)


StateCallback = Callable[[CaptureState, CaptureState], None]
WarningCallback = Callable[[str], None]

CaptureOutcome = Union[AcceptedBarcode, DecodeFailure]

CLOSED_BEFORE_RESULT = "Scan closed before a barcode was confirmed."

_session_ids = itertools.count(1)


class CaptureSession:
    """
    One barcode capture attempt from a still image or a live stream.

    Attributes:
        session_id: Process-unique session number
        state: Current CaptureState
        source_kind: STILL_IMAGE or LIVE_STREAM once started
        torch_enabled: Current torch state (live mode)
        error_message: User-facing message of the last failure

    Example:
        >>> session = CaptureSession(DecoderEngine(), ImageSourceAdapter())
        >>> outcome = await session.capture_still(upload)

        >>> async with CaptureSession(decoder, sources, on_result=print) as live:
        ...     await live.start_live(StreamConstraints())
        ...     outcome = await live.wait_for_result()
    """

    def __init__(
        self,
        decoder: DecoderEngine,
        sources: ImageSourceAdapter,
        accept_threshold: int = DEFAULT_ACCEPT_THRESHOLD,
        on_result: Optional[ResultCallback] = None,
        on_state_change: Optional[StateCallback] = None,
        on_warning: Optional[WarningCallback] = None
    ) -> None:
        self.session_id = next(_session_ids)
        self._decoder = decoder
        self._sources = sources
        self._accept_threshold = accept_threshold
        self._emitter = ResultEmitter([on_result] if on_result else None)
        self._on_state_change = on_state_change
        self._on_warning = on_warning

        self._state = CaptureState.IDLE
        self._source_kind: Optional[SourceKind] = None
        self._torch_enabled = False
        self._error_message: Optional[str] = None
        self._error_code: Optional[str] = None

        self._stream: Optional[VideoStream] = None
        self._preview: Optional[StillImage] = None
        self._validator: Optional[ConsensusValidator] = None
        self._result_future: Optional[asyncio.Future] = None
        self._generation = 0

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def source_kind(self) -> Optional[SourceKind]:
        return self._source_kind

    @property
    def torch_enabled(self) -> bool:
        return self._torch_enabled

    @property
    def error_message(self) -> Optional[str]:
        return self._error_message

    @property
    def error_code(self) -> Optional[str]:
        return self._error_code

    @property
    def preview(self) -> Optional[StillImage]:
        """Last loaded still image. Kept after a failed decode."""
        return self._preview

    @property
    def accepted(self) -> Optional[AcceptedBarcode]:
        return self._emitter.delivered

    @property
    def is_closed(self) -> bool:
        return self._state is CaptureState.CLOSED

    def on_result(self, callback: ResultCallback) -> Callable[[], None]:
        """Register a result listener; returns an unsubscribe function."""
        return self._emitter.subscribe(callback)

    # =========================================================================
    # STILL IMAGE CAPTURE
    # =========================================================================

    async def capture_still(self, upload) -> CaptureOutcome:
        """
        Decode a user-selected image.

        Args:
            upload: Object with `content_type` and async `read()`

        Returns:
            AcceptedBarcode on success, DecodeFailure otherwise
        """
        if self._state not in (CaptureState.IDLE, CaptureState.FAILED):
            raise exceptions.session_state_invalid(self._state.value, "idle or failed")

        try:
            self._sources.check_kind(upload)
        except AppException as e:
            # Nothing was acquired; the user is simply re-prompted
            self._set_error(e.code, e.message)
            return DecodeFailure(e.code, e.message)

        self._source_kind = SourceKind.STILL_IMAGE
        self._set_error(None, None)
        self._transition(CaptureState.ACQUIRING)
        generation = self._generation

        try:
            image = await self._sources.from_file(upload)
        except AppException as e:
            if generation != self._generation:
                return DecodeFailure(exceptions.DECODE_NOT_FOUND, CLOSED_BEFORE_RESULT)
            return self._fail(e.code, e.message)

        if generation != self._generation:
            return DecodeFailure(exceptions.DECODE_NOT_FOUND, CLOSED_BEFORE_RESULT)

        self._preview = image
        self._transition(CaptureState.ACTIVE)

        candidate = await asyncio.to_thread(self._decoder.decode_once, image)

        if generation != self._generation:
            return DecodeFailure(exceptions.DECODE_NOT_FOUND, CLOSED_BEFORE_RESULT)

        if candidate is None:
            return self._fail(exceptions.DECODE_NOT_FOUND, exceptions.DECODE_NOT_FOUND_MESSAGE)

        # A user-selected image is trusted without consensus
        accepted = AcceptedBarcode(candidate.code, candidate.symbology)
        self._succeed(accepted)
        return accepted

    # =========================================================================
    # LIVE CAPTURE
    # =========================================================================

    async def start_live(self, constraints: Optional[StreamConstraints] = None) -> None:
        """
        Acquire a live stream and start continuous decoding.

        Raises:
            AppException: HARDWARE_UNAVAILABLE (session moves to FAILED),
                SESSION_STATE_INVALID when not IDLE
        """
        if self._state is not CaptureState.IDLE:
            raise exceptions.session_state_invalid(self._state.value, CaptureState.IDLE.value)

        constraints = constraints or StreamConstraints()
        self._source_kind = SourceKind.LIVE_STREAM
        self._validator = ConsensusValidator(self._accept_threshold, self._decoder.min_code_length)
        self._result_future = asyncio.get_running_loop().create_future()
        self._transition(CaptureState.ACQUIRING)
        generation = self._generation

        try:
            stream = await self._sources.from_live_stream(constraints)
        except AppException as e:
            if generation != self._generation:
                logger.debug(f"Session {self.session_id} closed during failed acquisition")
                return
            logger.error(f"❌ Camera unavailable: {e.details.get('reason', e.message)}")
            self._fail(e.code, e.message)
            self._resolve(DecodeFailure(e.code, e.message))
            raise

        if generation != self._generation:
            # close() won the race; never keep a stream for a discarded session
            stream.stop()
            logger.info(f"Session {self.session_id} closed during acquisition, stream released")
            return

        self._stream = stream
        self._transition(CaptureState.ACTIVE)
        self._decoder.start_continuous_decode(
            stream,
            partial(self._handle_candidate, generation),
            area=constraints.decode_area
        )
        logger.info(f"🚀 Live capture started (session {self.session_id})")

    def _handle_candidate(self, generation: int, candidate: DecodeCandidate) -> None:
        if generation != self._generation:
            return
        if self._state not in (CaptureState.ACTIVE, CaptureState.DECODING):
            return

        if self._state is CaptureState.ACTIVE:
            self._transition(CaptureState.DECODING)

        accepted = self._validator.submit(candidate)
        if accepted is None:
            return

        self._decoder.stop_continuous_decode()
        self._succeed(accepted)

    async def wait_for_result(self) -> CaptureOutcome:
        """
        Wait for the live session outcome.

        Returns:
            AcceptedBarcode, or a DecodeFailure when the session ended first
        """
        if self._result_future is None:
            raise exceptions.session_state_invalid(
                self._state.value, "live capture started"
            )
        return await asyncio.shield(self._result_future)

    async def toggle_torch(self) -> bool:
        """
        Flip the torch on a live stream.

        No-op without torch capability or outside ACTIVE/DECODING. Hardware
        errors become a warning, never a session failure.

        Returns:
            Torch state after the call
        """
        stream = self._stream
        if stream is None or self._state not in (CaptureState.ACTIVE, CaptureState.DECODING):
            return self._torch_enabled

        if not stream.capabilities().get("torch"):
            logger.debug("Torch not supported by stream")
            return self._torch_enabled

        generation = self._generation
        target = not self._torch_enabled

        try:
            await stream.set_torch(target)
        except Exception as e:
            logger.warning(f"Torch error: {e}")
            if self._on_warning:
                self._on_warning(f"Could not switch the torch: {e}")
            return self._torch_enabled

        if generation != self._generation:
            return self._torch_enabled

        self._torch_enabled = target
        return target

    # =========================================================================
    # TEARDOWN
    # =========================================================================

    def close(self) -> None:
        """Release every resource and move to CLOSED. Idempotent."""
        if self._state is CaptureState.CLOSED:
            return

        self._generation += 1
        self._decoder.stop_continuous_decode()

        stream, self._stream = self._stream, None
        if stream is not None:
            try:
                stream.stop()
            except Exception as e:
                logger.error(f"Stream stop error: {e}")

        self._torch_enabled = False
        self._transition(CaptureState.CLOSED)
        self._resolve(DecodeFailure(exceptions.DECODE_NOT_FOUND, CLOSED_BEFORE_RESULT))

    async def __aenter__(self) -> "CaptureSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _succeed(self, accepted: AcceptedBarcode) -> None:
        self._transition(CaptureState.SUCCEEDED)
        self._resolve(accepted)
        self._emitter.deliver(accepted, self.close)

    def _fail(self, code: str, message: str) -> DecodeFailure:
        self._set_error(code, message)
        self._transition(CaptureState.FAILED)
        logger.warning(f"Capture failed ({code}): {message}")
        return DecodeFailure(code, message)

    def _set_error(self, code: Optional[str], message: Optional[str]) -> None:
        self._error_code = code
        self._error_message = message

    def _resolve(self, outcome: CaptureOutcome) -> None:
        future = self._result_future
        if future is None or future.done() or future.get_loop().is_closed():
            return
        future.set_result(outcome)

    def _transition(self, to_state: CaptureState) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        self._state = to_state
        logger.debug(f"Session {self.session_id}: {from_state.value} -> {to_state.value}")
        if self._on_state_change:
            self._on_state_change(from_state, to_state)
