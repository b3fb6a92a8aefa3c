"""
==============================================================================
Capture Manager Module
==============================================================================

Entry points used by the application to start captures.

- open_still_image_capture(upload) -> AcceptedBarcode | DecodeFailure
- open_live_capture(...)           -> CaptureSessionHandle

A manager owns at most one live session: opening a new one tears the
previous one down first, so two sessions never hold the camera at once.

==============================================================================
"""

from __future__ import annotations

import logging
import weakref
from functools import lru_cache
from typing import Awaitable, Callable, Optional

from foodscan.config import Settings, get_settings
from foodscan.core.exceptions import AppException

from .decoder import DecoderEngine
from .emitter import ResultCallback
from .models import CaptureState
from .session import CaptureOutcome, CaptureSession, StateCallback, WarningCallback
from .sources import (
    DecodeArea,
    ImageSourceAdapter,
    StreamConstraints,
    VideoStream,
    camera_opener,
)


# Module logger
logger = logging.getLogger(__name__)


StreamOpener = Callable[[StreamConstraints], Awaitable[VideoStream]]

# Managers that have opened a live capture (the API one and one per WebSocket)
_live_managers: "weakref.WeakSet[CaptureManager]" = weakref.WeakSet()


class CaptureSessionHandle:
    """Application-facing view of a live capture session."""

    def __init__(self, session: CaptureSession) -> None:
        self._session = session

    @property
    def session_id(self) -> int:
        return self._session.session_id

    @property
    def state(self) -> CaptureState:
        return self._session.state

    @property
    def torch_enabled(self) -> bool:
        return self._session.torch_enabled

    def on_result(self, callback: ResultCallback) -> Callable[[], None]:
        return self._session.on_result(callback)

    async def toggle_torch(self) -> bool:
        return await self._session.toggle_torch()

    async def wait_for_result(self) -> CaptureOutcome:
        return await self._session.wait_for_result()

    def close(self) -> None:
        self._session.close()


class CaptureManager:
    """
    Builds capture sessions from application settings.

    Example:
        >>> manager = CaptureManager()
        >>> outcome = await manager.open_still_image_capture(upload)
        >>> handle = await manager.open_live_capture(on_result=print)
        >>> handle.close()
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        opener: Optional[StreamOpener] = None
    ) -> None:
        self._settings = settings or get_settings()
        self._opener = opener or camera_opener(self._settings.camera_index)
        self._active: Optional[CaptureSession] = None

    @property
    def active(self) -> Optional[CaptureSession]:
        """The live session currently holding the stream, if any."""
        if self._active is not None and self._active.is_closed:
            self._active = None
        return self._active

    def create_decoder(self) -> DecoderEngine:
        return DecoderEngine(
            symbologies=self._settings.symbologies_list,
            min_code_length=self._settings.scan_min_code_length,
            frequency=self._settings.scan_frequency
        )

    def default_constraints(self) -> StreamConstraints:
        settings = self._settings
        return StreamConstraints(
            facing_mode="environment",
            width=settings.camera_width,
            height=settings.camera_height,
            decode_area=DecodeArea(
                top=settings.scan_area_top,
                right=settings.scan_area_right,
                bottom=settings.scan_area_bottom,
                left=settings.scan_area_left
            )
        )

    def new_session(
        self,
        opener: Optional[StreamOpener] = None,
        on_result: Optional[ResultCallback] = None,
        on_state_change: Optional[StateCallback] = None,
        on_warning: Optional[WarningCallback] = None
    ) -> CaptureSession:
        """Create an IDLE session with its own decoder."""
        sources = ImageSourceAdapter(
            opener=opener or self._opener,
            max_upload_bytes=self._settings.max_upload_bytes
        )
        return CaptureSession(
            self.create_decoder(),
            sources,
            accept_threshold=self._settings.scan_accept_threshold,
            on_result=on_result,
            on_state_change=on_state_change,
            on_warning=on_warning
        )

    async def open_still_image_capture(self, upload) -> CaptureOutcome:
        """Decode one uploaded image in a throwaway session."""
        session = self.new_session()
        try:
            outcome = await session.capture_still(upload)
        finally:
            session.close()

        logger.info(f"Still capture outcome: {outcome}")
        return outcome

    async def open_live_capture(
        self,
        constraints: Optional[StreamConstraints] = None,
        opener: Optional[StreamOpener] = None,
        on_result: Optional[ResultCallback] = None,
        on_state_change: Optional[StateCallback] = None,
        on_warning: Optional[WarningCallback] = None
    ) -> CaptureSessionHandle:
        """
        Start a live capture, replacing any live session already open.

        Raises:
            AppException: HARDWARE_UNAVAILABLE when the stream cannot be acquired
        """
        self.close_active()

        session = self.new_session(
            opener=opener,
            on_result=on_result,
            on_state_change=on_state_change,
            on_warning=on_warning
        )
        self._active = session
        _live_managers.add(self)

        try:
            await session.start_live(constraints or self.default_constraints())
        except AppException:
            if self._active is session:
                self._active = None
            session.close()
            raise

        return CaptureSessionHandle(session)

    def close_active(self) -> None:
        """Tear down the current live session, if any."""
        session, self._active = self._active, None
        if session is not None and not session.is_closed:
            logger.info(f"🛑 Closing previous session {session.session_id}")
            session.close()


def live_session_count() -> int:
    """Number of live sessions currently holding a stream, across all managers."""
    return sum(1 for manager in list(_live_managers) if manager.active is not None)


def close_all_live_sessions() -> int:
    """
    Close every open live session. Used at application shutdown.

    Returns:
        Number of sessions closed
    """
    closed = 0
    for manager in list(_live_managers):
        if manager.active is not None:
            manager.close_active()
            closed += 1
    return closed


@lru_cache(maxsize=1)
def get_capture_manager() -> CaptureManager:
    """Process-wide manager used by the HTTP API."""
    return CaptureManager()
