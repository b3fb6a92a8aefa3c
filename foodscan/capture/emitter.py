"""
==============================================================================
Result Emitter Module
==============================================================================

Delivers the accepted barcode to the application exactly once, then tears
the session down. A passing scan never leaves the camera running.

==============================================================================
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from .models import AcceptedBarcode


# Module logger
logger = logging.getLogger(__name__)


ResultCallback = Callable[[str], None]


class ResultEmitter:
    """
    One-shot result fan-out.

    Listeners receive the literal decoded string. Listener errors are logged
    and do not stop delivery to other listeners or the teardown.
    """

    def __init__(self, listeners: Optional[List[ResultCallback]] = None) -> None:
        self._listeners: List[ResultCallback] = list(listeners or [])
        self._delivered: Optional[AcceptedBarcode] = None

    @property
    def delivered(self) -> Optional[AcceptedBarcode]:
        return self._delivered

    def subscribe(self, listener: ResultCallback) -> Callable[[], None]:
        """Register a listener; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def deliver(self, accepted: AcceptedBarcode, teardown: Callable[[], None]) -> bool:
        """
        Hand `accepted` to every listener, then run `teardown`.

        Returns:
            False if a result was already delivered (nothing happens)
        """
        if self._delivered is not None:
            return False

        self._delivered = accepted

        try:
            for listener in list(self._listeners):
                try:
                    listener(accepted.code)
                except Exception as e:
                    logger.error(f"Result listener error: {e}")
        finally:
            teardown()

        logger.info(f"📦 Barcode delivered: {accepted.code}")
        return True
