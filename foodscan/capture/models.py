"""
==============================================================================
Capture Models Module
==============================================================================

Value types shared by the capture pipeline.

- CaptureState / SourceKind: session state machine vocabulary
- Symbology: accepted barcode encodings (ZBar symbol names)
- DecodeCandidate: one raw read from one frame
- ConsensusState: run-length of identical reads (live mode)
- AcceptedBarcode / DecodeFailure: the two outcomes of a capture

==============================================================================
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class CaptureState(str, Enum):
    """Capture session states."""
    IDLE = "idle"
    ACQUIRING = "acquiring"
    ACTIVE = "active"
    DECODING = "decoding"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CLOSED = "closed"


class SourceKind(str, Enum):
    """Origin of the frames a session decodes."""
    STILL_IMAGE = "still_image"
    LIVE_STREAM = "live_stream"


class Symbology(str, Enum):
    """Retail/logistics symbologies, named as ZBar reports them."""
    EAN13 = "EAN13"
    EAN8 = "EAN8"
    UPCA = "UPCA"
    UPCE = "UPCE"
    CODE128 = "CODE128"
    CODE39 = "CODE39"


DEFAULT_SYMBOLOGIES = (
    Symbology.EAN13,
    Symbology.EAN8,
    Symbology.UPCA,
    Symbology.UPCE,
    Symbology.CODE128,
    Symbology.CODE39,
)


@dataclass(frozen=True)
class DecodeCandidate:
    """A single recognition result from one processed frame."""
    code: str
    symbology: str
    frame_timestamp: float = field(default_factory=time.monotonic)


@dataclass(frozen=True)
class ConsensusState:
    """Last observed code and how many consecutive frames produced it."""
    last_code: Optional[str] = None
    repeat_count: int = 0


@dataclass(frozen=True)
class AcceptedBarcode:
    """Final validated barcode handed to the application."""
    code: str
    symbology: Optional[str] = None

    def to_dict(self) -> dict:
        return {"barcode": self.code, "symbology": self.symbology}


@dataclass(frozen=True)
class DecodeFailure:
    """
    Non-fatal capture outcome.

    Attributes:
        code: Error code (INVALID_INPUT_KIND, SOURCE_READ_FAILED, DECODE_NOT_FOUND)
        message: Human-readable message for the user
    """
    code: str
    message: str
