"""
==============================================================================
Capture Package - Barcode Capture and Decode Pipeline
==============================================================================

Image acquisition -> decode -> consensus -> result emission.

Classes:
--------
- ImageSourceAdapter: Uploads and camera streams to decodable sources
- DecoderEngine: OpenCV + pyzbar recognition
- ConsensusValidator: N consecutive identical reads gate (live mode)
- CaptureSession: State machine owning the hardware stream
- ResultEmitter: Exactly-once result delivery followed by teardown
- CaptureManager: Application entry points

==============================================================================
"""

from .consensus import ConsensusValidator, advance
from .decoder import DecoderEngine
from .emitter import ResultEmitter
from .manager import (
    CaptureManager,
    CaptureSessionHandle,
    close_all_live_sessions,
    get_capture_manager,
    live_session_count,
)
from .models import (
    AcceptedBarcode,
    CaptureState,
    ConsensusState,
    DecodeCandidate,
    DecodeFailure,
    SourceKind,
    Symbology,
)
from .session import CaptureSession
from .sources import (
    CameraStream,
    DecodeArea,
    ImageSourceAdapter,
    ImageUpload,
    PushedFrameStream,
    StillImage,
    StreamConstraints,
    VideoStream,
)

__all__ = [
    "AcceptedBarcode",
    "CameraStream",
    "CaptureManager",
    "CaptureSession",
    "CaptureSessionHandle",
    "CaptureState",
    "ConsensusState",
    "ConsensusValidator",
    "DecodeArea",
    "DecodeCandidate",
    "DecodeFailure",
    "DecoderEngine",
    "ImageSourceAdapter",
    "ImageUpload",
    "PushedFrameStream",
    "ResultEmitter",
    "SourceKind",
    "StillImage",
    "StreamConstraints",
    "Symbology",
    "VideoStream",
    "advance",
    "close_all_live_sessions",
    "get_capture_manager",
    "live_session_count",
]
