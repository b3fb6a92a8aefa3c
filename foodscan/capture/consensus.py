"""
==============================================================================
Consensus Module
==============================================================================

Turns a noisy stream of live reads into one trustworthy barcode.

Single-frame misreads are common on handheld video (motion blur, partial
occlusion), so a code is accepted only after it is read in N consecutive
candidates. A different code in between restarts the run.

    reads:  A  A  B  B  B
    run:    1  2  1  2  3   -> accept B

Still images never pass through here; the first read is trusted.

==============================================================================
"""

from __future__ import annotations

import logging
from typing import Optional, Tuple

from .models import AcceptedBarcode, ConsensusState, DecodeCandidate


# Module logger
logger = logging.getLogger(__name__)


DEFAULT_ACCEPT_THRESHOLD = 3
DEFAULT_MIN_CODE_LENGTH = 8


def advance(
    state: ConsensusState,
    candidate: DecodeCandidate,
    accept_threshold: int = DEFAULT_ACCEPT_THRESHOLD,
    min_code_length: int = DEFAULT_MIN_CODE_LENGTH
) -> Tuple[ConsensusState, Optional[AcceptedBarcode]]:
    """
    Fold one candidate into the consensus state.

    Args:
        state: Current state
        candidate: New read
        accept_threshold: Run length that accepts a code
        min_code_length: Shorter codes leave the state untouched

    Returns:
        Tuple of (new_state, accepted_barcode_or_None). A barcode is returned
        only on the candidate that brings the run to exactly the threshold.
    """
    if len(candidate.code) < min_code_length:
        return state, None

    if candidate.code == state.last_code:
        new_state = ConsensusState(candidate.code, state.repeat_count + 1)
    else:
        new_state = ConsensusState(candidate.code, 1)

    if new_state.repeat_count == accept_threshold:
        return new_state, AcceptedBarcode(candidate.code, candidate.symbology)

    return new_state, None


class ConsensusValidator:
    """
    Stateful wrapper around advance() for one capture session.

    After the first acceptance the validator is finished and ignores
    everything it is given.

    Example:
        >>> validator = ConsensusValidator()
        >>> for candidate in candidates:
        ...     accepted = validator.submit(candidate)
    """

    def __init__(
        self,
        accept_threshold: int = DEFAULT_ACCEPT_THRESHOLD,
        min_code_length: int = DEFAULT_MIN_CODE_LENGTH
    ) -> None:
        if accept_threshold < 1:
            raise ValueError("accept_threshold must be at least 1")
        self._accept_threshold = accept_threshold
        self._min_code_length = min_code_length
        self._state = ConsensusState()
        self._accepted: Optional[AcceptedBarcode] = None

    @property
    def state(self) -> ConsensusState:
        return self._state

    @property
    def finished(self) -> bool:
        return self._accepted is not None

    @property
    def accepted(self) -> Optional[AcceptedBarcode]:
        return self._accepted

    def submit(self, candidate: DecodeCandidate) -> Optional[AcceptedBarcode]:
        """Process one candidate; returns the barcode on acceptance."""
        if self._accepted is not None:
            return None

        self._state, accepted = advance(
            self._state,
            candidate,
            self._accept_threshold,
            self._min_code_length
        )

        if accepted is not None:
            self._accepted = accepted
            logger.info(f"✅ Consensus reached: {accepted.code}")
        else:
            logger.debug(
                f"Read {candidate.code} ({self._state.repeat_count}/{self._accept_threshold})"
            )

        return accepted

    def reset(self) -> None:
        self._state = ConsensusState()
        self._accepted = None
