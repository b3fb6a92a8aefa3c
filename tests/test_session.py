"""
==============================================================================
Capture Session Tests
==============================================================================

Tests for the capture state machine: still-image flow, live consensus flow,
teardown guarantees and torch handling.

==============================================================================
"""

import asyncio

import pytest

from foodscan.capture import (
    AcceptedBarcode,
    CaptureState,
    DecodeFailure,
    ImageUpload,
    SourceKind,
    StreamConstraints,
)
from foodscan.core import exceptions
from foodscan.core.exceptions import AppException

from conftest import FakeStream, RecordingOpener, make_session


UPC = "036000291452"


async def wait_until(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.01)


# ============================================================================
# STILL IMAGES
# ============================================================================

class TestStillCapture:
    """Tests for capture_still()."""

    def test_clean_image_succeeds(self, ean13_upload):
        results = []
        session = make_session(on_result=results.append)

        outcome = asyncio.run(session.capture_still(ean13_upload))

        assert outcome == AcceptedBarcode("5901234123457", "EAN13")
        assert results == [outcome.code]
        assert session.state is CaptureState.CLOSED
        assert session.source_kind is SourceKind.STILL_IMAGE
        assert session.preview.data_url.startswith("data:image/png")

    def test_blank_image_fails_and_keeps_preview(self, blank_upload):
        results = []
        session = make_session(on_result=results.append)

        outcome = asyncio.run(session.capture_still(blank_upload))

        assert isinstance(outcome, DecodeFailure)
        assert outcome.code == exceptions.DECODE_NOT_FOUND
        assert outcome.message == exceptions.DECODE_NOT_FOUND_MESSAGE
        assert session.state is CaptureState.FAILED
        assert session.error_message == exceptions.DECODE_NOT_FOUND_MESSAGE
        assert session.preview is not None
        assert results == []

    def test_retry_after_failure(self, blank_upload, ean13_upload):
        session = make_session()

        async def scenario():
            first = await session.capture_still(blank_upload)
            second = await session.capture_still(ean13_upload)
            return first, second

        first, second = asyncio.run(scenario())
        assert isinstance(first, DecodeFailure)
        assert second.code == "5901234123457"
        assert session.error_message is None

    def test_non_image_leaves_state_untouched(self):
        session = make_session()
        upload = ImageUpload(b"hello", "text/plain")

        outcome = asyncio.run(session.capture_still(upload))

        assert outcome.code == exceptions.INVALID_INPUT_KIND
        assert session.state is CaptureState.IDLE

    def test_corrupt_image_fails(self):
        session = make_session()
        outcome = asyncio.run(session.capture_still(ImageUpload(b"garbage", "image/jpeg")))
        assert outcome.code == exceptions.SOURCE_READ_FAILED
        assert session.state is CaptureState.FAILED

    def test_still_capture_after_close_is_rejected(self, ean13_upload):
        session = make_session()
        session.close()
        with pytest.raises(AppException) as exc_info:
            asyncio.run(session.capture_still(ean13_upload))
        assert exc_info.value.code == exceptions.SESSION_STATE_INVALID


# ============================================================================
# LIVE STREAMS
# ============================================================================

class TestLiveCapture:
    """Tests for start_live() and the consensus flow."""

    def test_three_identical_reads_emit_once(self, fake_zbar):
        fake_zbar.default = [UPC]
        stream = FakeStream(frames=6)
        results = []
        transitions = []
        session = make_session(
            RecordingOpener(stream),
            on_result=results.append,
            on_state_change=lambda a, b: transitions.append((a, b))
        )

        async def scenario():
            await session.start_live(StreamConstraints())
            outcome = await asyncio.wait_for(session.wait_for_result(), 2)
            await wait_until(lambda: session.is_closed)
            # Leftover frames must not produce anything
            await asyncio.sleep(0.05)
            return outcome

        outcome = asyncio.run(scenario())

        assert outcome == AcceptedBarcode(UPC, "EAN13")
        assert results == [outcome.code]
        assert stream.stop_calls == 1
        assert session.state is CaptureState.CLOSED
        assert transitions == [
            (CaptureState.IDLE, CaptureState.ACQUIRING),
            (CaptureState.ACQUIRING, CaptureState.ACTIVE),
            (CaptureState.ACTIVE, CaptureState.DECODING),
            (CaptureState.DECODING, CaptureState.SUCCEEDED),
            (CaptureState.SUCCEEDED, CaptureState.CLOSED),
        ]

    def test_interrupted_reads_accept_later_code(self, fake_zbar):
        fake_zbar.script(["11111111"], ["11111111"], [UPC], [UPC], [UPC])
        stream = FakeStream(frames=5)
        session = make_session(RecordingOpener(stream))

        async def scenario():
            await session.start_live()
            return await asyncio.wait_for(session.wait_for_result(), 2)

        assert asyncio.run(scenario()).code == UPC

    def test_two_codes_in_view_still_reach_consensus(self, fake_zbar):
        """An EAN and a Code128 on the same package must not reset each other."""
        fake_zbar.default = [(UPC, 40), ("LOT20240917", 20)]
        stream = FakeStream(frames=10)
        results = []
        session = make_session(RecordingOpener(stream), on_result=results.append)

        async def scenario():
            await session.start_live()
            return await asyncio.wait_for(session.wait_for_result(), 2)

        outcome = asyncio.run(scenario())
        assert outcome.code == UPC
        assert results == [UPC]
        assert stream.stop_calls == 1

    def test_hardware_failure(self):
        error = exceptions.hardware_unavailable(exceptions.PERMISSION_DENIED)
        opener = RecordingOpener(error=error)
        results = []
        session = make_session(opener, on_result=results.append)

        async def scenario():
            with pytest.raises(AppException) as exc_info:
                await session.start_live()
            outcome = await session.wait_for_result()
            return exc_info.value, outcome

        raised, outcome = asyncio.run(scenario())

        assert raised.code == exceptions.HARDWARE_UNAVAILABLE
        assert session.state is CaptureState.FAILED
        assert session.error_message == exceptions.HARDWARE_MESSAGES[exceptions.PERMISSION_DENIED]
        assert outcome.code == exceptions.HARDWARE_UNAVAILABLE
        assert len(opener.calls) == 1
        assert results == []

    def test_start_live_twice_is_rejected(self):
        session = make_session(RecordingOpener(FakeStream()))

        async def scenario():
            await session.start_live()
            try:
                with pytest.raises(AppException):
                    await session.start_live()
            finally:
                session.close()

        asyncio.run(scenario())

    def test_wait_for_result_without_live_capture(self):
        session = make_session()
        with pytest.raises(AppException) as exc_info:
            asyncio.run(session.wait_for_result())
        assert exc_info.value.code == exceptions.SESSION_STATE_INVALID


# ============================================================================
# TEARDOWN
# ============================================================================

class TestClose:
    """Tests for close() from every state."""

    def test_close_twice_stops_stream_once(self, fake_zbar):
        stream = FakeStream()
        session = make_session(RecordingOpener(stream))

        async def scenario():
            await session.start_live()
            session.close()
            session.close()

        asyncio.run(scenario())
        assert stream.stop_calls == 1
        assert session.state is CaptureState.CLOSED

    def test_close_while_decoding_cancels_result(self, fake_zbar):
        fake_zbar.default = [UPC]
        stream = FakeStream(frames=1)
        results = []
        session = make_session(RecordingOpener(stream), on_result=results.append)

        async def scenario():
            await session.start_live()
            await wait_until(lambda: session.state is CaptureState.DECODING)
            session.close()
            await asyncio.sleep(0.05)
            return await session.wait_for_result()

        outcome = asyncio.run(scenario())
        assert isinstance(outcome, DecodeFailure)
        assert results == []
        assert stream.stop_calls == 1

    def test_close_during_acquisition_releases_late_stream(self):
        stream = FakeStream()
        gate = None

        async def slow_opener(constraints):
            await gate.wait()
            return stream

        session = make_session(slow_opener)

        async def scenario():
            nonlocal gate
            gate = asyncio.Event()
            starting = asyncio.create_task(session.start_live())
            await wait_until(lambda: session.state is CaptureState.ACQUIRING)
            session.close()
            gate.set()
            await starting

        asyncio.run(scenario())
        assert session.state is CaptureState.CLOSED
        assert stream.stop_calls == 1

    def test_close_idle_session(self):
        transitions = []
        session = make_session(on_state_change=lambda a, b: transitions.append(b))
        session.close()
        assert transitions == [CaptureState.CLOSED]

    def test_context_manager_closes(self):
        stream = FakeStream()
        session = make_session(RecordingOpener(stream))

        async def scenario():
            async with session as live:
                await live.start_live()

        asyncio.run(scenario())
        assert session.is_closed
        assert stream.stop_calls == 1

    def test_stream_stop_error_still_closes(self):
        stream = FakeStream()

        def broken_stop():
            raise RuntimeError("track already gone")

        stream.stop = broken_stop
        session = make_session(RecordingOpener(stream))

        async def scenario():
            await session.start_live()
            session.close()

        asyncio.run(scenario())
        assert session.state is CaptureState.CLOSED


# ============================================================================
# TORCH
# ============================================================================

class TestTorch:
    """Tests for toggle_torch()."""

    def test_no_capability_is_noop(self):
        stream = FakeStream(torch=False)
        session = make_session(RecordingOpener(stream))

        async def scenario():
            await session.start_live()
            try:
                return await session.toggle_torch()
            finally:
                session.close()

        assert asyncio.run(scenario()) is False
        assert stream.torch_calls == []

    def test_toggle_flips_state(self):
        stream = FakeStream(torch=True)
        session = make_session(RecordingOpener(stream))

        async def scenario():
            await session.start_live()
            states = [await session.toggle_torch(), await session.toggle_torch()]
            session.close()
            return states

        assert asyncio.run(scenario()) == [True, False]
        assert stream.torch_calls == [True, False]
        assert session.torch_enabled is False

    def test_torch_error_becomes_warning(self):
        stream = FakeStream(torch=True, torch_error=RuntimeError("torch busy"))
        warnings = []
        session = make_session(RecordingOpener(stream), on_warning=warnings.append)

        async def scenario():
            await session.start_live()
            try:
                return await session.toggle_torch(), session.state
            finally:
                session.close()

        enabled, state = asyncio.run(scenario())
        assert enabled is False
        assert state is CaptureState.ACTIVE
        assert len(warnings) == 1
        assert "torch busy" in warnings[0]

    def test_torch_outside_live_session(self):
        session = make_session()
        assert asyncio.run(session.toggle_torch()) is False

    def test_close_turns_torch_off(self):
        stream = FakeStream(torch=True)
        session = make_session(RecordingOpener(stream))

        async def scenario():
            await session.start_live()
            await session.toggle_torch()
            session.close()

        asyncio.run(scenario())
        assert session.torch_enabled is False
