"""
==============================================================================
Decoder Tests
==============================================================================

Tests for frame decoding, still-image decoding and continuous decoding.

==============================================================================
"""

import asyncio

import numpy as np
import pytest

from foodscan.capture import DecodeArea, DecoderEngine, StillImage, Symbology

from conftest import FakeStream, render_ean13


FRAME = np.zeros((100, 200, 3), dtype=np.uint8)


class TestDecodeFrame:
    """Tests for single-frame decoding with the ZBar binding faked."""

    def test_short_codes_are_discarded(self, fake_zbar):
        fake_zbar.script(["1234567", "036000291452"])
        candidates = DecoderEngine().decode_frame(FRAME)
        assert [c.code for c in candidates] == ["036000291452"]

    def test_custom_minimum_length(self, fake_zbar):
        fake_zbar.script(["12345"])
        candidates = DecoderEngine(min_code_length=4).decode_frame(FRAME)
        assert [c.code for c in candidates] == ["12345"]

    def test_duplicate_reads_in_one_frame_count_once(self, fake_zbar):
        fake_zbar.script(["036000291452", "036000291452"])
        assert len(DecoderEngine().decode_frame(FRAME)) == 1

    def test_candidate_carries_symbology(self, fake_zbar):
        fake_zbar.script(["5901234123457"])
        candidate = DecoderEngine().decode_frame(FRAME)[0]
        assert candidate.symbology == "EAN13"
        assert candidate.frame_timestamp > 0

    def test_decode_error_yields_nothing(self, fake_zbar):
        fake_zbar.error = RuntimeError("zbar exploded")
        assert DecoderEngine().decode_frame(FRAME) == []

    def test_empty_frame(self, fake_zbar):
        assert DecoderEngine().decode_frame(np.zeros((0, 0, 3), dtype=np.uint8)) == []
        assert fake_zbar.calls == 0

    def test_decode_area_crops_frame(self, fake_zbar):
        area = DecodeArea(top=0.2, right=0.1, bottom=0.2, left=0.1)
        DecoderEngine().decode_frame(FRAME, area=area)
        assert fake_zbar.shapes == [(60, 160)]

    def test_symbologies(self):
        engine = DecoderEngine(symbologies=[Symbology.EAN13, "code128"])
        assert engine.symbologies == ["EAN13", "CODE128"]

    def test_largest_symbol_comes_first(self, fake_zbar):
        fake_zbar.script([("11111111", 10), ("22222222", 40)])
        candidates = DecoderEngine().decode_frame(FRAME)
        assert [c.code for c in candidates] == ["22222222", "11111111"]

    def test_self_test_lets_zbar_errors_through(self, fake_zbar):
        fake_zbar.error = OSError("libzbar not found")
        with pytest.raises(OSError):
            DecoderEngine().self_test()

    def test_self_test_passes(self, fake_zbar):
        DecoderEngine().self_test()
        assert fake_zbar.calls == 1


class TestDecodeOnce:
    """Tests for still-image decoding."""

    def test_decodes_real_ean13(self):
        candidate = DecoderEngine().decode_once(render_ean13("5901234123457"))
        assert candidate is not None
        assert candidate.code == "5901234123457"
        assert candidate.symbology == "EAN13"

    def test_blank_image_returns_none(self):
        blank = np.full((100, 200, 3), 255, dtype=np.uint8)
        assert DecoderEngine().decode_once(blank) is None

    def test_falls_back_to_preprocessed_passes(self, fake_zbar):
        fake_zbar.script([], [], ["5901234123457"])
        still = StillImage(data=b"", frame=FRAME, content_type="image/png")
        candidate = DecoderEngine().decode_once(still)
        assert candidate.code == "5901234123457"
        assert fake_zbar.calls == 3


class TestContinuousDecode:
    """Tests for the background decode loop."""

    def test_stop_without_start_is_harmless(self):
        engine = DecoderEngine()
        engine.stop_continuous_decode()
        engine.stop_continuous_decode()
        assert not engine.is_running

    def test_delivers_candidates_in_frame_order(self, fake_zbar):
        fake_zbar.script(["11111111"], ["22222222"], ["33333333"])
        received = []

        async def scenario():
            engine = DecoderEngine(frequency=200)
            engine.start_continuous_decode(FakeStream(frames=3), received.append)
            for _ in range(100):
                if len(received) == 3:
                    break
                await asyncio.sleep(0.01)
            engine.stop_continuous_decode()
            engine.stop_continuous_decode()
            return engine

        engine = asyncio.run(scenario())
        assert [c.code for c in received] == ["11111111", "22222222", "33333333"]
        assert not engine.is_running

    def test_stop_from_callback_prevents_further_delivery(self, fake_zbar):
        fake_zbar.script(["11111111", "22222222"], ["33333333"])
        received = []

        async def scenario():
            engine = DecoderEngine(frequency=200)

            def on_candidate(candidate):
                received.append(candidate.code)
                engine.stop_continuous_decode()

            engine.start_continuous_decode(FakeStream(frames=2), on_candidate)
            await asyncio.sleep(0.1)

        asyncio.run(scenario())
        assert received == ["11111111"]

    def test_one_candidate_per_frame(self, fake_zbar):
        fake_zbar.script(
            ["11111111", "22222222"],
            [("22222222", 10), ("11111111", 30)],
        )
        received = []

        async def scenario():
            engine = DecoderEngine(frequency=200)
            engine.start_continuous_decode(FakeStream(frames=2), received.append)
            await asyncio.sleep(0.1)
            engine.stop_continuous_decode()

        asyncio.run(scenario())
        assert [c.code for c in received] == ["11111111", "11111111"]

    def test_loop_ends_when_stream_stops(self, fake_zbar):
        async def scenario():
            engine = DecoderEngine(frequency=200)
            stream = FakeStream()
            engine.start_continuous_decode(stream, lambda c: None)
            await asyncio.sleep(0.02)
            stream.stop()
            await asyncio.sleep(0.05)
            return engine

        assert not asyncio.run(scenario()).is_running


@pytest.mark.parametrize("name", ["EAN13", "EAN8", "UPCA", "UPCE", "CODE128", "CODE39"])
def test_default_symbology_set(name):
    assert name in DecoderEngine().symbologies
