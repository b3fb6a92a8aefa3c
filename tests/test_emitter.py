"""
==============================================================================
Result Emitter Tests
==============================================================================
"""

from foodscan.capture import AcceptedBarcode, ResultEmitter


RESULT = AcceptedBarcode("5901234123457", "EAN13")


class TestResultEmitter:
    """Tests for one-shot delivery and teardown."""

    def test_delivers_once_then_tears_down(self):
        received, teardowns = [], []
        emitter = ResultEmitter([received.append])

        assert emitter.deliver(RESULT, lambda: teardowns.append(1)) is True
        assert emitter.deliver(RESULT, lambda: teardowns.append(2)) is False

        assert received == [RESULT.code]
        assert teardowns == [1]
        assert emitter.delivered == RESULT

    def test_failing_listener_does_not_block_teardown(self):
        received, teardowns = [], []

        def broken(result):
            raise RuntimeError("listener bug")

        emitter = ResultEmitter([broken, received.append])
        emitter.deliver(RESULT, lambda: teardowns.append(True))

        assert received == [RESULT.code]
        assert teardowns == [True]

    def test_unsubscribe(self):
        received = []
        emitter = ResultEmitter()
        unsubscribe = emitter.subscribe(received.append)
        unsubscribe()
        emitter.deliver(RESULT, lambda: None)
        assert received == []

    def test_to_dict(self):
        assert RESULT.to_dict() == {"barcode": "5901234123457", "symbology": "EAN13"}
