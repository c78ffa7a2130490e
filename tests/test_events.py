from transpane.events import Signal


def test_emit_calls_each_slot_once():
    signal = Signal("frame_ready")
    received = []
    signal.connect(received.append)
    signal.connect(received.append)

    signal.emit("frame")

    assert received == ["frame"]
    assert len(signal) == 1


def test_failing_subscriber_does_not_stop_others():
    signal = Signal("state_changed")
    received = []

    def broken(*args):
        raise RuntimeError("subscriber bug")

    signal.connect(broken)
    signal.connect(lambda *args: received.append(args))
    signal.emit("running", None)

    assert received == [("running", None)]


def test_disconnect():
    signal = Signal()
    received = []
    signal.connect(received.append)
    signal.disconnect(received.append)
    signal.emit(1)
    signal.connect(received.append)
    signal.disconnect()
    signal.emit(2)
    assert received == []
    assert len(signal) == 0
