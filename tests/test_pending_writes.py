import pytest

from chartbuddies.services.pending_writes import PendingWriteQueue


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


def test_value_waits_for_the_quiet_period(clock):
    writes = []
    queue = PendingWriteQueue(lambda k, v: writes.append((k, v)), quiet_period=0.8, clock=clock)

    queue.stage("comments", "Pt refused breakfast")
    assert queue.flush_due() == []
    assert queue.current("comments") == "Pt refused breakfast"

    clock.advance(1.0)
    assert queue.flush_due() == ["comments"]
    assert writes == [("comments", "Pt refused breakfast")]
    assert not queue.is_pending("comments")


def test_typing_again_restarts_the_timer_and_only_the_last_value_is_written(clock):
    writes = []
    queue = PendingWriteQueue(lambda k, v: writes.append((k, v)), quiet_period=1.0, clock=clock)

    queue.stage("diet", "Low")
    clock.advance(0.6)
    queue.stage("diet", "Low sodium")
    clock.advance(0.6)
    assert queue.flush_due() == []

    clock.advance(0.5)
    queue.flush_due()
    assert writes == [("diet", "Low sodium")]


def test_flush_writes_everything_immediately(clock):
    writes = {}
    queue = PendingWriteQueue(writes.__setitem__, quiet_period=10, clock=clock)

    queue.stage("diet", "Soft")
    queue.stage("comments", "Family visiting")

    assert sorted(queue.flush()) == ["comments", "diet"]
    assert writes == {"diet": "Soft", "comments": "Family visiting"}
    assert queue.current("diet") == "Soft"


def test_failed_write_keeps_the_value_staged(clock):
    def failing_writer(key, value):
        raise RuntimeError("database unavailable")

    queue = PendingWriteQueue(failing_writer, quiet_period=0, clock=clock)
    queue.stage("allergies", "Latex")

    with pytest.raises(RuntimeError):
        queue.flush()

    assert queue.is_pending("allergies")
    assert queue.current("allergies") == "Latex"
    assert not queue.in_flight("allergies")


def test_edit_during_a_write_waits_for_the_next_flush(clock):
    writes = []
    queue = None

    def writer(key, value):
        assert queue.in_flight(key)
        queue.stage(key, "second draft")
        writes.append(value)

    queue = PendingWriteQueue(writer, quiet_period=0, clock=clock)
    queue.stage("comments", "first draft")

    queue.flush()
    assert writes == ["first draft"]
    assert queue.current("comments") == "second draft"

    queue.flush()
    assert writes == ["first draft", "second draft"]
