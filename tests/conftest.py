import pytest


class FakeByteSource:
    """Records the flow-control calls a TargetStream makes."""

    def __init__(self):
        self.paused = False
        self.pause_calls = 0
        self.resume_calls = 0
        self.close_calls = 0

    def pause_reading(self):
        self.paused = True
        self.pause_calls += 1

    def resume_reading(self):
        self.paused = False
        self.resume_calls += 1

    def close(self):
        self.close_calls += 1


@pytest.fixture
def byte_source():
    return FakeByteSource()
