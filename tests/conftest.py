import pytest

from lessons import load_catalog


class RecordingPublisher:
    """Stands in for the relay client and keeps everything it was asked to send."""

    def __init__(self):
        self.slides = []
        self.messages = []

    def publish_slide(self, room_name, slide):
        self.slides.append((room_name, slide))

    def publish_message(self, room_name, message, message_type="agent-speech"):
        self.messages.append((room_name, message, message_type))


@pytest.fixture
def catalog():
    return load_catalog()


@pytest.fixture
def publisher():
    return RecordingPublisher()
