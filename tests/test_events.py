"""Tests for the bridge event model."""

from smartcare.core.events import (
    AudioFrame,
    EventType,
    ResponseDone,
    StreamStarted,
)


class TestEvents:

    def test_stream_started_defaults(self):
        event = StreamStarted(stream_sid="MZ1")
        assert event.event_type == EventType.STREAM_STARTED
        assert event.custom_parameters == {}
        assert event.timestamp > 0

    def test_audio_frame_keeps_base64_payload(self):
        frame = AudioFrame(payload="//79/A==")
        assert frame.event_type == EventType.AUDIO_FRAME
        assert frame.payload == "//79/A=="

    def test_response_done_text_optional(self):
        assert ResponseDone().text is None

    def test_event_serializes(self):
        data = StreamStarted(stream_sid="MZ1", call_id="CA1").model_dump()
        assert data["event_type"] == "stream_started"
        assert data["call_id"] == "CA1"
