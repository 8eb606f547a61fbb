"""Tests for the Twilio and OpenAI Realtime serializers."""

import json

import pytest

from smartcare.config import RealtimeAIConfig
from smartcare.core.events import (
    AIError,
    AudioDelta,
    AudioFrame,
    CustomEvent,
    Mark,
    ResponseDone,
    SessionUpdated,
    StreamStarted,
    StreamStopped,
    TranscriptionCompleted,
)
from smartcare.errors import TransportError
from smartcare.serializers.openai_realtime import OpenAIRealtimeSerializer
from smartcare.serializers.twilio import TwilioSerializer


# ==========================================================================
# Twilio Serializer Tests
# ==========================================================================


class TestTwilioSerializer:

    @pytest.fixture
    def serializer(self):
        return TwilioSerializer()

    def test_connected_event(self, serializer):
        msg = json.dumps({"event": "connected", "protocol": "Call", "version": "1.0.0"})
        assert serializer.deserialize(msg) == []

    def test_start_event(self, serializer):
        msg = {
            "event": "start",
            "start": {
                "streamSid": "MZ123",
                "callSid": "CA456",
                "accountSid": "AC789",
                "customParameters": {"from": "+15551230000", "direction": "inbound"},
                "mediaFormat": {"encoding": "audio/x-mulaw", "sampleRate": 8000, "channels": 1},
            },
        }
        events = serializer.deserialize(msg)
        assert len(events) == 1
        event = events[0]
        assert isinstance(event, StreamStarted)
        assert event.stream_sid == "MZ123"
        assert event.call_id == "CA456"
        assert event.custom_parameters["from"] == "+15551230000"
        assert event.media_format["sampleRate"] == 8000

    def test_start_without_stream_sid_is_malformed(self, serializer):
        with pytest.raises(TransportError):
            serializer.deserialize({"event": "start", "start": {"callSid": "CA1"}})

    def test_start_without_block_is_malformed(self, serializer):
        with pytest.raises(TransportError):
            serializer.deserialize({"event": "start"})

    def test_start_with_wrong_field_types_is_malformed(self, serializer):
        start = {"streamSid": "MZ1", "callSid": "CA1", "accountSid": 42}
        with pytest.raises(TransportError):
            serializer.deserialize({"event": "start", "start": start})

    @pytest.mark.parametrize(
        "start",
        [
            {"streamSid": "MZ1", "customParameters": ["from", "+1555"]},
            {"streamSid": "MZ1", "mediaFormat": "audio/x-mulaw"},
            ["MZ1"],
        ],
    )
    def test_start_with_bad_shape_is_malformed(self, serializer, start):
        with pytest.raises(TransportError):
            serializer.deserialize({"event": "start", "start": start})

    def test_media_event(self, serializer):
        events = serializer.deserialize(
            {"event": "media", "streamSid": "MZ1", "media": {"payload": "AAAA", "track": "inbound"}}
        )
        assert len(events) == 1
        assert isinstance(events[0], AudioFrame)
        assert events[0].payload == "AAAA"
        assert events[0].stream_sid == "MZ1"

    def test_media_without_payload_is_malformed(self, serializer):
        with pytest.raises(TransportError):
            serializer.deserialize({"event": "media", "media": {}})

    def test_stop_event(self, serializer):
        events = serializer.deserialize({"event": "stop", "streamSid": "MZ1", "stop": {"callSid": "CA1"}})
        assert isinstance(events[0], StreamStopped)
        assert events[0].call_id == "CA1"

    def test_mark_event(self, serializer):
        events = serializer.deserialize({"event": "mark", "mark": {"name": "greeting"}})
        assert isinstance(events[0], Mark)
        assert events[0].name == "greeting"

    def test_unknown_event_is_custom(self, serializer):
        events = serializer.deserialize({"event": "dtmf", "dtmf": {"digit": "5"}})
        assert isinstance(events[0], CustomEvent)
        assert events[0].custom_type == "twilio.dtmf"

    def test_invalid_json(self, serializer):
        with pytest.raises(TransportError):
            serializer.deserialize("{not json")

    def test_non_object_json(self, serializer):
        with pytest.raises(TransportError):
            serializer.deserialize("[1, 2, 3]")

    def test_serialize_audio_delta(self, serializer):
        out = json.loads(serializer.serialize(AudioDelta(delta="BBBB"), stream_sid="MZ9"))
        assert out == {"event": "media", "streamSid": "MZ9", "media": {"payload": "BBBB"}}

    def test_serialize_mark(self, serializer):
        out = json.loads(serializer.serialize(Mark(name="end"), stream_sid="MZ9"))
        assert out["event"] == "mark"
        assert out["mark"]["name"] == "end"

    def test_serialize_unsupported_returns_none(self, serializer):
        assert serializer.serialize(SessionUpdated(), stream_sid="MZ9") is None


# ==========================================================================
# OpenAI Realtime Serializer Tests
# ==========================================================================


class TestOpenAIRealtimeSerializer:

    @pytest.fixture
    def serializer(self):
        return OpenAIRealtimeSerializer()

    def test_session_update_frame(self):
        config = RealtimeAIConfig(voice="echo", instructions="be helpful")
        frame = json.loads(OpenAIRealtimeSerializer.build_session_update(config))
        assert frame["type"] == "session.update"
        session = frame["session"]
        assert session["turn_detection"] == {"type": "server_vad"}
        assert session["input_audio_format"] == "g711_ulaw"
        assert session["output_audio_format"] == "g711_ulaw"
        assert session["voice"] == "echo"
        assert session["instructions"] == "be helpful"
        assert session["modalities"] == ["text", "audio"]
        assert session["temperature"] == 0.8
        assert session["input_audio_transcription"] == {"model": "whisper-1"}

    def test_audio_append_frame(self, serializer):
        frame = json.loads(serializer.serialize(AudioFrame(payload="CCCC")))
        assert frame == {"type": "input_audio_buffer.append", "audio": "CCCC"}

    def test_session_updated(self, serializer):
        events = serializer.deserialize({"type": "session.updated", "session": {"voice": "echo"}})
        assert isinstance(events[0], SessionUpdated)
        assert events[0].session["voice"] == "echo"

    def test_transcription_completed(self, serializer):
        events = serializer.deserialize({
            "type": "conversation.item.input_audio_transcription.completed",
            "item_id": "item_1",
            "transcript": "  my AC is broken \n",
        })
        assert isinstance(events[0], TranscriptionCompleted)
        assert events[0].text == "my AC is broken"
        assert events[0].item_id == "item_1"

    def test_transcription_with_null_item_id(self, serializer):
        events = serializer.deserialize({
            "type": "conversation.item.input_audio_transcription.completed",
            "item_id": None,
            "transcript": "hello",
        })
        assert events[0].text == "hello"
        assert events[0].item_id == ""

    def test_response_done_with_transcript(self, serializer):
        events = serializer.deserialize({
            "type": "response.done",
            "response": {
                "id": "resp_1",
                "output": [
                    {"type": "message", "content": [{"type": "audio", "transcript": "sorry, unit number?"}]},
                    {"type": "message", "content": [{"type": "audio", "transcript": "second"}]},
                ],
            },
        })
        assert isinstance(events[0], ResponseDone)
        assert events[0].text == "sorry, unit number?"
        assert events[0].response_id == "resp_1"

    def test_response_done_without_transcript(self, serializer):
        events = serializer.deserialize({"type": "response.done", "response": {"output": []}})
        assert isinstance(events[0], ResponseDone)
        assert events[0].text is None

    def test_audio_delta(self, serializer):
        events = serializer.deserialize({"type": "response.audio.delta", "delta": "DDDD"})
        assert isinstance(events[0], AudioDelta)
        assert events[0].delta == "DDDD"

    def test_empty_audio_delta_ignored(self, serializer):
        assert serializer.deserialize({"type": "response.audio.delta", "delta": ""}) == []

    def test_error_event(self, serializer):
        events = serializer.deserialize(
            {"type": "error", "error": {"type": "invalid_request_error", "message": "bad session"}}
        )
        assert isinstance(events[0], AIError)
        assert events[0].code == "invalid_request_error"
        assert events[0].message == "bad session"

    def test_other_events_are_custom(self, serializer):
        events = serializer.deserialize({"type": "rate_limits.updated"})
        assert isinstance(events[0], CustomEvent)
        assert events[0].custom_type == "rate_limits.updated"

    def test_bytes_frame(self, serializer):
        events = serializer.deserialize(b'{"type": "session.updated"}')
        assert isinstance(events[0], SessionUpdated)

    def test_invalid_frame(self, serializer):
        with pytest.raises(TransportError):
            serializer.deserialize("not-json")

    @pytest.mark.parametrize(
        "frame",
        [
            {"type": "response.done", "response": ["oops"]},
            {"type": "response.audio.delta", "delta": 123},
            {"type": "session.updated", "session": ["voice"]},
            {"type": "error", "error": "boom"},
        ],
    )
    def test_wrong_shape_is_malformed(self, serializer, frame):
        with pytest.raises(TransportError):
            serializer.deserialize(frame)

    def test_session_update_with_language(self):
        frame = json.loads(OpenAIRealtimeSerializer.build_session_update(RealtimeAIConfig(), language="ar"))
        assert frame["session"]["input_audio_transcription"] == {"model": "whisper-1", "language": "ar"}
