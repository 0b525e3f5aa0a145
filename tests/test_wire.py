"""Tests for the client wire protocol."""

import json

import pytest
from pydantic import ValidationError

from switchboard.wire import (
  AgentJoinedMessage,
  AgentJoinRequest,
  AgentStartRequest,
  AgentStopRequest,
  AudioSourceTag,
  AuthRequest,
  TranscriptMessage,
  deserialize_message,
  serialize_message,
)


class TestDeserialize:
  def test_control_messages(self):
    assert isinstance(deserialize_message('{"type": "agent_start"}'), AgentStartRequest)
    assert isinstance(deserialize_message('{"type": "agent_stop"}'), AgentStopRequest)

    join = deserialize_message('{"type": "agent_join", "agent": "ana"}')
    assert isinstance(join, AgentJoinRequest)
    assert join.agent == "ana"

    auth = deserialize_message('{"type": "auth", "username": "ana", "password": "pw"}')
    assert isinstance(auth, AuthRequest)
    assert auth.username == "ana"

  @pytest.mark.parametrize(
    ("payload", "expected"),
    [
      ('{"type": "audio_mic"}', "mic"),
      ('{"type": "audio_tab"}', "tab"),
      ('{"type": "audio_source", "source": "tab"}', "tab"),
      ('{"type": "audio_source"}', None),
    ],
  )
  def test_audio_source_tags(self, payload, expected):
    message = deserialize_message(payload)
    assert isinstance(message, AudioSourceTag)
    assert message.resolved_source == expected

  @pytest.mark.parametrize(
    "payload",
    [
      "",
      "not json",
      "[1, 2, 3]",
      '"agent_start"',
      '{"type": "dance"}',
      '{"no_type": true}',
      '{"type": "auth", "username": "ana"}',
      '{"type":"auth","username":"a","password":"b"}, "message": {"type":"agent_stop"}',
      '{"type": "agent_stop"} trailing',
      '{"type": "agent_stop"',
    ],
  )
  def test_malformed_messages_raise_validation_error(self, payload):
    with pytest.raises(ValidationError):
      deserialize_message(payload)


class TestSerialize:
  def test_camel_case_wire_names(self):
    event = json.loads(
      serialize_message(AgentJoinedMessage(agent="ana", call_id="c-1", start_time=1700000000000))
    )

    assert event["type"] == "agent_join"
    assert event["callId"] == "c-1"
    assert event["startTime"] == 1700000000000
    assert "call_id" not in event
    assert "timestamp" in event

  def test_transcript_event_fields(self):
    event = json.loads(
      serialize_message(TranscriptMessage(agent=None, call_id="c-1", source="mic", text="hi"))
    )

    assert {k: event[k] for k in ("type", "callId", "source", "text", "final")} == {
      "type": "transcript",
      "callId": "c-1",
      "source": "mic",
      "text": "hi",
      "final": True,
    }
