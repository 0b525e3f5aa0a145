"""
Message codec for wire protocol serialization and deserialization.

Provides a clean public API for converting between wire protocol message objects and JSON
strings, hiding the implementation details of Pydantic serialization.
"""

from typing import Annotated

from pydantic import Field, TypeAdapter

from .messages import (
  AgentJoinedMessage,
  AgentJoinRequest,
  AgentOfflineMessage,
  AgentOnlineMessage,
  AgentStartRequest,
  AgentStopRequest,
  AudioSourceTag,
  AuthFailedMessage,
  AuthRequest,
  AuthSuccessMessage,
  SummaryMessage,
  TranscriptMessage,
)

type InboundMessage = (
  AuthRequest | AgentStartRequest | AgentJoinRequest | AudioSourceTag | AgentStopRequest
)

type OutboundMessage = (
  AuthSuccessMessage
  | AuthFailedMessage
  | AgentOnlineMessage
  | AgentOfflineMessage
  | AgentJoinedMessage
  | TranscriptMessage
  | SummaryMessage
)


_INBOUND_ADAPTER: TypeAdapter[InboundMessage] = TypeAdapter(
  Annotated[InboundMessage, Field(discriminator="type")]
)


def serialize_message(message: OutboundMessage) -> str:
  """
  Serialize an outbound message to a JSON string, using the camelCase wire names.

  Args:
      message: Any outbound message instance

  Returns:
      JSON string representation of the message
  """
  adapter = TypeAdapter(type(message))
  return adapter.dump_json(message, by_alias=True).decode("utf-8")


def deserialize_message(json_str: str) -> InboundMessage:
  """
  Deserialize a JSON string sent by a client.

  Raises pydantic.ValidationError when the payload is not JSON, is not an object, or carries an
  unknown ``type``.
  """
  return _INBOUND_ADAPTER.validate_json(json_str)
