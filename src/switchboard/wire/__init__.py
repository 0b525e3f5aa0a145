"""
Switchboard wire protocol package.

Contains the message types exchanged between browser clients and the relay server.
"""

from .codec import InboundMessage, OutboundMessage, deserialize_message, serialize_message
from .messages import (
  AgentJoinedMessage,
  AgentJoinRequest,
  AgentOfflineMessage,
  AgentOnlineMessage,
  AgentStartRequest,
  AgentStopRequest,
  AudioSourceName,
  AudioSourceTag,
  AuthFailedMessage,
  AuthRequest,
  AuthSuccessMessage,
  BaseMessage,
  Role,
  SummaryMessage,
  TranscriptMessage,
)

__all__ = [
  "AgentJoinRequest",
  "AgentJoinedMessage",
  "AgentOfflineMessage",
  "AgentOnlineMessage",
  "AgentStartRequest",
  "AgentStopRequest",
  "AudioSourceName",
  "AudioSourceTag",
  "AuthFailedMessage",
  "AuthRequest",
  "AuthSuccessMessage",
  "BaseMessage",
  "InboundMessage",
  "OutboundMessage",
  "Role",
  "SummaryMessage",
  "TranscriptMessage",
  "deserialize_message",
  "serialize_message",
]
