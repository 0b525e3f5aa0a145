"""
Pydantic message protocol models for the client WebSocket.

Inbound messages are JSON control frames sent by agent and manager browsers. Outbound messages are
events the server sends back to a single client or broadcasts through the hub. Audio travels as
binary frames and never passes through these models.
"""

import time
from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, Field


class Role(StrEnum):
  """Roles assigned to authenticated clients."""

  AGENT = "agent"
  MANAGER = "manager"


class AudioSourceName(StrEnum):
  """Well-known audio sources produced by the agent page."""

  MIC = "mic"
  TAB = "tab"


# Inbound


class AuthRequest(BaseModel):
  """Credential check requested by a client."""

  type: Literal["auth"] = "auth"
  username: str
  password: str


class AgentStartRequest(BaseModel):
  """Start a call for the authenticated agent."""

  type: Literal["agent_start"] = "agent_start"


class AgentJoinRequest(BaseModel):
  """Start a call, naming the agent explicitly (deployments without a login gate)."""

  type: Literal["agent_join"] = "agent_join"
  agent: str | None = None


class AudioSourceTag(BaseModel):
  """Select which audio source subsequent binary frames belong to."""

  type: Literal["audio_source", "audio_mic", "audio_tab"]
  source: str | None = None

  @property
  def resolved_source(self) -> str | None:
    """The source tag this message selects, or None if it names none."""
    match self.type:
      case "audio_mic":
        return AudioSourceName.MIC
      case "audio_tab":
        return AudioSourceName.TAB
      case _:
        return self.source or None


class AgentStopRequest(BaseModel):
  """End the current call."""

  type: Literal["agent_stop"] = "agent_stop"


# Outbound


class BaseMessage(BaseModel):
  """Base message with common fields for all outbound messages."""

  timestamp: float = Field(default_factory=time.time)


class AuthSuccessMessage(BaseMessage):
  type: Literal["auth_success"] = "auth_success"
  username: str
  role: Role


class AuthFailedMessage(BaseMessage):
  type: Literal["auth_failed"] = "auth_failed"
  message: str = "Invalid username or password"


class AgentOnlineMessage(BaseMessage):
  """Presence event: an agent logged in."""

  type: Literal["agent_online"] = "agent_online"
  agent: str


class AgentOfflineMessage(BaseMessage):
  """Presence event: an agent's connection went away."""

  type: Literal["agent_offline"] = "agent_offline"
  agent: str


class AgentJoinedMessage(BaseMessage):
  """A call started."""

  type: Literal["agent_join"] = "agent_join"
  agent: str | None = None
  call_id: str = Field(serialization_alias="callId")
  start_time: int = Field(serialization_alias="startTime", description="Epoch milliseconds")


class TranscriptMessage(BaseMessage):
  """Live transcript text for one audio source of a call."""

  type: Literal["transcript"] = "transcript"
  agent: str | None = None
  call_id: str = Field(serialization_alias="callId")
  source: str
  text: str
  final: bool = True


class SummaryMessage(BaseMessage):
  """Terminal event of a call, carrying its generated (or fallback) summary."""

  type: Literal["summary"] = "summary"
  agent: str | None = None
  call_id: str = Field(serialization_alias="callId")
  summary: str
