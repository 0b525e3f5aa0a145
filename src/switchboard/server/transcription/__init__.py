"""Streaming speech-to-text provider integration."""

from switchboard.server.transcription.channel import (
  Connector,
  ProviderConnection,
  TranscriptionChannel,
  TranscriptUpdate,
  UpdateHandler,
  provider_connector,
)
from switchboard.server.transcription.models import (
  ProviderAlternative,
  ProviderChannel,
  ProviderResult,
  parse_provider_event,
)

__all__ = [
  "Connector",
  "ProviderAlternative",
  "ProviderChannel",
  "ProviderConnection",
  "ProviderResult",
  "TranscriptUpdate",
  "TranscriptionChannel",
  "UpdateHandler",
  "parse_provider_event",
  "provider_connector",
]
