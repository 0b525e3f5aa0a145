"""
Models for events received from the streaming speech-to-text provider.

Only the fields the relay consumes are modelled; everything else in the provider payload is
ignored. Non-result events (metadata, speech-started, utterance-end) carry no channel and parse
to results without an alternative.
"""

from pydantic import BaseModel, Field, ValidationError


class ProviderAlternative(BaseModel):
  transcript: str = ""
  confidence: float | None = None


class ProviderChannel(BaseModel):
  alternatives: list[ProviderAlternative] = Field(default_factory=list)


class ProviderResult(BaseModel):
  """One provider event, reduced to what the transcript pipeline needs."""

  type: str | None = None
  channel: ProviderChannel | None = None
  is_final: bool = False
  speech_final: bool = False

  @property
  def text(self) -> str:
    """Trimmed text of the first alternative, or an empty string if there is none."""
    if not self.channel or not self.channel.alternatives:
      return ""
    return self.channel.alternatives[0].transcript.strip()


def parse_provider_event(payload: str | bytes) -> ProviderResult | None:
  """Parse a provider message, returning None for anything that is not a JSON object."""
  try:
    return ProviderResult.model_validate_json(payload)
  except ValidationError:
    return None
